"""API Services Package."""

from api.services.sources import (
    build_engine,
    build_mapper,
    build_source_a,
    build_source_b,
)

__all__ = [
    "build_engine",
    "build_mapper",
    "build_source_a",
    "build_source_b",
]
