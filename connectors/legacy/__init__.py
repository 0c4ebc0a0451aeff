"""Legacy inventory database connector (Source A)."""

from connectors.legacy.legacy_adapter import LegacyDatabaseAdapter, load_query, wrap_search
from connectors.legacy.wide_rows import expand_wide_row, to_number

__all__ = [
    "LegacyDatabaseAdapter",
    "expand_wide_row",
    "load_query",
    "to_number",
    "wrap_search",
]
