"""Abstract Inventory Source Interface.

This module defines the interface every inventory source adapter implements.
It is intentionally source-agnostic - no SQL dialect or ERP API specifics here.

Adapters implement this interface to:
1. Fetch the time-windowed stock/flow rows of their backing system
2. Translate the native row shape into SourceARow / SourceBRow

Key Design Principles:
- Adapters are pure data producers: no filtering, aggregation or classification
- The reconciliation engine and API routes depend ONLY on this interface
- Source-specific implementations live in connector subfolders
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Sequence, Union

from reconciliation.exceptions import SourceFetchError
from reconciliation.models import SourceARow, SourceBRow, SourceFilter


SourceRow = Union[SourceARow, SourceBRow]


# =============================================================================
# Abstract Adapter Interface
# =============================================================================

class SourceAdapter(ABC):
    """Abstract base class for inventory source adapters.

    Implementations:
    - connectors/legacy/legacy_adapter.py   (Source A)
    - connectors/erpnext/erpnext_adapter.py (Source B)
    """

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def fetch(self, source_filter: SourceFilter) -> List[SourceRow]:
        """Fetch all rows of the current + 3 trailing months window.

        Args:
            source_filter: Filter hint; adapters may use it to narrow the
                backing query but the engine re-applies it after merging

        Returns:
            Per-location rows in the canonical row type of this source

        Raises:
            SourceFetchError: The backing system could not be read
        """
        pass

    async def close(self) -> None:
        """Release connections held by the adapter."""
        return None

    def describe(self) -> Dict[str, str]:
        return {"name": self.name, "type": type(self).__name__}


class StaticSourceAdapter(SourceAdapter):
    """Serves a fixed row list. Used for demo wiring and tests."""

    def __init__(self, name: str, rows: Sequence[SourceRow]):
        super().__init__(name)
        self._rows = list(rows)

    async def fetch(self, source_filter: SourceFilter) -> List[SourceRow]:
        return list(self._rows)


class UnconfiguredSourceAdapter(SourceAdapter):
    """Stands in for a source whose settings are missing.

    Every fetch fails, so the engine reports the source as failed and
    degrades to single-source mode.
    """

    def __init__(self, name: str, reason: str):
        super().__init__(name)
        self.reason = reason

    async def fetch(self, source_filter: SourceFilter) -> List[SourceRow]:
        raise SourceFetchError(self.name, f"source not configured: {self.reason}")


# =============================================================================
# Adapter Factory
# =============================================================================

_adapter_registry: Dict[str, Callable[..., SourceAdapter]] = {}


def register_adapter(adapter_type: str):
    """Decorator to register an adapter implementation."""
    def decorator(cls):
        _adapter_registry[adapter_type] = cls
        return cls
    return decorator


def create_adapter(adapter_type: str, **kwargs) -> SourceAdapter:
    """Create an adapter instance by registered type.

    Raises:
        ValueError: If adapter_type is not registered
    """
    key = adapter_type.lower()

    if key not in _adapter_registry:
        available = list(_adapter_registry.keys())
        raise ValueError(
            f"Unknown adapter type: {adapter_type}. "
            f"Available: {available}"
        )

    return _adapter_registry[key](**kwargs)


def list_available_adapters() -> List[str]:
    """List all registered adapter types."""
    return list(_adapter_registry.keys())


register_adapter("static")(StaticSourceAdapter)
