"""Inventory Source Connectors - Pluggable source system integrations.

This package contains the abstract source adapter interface and concrete
implementations for the two reconciled systems:
- legacy/   Source A, the legacy inventory database (SQL report query)
- erpnext/  Source B, the ERP (HTTP server method)

Key Design Principle:
- The reconciliation engine and API routes depend ONLY on SourceAdapter
- Adapters return canonical SourceARow / SourceBRow records
- No SQL or ERP-specific types leak through the interface

To add a new source:
1. Create a new folder (e.g., sap/)
2. Implement the SourceAdapter interface
3. Register using the @register_adapter decorator
"""

from connectors.source_base import (
    SourceAdapter,
    SourceRow,
    StaticSourceAdapter,
    UnconfiguredSourceAdapter,
    create_adapter,
    list_available_adapters,
    register_adapter,
)

# Importing the implementations registers them with the factory
from connectors.legacy import LegacyDatabaseAdapter
from connectors.erpnext import ERPNextStockAdapter

__all__ = [
    # Core interface
    "SourceAdapter",
    "SourceRow",
    "StaticSourceAdapter",
    "UnconfiguredSourceAdapter",

    # Implementations
    "LegacyDatabaseAdapter",
    "ERPNextStockAdapter",

    # Factory
    "create_adapter",
    "register_adapter",
    "list_available_adapters",
]
