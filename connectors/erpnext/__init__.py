"""ERPNext connector (Source B)."""

from connectors.erpnext.erpnext_adapter import (
    DEFAULT_STOCK_METHOD,
    ERPNextStockAdapter,
    parse_source_b_row,
    unwrap_method_rows,
)
from connectors.erpnext.erpnext_client import (
    ERPNextApiError,
    ERPNextAuthenticationError,
    ERPNextClient,
    ERPNextConfig,
    ERPNextNotFoundError,
    ERPNextRateLimitError,
    RetryConfig,
)

__all__ = [
    "DEFAULT_STOCK_METHOD",
    "ERPNextStockAdapter",
    "parse_source_b_row",
    "unwrap_method_rows",
    "ERPNextApiError",
    "ERPNextAuthenticationError",
    "ERPNextClient",
    "ERPNextConfig",
    "ERPNextNotFoundError",
    "ERPNextRateLimitError",
    "RetryConfig",
]
