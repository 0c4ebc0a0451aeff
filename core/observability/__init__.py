"""
Observability Module for the Reconciliation Service

Provides:
- Structured logging with correlation IDs
- Metrics collection (source fetches, report runs, processing times)
"""

from core.observability.metrics import (
    MetricsCollector,
    get_metrics,
    record_fetch_started,
    record_fetch_completed,
    record_fetch_failed,
    record_report_completed,
    record_report_failed,
    record_processing_time,
)

from core.observability.logging import (
    configure_logging,
    get_logger,
    CorrelationContext,
    with_correlation,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "get_metrics",
    "record_fetch_started",
    "record_fetch_completed",
    "record_fetch_failed",
    "record_report_completed",
    "record_report_failed",
    "record_processing_time",
    # Logging
    "configure_logging",
    "get_logger",
    "CorrelationContext",
    "with_correlation",
]
