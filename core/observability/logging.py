"""
Structured Logging with Correlation IDs

Every record emitted while a report request is running carries:
- request_id: one combined report request
- report:     which report is being computed
- source:     which inventory source (source_a / source_b) the line belongs to
- item_code:  a specific item, when one is being processed
- stage:      fetch / merge / classify ...

Usage:
    from core.observability.logging import get_logger, with_correlation

    logger = get_logger(__name__)

    with with_correlation(request_id="req-123", report="replenishment-combined"):
        logger.info("Fetching sources", extra_fields={"timeout_s": 60})
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, asdict, replace
from datetime import datetime
from typing import Any, Dict, Optional, TextIO


# =============================================================================
# Correlation Context
# =============================================================================

@dataclass(frozen=True)
class CorrelationContext:
    """Identifiers shared by all log lines of one request."""
    request_id: Optional[str] = None
    report: Optional[str] = None
    source: Optional[str] = None
    item_code: Optional[str] = None
    stage: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs) -> "CorrelationContext":
        """Copy with the given non-None values applied."""
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})


_EMPTY_CONTEXT = CorrelationContext()
_current: ContextVar[CorrelationContext] = ContextVar("correlation", default=_EMPTY_CONTEXT)


def get_correlation_context() -> CorrelationContext:
    return _current.get()


def set_correlation_context(ctx: CorrelationContext) -> None:
    _current.set(ctx)


@contextmanager
def with_correlation(**kwargs):
    """Layer correlation IDs on top of the current context.

    Each asyncio task works on a copy of the context, so concurrent source
    fetches can set different `source` values without interfering.
    """
    token = _current.set(_current.get().merge(**kwargs))
    try:
        yield _current.get()
    finally:
        _current.reset(token)


class CorrelationFilter(logging.Filter):
    """Attaches the current correlation context to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation = get_correlation_context()
        if not hasattr(record, "extra_fields"):
            record.extra_fields = {}
        return True


# =============================================================================
# Formatters
# =============================================================================

def _utc_now() -> datetime:
    return datetime.utcnow()


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line:

    {"timestamp": "2025-12-01T12:00:00.000Z", "level": "INFO",
     "logger": "reconciliation.engine", "message": "Combined report computed",
     "request_id": "req-1f0c", "report": "replenishment-combined",
     "engine_time_ms": 1500}
    """

    def format(self, record: logging.LogRecord) -> str:
        ctx = getattr(record, "correlation", None) or get_correlation_context()
        payload: Dict[str, Any] = {
            "timestamp": _utc_now().isoformat(timespec="milliseconds") + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **ctx.to_dict(),
            **getattr(record, "extra_fields", {}),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Console format:

    2025-12-01 12:00:00 [INFO ] reconciliation.engine [req-1f0c/source_a]: Fetch started
    """

    def _correlation(self, ctx: CorrelationContext) -> str:
        parts = []
        if ctx.request_id:
            parts.append(ctx.request_id[:12])
        if ctx.source:
            parts.append(ctx.source)
        if ctx.item_code:
            parts.append(f"item:{ctx.item_code}")
        return "/".join(parts) or "-"

    def format(self, record: logging.LogRecord) -> str:
        ctx = getattr(record, "correlation", None) or get_correlation_context()
        line = "{ts} [{level:5}] {name} [{corr}]: {msg}".format(
            ts=_utc_now().strftime("%Y-%m-%d %H:%M:%S"),
            level=record.levelname,
            name=record.name,
            corr=self._correlation(ctx),
            msg=record.getMessage(),
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


# =============================================================================
# Logger
# =============================================================================

class CorrelatedLogger(logging.LoggerAdapter):
    """
    Logger adapter accepting per-call structured fields:

        logger.warning("Skipped rows", extra_fields={"skipped": 3})
    """

    def process(self, msg, kwargs):
        extra_fields = kwargs.pop("extra_fields", None) or {}
        extra = dict(kwargs.get("extra") or {})
        extra["extra_fields"] = extra_fields
        kwargs["extra"] = extra
        return msg, kwargs


_loggers: Dict[str, CorrelatedLogger] = {}
_handler: Optional[logging.Handler] = None

SERVICE_LOGGERS = ("api", "core", "connectors", "reconciliation")
NOISY_LOGGERS = ("aiohttp", "sqlalchemy.engine", "uvicorn.access")


def configure_logging(
    level: int = logging.INFO,
    json_format: bool = False,
    stream: Optional[TextIO] = None,
) -> logging.Handler:
    """
    Install the service log handler on the root logger.

    Calling again replaces the previous handler, so settings loaded at
    startup win over the defaults applied on first import.

    Args:
        level: Logging level for the service loggers
        json_format: JSON lines instead of the console format
        stream: Output stream (stdout by default)
    """
    global _handler

    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationFilter())
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root.addHandler(handler)
    root.setLevel(level)
    for name in SERVICE_LOGGERS:
        logging.getLogger(name).setLevel(level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    _handler = handler
    return handler


def get_logger(name: str) -> CorrelatedLogger:
    """Correlated logger for a module (typically __name__)."""
    if _handler is None:
        configure_logging()
    logger = _loggers.get(name)
    if logger is None:
        logger = _loggers[name] = CorrelatedLogger(logging.getLogger(name), {})
    return logger


# =============================================================================
# Source Fetch Helpers
# =============================================================================

def _source_logger(source: str) -> CorrelatedLogger:
    return get_logger(f"connectors.{source}")


def log_fetch_start(source: str, **fields):
    _source_logger(source).info(f"Fetch started: {source}", extra_fields=fields)


def log_fetch_complete(source: str, duration_ms: float = None, **fields):
    if duration_ms is not None:
        fields["duration_ms"] = duration_ms
    _source_logger(source).info(f"Fetch completed: {source}", extra_fields=fields)


def log_fetch_error(source: str, error: str, **fields):
    _source_logger(source).error(f"Fetch failed: {source} - {error}", extra_fields=fields)
