"""Wiring of the report engine from settings.

A source whose settings are missing is replaced by an adapter that always
fails, so the service starts and serves single-source reports.
"""

from typing import Tuple

from connectors.erpnext import ERPNextConfig, ERPNextStockAdapter, RetryConfig
from connectors.legacy import LegacyDatabaseAdapter
from connectors.source_base import SourceAdapter, UnconfiguredSourceAdapter
from core.config import Settings
from core.observability.logging import get_logger
from reconciliation.engine import ReconciliationEngine
from reconciliation.locations import (
    DEFAULT_LOCATION_CONFIG,
    LocationMapper,
    load_location_config,
)
from reconciliation.models import SourceName


logger = get_logger(__name__)


def build_mapper(settings: Settings) -> LocationMapper:
    """Location mapper from LOCATION_CONFIG_PATH, else the built-in tables."""
    if settings.location_config_path:
        logger.info(
            "Loading location tables",
            extra_fields={"path": settings.location_config_path},
        )
        return LocationMapper(load_location_config(settings.location_config_path))
    return LocationMapper(DEFAULT_LOCATION_CONFIG)


def build_source_a(settings: Settings) -> SourceAdapter:
    if not settings.legacy_configured:
        logger.warning("Legacy database not configured; Source A will report as failed")
        return UnconfiguredSourceAdapter(SourceName.A.value, "LEGACY_DB_URL and LEGACY_QUERY_PATH are required")
    return LegacyDatabaseAdapter(
        db_url=settings.legacy_db_url,
        query_path=settings.legacy_query_path,
        search_pushdown=settings.legacy_search_pushdown,
    )


def build_source_b(settings: Settings) -> SourceAdapter:
    if not settings.erp_configured:
        logger.warning("ERP not configured; Source B will report as failed")
        return UnconfiguredSourceAdapter(SourceName.B.value, "ERP_BASE_URL is required")
    retry_config = RetryConfig()
    config = ERPNextConfig(
        base_url=settings.erp_base_url,
        api_key=settings.erp_api_key,
        api_secret=settings.erp_api_secret,
        retry_config=retry_config,
        # per-attempt share of the fetch budget
        timeout_seconds=settings.source_fetch_timeout_seconds / (retry_config.max_retries + 1),
    )
    return ERPNextStockAdapter(
        config=config,
        method=settings.erp_stock_method,
        search_pushdown=settings.erp_search_pushdown,
    )


def build_engine(settings: Settings) -> Tuple[ReconciliationEngine, LocationMapper]:
    """Build the engine with both adapters and the location mapper."""
    mapper = build_mapper(settings)
    engine = ReconciliationEngine(
        source_a=build_source_a(settings),
        source_b=build_source_b(settings),
        mapper=mapper,
        fetch_timeout=settings.source_fetch_timeout_seconds,
    )
    return engine, mapper
