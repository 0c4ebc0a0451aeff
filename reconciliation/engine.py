"""Reconciliation engine for the combined replenishment report.

Exposes:
- fetch_source_rows(adapter, source_filter, timeout) -> rows
- ReconciliationEngine(...).run(request) -> CombinedReport

One request triggers two concurrent, independently bounded fetches. When one
source fails the report degrades to single-source mode (its locations show up
as A_ONLY / B_ONLY); only when both fail is BothSourcesFailedError raised.
Everything after the fetch is synchronous and deterministic.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from core.observability.logging import (
    get_logger,
    log_fetch_complete,
    log_fetch_error,
    log_fetch_start,
    with_correlation,
)
from core.observability.metrics import (
    record_fetch_completed,
    record_fetch_failed,
    record_fetch_started,
    record_processing_time,
    record_report_completed,
    record_report_failed,
)
from reconciliation.calculations import finalize_item_totals, finalize_location
from reconciliation.classifier import classify_item
from reconciliation.exceptions import BothSourcesFailedError, SourceFetchError
from reconciliation.filters import filter_items, paginate, total_pages
from reconciliation.locations import LocationMapper
from reconciliation.merge import MergeEngine, MergeResult
from reconciliation.models import MergedItemRow, SourceFilter, SourceName


logger = get_logger(__name__)

REPORT_NAME = "replenishment-combined"
DEFAULT_FETCH_TIMEOUT_SECONDS = 60.0


# =============================================================================
# Request / Response Structures
# =============================================================================

@dataclass(frozen=True)
class ReportRequest:
    """Query parameters of one combined report request."""
    search: Optional[str] = None
    location: Optional[str] = None
    page: int = 1
    limit: int = 100


@dataclass
class SourceOutcome:
    """What one source produced for a request."""
    source: str
    rows: List[Any] = field(default_factory=list)
    error: Optional[SourceFetchError] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def status(self) -> str:
        if self.error is None:
            return "ok"
        return "timeout" if self.error.timed_out else "failed"


@dataclass
class CombinedReport:
    """One page of the combined report plus request-level metadata."""
    items: List[MergedItemRow]
    total: int
    page: int
    limit: int
    total_pages: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        return any(status != "ok" for status in self.metadata.get("source_status", {}).values())


# =============================================================================
# Fetching
# =============================================================================

async def fetch_source_rows(adapter, source_filter: SourceFilter, timeout: float) -> List[Any]:
    """Fetch one source, bounded by a timeout.

    Args:
        adapter: SourceAdapter to read from
        source_filter: Filter hint passed to the adapter
        timeout: Seconds before the fetch is abandoned

    Returns:
        The adapter's rows

    Raises:
        SourceFetchError: The adapter failed, raised unexpectedly or timed out
    """
    source = adapter.name
    started = time.perf_counter()

    with with_correlation(source=source):
        record_fetch_started(source)
        log_fetch_start(source, search=source_filter.search)

        try:
            rows = await asyncio.wait_for(adapter.fetch(source_filter), timeout=timeout)
        except asyncio.TimeoutError:
            error = SourceFetchError(source, f"fetch timed out after {timeout:g}s", timed_out=True)
            record_fetch_failed(source, timed_out=True)
            log_fetch_error(source, error.message, timed_out=True)
            raise error
        except SourceFetchError as e:
            record_fetch_failed(source, timed_out=e.timed_out)
            log_fetch_error(source, e.message, timed_out=e.timed_out)
            raise
        except Exception as e:
            record_fetch_failed(source)
            log_fetch_error(source, f"{type(e).__name__}: {e}")
            raise SourceFetchError(source, f"{type(e).__name__}: {e}") from e

        duration_ms = (time.perf_counter() - started) * 1000
        record_fetch_completed(source, rows=len(rows), duration_ms=duration_ms)
        log_fetch_complete(source, duration_ms=round(duration_ms, 1), rows=len(rows))
        return list(rows)


# =============================================================================
# Engine
# =============================================================================

class ReconciliationEngine:
    """Pull-compute-respond orchestration of the two inventory sources.

    The engine holds no per-request state: every run allocates its own merge
    map, so concurrent requests can share one instance.

    Usage:
        engine = ReconciliationEngine(legacy_adapter, erp_adapter, LocationMapper())
        report = await engine.run(ReportRequest(search="BOLT", page=1, limit=50))
    """

    def __init__(
        self,
        source_a,
        source_b,
        mapper: Optional[LocationMapper] = None,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
    ):
        self.source_a = source_a
        self.source_b = source_b
        self.mapper = mapper or LocationMapper()
        self.fetch_timeout = fetch_timeout
        self.merge_engine = MergeEngine(self.mapper)

    async def run(self, request: ReportRequest, request_id: Optional[str] = None) -> CombinedReport:
        """Compute one page of the combined report.

        Raises:
            BothSourcesFailedError: Neither source returned data
            ValueError: page or limit out of range
        """
        if request.page < 1:
            raise ValueError(f"page must be >= 1, got {request.page}")
        if request.limit < 1:
            raise ValueError(f"limit must be > 0, got {request.limit}")

        request_id = request_id or f"req-{uuid.uuid4().hex[:12]}"
        started = time.perf_counter()

        with with_correlation(request_id=request_id, report=REPORT_NAME):
            search = request.search.strip() if request.search and request.search.strip() else None
            outcome_a, outcome_b = await self._fetch_both(SourceFilter(search=search))

            if not outcome_a.ok and not outcome_b.ok:
                record_report_failed(REPORT_NAME)
                errors = {
                    outcome_a.source: outcome_a.error.message,
                    outcome_b.source: outcome_b.error.message,
                }
                logger.error("Both inventory sources failed", extra_fields={"errors": errors})
                raise BothSourcesFailedError(errors)

            for outcome in (outcome_a, outcome_b):
                if not outcome.ok:
                    logger.warning(
                        f"Degrading to single-source report: {outcome.source} unavailable",
                        extra_fields={"error": outcome.error.message, "status": outcome.status},
                    )

            compute_started = time.perf_counter()
            merged = self.reconcile(outcome_a.rows, outcome_b.rows)
            filtered = filter_items(merged.items, request.search, request.location)
            page_items, total = paginate(filtered, request.page, request.limit)
            record_processing_time("merge", (time.perf_counter() - compute_started) * 1000)

            engine_time_ms = round((time.perf_counter() - started) * 1000, 1)
            report = CombinedReport(
                items=page_items,
                total=total,
                page=request.page,
                limit=request.limit,
                total_pages=total_pages(total, request.limit),
                metadata=self._metadata(merged, outcome_a, outcome_b, engine_time_ms),
            )

            record_report_completed(REPORT_NAME, degraded=report.degraded, duration_ms=engine_time_ms)
            logger.info(
                "Combined report computed",
                extra_fields={
                    "items_merged": len(merged.items),
                    "items_matched": total,
                    "page": request.page,
                    "engine_time_ms": engine_time_ms,
                },
            )
            return report

    def reconcile(self, rows_a: Sequence[Any], rows_b: Sequence[Any]) -> MergeResult:
        """Merge, compute metrics and classify. No filtering or paging."""
        merged = self.merge_engine.merge(rows_a, rows_b)
        for item in merged.items:
            for location in item.locations:
                finalize_location(location, self.mapper)
            finalize_item_totals(item)
            classify_item(item)
        return merged

    async def _fetch_both(self, source_filter: SourceFilter):
        names = (SourceName.A.value, SourceName.B.value)
        adapters = (self.source_a, self.source_b)

        started = time.perf_counter()
        results = await asyncio.gather(
            *(fetch_source_rows(adapter, source_filter, self.fetch_timeout) for adapter in adapters),
            return_exceptions=True,
        )
        duration_ms = (time.perf_counter() - started) * 1000

        outcomes = []
        for name, result in zip(names, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, SourceFetchError):
                outcomes.append(SourceOutcome(source=name, error=result, duration_ms=duration_ms))
            elif isinstance(result, BaseException):
                error = SourceFetchError(name, f"{type(result).__name__}: {result}")
                outcomes.append(SourceOutcome(source=name, error=error, duration_ms=duration_ms))
            else:
                outcomes.append(SourceOutcome(source=name, rows=result, duration_ms=duration_ms))
        return outcomes[0], outcomes[1]

    @staticmethod
    def _metadata(
        merged: MergeResult,
        outcome_a: SourceOutcome,
        outcome_b: SourceOutcome,
        engine_time_ms: float,
    ) -> Dict[str, Any]:
        return {
            "source_a_location_count": len(merged.source_a_codes),
            "source_b_location_count": len(merged.source_b_codes),
            "mapped_location_count": len(merged.mapped_codes),
            "unmapped_location_codes": list(merged.unmapped_codes),
            "excluded_row_count": merged.excluded_row_count,
            "source_status": {
                outcome_a.source: outcome_a.status,
                outcome_b.source: outcome_b.status,
            },
            "source_errors": {
                outcome.source: outcome.error.message
                for outcome in (outcome_a, outcome_b)
                if outcome.error is not None
            },
            "engine_time_ms": engine_time_ms,
        }
