"""Report endpoints.

- GET /reports/replenishment-combined  merged legacy + ERP report
- GET /reports/locations               configured location mapping
- GET /reports/sources/{source}        raw rows of one source
"""

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, HTTPException, Path, Query, Request, Response
from fastapi.responses import JSONResponse

from core.config import HARD_MAX_LIMIT
from core.observability.logging import get_logger
from models.api_responses import (
    CombinedReportResponse,
    ErrorResponse,
    LocationSummaryResponse,
    MergedItemModel,
    ReportMetadata,
    SourceRowsResponse,
)
from reconciliation.engine import ReportRequest, fetch_source_rows
from reconciliation.exceptions import BothSourcesFailedError, SourceFetchError
from reconciliation.filters import paginate, total_pages
from reconciliation.models import SourceFilter


router = APIRouter()
logger = get_logger(__name__)

NO_STORE = {"Cache-Control": "no-store, must-revalidate"}


def _resolve_limit(request: Request, limit: Optional[int]) -> int:
    settings = request.app.state.settings
    if limit is None:
        return settings.report_default_limit
    if limit > settings.report_max_limit:
        raise HTTPException(
            status_code=422,
            detail=f"limit must be <= {settings.report_max_limit}",
        )
    return limit


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip()


@router.get(
    "/replenishment-combined",
    response_model=CombinedReportResponse,
    responses={502: {"model": ErrorResponse}},
)
async def get_combined_replenishment(
    request: Request,
    response: Response,
    search: Optional[str] = Query(None, description="Substring of item code or name"),
    location: Optional[str] = Query(None, description="Location code (either system) or name substring"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=HARD_MAX_LIMIT),
):
    """Combined replenishment report across the legacy system and the ERP.

    Both sources are fetched concurrently. If one fails the report is built
    from the other and its locations are labeled A_ONLY / B_ONLY. If both
    fail the endpoint answers 502.
    """
    engine = request.app.state.engine
    report_request = ReportRequest(
        search=_clean(search),
        location=_clean(location),
        page=page,
        limit=_resolve_limit(request, limit),
    )

    try:
        report = await engine.run(report_request)
    except BothSourcesFailedError as e:
        error = ErrorResponse(error=str(e), details=e.errors)
        return JSONResponse(status_code=502, content=error.model_dump(), headers=NO_STORE)

    response.headers.update(NO_STORE)
    return CombinedReportResponse(
        data=[MergedItemModel.model_validate(item.to_dict()) for item in report.items],
        total=report.total,
        page=report.page,
        limit=report.limit,
        total_pages=report.total_pages,
        metadata=ReportMetadata(**report.metadata),
    )


@router.get("/locations", response_model=LocationSummaryResponse)
async def get_locations(request: Request) -> LocationSummaryResponse:
    """Location mapping tables in effect."""
    return LocationSummaryResponse(**request.app.state.mapper.summary())


@router.get(
    "/sources/{source}",
    response_model=SourceRowsResponse,
    responses={502: {"model": ErrorResponse}},
)
async def get_source_rows(
    request: Request,
    response: Response,
    source: str = Path(..., pattern="^(a|b)$", description="a = legacy system, b = ERP"),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=HARD_MAX_LIMIT),
):
    """Raw rows of one source, for checking an adapter in isolation."""
    engine = request.app.state.engine
    adapter = engine.source_a if source == "a" else engine.source_b
    limit = _resolve_limit(request, limit)
    term = _clean(search)

    try:
        rows = await fetch_source_rows(adapter, SourceFilter(search=term), engine.fetch_timeout)
    except SourceFetchError as e:
        error = ErrorResponse(error=str(e), details={e.source: e.message})
        return JSONResponse(status_code=502, content=error.model_dump(), headers=NO_STORE)

    if term:
        needle = term.lower()
        rows = [
            row for row in rows
            if needle in row.item_code.lower() or needle in (row.item_name or "").lower()
        ]

    page_rows, total = paginate(rows, page, limit)
    response.headers.update(NO_STORE)
    return SourceRowsResponse(
        source=adapter.name,
        data=[asdict(row) for row in page_rows],
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages(total, limit),
    )
