"""
API Response Models for the Combined Replenishment Report.

These Pydantic models define the data contracts of the report endpoints.
They are built from the engine's dataclasses and drive OpenAPI generation.

Hierarchy:
- CombinedReportResponse: One page of merged items plus metadata
  - MergedItemModel -> MergedLocationModel -> SourceMetricsModel / DeltaModel
- LocationSummaryResponse: Configured location mapping tables
- SourceRowsResponse: Raw rows of a single source
- ErrorResponse: Failure envelope
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict

from reconciliation.models import DiscrepancyLevel


# =============================================================================
# BASE MODELS
# =============================================================================

class ResponseBase(BaseModel):
    """Base class for all API responses."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


def utc_timestamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


# =============================================================================
# MERGED REPORT MODELS
# =============================================================================

class SourceMetricsModel(ResponseBase):
    """Stock and flow figures of one source at one location."""
    stock: float
    sales_m1: float
    sales_m2: float
    sales_m3: float
    secondary_m1: float = Field(..., description="Other movement (Source A) or material issue (Source B)")
    secondary_m2: float
    secondary_m3: float
    avg_flow: float = Field(..., description="Average monthly flow over the trailing three months")
    buffer: float
    replenishment: float = Field(..., description="stock - avg_flow * buffer; negative means understocked")
    doi: Optional[float] = Field(None, description="Stock in months of average flow; null without flow")


class DeltaModel(ResponseBase):
    """Source A minus Source B."""
    stock: float
    stock_pct: float
    replenishment: float
    replenishment_pct: float
    avg_flow: float
    doi: Optional[float] = None


class MergedLocationModel(ResponseBase):
    """One ERP location of an item, with both sides."""
    location_code: str
    location_name: str
    source_a_codes: List[str] = Field(default_factory=list, description="Legacy codes folded into this location")
    source_a: Optional[SourceMetricsModel] = None
    source_b: Optional[SourceMetricsModel] = None
    delta: DeltaModel
    discrepancy_level: DiscrepancyLevel
    has_a: bool
    has_b: bool
    is_mapped: bool = True
    source_b_location_ids: List[str] = Field(default_factory=list)


class MergedItemModel(ResponseBase):
    """One item across all its locations."""
    item_code: str
    item_name: str
    reference_cost: Optional[float] = None
    company: Optional[str] = None
    locations: List[MergedLocationModel]
    total_stock_a: float
    total_stock_b: float
    total_replen_a: float
    total_replen_b: float
    overall_discrepancy: DiscrepancyLevel


class ReportMetadata(ResponseBase):
    """Request-level facts about the computation."""
    source_a_location_count: int = Field(..., description="Distinct legacy location codes observed")
    source_b_location_count: int = Field(..., description="Distinct ERP location codes observed")
    mapped_location_count: int = Field(..., description="Observed legacy codes with an ERP mapping")
    unmapped_location_codes: List[str] = Field(default_factory=list)
    excluded_row_count: int = 0
    source_status: Dict[str, str] = Field(default_factory=dict)
    source_errors: Dict[str, str] = Field(default_factory=dict)
    engine_time_ms: float


class CombinedReportResponse(ResponseBase):
    """One page of the combined replenishment report."""
    success: bool = True
    data: List[MergedItemModel]
    total: int = Field(..., description="Items matching the filters before pagination")
    page: int
    limit: int
    total_pages: int
    timestamp: str = Field(default_factory=utc_timestamp)
    metadata: ReportMetadata


class ErrorResponse(ResponseBase):
    """Failure envelope."""
    success: bool = False
    error: str
    details: Optional[Dict[str, str]] = None
    timestamp: str = Field(default_factory=utc_timestamp)


# =============================================================================
# LOCATION AND SOURCE MODELS
# =============================================================================

class LocationSummaryResponse(ResponseBase):
    """Configured mapping between legacy and ERP location codes."""
    source_a_location_count: int
    source_b_location_count: int
    mapped_location_count: int
    excluded_codes: List[str]
    groups: Dict[str, List[str]] = Field(..., description="ERP code -> legacy codes folded into it")
    consolidations: Dict[str, List[str]] = Field(..., description="Groups with more than one legacy code")
    display_names: Dict[str, str]


class SourceRowsResponse(ResponseBase):
    """Raw rows of one source, paginated."""
    success: bool = True
    source: str
    data: List[Dict[str, Any]]
    total: int
    page: int
    limit: int
    total_pages: int
    timestamp: str = Field(default_factory=utc_timestamp)
