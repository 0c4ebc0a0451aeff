"""Models Package.

API response models for the combined replenishment report.
Engine-side data structures live in reconciliation.models.
"""

from models.api_responses import (
    CombinedReportResponse,
    DeltaModel,
    ErrorResponse,
    LocationSummaryResponse,
    MergedItemModel,
    MergedLocationModel,
    ReportMetadata,
    SourceMetricsModel,
    SourceRowsResponse,
)

__all__ = [
    "CombinedReportResponse",
    "DeltaModel",
    "ErrorResponse",
    "LocationSummaryResponse",
    "MergedItemModel",
    "MergedLocationModel",
    "ReportMetadata",
    "SourceMetricsModel",
    "SourceRowsResponse",
]
