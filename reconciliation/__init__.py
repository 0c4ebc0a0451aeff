"""Combined replenishment reconciliation between the legacy system and the ERP.

Pipeline: fetch both sources -> merge by (item, ERP location) -> metrics ->
discrepancy classification -> filter -> paginate.
"""

from reconciliation.engine import (
    CombinedReport,
    ReconciliationEngine,
    ReportRequest,
    fetch_source_rows,
)
from reconciliation.exceptions import (
    BothSourcesFailedError,
    MappingGapWarning,
    ReconciliationError,
    SourceFetchError,
)
from reconciliation.locations import (
    DEFAULT_LOCATION_CONFIG,
    NOT_MAPPED,
    LocationConfig,
    LocationMapper,
    load_location_config,
)
from reconciliation.models import (
    DiscrepancyLevel,
    MergedItemRow,
    MergedLocationRow,
    SourceARow,
    SourceBRow,
    SourceFilter,
    SourceName,
)

__all__ = [
    # Engine
    "CombinedReport",
    "ReconciliationEngine",
    "ReportRequest",
    "fetch_source_rows",
    # Errors
    "BothSourcesFailedError",
    "MappingGapWarning",
    "ReconciliationError",
    "SourceFetchError",
    # Locations
    "DEFAULT_LOCATION_CONFIG",
    "NOT_MAPPED",
    "LocationConfig",
    "LocationMapper",
    "load_location_config",
    # Models
    "DiscrepancyLevel",
    "MergedItemRow",
    "MergedLocationRow",
    "SourceARow",
    "SourceBRow",
    "SourceFilter",
    "SourceName",
]
