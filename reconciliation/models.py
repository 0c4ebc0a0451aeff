"""Data structures for the combined replenishment report.

Two tagged row types describe what each source produces; the merged
structures describe what the report returns. Everything here is created and
owned by a single request and discarded with the response.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# Enums
# =============================================================================

class DiscrepancyLevel(str, Enum):
    """How far the two sources diverge for one item/location."""
    OK = "OK"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"
    A_ONLY = "A_ONLY"    # Only the legacy system reported this location
    B_ONLY = "B_ONLY"    # Only the ERP reported this location


class SourceName(str, Enum):
    """Identifiers of the two reconciled inventory systems."""
    A = "source_a"
    B = "source_b"


# =============================================================================
# Source Rows
# =============================================================================

@dataclass(frozen=True)
class SourceFilter:
    """Filter handed to the adapters.

    Adapters may use it to narrow the backing query; the engine always
    re-applies the filter after merging.
    """
    search: Optional[str] = None


@dataclass(frozen=True)
class SourceARow:
    """One (item, location) row from the legacy inventory system."""
    item_code: str
    item_name: str
    location_code: str
    stock: float = 0.0
    sales_m1: float = 0.0
    sales_m2: float = 0.0
    sales_m3: float = 0.0
    other_m1: float = 0.0
    other_m2: float = 0.0
    other_m3: float = 0.0
    reference_cost: Optional[float] = None
    buffer: Optional[float] = None  # Row-level override of the configured buffer


@dataclass(frozen=True)
class SourceBRow:
    """One (item, warehouse) row from the ERP, tagged with its branch code."""
    item_code: str
    item_name: str
    location_code: str             # Branch code, used as the merge key
    location_id: str               # Warehouse identifier
    location_name: Optional[str] = None
    company: Optional[str] = None
    current_stock: float = 0.0
    delivery_qty_m1: float = 0.0
    delivery_qty_m2: float = 0.0
    delivery_qty_m3: float = 0.0
    issue_qty_m1: float = 0.0
    issue_qty_m2: float = 0.0
    issue_qty_m3: float = 0.0


# =============================================================================
# Merged Structures
# =============================================================================

@dataclass
class SourceMetrics:
    """Stock and flow figures for one source at one merged location.

    secondary_m1..m3 holds "other movement" for Source A and internal
    issue/consumption for Source B. m3 is the oldest month.
    """
    stock: float = 0.0
    sales_m1: float = 0.0
    sales_m2: float = 0.0
    sales_m3: float = 0.0
    secondary_m1: float = 0.0
    secondary_m2: float = 0.0
    secondary_m3: float = 0.0
    avg_flow: float = 0.0
    buffer: float = 1.0
    replenishment: float = 0.0
    doi: Optional[float] = None

    def flows(self) -> List[float]:
        return [
            self.sales_m1, self.sales_m2, self.sales_m3,
            self.secondary_m1, self.secondary_m2, self.secondary_m3,
        ]


@dataclass
class Delta:
    """Source A minus Source B for one merged location."""
    stock: float = 0.0
    stock_pct: float = 0.0
    replenishment: float = 0.0
    replenishment_pct: float = 0.0
    avg_flow: float = 0.0
    doi: Optional[float] = None


@dataclass
class MergedLocationRow:
    """One (item, Source-B location) pair with both sides' metrics."""
    location_code: str
    location_name: str
    source_a_codes: List[str] = field(default_factory=list)
    source_a: Optional[SourceMetrics] = None
    source_b: Optional[SourceMetrics] = None
    delta: Delta = field(default_factory=Delta)
    discrepancy_level: DiscrepancyLevel = DiscrepancyLevel.OK
    has_a: bool = False
    has_b: bool = False
    is_mapped: bool = True
    source_b_location_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["discrepancy_level"] = self.discrepancy_level.value
        return data


@dataclass
class MergedItemRow:
    """All merged locations of one item plus item-level totals."""
    item_code: str
    item_name: str
    reference_cost: Optional[float] = None
    company: Optional[str] = None
    locations: List[MergedLocationRow] = field(default_factory=list)
    total_stock_a: float = 0.0
    total_stock_b: float = 0.0
    total_replen_a: float = 0.0
    total_replen_b: float = 0.0
    overall_discrepancy: DiscrepancyLevel = DiscrepancyLevel.OK

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["overall_discrepancy"] = self.overall_discrepancy.value
        data["locations"] = [loc.to_dict() for loc in self.locations]
        return data
