"""Flow, days-of-inventory and replenishment calculations.

Formulas:
- avg_flow      = (sales_m1..m3 + secondary_m1..m3) / 3
- replenishment = stock - avg_flow * buffer   (negative = understocked)
- doi           = stock / avg_flow, undefined (None) when avg_flow == 0
- percent_diff  = (x - y) / avg(x, y) * 100, 0 when avg(x, y) == 0

No calculation raises on a zero denominator.
"""

from typing import Iterable, Optional

from reconciliation.locations import LocationMapper
from reconciliation.models import Delta, MergedItemRow, MergedLocationRow, SourceMetrics


FLOW_MONTHS = 3


def average_flow(flows: Iterable[float]) -> float:
    """Average monthly flow over the trailing three months.

    The six monthly figures (three outbound, three secondary) are summed and
    divided by the number of months. Net-negative ledger corrections clamp
    to zero.
    """
    total = sum(flows)
    return max(total / FLOW_MONTHS, 0.0)


def replenishment(stock: float, avg_flow: float, buffer: float) -> float:
    """Stock left over after covering avg_flow * buffer."""
    return stock - (avg_flow * buffer)


def days_of_inventory(stock: float, avg_flow: float) -> Optional[float]:
    """Stock expressed in months of average flow; None without flow."""
    if avg_flow > 0:
        return stock / avg_flow
    return None


def percent_diff(x: float, y: float) -> float:
    """Signed difference of x against the mean of x and y, in percent."""
    average = (x + y) / 2
    if average == 0:
        return 0.0
    return (x - y) / average * 100


def resolve_source_b_buffer(row: MergedLocationRow, mapper: LocationMapper) -> float:
    """Buffer for the ERP side of a merged location.

    Precedence: explicit Source-B buffer table, then the paired Source-A
    buffer for the same location, then the configured Source-B default.
    """
    explicit = mapper.source_b_buffer_for(row.location_code)
    if explicit is not None:
        return explicit
    if row.source_a is not None:
        return row.source_a.buffer
    return mapper.config.default_buffer_b


def finalize_source_a(metrics: SourceMetrics) -> None:
    """Derive A-side DOI from the folded totals.

    avg_flow and replenishment are accumulated per Source-A bucket during
    the merge (each bucket averages its own flows and applies its own
    buffer), so only DOI is left to compute.
    """
    metrics.doi = days_of_inventory(metrics.stock, metrics.avg_flow)


def finalize_source_b(metrics: SourceMetrics, buffer: float) -> None:
    metrics.buffer = buffer
    metrics.replenishment = replenishment(metrics.stock, metrics.avg_flow, buffer)
    metrics.doi = days_of_inventory(metrics.stock, metrics.avg_flow)


def compute_delta(source_a: Optional[SourceMetrics], source_b: Optional[SourceMetrics]) -> Delta:
    """Source A minus Source B; an absent side counts as zero."""
    a = source_a or SourceMetrics()
    b = source_b or SourceMetrics()

    doi_delta = None
    if source_a is not None and source_b is not None:
        if a.doi is not None and b.doi is not None:
            doi_delta = a.doi - b.doi

    return Delta(
        stock=a.stock - b.stock,
        stock_pct=percent_diff(a.stock, b.stock),
        replenishment=a.replenishment - b.replenishment,
        replenishment_pct=percent_diff(a.replenishment, b.replenishment),
        avg_flow=a.avg_flow - b.avg_flow,
        doi=doi_delta,
    )


def finalize_location(row: MergedLocationRow, mapper: LocationMapper) -> None:
    """Compute both sides' derived metrics and the delta block in place."""
    if row.source_a is not None:
        finalize_source_a(row.source_a)
    if row.source_b is not None:
        finalize_source_b(row.source_b, resolve_source_b_buffer(row, mapper))
    row.delta = compute_delta(row.source_a, row.source_b)


def finalize_item_totals(item: MergedItemRow) -> None:
    """Sum per-location stock and replenishment into item-level totals."""
    item.total_stock_a = sum(loc.source_a.stock for loc in item.locations if loc.source_a)
    item.total_stock_b = sum(loc.source_b.stock for loc in item.locations if loc.source_b)
    item.total_replen_a = sum(loc.source_a.replenishment for loc in item.locations if loc.source_a)
    item.total_replen_b = sum(loc.source_b.replenishment for loc in item.locations if loc.source_b)
