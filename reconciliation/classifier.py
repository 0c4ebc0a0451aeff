"""Discrepancy classification per merged location and per item."""

from typing import Iterable

from reconciliation.models import DiscrepancyLevel, MergedItemRow, MergedLocationRow


WARNING_THRESHOLD_PCT = 10.0
CRITICAL_THRESHOLD_PCT = 30.0


def classify_location(row: MergedLocationRow) -> DiscrepancyLevel:
    """Label one merged location.

    Thresholds apply to |stock_delta_pct| and are inclusive at the lower
    bound: exactly 10% is WARNING, exactly 30% is CRITICAL.
    """
    if row.has_b and not row.has_a:
        return DiscrepancyLevel.B_ONLY
    if row.has_a and not row.has_b:
        return DiscrepancyLevel.A_ONLY
    if not row.has_a and not row.has_b:
        # Rows only exist because a source reported them
        return DiscrepancyLevel.OK

    pct = abs(row.delta.stock_pct)
    if pct < WARNING_THRESHOLD_PCT:
        return DiscrepancyLevel.OK
    if pct < CRITICAL_THRESHOLD_PCT:
        return DiscrepancyLevel.WARNING
    return DiscrepancyLevel.CRITICAL


def rollup(levels: Iterable[DiscrepancyLevel]) -> DiscrepancyLevel:
    """Worst severity among the locations; *_ONLY labels never escalate."""
    overall = DiscrepancyLevel.OK
    for level in levels:
        if level == DiscrepancyLevel.CRITICAL:
            return DiscrepancyLevel.CRITICAL
        if level == DiscrepancyLevel.WARNING:
            overall = DiscrepancyLevel.WARNING
    return overall


def classify_item(item: MergedItemRow) -> DiscrepancyLevel:
    """Classify every location of an item and set its overall level."""
    for location in item.locations:
        location.discrepancy_level = classify_location(location)
    item.overall_discrepancy = rollup(loc.discrepancy_level for loc in item.locations)
    return item.overall_discrepancy
