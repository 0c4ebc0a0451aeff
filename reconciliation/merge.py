"""Merge engine: folds both sources into item -> location -> source pairs.

Source-A rows are resolved to their Source-B location through the
LocationMapper, so several legacy locations can fold into one ERP branch.
Source-B rows are keyed by their own branch code. All numeric fields are
accumulated by summation.

Precedence for descriptive fields is first-seen-wins: Source-A rows are
folded before Source-B rows, and within a source rows are taken in order.
This applies to item_name, reference_cost, company, the location display
name and the location's Source-A buffer.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from core.observability.logging import get_logger
from reconciliation.calculations import average_flow, replenishment
from reconciliation.exceptions import MappingGapWarning
from reconciliation.locations import NOT_MAPPED, LocationMapper
from reconciliation.models import (
    MergedItemRow,
    MergedLocationRow,
    SourceARow,
    SourceBRow,
    SourceMetrics,
)


logger = get_logger(__name__)


@dataclass
class MergeResult:
    """Output of a merge run."""
    items: List[MergedItemRow] = field(default_factory=list)
    source_a_codes: List[str] = field(default_factory=list)     # Distinct, first-seen order
    source_b_codes: List[str] = field(default_factory=list)
    mapped_codes: List[str] = field(default_factory=list)
    unmapped_codes: List[str] = field(default_factory=list)
    excluded_row_count: int = 0
    warnings: List[MappingGapWarning] = field(default_factory=list)


class _ItemBucket:
    """Index over one item's locations, alive only during the merge."""

    def __init__(self, item: MergedItemRow):
        self.item = item
        self.locations: Dict[str, MergedLocationRow] = {}

    def location(self, code: str, name: str, is_mapped: bool = True) -> MergedLocationRow:
        row = self.locations.get(code)
        if row is None:
            row = MergedLocationRow(location_code=code, location_name=name, is_mapped=is_mapped)
            self.locations[code] = row
            self.item.locations.append(row)
        return row


class MergeEngine:
    """Builds the merged item structure from two complete row sets.

    Usage:
        engine = MergeEngine(LocationMapper(config))
        result = engine.merge(rows_a, rows_b)
    """

    def __init__(self, mapper: LocationMapper):
        self.mapper = mapper

    def merge(self, rows_a: Sequence[SourceARow], rows_b: Sequence[SourceBRow]) -> MergeResult:
        result = MergeResult()
        buckets: Dict[str, _ItemBucket] = {}
        seen_a: Dict[str, None] = {}
        seen_b: Dict[str, None] = {}
        mapped: Dict[str, None] = {}
        unmapped: Dict[str, None] = {}

        for row in rows_a:
            code_a = row.location_code
            if self.mapper.is_excluded(code_a):
                result.excluded_row_count += 1
                continue

            seen_a.setdefault(code_a)
            code_b = self.mapper.resolve(code_a)
            is_mapped = code_b is not NOT_MAPPED
            if is_mapped:
                mapped.setdefault(code_a)
            else:
                code_b = code_a
                if code_a not in unmapped:
                    unmapped[code_a] = None
                    warning = MappingGapWarning(code_a)
                    result.warnings.append(warning)
                    logger.warning(str(warning), extra_fields={"location_code": code_a})

            bucket = self._bucket(buckets, result, row.item_code, row.item_name)
            if bucket.item.reference_cost is None and row.reference_cost is not None:
                bucket.item.reference_cost = row.reference_cost

            location = bucket.location(code_b, self.mapper.display_name(code_b), is_mapped)
            self._fold_source_a(location, row)

        for row in rows_b:
            seen_b.setdefault(row.location_code)
            bucket = self._bucket(buckets, result, row.item_code, row.item_name)
            if bucket.item.company is None and row.company:
                bucket.item.company = row.company

            name = row.location_name or self.mapper.display_name(row.location_code)
            location = bucket.location(row.location_code, name)
            self._fold_source_b(location, row)

        result.source_a_codes = list(seen_a)
        result.source_b_codes = list(seen_b)
        result.mapped_codes = list(mapped)
        result.unmapped_codes = list(unmapped)

        logger.debug(
            f"Merged {len(rows_a)} Source-A rows and {len(rows_b)} Source-B rows "
            f"into {len(result.items)} items",
            extra_fields={
                "unmapped_codes": result.unmapped_codes,
                "excluded_rows": result.excluded_row_count,
            },
        )
        return result

    @staticmethod
    def _bucket(
        buckets: Dict[str, _ItemBucket],
        result: MergeResult,
        item_code: str,
        item_name: str,
    ) -> _ItemBucket:
        bucket = buckets.get(item_code)
        if bucket is None:
            item = MergedItemRow(item_code=item_code, item_name=item_name)
            bucket = _ItemBucket(item)
            buckets[item_code] = bucket
            result.items.append(item)
        elif not bucket.item.item_name and item_name:
            bucket.item.item_name = item_name
        return bucket

    def _fold_source_a(self, location: MergedLocationRow, row: SourceARow) -> None:
        buffer = row.buffer if row.buffer is not None else self.mapper.buffer_for(row.location_code)

        metrics = location.source_a
        if metrics is None:
            metrics = SourceMetrics(buffer=buffer)
            location.source_a = metrics

        metrics.stock += row.stock
        metrics.sales_m1 += row.sales_m1
        metrics.sales_m2 += row.sales_m2
        metrics.sales_m3 += row.sales_m3
        metrics.secondary_m1 += row.other_m1
        metrics.secondary_m2 += row.other_m2
        metrics.secondary_m3 += row.other_m3

        # Each Source-A bucket averages its own flow and applies its own buffer
        bucket_flow = average_flow([
            row.sales_m1, row.sales_m2, row.sales_m3,
            row.other_m1, row.other_m2, row.other_m3,
        ])
        metrics.avg_flow += bucket_flow
        metrics.replenishment += replenishment(row.stock, bucket_flow, buffer)

        if row.location_code not in location.source_a_codes:
            location.source_a_codes.append(row.location_code)
        location.has_a = True

    @staticmethod
    def _fold_source_b(location: MergedLocationRow, row: SourceBRow) -> None:
        metrics = location.source_b
        if metrics is None:
            metrics = SourceMetrics()
            location.source_b = metrics

        metrics.stock += row.current_stock
        metrics.sales_m1 += row.delivery_qty_m1
        metrics.sales_m2 += row.delivery_qty_m2
        metrics.sales_m3 += row.delivery_qty_m3
        metrics.secondary_m1 += row.issue_qty_m1
        metrics.secondary_m2 += row.issue_qty_m2
        metrics.secondary_m3 += row.issue_qty_m3
        metrics.avg_flow += average_flow([
            row.delivery_qty_m1, row.delivery_qty_m2, row.delivery_qty_m3,
            row.issue_qty_m1, row.issue_qty_m2, row.issue_qty_m3,
        ])

        if row.location_id and row.location_id not in location.source_b_location_ids:
            location.source_b_location_ids.append(row.location_id)
        location.has_b = True
