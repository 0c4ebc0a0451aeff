"""
Reconciliation Engine Tests

Covers the combined replenishment pipeline:
1. Metric calculations and their zero guards
2. Discrepancy classification and item rollup
3. Merge aggregation, precedence and determinism
4. Filtering and pagination
5. End-to-end runs including single-source degradation
"""

import asyncio
import json

import pytest

from connectors.legacy import expand_wide_row
from connectors.source_base import SourceAdapter, StaticSourceAdapter, UnconfiguredSourceAdapter
from reconciliation.calculations import (
    average_flow,
    compute_delta,
    days_of_inventory,
    finalize_location,
    percent_diff,
    replenishment,
)
from reconciliation.classifier import classify_item, classify_location, rollup
from reconciliation.engine import ReconciliationEngine, ReportRequest
from reconciliation.exceptions import BothSourcesFailedError, MappingGapWarning, SourceFetchError
from reconciliation.filters import filter_items, paginate, total_pages
from reconciliation.locations import DEFAULT_LOCATION_CONFIG, LocationConfig, LocationMapper
from reconciliation.merge import MergeEngine
from reconciliation.models import (
    Delta,
    DiscrepancyLevel,
    MergedItemRow,
    MergedLocationRow,
    SourceARow,
    SourceBRow,
    SourceMetrics,
)


# =============================================================================
# Fixtures
# =============================================================================

def a_row(item="X1", location="L1A", stock=0.0, flow=(0, 0, 0), other=(0, 0, 0), **kwargs):
    return SourceARow(
        item_code=item,
        item_name=kwargs.pop("name", f"Item {item}"),
        location_code=location,
        stock=stock,
        sales_m1=flow[0], sales_m2=flow[1], sales_m3=flow[2],
        other_m1=other[0], other_m2=other[1], other_m3=other[2],
        **kwargs,
    )


def b_row(item="X1", location="L1B", stock=0.0, flow=(0, 0, 0), issue=(0, 0, 0), **kwargs):
    return SourceBRow(
        item_code=item,
        item_name=kwargs.pop("name", f"Item {item}"),
        location_code=location,
        location_id=kwargs.pop("location_id", f"WH-{location}"),
        current_stock=stock,
        delivery_qty_m1=flow[0], delivery_qty_m2=flow[1], delivery_qty_m3=flow[2],
        issue_qty_m1=issue[0], issue_qty_m2=issue[1], issue_qty_m3=issue[2],
        **kwargs,
    )


@pytest.fixture
def mapper():
    return LocationMapper(LocationConfig(
        mapping={"L1A": "L1B", "L1C": "L1B", "L2A": "L2B"},
        buffers={"L1A": 2.0, "L1C": 3.0},
        excluded_codes={"DEAD"},
        source_b_codes=("L1B", "L2B"),
        display_names={"L1B": "North Hub", "L2B": "South Hub"},
    ))


def run_merge(mapper, rows_a, rows_b):
    """Merge, finalize and classify without the async fetch layer."""
    engine = ReconciliationEngine(
        StaticSourceAdapter("source_a", rows_a),
        StaticSourceAdapter("source_b", rows_b),
        mapper,
    )
    return engine.reconcile(rows_a, rows_b)


class FailingAdapter(SourceAdapter):
    def __init__(self, name, error):
        super().__init__(name)
        self.error = error

    async def fetch(self, source_filter):
        raise self.error


class SlowAdapter(SourceAdapter):
    def __init__(self, name, delay):
        super().__init__(name)
        self.delay = delay

    async def fetch(self, source_filter):
        await asyncio.sleep(self.delay)
        return []


# =============================================================================
# Calculations
# =============================================================================

class TestCalculations:
    """Flow, replenishment, DOI and percent difference."""

    def test_average_flow_sums_six_figures_over_three_months(self):
        assert average_flow([10, 10, 10, 0, 0, 0]) == 10
        assert average_flow([5, 5, 5, 5, 5, 5]) == 10

    def test_average_flow_clamps_negative_corrections(self):
        assert average_flow([3, 0, 0, -30, 0, 0]) == 0

    def test_replenishment(self):
        assert replenishment(100, 10, 2) == 80
        assert replenishment(5, 10, 1.5) == -10

    def test_doi_null_without_flow(self):
        assert days_of_inventory(100, 0) is None
        assert days_of_inventory(0, 0) is None
        assert days_of_inventory(100, 10) == 10

    @pytest.mark.parametrize("value", [0, 1, 80, -40, 1e9])
    def test_percent_diff_of_equal_values_is_zero(self, value):
        assert percent_diff(value, value) == 0

    def test_percent_diff_zero_average_guard(self):
        assert percent_diff(0, 0) == 0
        assert percent_diff(10, -10) == 0

    def test_percent_diff_is_signed_against_mean(self):
        assert percent_diff(100, 80) == pytest.approx(22.222, rel=1e-3)
        assert percent_diff(80, 100) == pytest.approx(-22.222, rel=1e-3)
        assert percent_diff(105, 95) == pytest.approx(10.0)

    def test_delta_with_absent_side_counts_zero(self):
        b = SourceMetrics(stock=80, avg_flow=10, replenishment=60, doi=8)
        delta = compute_delta(None, b)
        assert delta.stock == -80
        assert delta.stock_pct == -200
        assert delta.replenishment == -60
        assert delta.avg_flow == -10
        assert delta.doi is None

    def test_delta_doi_requires_both_sides(self):
        a = SourceMetrics(stock=100, avg_flow=10, doi=10)
        b = SourceMetrics(stock=80, avg_flow=0, doi=None)
        assert compute_delta(a, b).doi is None
        b.avg_flow, b.doi = 10, 8
        assert compute_delta(a, b).doi == 2

    def test_finalize_source_b_buffer_precedence(self):
        explicit = LocationMapper(LocationConfig(
            mapping={"L1A": "L1B"},
            source_b_buffers={"L1B": 4.0},
        ))
        row = MergedLocationRow(
            location_code="L1B",
            location_name="L1B",
            source_a=SourceMetrics(stock=10, avg_flow=1, buffer=2.0),
            source_b=SourceMetrics(stock=10, avg_flow=1),
            has_a=True,
            has_b=True,
        )
        finalize_location(row, explicit)
        assert row.source_b.buffer == 4.0
        assert row.source_b.replenishment == 6

        plain = LocationMapper(LocationConfig(mapping={"L1A": "L1B"}, default_buffer_b=1.25))
        finalize_location(row, plain)
        assert row.source_b.buffer == 2.0

        row.source_a = None
        finalize_location(row, plain)
        assert row.source_b.buffer == 1.25


# =============================================================================
# Classifier
# =============================================================================

def _location(stock_pct, has_a=True, has_b=True):
    return MergedLocationRow(
        location_code="L",
        location_name="L",
        delta=Delta(stock_pct=stock_pct),
        has_a=has_a,
        has_b=has_b,
    )


class TestClassifier:
    """Per-location labels and item rollup."""

    @pytest.mark.parametrize("pct,expected", [
        (0.0, DiscrepancyLevel.OK),
        (9.99, DiscrepancyLevel.OK),
        (10.0, DiscrepancyLevel.WARNING),
        (-10.0, DiscrepancyLevel.WARNING),
        (29.99, DiscrepancyLevel.WARNING),
        (30.0, DiscrepancyLevel.CRITICAL),
        (-45.0, DiscrepancyLevel.CRITICAL),
    ])
    def test_thresholds_inclusive_at_lower_bound(self, pct, expected):
        assert classify_location(_location(pct)) == expected

    def test_single_side_labels(self):
        assert classify_location(_location(200, has_a=False)) == DiscrepancyLevel.B_ONLY
        assert classify_location(_location(200, has_b=False)) == DiscrepancyLevel.A_ONLY
        assert classify_location(_location(0, has_a=False, has_b=False)) == DiscrepancyLevel.OK

    def test_rollup(self):
        L = DiscrepancyLevel
        assert rollup([L.OK, L.WARNING, L.B_ONLY]) == L.WARNING
        assert rollup([L.OK, L.CRITICAL, L.A_ONLY]) == L.CRITICAL
        assert rollup([L.A_ONLY, L.B_ONLY]) == L.OK
        assert rollup([]) == L.OK

    def test_classify_item_sets_every_location(self):
        item = MergedItemRow(item_code="X", item_name="X", locations=[
            _location(12.0),
            _location(50.0, has_b=False),
        ])
        assert classify_item(item) == DiscrepancyLevel.WARNING
        assert [loc.discrepancy_level for loc in item.locations] == [
            DiscrepancyLevel.WARNING,
            DiscrepancyLevel.A_ONLY,
        ]


# =============================================================================
# Merge
# =============================================================================

class TestMerge:
    """Folding both sources into item -> location pairs."""

    def test_scenario_warning_on_stock_gap(self, mapper):
        """100 vs 80 stock with matching flow of 10 and buffer 2."""
        result = run_merge(
            mapper,
            [a_row(stock=100, flow=(10, 10, 10))],
            [b_row(stock=80, flow=(10, 10, 10))],
        )
        item = result.items[0]
        loc = item.locations[0]

        assert loc.location_code == "L1B"
        assert loc.source_a.avg_flow == 10
        assert loc.source_b.avg_flow == 10
        assert loc.source_a.replenishment == 80
        assert loc.source_b.replenishment == 60
        assert loc.delta.stock_pct == pytest.approx(22.22, abs=0.01)
        assert loc.discrepancy_level == DiscrepancyLevel.WARNING
        assert item.overall_discrepancy == DiscrepancyLevel.WARNING
        assert (item.total_stock_a, item.total_stock_b) == (100, 80)
        assert (item.total_replen_a, item.total_replen_b) == (80, 60)

    def test_scenario_erp_only_item(self, mapper):
        result = run_merge(mapper, [], [b_row(item="X2", stock=40)])
        item = result.items[0]
        assert item.locations[0].has_a is False
        assert item.locations[0].discrepancy_level == DiscrepancyLevel.B_ONLY
        assert item.overall_discrepancy == DiscrepancyLevel.OK

    def test_zero_legacy_stock_against_erp_stock_is_critical(self):
        """A legacy row reporting 0 is data, not absence."""
        rows_a = expand_wide_row({
            "kode_item": "BLT-08", "nama_item": "Bolt M8",
            "JKT_Stock": 0, "JKT_S_M1": 0, "JKT_S_M2": 0, "JKT_S_M3": 0,
            "JKT_L_M1": 0, "JKT_L_M2": 0, "JKT_L_M3": 0,
            "SBY_Stock": 5,
        })
        rows_b = [b_row(item="BLT-08", location="JABAR-JKT", stock=40)]

        result = run_merge(LocationMapper(DEFAULT_LOCATION_CONFIG), rows_a, rows_b)
        item = result.items[0]
        jkt = next(loc for loc in item.locations if loc.location_code == "JABAR-JKT")

        assert jkt.has_a and jkt.has_b
        assert jkt.source_a.stock == 0
        assert jkt.delta.stock_pct == pytest.approx(-200.0)
        assert jkt.discrepancy_level == DiscrepancyLevel.CRITICAL
        assert item.overall_discrepancy == DiscrepancyLevel.CRITICAL

    def test_scenario_no_flow_has_no_doi(self, mapper):
        result = run_merge(mapper, [a_row(stock=10)], [b_row(stock=10)])
        loc = result.items[0].locations[0]
        assert loc.source_a.doi is None
        assert loc.source_b.doi is None
        assert loc.delta.doi is None
        assert loc.discrepancy_level == DiscrepancyLevel.OK

    def test_group_stock_is_sum_of_contributing_codes(self, mapper):
        result = run_merge(mapper, [
            a_row(location="L1A", stock=30, flow=(9, 0, 0)),
            a_row(location="L1C", stock=45, flow=(18, 0, 0)),
        ], [])
        loc = result.items[0].locations[0]

        assert len(result.items[0].locations) == 1
        assert loc.source_a.stock == 75
        assert loc.source_a_codes == ["L1A", "L1C"]
        assert loc.source_a.avg_flow == 9
        # Each bucket applies its own buffer: (30 - 3*2) + (45 - 6*3)
        assert loc.source_a.replenishment == 51
        assert loc.source_a.buffer == 2.0

    def test_erp_warehouses_of_one_branch_are_summed(self, mapper):
        result = run_merge(mapper, [], [
            b_row(stock=10, flow=(3, 3, 3), location_id="WH-1"),
            b_row(stock=15, issue=(6, 0, 0), location_id="WH-2"),
        ])
        loc = result.items[0].locations[0]
        assert loc.source_b.stock == 25
        assert loc.source_b.avg_flow == 5
        assert loc.source_b_location_ids == ["WH-1", "WH-2"]

    def test_excluded_codes_are_skipped(self, mapper):
        merge = MergeEngine(mapper).merge([
            a_row(location="DEAD", stock=99),
            a_row(location="L1A", stock=1),
        ], [])
        assert merge.excluded_row_count == 1
        assert "DEAD" not in merge.source_a_codes
        codes = [loc.location_code for item in merge.items for loc in item.locations]
        assert codes == ["L1B"]

    def test_unmapped_code_becomes_pseudo_location(self, mapper):
        merge = MergeEngine(mapper).merge([
            a_row(location="PHL", stock=5),
            a_row(item="X9", location="PHL", stock=7),
        ], [])

        assert merge.unmapped_codes == ["PHL"]
        assert len(merge.warnings) == 1
        assert isinstance(merge.warnings[0], MappingGapWarning)
        assert merge.warnings[0].location_code == "PHL"

        loc = merge.items[0].locations[0]
        assert loc.location_code == "PHL"
        assert loc.is_mapped is False
        assert loc.source_a_codes == ["PHL"]

    def test_first_seen_wins_for_descriptive_fields(self, mapper):
        merge = MergeEngine(mapper).merge(
            [
                a_row(name="Bolt M8", reference_cost=1.5),
                a_row(location="L2A", name="BOLT M8 (old)", reference_cost=9.0),
            ],
            [
                b_row(name="Bolt M8 zinc", company="ACME"),
                b_row(location="L2B", company="Other Co"),
            ],
        )
        item = merge.items[0]
        assert item.item_name == "Bolt M8"
        assert item.reference_cost == 1.5
        assert item.company == "ACME"

    def test_item_and_location_order_is_first_seen(self, mapper):
        merge = MergeEngine(mapper).merge(
            [a_row(item="B", location="L2A"), a_row(item="A"), a_row(item="B", location="L1A")],
            [b_row(item="C"), b_row(item="A", location="L2B")],
        )
        assert [item.item_code for item in merge.items] == ["B", "A", "C"]
        assert [loc.location_code for loc in merge.items[0].locations] == ["L2B", "L1B"]
        assert [loc.location_code for loc in merge.items[1].locations] == ["L1B", "L2B"]

    def test_merge_is_idempotent(self, mapper):
        rows_a = [a_row(stock=100, flow=(10, 5, 1)), a_row(location="L1C", stock=3), a_row(location="ZZ")]
        rows_b = [b_row(stock=80, issue=(4, 4, 4)), b_row(item="X3", location="L2B", stock=2)]

        first = [item.to_dict() for item in run_merge(mapper, rows_a, rows_b).items]
        second = [item.to_dict() for item in run_merge(mapper, rows_a, rows_b).items]

        assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)

    def test_avg_flow_never_negative_and_doi_null_iff_no_flow(self, mapper):
        result = run_merge(
            mapper,
            [a_row(stock=5, flow=(1, 0, 0), other=(-9, 0, 0)), a_row(item="X4", stock=5, flow=(3, 3, 3))],
            [b_row(stock=5, issue=(-3, 0, 0)), b_row(item="X4", stock=0, flow=(3, 0, 0))],
        )
        for item in result.items:
            for loc in item.locations:
                for metrics in (loc.source_a, loc.source_b):
                    assert metrics.avg_flow >= 0
                    assert (metrics.doi is None) == (metrics.avg_flow == 0)


# =============================================================================
# Filters
# =============================================================================

def _items():
    def item(code, name, *locations):
        return MergedItemRow(item_code=code, item_name=name, locations=list(locations))

    north = MergedLocationRow(location_code="JABAR-JKT", location_name="Jakarta", source_a_codes=["JKT", "LPG"])
    south = MergedLocationRow(location_code="YGY", location_name="Yogyakarta", source_a_codes=["SMG1"])
    return [
        item("BLT-08", "Bolt M8", north),
        item("BLT-10", "Bolt M10", south),
        item("NUT-08", "Nut M8", north, south),
        item("WSH-01", "Washer", south),
        item("SCR-02", "Screw bolt", north),
    ]


class TestFilters:
    """Search, location filter and pagination."""

    def test_search_matches_code_or_name_case_insensitive(self):
        assert [i.item_code for i in filter_items(_items(), search="bolt")] == ["BLT-08", "BLT-10", "SCR-02"]
        assert [i.item_code for i in filter_items(_items(), search="nut-")] == ["NUT-08"]

    def test_blank_filters_are_ignored(self):
        assert len(filter_items(_items(), search="  ", location="")) == 5

    def test_location_filter_by_erp_code(self):
        codes = [i.item_code for i in filter_items(_items(), location="ygy")]
        assert codes == ["BLT-10", "NUT-08", "WSH-01"]

    def test_location_filter_by_legacy_code(self):
        codes = [i.item_code for i in filter_items(_items(), location="lpg")]
        assert codes == ["BLT-08", "NUT-08", "SCR-02"]

    def test_location_filter_by_display_name(self):
        codes = [i.item_code for i in filter_items(_items(), location="jakar")]
        assert codes == ["BLT-08", "NUT-08", "SCR-02"]

    def test_search_then_location(self):
        codes = [i.item_code for i in filter_items(_items(), search="m8", location="YGY")]
        assert codes == ["NUT-08"]

    def test_paginate(self):
        page, total = paginate(_items(), page=2, limit=2)
        assert total == 5
        assert [i.item_code for i in page] == ["NUT-08", "WSH-01"]
        assert total_pages(total, 2) == 3

    def test_page_past_end_is_empty(self):
        page, total = paginate(_items(), page=9, limit=2)
        assert page == []
        assert total == 5

    @pytest.mark.parametrize("page,limit", [(0, 10), (1, 0), (-1, 5)])
    def test_invalid_page_or_limit(self, page, limit):
        with pytest.raises(ValueError):
            paginate(_items(), page=page, limit=limit)

    def test_total_pages(self):
        assert total_pages(0, 100) == 0
        assert total_pages(100, 100) == 1
        assert total_pages(101, 100) == 2


# =============================================================================
# Engine
# =============================================================================

class TestEngine:
    """End-to-end runs over in-memory adapters."""

    def test_full_run_returns_page_and_metadata(self, mapper):
        engine = ReconciliationEngine(
            StaticSourceAdapter("source_a", [
                a_row(stock=100, flow=(10, 10, 10)),
                a_row(location="L1C", stock=5),
                a_row(item="X2", location="PHL", stock=1),
            ]),
            StaticSourceAdapter("source_b", [
                b_row(stock=80, flow=(10, 10, 10)),
                b_row(item="X3", location="L2B", stock=4),
            ]),
            mapper,
        )
        report = asyncio.run(engine.run(ReportRequest(page=1, limit=2)))

        assert report.total == 3
        assert report.total_pages == 2
        assert [item.item_code for item in report.items] == ["X1", "X2"]
        assert report.degraded is False

        meta = report.metadata
        assert meta["source_a_location_count"] == 3
        assert meta["source_b_location_count"] == 2
        assert meta["mapped_location_count"] == 2
        assert meta["unmapped_location_codes"] == ["PHL"]
        assert meta["source_status"] == {"source_a": "ok", "source_b": "ok"}
        assert meta["source_errors"] == {}
        assert meta["engine_time_ms"] >= 0

    def test_filters_apply_after_merge(self, mapper):
        engine = ReconciliationEngine(
            StaticSourceAdapter("source_a", [a_row(item="BLT-1", name="Bolt"), a_row(item="NUT-1", name="Nut")]),
            StaticSourceAdapter("source_b", [b_row(item="BLT-1", name="Bolt", location="L2B")]),
            mapper,
        )
        report = asyncio.run(engine.run(ReportRequest(search="bolt", location="south hub")))
        assert [item.item_code for item in report.items] == ["BLT-1"]
        assert report.total == 1

    def test_legacy_failure_degrades_to_erp_only(self, mapper):
        """Source A throws; all 50 ERP items come back labeled B_ONLY."""
        rows_b = [b_row(item=f"X{i:02d}", stock=i + 1) for i in range(50)]
        engine = ReconciliationEngine(
            FailingAdapter("source_a", SourceFetchError("source_a", "connection refused")),
            StaticSourceAdapter("source_b", rows_b),
            mapper,
        )
        report = asyncio.run(engine.run(ReportRequest(limit=100)))

        assert report.total == 50
        assert report.degraded is True
        for item in report.items:
            assert any(loc.discrepancy_level == DiscrepancyLevel.B_ONLY for loc in item.locations)
            assert item.overall_discrepancy == DiscrepancyLevel.OK
        assert report.metadata["source_a_location_count"] == 0
        assert report.metadata["source_status"]["source_a"] == "failed"
        assert "connection refused" in report.metadata["source_errors"]["source_a"]

    def test_erp_failure_degrades_to_legacy_only(self, mapper):
        engine = ReconciliationEngine(
            StaticSourceAdapter("source_a", [a_row(stock=3)]),
            FailingAdapter("source_b", RuntimeError("boom")),
            mapper,
        )
        report = asyncio.run(engine.run(ReportRequest()))
        assert report.items[0].locations[0].discrepancy_level == DiscrepancyLevel.A_ONLY
        assert report.metadata["source_status"]["source_b"] == "failed"
        assert "RuntimeError" in report.metadata["source_errors"]["source_b"]

    def test_hung_source_is_bounded_by_timeout(self, mapper):
        engine = ReconciliationEngine(
            StaticSourceAdapter("source_a", [a_row(stock=3)]),
            SlowAdapter("source_b", delay=5),
            mapper,
            fetch_timeout=0.05,
        )
        report = asyncio.run(engine.run(ReportRequest()))
        assert report.total == 1
        assert report.metadata["source_status"]["source_b"] == "timeout"

    def test_both_sources_failing_raises(self, mapper):
        engine = ReconciliationEngine(
            UnconfiguredSourceAdapter("source_a", "no database"),
            FailingAdapter("source_b", SourceFetchError("source_b", "401")),
            mapper,
        )
        with pytest.raises(BothSourcesFailedError) as exc_info:
            asyncio.run(engine.run(ReportRequest()))
        assert set(exc_info.value.errors) == {"source_a", "source_b"}

    def test_invalid_paging_rejected(self, mapper):
        engine = ReconciliationEngine(StaticSourceAdapter("a", []), StaticSourceAdapter("b", []), mapper)
        with pytest.raises(ValueError):
            asyncio.run(engine.run(ReportRequest(page=0)))
