"""
Unit tests for merging insight rows onto entities.
"""
import math
import pytest
from app.models import ActionValue, Campaign, PerformanceSnapshot, ReportingLevel
from app.services.insights_merger import (
    InsightsAccumulator,
    aggregate_breakdown,
    aggregate_daily,
    aggregate_hourly,
    aggregate_rows,
    find_conversion_action,
    merge_insights,
    parse_hour,
)


@pytest.mark.unit
class TestFindConversionAction:
    """Test priority-ordered conversion lookup."""

    def test_purchase_preferred_over_omni_purchase(self):
        actions = [
            ActionValue(action_type="omni_purchase", value=9),
            ActionValue(action_type="purchase", value=4),
        ]
        assert find_conversion_action(actions).value == 4

    def test_falls_back_to_pixel_purchase(self):
        actions = [
            ActionValue(action_type="link_click", value=50),
            ActionValue(action_type="offsite_conversion.fb_pixel_purchase", value=2),
        ]
        assert find_conversion_action(actions).action_type == "offsite_conversion.fb_pixel_purchase"

    def test_no_conversion(self):
        assert find_conversion_action([ActionValue(action_type="link_click", value=3)]) is None
        assert find_conversion_action([]) is None


@pytest.mark.unit
class TestInsightsAccumulator:
    """Test merge arithmetic."""

    def test_single_row_is_direct_copy(self, make_row):
        row = make_row(
            "c1", spend=50, impressions=1000, clicks=20, reach=800, cpm=50, cpc=2.5,
            ctr=2.0, frequency=1.25, purchases=5, purchase_value=200,
        )
        accumulator = InsightsAccumulator()
        accumulator.add(row)

        assert accumulator.snapshot() == PerformanceSnapshot(
            spend=50, impressions=1000, clicks=20, reach=800, frequency=1.25,
            cpm=50, cpc=2.5, ctr=2.0, results=5, purchase_value=200,
            cost_per_result=10, roas=4,
        )

    def test_weighted_cpm(self, make_row):
        accumulator = InsightsAccumulator()
        accumulator.add(make_row("c1", impressions=100, cpm=5))
        accumulator.add(make_row("c1", impressions=200, cpm=8))

        snapshot = accumulator.snapshot()
        assert snapshot.impressions == 300
        assert snapshot.cpm == pytest.approx(7.0)

    def test_weighted_cpm_with_no_impressions_is_zero(self, make_row):
        accumulator = InsightsAccumulator()
        accumulator.add(make_row("c1", impressions=0, cpm=0))
        accumulator.add(make_row("c1", impressions=0, cpm=0))
        assert accumulator.snapshot().cpm == 0

    def test_weighted_cpc(self, make_row):
        accumulator = InsightsAccumulator()
        accumulator.add(make_row("c1", clicks=10, cpc=1.0))
        accumulator.add(make_row("c1", clicks=30, cpc=2.0))
        assert accumulator.snapshot().cpc == pytest.approx(1.75)

    def test_reach_uses_max(self, make_row):
        accumulator = InsightsAccumulator()
        accumulator.add(make_row("c1", impressions=600, reach=500))
        accumulator.add(make_row("c1", impressions=400, reach=300))

        snapshot = accumulator.snapshot()
        assert snapshot.reach == 500
        assert snapshot.frequency == pytest.approx(2.0)

    def test_ctr_recomputed_from_totals(self, make_row):
        accumulator = InsightsAccumulator()
        accumulator.add(make_row("c1", impressions=1000, clicks=10, ctr=1.0))
        accumulator.add(make_row("c1", impressions=3000, clicks=90, ctr=3.0))
        assert accumulator.snapshot().ctr == pytest.approx(2.5)

    def test_sums_spend_results_and_value(self, make_row):
        accumulator = InsightsAccumulator()
        accumulator.add(make_row("c1", spend=10, purchases=1, purchase_value=30))
        accumulator.add(make_row("c1", spend=30, purchases=3, purchase_value=90))

        snapshot = accumulator.snapshot()
        assert snapshot.spend == pytest.approx(40)
        assert snapshot.results == 4
        assert snapshot.purchase_value == pytest.approx(120)
        assert snapshot.roas == pytest.approx(3.0)
        assert snapshot.cost_per_result == pytest.approx(10)

    def test_zero_spend_and_results_are_safe(self, make_row):
        accumulator = InsightsAccumulator()
        accumulator.add(make_row("c1", spend=0, purchase_value=50))

        snapshot = accumulator.snapshot()
        assert snapshot.roas == 0
        assert snapshot.cost_per_result == 0
        assert not math.isnan(snapshot.roas)

    def test_empty_accumulator_is_zero(self):
        assert InsightsAccumulator().snapshot() == PerformanceSnapshot.zero()


@pytest.mark.unit
class TestMergeInsights:
    """Test joining rows onto entities."""

    def test_unmatched_entity_gets_zero_snapshot(self, sample_campaigns, make_row):
        rows = [
            make_row("c1", impressions=100, cpm=5),
            make_row("c1", impressions=200, cpm=8),
        ]
        merged = merge_insights(sample_campaigns, rows, ReportingLevel.CAMPAIGN)

        assert [entity.id for entity in merged] == ["c1", "c2"]
        assert merged[0].performance.impressions == 300
        assert merged[0].performance.cpm == pytest.approx(7.0)
        assert merged[1].performance == PerformanceSnapshot.zero()

    def test_preserves_input_order(self, make_row):
        entities = [Campaign(id=i, name=i) for i in ("z", "a", "m")]
        rows = [make_row("a", spend=1), make_row("m", spend=2), make_row("z", spend=3)]

        merged = merge_insights(entities, rows, ReportingLevel.CAMPAIGN)
        assert [entity.id for entity in merged] == ["z", "a", "m"]

    def test_keeps_entity_type(self, sample_campaigns):
        merged = merge_insights(sample_campaigns, [], ReportingLevel.CAMPAIGN)
        assert all(isinstance(entity, Campaign) for entity in merged)
        assert merged[0].account_id == "999"

    def test_does_not_mutate_input(self, sample_campaigns, make_row):
        merge_insights(sample_campaigns, [make_row("c1", spend=5)], ReportingLevel.CAMPAIGN)
        assert sample_campaigns[0].performance is None

    def test_rows_matched_at_ad_level(self, make_row):
        entities = [Campaign(id="a1", name="ad")]
        rows = [make_row("a1", level="ad", spend=7)]
        merged = merge_insights(entities, rows, ReportingLevel.AD)
        assert merged[0].performance.spend == 7


@pytest.mark.unit
class TestAggregations:
    """Test account-level chart aggregations."""

    def test_aggregate_rows(self, make_row):
        rows = [make_row(None, spend=10, impressions=100), make_row(None, spend=5, impressions=50)]
        summary = aggregate_rows(rows)
        assert summary.spend == pytest.approx(15)
        assert summary.impressions == 150

    def test_aggregate_rows_empty(self):
        assert aggregate_rows([]) == PerformanceSnapshot.zero()

    def test_daily_sorted_by_date(self, make_row):
        rows = [
            make_row("c1", spend=3, date_start="2026-03-02"),
            make_row("c2", spend=1, date_start="2026-03-01"),
            make_row("c1", spend=2, date_start="2026-03-01"),
        ]
        daily = aggregate_daily(rows)

        assert [point.date for point in daily] == ["2026-03-01", "2026-03-02"]
        assert daily[0].spend == pytest.approx(3)

    def test_breakdown_sorted_by_spend(self, make_row):
        rows = [
            make_row(None, spend=5, age="18-24"),
            make_row(None, spend=20, age="25-34"),
            make_row(None, spend=1),
        ]
        points = aggregate_breakdown(rows, "age")

        assert [point.dimension for point in points] == ["25-34", "18-24", "Unknown"]

    def test_breakdown_by_date(self, make_row):
        rows = [
            make_row(None, spend=5, gender="male", date_start="2026-03-02"),
            make_row(None, spend=2, gender="female", date_start="2026-03-01"),
            make_row(None, spend=9, gender="male", date_start="2026-03-01"),
        ]
        points = aggregate_breakdown(rows, "gender", by_date=True)

        assert [(p.date, p.dimension) for p in points] == [
            ("2026-03-01", "male"),
            ("2026-03-01", "female"),
            ("2026-03-02", "male"),
        ]

    def test_parse_hour(self):
        assert parse_hour("13:00:00 - 13:59:59") == 13
        assert parse_hour("00:00:00 - 00:59:59") == 0
        assert parse_hour("bogus") is None
        assert parse_hour(None) is None

    def test_hourly(self, make_row):
        bucket = "hourly_stats_aggregated_by_advertiser_time_zone"
        rows = [
            make_row(None, spend=4, clicks=2, impressions=100, **{bucket: "09:00:00 - 09:59:59"}),
            make_row(None, spend=6, clicks=3, impressions=100, **{bucket: "09:00:00 - 09:59:59"}),
            make_row(None, spend=1, **{bucket: "02:00:00 - 02:59:59"}),
        ]
        points = aggregate_hourly(rows)

        assert [point.hour for point in points] == [2, 9]
        assert points[1].spend == pytest.approx(10)
        assert points[1].ctr == pytest.approx(2.5)
