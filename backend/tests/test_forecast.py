"""
Tests for the Forecast Engine — coverage, reorder quantity and risk classification.

Covers:
  - Velocity with the forecast eligibility floor
  - Coverage rounding, cap and out-of-stock branch
  - Target horizon floor
  - Shortage rule and overstock severity ladder
"""

import pytest

from conftest import make_metric
from inventory.forecast import (
    build_overstock_row,
    build_row,
    classify_overstock,
    compute_coverage,
    is_shortage,
    recommend_quantity,
    round1,
    safe_divide,
)
from inventory.thresholds import MAX_COVERAGE_DAYS, ThresholdSettings, target_coverage_days
from inventory.types import OverstockSeverity, Timeframe

# ── Worked scenarios ───────────────────────────────────────────────────


class TestScenarios:
    def test_unsold_stock_is_severe_overstock(self):
        """100 on hand, nothing sold in 30 days → severe, nothing to reorder."""
        metric = make_metric(available=100, sales=(0, 0, 0))

        row = build_row(metric, Timeframe.D30)
        overstock = build_overstock_row(metric)

        assert row.recommended_qty == 0
        assert overstock.severity == OverstockSeverity.SEVERE

    def test_fast_mover_reorders_to_floor_horizon(self):
        """10 on hand selling 10/day; 14 + 7 = 21 days is below the 30-day floor."""
        thresholds = ThresholdSettings(lead_time_days=14, safety_days=7)
        metric = make_metric(available=10, sales=(300, 600, 900))

        row = build_row(metric, Timeframe.D30, thresholds.target_coverage_days)

        assert thresholds.target_coverage_days == 30
        assert row.avg_daily_sales == 10.0
        assert row.coverage_days == 1.0
        assert row.recommended_qty == 290

    def test_sales_below_floor_are_not_forecast(self):
        for available in (0, 5, 500):
            row = build_row(make_metric(available=available, sales=(5, 5, 5)), Timeframe.D30)
            assert row.avg_daily_sales == 0
            assert row.insufficient_sales is True
            assert row.recommended_qty == 0


# ── Velocity ───────────────────────────────────────────────────────────


class TestVelocity:
    def test_window_days_follow_timeframe(self):
        metric = make_metric(available=50, sales=(30, 120, 450))
        assert build_row(metric, Timeframe.D30).avg_daily_sales == 1.0
        assert build_row(metric, Timeframe.D60).avg_daily_sales == 2.0
        assert build_row(metric, Timeframe.D90).avg_daily_sales == 5.0

    def test_floor_is_inclusive(self):
        row = build_row(make_metric(sales=(10, 10, 10)), Timeframe.D30)
        assert row.insufficient_sales is False
        assert row.avg_daily_sales == 0.3

    def test_unrounded_velocity_drives_reorder(self):
        """11/30 = 0.3667/day; rounding first would give ceil(0.4 × 30 − 0) = 12."""
        row = build_row(make_metric(available=0, sales=(11, 11, 11)), Timeframe.D30)
        assert row.avg_daily_sales == 0.4
        assert row.recommended_qty == 11

    def test_timeframe_accepts_string(self):
        row = build_row(make_metric(sales=(30, 60, 90)), "60d")
        assert row.timeframe == Timeframe.D60


# ── Coverage ───────────────────────────────────────────────────────────


class TestCoverage:
    def test_out_of_stock_is_zero(self):
        assert compute_coverage(0, 12.0) == 0.0
        assert compute_coverage(-3, 12.0) == 0.0

    def test_velocity_floor_avoids_division_by_zero(self):
        """No sales: 5 units at the 0.1/day floor → 50 days."""
        assert compute_coverage(5, 0.0) == 50.0

    def test_capped(self):
        assert compute_coverage(1_000_000, 0.0) == MAX_COVERAGE_DAYS

    def test_rounded_to_one_decimal(self):
        assert compute_coverage(10, 3.0) == 3.3

    def test_never_negative_and_bounded(self):
        for available in (0, 1, 17, 400, 10**6):
            for velocity in (0.0, 0.05, 0.5, 3.0, 250.0):
                assert 0 <= compute_coverage(available, velocity) <= MAX_COVERAGE_DAYS


# ── Reorder quantity ───────────────────────────────────────────────────


class TestRecommendQuantity:
    def test_no_velocity_no_reorder(self):
        assert recommend_quantity(0.0, 30, 0) == 0

    def test_enough_stock_floors_at_zero(self):
        assert recommend_quantity(1.0, 30, 100) == 0

    def test_rounds_up(self):
        assert recommend_quantity(0.5, 31, 0) == 16

    def test_non_negative_integer(self):
        for velocity in (0.0, 0.33, 1.0, 9.7):
            for available in (0, 5, 1000):
                qty = recommend_quantity(velocity, 30, available)
                assert isinstance(qty, int)
                assert qty >= 0


class TestTargetCoverage:
    def test_floor_at_30(self):
        assert target_coverage_days(14, 7) == 30

    def test_long_lead_time_extends_horizon(self):
        assert target_coverage_days(30, 10) == 40

    def test_fractional_horizon_kept(self):
        assert target_coverage_days(30, 2.5) == 32.5


# ── Classification ─────────────────────────────────────────────────────


class TestShortage:
    def test_short_runway(self):
        row = build_row(make_metric(available=3, sales=(30, 30, 30)), Timeframe.D30)
        assert row.coverage_days == 3.0
        assert is_shortage(row, shortage_threshold_days=10, min_recommended_qty=5)

    def test_large_reorder_counts_as_shortage(self):
        """Plenty of runway, but the reorder is MOQ-sized."""
        row = build_row(make_metric(available=20, sales=(30, 30, 30)), Timeframe.D30)
        assert row.coverage_days == 20.0
        assert row.recommended_qty == 10
        assert is_shortage(row, shortage_threshold_days=10, min_recommended_qty=5)

    def test_healthy_row(self):
        row = build_row(make_metric(available=200, sales=(30, 30, 30)), Timeframe.D30)
        assert not is_shortage(row, shortage_threshold_days=10, min_recommended_qty=5)


class TestOverstockSeverity:
    def test_no_stock_is_never_overstock(self):
        assert classify_overstock(0, 0, 0.0) is None
        assert build_overstock_row(make_metric(available=0)) is None

    @pytest.mark.parametrize(
        ("coverage", "expected"),
        [
            (95.0, OverstockSeverity.SEVERE),
            (90.0, OverstockSeverity.SEVERE),
            (60.0, OverstockSeverity.MILD),
            (75.0, OverstockSeverity.MILD),
            (59.9, OverstockSeverity.NORMAL),
        ],
    )
    def test_ladder(self, coverage, expected):
        assert classify_overstock(10, 5, coverage, 90, 60) == expected

    def test_raw_velocity_ignores_forecast_floor(self):
        """3 sales in 30 days: too few to forecast, but still a real velocity here."""
        row = build_overstock_row(make_metric(available=8, sales=(3, 3, 3)))
        assert row.avg_daily_sales == pytest.approx(0.1)
        assert row.coverage_days == 80.0
        assert row.severity == OverstockSeverity.MILD

    def test_severity_monotone_in_threshold(self):
        """Raising the overstock threshold can only remove severe rows."""
        coverages = [0.5, 12.0, 59.0, 60.0, 89.9, 90.0, 240.0, 999.0]
        previous = None
        for threshold in (30, 60, 90, 120, 365):
            severe = {c for c in coverages if classify_overstock(10, 1, c, threshold, 30) == OverstockSeverity.SEVERE}
            if previous is not None:
                assert severe <= previous
            previous = severe


# ── Helpers ────────────────────────────────────────────────────────────


class TestHelpers:
    def test_safe_divide(self):
        assert safe_divide(10, 0) == 0.0
        assert safe_divide(10, 0, default=-1) == -1
        assert safe_divide(10, float("inf")) == 0.0
        assert safe_divide(9, 3) == 3.0

    def test_round1_half_away_from_zero(self):
        assert round1(0.25) == 0.3
        assert round1(2.25) == 2.3
        assert round1(-0.25) == -0.3
        assert round1(0) == 0.0

    def test_stock_value_and_missing_cost(self):
        row = build_row(make_metric(available=7, unit_cost=None, sales=(20, 20, 20)), Timeframe.D30)
        assert row.stock_value == 0.0
        assert row.sales_value is None

        row = build_row(make_metric(available=7, unit_cost=2.5, sales=(20, 20, 20)), Timeframe.D30)
        assert row.stock_value == 17.5
        assert row.sales_value == 50.0

    def test_sales_window_monotonic_check(self):
        assert make_metric(sales=(1, 2, 3)).sales.is_monotonic()
        assert not make_metric(sales=(5, 2, 3)).sales.is_monotonic()
