"""
Tests for the Budget Allocator — greedy, budget-capped replenishment picks.

Covers:
  - Greedy fill with the forced first pick
  - Excluded amount / count and coverage share
  - Deterministic ordering and tie-breaks
  - Unit-cost and importance fallback chains
"""

import pytest

from inventory.budget import (
    RISK_LOW_STOCK,
    RISK_STOCKOUT,
    allocate,
    rank_candidates,
    resolve_importance,
    resolve_unit_cost,
    risk_score,
    score_candidate,
)
from inventory.thresholds import ZERO_COVERAGE_RISK
from inventory.types import DashboardRow, Timeframe


def candidate(
    sku: str,
    qty: int,
    unit_cost: float | None = 100.0,
    coverage: float = 1.0,
    sales_value: float | None = None,
    sales: int = 0,
    avg_daily_sales: float = 0.0,
    available: int = 10,
    stock_value: float | None = None,
    variant_id: str | None = None,
) -> DashboardRow:
    return DashboardRow(
        variant_id=variant_id or f"gid://shopify/ProductVariant/{sku}",
        sku=sku,
        name=f"Product {sku}",
        variant="Default",
        timeframe=Timeframe.D30,
        available=available,
        avg_daily_sales=avg_daily_sales,
        coverage_days=coverage,
        recommended_qty=qty,
        stock_value=stock_value if stock_value is not None else (unit_cost or 0.0) * available,
        unit_cost=unit_cost,
        sales=sales,
        sales_value=sales_value,
        insufficient_sales=False,
    )


@pytest.fixture
def scenario_candidates():
    """A: spend 5000 / score 10, B: 9000 / 8, C: 9000 / 5."""
    return [
        candidate("C", qty=90, sales_value=5),
        candidate("A", qty=50, sales_value=10),
        candidate("B", qty=90, sales_value=8),
    ]


# ── Greedy fill ────────────────────────────────────────────────────────


class TestAllocate:
    def test_greedy_fill_excludes_what_does_not_fit(self, scenario_candidates):
        plan = allocate(scenario_candidates, budget=10_000)

        assert [pick.sku for pick in plan.picks] == ["A"]
        assert plan.used_amount == 5000
        assert plan.excluded_count == 2
        assert plan.excluded_amount == 18_000
        assert plan.coverage_share == pytest.approx(5000 / 23_000)

    def test_first_pick_is_forced_over_budget(self):
        plan = allocate([candidate("BIG", qty=100, unit_cost=500.0)], budget=1000)

        assert [pick.sku for pick in plan.picks] == ["BIG"]
        assert plan.used_amount == 50_000
        assert plan.coverage_share == 1.0

    def test_budget_respected_after_first_pick(self, scenario_candidates):
        for budget in (1, 5000, 9999, 14_000, 14_001, 23_000, 50_000):
            plan = allocate(scenario_candidates, budget=budget)
            first = plan.picks[0].amount
            assert plan.used_amount <= max(budget, first)
            assert 0 <= plan.coverage_share <= 1

    def test_everything_fits(self, scenario_candidates):
        plan = allocate(scenario_candidates, budget=23_000)
        assert [pick.sku for pick in plan.picks] == ["A", "B", "C"]
        assert plan.excluded_count == 0
        assert plan.coverage_share == 1.0

    def test_empty_candidates(self):
        plan = allocate([], budget=18_000)
        assert plan.picks == []
        assert plan.used_amount == 0
        assert plan.excluded_amount == 0
        assert plan.coverage_share == 0.0

    def test_zero_budget_and_no_candidates_share_is_zero(self):
        assert allocate([], budget=0).coverage_share == 0.0

    def test_rows_without_reorder_are_ignored(self):
        plan = allocate([candidate("NONE", qty=0), candidate("ONE", qty=1)], budget=18_000)
        assert [pick.sku for pick in plan.picks] == ["ONE"]

    def test_zero_cost_rows_are_neither_picked_nor_excluded(self):
        free = candidate("FREE", qty=40, unit_cost=None, stock_value=0.0)
        plan = allocate([free, candidate("PAID", qty=5, unit_cost=10.0)], budget=18_000)

        assert [pick.sku for pick in plan.picks] == ["PAID"]
        assert plan.excluded_count == 0

    def test_idempotent(self, scenario_candidates):
        assert allocate(scenario_candidates, 12_000) == allocate(scenario_candidates, 12_000)

    def test_input_order_does_not_matter(self, scenario_candidates):
        assert allocate(scenario_candidates, 12_000) == allocate(list(reversed(scenario_candidates)), 12_000)

    def test_risk_tags(self):
        plan = allocate(
            [candidate("SHORT", qty=10, coverage=4.0), candidate("LOW", qty=10, coverage=25.0)],
            budget=18_000,
            shortage_threshold_days=10,
        )
        tags = {pick.sku: pick.risk for pick in plan.picks}
        assert tags == {"SHORT": RISK_STOCKOUT, "LOW": RISK_LOW_STOCK}

    def test_coverage_days_echoed(self):
        assert allocate([], budget=100, coverage_days=42).coverage_days == 42


# ── Ranking ────────────────────────────────────────────────────────────


class TestRanking:
    def test_score_descending(self, scenario_candidates):
        assert [item.row.sku for item in rank_candidates(scenario_candidates)] == ["A", "B", "C"]

    def test_ties_break_on_sku_then_variant_id(self):
        rows = [
            candidate("ZED", qty=5, sales_value=10),
            candidate("ALPHA", qty=5, sales_value=10, variant_id="v-2"),
            candidate("ALPHA", qty=5, sales_value=10, variant_id="v-1"),
        ]
        ranked = rank_candidates(rows)
        assert [(item.row.sku, item.row.variant_id) for item in ranked] == [
            ("ALPHA", "v-1"),
            ("ALPHA", "v-2"),
            ("ZED", "gid://shopify/ProductVariant/ZED"),
        ]

    def test_zero_coverage_gets_capped_risk(self):
        assert risk_score(0) == ZERO_COVERAGE_RISK
        assert risk_score(4) == 0.25

    def test_score_floors_importance_at_one(self):
        scored = score_candidate(candidate("X", qty=1, coverage=2.0, sales_value=0.2))
        assert scored.score == 0.5


# ── Fallback chains ────────────────────────────────────────────────────


class TestUnitCostChain:
    def test_explicit_cost(self):
        assert resolve_unit_cost(candidate("X", qty=1, unit_cost=7.5)) == 7.5

    def test_derived_from_stock_value(self):
        row = candidate("X", qty=1, unit_cost=None, available=4, stock_value=30.0)
        assert resolve_unit_cost(row) == 7.5

    def test_defaults_to_zero(self):
        row = candidate("X", qty=1, unit_cost=None, available=0, stock_value=0.0)
        assert resolve_unit_cost(row) == 0.0


class TestImportanceChain:
    def test_sales_value_first(self):
        row = candidate("X", qty=1, sales_value=120.0, sales=99)
        assert resolve_importance(row, 3.0) == 120.0

    def test_sales_times_cost(self):
        row = candidate("X", qty=1, unit_cost=None, sales=12)
        assert resolve_importance(row, 3.0) == 36.0

    def test_cost_weight_floored_at_one(self):
        row = candidate("X", qty=1, unit_cost=None, sales=12)
        assert resolve_importance(row, 0.25) == 12.0

    def test_velocity_fallback(self):
        row = candidate("X", qty=1, unit_cost=None, sales=0, avg_daily_sales=0.5)
        assert resolve_importance(row, 2.0) == 30.0
