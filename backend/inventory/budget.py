"""
Budget Allocator — greedy, budget-capped replenishment picks.

Ranks reorder candidates by risk × importance and funds them in order
until the budget is spent.

Algorithm:
  unit_cost  = explicit cost → stock_value / available → 0
  spend      = recommended_qty × unit_cost
  risk       = 1 / coverage_days            (ZERO_COVERAGE_RISK when coverage is 0)
  importance = sales_value → sales × max(cost, 1) → avg_daily_sales × 30 × max(cost, 1)
  score      = risk × max(importance, 1)

Ordering is score descending, then SKU ascending, then variant id, so the
same input always yields the same plan. The first positive-spend
candidate is always admitted even when it alone exceeds the budget.

Candidates without any cost resolve to unit_cost 0, which makes them
"free" (zero spend) and therefore skipped by the greedy fill; the
missing-cost reminder on the dashboard is how merchants find them.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TypeVar

from inventory.thresholds import (
    DEFAULT_TARGET_COVERAGE,
    DEFAULT_THRESHOLDS,
    ZERO_COVERAGE_RISK,
)
from inventory.types import BudgetPick, BudgetPlan, DashboardRow

T = TypeVar("T")

RISK_STOCKOUT = "stockout_risk"
RISK_LOW_STOCK = "low_stock"


def first_present(*suppliers: Callable[[], T | None], default: T) -> T:
    """Return the first supplier result that is not None."""
    for supplier in suppliers:
        value = supplier()
        if value is not None:
            return value
    return default


def resolve_unit_cost(row: DashboardRow) -> float:
    return first_present(
        lambda: row.unit_cost,
        lambda: row.stock_value / row.available if row.stock_value and row.available > 0 else None,
        default=0.0,
    )


def resolve_importance(row: DashboardRow, unit_cost: float) -> float:
    cost_weight = max(unit_cost, 1.0)
    return first_present(
        lambda: row.sales_value,
        lambda: row.sales * cost_weight if row.sales else None,
        lambda: row.avg_daily_sales * 30 * cost_weight,
        default=0.0,
    )


def risk_score(coverage_days: float) -> float:
    """Shorter runway ranks higher; zero runway is capped instead of infinite."""
    return 1.0 / coverage_days if coverage_days > 0 else ZERO_COVERAGE_RISK


@dataclass(frozen=True)
class ScoredCandidate:
    row: DashboardRow
    unit_cost: float
    spend: float
    score: float


def score_candidate(row: DashboardRow) -> ScoredCandidate:
    unit_cost = resolve_unit_cost(row)
    importance = resolve_importance(row, unit_cost)
    return ScoredCandidate(
        row=row,
        unit_cost=unit_cost,
        spend=row.recommended_qty * unit_cost,
        score=risk_score(row.coverage_days) * max(importance, 1.0),
    )


def rank_candidates(candidates: Iterable[DashboardRow]) -> list[ScoredCandidate]:
    """Score rows that need a reorder and sort them best-first."""
    scored = [score_candidate(row) for row in candidates if row.recommended_qty > 0]
    return sorted(scored, key=lambda item: (-item.score, item.row.sku, item.row.variant_id))


def allocate(
    candidates: Iterable[DashboardRow],
    budget: float,
    coverage_days: float = DEFAULT_TARGET_COVERAGE,
    shortage_threshold_days: float = DEFAULT_THRESHOLDS.shortage_threshold_days,
) -> BudgetPlan:
    """
    Build a budget-respecting pick list.

    `coverage_days` is the horizon the recommended quantities were sized for;
    it is echoed on the plan. `shortage_threshold_days` only selects the
    risk tag of each pick.
    """
    ranked = rank_candidates(candidates)

    picks: list[BudgetPick] = []
    used = 0.0
    excluded_amount = 0.0
    excluded_count = 0

    for item in ranked:
        if item.spend <= 0:
            continue
        if used + item.spend <= budget or not picks:
            used += item.spend
            picks.append(
                BudgetPick(
                    sku=item.row.sku,
                    name=item.row.name,
                    qty=item.row.recommended_qty,
                    amount=item.spend,
                    risk=RISK_STOCKOUT if item.row.coverage_days <= shortage_threshold_days else RISK_LOW_STOCK,
                )
            )
        else:
            excluded_amount += item.spend
            excluded_count += 1

    total_pool = (used + excluded_amount) or budget
    coverage_share = min(1.0, used / total_pool) if total_pool > 0 else 0.0

    return BudgetPlan(
        budget=budget,
        coverage_days=coverage_days,
        used_amount=used,
        excluded_amount=excluded_amount,
        coverage_share=coverage_share,
        picks=picks,
        excluded_count=excluded_count,
    )
