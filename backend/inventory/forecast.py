"""
Forecast Engine — coverage days, reorder quantity and risk classification.

Turns one VariantMetric into a DashboardRow for a chosen sales window.
Everything here is pure: no I/O, no clock, no exceptions for degenerate
input (zero stock, zero sales and missing cost all have explicit branches).

Algorithm:
  avg_daily_sales   = sales_in_window / window_days    (0 below the forecast floor)
  coverage_days     = available / max(avg_daily_sales, MIN_DAILY_SALES)
                      rounded to 0.1, capped at MAX_COVERAGE_DAYS, 0 when out of stock
  recommended_qty   = ceil(avg_daily_sales × target_coverage − available), floored at 0
  target_coverage   = max(lead_time + safety_days, 30)

Classification:
  shortage  = coverage ≤ shortage threshold  OR  recommended_qty ≥ min recommended qty
  overstock = severe (no sales, or coverage ≥ overstock threshold)
              → mild (coverage ≥ mild threshold) → normal; in-stock rows only
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass

from inventory.thresholds import (
    DEFAULT_TARGET_COVERAGE,
    DEFAULT_THRESHOLDS,
    MAX_COVERAGE_DAYS,
    MIN_DAILY_SALES,
    ThresholdSettings,
)
from inventory.types import DashboardRow, OverstockSeverity, Timeframe, VariantMetric

DEFAULT_MIN_SALES_FOR_FORECAST = DEFAULT_THRESHOLDS.min_sales_for_forecast
DEFAULT_MIN_RECOMMENDED_QTY = DEFAULT_THRESHOLDS.min_recommended_qty


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Divide, returning `default` for a zero or non-finite denominator/result."""
    if denominator == 0 or not math.isfinite(denominator):
        return default
    result = numerator / denominator
    return result if math.isfinite(result) else default


def round1(value: float) -> float:
    """Round half away from zero to one decimal (display rounding)."""
    scaled = abs(value) * 10
    rounded = math.floor(scaled + 0.5) / 10
    return math.copysign(rounded, value) if value else 0.0


def compute_coverage(available: int, avg_daily_sales: float) -> float:
    """Days of stock at the given velocity."""
    if available <= 0:
        return 0.0
    adjusted_sales = max(avg_daily_sales, MIN_DAILY_SALES)
    raw_coverage = safe_divide(available, adjusted_sales, 0.0)
    return min(max(0.0, round1(raw_coverage)), MAX_COVERAGE_DAYS)


def recommend_quantity(avg_daily_sales: float, target_coverage_days: float, available: int) -> int:
    """Units needed to reach the target horizon. No velocity means no reorder."""
    if avg_daily_sales <= 0:
        return 0
    return max(0, math.ceil(avg_daily_sales * target_coverage_days - available))


def build_row(
    metric: VariantMetric,
    timeframe: Timeframe | str,
    target_coverage_days: float = DEFAULT_TARGET_COVERAGE,
    min_sales_for_forecast: int = DEFAULT_MIN_SALES_FOR_FORECAST,
) -> DashboardRow:
    """Derive the dashboard figures for one variant over one sales window."""
    timeframe = Timeframe(timeframe)
    sales = metric.sales.for_timeframe(timeframe)
    has_enough_sales = sales >= min_sales_for_forecast
    # Unrounded velocity drives coverage and reorder math; only display is rounded
    avg_daily_sales_raw = safe_divide(sales, timeframe.days, 0.0) if has_enough_sales else 0.0
    coverage_days = compute_coverage(metric.available, avg_daily_sales_raw)
    unit_cost = metric.unit_cost

    return DashboardRow(
        variant_id=metric.id,
        sku=metric.sku,
        name=metric.product_name,
        variant=metric.variant_title,
        timeframe=timeframe,
        available=metric.available,
        avg_daily_sales=round1(avg_daily_sales_raw),
        coverage_days=coverage_days,
        recommended_qty=recommend_quantity(avg_daily_sales_raw, target_coverage_days, metric.available),
        stock_value=(unit_cost or 0.0) * metric.available,
        unit_cost=unit_cost,
        sales=sales,
        sales_value=unit_cost * sales if unit_cost is not None else None,
        insufficient_sales=not has_enough_sales,
    )


def build_rows(
    metrics: Iterable[VariantMetric],
    timeframe: Timeframe | str,
    thresholds: ThresholdSettings = DEFAULT_THRESHOLDS,
) -> list[DashboardRow]:
    """build_row over a whole catalog using a shop's thresholds."""
    target = thresholds.target_coverage_days
    return [build_row(metric, timeframe, target, thresholds.min_sales_for_forecast) for metric in metrics]


def is_shortage(
    row: DashboardRow,
    shortage_threshold_days: float = DEFAULT_THRESHOLDS.shortage_threshold_days,
    min_recommended_qty: int = DEFAULT_MIN_RECOMMENDED_QTY,
) -> bool:
    """Short runway, or a reorder big enough to matter (MOQ-sized bulk buys)."""
    return row.coverage_days <= shortage_threshold_days or row.recommended_qty >= min_recommended_qty


def classify_overstock(
    available: int,
    sales: int,
    coverage_days: float,
    overstock_threshold_days: float = DEFAULT_THRESHOLDS.overstock_threshold_days,
    mild_overstock_threshold_days: float = DEFAULT_THRESHOLDS.mild_overstock_threshold_days,
) -> OverstockSeverity | None:
    """Three-level severity; None when there is no stock to be over on."""
    if available <= 0:
        return None
    if sales == 0 or coverage_days >= overstock_threshold_days:
        return OverstockSeverity.SEVERE
    if coverage_days >= mild_overstock_threshold_days:
        return OverstockSeverity.MILD
    return OverstockSeverity.NORMAL


@dataclass(frozen=True)
class OverstockRow:
    """30-day velocity view used by the overstock report."""

    variant_id: str
    sku: str
    name: str
    variant: str
    available: int
    sales_30d: int
    avg_daily_sales: float
    coverage_days: float
    stock_value: float
    unit_cost: float | None
    severity: OverstockSeverity


def build_overstock_row(
    metric: VariantMetric,
    thresholds: ThresholdSettings = DEFAULT_THRESHOLDS,
) -> OverstockRow | None:
    """
    Severity row for one variant, or None when it holds no stock.

    Uses raw 30-day velocity (no forecast floor): a slow mover with a few
    sales is exactly what this view is meant to surface.
    """
    sales_30d = metric.sales.sales_30d
    avg_daily_sales = safe_divide(sales_30d, Timeframe.D30.days, 0.0)
    coverage_days = compute_coverage(metric.available, avg_daily_sales)
    severity = classify_overstock(
        metric.available,
        sales_30d,
        coverage_days,
        thresholds.overstock_threshold_days,
        thresholds.mild_overstock_threshold_days,
    )
    if severity is None:
        return None

    return OverstockRow(
        variant_id=metric.id,
        sku=metric.sku,
        name=metric.product_name,
        variant=metric.variant_title,
        available=metric.available,
        sales_30d=sales_30d,
        avg_daily_sales=avg_daily_sales,
        coverage_days=coverage_days,
        stock_value=(metric.unit_cost or 0.0) * metric.available,
        unit_cost=metric.unit_cost,
        severity=severity,
    )
