"""
Reporting Aggregator — KPI summaries, top-N risk lists and page payloads.

Pure builders over Forecast Engine output. Callers load the metrics,
thresholds and sync-log timestamps; nothing in this module does I/O.

Payloads:
  - build_timeframe:       KPIs + shortage top 5 + overstock top 5 for one window
  - build_dashboard:       30/60/90-day timeframes, budget plan, reminders, digest status
  - build_replenishment:   30-day reorder table + budget plan
  - build_overstock:       severity table + capital-at-risk summary
  - build_digest_preview:  what the periodic digest would contain
  - build_variant_detail:  per-variant velocity and coverage across windows
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from inventory.budget import allocate
from inventory.forecast import (
    OverstockRow,
    build_overstock_row,
    build_rows,
    compute_coverage,
    is_shortage,
    round1,
    safe_divide,
)
from inventory.thresholds import DEFAULT_THRESHOLDS, ThresholdSettings
from inventory.types import (
    BudgetPlan,
    DashboardRow,
    OverstockSeverity,
    Timeframe,
    VariantMetric,
)

TOP_N = 5
DIGEST_TITLE = "Inventory Radar weekly digest: stockout risks & overstock"
FALLBACK_LOCATIONS = [
    {"id": "us-east", "name": "US East (primary)"},
    {"id": "eu-fulfillment", "name": "EU Fulfillment"},
    {"id": "pop-up", "name": "Pop-up Store"},
]
# Locations pre-selected when the shop has not picked any
DEFAULT_SELECTED_LOCATIONS = 2


def median(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return round1((ordered[mid - 1] + ordered[mid]) / 2)
    return ordered[mid]


def format_currency(value: float) -> str:
    """Whole-dollar USD string, e.g. $18,000."""
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.0f}"


# ─── Timeframe ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class KpiCard:
    label: str
    value: str
    helper: str
    tone: str = "neutral"  # positive, warning, neutral


@dataclass(frozen=True)
class TimeframeKpis:
    sku_count: int
    stock_value: float
    median_coverage_days: float
    shortage_count: int
    overstock_count: int

    @property
    def risk_counter(self) -> str:
        return f"{self.shortage_count} shortage / {self.overstock_count} overstock"


@dataclass(frozen=True)
class TimeframeReport:
    timeframe: Timeframe
    kpis: TimeframeKpis
    cards: list[KpiCard]
    shortage: list[DashboardRow]
    overstock: list[DashboardRow]
    rows: list[DashboardRow]


def shortage_rows(rows: Sequence[DashboardRow], thresholds: ThresholdSettings = DEFAULT_THRESHOLDS) -> list[DashboardRow]:
    return [
        row for row in rows if is_shortage(row, thresholds.shortage_threshold_days, thresholds.min_recommended_qty)
    ]


def build_timeframe(
    rows: Sequence[DashboardRow],
    timeframe: Timeframe | str,
    thresholds: ThresholdSettings = DEFAULT_THRESHOLDS,
) -> TimeframeReport:
    """KPIs and the two top-5 lists for one sales window."""
    timeframe = Timeframe(timeframe)
    # sorted() is stable, so ties keep catalog order
    shortage = sorted(shortage_rows(rows, thresholds), key=lambda row: row.coverage_days)[:TOP_N]
    overstock = sorted(
        (row for row in rows if row.coverage_days >= thresholds.overstock_threshold_days),
        key=lambda row: row.stock_value,
        reverse=True,
    )[:TOP_N]

    kpis = TimeframeKpis(
        sku_count=len(rows),
        stock_value=sum(row.stock_value for row in rows),
        median_coverage_days=median([row.coverage_days for row in rows]),
        shortage_count=len(shortage),
        overstock_count=len(overstock),
    )
    cards = [
        KpiCard("SKUs in scope", f"{kpis.sku_count}", "Variants with sellable stock", "positive"),
        KpiCard("Stock value (cost)", format_currency(kpis.stock_value), "SKUs with a unit cost"),
        KpiCard(
            "Coverage days (median)",
            f"{kpis.median_coverage_days:g} days",
            f"Window: {timeframe.days}-day sales",
        ),
        KpiCard(
            "At-risk SKUs",
            kpis.risk_counter,
            f"Thresholds: <={thresholds.shortage_threshold_days:g} / >={thresholds.overstock_threshold_days:g} days",
            "warning",
        ),
    ]
    return TimeframeReport(
        timeframe=timeframe,
        kpis=kpis,
        cards=cards,
        shortage=shortage,
        overstock=overstock,
        rows=list(rows),
    )


# ─── Dashboard ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Reminder:
    title: str
    action: str
    tone: str


@dataclass(frozen=True)
class DigestStatus:
    window: str
    cadence: str
    channels: str
    last_success: datetime | None
    last_failure: datetime | None
    last_error: str | None
    status: str  # ok, warning


@dataclass(frozen=True)
class Location:
    id: str
    name: str
    selected: bool


@dataclass
class DashboardPayload:
    timeframes: dict[str, TimeframeReport]
    recommendation_pool: list[DashboardRow]
    budget_plan: BudgetPlan
    reminders: list[Reminder]
    missing_cost_count: int
    digest: DigestStatus
    locations: list[Location]
    target_coverages: list[float]
    safety_days: float
    lead_time_days: float
    history_window_days: int
    last_calculated: datetime | None
    is_sample: bool = False


def count_missing_cost(metrics: Sequence[VariantMetric]) -> int:
    return sum(1 for metric in metrics if not metric.unit_cost)


def build_reminders(metrics: Sequence[VariantMetric]) -> list[Reminder]:
    missing = count_missing_cost(metrics)
    return [
        Reminder(
            title=f"{missing} SKUs are missing a unit cost" if missing else "Unit costs are complete",
            action="Import a cost CSV" if missing else "Keep costs up to date",
            tone="warning" if missing else "neutral",
        ),
        Reminder(
            title="Webhook data sync",
            action="orders/paid and inventory_levels/update subscribed",
            tone="neutral",
        ),
    ]


def build_digest_status(
    thresholds: ThresholdSettings,
    last_success: datetime | None = None,
    last_failure: datetime | None = None,
    last_error: str | None = None,
) -> DigestStatus:
    hour = f"{thresholds.digest_send_hour}:00"
    if thresholds.digest_frequency == "daily":
        cadence = f"Daily {hour}"
    elif thresholds.digest_frequency == "off":
        cadence = "Off"
    else:
        cadence = f"Weekly {hour}"

    email = thresholds.digest_daily_enabled or thresholds.digest_weekly_enabled
    channels = ["Email"] if email else []
    if thresholds.slack_enabled:
        channels.append("Slack")

    return DigestStatus(
        window=f"{thresholds.history_window_days}-day sales window",
        cadence=cadence,
        channels=" + ".join(channels) or "None",
        last_success=last_success,
        last_failure=last_failure,
        last_error=last_error,
        status="warning" if thresholds.digest_frequency == "off" else "ok",
    )


def resolve_locations(
    fetched: Sequence[dict] | None,
    saved_selection: Sequence[dict] | None = None,
) -> list[Location]:
    """Shop locations with selection flags; fixed fallback when none could be fetched."""
    source = list(fetched) if fetched else FALLBACK_LOCATIONS
    selected_ids = {item["id"] for item in saved_selection or [] if item.get("selected")}
    return [
        Location(
            id=item["id"],
            name=item["name"],
            selected=item["id"] in selected_ids if selected_ids else index < DEFAULT_SELECTED_LOCATIONS,
        )
        for index, item in enumerate(source)
    ]


def build_dashboard(
    metrics: Sequence[VariantMetric],
    thresholds: ThresholdSettings,
    *,
    budget: float,
    locations: list[Location],
    digest: DigestStatus,
    last_calculated: datetime | None,
) -> DashboardPayload:
    target = thresholds.target_coverage_days
    rows_by_timeframe = {timeframe: build_rows(metrics, timeframe, thresholds) for timeframe in Timeframe}
    timeframes = {
        timeframe.value: build_timeframe(rows, timeframe, thresholds) for timeframe, rows in rows_by_timeframe.items()
    }
    rows_30d = rows_by_timeframe[Timeframe.D30]

    return DashboardPayload(
        timeframes=timeframes,
        recommendation_pool=rows_30d,
        budget_plan=allocate(
            shortage_rows(rows_30d, thresholds),
            budget,
            coverage_days=target,
            shortage_threshold_days=thresholds.shortage_threshold_days,
        ),
        reminders=build_reminders(metrics),
        missing_cost_count=count_missing_cost(metrics),
        digest=digest,
        locations=locations,
        target_coverages=[target, target + 15, target + 30],
        safety_days=thresholds.safety_days,
        lead_time_days=thresholds.lead_time_days,
        history_window_days=thresholds.history_window_days,
        last_calculated=last_calculated,
        is_sample=any(metric.is_sample for metric in metrics),
    )


# ─── Replenishment ─────────────────────────────────────────────────────────


NOTE_INSUFFICIENT_SALES = "Not enough sales to forecast"
NOTE_SHORTAGE_RISK = "Stockout risk"


@dataclass(frozen=True)
class ReplenishmentRow:
    variant_id: str
    sku: str
    name: str
    variant: str
    location: str
    available: int
    avg_daily_sales: float
    coverage_days: float
    recommended_qty: int
    target_coverage: float
    unit_cost: float
    note: str | None = None


@dataclass
class ReplenishmentPayload:
    rows: list[ReplenishmentRow]
    budget_plan: BudgetPlan
    missing_cost_count: int
    locations: list[Location]
    safety_days: float
    lead_time_days: float
    shortage_threshold_days: float
    history_window_days: int
    target_coverage_days: float


def build_replenishment(
    metrics: Sequence[VariantMetric],
    thresholds: ThresholdSettings,
    *,
    budget: float,
    locations: list[Location],
) -> ReplenishmentPayload:
    target = thresholds.target_coverage_days
    rows_30d = build_rows(metrics, Timeframe.D30, thresholds)
    primary = next((location for location in locations if location.selected), locations[0] if locations else None)
    location_name = primary.name if primary else "All included locations"

    rows: list[ReplenishmentRow] = []
    for row in rows_30d:
        if row.available <= 0 and row.recommended_qty <= 0:
            continue
        if row.insufficient_sales:
            note = NOTE_INSUFFICIENT_SALES
        elif row.coverage_days <= thresholds.shortage_threshold_days:
            note = NOTE_SHORTAGE_RISK
        else:
            note = None
        rows.append(
            ReplenishmentRow(
                variant_id=row.variant_id,
                sku=row.sku,
                name=row.name,
                variant=row.variant,
                location=location_name,
                available=row.available,
                avg_daily_sales=row.avg_daily_sales,
                coverage_days=row.coverage_days,
                recommended_qty=row.recommended_qty,
                target_coverage=target,
                unit_cost=row.unit_cost or 0.0,
                note=note,
            )
        )

    return ReplenishmentPayload(
        rows=rows,
        budget_plan=allocate(
            shortage_rows(rows_30d, thresholds),
            budget,
            coverage_days=target,
            shortage_threshold_days=thresholds.shortage_threshold_days,
        ),
        missing_cost_count=count_missing_cost(metrics),
        locations=locations,
        safety_days=thresholds.safety_days,
        lead_time_days=thresholds.lead_time_days,
        shortage_threshold_days=thresholds.shortage_threshold_days,
        history_window_days=thresholds.history_window_days,
        target_coverage_days=target,
    )


# ─── Overstock ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class OverstockSummary:
    overstock_count: int
    severe_count: int
    total_stock_value: float
    severe_stock_value: float


@dataclass
class OverstockPayload:
    rows: list[OverstockRow]
    summary: OverstockSummary
    overstock_threshold_days: float
    mild_overstock_threshold_days: float
    last_calculated: datetime | None = None


def build_overstock(
    metrics: Sequence[VariantMetric],
    thresholds: ThresholdSettings,
    last_calculated: datetime | None = None,
) -> OverstockPayload:
    rows = [row for row in (build_overstock_row(metric, thresholds) for metric in metrics) if row is not None]
    severe = [row for row in rows if row.severity == OverstockSeverity.SEVERE]
    summary = OverstockSummary(
        overstock_count=sum(1 for row in rows if row.coverage_days >= thresholds.overstock_threshold_days),
        severe_count=len(severe),
        total_stock_value=sum(row.stock_value for row in rows),
        severe_stock_value=sum(row.stock_value for row in severe),
    )
    return OverstockPayload(
        rows=rows,
        summary=summary,
        overstock_threshold_days=thresholds.overstock_threshold_days,
        mild_overstock_threshold_days=thresholds.mild_overstock_threshold_days,
        last_calculated=last_calculated,
    )


# ─── Digest ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DigestSummary:
    inventory_value: str
    shortage_count: int
    overstock_count: int
    updated_at: datetime


@dataclass
class DigestPreview:
    title: str
    summary: DigestSummary
    shortages: list[DashboardRow] = field(default_factory=list)
    overstocks: list[DashboardRow] = field(default_factory=list)


def build_digest_preview(
    metrics: Sequence[VariantMetric],
    thresholds: ThresholdSettings,
    generated_at: datetime,
) -> DigestPreview:
    report = build_timeframe(build_rows(metrics, Timeframe.D30, thresholds), Timeframe.D30, thresholds)
    listed_value = sum(row.stock_value for row in report.shortage) + sum(row.stock_value for row in report.overstock)
    return DigestPreview(
        title=DIGEST_TITLE,
        summary=DigestSummary(
            inventory_value=format_currency(listed_value),
            shortage_count=len(report.shortage),
            overstock_count=len(report.overstock),
            updated_at=generated_at,
        ),
        shortages=report.shortage,
        overstocks=report.overstock,
    )


# ─── Variant detail ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class VariantDetail:
    variant_id: str
    sku: str
    name: str
    variant: str
    available: int
    unit_cost: float | None
    avg_daily_sales: dict[str, float]
    coverage_days: dict[str, float]
    sales: dict[str, int]
    is_sample: bool = False


def find_variant(metrics: Sequence[VariantMetric], key: str) -> VariantMetric | None:
    """Match by variant id, then SKU, then fall back to the first variant."""
    for metric in metrics:
        if metric.id == key:
            return metric
    for metric in metrics:
        if metric.sku == key:
            return metric
    return metrics[0] if metrics else None


def build_variant_detail(metrics: Sequence[VariantMetric], key: str) -> VariantDetail | None:
    metric = find_variant(metrics, key)
    if metric is None:
        return None

    avg_daily_sales: dict[str, float] = {}
    coverage: dict[str, float] = {}
    sales: dict[str, int] = {}
    for timeframe in Timeframe:
        units = metric.sales.for_timeframe(timeframe)
        velocity = safe_divide(units, timeframe.days, 0.0)
        sales[timeframe.value] = units
        avg_daily_sales[timeframe.value] = round1(velocity)
        coverage[timeframe.value] = compute_coverage(metric.available, velocity)

    return VariantDetail(
        variant_id=metric.id,
        sku=metric.sku,
        name=metric.product_name,
        variant=metric.variant_title,
        available=metric.available,
        unit_cost=metric.unit_cost,
        avg_daily_sales=avg_daily_sales,
        coverage_days=coverage,
        sales=sales,
        is_sample=metric.is_sample,
    )
