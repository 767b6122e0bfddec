"""
Variant metrics data model.

Plain dataclasses shared by the sync orchestrator, the forecast engine,
the budget allocator and the reporting aggregator. Nothing in here does
I/O; the ORM rows in db.models are converted at the metric store boundary.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

# Placeholders for variants that appear in orders but not in the catalog
UNKNOWN_SKU = "Unknown SKU"
UNKNOWN_PRODUCT = "Unknown product"


class Timeframe(str, Enum):
    """Sales windows the dashboard can be viewed through."""

    D30 = "30d"
    D60 = "60d"
    D90 = "90d"

    @property
    def days(self) -> int:
        return int(self.value[:-1])


class OverstockSeverity(str, Enum):
    SEVERE = "severe"
    MILD = "mild"
    NORMAL = "normal"


@dataclass(frozen=True)
class SalesWindow:
    """Cumulative units sold over the trailing 30 / 60 / 90 days."""

    sales_30d: int = 0
    sales_60d: int = 0
    sales_90d: int = 0

    def for_timeframe(self, timeframe: Timeframe) -> int:
        return {
            Timeframe.D30: self.sales_30d,
            Timeframe.D60: self.sales_60d,
            Timeframe.D90: self.sales_90d,
        }[Timeframe(timeframe)]

    def is_monotonic(self) -> bool:
        """Wider windows should never hold fewer units (not enforced upstream)."""
        return self.sales_90d >= self.sales_60d >= self.sales_30d


@dataclass(frozen=True)
class VariantInventory:
    """One variant as reported by the catalog / inventory source."""

    id: str
    sku: str
    product_name: str
    variant_title: str
    available: int
    unit_cost: float | None = None


@dataclass(frozen=True)
class OrderLine:
    """A paid order line, flattened to the fields the sales buckets need."""

    variant_id: str
    quantity: int
    created_at: datetime


@dataclass(frozen=True)
class VariantMetric:
    """Merged inventory + sales snapshot for one (shop, variant)."""

    id: str
    sku: str
    product_name: str
    variant_title: str
    available: int
    unit_cost: float | None
    sales: SalesWindow
    last_calculated: datetime | None = None
    # True only for the synthetic baseline served when nothing real exists
    is_sample: bool = False


@dataclass(frozen=True)
class DashboardRow:
    """Per-variant, per-timeframe derived figures. Never persisted."""

    variant_id: str
    sku: str
    name: str
    variant: str
    timeframe: Timeframe
    available: int
    avg_daily_sales: float
    coverage_days: float
    recommended_qty: int
    stock_value: float
    unit_cost: float | None
    sales: int
    sales_value: float | None
    insufficient_sales: bool


@dataclass(frozen=True)
class BudgetPick:
    sku: str
    name: str
    qty: int
    amount: float
    risk: str


@dataclass(frozen=True)
class BudgetPlan:
    budget: float
    coverage_days: float
    used_amount: float
    excluded_amount: float
    coverage_share: float
    picks: list[BudgetPick] = field(default_factory=list)
    excluded_count: int = 0
