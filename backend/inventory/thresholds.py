"""
Threshold configuration for the forecast engine and reporting.

ThresholdSettings is immutable; a shop with no saved settings gets the
defaults below. Engine constants that are not per-shop tunables live
at module level.
"""

from dataclasses import dataclass, fields, replace
from typing import Any

# Velocity floor used as coverage divisor so slow movers with stock don't blow up
MIN_DAILY_SALES = 0.1
# "Infinite runway" is capped so it does not dominate sorts and medians
MAX_COVERAGE_DAYS = 999.0
# Floor for the replenishment horizon, and the horizon reported on budget plans
DEFAULT_TARGET_COVERAGE = 30
# Risk score for rows with zero coverage (instead of 1/0)
ZERO_COVERAGE_RISK = 2.0


@dataclass(frozen=True)
class ThresholdSettings:
    """Per-shop thresholds with documented defaults."""

    shortage_threshold_days: float = 10
    overstock_threshold_days: float = 90
    mild_overstock_threshold_days: float = 60
    safety_days: float = 7
    lead_time_days: float = 14
    history_window_days: int = 30
    min_recommended_qty: int = 5
    min_sales_for_forecast: int = 10
    digest_frequency: str = "weekly"
    digest_send_hour: int = 9
    digest_daily_enabled: bool = False
    digest_weekly_enabled: bool = True
    email_recipients: str = ""
    slack_webhook: str = ""
    slack_enabled: bool = False

    @property
    def target_coverage_days(self) -> float:
        return target_coverage_days(self.lead_time_days, self.safety_days)

    def merged(self, overrides: dict[str, Any]) -> "ThresholdSettings":
        """Return a copy with every non-None override applied."""
        names = {f.name for f in fields(self)}
        known = {key: value for key, value in overrides.items() if value is not None and key in names}
        return replace(self, **known)


DEFAULT_THRESHOLDS = ThresholdSettings()


def target_coverage_days(lead_time_days: float, safety_days: float) -> float:
    """Replenishment horizon: lead time + safety buffer, never below 30 days."""
    return max(lead_time_days + safety_days, DEFAULT_TARGET_COVERAGE)
