"""
Settings Provider — per-shop thresholds and digest preferences.

Raw form input is validated here and nowhere else; everything past this
module works with an immutable ThresholdSettings. A shop without a saved
row gets DEFAULT_THRESHOLDS.
"""

import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import ShopSetting
from inventory.errors import SettingsValidationError
from inventory.thresholds import DEFAULT_THRESHOLDS, ThresholdSettings

logger = structlog.get_logger()

_LEADING_DAYS = re.compile(r"^\s*(\d+)")

# Columns shared one-to-one between shop_settings and ThresholdSettings
_THRESHOLD_COLUMNS = (
    "shortage_threshold_days",
    "overstock_threshold_days",
    "mild_overstock_threshold_days",
    "safety_days",
    "lead_time_days",
    "history_window_days",
    "digest_frequency",
    "digest_send_hour",
    "digest_daily_enabled",
    "digest_weekly_enabled",
    "email_recipients",
    "slack_webhook",
    "slack_enabled",
)


class LocationSelection(BaseModel):
    id: str
    selected: bool


class SettingsForm(BaseModel):
    """Validated settings submission."""

    shortage_threshold_days: float = Field(DEFAULT_THRESHOLDS.shortage_threshold_days, gt=0)
    overstock_threshold_days: float = Field(DEFAULT_THRESHOLDS.overstock_threshold_days, gt=0)
    mild_overstock_threshold_days: float = Field(DEFAULT_THRESHOLDS.mild_overstock_threshold_days, gt=0)
    safety_days: float = Field(DEFAULT_THRESHOLDS.safety_days, ge=0)
    lead_time_days: float = Field(DEFAULT_THRESHOLDS.lead_time_days, ge=0)
    history_window: str = f"{DEFAULT_THRESHOLDS.history_window_days} 天"
    digest_frequency: Literal["daily", "weekly", "off"] = "weekly"
    digest_send_hour: int = Field(DEFAULT_THRESHOLDS.digest_send_hour, ge=0, le=23)
    digest_daily_enabled: bool = DEFAULT_THRESHOLDS.digest_daily_enabled
    digest_weekly_enabled: bool = DEFAULT_THRESHOLDS.digest_weekly_enabled
    email_recipients: str = ""
    slack_webhook: str = ""
    slack_enabled: bool = False
    locations: list[LocationSelection] = Field(default_factory=list)

    @property
    def history_window_days(self) -> int:
        return parse_history_window_days(self.history_window)

    def to_thresholds(self) -> ThresholdSettings:
        values = self.model_dump(exclude={"history_window", "locations"})
        values["history_window_days"] = self.history_window_days
        return DEFAULT_THRESHOLDS.merged(values)


def parse_history_window_days(text: str | None, default: int = DEFAULT_THRESHOLDS.history_window_days) -> int:
    """Leading integer of a window label ("60 天", "60d", "60") or `default` when blank."""
    if text is None or not str(text).strip():
        return default
    match = _LEADING_DAYS.match(str(text))
    if match is None:
        raise ValueError(f"History window must start with a number of days, got {text!r}")
    return int(match.group(1))


def parse_settings(raw: Mapping[str, Any]) -> SettingsForm:
    """
    Validate a raw settings mapping.

    Missing or blank fields fall back to defaults. Raises
    SettingsValidationError carrying one message per offending field.
    """
    data = {key: value for key, value in raw.items() if value is not None and value != ""}
    try:
        form = SettingsForm.model_validate(data)
    except ValidationError as exc:
        errors: dict[str, str] = {}
        for issue in exc.errors():
            key = str(issue["loc"][0]) if issue["loc"] else "__root__"
            errors.setdefault(key, issue["msg"])
        raise SettingsValidationError(errors) from exc

    errors = {}
    try:
        days = form.history_window_days
        if days <= 0:
            errors["history_window"] = "History window must be at least one day"
    except ValueError as exc:
        errors["history_window"] = str(exc)
    if form.mild_overstock_threshold_days > form.overstock_threshold_days:
        errors["mild_overstock_threshold_days"] = "Mild overstock threshold cannot exceed the overstock threshold"
    if errors:
        raise SettingsValidationError(errors)
    return form


def row_to_thresholds(row: ShopSetting) -> ThresholdSettings:
    return DEFAULT_THRESHOLDS.merged({column: getattr(row, column) for column in _THRESHOLD_COLUMNS})


class SettingsProvider:
    """shop_settings table access for one request's session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def read(self, shop_domain: str) -> ThresholdSettings | None:
        """Saved thresholds, or None when the shop never saved any."""
        row = await self.db.get(ShopSetting, shop_domain)
        if row is None:
            return None
        return row_to_thresholds(row)

    async def read_or_default(self, shop_domain: str) -> ThresholdSettings:
        return await self.read(shop_domain) or DEFAULT_THRESHOLDS

    async def saved_locations(self, shop_domain: str) -> list[dict] | None:
        row = await self.db.get(ShopSetting, shop_domain)
        if row is None or row.locations is None:
            return None
        return list(row.locations)

    async def save(self, shop_domain: str, form: SettingsForm) -> ThresholdSettings:
        """Upsert the shop's row from a validated form."""
        thresholds = form.to_thresholds()
        try:
            row = await self.db.get(ShopSetting, shop_domain)
            if row is None:
                row = ShopSetting(shop_domain=shop_domain, created_at=datetime.utcnow())
                self.db.add(row)
            for column in _THRESHOLD_COLUMNS:
                setattr(row, column, getattr(thresholds, column))
            row.locations = [location.model_dump() for location in form.locations]
            row.updated_at = datetime.utcnow()
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("settings.saved", shop=shop_domain, digest_frequency=thresholds.digest_frequency)
        return thresholds
