"""
Tests for the settings boundary and the Settings Provider.
"""

import pytest

from conftest import SHOP
from inventory.errors import SettingsValidationError
from inventory.settings import SettingsProvider, parse_history_window_days, parse_settings
from inventory.thresholds import DEFAULT_THRESHOLDS, ThresholdSettings


class TestThresholdDefaults:
    def test_documented_defaults(self):
        assert DEFAULT_THRESHOLDS.shortage_threshold_days == 10
        assert DEFAULT_THRESHOLDS.overstock_threshold_days == 90
        assert DEFAULT_THRESHOLDS.mild_overstock_threshold_days == 60
        assert DEFAULT_THRESHOLDS.safety_days == 7
        assert DEFAULT_THRESHOLDS.lead_time_days == 14
        assert DEFAULT_THRESHOLDS.min_recommended_qty == 5
        assert DEFAULT_THRESHOLDS.min_sales_for_forecast == 10
        assert DEFAULT_THRESHOLDS.target_coverage_days == 30

    def test_immutable(self):
        with pytest.raises(AttributeError):
            DEFAULT_THRESHOLDS.shortage_threshold_days = 3

    def test_merged_skips_none_and_unknown_keys(self):
        merged = DEFAULT_THRESHOLDS.merged({"safety_days": None, "lead_time_days": 40, "target_coverage_days": 1})
        assert merged.safety_days == 7
        assert merged.lead_time_days == 40
        assert merged.target_coverage_days == 47


class TestHistoryWindow:
    @pytest.mark.parametrize(("text", "expected"), [("60 天", 60), ("90d", 90), ("45", 45), ("", 30), (None, 30)])
    def test_parses_leading_days(self, text, expected):
        assert parse_history_window_days(text) == expected

    def test_rejects_text_without_days(self):
        with pytest.raises(ValueError):
            parse_history_window_days("last quarter")


class TestParseSettings:
    def test_blank_form_gives_defaults(self):
        form = parse_settings({})
        assert form.to_thresholds() == DEFAULT_THRESHOLDS

    def test_coerces_form_strings(self):
        form = parse_settings(
            {
                "shortage_threshold_days": "12",
                "overstock_threshold_days": "120",
                "mild_overstock_threshold_days": "75",
                "safety_days": "3.5",
                "lead_time_days": "30",
                "history_window": "60 天",
                "digest_frequency": "daily",
                "digest_send_hour": "6",
                "digest_daily_enabled": "true",
                "slack_enabled": "false",
                "locations": [{"id": "gid://shopify/Location/1", "selected": True}],
            }
        )
        thresholds = form.to_thresholds()

        assert thresholds.shortage_threshold_days == 12
        assert thresholds.safety_days == 3.5
        assert thresholds.history_window_days == 60
        assert thresholds.digest_frequency == "daily"
        assert thresholds.digest_send_hour == 6
        assert thresholds.digest_daily_enabled is True
        assert thresholds.target_coverage_days == 33.5
        assert form.locations[0].selected is True

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("shortage_threshold_days", 0),
            ("overstock_threshold_days", -5),
            ("safety_days", -1),
            ("lead_time_days", -0.5),
            ("digest_send_hour", 24),
            ("digest_send_hour", 7.5),
            ("digest_frequency", "hourly"),
            ("history_window", "forever"),
        ],
    )
    def test_rejects_bad_field(self, field, value):
        with pytest.raises(SettingsValidationError) as exc_info:
            parse_settings({field: value})
        assert field in exc_info.value.errors

    def test_rejects_mild_above_overstock(self):
        with pytest.raises(SettingsValidationError) as exc_info:
            parse_settings({"overstock_threshold_days": 60, "mild_overstock_threshold_days": 75})
        assert set(exc_info.value.errors) == {"mild_overstock_threshold_days"}

    def test_collects_every_field_error(self):
        with pytest.raises(SettingsValidationError) as exc_info:
            parse_settings({"shortage_threshold_days": -1, "digest_send_hour": 99})
        assert set(exc_info.value.errors) == {"shortage_threshold_days", "digest_send_hour"}


class TestSettingsProvider:
    async def test_absent_row_means_defaults(self, test_db):
        provider = SettingsProvider(test_db)
        assert await provider.read(SHOP) is None
        assert await provider.read_or_default(SHOP) == DEFAULT_THRESHOLDS
        assert await provider.saved_locations(SHOP) is None

    async def test_save_then_read(self, test_db):
        provider = SettingsProvider(test_db)
        form = parse_settings({"shortage_threshold_days": 5, "lead_time_days": 28, "history_window": "90 天"})

        saved = await provider.save(SHOP, form)
        read = await provider.read(SHOP)

        assert read == saved
        assert read.shortage_threshold_days == 5
        assert read.history_window_days == 90
        assert read.target_coverage_days == 35

    async def test_save_is_an_upsert(self, test_db):
        provider = SettingsProvider(test_db)
        await provider.save(SHOP, parse_settings({"shortage_threshold_days": 5}))
        await provider.save(
            SHOP,
            parse_settings({"shortage_threshold_days": 8, "locations": [{"id": "pop-up", "selected": True}]}),
        )

        read = await provider.read(SHOP)
        assert read.shortage_threshold_days == 8
        assert await provider.saved_locations(SHOP) == [{"id": "pop-up", "selected": True}]

    async def test_thresholds_per_shop(self, test_db):
        provider = SettingsProvider(test_db)
        await provider.save(SHOP, parse_settings({"safety_days": 1}))
        assert await provider.read_or_default("other.myshopify.com") == ThresholdSettings()
