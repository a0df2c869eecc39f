"""Tests for configuration loading and validation."""

from dataclasses import replace
from datetime import time

import pytest

from salon.config import (
    AppConfig,
    BusinessConfig,
    RateLimitConfig,
    ReminderConfig,
    StorageConfig,
    _safe_bool,
    _safe_int,
    _safe_time,
    _safe_weekdays,
    _validate_config,
)


class TestConfigValidation:
    def test_default_config_passes_validation(self):
        config = AppConfig()
        _validate_config(config)  # should not raise

    def test_opening_must_precede_closing(self):
        business = replace(BusinessConfig(), opening_time=time(18), closing_time=time(9))
        with pytest.raises(ValueError, match="OPENING_TIME"):
            _validate_config(AppConfig(business=business))

    def test_weekday_out_of_range(self):
        business = replace(BusinessConfig(), business_days=frozenset({1, 7}))
        with pytest.raises(ValueError, match="BUSINESS_DAYS"):
            _validate_config(AppConfig(business=business))

    def test_no_business_days(self):
        business = replace(BusinessConfig(), business_days=frozenset())
        with pytest.raises(ValueError, match="BUSINESS_DAYS"):
            _validate_config(AppConfig(business=business))

    def test_negative_buffer(self):
        business = replace(BusinessConfig(), buffer_minutes=-1)
        with pytest.raises(ValueError, match="BOOKING_BUFFER_MINUTES"):
            _validate_config(AppConfig(business=business))

    def test_zero_slot_step(self):
        business = replace(BusinessConfig(), slot_step_minutes=0)
        with pytest.raises(ValueError, match="SLOT_STEP_MINUTES"):
            _validate_config(AppConfig(business=business))

    def test_currency_code_length(self):
        business = replace(BusinessConfig(), currency="dollars")
        with pytest.raises(ValueError, match="CURRENCY"):
            _validate_config(AppConfig(business=business))

    @pytest.mark.parametrize("poll", [0, 30, 60])
    def test_poll_must_be_finer_than_reminder_window(self, poll):
        reminders = ReminderConfig(poll_interval_minutes=poll, lookahead_hours=25)
        with pytest.raises(ValueError, match="REMINDER_POLL_MINUTES"):
            _validate_config(AppConfig(reminders=reminders))

    def test_poll_of_29_minutes_accepted(self):
        reminders = ReminderConfig(poll_interval_minutes=29, lookahead_hours=25)
        _validate_config(AppConfig(reminders=reminders))

    def test_lookahead_covers_day_before_reminder(self):
        reminders = ReminderConfig(poll_interval_minutes=5, lookahead_hours=12)
        with pytest.raises(ValueError, match="REMINDER_LOOKAHEAD_HOURS"):
            _validate_config(AppConfig(reminders=reminders))

    def test_reservation_attempts(self):
        storage = replace(StorageConfig(), max_reservation_attempts=0)
        with pytest.raises(ValueError, match="MAX_RESERVATION_ATTEMPTS"):
            _validate_config(AppConfig(storage=storage))

    def test_rate_limit_window(self):
        limits = replace(RateLimitConfig(), window_minutes=0)
        with pytest.raises(ValueError, match="RATE_LIMIT_WINDOW_MINUTES"):
            _validate_config(AppConfig(rate_limit=limits))

    def test_payment_attempts_must_be_positive(self):
        limits = replace(RateLimitConfig(), payment_attempts_per_window=0)
        with pytest.raises(ValueError, match="RATE_LIMIT_PAYMENT_ATTEMPTS"):
            _validate_config(AppConfig(rate_limit=limits))

    def test_port_range(self):
        with pytest.raises(ValueError, match="PORT"):
            _validate_config(replace(AppConfig(), api_port=70000))


class TestEnvParsing:
    def test_safe_int_parsing(self):
        assert _safe_int("NONEXISTENT_VAR_12345", "42") == 42

    def test_safe_int_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("SALON_TEST_INT", "ten")
        with pytest.raises(ValueError, match="SALON_TEST_INT"):
            _safe_int("SALON_TEST_INT", "1")

    def test_safe_time_parsing(self, monkeypatch):
        monkeypatch.setenv("SALON_TEST_TIME", "08:30")
        assert _safe_time("SALON_TEST_TIME", "09:00") == time(8, 30)

    def test_safe_time_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("SALON_TEST_TIME", "half past eight")
        with pytest.raises(ValueError, match="HH:MM"):
            _safe_time("SALON_TEST_TIME", "09:00")

    def test_safe_weekdays_parsing(self, monkeypatch):
        monkeypatch.setenv("SALON_TEST_DAYS", "0, 2,4")
        assert _safe_weekdays("SALON_TEST_DAYS", "1") == frozenset({0, 2, 4})

    @pytest.mark.parametrize("raw, expected", [("true", True), ("YES", True), ("0", False), (" off ", False)])
    def test_safe_bool_parsing(self, monkeypatch, raw, expected):
        monkeypatch.setenv("SALON_TEST_FLAG", raw)
        assert _safe_bool("SALON_TEST_FLAG", "false") is expected

    def test_safe_bool_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("SALON_TEST_FLAG", "maybe")
        with pytest.raises(ValueError, match="SALON_TEST_FLAG"):
            _safe_bool("SALON_TEST_FLAG", "true")


class TestBusinessLabels:
    def test_default_days_label(self):
        business = replace(BusinessConfig(), business_days=frozenset({1, 2, 3, 4, 5}))
        assert business.business_days_label == "Tuesday, Wednesday, Thursday, Friday, Saturday"

    def test_hours_label(self):
        business = replace(BusinessConfig(), opening_time=time(9), closing_time=time(18))
        assert business.business_hours_label == "09:00 - 18:00"
