"""Tests for buffered interval conflict detection."""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from salon.errors import InvalidIntervalError
from salon.scheduling.conflicts import (
    Interval,
    appointment_interval,
    find_conflict,
    is_available,
)
from tests.conftest import TUESDAY

TZ = "America/New_York"
BUFFER = timedelta(minutes=15)


def at(hhmm: str, minutes: int = 60) -> Interval:
    return appointment_interval(TUESDAY, hhmm, minutes, TZ)


@pytest.fixture
def existing():
    return [at("10:00", 60)]


class TestBufferedOverlap:
    def test_identical_interval_conflicts(self, existing):
        assert not is_available(at("10:00"), existing, BUFFER)

    def test_start_inside_buffer_after_conflicts(self, existing):
        assert not is_available(at("11:14", 30), existing, BUFFER)

    def test_first_start_after_buffer_is_free(self, existing):
        assert is_available(at("11:15", 30), existing, BUFFER)

    def test_end_inside_buffer_before_conflicts(self, existing):
        assert not is_available(at("09:00", 50), existing, BUFFER)

    def test_end_exactly_at_buffer_is_free(self, existing):
        assert is_available(at("08:45", 60), existing, BUFFER)

    def test_thirty_minute_service_ending_at_945_is_free(self, existing):
        assert is_available(at("09:15", 30), existing, BUFFER)

    def test_candidate_containing_existing_conflicts(self, existing):
        assert not is_available(at("09:00", 180), existing, BUFFER)

    def test_candidate_within_existing_conflicts(self, existing):
        assert not is_available(at("10:15", 15), existing, BUFFER)

    def test_zero_buffer_allows_back_to_back(self, existing):
        assert is_available(at("11:00"), existing)
        assert is_available(at("09:00"), existing)

    def test_no_existing_is_always_available(self):
        assert is_available(at("10:00"), [], BUFFER)

    def test_find_conflict_returns_the_blocking_interval(self):
        blocking = at("14:00")
        existing = [at("10:00"), blocking]
        assert find_conflict(at("14:30", 30), existing, BUFFER) == blocking

    def test_negative_buffer_rejected(self, existing):
        with pytest.raises(InvalidIntervalError):
            find_conflict(at("12:00"), existing, timedelta(minutes=-5))


class TestIntervalValidation:
    def test_zero_duration_rejected(self):
        with pytest.raises(InvalidIntervalError):
            appointment_interval(TUESDAY, "10:00", 0, TZ)

    def test_negative_duration_rejected(self):
        with pytest.raises(InvalidIntervalError):
            appointment_interval(TUESDAY, "10:00", -30, TZ)

    def test_malformed_time_rejected(self):
        with pytest.raises(InvalidIntervalError):
            appointment_interval(TUESDAY, "25:99", 60, TZ)

    def test_end_before_start_rejected(self):
        start = datetime(2026, 10, 20, 10, 0, tzinfo=ZoneInfo(TZ))
        with pytest.raises(InvalidIntervalError):
            Interval(start, start - timedelta(minutes=1))

    def test_invalid_interval_is_a_value_error(self):
        with pytest.raises(ValueError):
            appointment_interval(TUESDAY, "10:00", 0, TZ)

    def test_interval_is_in_business_timezone(self):
        interval = at("10:00")
        assert interval.start.utcoffset() == timedelta(hours=-4)
        assert interval.end - interval.start == timedelta(minutes=60)
