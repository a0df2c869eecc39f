"""Tests for open-slot lookup."""

from datetime import timedelta

import pytest

from salon.errors import InThePastError, NotFoundError
from tests.conftest import MONDAY, TUESDAY, WEDNESDAY, make_request


@pytest.fixture
def availability(container):
    return container.availability


class TestAvailableSlots:
    def test_empty_day_lists_all_slots(self, availability):
        result = availability.available_slots(WEDNESDAY)
        assert result.available_slots[0] == "09:00"
        assert result.available_slots[-1] == "17:00"
        assert len(result.available_slots) == 17
        assert result.closed_reason is None

    def test_service_duration_shortens_day(self, availability):
        result = availability.available_slots(WEDNESDAY, "cut-and-color")
        assert result.available_slots[-1] == "15:00"

    def test_booked_interval_and_buffer_removed(self, container, availability):
        container.bookings.create_booking(make_request(time="10:00"))
        slots = availability.available_slots(WEDNESDAY, "precision-cut").available_slots
        for blocked in ("09:00", "09:30", "10:00", "10:30", "11:00"):
            assert blocked not in slots
        assert "11:30" in slots

    def test_short_service_fits_before_buffer(self, container, availability):
        container.bookings.create_booking(make_request(time="10:00"))
        slots = availability.available_slots(WEDNESDAY, "style-consultation").available_slots
        assert "09:00" in slots
        assert "09:30" not in slots

    def test_cancelled_booking_not_blocking(self, container, availability):
        booking = container.bookings.create_booking(make_request(time="10:00"))
        container.bookings.cancel_booking(booking.id, "x")
        assert "10:00" in availability.available_slots(WEDNESDAY).available_slots

    def test_includes_business_labels(self, availability):
        result = availability.available_slots(WEDNESDAY)
        assert result.business_hours == "09:00 - 18:00"
        assert result.business_days.startswith("Tuesday")


class TestClosedAndPast:
    def test_closed_day_has_reason(self, availability):
        result = availability.available_slots(MONDAY)
        assert result.available_slots == []
        assert "Mondays" in result.closed_reason

    def test_past_date_rejected(self, availability):
        with pytest.raises(InThePastError):
            availability.available_slots(MONDAY - timedelta(days=1))

    def test_unknown_service(self, availability):
        with pytest.raises(NotFoundError):
            availability.available_slots(WEDNESDAY, "perm")

    def test_today_excludes_elapsed_slots(self, availability, clock):
        # Tuesday 12:10 in New York
        clock.now = clock.now + timedelta(days=1, hours=2, minutes=10)
        slots = availability.available_slots(TUESDAY).available_slots
        assert slots[0] == "12:30"

    def test_nothing_left_today(self, availability, clock):
        # Tuesday 17:30 in New York
        clock.now = clock.now + timedelta(days=1, hours=7, minutes=30)
        result = availability.available_slots(TUESDAY)
        assert result.available_slots == []
        assert result.closed_reason == "No open times remain on this date"
