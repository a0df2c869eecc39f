"""
Buffered interval overlap between appointments.

Intervals are half-open ``[start, end)``. An existing interval is widened
by ``buffer`` on both ends before testing intersection, so two bookings
separated by exactly ``buffer`` do not conflict.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from salon.errors import InvalidIntervalError
from salon.utils import parse_hhmm


@dataclass(frozen=True)
class Interval:
    """A half-open appointment interval."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if not isinstance(self.start, datetime) or not isinstance(self.end, datetime):
            raise InvalidIntervalError("Interval bounds must be datetimes")
        if self.end <= self.start:
            raise InvalidIntervalError(
                f"Interval must have positive length, got {self.start} -> {self.end}"
            )

    def widened(self, buffer: timedelta) -> "Interval":
        return Interval(self.start - buffer, self.end + buffer)

    def intersects(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end


def appointment_interval(day: date, hhmm: str, duration_minutes: int, tz: str) -> Interval:
    """Build the interval for a booking's date, ``HH:MM`` time and duration."""
    if duration_minutes <= 0:
        raise InvalidIntervalError(f"Duration must be positive, got {duration_minutes}")
    try:
        start_time = parse_hhmm(hhmm)
    except ValueError:
        raise InvalidIntervalError(f"Invalid appointment time: {hhmm!r}") from None
    start = datetime.combine(day, start_time, tzinfo=ZoneInfo(tz))
    return Interval(start, start + timedelta(minutes=duration_minutes))


def find_conflict(
    candidate: Interval, existing: Iterable[Interval], buffer: timedelta = timedelta(0)
) -> Optional[Interval]:
    """Return the first existing interval that blocks ``candidate``, if any."""
    if buffer < timedelta(0):
        raise InvalidIntervalError(f"Buffer must not be negative, got {buffer}")
    for interval in existing:
        if candidate.intersects(interval.widened(buffer)):
            return interval
    return None


def is_available(
    candidate: Interval, existing: Iterable[Interval], buffer: timedelta = timedelta(0)
) -> bool:
    """True if ``candidate`` clears every existing interval by at least ``buffer``."""
    return find_conflict(candidate, existing, buffer) is None


def booking_interval(booking, tz: str) -> Interval:
    """Interval occupied by a stored booking (anything with date/time/duration_minutes)."""
    return appointment_interval(booking.date, booking.time, booking.duration_minutes, tz)
