"""
Candidate start times for a business day.

Pure and deterministic: the generator never consults storage. Conflict
filtering against existing bookings happens in ``conflicts``.

Usage:
    hours = BusinessHours(time(9), time(18), frozenset({1, 2, 3, 4, 5}))
    plan = generate_slots(date(2026, 10, 20), hours, step_minutes=30, service_duration=60)
    plan.labels[-1]  # "17:00"
"""

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Optional

from salon.config import DAY_NAMES, BusinessConfig
from salon.utils import format_hhmm, minutes_of_day, time_from_minutes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BusinessHours:
    """Opening window and the weekdays (Monday=0) the salon takes bookings."""

    opening_time: time
    closing_time: time
    business_days: frozenset[int]

    @classmethod
    def from_config(cls, business: BusinessConfig) -> "BusinessHours":
        return cls(business.opening_time, business.closing_time, business.business_days)

    def is_business_day(self, day: date) -> bool:
        return day.weekday() in self.business_days

    def fits(self, start: time, duration_minutes: int) -> bool:
        """True if an appointment starting at ``start`` ends by closing time."""
        begin = minutes_of_day(start)
        return (
            begin >= minutes_of_day(self.opening_time)
            and begin + duration_minutes <= minutes_of_day(self.closing_time)
        )

    def closed_reason(self, day: date) -> str:
        open_days = ", ".join(DAY_NAMES[d] for d in sorted(self.business_days))
        return f"Closed on {DAY_NAMES[day.weekday()]}s. Open {open_days}."


@dataclass(frozen=True)
class SlotPlan:
    """Ordered candidate start times for one day."""

    day: date
    slots: tuple[time, ...] = ()
    closed_reason: Optional[str] = None

    @property
    def labels(self) -> list[str]:
        return [format_hhmm(s) for s in self.slots]


def generate_slots(
    day: date, hours: BusinessHours, step_minutes: int, service_duration: int
) -> SlotPlan:
    """
    Produce start times from opening time at a fixed step.

    A slot is kept only if ``start + service_duration <= closing_time``.
    Non-business days yield an empty plan with an explanatory reason.

    Raises:
        ValueError: If step or duration is not positive.
    """
    if step_minutes <= 0:
        raise ValueError(f"step_minutes must be positive, got {step_minutes}")
    if service_duration <= 0:
        raise ValueError(f"service_duration must be positive, got {service_duration}")

    if not hours.is_business_day(day):
        return SlotPlan(day=day, closed_reason=hours.closed_reason(day))

    opening = minutes_of_day(hours.opening_time)
    closing = minutes_of_day(hours.closing_time)
    slots = tuple(
        time_from_minutes(start)
        for start in range(opening, closing, step_minutes)
        if start + service_duration <= closing
    )
    logger.debug("Generated %d slots for %s (duration %d)", len(slots), day, service_duration)
    return SlotPlan(day=day, slots=slots)
