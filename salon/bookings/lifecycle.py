"""
Finite state machine for a booking's status.

    pending ──payment_succeeded──> confirmed ──complete──> completed
    pending|confirmed ──cancel──> cancelled
    pending|confirmed ──no_show──> no-show

Every applied transition appends a ``StatusChange`` audit fact; history is
never rewritten. Cancellation policy and reminder eligibility live here too
because both are questions about where a booking sits in its lifecycle.

Usage:
    lifecycle = BookingLifecycle(timezone="America/New_York")
    lifecycle.apply(booking, LifecycleTrigger.PAYMENT_SUCCEEDED, actor="payment:pi_123")
    assert booking.status == BookingStatus.CONFIRMED
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from salon.errors import CancellationWindowError, InvalidTransitionError
from salon.scheduling.conflicts import booking_interval
from salon.schemas.booking_schema import (
    Booking,
    BookingStatus,
    ReminderKind,
    ReminderMethod,
    ReminderRecord,
    StatusChange,
)
from salon.utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_CANCELLATION_WINDOW = timedelta(hours=24)

# Reminder is due while remaining time is in (lower, upper].
REMINDER_WINDOWS: dict[ReminderKind, tuple[timedelta, timedelta]] = {
    ReminderKind.DAY_BEFORE: (timedelta(hours=23), timedelta(hours=24)),
    ReminderKind.TWO_HOURS: (timedelta(hours=1, minutes=30), timedelta(hours=2)),
}


class LifecycleTrigger(str, Enum):
    """Events that move a booking between statuses."""
    PAYMENT_SUCCEEDED = "payment_succeeded"
    COMPLETE = "complete"
    CANCEL = "cancel"
    NO_SHOW = "no_show"


@dataclass(frozen=True)
class Transition:
    """A single valid status transition."""
    from_status: BookingStatus
    to_status: BookingStatus
    trigger: LifecycleTrigger


TERMINAL_STATUSES = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
)

# Staff may request these target statuses directly. ``confirmed`` is absent:
# only a successful payment confirms a booking.
STAFF_TRIGGERS: dict[BookingStatus, LifecycleTrigger] = {
    BookingStatus.COMPLETED: LifecycleTrigger.COMPLETE,
    BookingStatus.CANCELLED: LifecycleTrigger.CANCEL,
    BookingStatus.NO_SHOW: LifecycleTrigger.NO_SHOW,
}


class BookingLifecycle:
    """
    Applies status transitions and answers policy questions for bookings.

    Stateless apart from configuration: the booking passed in is mutated
    in place and the caller persists it.
    """

    TRANSITIONS: list[Transition] = [
        Transition(BookingStatus.PENDING, BookingStatus.CONFIRMED,
                   LifecycleTrigger.PAYMENT_SUCCEEDED),
        Transition(BookingStatus.CONFIRMED, BookingStatus.COMPLETED,
                   LifecycleTrigger.COMPLETE),
        Transition(BookingStatus.PENDING, BookingStatus.CANCELLED,
                   LifecycleTrigger.CANCEL),
        Transition(BookingStatus.CONFIRMED, BookingStatus.CANCELLED,
                   LifecycleTrigger.CANCEL),
        Transition(BookingStatus.PENDING, BookingStatus.NO_SHOW,
                   LifecycleTrigger.NO_SHOW),
        Transition(BookingStatus.CONFIRMED, BookingStatus.NO_SHOW,
                   LifecycleTrigger.NO_SHOW),
    ]

    def __init__(
        self,
        timezone: str,
        cancellation_window: timedelta = DEFAULT_CANCELLATION_WINDOW,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._timezone = timezone
        self._cancellation_window = cancellation_window
        self._clock = clock

    @property
    def cancellation_window(self) -> timedelta:
        return self._cancellation_window

    def appointment_start(self, booking: Booking) -> datetime:
        return booking_interval(booking, self._timezone).start

    def time_until(self, booking: Booking, now: Optional[datetime] = None) -> timedelta:
        return self.appointment_start(booking) - (now or self._clock())

    def valid_triggers(self, status: BookingStatus) -> list[LifecycleTrigger]:
        """Return all triggers valid from ``status``."""
        return [t.trigger for t in self.TRANSITIONS if t.from_status == status]

    def is_terminal(self, status: BookingStatus) -> bool:
        return status in TERMINAL_STATUSES

    def apply(
        self,
        booking: Booking,
        trigger: LifecycleTrigger,
        actor: str,
        now: Optional[datetime] = None,
    ) -> BookingStatus:
        """
        Execute a status transition and record the audit fact.

        Returns:
            The booking's new status.

        Raises:
            InvalidTransitionError: If no transition exists for the trigger.
        """
        for t in self.TRANSITIONS:
            if t.from_status == booking.status and t.trigger == trigger:
                at = now or self._clock()
                old_status = booking.status
                booking.status = t.to_status
                booking.history.append(StatusChange(status=t.to_status, at=at, actor=actor))
                booking.updated_at = at
                logger.debug(
                    "Booking %s: %s -> %s (trigger: %s, actor: %s)",
                    booking.id, old_status.value, t.to_status.value, trigger.value, actor,
                )
                return booking.status

        valid = [t.value for t in self.valid_triggers(booking.status)]
        raise InvalidTransitionError(
            f"Booking is {booking.status.value}; cannot {trigger.value.replace('_', ' ')}. "
            f"Valid triggers: {valid}"
        )

    def can_be_cancelled(self, booking: Booking, now: Optional[datetime] = None) -> bool:
        """Customer cancellation policy: not finished, and at least the window ahead."""
        if booking.status in (BookingStatus.CANCELLED, BookingStatus.COMPLETED):
            return False
        return self.time_until(booking, now) >= self._cancellation_window

    def cancel(
        self,
        booking: Booking,
        reason: str,
        actor: str,
        now: Optional[datetime] = None,
        enforce_window: bool = True,
    ) -> BookingStatus:
        """
        Cancel a booking, recording reason and actor.

        Staff and refund-driven cancellations pass ``enforce_window=False``;
        they still obey the transition table.

        Raises:
            InvalidTransitionError: If the booking is already finished.
            CancellationWindowError: If inside the customer cancellation window.
        """
        at = now or self._clock()
        if LifecycleTrigger.CANCEL not in self.valid_triggers(booking.status):
            raise InvalidTransitionError(f"Booking is already {booking.status.value}")
        if enforce_window and not self.can_be_cancelled(booking, at):
            hours = int(self._cancellation_window.total_seconds() // 3600)
            raise CancellationWindowError(
                f"Cancellations must be made at least {hours} hours in advance"
            )
        status = self.apply(booking, LifecycleTrigger.CANCEL, actor, at)
        booking.cancellation_reason = reason
        booking.cancelled_at = at
        booking.cancelled_by = actor
        return status

    def needs_reminder(
        self, booking: Booking, kind: ReminderKind, now: Optional[datetime] = None
    ) -> bool:
        """True once per kind, for confirmed bookings inside the kind's trailing window."""
        if booking.status != BookingStatus.CONFIRMED:
            return False
        if any(r.kind == kind for r in booking.reminders):
            return False
        lower, upper = REMINDER_WINDOWS[kind]
        remaining = self.time_until(booking, now)
        return lower < remaining <= upper

    def record_reminder(
        self,
        booking: Booking,
        kind: ReminderKind,
        method: ReminderMethod = ReminderMethod.EMAIL,
        now: Optional[datetime] = None,
    ) -> ReminderRecord:
        record = ReminderRecord(kind=kind, sent_at=now or self._clock(), method=method)
        booking.reminders.append(record)
        booking.updated_at = record.sent_at
        return record
