"""
Reminder sweep for confirmed appointments.

Meant to be run by an external scheduler every ``REMINDER_POLL_MINUTES``.
The poll interval must be shorter than the narrowest reminder window, which
configuration validation enforces, or a reminder can fall between polls.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from salon.bookings.lifecycle import REMINDER_WINDOWS, BookingLifecycle
from salon.bookings.service import save_with_retry
from salon.errors import ConcurrentUpdateError
from salon.logging_context import get_request_logger
from salon.notifications import NotificationEvent, Notifier, notify_safely
from salon.schemas.booking_schema import Booking, BookingStatus, ReminderKind, ReminderMethod
from salon.storage.base import Store
from salon.utils import utcnow

logger = get_request_logger(__name__)


class ReminderService:
    def __init__(
        self,
        store: Store,
        lifecycle: BookingLifecycle,
        notifier: Notifier,
        timezone: str,
        lookahead: timedelta = timedelta(hours=25),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._lifecycle = lifecycle
        self._notifier = notifier
        self._timezone = timezone
        self._lookahead = lookahead
        self._clock = clock

    def send_due_reminders(self, now: Optional[datetime] = None) -> list[tuple[str, ReminderKind]]:
        """Send every reminder that is due right now. Returns (booking id, kind) pairs sent."""
        now = now or self._clock()
        tz = ZoneInfo(self._timezone)
        first_day = now.astimezone(tz).date()
        last_day = (now + self._lookahead).astimezone(tz).date()
        candidates = self._store.bookings.find_by_dates(
            first_day, last_day, frozenset({BookingStatus.CONFIRMED})
        )

        sent: list[tuple[str, ReminderKind]] = []
        for booking in candidates:
            for kind in REMINDER_WINDOWS:
                if self._lifecycle.needs_reminder(booking, kind, now) and self._send(booking, kind, now):
                    sent.append((booking.id, kind))

        logger.info("Reminder sweep at %s: %d sent", now.isoformat(), len(sent))
        return sent

    def _send(self, booking: Booking, kind: ReminderKind, now: datetime) -> bool:
        if not notify_safely(self._notifier, NotificationEvent.REMINDER, booking, kind=kind.value):
            # Not recorded, so the next poll retries while still inside the window.
            return False

        def record(fresh: Booking) -> bool:
            if any(r.kind == kind for r in fresh.reminders):
                return False
            self._lifecycle.record_reminder(fresh, kind, ReminderMethod.EMAIL, now)
            return True

        try:
            save_with_retry(self._store, booking.id, record)
        except ConcurrentUpdateError:
            logger.warning("Reminder %s for %s sent but not recorded", kind.value, booking.id)
        return True
