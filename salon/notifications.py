"""
Customer and staff notifications.

Delivery (email, SMS) is handled outside this service; the default
notifier writes a structured log line that a mail relay can pick up.
Notifications never decide the outcome of the operation they accompany.
"""

from enum import Enum
from typing import Any, Protocol

from salon.logging_context import get_request_logger
from salon.schemas.booking_schema import Booking

logger = get_request_logger(__name__)


class NotificationEvent(str, Enum):
    BOOKING_CREATED = "booking_created"
    ADMIN_NEW_BOOKING = "admin_new_booking"
    BOOKING_CONFIRMED = "booking_confirmed"
    STATUS_UPDATED = "status_updated"
    BOOKING_CANCELLED = "booking_cancelled"
    REFUND_ISSUED = "refund_issued"
    REMINDER = "reminder"


class Notifier(Protocol):
    def send(self, event: NotificationEvent, booking: Booking, **details: Any) -> None: ...


class LoggingNotifier:
    """Records each notification as an INFO log line."""

    def send(self, event: NotificationEvent, booking: Booking, **details: Any) -> None:
        logger.info(
            "Notification %s for booking %s <%s> %s",
            event.value, booking.id, booking.email, details or "",
        )


def notify_safely(
    notifier: Notifier, event: NotificationEvent, booking: Booking, **details: Any
) -> bool:
    """Send a notification, logging (not raising) any failure. Returns True if sent."""
    try:
        notifier.send(event, booking, **details)
        return True
    except Exception:
        logger.exception("Failed to send %s notification for booking %s", event.value, booking.id)
        return False
