"""
Booking operations: create, look up, cancel, staff status updates, reviews.

Creation validates against the catalog and business hours, then hands the
final availability decision to the repository's atomic check-then-insert
so two simultaneous submissions for one slot cannot both succeed.
"""

import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from salon.bookings.lifecycle import STAFF_TRIGGERS, BookingLifecycle
from salon.catalog import ServiceCatalog
from salon.config import BusinessConfig
from salon.errors import (
    ConcurrentUpdateError,
    InactiveServiceError,
    InThePastError,
    InvalidTransitionError,
    NotFoundError,
    OutsideBusinessHoursError,
    ReviewNotAllowedError,
    ValidationFailedError,
)
from salon.logging_context import get_request_logger
from salon.notifications import NotificationEvent, Notifier, notify_safely
from salon.scheduling.conflicts import booking_interval
from salon.scheduling.slots import BusinessHours
from salon.schemas.booking_schema import (
    Booking,
    BookingRequest,
    BookingStats,
    BookingStatus,
    Review,
    StatusChange,
)
from salon.storage.base import BookingQuery, Store
from salon.utils import parse_hhmm, utcnow

logger = get_request_logger(__name__)

CUSTOMER_ACTOR = "customer"


def new_booking_id() -> str:
    return f"BK-{uuid.uuid4().hex[:10].upper()}"


class BookingService:
    """Customer and staff operations on bookings."""

    def __init__(
        self,
        store: Store,
        catalog: ServiceCatalog,
        lifecycle: BookingLifecycle,
        business: BusinessConfig,
        notifier: Notifier,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._lifecycle = lifecycle
        self._business = business
        self._hours = BusinessHours.from_config(business)
        self._buffer = timedelta(minutes=business.buffer_minutes)
        self._notifier = notifier
        self._clock = clock

    # ------------------------------------------------------------------ #
    # Customer operations
    # ------------------------------------------------------------------ #

    def create_booking(self, request: BookingRequest) -> Booking:
        """
        Create a pending booking for a still-open slot.

        Raises:
            NotFoundError: Unknown service.
            InactiveServiceError: Service is no longer offered.
            InThePastError: Start time is not in the future.
            OutsideBusinessHoursError: Closed day, or the appointment does
                not fit between opening and closing time.
            SlotConflictError: An active booking blocks the interval.
        """
        service = self._catalog.get(request.service_id)
        if service is None:
            raise NotFoundError("Service not found")
        if not service.is_active:
            raise InactiveServiceError(f"{service.name} is not currently offered")

        now = self._clock()
        tz = self._business.timezone
        booking = Booking(
            id=new_booking_id(),
            first_name=request.first_name,
            last_name=request.last_name,
            email=request.email,
            phone=request.phone,
            service_id=service.id,
            service_name=service.name,
            date=request.date,
            time=request.time,
            duration_minutes=service.duration_minutes,
            total_cents=service.price_cents,
            currency=self._business.currency,
            notes=request.notes,
            source=request.source,
            history=[StatusChange(status=BookingStatus.PENDING, at=now, actor=CUSTOMER_ACTOR)],
            created_at=now,
            updated_at=now,
        )

        if booking_interval(booking, tz).start <= now:
            raise InThePastError("Booking must be in the future")
        if not self._hours.is_business_day(request.date):
            raise OutsideBusinessHoursError(
                f"Bookings are only available {self._business.business_days_label}"
            )
        if not self._hours.fits(parse_hhmm(request.time), service.duration_minutes):
            raise OutsideBusinessHoursError(
                f"Bookings are only available between {self._business.business_hours_label} "
                f"and must finish by closing time"
            )

        booking.is_first_time = self._store.bookings.count_by_email(booking.email) == 0
        self._store.bookings.insert_if_available(booking, self._buffer, tz)
        self._store.services.increment_bookings(service.id)
        logger.info(
            "Booking created: %s for %s on %s at %s (%s)",
            booking.id, booking.customer_name, booking.date, booking.time, service.id,
        )

        notify_safely(self._notifier, NotificationEvent.BOOKING_CREATED, booking)
        notify_safely(self._notifier, NotificationEvent.ADMIN_NEW_BOOKING, booking)
        return booking

    def get_booking(self, booking_id: str) -> Booking:
        booking = self._store.bookings.get(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    def cancel_booking(self, booking_id: str, reason: str, actor: str = CUSTOMER_ACTOR) -> Booking:
        """
        Customer cancellation under the cancellation-window policy.

        Raises:
            NotFoundError: Unknown booking.
            InvalidTransitionError: Already cancelled, completed or no-show.
            CancellationWindowError: Less than the window before the start.
        """
        booking = self.get_booking(booking_id)
        self._lifecycle.cancel(booking, reason, actor, self._clock())
        self._store.bookings.save(booking)
        logger.info("Booking cancelled: %s by %s (%s)", booking.id, actor, reason)
        notify_safely(self._notifier, NotificationEvent.BOOKING_CANCELLED, booking, reason=reason)
        return booking

    def submit_review(self, booking_id: str, rating: int, comment: str = "") -> Booking:
        booking = self.get_booking(booking_id)
        if booking.status != BookingStatus.COMPLETED:
            raise ReviewNotAllowedError("Reviews can only be left for completed appointments")
        if booking.review is not None:
            raise ReviewNotAllowedError("This appointment has already been reviewed")
        now = self._clock()
        booking.review = Review(rating=rating, comment=comment.strip(), submitted_at=now)
        booking.updated_at = now
        self._store.bookings.save(booking)
        logger.info("Review recorded for %s: %d stars", booking.id, rating)
        return booking

    # ------------------------------------------------------------------ #
    # Staff operations
    # ------------------------------------------------------------------ #

    def update_status(self, booking_id: str, new_status: str, actor: str) -> Booking:
        """
        Staff status change. ``confirmed`` is reserved for payment confirmation.

        Raises:
            ValidationFailedError: Unknown status value.
            NotFoundError: Unknown booking.
            InvalidTransitionError: Transition not allowed from current status.
        """
        try:
            target = BookingStatus(new_status)
        except ValueError:
            valid = [s.value for s in BookingStatus]
            raise ValidationFailedError(f"Invalid status {new_status!r}. Valid: {valid}") from None

        booking = self.get_booking(booking_id)
        trigger = STAFF_TRIGGERS.get(target)
        if trigger is None:
            raise InvalidTransitionError(
                f"Status {target.value!r} cannot be set directly; "
                "bookings are confirmed by a successful payment"
            )

        now = self._clock()
        if target == BookingStatus.CANCELLED:
            self._lifecycle.cancel(booking, "Cancelled by staff", actor, now, enforce_window=False)
        else:
            self._lifecycle.apply(booking, trigger, actor, now)
        self._store.bookings.save(booking)
        logger.info("Booking %s status set to %s by %s", booking.id, target.value, actor)

        notify_safely(
            self._notifier, NotificationEvent.STATUS_UPDATED, booking, status=target.value
        )
        return booking

    def list_bookings(self, query: BookingQuery) -> tuple[list[Booking], int]:
        return self._store.bookings.find(query)

    def stats(self, start: date, end: date) -> BookingStats:
        """Aggregate bookings created between ``start`` and ``end`` (inclusive, UTC days)."""
        if end < start:
            raise ValidationFailedError("end_date must not be before start_date")
        created_from = datetime.combine(start, time.min, tzinfo=timezone.utc)
        created_to = datetime.combine(end, time.max, tzinfo=timezone.utc)
        return self._store.bookings.stats(created_from, created_to)

    def upcoming(self, days: int = 7) -> list[Booking]:
        """Active bookings from today through ``days`` ahead, soonest first."""
        today = self._clock().astimezone(ZoneInfo(self._business.timezone)).date()
        return self._store.bookings.find_by_dates(
            today, today + timedelta(days=days), frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})
        )


def save_with_retry(
    store: Store, booking_id: str, mutate: Callable[[Booking], bool], attempts: int = 3
) -> Optional[Booking]:
    """
    Re-read, mutate and save a booking until the save wins.

    ``mutate`` returns False when there is nothing to change, in which case
    the freshly read booking is returned without saving.
    """
    for _ in range(attempts):
        booking = store.bookings.get(booking_id)
        if booking is None:
            return None
        if not mutate(booking):
            return booking
        try:
            return store.bookings.save(booking)
        except ConcurrentUpdateError:
            logger.debug("Retrying save of %s after concurrent update", booking_id)
    raise ConcurrentUpdateError(f"Booking {booking_id} kept changing; try again")
