"""
In-process store used for development and tests.

A single re-entrant lock per repository makes check-then-insert and
compare-and-set operations atomic across request threads.
"""

import logging
import threading
from datetime import date, datetime, timedelta
from typing import Optional

from salon.errors import ConcurrentUpdateError, SlotConflictError
from salon.scheduling.conflicts import booking_interval, find_conflict
from salon.schemas.booking_schema import ACTIVE_STATUSES, Booking, BookingStats, BookingStatus
from salon.schemas.payment_schema import Payment, PaymentStatus
from salon.schemas.service_schema import Service
from salon.storage.base import BookingQuery, PaymentQuery, Store, clamp_limit, compute_stats

logger = logging.getLogger(__name__)


class InMemoryServiceRepository:
    def __init__(self) -> None:
        self._services: dict[str, Service] = {}
        self._lock = threading.RLock()

    def get(self, service_id: str) -> Optional[Service]:
        with self._lock:
            service = self._services.get(service_id)
            return service.model_copy(deep=True) if service else None

    def list(self) -> list[Service]:
        with self._lock:
            return [s.model_copy(deep=True) for s in self._services.values()]

    def save(self, service: Service) -> Service:
        with self._lock:
            self._services[service.id] = service.model_copy(deep=True)
        return service

    def increment_bookings(self, service_id: str) -> None:
        with self._lock:
            service = self._services.get(service_id)
            if service is not None:
                service.bookings_count += 1


class InMemoryBookingRepository:
    def __init__(self) -> None:
        self._bookings: dict[str, Booking] = {}
        self._lock = threading.RLock()

    def get(self, booking_id: str) -> Optional[Booking]:
        with self._lock:
            booking = self._bookings.get(booking_id)
            return booking.model_copy(deep=True) if booking else None

    def insert_if_available(self, booking: Booking, buffer: timedelta, tz: str) -> Booking:
        candidate = booking_interval(booking, tz)
        with self._lock:
            existing = [booking_interval(b, tz) for b in self._active_on(booking.date)]
            if find_conflict(candidate, existing, buffer) is not None:
                raise SlotConflictError("This time slot is no longer available. Please choose another time.")
            self._bookings[booking.id] = booking.model_copy(deep=True)
        logger.debug("Inserted booking %s at %s %s", booking.id, booking.date, booking.time)
        return booking

    def save(self, booking: Booking) -> Booking:
        with self._lock:
            stored = self._bookings.get(booking.id)
            if stored is None or stored.version != booking.version:
                raise ConcurrentUpdateError(f"Booking {booking.id} was modified concurrently")
            booking.version += 1
            self._bookings[booking.id] = booking.model_copy(deep=True)
        return booking

    def _active_on(self, day: date) -> list[Booking]:
        return [b for b in self._bookings.values() if b.date == day and b.status in ACTIVE_STATUSES]

    def active_on(self, day: date) -> list[Booking]:
        with self._lock:
            return [b.model_copy(deep=True) for b in self._active_on(day)]

    def count_by_email(self, email: str) -> int:
        with self._lock:
            return sum(1 for b in self._bookings.values() if b.email == email)

    def find(self, query: BookingQuery) -> tuple[list[Booking], int]:
        with self._lock:
            matches = [b for b in self._bookings.values() if _matches(b, query)]
        matches.sort(key=lambda b: (b.date, b.time), reverse=True)
        page = matches[query.skip:query.skip + clamp_limit(query.limit)]
        return [b.model_copy(deep=True) for b in page], len(matches)

    def find_by_dates(
        self, start_date: date, end_date: date, statuses: frozenset[BookingStatus]
    ) -> list[Booking]:
        with self._lock:
            found = [
                b.model_copy(deep=True)
                for b in self._bookings.values()
                if start_date <= b.date <= end_date and b.status in statuses
            ]
        return sorted(found, key=lambda b: (b.date, b.time))

    def stats(self, created_from: datetime, created_to: datetime) -> BookingStats:
        with self._lock:
            window = [b for b in self._bookings.values() if created_from <= b.created_at <= created_to]
        return compute_stats(window)


def _matches(booking: Booking, query: BookingQuery) -> bool:
    if query.status is not None and booking.status != query.status:
        return False
    if query.start_date is not None and booking.date < query.start_date:
        return False
    if query.end_date is not None and booking.date > query.end_date:
        return False
    if query.search:
        needle = query.search.lower()
        haystack = (booking.first_name, booking.last_name, booking.email, booking.phone)
        if not any(needle in field.lower() for field in haystack):
            return False
    return True


class InMemoryPaymentRepository:
    def __init__(self) -> None:
        self._payments: dict[str, Payment] = {}
        self._lock = threading.RLock()

    def get(self, payment_id: str) -> Optional[Payment]:
        with self._lock:
            payment = self._payments.get(payment_id)
            return payment.model_copy(deep=True) if payment else None

    def get_by_provider_ref(self, provider_ref: str) -> Optional[Payment]:
        with self._lock:
            for payment in self._payments.values():
                if payment.provider_ref == provider_ref:
                    return payment.model_copy(deep=True)
        return None

    def insert(self, payment: Payment) -> Payment:
        with self._lock:
            self._payments[payment.id] = payment.model_copy(deep=True)
        return payment

    def save(self, payment: Payment) -> Payment:
        with self._lock:
            stored = self._payments.get(payment.id)
            if stored is None or stored.version != payment.version:
                raise ConcurrentUpdateError(f"Payment {payment.id} was modified concurrently")
            payment.version += 1
            self._payments[payment.id] = payment.model_copy(deep=True)
        return payment

    def mark_succeeded(
        self, provider_ref: str, paid_at: datetime, charge_id: Optional[str]
    ) -> Optional[Payment]:
        with self._lock:
            for payment in self._payments.values():
                if payment.provider_ref != provider_ref:
                    continue
                if payment.status not in (PaymentStatus.PENDING, PaymentStatus.FAILED):
                    return None
                payment.status = PaymentStatus.SUCCEEDED
                payment.paid_at = paid_at
                payment.charge_id = charge_id
                payment.updated_at = paid_at
                payment.version += 1
                return payment.model_copy(deep=True)
        return None

    def find(self, query: PaymentQuery) -> tuple[list[Payment], int]:
        with self._lock:
            matches = [
                p for p in self._payments.values()
                if (query.status is None or p.status == query.status)
                and (query.created_from is None or p.created_at >= query.created_from)
                and (query.created_to is None or p.created_at <= query.created_to)
            ]
        matches.sort(key=lambda p: p.created_at, reverse=True)
        page = matches[query.skip:query.skip + clamp_limit(query.limit)]
        return [p.model_copy(deep=True) for p in page], len(matches)


def build_memory_store() -> Store:
    return Store(
        services=InMemoryServiceRepository(),
        bookings=InMemoryBookingRepository(),
        payments=InMemoryPaymentRepository(),
        backend="memory",
    )
