"""
Repository contracts shared by the in-memory and MongoDB stores.

Every repository hands out copies: mutating a returned model has no
effect until it is passed back to ``save``, which enforces the model's
``version`` so a stale write raises ``ConcurrentUpdateError``.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Protocol

from salon.schemas.booking_schema import Booking, BookingStats, BookingStatus
from salon.schemas.payment_schema import Payment, PaymentStatus
from salon.schemas.service_schema import Service

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class BookingQuery:
    """Filters for the staff booking list."""

    status: Optional[BookingStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    search: Optional[str] = None
    skip: int = 0
    limit: int = DEFAULT_PAGE_SIZE


@dataclass(frozen=True)
class PaymentQuery:
    status: Optional[PaymentStatus] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    skip: int = 0
    limit: int = DEFAULT_PAGE_SIZE


class ServiceRepository(Protocol):
    def get(self, service_id: str) -> Optional[Service]: ...
    def list(self) -> list[Service]: ...
    def save(self, service: Service) -> Service: ...
    def increment_bookings(self, service_id: str) -> None: ...


class BookingRepository(Protocol):
    def get(self, booking_id: str) -> Optional[Booking]: ...

    def insert_if_available(self, booking: Booking, buffer: timedelta, tz: str) -> Booking:
        """Atomically re-check the slot against active bookings and insert.

        Raises:
            SlotConflictError: If an active booking now blocks the interval.
        """

    def save(self, booking: Booking) -> Booking: ...
    def active_on(self, day: date) -> list[Booking]: ...
    def count_by_email(self, email: str) -> int: ...
    def find(self, query: BookingQuery) -> tuple[list[Booking], int]: ...
    def find_by_dates(
        self, start_date: date, end_date: date, statuses: frozenset[BookingStatus]
    ) -> list[Booking]: ...
    def stats(self, created_from: datetime, created_to: datetime) -> BookingStats: ...


class PaymentRepository(Protocol):
    def get(self, payment_id: str) -> Optional[Payment]: ...
    def get_by_provider_ref(self, provider_ref: str) -> Optional[Payment]: ...
    def insert(self, payment: Payment) -> Payment: ...
    def save(self, payment: Payment) -> Payment: ...

    def mark_succeeded(
        self, provider_ref: str, paid_at: datetime, charge_id: Optional[str]
    ) -> Optional[Payment]:
        """Claim the transition to succeeded.

        Returns the updated payment only for the caller that performed the
        transition, and None when it had already succeeded (or was refunded).
        """

    def find(self, query: PaymentQuery) -> tuple[list[Payment], int]: ...


@dataclass
class Store:
    """The repositories one running app works against."""

    services: ServiceRepository
    bookings: BookingRepository
    payments: PaymentRepository
    backend: str

    def seed_services(self, services: list[Service]) -> int:
        """Insert catalog entries that are not stored yet. Returns how many were added."""
        added = 0
        for service in services:
            if self.services.get(service.id) is None:
                self.services.save(service)
                added += 1
        return added


def clamp_limit(limit: int) -> int:
    return max(1, min(limit, MAX_PAGE_SIZE))


def compute_stats(bookings: list[Booking]) -> BookingStats:
    return BookingStats(
        total_bookings=len(bookings),
        total_revenue_cents=sum(b.total_cents for b in bookings),
        confirmed_bookings=sum(1 for b in bookings if b.status == BookingStatus.CONFIRMED),
        completed_bookings=sum(1 for b in bookings if b.status == BookingStatus.COMPLETED),
        cancelled_bookings=sum(1 for b in bookings if b.status == BookingStatus.CANCELLED),
    )
