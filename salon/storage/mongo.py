"""
MongoDB-backed repositories.

Booking creation is made atomic with a per-day ledger document holding the
active intervals ("holds") for that date. A booking is only inserted after
its hold was pushed with a compare-and-set on the ledger's ``version``; the
loser of a race re-reads the ledger and either sees the conflict or retries.
Terminal status changes pull the hold so the time frees up again.
"""

import logging
import re
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Iterator, Optional

from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from salon.config import StorageConfig
from salon.errors import ConcurrentUpdateError, SlotConflictError, StorageUnavailableError
from salon.logging_context import get_request_logger
from salon.scheduling.conflicts import appointment_interval, booking_interval, find_conflict
from salon.schemas.booking_schema import ACTIVE_STATUSES, Booking, BookingStats, BookingStatus
from salon.schemas.payment_schema import Payment, PaymentStatus
from salon.schemas.service_schema import Service
from salon.storage.base import BookingQuery, PaymentQuery, Store, clamp_limit, compute_stats

logger = get_request_logger(__name__)

# Top-level timestamps are kept as native BSON dates so range queries sort correctly.
NATIVE_DATETIME_FIELDS = ("created_at", "updated_at")


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    """Surface driver failures as retryable storage errors."""
    try:
        yield
    except PyMongoError as exc:
        logger.error("MongoDB failure while %s: %s", action, exc)
        raise StorageUnavailableError(f"Storage unavailable while {action}") from exc


def _to_document(model) -> dict:
    doc = model.model_dump(mode="json")
    for name in NATIVE_DATETIME_FIELDS:
        if name in doc:
            doc[name] = getattr(model, name)
    doc["_id"] = doc.pop("id")
    return doc


def _from_document(model_cls, doc: Optional[dict]):
    if doc is None:
        return None
    data = dict(doc)
    data["id"] = data.pop("_id")
    return model_cls.model_validate(data)


class MongoServiceRepository:
    def __init__(self, collection) -> None:
        self._services = collection

    def get(self, service_id: str) -> Optional[Service]:
        with _storage_errors("loading service"):
            return _from_document(Service, self._services.find_one({"_id": service_id}))

    def list(self) -> list[Service]:
        with _storage_errors("listing services"):
            return [_from_document(Service, d) for d in self._services.find({})]

    def save(self, service: Service) -> Service:
        with _storage_errors("saving service"):
            self._services.replace_one({"_id": service.id}, _to_document(service), upsert=True)
        return service

    def increment_bookings(self, service_id: str) -> None:
        with _storage_errors("counting service bookings"):
            self._services.update_one({"_id": service_id}, {"$inc": {"bookings_count": 1}})


class MongoBookingRepository:
    def __init__(self, bookings, ledgers, max_attempts: int = 5) -> None:
        self._bookings = bookings
        self._ledgers = ledgers
        self._max_attempts = max_attempts

    def get(self, booking_id: str) -> Optional[Booking]:
        with _storage_errors("loading booking"):
            return _from_document(Booking, self._bookings.find_one({"_id": booking_id}))

    def insert_if_available(self, booking: Booking, buffer: timedelta, tz: str) -> Booking:
        self._reserve(booking, buffer, tz)
        try:
            with _storage_errors("inserting booking"):
                self._bookings.insert_one(_to_document(booking))
        except StorageUnavailableError:
            self._release(booking.date, booking.id)
            raise
        return booking

    def _reserve(self, booking: Booking, buffer: timedelta, tz: str) -> None:
        candidate = booking_interval(booking, tz)
        day_key = booking.date.isoformat()
        hold = {
            "booking_id": booking.id,
            "time": booking.time,
            "duration_minutes": booking.duration_minutes,
        }
        for attempt in range(1, self._max_attempts + 1):
            with _storage_errors("reading day ledger"):
                ledger = self._ledgers.find_one({"_id": day_key})
            holds = ledger.get("holds", []) if ledger else []
            existing = [
                appointment_interval(booking.date, h["time"], h["duration_minutes"], tz)
                for h in holds
            ]
            if find_conflict(candidate, existing, buffer) is not None:
                raise SlotConflictError("This time slot is no longer available. Please choose another time.")

            with _storage_errors("reserving slot"):
                if ledger is None:
                    try:
                        self._ledgers.insert_one({"_id": day_key, "version": 1, "holds": [hold]})
                        return
                    except DuplicateKeyError:
                        logger.debug("Ledger %s created concurrently (attempt %d)", day_key, attempt)
                        continue
                result = self._ledgers.update_one(
                    {"_id": day_key, "version": ledger["version"]},
                    {"$push": {"holds": hold}, "$inc": {"version": 1}},
                )
            if result.modified_count == 1:
                return
            logger.debug("Ledger %s changed underneath us (attempt %d)", day_key, attempt)

        raise ConcurrentUpdateError(
            f"Could not reserve {booking.date} {booking.time} after {self._max_attempts} attempts"
        )

    def _release(self, day: date, booking_id: str) -> None:
        with _storage_errors("releasing slot"):
            self._ledgers.update_one(
                {"_id": day.isoformat()},
                {"$pull": {"holds": {"booking_id": booking_id}}, "$inc": {"version": 1}},
            )

    def save(self, booking: Booking) -> Booking:
        expected = booking.version
        booking.version = expected + 1
        with _storage_errors("saving booking"):
            before = self._bookings.find_one_and_replace(
                {"_id": booking.id, "version": expected},
                _to_document(booking),
                return_document=ReturnDocument.BEFORE,
            )
        if before is None:
            booking.version = expected
            raise ConcurrentUpdateError(f"Booking {booking.id} was modified concurrently")
        if before.get("status") in {s.value for s in ACTIVE_STATUSES} and not booking.is_active:
            try:
                self._release(booking.date, booking.id)
            except StorageUnavailableError:
                # The status change is already stored; only the day hold lingers.
                logger.error(
                    "Booking %s is %s but its hold on %s was not released",
                    booking.id, booking.status.value, booking.date,
                )
        return booking

    def active_on(self, day: date) -> list[Booking]:
        query = {"date": day.isoformat(), "status": {"$in": [s.value for s in ACTIVE_STATUSES]}}
        with _storage_errors("loading day bookings"):
            return [_from_document(Booking, d) for d in self._bookings.find(query)]

    def count_by_email(self, email: str) -> int:
        with _storage_errors("counting bookings"):
            return self._bookings.count_documents({"email": email})

    def find(self, query: BookingQuery) -> tuple[list[Booking], int]:
        mongo_query: dict = {}
        if query.status is not None:
            mongo_query["status"] = query.status.value
        if query.start_date or query.end_date:
            mongo_query["date"] = {}
            if query.start_date:
                mongo_query["date"]["$gte"] = query.start_date.isoformat()
            if query.end_date:
                mongo_query["date"]["$lte"] = query.end_date.isoformat()
        if query.search:
            pattern = {"$regex": re.escape(query.search), "$options": "i"}
            mongo_query["$or"] = [
                {"first_name": pattern},
                {"last_name": pattern},
                {"email": pattern},
                {"phone": pattern},
            ]
        with _storage_errors("listing bookings"):
            cursor = (
                self._bookings.find(mongo_query)
                .sort([("date", DESCENDING), ("time", DESCENDING)])
                .skip(query.skip)
                .limit(clamp_limit(query.limit))
            )
            bookings = [_from_document(Booking, d) for d in cursor]
            total = self._bookings.count_documents(mongo_query)
        return bookings, total

    def find_by_dates(
        self, start_date: date, end_date: date, statuses: frozenset[BookingStatus]
    ) -> list[Booking]:
        query = {
            "date": {"$gte": start_date.isoformat(), "$lte": end_date.isoformat()},
            "status": {"$in": [s.value for s in statuses]},
        }
        with _storage_errors("loading upcoming bookings"):
            cursor = self._bookings.find(query).sort([("date", ASCENDING), ("time", ASCENDING)])
            return [_from_document(Booking, d) for d in cursor]

    def stats(self, created_from: datetime, created_to: datetime) -> BookingStats:
        query = {"created_at": {"$gte": created_from, "$lte": created_to}}
        with _storage_errors("computing booking stats"):
            return compute_stats([_from_document(Booking, d) for d in self._bookings.find(query)])


class MongoPaymentRepository:
    def __init__(self, collection) -> None:
        self._payments = collection

    def get(self, payment_id: str) -> Optional[Payment]:
        with _storage_errors("loading payment"):
            return _from_document(Payment, self._payments.find_one({"_id": payment_id}))

    def get_by_provider_ref(self, provider_ref: str) -> Optional[Payment]:
        with _storage_errors("loading payment"):
            return _from_document(Payment, self._payments.find_one({"provider_ref": provider_ref}))

    def insert(self, payment: Payment) -> Payment:
        with _storage_errors("inserting payment"):
            self._payments.insert_one(_to_document(payment))
        return payment

    def save(self, payment: Payment) -> Payment:
        expected = payment.version
        payment.version = expected + 1
        with _storage_errors("saving payment"):
            result = self._payments.replace_one(
                {"_id": payment.id, "version": expected}, _to_document(payment)
            )
        if result.matched_count == 0:
            payment.version = expected
            raise ConcurrentUpdateError(f"Payment {payment.id} was modified concurrently")
        return payment

    def mark_succeeded(
        self, provider_ref: str, paid_at: datetime, charge_id: Optional[str]
    ) -> Optional[Payment]:
        claimable = [PaymentStatus.PENDING.value, PaymentStatus.FAILED.value]
        with _storage_errors("recording payment success"):
            doc = self._payments.find_one_and_update(
                {"provider_ref": provider_ref, "status": {"$in": claimable}},
                {
                    "$set": {
                        "status": PaymentStatus.SUCCEEDED.value,
                        "paid_at": paid_at.isoformat(),
                        "charge_id": charge_id,
                        "updated_at": paid_at,
                    },
                    "$inc": {"version": 1},
                },
                return_document=ReturnDocument.AFTER,
            )
        return _from_document(Payment, doc)

    def find(self, query: PaymentQuery) -> tuple[list[Payment], int]:
        mongo_query: dict = {}
        if query.status is not None:
            mongo_query["status"] = query.status.value
        if query.created_from or query.created_to:
            mongo_query["created_at"] = {}
            if query.created_from:
                mongo_query["created_at"]["$gte"] = query.created_from
            if query.created_to:
                mongo_query["created_at"]["$lte"] = query.created_to
        with _storage_errors("listing payments"):
            cursor = (
                self._payments.find(mongo_query)
                .sort("created_at", DESCENDING)
                .skip(query.skip)
                .limit(clamp_limit(query.limit))
            )
            payments = [_from_document(Payment, d) for d in cursor]
            total = self._payments.count_documents(mongo_query)
        return payments, total


def ensure_indexes(db) -> None:
    """Create the indexes the repositories rely on."""
    db.bookings.create_index([("date", ASCENDING), ("time", ASCENDING)])
    db.bookings.create_index("email")
    db.bookings.create_index("status")
    db.bookings.create_index("payment_status")
    db.bookings.create_index([("created_at", DESCENDING)])
    db.payments.create_index("provider_ref", unique=True)
    db.payments.create_index([("created_at", DESCENDING)])


def build_mongo_store(config: StorageConfig, client: Optional[MongoClient] = None) -> Store:
    """Connect to MongoDB and wire the repositories."""
    if client is None:
        client = MongoClient(
            config.mongodb_url,
            serverSelectionTimeoutMS=config.server_selection_timeout_ms,
            tz_aware=True,
        )
    db = client[config.database_name]
    with _storage_errors("creating indexes"):
        ensure_indexes(db)
    logger.info("Connected to MongoDB database '%s'", config.database_name)
    return Store(
        services=MongoServiceRepository(db.services),
        bookings=MongoBookingRepository(
            db.bookings, db.day_ledgers, max_attempts=config.max_reservation_attempts
        ),
        payments=MongoPaymentRepository(db.payments),
        backend="mongodb",
    )
