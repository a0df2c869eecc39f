"""Tests for the MongoDB repositories against a mocked driver."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from salon.config import StorageConfig
from salon.errors import ConcurrentUpdateError, SlotConflictError, StorageUnavailableError
from salon.schemas.booking_schema import Booking, BookingStatus
from salon.storage.mongo import (
    MongoBookingRepository,
    MongoPaymentRepository,
    _from_document,
    _to_document,
    build_mongo_store,
)
from tests.conftest import NOW, make_booking

TZ = "America/New_York"
BUFFER = timedelta(minutes=15)


def hold(booking_id: str, hhmm: str, minutes: int = 60) -> dict:
    return {"booking_id": booking_id, "time": hhmm, "duration_minutes": minutes}


@pytest.fixture
def bookings_collection():
    return MagicMock()


@pytest.fixture
def ledgers():
    return MagicMock()


@pytest.fixture
def repo(bookings_collection, ledgers):
    return MongoBookingRepository(bookings_collection, ledgers, max_attempts=3)


class TestDocumentMapping:
    def test_id_becomes_underscore_id(self):
        doc = _to_document(make_booking())
        assert doc["_id"] == "BK-TEST000001"
        assert "id" not in doc

    def test_timestamps_stay_native(self):
        doc = _to_document(make_booking())
        assert doc["created_at"] == NOW
        assert doc["date"] == "2026-10-20"

    def test_round_trip(self):
        booking = make_booking()
        assert _from_document(Booking, _to_document(booking)) == booking

    def test_missing_document(self):
        assert _from_document(Booking, None) is None


class TestReserve:
    def test_first_booking_of_day_creates_ledger(self, repo, ledgers, bookings_collection):
        ledgers.find_one.return_value = None
        repo.insert_if_available(make_booking(), BUFFER, TZ)

        ledger = ledgers.insert_one.call_args.args[0]
        assert ledger["_id"] == "2026-10-20"
        assert ledger["holds"] == [hold("BK-TEST000001", "10:00")]
        bookings_collection.insert_one.assert_called_once()

    def test_conflicting_hold_rejected(self, repo, ledgers, bookings_collection):
        ledgers.find_one.return_value = {"_id": "2026-10-20", "version": 3, "holds": [hold("BK-OTHER", "10:30")]}
        with pytest.raises(SlotConflictError):
            repo.insert_if_available(make_booking(), BUFFER, TZ)
        ledgers.update_one.assert_not_called()
        bookings_collection.insert_one.assert_not_called()

    def test_compare_and_set_on_version(self, repo, ledgers):
        ledgers.find_one.return_value = {"_id": "2026-10-20", "version": 3, "holds": [hold("BK-OTHER", "14:00")]}
        ledgers.update_one.return_value = MagicMock(modified_count=1)
        repo.insert_if_available(make_booking(), BUFFER, TZ)

        filter_, update = ledgers.update_one.call_args.args
        assert filter_ == {"_id": "2026-10-20", "version": 3}
        assert update["$push"] == {"holds": hold("BK-TEST000001", "10:00")}

    def test_lost_race_rereads_and_sees_conflict(self, repo, ledgers, bookings_collection):
        ledgers.find_one.side_effect = [
            {"_id": "2026-10-20", "version": 1, "holds": []},
            {"_id": "2026-10-20", "version": 2, "holds": [hold("BK-WINNER", "10:00")]},
        ]
        ledgers.update_one.return_value = MagicMock(modified_count=0)
        with pytest.raises(SlotConflictError):
            repo.insert_if_available(make_booking(), BUFFER, TZ)
        bookings_collection.insert_one.assert_not_called()

    def test_concurrent_ledger_creation_retries(self, repo, ledgers):
        ledgers.find_one.side_effect = [None, {"_id": "2026-10-20", "version": 1, "holds": [hold("BK-OTHER", "15:00")]}]
        ledgers.insert_one.side_effect = DuplicateKeyError("dup")
        ledgers.update_one.return_value = MagicMock(modified_count=1)
        repo.insert_if_available(make_booking(), BUFFER, TZ)
        assert ledgers.update_one.call_count == 1

    def test_gives_up_after_max_attempts(self, repo, ledgers):
        ledgers.find_one.return_value = {"_id": "2026-10-20", "version": 1, "holds": []}
        ledgers.update_one.return_value = MagicMock(modified_count=0)
        with pytest.raises(ConcurrentUpdateError):
            repo.insert_if_available(make_booking(), BUFFER, TZ)
        assert ledgers.update_one.call_count == 3

    def test_failed_insert_releases_hold(self, repo, ledgers, bookings_collection):
        ledgers.find_one.return_value = None
        bookings_collection.insert_one.side_effect = ServerSelectionTimeoutError("down")
        with pytest.raises(StorageUnavailableError):
            repo.insert_if_available(make_booking(), BUFFER, TZ)
        filter_, update = ledgers.update_one.call_args.args
        assert update["$pull"] == {"holds": {"booking_id": "BK-TEST000001"}}


class TestSave:
    def test_stale_version_rejected(self, repo, bookings_collection):
        bookings_collection.find_one_and_replace.return_value = None
        booking = make_booking(version=4)
        with pytest.raises(ConcurrentUpdateError):
            repo.save(booking)
        assert booking.version == 4

    def test_version_filter_and_bump(self, repo, bookings_collection):
        bookings_collection.find_one_and_replace.return_value = {"status": "pending"}
        booking = repo.save(make_booking(version=4))
        filter_, document = bookings_collection.find_one_and_replace.call_args.args[:2]
        assert filter_ == {"_id": "BK-TEST000001", "version": 4}
        assert document["version"] == 5
        assert booking.version == 5

    def test_terminal_status_releases_hold(self, repo, bookings_collection, ledgers):
        bookings_collection.find_one_and_replace.return_value = {"status": "confirmed"}
        repo.save(make_booking(status=BookingStatus.CANCELLED))
        filter_, update = ledgers.update_one.call_args.args
        assert filter_ == {"_id": "2026-10-20"}
        assert update["$pull"] == {"holds": {"booking_id": "BK-TEST000001"}}

    def test_failed_release_still_reports_saved_status(self, repo, bookings_collection, ledgers):
        bookings_collection.find_one_and_replace.return_value = {"status": "confirmed"}
        ledgers.update_one.side_effect = ServerSelectionTimeoutError("down")
        booking = repo.save(make_booking(status=BookingStatus.CANCELLED, version=2))
        assert booking.status == BookingStatus.CANCELLED
        assert booking.version == 3
        ledgers.update_one.assert_called_once()

    def test_active_save_keeps_hold(self, repo, bookings_collection, ledgers):
        bookings_collection.find_one_and_replace.return_value = {"status": "pending"}
        repo.save(make_booking(status=BookingStatus.CONFIRMED))
        ledgers.update_one.assert_not_called()

    def test_driver_error_is_storage_unavailable(self, repo, bookings_collection):
        bookings_collection.find_one.side_effect = ServerSelectionTimeoutError("down")
        with pytest.raises(StorageUnavailableError):
            repo.get("BK-1")


class TestPayments:
    def test_mark_succeeded_only_claims_open_payments(self):
        collection = MagicMock()
        collection.find_one_and_update.return_value = None
        repo = MongoPaymentRepository(collection)

        assert repo.mark_succeeded("pi_1", NOW, "ch_1") is None
        filter_ = collection.find_one_and_update.call_args.args[0]
        assert filter_ == {"provider_ref": "pi_1", "status": {"$in": ["pending", "failed"]}}


class TestBuildStore:
    def test_wires_collections_and_indexes(self):
        client = MagicMock()
        store = build_mongo_store(StorageConfig(mongodb_url="mongodb://db", database_name="salon_test"), client=client)
        assert store.backend == "mongodb"
        client.__getitem__.assert_called_with("salon_test")
        db = client.__getitem__.return_value
        db.payments.create_index.assert_any_call("provider_ref", unique=True)
