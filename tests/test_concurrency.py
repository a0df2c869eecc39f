"""Concurrent submissions for one slot must produce exactly one booking."""

import threading
from concurrent.futures import ThreadPoolExecutor

from salon.errors import SlotConflictError
from salon.schemas.booking_schema import ACTIVE_STATUSES
from tests.conftest import WEDNESDAY, make_request

WORKERS = 8


def _race(container, requests):
    barrier = threading.Barrier(len(requests))

    def submit(request):
        barrier.wait()
        try:
            return container.bookings.create_booking(request)
        except SlotConflictError as exc:
            return exc

    with ThreadPoolExecutor(max_workers=len(requests)) as pool:
        return list(pool.map(submit, requests))


class TestConcurrentCreation:
    def test_identical_slot_has_one_winner(self, container, store):
        requests = [make_request(email=f"guest{i}@example.com") for i in range(WORKERS)]
        results = _race(container, requests)

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, SlotConflictError)]
        assert len(winners) == 1
        assert len(losers) == WORKERS - 1
        assert all(e.code == "slot_conflict" for e in losers)
        active = [b for b in store.bookings.active_on(WEDNESDAY) if b.status in ACTIVE_STATUSES]
        assert len(active) == 1

    def test_overlapping_slots_have_one_winner(self, container, store):
        requests = [
            make_request(time="10:00", email="a@example.com"),
            make_request(time="10:30", email="b@example.com"),
            make_request(time="11:00", email="c@example.com"),
        ]
        results = _race(container, requests)
        assert sum(1 for r in results if not isinstance(r, Exception)) == 1
        assert len(store.bookings.active_on(WEDNESDAY)) == 1

    def test_disjoint_slots_all_succeed(self, container, store):
        requests = [
            make_request(time="09:00", email="a@example.com"),
            make_request(time="12:00", email="b@example.com"),
            make_request(time="15:00", email="c@example.com"),
        ]
        results = _race(container, requests)
        assert not any(isinstance(r, Exception) for r in results)
        assert len(store.bookings.active_on(WEDNESDAY)) == 3
