"""
Concurrent payout requests for one seller.

Two threads race request_payout against a real database. The seller lock
runs its own acquire/release code over a small thread-safe Redis stand-in,
so the lock is what serializes the two allocations.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed

import pytest
from django.db import connection

from settlement.exceptions import InsufficientBalanceError
from settlement.models import Payment, Payout


class SharedRedis:
    """Just enough of SET NX and the token scripts for DistributedLock."""

    def __init__(self):
        self._values = {}
        self._mutex = threading.Lock()

    def set(self, key, value, nx=False, ex=None):
        with self._mutex:
            if nx and key in self._values:
                return None
            self._values[key] = value
            return True

    def eval(self, script, numkeys, key, token, *args):
        with self._mutex:
            if self._values.get(key) != token:
                return 0
            if "del" in script:
                del self._values[key]
            return 1


@pytest.fixture
def shared_redis(mocker):
    redis = SharedRedis()
    mocker.patch("settlement.locks.get_redis_connection", return_value=redis)
    return redis


def race(engine, seller_id, amounts):
    """Run one request_payout per amount on its own thread, all released at once."""
    barrier = threading.Barrier(len(amounts))

    def request(amount):
        connection.close()  # Force new connection for thread
        try:
            barrier.wait()
            return engine.payouts.request_payout(seller_id, amount_cents=amount)
        finally:
            connection.close()

    payouts, errors = [], []
    with ThreadPoolExecutor(max_workers=len(amounts)) as executor:
        futures = [executor.submit(request, amount) for amount in amounts]
        for future in as_completed(futures, timeout=30):
            try:
                payouts.append(future.result())
            except Exception as exc:
                errors.append(exc)
    return payouts, errors


@pytest.mark.django_db(transaction=True)
class TestConcurrentRequests:
    def test_requests_exceeding_balance_allocate_once(
        self, engine, shared_redis, delivered_order, seller
    ):
        payouts, errors = race(engine, seller.pk, [6_000, 6_000])

        assert len(payouts) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], InsufficientBalanceError)
        assert errors[0].details["available_cents"] == 3_000
        assert Payout.objects.filter(seller=seller).count() == 1
        assert Payment.objects.get(order=delivered_order).allocated_cents == 6_000
        assert engine.payouts.compute_available_balance(seller.pk) == 3_000

    def test_requests_within_balance_both_succeed(
        self, engine, shared_redis, delivered_order, seller
    ):
        payouts, errors = race(engine, seller.pk, [4_000, 4_000])

        assert errors == []
        assert sorted(p.total_amount_cents for p in payouts) == [4_000, 4_000]
        assert Payment.objects.get(order=delivered_order).allocated_cents == 8_000
        assert engine.payouts.compute_available_balance(seller.pk) == 1_000

    def test_seller_lock_free_afterwards(self, engine, shared_redis, delivered_order, seller):
        race(engine, seller.pk, [4_000, 4_000])

        assert shared_redis._values == {}
