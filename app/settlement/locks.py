"""
Concurrency control for settlement operations.

Two mechanisms, used together:

1. **Distributed Locks** (DistributedLock, seller_payout_lock)
   - Redis mutual exclusion across web and worker processes
   - TTL so a crashed holder cannot block a seller forever
   - Used around payout allocation and payout transfers

2. **Optimistic Locking** (check_version)
   - Compares the caller's ``version`` with the stored one under a row lock
   - Used when a client sends the version it last saw

Usage:

    from settlement.locks import check_version, seller_payout_lock

    with seller_payout_lock(seller_id):
        with transaction.atomic():
            ...  # re-read balance, allocate payments

    with transaction.atomic():
        order = check_version(Order, order_id, expected_version=3)

Note:
    Row locks (select_for_update) inside transaction.atomic() remain the
    primary guard for single-entity transitions; these utilities cover what
    row locks cannot (multi-row check-then-act, stale client views).
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING, TypeVar

from django.conf import settings
from django.db import models, transaction
from django_redis import get_redis_connection

from core.exceptions import NotFoundError
from settlement.exceptions import LockAcquisitionError, StaleRecordError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

T = TypeVar("T", bound=models.Model)


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Redis lock with TTL and owner token.

    The value stored under the key is a random token; release and extend
    only act when the stored token is still ours, so a lock that expired
    and was taken by another process is never released by the old holder.

    Example:
        with DistributedLock("payout:seller:42", ttl=30, timeout=5.0):
            allocate_payments()

        lock = DistributedLock("payout:transfer:abc", blocking=False)
        try:
            with lock:
                send_transfer()
        except LockAcquisitionError:
            pass  # another worker is already sending it

    Args:
        key: Lock identifier (stored as "lock:<key>")
        ttl: Seconds before Redis drops the lock on its own
        blocking: Wait for the lock instead of failing immediately
        timeout: Maximum wait in seconds when blocking
    """

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    EXTEND_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("expire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

    POLL_INTERVAL = 0.05

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        """
        Take the lock.

        Raises:
            LockAcquisitionError: Lock held elsewhere (non-blocking) or not
                released within ``timeout`` (blocking)
        """
        token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            deadline = time.monotonic() + self.timeout
            while True:
                if redis.set(self.key, token, nx=True, ex=self.ttl):
                    self._token = token
                    return True
                if time.monotonic() >= deadline:
                    break
                time.sleep(self.POLL_INTERVAL)

            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not redis.set(self.key, token, nx=True, ex=self.ttl):
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        self._token = token
        return True

    def release(self) -> bool:
        """
        Release the lock if we still own it.

        Returns:
            True if our token was deleted, False otherwise. Safe to call twice.
        """
        if self._token is None:
            return False

        result = self._get_redis().eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    def extend(self, ttl: int | None = None) -> bool:
        """Reset the TTL (to ``ttl`` or the original TTL) if we still own the lock."""
        if self._token is None:
            return False

        result = self._get_redis().eval(
            self.EXTEND_SCRIPT, 1, self.key, self._token, ttl or self.ttl
        )
        return bool(result)

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False


def seller_payout_lock(seller_id: Any) -> DistributedLock:
    """Lock serializing payout allocation for one seller."""
    return DistributedLock(
        f"payout:seller:{seller_id}",
        ttl=settings.PAYOUT_LOCK_TTL,
        timeout=settings.PAYOUT_LOCK_TIMEOUT,
    )


def payout_transfer_lock(payout_id: Any) -> DistributedLock:
    """Lock held while a payout's provider transfer is in flight."""
    return DistributedLock(
        f"payout:transfer:{payout_id}",
        ttl=settings.PAYOUT_LOCK_TTL * 4,
        blocking=False,
    )


# =============================================================================
# Optimistic Locking
# =============================================================================


def check_version(
    model_class: type[T],
    pk: Any,
    expected_version: int,
) -> T:
    """
    Lock a row and verify it is still at the version the caller saw.

    Args:
        model_class: Model with a ``version`` field (see core VersionedMixin)
        pk: Primary key of the record
        expected_version: Version the caller last read

    Returns:
        The row, locked until the surrounding transaction ends

    Raises:
        NotFoundError: No such record
        StaleRecordError: The record was modified since the caller read it

    Note:
        Call inside transaction.atomic(); the row lock is released when the
        outer transaction ends.
    """
    model_name = model_class.__name__
    with transaction.atomic():
        instance = (
            model_class.objects.select_for_update()
            .filter(pk=pk, version=expected_version)
            .first()
        )
        if instance is not None:
            return instance

        current_version = (
            model_class.objects.filter(pk=pk).values_list("version", flat=True).first()
        )
        if current_version is None:
            raise NotFoundError(
                f"{model_name} {pk} not found",
                error_code=f"{model_name.upper()}_NOT_FOUND",
                details={"id": str(pk)},
            )

        raise StaleRecordError(
            f"{model_name} {pk} has been modified "
            f"(expected version {expected_version}, current {current_version})",
            details={
                "id": str(pk),
                "expected_version": expected_version,
                "current_version": current_version,
            },
        )


__all__ = [
    "DistributedLock",
    "check_version",
    "payout_transfer_lock",
    "seller_payout_lock",
]
