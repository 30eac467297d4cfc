"""
Booking locks.

Serialises the read-decide-write sequences of the scheduling core:

- staff lock:   capacity check + conflict check + insert for one staff member
- service lock: queue position count + insert, and queue renumbering

Every key is guarded by a per-process asyncio lock, with a Redis lock
layered on top so that several API workers share it. When Redis is
unavailable the local lock alone still serialises a single worker.

Key pattern: booking:v1:lock:{kind}:{identifier}
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from redis.exceptions import RedisError

from app.config import settings
from app.core.scheduling.errors import StoreUnavailable
from app.infra.redis import APP_PREFIX, get_redis

logger = logging.getLogger(__name__)

LOCK_PREFIX = f"{APP_PREFIX}lock:"


def staff_lock_key(staff_id: uuid.UUID) -> str:
    return f"staff:{staff_id}"


def service_lock_key(owner_id: uuid.UUID, service_id: uuid.UUID) -> str:
    return f"service:{owner_id}:{service_id}"


class BookingLocks:
    """
    Keyed mutual exclusion with Redis and in-process fallback.

    Usage:
        locks = BookingLocks()
        async with locks.hold(staff_lock_key(staff.id)):
            ...  # check and write
    """

    def __init__(
        self,
        use_redis: bool = True,
        timeout: Optional[float] = None,
        blocking_timeout: Optional[float] = None,
    ):
        """
        Args:
            use_redis: Try Redis first; False forces in-process locks
            timeout: Redis lock expiry in seconds
            blocking_timeout: Max seconds to wait for a busy lock
        """
        self._use_redis = use_redis
        self._timeout = timeout or settings.lock_timeout_seconds
        self._blocking_timeout = blocking_timeout or settings.lock_blocking_timeout_seconds
        self._local: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block.

        The in-process lock is always taken first, so requests in this
        worker stay serialised even when Redis drops out mid-flight.

        Raises:
            StoreUnavailable: If the lock could not be acquired in time
        """
        async with self._local_lock(key):
            client = await get_redis() if self._use_redis else None
            if client is None:
                yield
                return

            lock = client.lock(
                f"{LOCK_PREFIX}{key}",
                timeout=self._timeout,
                blocking_timeout=self._blocking_timeout,
            )
            try:
                acquired = await lock.acquire()
            except RedisError as e:
                logger.warning(f"Redis lock failed for {key}, holding local lock only: {e}")
                lock = None

            if lock is None:
                yield
                return

            if not acquired:
                logger.warning(f"Timed out waiting for lock {key}")
                raise StoreUnavailable(f"Booking lock {key} is busy, please retry")
            try:
                yield
            finally:
                try:
                    await lock.release()
                except RedisError as e:
                    # Expired or lost connection; the lock times out on its own
                    logger.warning(f"Failed to release lock {key}: {e}")

    @asynccontextmanager
    async def _local_lock(self, key: str) -> AsyncIterator[None]:
        lock = self._local[key]
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self._blocking_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out waiting for local lock {key}")
            raise StoreUnavailable(f"Booking lock {key} is busy, please retry") from None
        try:
            yield
        finally:
            lock.release()


# Singleton
_locks: Optional[BookingLocks] = None


def get_booking_locks() -> BookingLocks:
    """Get singleton BookingLocks."""
    global _locks
    if _locks is None:
        _locks = BookingLocks()
    return _locks
