"""
Per-key mutual exclusion for booking critical sections.

The booking service serialises the read-check-write of one slot (and the
overlap-check-insert of one provider's calendar) behind a named lock. Three
interchangeable backends are provided:

* ``LocalLockManager`` - ``asyncio.Lock`` per key, one process only.
* ``RedisLockManager`` - Redis lease lock, shared by every worker that talks
  to the same Redis.
* ``PostgresAdvisoryLockManager`` - session-level advisory lock on a
  dedicated connection, shared by every worker on the same database.

Every backend bounds how long a caller waits and raises
``LockTimeoutException`` instead of blocking forever.
"""

import asyncio
import hashlib
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol

import structlog
from redis.asyncio import Redis
from redis.exceptions import LockError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine

from slotbook.config import Settings
from slotbook.core.exceptions import LockTimeoutException

logger = structlog.get_logger()


def slot_lock_key(slot_id: str) -> str:
    return f"slot:{slot_id}"


def provider_lock_key(provider_id: str) -> str:
    return f"provider:{provider_id}"


class LockManager(Protocol):
    """Hands out exclusive, bounded-wait locks by name."""

    def acquire(self, key: str) -> AbstractAsyncContextManager[None]:
        """Hold the lock named ``key`` for the duration of the context."""


class LocalLockManager:
    """In-process lock registry; idle keys are evicted once nobody waits on them."""

    def __init__(self, blocking_timeout: float | None = None):
        self._blocking_timeout = blocking_timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @property
    def active_keys(self) -> set[str]:
        """Keys currently held or waited on."""
        return set(self._locks)

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self._blocking_timeout)
            except TimeoutError as e:
                raise LockTimeoutException(key) from e
            try:
                yield
            finally:
                lock.release()
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]


class RedisLockManager:
    """
    Distributed lock on top of ``redis.asyncio`` locks.

    ``timeout`` is the lease: if the holder dies, the lock frees itself after
    that many seconds. Keep it above the slowest expected booking
    transaction.
    """

    def __init__(
        self,
        client: Redis,
        timeout: float,
        blocking_timeout: float,
        prefix: str = "slotbook:lock:",
    ):
        """Initialize lock manager with Redis client."""
        self.redis = client
        self._timeout = timeout
        self._blocking_timeout = blocking_timeout
        self._prefix = prefix

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        lock = self.redis.lock(
            f"{self._prefix}{key}",
            timeout=self._timeout,
            blocking=True,
            blocking_timeout=self._blocking_timeout,
        )
        if not await lock.acquire():
            raise LockTimeoutException(key)
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Lease ran out while held; the work itself is still guarded
                # by the conditional writes in the repositories.
                logger.warning("lock_lease_expired", key=key, lease_seconds=self._timeout)


def advisory_lock_id(key: str) -> int:
    """Map a lock name onto the signed 64-bit id space of pg advisory locks."""
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class PostgresAdvisoryLockManager:
    """
    Advisory locks polled with ``pg_try_advisory_lock`` until a deadline.

    Each held lock pins one connection of ``engine`` until release. Pass an
    engine that does not share its pool with the sessions doing the work
    (``slotbook.database.lock_engine``), or lock holders can exhaust the pool
    their own transactions are waiting on.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        blocking_timeout: float,
        poll_interval: float = 0.05,
    ):
        self._engine = engine
        self._blocking_timeout = blocking_timeout
        self._poll_interval = poll_interval

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        lock_id = advisory_lock_id(key)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._blocking_timeout

        async with self._engine.connect() as conn:
            while True:
                result = await conn.execute(select(func.pg_try_advisory_lock(lock_id)))
                if result.scalar():
                    break
                if loop.time() >= deadline:
                    raise LockTimeoutException(key)
                await asyncio.sleep(self._poll_interval)

            try:
                yield
            finally:
                await conn.execute(select(func.pg_advisory_unlock(lock_id)))


def build_lock_manager(
    settings: Settings,
    redis_client: Redis | None = None,
    engine: AsyncEngine | None = None,
) -> LockManager:
    """
    Create the lock backend selected by ``LOCK_BACKEND``.

    Args:
        settings: Application settings
        redis_client: Client for the ``redis`` backend
        engine: Engine for the ``postgres`` backend

    Returns:
        Lock manager instance
    """
    if settings.lock_backend == "redis":
        if redis_client is None:
            raise ValueError("LOCK_BACKEND=redis requires a Redis client")
        return RedisLockManager(
            redis_client,
            timeout=settings.lock_timeout_seconds,
            blocking_timeout=settings.lock_blocking_timeout_seconds,
            prefix=settings.lock_key_prefix,
        )

    if settings.lock_backend == "postgres":
        if engine is None:
            raise ValueError("LOCK_BACKEND=postgres requires a database engine")
        return PostgresAdvisoryLockManager(
            engine,
            blocking_timeout=settings.lock_blocking_timeout_seconds,
        )

    return LocalLockManager(blocking_timeout=settings.lock_blocking_timeout_seconds)
