"""Distributed lock coordinator.

Mutual exclusion per inventory item across every server process. A lock
is held under a lease: if the holder dies, the lock frees itself once
the lease expires, so holders must re-check ownership before committing
work that depended on it (see HeldLocks.ensure_held).

Example usage:
    async with coordinator.hold_all(order.lock_keys) as held:
        ...  # reserve stock
        await held.ensure_held()
        await uow.commit()
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

import redis.asyncio as aioredis
import structlog
from redis.exceptions import LockError, LockNotOwnedError

from fulfillment.domain.exceptions import LockLeaseExpiredError, LockTimeoutError

logger = structlog.get_logger()


@dataclass
class LockHandle:
    """Proof of a successful acquisition.

    Attributes:
        key: Lock key, e.g. 'inventory:plant-1'.
        token: Unique owner token; only the owner may release.
        lease_timeout_ms: Lease granted at acquisition.
        released: Whether release() has already run for this handle.
    """

    key: str
    token: str
    lease_timeout_ms: int
    released: bool = False
    lock: Any = field(default=None, repr=False)


@dataclass
class HeldLocks:
    """Locks acquired together by LockCoordinator.hold_all."""

    coordinator: "LockCoordinator"
    handles: list[LockHandle]

    @property
    def keys(self) -> list[str]:
        return [handle.key for handle in self.handles]

    async def ensure_held(self) -> None:
        """Check that every lease is still owned.

        Raises:
            LockLeaseExpiredError: If any lease was lost.
        """
        for handle in self.handles:
            if not await self.coordinator.is_held(handle):
                logger.warning("Lock lease lost before commit", key=handle.key)
                raise LockLeaseExpiredError(handle.key)


class LockCoordinator(ABC):
    """Acquires and releases named, leased, cross-process locks."""

    def __init__(self, wait_timeout_ms: int = 3000, lease_timeout_ms: int = 10000) -> None:
        """Initialize coordinator.

        Args:
            wait_timeout_ms: Default time to wait for a contended lock.
            lease_timeout_ms: Default lease for an acquired lock.
        """
        self.wait_timeout_ms = wait_timeout_ms
        self.lease_timeout_ms = lease_timeout_ms

    @abstractmethod
    async def acquire(
        self,
        key: str,
        wait_timeout_ms: int | None = None,
        lease_timeout_ms: int | None = None,
    ) -> LockHandle:
        """Acquire a lock, waiting at most wait_timeout_ms.

        Raises:
            LockTimeoutError: If the wait elapsed without acquiring.
        """

    @abstractmethod
    async def release(self, handle: LockHandle) -> None:
        """Release a lock.

        Idempotent; releasing after the lease expired is logged, not raised.
        """

    @abstractmethod
    async def is_held(self, handle: LockHandle) -> bool:
        """Check whether the handle still owns its lock."""

    @asynccontextmanager
    async def hold_all(
        self,
        keys: Iterable[str],
        wait_timeout_ms: int | None = None,
        lease_timeout_ms: int | None = None,
    ) -> AsyncIterator[HeldLocks]:
        """Acquire several locks in sorted key order and release them on exit.

        Keys are de-duplicated. If an acquisition fails, every lock already
        acquired is released before the error propagates. Release runs on
        every exit path, cancellation included.

        Args:
            keys: Lock keys to acquire.
            wait_timeout_ms: Per-lock wait override.
            lease_timeout_ms: Per-lock lease override.

        Yields:
            HeldLocks for ownership re-validation.

        Raises:
            LockTimeoutError: If any lock could not be acquired in time.
        """
        handles: list[LockHandle] = []
        try:
            for key in sorted(set(keys)):
                handles.append(
                    await self.acquire(
                        key,
                        wait_timeout_ms=wait_timeout_ms,
                        lease_timeout_ms=lease_timeout_ms,
                    )
                )
            yield HeldLocks(coordinator=self, handles=handles)
        finally:
            for handle in reversed(handles):
                await self.release(handle)


# ============================================================================
# Redis Implementation
# ============================================================================


class RedisLockCoordinator(LockCoordinator):
    """Lock coordinator backed by Redis.

    Uses redis-py's token-based Lock: the lease is the key TTL and only
    the owning token can release or extend it.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        wait_timeout_ms: int = 3000,
        lease_timeout_ms: int = 10000,
    ) -> None:
        super().__init__(wait_timeout_ms, lease_timeout_ms)
        self.redis = redis

    async def acquire(
        self,
        key: str,
        wait_timeout_ms: int | None = None,
        lease_timeout_ms: int | None = None,
    ) -> LockHandle:
        wait_ms = self.wait_timeout_ms if wait_timeout_ms is None else wait_timeout_ms
        lease_ms = self.lease_timeout_ms if lease_timeout_ms is None else lease_timeout_ms
        token = uuid4().hex
        lock = self.redis.lock(
            key,
            timeout=lease_ms / 1000,
            blocking_timeout=wait_ms / 1000,
            thread_local=False,
        )
        acquired = await lock.acquire(token=token)
        if not acquired:
            logger.warning("Lock acquisition timed out", key=key, wait_timeout_ms=wait_ms)
            raise LockTimeoutError(key, wait_ms)

        logger.debug("Lock acquired", key=key, lease_timeout_ms=lease_ms)
        return LockHandle(key=key, token=token, lease_timeout_ms=lease_ms, lock=lock)

    async def release(self, handle: LockHandle) -> None:
        if handle.released:
            return
        handle.released = True
        try:
            await handle.lock.release()
        except LockNotOwnedError:
            logger.warning("Lock lease expired before release", key=handle.key)
        except LockError as e:
            logger.warning("Lock release failed", key=handle.key, error=str(e))
        else:
            logger.debug("Lock released", key=handle.key)

    async def is_held(self, handle: LockHandle) -> bool:
        if handle.released:
            return False
        return bool(await handle.lock.owned())


# ============================================================================
# In-Memory Implementation
# ============================================================================


class InMemoryLockCoordinator(LockCoordinator):
    """Single-process lock coordinator with the same lease and wait rules.

    Used for tests and local runs.
    """

    POLL_INTERVAL_SECONDS = 0.005

    def __init__(self, wait_timeout_ms: int = 3000, lease_timeout_ms: int = 10000) -> None:
        super().__init__(wait_timeout_ms, lease_timeout_ms)
        # key -> (token, lease expiry on the monotonic clock)
        self._owners: dict[str, tuple[str, float]] = {}

    def _current_owner(self, key: str) -> str | None:
        owner = self._owners.get(key)
        if owner is None:
            return None
        token, expires_at = owner
        if time.monotonic() >= expires_at:
            del self._owners[key]
            return None
        return token

    async def acquire(
        self,
        key: str,
        wait_timeout_ms: int | None = None,
        lease_timeout_ms: int | None = None,
    ) -> LockHandle:
        wait_ms = self.wait_timeout_ms if wait_timeout_ms is None else wait_timeout_ms
        lease_ms = self.lease_timeout_ms if lease_timeout_ms is None else lease_timeout_ms
        deadline = time.monotonic() + wait_ms / 1000
        token = uuid4().hex

        while self._current_owner(key) is not None:
            if time.monotonic() >= deadline:
                logger.warning("Lock acquisition timed out", key=key, wait_timeout_ms=wait_ms)
                raise LockTimeoutError(key, wait_ms)
            await asyncio.sleep(self.POLL_INTERVAL_SECONDS)

        self._owners[key] = (token, time.monotonic() + lease_ms / 1000)
        logger.debug("Lock acquired", key=key, lease_timeout_ms=lease_ms)
        return LockHandle(key=key, token=token, lease_timeout_ms=lease_ms)

    async def release(self, handle: LockHandle) -> None:
        if handle.released:
            return
        handle.released = True
        if self._current_owner(handle.key) != handle.token:
            logger.warning("Lock lease expired before release", key=handle.key)
            return
        del self._owners[handle.key]
        logger.debug("Lock released", key=handle.key)

    async def is_held(self, handle: LockHandle) -> bool:
        return not handle.released and self._current_owner(handle.key) == handle.token

    def is_locked(self, key: str) -> bool:
        return self._current_owner(key) is not None
