"""
Resource Locks
Version: 1.0

In-process keyed locks that serialise writers touching the same booking,
vehicle or driver. Database row locks cover other processes; these keep
two coroutines of one process from interleaving a check and a write.

Ordering rule: a booking lock is taken before any resource lock, and
resource locks are always taken together, sorted by key.
NO DEPENDENCIES on other services.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, List, Optional

from services.metrics import LOCK_WAITERS

logger = logging.getLogger(__name__)


def booking_key(booking_id: int) -> str:
    return f"booking:{booking_id}"


def vehicle_key(vehicle_id: int) -> str:
    return f"vehicle:{vehicle_id}"


def driver_key(driver_id: int) -> str:
    return f"driver:{driver_id}"


class ResourceLocks:
    """Registry of asyncio locks keyed by resource."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def _checkout(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: str) -> None:
        remaining = self._users.get(key, 1) - 1
        if remaining <= 0:
            self._users.pop(key, None)
            self._locks.pop(key, None)
        else:
            self._users[key] = remaining

    @asynccontextmanager
    async def hold(self, *keys: Optional[str]) -> AsyncIterator[List[str]]:
        """
        Acquire every given key (None entries are skipped).

        Yields the sorted list of keys actually held.
        """
        ordered = sorted({k for k in keys if k})
        acquired: List[str] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                if lock.locked():
                    logger.debug(f"Waiting for lock {key}")
                LOCK_WAITERS.inc()
                try:
                    await lock.acquire()
                except BaseException:
                    self._checkin(key)
                    raise
                finally:
                    LOCK_WAITERS.dec()
                acquired.append(key)
            yield ordered
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
                self._checkin(key)

    def is_held(self, key: str) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())

    def active_keys(self) -> Iterable[str]:
        return list(self._locks.keys())
