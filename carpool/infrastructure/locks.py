"""
Per-key asyncio lock registry.

Serializes writers on the *same* ride inside one process so they queue
instead of burning optimistic-write retries against each other.  Writers
on different rides never share a lock.  Across processes the version
check in ``RideRepository.save`` is still what guarantees correctness.

Locks are reference-counted and dropped once no coroutine holds or waits
on them, so the registry does not grow with the number of rides ever
touched.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable


class KeyedLock:
    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]
