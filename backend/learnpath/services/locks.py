"""
Per-key asyncio locks.

Serialises writers of one user's aggregates inside this process. Locks are
created on first use and dropped when nobody holds or waits for them, so the
table does not grow with the number of users ever seen.

Cross-process safety comes from the version columns on the rows, not from
these locks.

Usage:
    from learnpath.services.locks import user_locks

    async with user_locks.hold(user_id):
        ...
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable


class KeyedLocks:
    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._holders: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


user_locks = KeyedLocks()
