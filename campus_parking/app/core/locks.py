"""
In-process keyed locks.

Single-writer-per-key critical sections for spot claims (keyed by
(spot, date)) and rental transitions (keyed by rental id). Locks for idle
keys are dropped so the registry does not grow without bound.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Hashable


class KeyedLock:
    """Registry of asyncio locks, one per key, reference counted."""

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._holders: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def acquire(self, key: Hashable):
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
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
