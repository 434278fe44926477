"""
Per-key asyncio locks.

Entries are weak references, so a lock disappears once no coroutine holds
or waits on it and the table does not grow with every account seen.
"""

import asyncio
from weakref import WeakValueDictionary


class KeyedLocks:
    def __init__(self):
        self._locks: "WeakValueDictionary[str, asyncio.Lock]" = WeakValueDictionary()

    def __call__(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)
