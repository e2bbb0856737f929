"""Per-key asyncio locks for serialising ledger and team-capacity writers."""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Hashable


class KeyedLocks:
    """Registry of one ``asyncio.Lock`` per key.

    ``hold`` acquires several keys in the order given; callers must always
    pass keys in the same global order (team → request → ledger → weekend)
    so that two holders can never wait on each other.

    An entry lives only while someone holds or waits for it, so the
    registry stays as small as the number of keys currently in contention.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def _acquire(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        # Counted before waiting so a queued waiter keeps the entry alive
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    @asynccontextmanager
    async def hold(self, *keys: Hashable) -> AsyncIterator[None]:
        # asyncio.Lock is not re-entrant; drop duplicate keys
        unique = list(dict.fromkeys(k for k in keys if k is not None))
        async with AsyncExitStack() as stack:
            for key in unique:
                await stack.enter_async_context(self._acquire(key))
            yield
