"""Per-user serialization for message processing.

Every unit of work that reads and writes a user's session, and every
message sent to that user, runs under the user's lock.  Different users
proceed in parallel.  Locks are reference counted and dropped once no task
holds or waits for them, so the map does not grow with the user base.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class UserLocks:
    """A lazily populated map of ``asyncio.Lock`` per user id."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        self._refs[user_id] = self._refs.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refs[user_id] -= 1
            if self._refs[user_id] == 0:
                del self._refs[user_id]
                del self._locks[user_id]

    def __len__(self) -> int:
        return len(self._locks)
