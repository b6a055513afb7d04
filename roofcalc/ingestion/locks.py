"""Per-organization import serialization.

Pattern aggregates are read-modify-write, so two imports for the same
organization must not interleave inside one process. A registry is owned by
whoever runs imports (the web app keeps one on ``app.state``) and passed in.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class ImportLockRegistry:
    """One lock per organization, dropped once nobody holds or waits on it.

    Usage:
        locks = ImportLockRegistry()
        async with locks.hold(org_id):
            ...
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, org_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(org_id, asyncio.Lock())
        self._users[org_id] = self._users.get(org_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[org_id] -= 1
            if self._users[org_id] == 0:
                del self._users[org_id]
                del self._locks[org_id]

    def is_locked(self, org_id: str) -> bool:
        lock = self._locks.get(org_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
