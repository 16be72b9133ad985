"""
Per-key asyncio locks. Serializes check-then-write sequences for one student,
one application or one (student, application) gate pair inside a process.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable, Optional

from app.core.config import settings
from app.core.exceptions import TransientFailure


class KeyedLock:
    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable, timeout: Optional[float] = None) -> AsyncIterator[None]:
        if timeout is None:
            timeout = settings.store_timeout_seconds
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout)
            except asyncio.TimeoutError as exc:
                raise TransientFailure("Another request for this record is still in progress, please retry") from exc
            try:
                yield
            finally:
                lock.release()
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


student_locks = KeyedLock()
application_locks = KeyedLock()
gate_locks = KeyedLock()
