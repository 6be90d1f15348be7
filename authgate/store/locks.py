"""Per-key asyncio locking for store mutations."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class KeyedLock:
    """A family of asyncio locks addressed by string keys.

    ``hold("user:1", "provider:github:42")`` acquires every key in sorted order,
    so two callers asking for overlapping key sets cannot deadlock. Lock objects
    are created on demand and dropped once nobody holds or awaits them.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        acquired: list[str] = []
        try:
            for key in sorted(set(keys)):
                lock = self._locks.setdefault(key, asyncio.Lock())
                self._refs[key] = self._refs.get(key, 0) + 1
                try:
                    await lock.acquire()
                except BaseException:
                    self._unref(key)
                    raise
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
                self._unref(key)

    def _unref(self, key: str) -> None:
        remaining = self._refs[key] - 1
        if remaining:
            self._refs[key] = remaining
        else:
            del self._refs[key]
            del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
