"""Per-key asyncio locks for serializing read-modify-write cycles."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator, Dict, Iterable

LOGGER = logging.getLogger(__name__)


class KeyedLock:
    """Registry of asyncio locks keyed by string identifiers.

    Multiple keys are always acquired in sorted order so that two callers
    locking overlapping key sets cannot deadlock. Locks are dropped from the
    registry once no holder or waiter references them.

    Usage:
        locks = KeyedLock()

        async with locks.hold("printer-1", "printer-2"):
            ...  # read, compute and write both printers
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._refcounts: Dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        ordered = sorted(set(keys))
        acquired: list[str] = []
        for key in ordered:
            self._refcounts[key] = self._refcounts.get(key, 0) + 1
            lock = self._locks.setdefault(key, asyncio.Lock())
            try:
                await lock.acquire()
            except BaseException:
                self._release_ref(key)
                self._release_all(acquired)
                raise
            acquired.append(key)

        try:
            yield
        finally:
            self._release_all(acquired)

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)

    def _release_all(self, keys: Iterable[str]) -> None:
        for key in reversed(list(keys)):
            self._locks[key].release()
            self._release_ref(key)

    def _release_ref(self, key: str) -> None:
        remaining = self._refcounts.get(key, 0) - 1
        if remaining <= 0:
            self._refcounts.pop(key, None)
            self._locks.pop(key, None)
        else:
            self._refcounts[key] = remaining
