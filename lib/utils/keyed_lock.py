"""Per-key asyncio locks."""
from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict
import asyncio


@dataclass
class _Entry:
    lock: asyncio.Lock
    users: int = 0


class KeyedLock:
    """Mutual exclusion scoped to a string key.

    Entries exist only while some coroutine holds or waits for the key, so
    the table does not grow with the number of keys ever seen.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, _Entry] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry(asyncio.Lock())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
