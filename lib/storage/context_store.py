"""Thread context persistence.

A thread context is a small mapping remembered per workspace thread; the
relay keeps the remote AI-thread identifier and the channel the user was
looking at in it.  The store is injected into the relay, so any backend that
implements :class:`ThreadContextStore` can be swapped in.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from copy import deepcopy
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional
import asyncio
import os
import shutil
import tempfile

import yaml

from lib.telemetry.logger import get_logger


ThreadContext = Dict[str, Any]

logger = get_logger(__name__)


class ThreadContextStore(ABC):
    @abstractmethod
    async def load(self, key: str) -> Optional[ThreadContext]:
        """Return the stored context for ``key`` or ``None``."""

    @abstractmethod
    async def store(self, key: str, blob: ThreadContext) -> None:
        """Replace the context stored for ``key``."""


class InMemoryThreadContextStore(ThreadContextStore):
    """Process-local store; contexts are lost on restart."""

    def __init__(self) -> None:
        self._data: Dict[str, ThreadContext] = {}

    async def load(self, key: str) -> Optional[ThreadContext]:
        blob = self._data.get(key)
        return deepcopy(blob) if blob is not None else None

    async def store(self, key: str, blob: ThreadContext) -> None:
        self._data[key] = deepcopy(dict(blob))

    def __len__(self) -> int:
        return len(self._data)


def _atomic_write(path: Path, data: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("w", delete=False, dir=str(path.parent), encoding="utf-8") as tmp:
        tmp.write(data)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_path = tmp.name
    os.replace(tmp_path, path)


class YamlFileThreadContextStore(ThreadContextStore):
    """All contexts in a single YAML document, rewritten atomically on save.

    A corrupt file is moved aside and the store starts empty.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self._cache: Optional[Dict[str, ThreadContext]] = None

    def _quarantine_corrupt(self, exc: Exception) -> None:
        ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        quarantined = self.path.with_suffix(self.path.suffix + f".corrupt-{ts}")
        shutil.move(str(self.path), str(quarantined))
        logger.warning("Quarantined corrupt context file %s: %s", self.path, exc)

    def _read(self) -> Dict[str, ThreadContext]:
        if not self.path.exists():
            return {}
        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            self._quarantine_corrupt(exc)
            return {}
        if not isinstance(data, dict):
            self._quarantine_corrupt(ValueError("top level is not a mapping"))
            return {}
        return data

    async def _contexts(self) -> Dict[str, ThreadContext]:
        if self._cache is None:
            self._cache = await asyncio.to_thread(self._read)
        return self._cache

    async def load(self, key: str) -> Optional[ThreadContext]:
        async with self._lock:
            blob = (await self._contexts()).get(key)
            return deepcopy(blob) if blob is not None else None

    async def store(self, key: str, blob: ThreadContext) -> None:
        async with self._lock:
            contexts = dict(await self._contexts())
            contexts[key] = deepcopy(dict(blob))
            text = yaml.safe_dump(contexts, sort_keys=True, allow_unicode=True)
            await asyncio.to_thread(_atomic_write, self.path, text)
            self._cache = contexts


def build_context_store(backend: str, path: str | Path | None = None) -> ThreadContextStore:
    if backend == "memory":
        return InMemoryThreadContextStore()
    if backend == "file":
        if not path:
            raise ValueError("file context store needs a path")
        return YamlFileThreadContextStore(path)
    raise ValueError(f"unknown context store backend: {backend!r}")


__all__ = [
    "InMemoryThreadContextStore",
    "ThreadContext",
    "ThreadContextStore",
    "YamlFileThreadContextStore",
    "build_context_store",
]
