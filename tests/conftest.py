from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple
import asyncio

import pytest

from apps.assistant_relay import ConversationRelay
from lib.config.relay_loader import load_relay_config
from lib.contracts.run import RunInfo, RunStatus, ThreadMessage
from lib.storage.context_store import InMemoryThreadContextStore


class FakeRunClient:
    """Scripted stand-in for :class:`apps.run_client.RunClient`."""

    def __init__(self, log: List[Tuple[Any, ...]]):
        self.log = log
        self.statuses: List[str] = ["completed"]
        self.initial_status = "queued"
        self.messages: List[ThreadMessage] = []
        self.errors: Dict[str, Exception] = {}
        self.create_thread_pause = 0
        self._threads = 0
        self._runs = 0

    def _maybe_fail(self, op: str) -> None:
        if op in self.errors:
            raise self.errors[op]

    async def create_thread(self) -> str:
        self._maybe_fail("create_thread")
        for _ in range(self.create_thread_pause):
            await asyncio.sleep(0)
        self._threads += 1
        thread_id = f"T{self._threads}"
        self.log.append(("create_thread", thread_id))
        return thread_id

    async def append_message(self, thread_id: str, text: str, role: str = "user") -> None:
        self._maybe_fail("append_message")
        self.log.append(("append_message", thread_id, role, text))

    async def create_run(self, thread_id: str, assistant_id: str) -> RunInfo:
        self._maybe_fail("create_run")
        self._runs += 1
        run = RunInfo(id=f"R{self._runs}", thread_id=thread_id, status=RunStatus(self.initial_status))
        self.log.append(("create_run", thread_id, assistant_id))
        return run

    async def get_run(self, thread_id: str, run_id: str) -> RunInfo:
        self._maybe_fail("get_run")
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        self.log.append(("get_run", thread_id, run_id))
        return RunInfo(id=run_id, thread_id=thread_id, status=RunStatus(status))

    async def cancel_run(self, thread_id: str, run_id: str) -> RunInfo:
        self._maybe_fail("cancel_run")
        self.log.append(("cancel_run", thread_id, run_id))
        return RunInfo(id=run_id, thread_id=thread_id, status=RunStatus.CANCELLING)

    async def list_messages(self, thread_id: str, order: str = "asc", run_id: Optional[str] = None) -> List[ThreadMessage]:
        self._maybe_fail("list_messages")
        self.log.append(("list_messages", thread_id, order, run_id))
        return list(self.messages)


class RecordingStore(InMemoryThreadContextStore):
    def __init__(self, log: List[Tuple[Any, ...]]):
        super().__init__()
        self.log = log

    async def load(self, key: str):
        self.log.append(("load", key))
        return await super().load(key)

    async def store(self, key: str, blob):
        self.log.append(("store", key, dict(blob)))
        await super().store(key, blob)


class FakeSurface:
    def __init__(self, fail_on: Tuple[str, ...] = ()):
        self.said: List[str] = []
        self.titles: List[str] = []
        self.statuses: List[str] = []
        self.prompts: List[Tuple[List[Any], str]] = []
        self.fail_on = fail_on

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail_on:
            raise RuntimeError(f"{op} failed")

    async def say(self, text: str) -> None:
        self._maybe_fail("say")
        self.said.append(text)

    async def set_title(self, title: str) -> None:
        self._maybe_fail("set_title")
        self.titles.append(title)

    async def set_status(self, status: str) -> None:
        self._maybe_fail("set_status")
        self.statuses.append(status)

    async def set_suggested_prompts(self, prompts, title: str) -> None:
        self._maybe_fail("set_suggested_prompts")
        self.prompts.append((list(prompts), title))


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def call_log() -> List[Tuple[Any, ...]]:
    return []


@pytest.fixture
def relay_config(tmp_path):
    return load_relay_config(
        str(tmp_path / "missing.yaml"),
        environ={"OPENAI_ASSISTANT_ID": "asst_1"},
    )


@pytest.fixture
def run_client(call_log):
    return FakeRunClient(call_log)


@pytest.fixture
def store(call_log):
    return RecordingStore(call_log)


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def surface():
    return FakeSurface()


@pytest.fixture
def relay(run_client, store, relay_config, sleeper):
    return ConversationRelay(run_client=run_client, store=store, config=relay_config, sleep=sleeper)


@pytest.fixture
def surface_factory():
    return FakeSurface
