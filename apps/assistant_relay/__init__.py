"""Conversation relay.

:class:`ConversationRelay` bridges a workspace assistant thread and a remote
assistant thread.  It handles the three workspace events:

* a thread opened: greet, remember the channel context, offer prompts;
* the thread context changed: remember the new channel context;
* a user message: forward it to the remote thread, run the assistant, wait
  for the run to settle and post the answer back.

Nothing here knows about Slack.  Outbound calls go through an
:class:`AssistantSurface`, remote calls through :class:`apps.run_client.RunClient`
and persistence through a :class:`lib.storage.context_store.ThreadContextStore`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol
import asyncio

from apps.run_client import RunClient
from lib.config.relay_loader import RelayConfig
from lib.contracts.events import AssistantThreadEvent, SuggestedPrompt, UserMessage
from lib.contracts.run import RunStatus, RunTimeoutError
from lib.storage.context_store import ThreadContextStore
from lib.telemetry.logger import get_logger
from lib.utils.keyed_lock import KeyedLock

from .service import Sleep, assemble_reply, select_prompts, wait_for_run


REMOTE_THREAD_KEY = "openai_thread_id"
CHANNEL_CONTEXT_KEY = "channel_context"

logger = get_logger(__name__)


class AssistantSurface(Protocol):
    """Outbound calls on one workspace assistant thread."""

    async def say(self, text: str) -> None: ...

    async def set_title(self, title: str) -> None: ...

    async def set_status(self, status: str) -> None: ...

    async def set_suggested_prompts(self, prompts: List[SuggestedPrompt], title: str) -> None: ...


@dataclass
class ConversationRelay:
    """Relay workspace assistant events to the remote run API."""

    run_client: RunClient
    store: ThreadContextStore
    config: RelayConfig
    locks: KeyedLock = field(default_factory=KeyedLock)
    sleep: Sleep = asyncio.sleep

    # ─── Context helpers ──────────────────────────────────────────────────
    async def _save_channel_context(self, event: AssistantThreadEvent) -> Dict[str, Any]:
        async with self.locks.hold(event.key):
            blob = await self.store.load(event.key) or {}
            if event.in_channel:
                blob[CHANNEL_CONTEXT_KEY] = event.context.model_dump(exclude_none=True)
            else:
                blob.pop(CHANNEL_CONTEXT_KEY, None)
            await self.store.store(event.key, blob)
            return blob

    async def resolve_remote_thread(self, key: str) -> str:
        """Return the remote thread id for ``key``, creating it on first use.

        The new id is stored before it is returned, and the whole lookup runs
        under the key's lock so concurrent first messages share one thread.
        """

        async with self.locks.hold(key):
            blob = await self.store.load(key) or {}
            remote_id: Optional[str] = blob.get(REMOTE_THREAD_KEY)
            if remote_id:
                return remote_id
            remote_id = await self.run_client.create_thread()
            blob[REMOTE_THREAD_KEY] = remote_id
            await self.store.store(key, blob)
            logger.info("Bound workspace thread %s to remote thread %s", key, remote_id)
            return remote_id

    # ─── Event handlers ───────────────────────────────────────────────────
    async def on_thread_opened(self, event: AssistantThreadEvent, surface: AssistantSurface) -> None:
        replies = self.config.replies
        try:
            await surface.say(replies.greeting)
            await self._save_channel_context(event)
            prompts = select_prompts(self.config.prompts, self.config.channel_prompts, event.in_channel)
            await surface.set_suggested_prompts(prompts, replies.prompts_title)
        except Exception:
            logger.exception("Failed to handle thread start for %s", event.key)

    async def on_thread_context_changed(self, event: AssistantThreadEvent, surface: AssistantSurface) -> None:
        try:
            await self._save_channel_context(event)
        except Exception:
            logger.exception("Failed to save thread context for %s", event.key)

    async def on_user_message(self, message: UserMessage, surface: AssistantSurface) -> None:
        replies = self.config.replies
        try:
            reply = await self._answer(message, surface)
        except RunTimeoutError as exc:
            logger.error("Gave up waiting for run: %s", exc)
            await self._cancel_quietly(exc)
            reply = replies.timed_out
        except Exception:
            logger.exception("Failed to answer message in %s", message.key)
            reply = replies.generic_error
        try:
            await surface.say(reply)
        except Exception:
            logger.exception("Failed to deliver reply to %s", message.key)

    async def _answer(self, message: UserMessage, surface: AssistantSurface) -> str:
        """Run the assistant on ``message`` and return the text to post.

        Only messages produced by this run are read back, so earlier answers in
        the same remote thread are not repeated.
        """

        replies = self.config.replies
        await surface.set_title(message.text)
        await surface.set_status(replies.status)

        thread_id = await self.resolve_remote_thread(message.key)
        await self.run_client.append_message(thread_id, message.text, role="user")
        run = await self.run_client.create_run(thread_id, self.config.assistant_id)

        run = await wait_for_run(self.run_client.get_run, run, self.config.poll, sleep=self.sleep)

        if run.status is not RunStatus.COMPLETED:
            logger.error("Run %s failed with status: %s", run.id, run.status.value)
            return replies.run_failed

        messages = await self.run_client.list_messages(thread_id, order="asc", run_id=run.id)
        text = assemble_reply(messages)
        if not text:
            logger.warning("Run %s completed without assistant text", run.id)
            return replies.empty_reply
        return text

    async def _cancel_quietly(self, exc: RunTimeoutError) -> None:
        try:
            await self.run_client.cancel_run(exc.run.thread_id, exc.run.id)
        except Exception:
            logger.warning("Could not cancel run %s", exc.run.id, exc_info=True)


__all__ = ["AssistantSurface", "ConversationRelay", "REMOTE_THREAD_KEY", "CHANNEL_CONTEXT_KEY"]
