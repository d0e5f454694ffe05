"""Slack Bolt wiring for the conversation relay.

Bolt injects per-thread utilities (``say``, ``set_title``, ``set_status``,
``set_suggested_prompts``) into assistant listeners.  :class:`BoltSurface`
wraps them behind :class:`apps.assistant_relay.AssistantSurface` and
:func:`build_assistant` registers the relay's handlers on an ``AsyncAssistant``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from slack_bolt.async_app import AsyncAssistant

from lib.contracts.events import AssistantThreadEvent, SuggestedPrompt, UserMessage

from . import ConversationRelay


Utility = Callable[..., Awaitable[Any]]


async def _unavailable(*args: Any, **kwargs: Any) -> None:
    raise RuntimeError("utility not available for this event")


@dataclass
class BoltSurface:
    say_fn: Utility
    set_title_fn: Optional[Utility] = None
    set_status_fn: Optional[Utility] = None
    set_suggested_prompts_fn: Optional[Utility] = None

    async def say(self, text: str) -> None:
        await self.say_fn(text=text)

    async def set_title(self, title: str) -> None:
        await (self.set_title_fn or _unavailable)(title)

    async def set_status(self, status: str) -> None:
        await (self.set_status_fn or _unavailable)(status)

    async def set_suggested_prompts(self, prompts: List[SuggestedPrompt], title: str) -> None:
        await (self.set_suggested_prompts_fn or _unavailable)(
            prompts=[p.model_dump() for p in prompts],
            title=title,
        )


def build_assistant(relay: ConversationRelay) -> AsyncAssistant:
    """Return an ``AsyncAssistant`` whose listeners delegate to ``relay``."""

    assistant = AsyncAssistant()

    @assistant.thread_started
    async def thread_started(payload: Dict[str, Any], say: Utility, set_suggested_prompts: Utility) -> None:
        surface = BoltSurface(say_fn=say, set_suggested_prompts_fn=set_suggested_prompts)
        await relay.on_thread_opened(AssistantThreadEvent.from_event(payload), surface)

    @assistant.thread_context_changed
    async def thread_context_changed(payload: Dict[str, Any], say: Utility) -> None:
        await relay.on_thread_context_changed(AssistantThreadEvent.from_event(payload), BoltSurface(say_fn=say))

    @assistant.user_message
    async def user_message(payload: Dict[str, Any], say: Utility, set_title: Utility, set_status: Utility) -> None:
        surface = BoltSurface(say_fn=say, set_title_fn=set_title, set_status_fn=set_status)
        await relay.on_user_message(UserMessage.from_event(payload), surface)

    return assistant


__all__ = ["BoltSurface", "build_assistant"]
