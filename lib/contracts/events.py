"""Workspace events delivered to the conversation relay."""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


def thread_key(channel_id: str, thread_ts: str) -> str:
    """Return the context-store key of a workspace thread."""

    return f"{channel_id}:{thread_ts}"


class ChannelContext(BaseModel):
    """The channel a user is looking at while the assistant container is open."""

    channel_id: Optional[str] = None
    team_id: Optional[str] = None
    enterprise_id: Optional[str] = None


class SuggestedPrompt(BaseModel):
    title: str
    message: str


class AssistantThreadEvent(BaseModel):
    """``assistant_thread_started`` / ``assistant_thread_context_changed`` payload."""

    channel_id: str
    thread_ts: str
    user_id: Optional[str] = None
    context: ChannelContext = Field(default_factory=ChannelContext)

    @property
    def key(self) -> str:
        return thread_key(self.channel_id, self.thread_ts)

    @property
    def in_channel(self) -> bool:
        return bool(self.context.channel_id)

    @classmethod
    def from_event(cls, event: Dict[str, Any]) -> "AssistantThreadEvent":
        thread = event.get("assistant_thread") or {}
        return cls(
            channel_id=thread.get("channel_id") or "",
            thread_ts=thread.get("thread_ts") or "",
            user_id=thread.get("user_id"),
            context=ChannelContext(**(thread.get("context") or {})),
        )


class UserMessage(BaseModel):
    """A user's message posted into an assistant thread."""

    channel: str
    text: str = ""
    thread_ts: Optional[str] = None
    ts: Optional[str] = None
    user: Optional[str] = None
    channel_type: Optional[str] = None

    @property
    def key(self) -> str:
        # A message outside a thread starts its own thread.
        return thread_key(self.channel, self.thread_ts or self.ts or "")

    @classmethod
    def from_event(cls, event: Dict[str, Any]) -> "UserMessage":
        return cls(
            channel=event.get("channel") or "",
            text=event.get("text") or "",
            thread_ts=event.get("thread_ts"),
            ts=event.get("ts"),
            user=event.get("user"),
            channel_type=event.get("channel_type"),
        )
