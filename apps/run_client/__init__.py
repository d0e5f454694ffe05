"""Run client.

:class:`RunClient` is the relay's only view of the hosted assistant API: it
creates remote threads, appends user messages, starts runs against an
assistant, observes their status and reads back the produced messages.
Results are converted into the small models of :mod:`lib.contracts.run` so
the relay never handles SDK objects directly.
"""

from __future__ import annotations

from typing import Any, List, Optional

from openai import AsyncOpenAI

from lib.contracts.run import RunInfo, RunStatus, ThreadMessage


def _message_text(message: Any) -> str:
    parts: List[str] = []
    for block in getattr(message, "content", None) or []:
        if getattr(block, "type", None) != "text":
            continue
        text = getattr(block, "text", None)
        value = getattr(text, "value", None)
        if value:
            parts.append(value)
    return "\n".join(parts)


def _run_info(run: Any) -> RunInfo:
    return RunInfo(id=run.id, thread_id=run.thread_id, status=RunStatus(run.status))


class RunClient:
    """Async wrapper over the OpenAI Assistants threads/runs endpoints."""

    def __init__(self, client: AsyncOpenAI):
        self.client = client

    @classmethod
    def from_api_key(cls, api_key: Optional[str]) -> "RunClient":
        return cls(AsyncOpenAI(api_key=api_key))

    async def create_thread(self) -> str:
        thread = await self.client.beta.threads.create()
        return thread.id

    async def append_message(self, thread_id: str, text: str, role: str = "user") -> None:
        await self.client.beta.threads.messages.create(
            thread_id=thread_id,
            role=role,
            content=text,
        )

    async def create_run(self, thread_id: str, assistant_id: str) -> RunInfo:
        run = await self.client.beta.threads.runs.create(
            thread_id=thread_id,
            assistant_id=assistant_id,
        )
        return _run_info(run)

    async def get_run(self, thread_id: str, run_id: str) -> RunInfo:
        run = await self.client.beta.threads.runs.retrieve(run_id=run_id, thread_id=thread_id)
        return _run_info(run)

    async def cancel_run(self, thread_id: str, run_id: str) -> RunInfo:
        run = await self.client.beta.threads.runs.cancel(run_id=run_id, thread_id=thread_id)
        return _run_info(run)

    async def list_messages(
        self,
        thread_id: str,
        order: str = "asc",
        run_id: Optional[str] = None,
    ) -> List[ThreadMessage]:
        """Return the thread's messages, oldest first by default.

        The SDK paginates lazily; iterating the page object walks every page.
        """

        kwargs: dict = {"thread_id": thread_id, "order": order}
        if run_id:
            kwargs["run_id"] = run_id
        page = self.client.beta.threads.messages.list(**kwargs)
        messages: List[ThreadMessage] = []
        async for message in page:
            messages.append(
                ThreadMessage(
                    role=message.role,
                    text=_message_text(message),
                    run_id=getattr(message, "run_id", None),
                )
            )
        return messages


__all__ = ["RunClient"]
