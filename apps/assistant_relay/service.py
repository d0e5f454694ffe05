"""Helpers for the conversation relay.

The functions here carry no state of their own: prompt selection, assembly
of the assistant's reply and the polling loop that waits for a run to
settle.  :class:`apps.assistant_relay.ConversationRelay` composes them.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Iterator, List, Sequence
import asyncio

from lib.config.relay_loader import PollSettings
from lib.contracts.events import SuggestedPrompt
from lib.contracts.run import RunInfo, RunTimeoutError, ThreadMessage
from lib.telemetry.logger import get_logger


logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]
FetchRun = Callable[[str, str], Awaitable[RunInfo]]


# ---------------------------------------------------------------------------
# Suggested prompts
# ---------------------------------------------------------------------------

def select_prompts(
    base: Sequence[SuggestedPrompt],
    in_channel: Sequence[SuggestedPrompt],
    has_channel: bool,
) -> List[SuggestedPrompt]:
    """Return the prompts to offer when a thread opens.

    Channel-only prompts (such as summarising the channel) only make sense
    when the container was opened next to a channel.
    """

    prompts = list(base)
    if has_channel:
        prompts.extend(in_channel)
    return prompts


# ---------------------------------------------------------------------------
# Reply assembly
# ---------------------------------------------------------------------------

def assemble_reply(messages: Sequence[ThreadMessage]) -> str:
    """Join the text of every assistant message, oldest first."""

    return "\n".join(m.text for m in messages if m.role == "assistant" and m.text)


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------

def backoff_delays(poll: PollSettings) -> Iterator[float]:
    """Yield ``initial, initial*m, ...`` capped at ``max_interval`` forever."""

    delay = poll.initial_interval
    while True:
        yield min(delay, poll.max_interval)
        delay = min(delay * poll.multiplier, poll.max_interval)


async def wait_for_run(
    fetch: FetchRun,
    run: RunInfo,
    poll: PollSettings,
    sleep: Sleep = asyncio.sleep,
) -> RunInfo:
    """Poll ``fetch(thread_id, run_id)`` until ``run`` reaches a terminal status.

    The budget is the sum of the delays slept, not wall-clock time, so a slow
    status call does not eat into it.  Raises :class:`RunTimeoutError` once
    the budget is spent.
    """

    waited = 0.0
    delays = backoff_delays(poll)
    while not run.status.is_terminal:
        if waited >= poll.timeout:
            raise RunTimeoutError(run, waited)
        delay = min(next(delays), poll.timeout - waited)
        await sleep(delay)
        waited += delay
        run = await fetch(run.thread_id, run.id)
        logger.debug("Run %s status %s after %.1fs", run.id, run.status.value, waited)
    return run


__all__ = ["assemble_reply", "backoff_delays", "select_prompts", "wait_for_run"]
