"""Remote run and thread-message models."""
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class RunStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    FAILED = "failed"
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


# No tools are registered with the run, so ``requires_action`` can never
# progress and is treated as a dead end.
TERMINAL_STATUSES = frozenset(
    {
        RunStatus.COMPLETED,
        RunStatus.FAILED,
        RunStatus.CANCELLED,
        RunStatus.EXPIRED,
        RunStatus.INCOMPLETE,
        RunStatus.REQUIRES_ACTION,
    }
)


class RunInfo(BaseModel):
    id: str
    thread_id: str
    status: RunStatus


class ThreadMessage(BaseModel):
    role: str
    text: str = ""
    run_id: Optional[str] = None


class RunTimeoutError(Exception):
    """Raised when a run does not settle within the polling budget."""

    def __init__(self, run: RunInfo, waited: float):
        super().__init__(f"run {run.id} still {run.status.value} after {waited:.1f}s")
        self.run = run
        self.waited = waited
