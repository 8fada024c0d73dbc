# src/zimage_studio/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from ..core.models import GenerationResult, TaskHandle

POLL_INTERVAL_SECONDS = 2.0
MAX_POLL_ATTEMPTS = 30  # ~60 seconds at the fixed interval

LABEL_SUBMITTING = "Starting generation..."
LABEL_STARTING = "Generating your image..."
LABEL_WORKING = "Still generating..."
LABEL_ALMOST_DONE = "Almost done..."


class ControllerPhase(StrEnum):
    """
    Lifecycle of one generation attempt.

    IDLE -> SUBMITTING -> POLLING -> RESOLVED | FAILED | TIMED_OUT
    SUBMITTING -> FAILED
    """

    IDLE = "idle"
    SUBMITTING = "submitting"
    POLLING = "polling"
    RESOLVED = "resolved"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def terminal(self) -> bool:
        return self in (ControllerPhase.RESOLVED, ControllerPhase.FAILED, ControllerPhase.TIMED_OUT)

    @property
    def active(self) -> bool:
        return self in (ControllerPhase.SUBMITTING, ControllerPhase.POLLING)


@dataclass(frozen=True, slots=True)
class PollPolicy:
    """Fixed-interval polling with a bounded number of status queries."""

    interval_seconds: float = POLL_INTERVAL_SECONDS
    max_attempts: int = MAX_POLL_ATTEMPTS

    def __post_init__(self) -> None:
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")


def progress_label(attempt: int) -> str:
    if attempt < 5:
        return LABEL_STARTING
    if attempt < 15:
        return LABEL_WORKING
    return LABEL_ALMOST_DONE


class CancellationToken:
    """Per-run flag. Once cancelled, nothing belonging to the run may touch controller state."""

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


# ---- Events delivered to on_state_change listeners ----


@dataclass(frozen=True, slots=True)
class InProgress:
    handle: TaskHandle | None
    attempt: int
    label: str
    elapsed_seconds: float


@dataclass(frozen=True, slots=True)
class Succeeded:
    handle: TaskHandle
    result: GenerationResult


@dataclass(frozen=True, slots=True)
class Failed:
    handle: TaskHandle | None
    message: str


@dataclass(frozen=True, slots=True)
class TimedOut:
    handle: TaskHandle
    message: str


StateEvent = InProgress | Succeeded | Failed | TimedOut
TerminalEvent = Succeeded | Failed | TimedOut
