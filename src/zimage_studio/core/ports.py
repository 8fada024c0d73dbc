# src/zimage_studio/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the lifecycle controller.

The controller depends on Protocols instead of the HTTP gateways and the real
event-loop clock, so tests can drive it with fakes and no wall-clock delays.
"""

from typing import Protocol

from .models import GenerationRequest, TaskHandle, TaskState


class SubmissionGateway(Protocol):
    """Creates one upstream task per call. Raises GenerationError subclasses."""

    async def submit(self, request: GenerationRequest) -> TaskHandle: ...


class StatusGateway(Protocol):
    """One status query per call. Raises GenerationError subclasses."""

    async def query(self, handle: TaskHandle | str) -> TaskState: ...


class Clock(Protocol):
    """
    Time source and delay scheduler.

    monotonic() feeds the elapsed-time display only; sleep() is the single
    timer suspension point between two status queries.
    """

    def monotonic(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...
