# src/zimage_studio/tasks/task_controller.py

from __future__ import annotations

"""
Task lifecycle controller.

Drives one generation attempt at a time:
- submits the request through the submission gateway,
- polls the status gateway on a fixed interval (first query immediately),
- maps states to events for on_state_change listeners,
- gives up after PollPolicy.max_attempts in-progress answers (TIMED_OUT).

Everything runs on the asyncio event loop. Each submission gets its own driver task
and CancellationToken; submitting again, cancel() or close() invalidates the token and
cancels the driver, so a late response or a pending delay can never touch state.
"""

import asyncio
import dataclasses
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from ..core.errors import GenerationError, TimeoutPolicyError
from ..core.models import AspectRatio, GenerationRequest, TaskHandle, TaskState, TaskStatus, validate_request
from ..core.ports import Clock, StatusGateway, SubmissionGateway
from .task_models import (
    LABEL_STARTING,
    LABEL_SUBMITTING,
    CancellationToken,
    ControllerPhase,
    Failed,
    InProgress,
    PollPolicy,
    StateEvent,
    Succeeded,
    TerminalEvent,
    TimedOut,
    progress_label,
)

logger = logging.getLogger(__name__)

StateListener = Callable[[StateEvent], None]

UNEXPECTED_ERROR_MESSAGE = "unexpected error, please try again"
GENERATION_FAILED_MESSAGE = "image generation failed, please try again"


class AsyncioClock:
    """Real clock: time.monotonic() + asyncio.sleep()."""

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


def _mark_retrieved(fut: asyncio.Future) -> None:
    # Nobody may be awaiting the handle any more (caller cancelled); avoid
    # "exception was never retrieved" noise.
    if not fut.cancelled():
        fut.exception()


@dataclass(slots=True, eq=False)
class _Run:
    request: GenerationRequest
    started_at: float
    handle_ready: asyncio.Future
    token: CancellationToken = field(default_factory=CancellationToken)
    handle: TaskHandle | None = None
    attempts: int = 0
    task: asyncio.Task | None = None
    outcome: TerminalEvent | None = None


class TaskLifecycleController:
    def __init__(
            self,
            submission: SubmissionGateway,
            status: StatusGateway,
            *,
            policy: PollPolicy | None = None,
            clock: Clock | None = None,
    ) -> None:
        self._submission = submission
        self._status = status
        self._policy = policy or PollPolicy()
        self._clock: Clock = clock or AsyncioClock()

        self._listeners: list[StateListener] = []
        self._phase = ControllerPhase.IDLE
        self._run: _Run | None = None
        self._last_event: StateEvent | None = None
        self._closed = False

    # ---- Read-only view ----

    @property
    def phase(self) -> ControllerPhase:
        return self._phase

    @property
    def policy(self) -> PollPolicy:
        return self._policy

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def handle(self) -> TaskHandle | None:
        """The live handle; None once the run reached a terminal state."""
        if self._run is None or not self._phase.active:
            return None
        return self._run.handle

    @property
    def attempts(self) -> int:
        return self._run.attempts if self._run is not None else 0

    @property
    def elapsed_seconds(self) -> float:
        if self._run is None or not self._phase.active:
            return 0.0
        return self._elapsed(self._run)

    @property
    def last_event(self) -> StateEvent | None:
        return self._last_event

    # ---- Inbound boundary ----

    def on_state_change(self, callback: StateListener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unregisters it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def submit(self, prompt: str, aspect_ratio: AspectRatio | str) -> TaskHandle:
        """
        Start a new generation, replacing any run still in flight.

        Returns the TaskHandle once the upstream task exists; polling continues in the
        background. Gateway errors are delivered as a Failed event and raised here.
        If this run is superseded (or the controller closed) before a handle arrives,
        raises asyncio.CancelledError.

        An invalid prompt or aspect ratio raises ValidationError before anything
        changes: a run already in flight keeps going and no event is emitted.
        """
        if self._closed:
            raise RuntimeError("controller is closed")

        request = validate_request(GenerationRequest(prompt=prompt, aspect_ratio=aspect_ratio))

        self._abandon("replaced by a new submission")

        loop = asyncio.get_running_loop()
        run = _Run(
            request=request,
            started_at=self._clock.monotonic(),
            handle_ready=loop.create_future(),
        )
        run.handle_ready.add_done_callback(_mark_retrieved)

        self._run = run
        self._last_event = None
        self._set_phase(run, ControllerPhase.SUBMITTING)
        self._emit(run, InProgress(handle=None, attempt=0, label=LABEL_SUBMITTING, elapsed_seconds=0.0))
        run.task = loop.create_task(self._drive(run), name="zimage-task-driver")

        return await asyncio.shield(run.handle_ready)

    async def wait(self) -> TerminalEvent | None:
        """Wait for the current run. Returns its terminal event, or None if it was abandoned."""
        run = self._run
        if run is None or run.task is None:
            return None
        try:
            await asyncio.shield(run.task)
        except asyncio.CancelledError:
            if run.task.cancelled():
                return None
            raise
        return run.outcome

    def cancel(self) -> bool:
        """Abandon the active run (if any). No event is emitted; phase goes back to IDLE."""
        if self._run is None or not self._phase.active:
            return False
        self._abandon("cancelled by caller")
        self._phase = ControllerPhase.IDLE
        return True

    def close(self) -> None:
        """Tear down: cancel pending work and drop listeners. Nothing fires afterwards."""
        if self._closed:
            return
        self._abandon("controller closed")
        self._closed = True
        self._listeners.clear()

    async def aclose(self) -> None:
        run = self._run
        self.close()
        if run is not None and run.task is not None:
            await asyncio.gather(run.task, return_exceptions=True)

    async def __aenter__(self) -> TaskLifecycleController:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ---- Driver ----

    async def _drive(self, run: _Run) -> None:
        try:
            await self._submit_and_poll(run)
        except Exception as e:
            logger.exception("Task driver crashed task_id=%s", run.handle)
            self._finish(
                run,
                ControllerPhase.FAILED,
                Failed(handle=run.handle, message=UNEXPECTED_ERROR_MESSAGE),
                error=GenerationError(UNEXPECTED_ERROR_MESSAGE),
                cause=e,
            )

    async def _submit_and_poll(self, run: _Run) -> None:
        try:
            handle = await self._submission.submit(run.request)
        except GenerationError as e:
            logger.info("Submission failed: %r", e)
            self._finish(run, ControllerPhase.FAILED, Failed(handle=None, message=e.message), error=e)
            return

        if run.token.cancelled:
            logger.info("Dropping task_id=%s: run was abandoned during submission", handle.task_id)
            return

        run.handle = handle
        self._set_phase(run, ControllerPhase.POLLING)
        run.handle_ready.set_result(handle)
        self._emit(run, InProgress(handle=handle, attempt=0, label=LABEL_STARTING, elapsed_seconds=self._elapsed(run)))

        while True:
            try:
                state = await self._status.query(handle)
            except GenerationError as e:
                logger.info("Status query failed task_id=%s: %r", handle.task_id, e)
                self._finish(run, ControllerPhase.FAILED, Failed(handle=handle, message=e.message))
                return

            if run.token.cancelled:
                return

            if state.status == TaskStatus.SUCCESS:
                self._resolve(run, handle, state)
                return

            if state.status == TaskStatus.FAILED:
                self._finish(
                    run,
                    ControllerPhase.FAILED,
                    Failed(handle=handle, message=state.reason or GENERATION_FAILED_MESSAGE),
                )
                return

            run.attempts += 1
            if run.attempts >= self._policy.max_attempts:
                err = TimeoutPolicyError()
                logger.warning("Task task_id=%s still in progress after %d attempts", handle.task_id, run.attempts)
                self._finish(run, ControllerPhase.TIMED_OUT, TimedOut(handle=handle, message=err.message))
                return

            self._emit(
                run,
                InProgress(
                    handle=handle,
                    attempt=run.attempts,
                    label=progress_label(run.attempts),
                    elapsed_seconds=self._elapsed(run),
                ),
            )

            await self._clock.sleep(self._policy.interval_seconds)
            if run.token.cancelled:
                return

    def _resolve(self, run: _Run, handle: TaskHandle, state: TaskState) -> None:
        result = state.result
        if result is None:
            self._finish(run, ControllerPhase.FAILED, Failed(handle=handle, message=GENERATION_FAILED_MESSAGE))
            return

        # Upstream does not always echo the request back; fall back to what we sent.
        if result.prompt is None or result.aspect_ratio is None:
            result = dataclasses.replace(
                result,
                prompt=result.prompt or run.request.prompt,
                aspect_ratio=result.aspect_ratio or AspectRatio.parse(run.request.aspect_ratio),
            )

        logger.info("Task task_id=%s resolved after %d attempts", handle.task_id, run.attempts)
        self._finish(run, ControllerPhase.RESOLVED, Succeeded(handle=handle, result=result))

    # ---- State mutation (all guarded by the run token) ----

    def _elapsed(self, run: _Run) -> float:
        return max(0.0, self._clock.monotonic() - run.started_at)

    def _set_phase(self, run: _Run, phase: ControllerPhase) -> None:
        if run.token.cancelled:
            return
        if phase != self._phase:
            logger.debug("Controller phase %s -> %s", self._phase, phase)
        self._phase = phase

    def _finish(
            self,
            run: _Run,
            phase: ControllerPhase,
            event: TerminalEvent,
            *,
            error: GenerationError | None = None,
            cause: BaseException | None = None,
    ) -> None:
        if run.token.cancelled:
            return

        run.outcome = event
        if not run.handle_ready.done():
            exc = error or GenerationError()
            if cause is not None:
                exc.__cause__ = cause
            run.handle_ready.set_exception(exc)

        self._set_phase(run, phase)
        self._emit(run, event)

    def _emit(self, run: _Run, event: StateEvent) -> None:
        if run.token.cancelled:
            return
        self._last_event = event
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("State listener failed on %s", type(event).__name__)

    def _abandon(self, reason: str) -> None:
        run = self._run
        if run is None or run.token.cancelled:
            return

        was_active = self._phase.active
        run.token.cancel()
        if run.task is not None and not run.task.done():
            run.task.cancel()
        if not run.handle_ready.done():
            run.handle_ready.cancel()

        if was_active:
            logger.info("Abandoned task_id=%s (%s)", run.handle, reason)
