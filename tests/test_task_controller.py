# tests/test_task_controller.py

from __future__ import annotations

import asyncio

import pytest

from zimage_studio.core.errors import QuotaError, ThrottledError, ValidationError
from zimage_studio.core.models import AspectRatio, GenerationResult, TaskState
from zimage_studio.tasks.task_controller import UNEXPECTED_ERROR_MESSAGE, TaskLifecycleController
from zimage_studio.tasks.task_models import (
    LABEL_ALMOST_DONE,
    LABEL_STARTING,
    LABEL_SUBMITTING,
    LABEL_WORKING,
    ControllerPhase,
    Failed,
    InProgress,
    PollPolicy,
    Succeeded,
    TimedOut,
    progress_label,
)

from .fakes import FakeClock, FakeStatusGateway, FakeSubmissionGateway, RecordingListener, settle


def _controller(submission, status, clock, listener, policy: PollPolicy | None = None) -> TaskLifecycleController:
    controller = TaskLifecycleController(submission, status, policy=policy, clock=clock)
    controller.on_state_change(listener)
    return controller


@pytest.mark.asyncio
async def test_resolves_after_in_progress_answers(submission, clock, listener) -> None:
    status = FakeStatusGateway(
        {
            "task-1": [
                TaskState.in_progress("task-1"),
                TaskState.in_progress("task-1"),
                TaskState.succeeded("task-1", GenerationResult(image_url="http://x/a.png")),
            ]
        }
    )
    controller = _controller(submission, status, clock, listener)

    handle = await controller.submit("  a lighthouse at dusk ", "16:9")
    assert handle.task_id == "task-1"

    outcome = await controller.wait()

    assert isinstance(outcome, Succeeded)
    assert outcome.result.image_url == "http://x/a.png"
    # Not echoed upstream -> filled from the submitted request.
    assert outcome.result.prompt == "a lighthouse at dusk"
    assert outcome.result.aspect_ratio is AspectRatio.WIDE

    assert controller.phase == ControllerPhase.RESOLVED
    assert controller.handle is None
    assert status.calls == ["task-1"] * 3
    assert clock.sleeps == [2.0, 2.0]
    assert [type(e) for e in listener.events] == [InProgress, InProgress, InProgress, InProgress, Succeeded]
    assert listener.events[0] == InProgress(handle=None, attempt=0, label=LABEL_SUBMITTING, elapsed_seconds=0.0)
    assert [e.attempt for e in listener.events if isinstance(e, InProgress) and e.handle is not None] == [0, 1, 2]
    assert listener.events[-1] is controller.last_event


@pytest.mark.asyncio
async def test_times_out_after_attempt_budget(submission, status, clock, listener) -> None:
    controller = _controller(submission, status, clock, listener)

    await controller.submit("a cat", "1:1")
    outcome = await controller.wait()

    assert isinstance(outcome, TimedOut)
    assert outcome.message == "generation is taking longer than expected."
    assert controller.phase == ControllerPhase.TIMED_OUT
    assert controller.attempts == 30

    # 30 queries, 29 fixed 2-second delays between them.
    assert len(status.calls) == 30
    assert clock.sleeps == [2.0] * 29
    assert status.max_in_flight == 1

    progress = [e for e in listener.events if isinstance(e, InProgress) and e.handle is not None]
    assert [e.attempt for e in progress] == list(range(30))
    assert progress[2].elapsed_seconds == pytest.approx(2.0)


@pytest.mark.asyncio
async def test_progress_labels_follow_attempts(submission, status, clock, listener) -> None:
    controller = _controller(submission, status, clock, listener)
    await controller.submit("a cat", "1:1")
    await controller.wait()

    labels = {e.attempt: e.label for e in listener.events if isinstance(e, InProgress)}
    assert all(labels[n] == LABEL_STARTING for n in range(1, 5))
    assert all(labels[n] == LABEL_WORKING for n in range(5, 15))
    assert all(labels[n] == LABEL_ALMOST_DONE for n in range(15, 30))


def test_progress_label_boundaries() -> None:
    assert progress_label(4) == LABEL_STARTING
    assert progress_label(5) == LABEL_WORKING
    assert progress_label(14) == LABEL_WORKING
    assert progress_label(15) == LABEL_ALMOST_DONE
    assert progress_label(29) == LABEL_ALMOST_DONE


@pytest.mark.asyncio
async def test_upstream_failed_state_is_terminal(submission, clock, listener) -> None:
    status = FakeStatusGateway({"task-1": [TaskState.failed("task-1", "content policy violation")]})
    controller = _controller(submission, status, clock, listener)

    await controller.submit("a cat", "1:1")
    outcome = await controller.wait()

    assert isinstance(outcome, Failed)
    assert outcome.message == "content policy violation"
    assert outcome.handle is not None and outcome.handle.task_id == "task-1"
    assert controller.phase == ControllerPhase.FAILED
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_gateway_error_while_polling_is_not_retried(submission, clock, listener) -> None:
    status = FakeStatusGateway({"task-1": [TaskState.in_progress("task-1"), ThrottledError()]})
    controller = _controller(submission, status, clock, listener)

    await controller.submit("a cat", "1:1")
    outcome = await controller.wait()

    assert isinstance(outcome, Failed)
    assert outcome.message == ThrottledError.default_message
    assert status.calls == ["task-1", "task-1"]
    assert controller.phase == ControllerPhase.FAILED


@pytest.mark.asyncio
async def test_submission_error_is_raised_and_reported(status, clock, listener) -> None:
    submission = FakeSubmissionGateway(error=QuotaError(status_code=402))
    controller = _controller(submission, status, clock, listener)

    with pytest.raises(QuotaError):
        await controller.submit("a cat", "1:1")

    assert controller.phase == ControllerPhase.FAILED
    assert listener.events == [
        InProgress(handle=None, attempt=0, label=LABEL_SUBMITTING, elapsed_seconds=0.0),
        Failed(handle=None, message=QuotaError.default_message),
    ]
    assert status.calls == []


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_generic_failure(submission, clock, listener) -> None:
    status = FakeStatusGateway({"task-1": [RuntimeError("boom")]})
    controller = _controller(submission, status, clock, listener)

    await controller.submit("a cat", "1:1")
    outcome = await controller.wait()

    assert isinstance(outcome, Failed)
    assert outcome.message == UNEXPECTED_ERROR_MESSAGE
    assert "boom" not in outcome.message


@pytest.mark.asyncio
async def test_new_submission_replaces_polling_run(submission, listener) -> None:
    gate = asyncio.Event()
    clock = FakeClock(gate=gate)
    status = FakeStatusGateway(
        {"task-2": [TaskState.succeeded("task-2", GenerationResult(image_url="http://x/dog.png"))]}
    )
    controller = _controller(submission, status, clock, listener)

    first = await controller.submit("a cat", "1:1")
    await settle(lambda: len(clock.sleeps) == 1)
    seen_before_replace = len(listener.events)

    second = await controller.submit("a dog", "4:3")
    outcome = await controller.wait()

    # Release the first run's pending delay; it must never fire.
    gate.set()
    await settle()

    assert first.task_id == "task-1"
    assert second.task_id == "task-2"
    assert isinstance(outcome, Succeeded)
    assert outcome.handle == second
    assert status.calls.count("task-1") == 1
    after_replace = listener.events[seen_before_replace:]
    assert after_replace[0].handle is None
    assert all(e.handle == second for e in after_replace[1:])
    assert controller.phase == ControllerPhase.RESOLVED


@pytest.mark.asyncio
async def test_superseded_submit_raises_cancelled(status, clock, listener) -> None:
    hold = asyncio.Event()
    submission = FakeSubmissionGateway(holds={0: hold})
    controller = _controller(submission, status, clock, listener)

    first = asyncio.create_task(controller.submit("a cat", "1:1"))
    await settle(lambda: len(submission.calls) == 1)

    second = await controller.submit("a dog", "1:1")
    hold.set()

    with pytest.raises(asyncio.CancelledError):
        await first

    assert second.task_id == "task-2"
    await controller.aclose()


@pytest.mark.asyncio
async def test_attempt_counter_resets_on_new_submission(submission, status, clock, listener) -> None:
    controller = _controller(submission, status, clock, listener, policy=PollPolicy(interval_seconds=2.0, max_attempts=3))

    await controller.submit("a cat", "1:1")
    first = await controller.wait()
    assert isinstance(first, TimedOut)
    assert controller.attempts == 3

    await controller.submit("a dog", "1:1")
    second = await controller.wait()
    assert isinstance(second, TimedOut)
    assert second.handle.task_id == "task-2"
    assert controller.attempts == 3

    second_run = [e.attempt for e in listener.events if isinstance(e, InProgress) and e.handle is not None and e.handle.task_id == "task-2"]
    assert second_run == [0, 1, 2]
    assert status.calls.count("task-2") == 3


@pytest.mark.asyncio
async def test_close_cancels_pending_poll(submission, status, listener) -> None:
    gate = asyncio.Event()
    clock = FakeClock(gate=gate)
    controller = _controller(submission, status, clock, listener)

    await controller.submit("a cat", "1:1")
    await settle(lambda: len(clock.sleeps) == 1)
    seen = list(listener.events)

    controller.close()
    gate.set()
    await settle()

    assert controller.closed
    assert status.calls == ["task-1"]
    assert listener.events == seen
    assert await controller.wait() is None

    with pytest.raises(RuntimeError):
        await controller.submit("a dog", "1:1")


@pytest.mark.asyncio
async def test_cancel_drops_in_flight_response(submission, clock, listener) -> None:
    hold = asyncio.Event()
    status = FakeStatusGateway(
        {"task-1": [TaskState.succeeded("task-1", GenerationResult(image_url="http://x/late.png"))]},
        hold=hold,
    )
    controller = _controller(submission, status, clock, listener)

    await controller.submit("a cat", "1:1")
    await settle(lambda: status.in_flight == 1)

    assert controller.cancel() is True
    hold.set()
    await settle()

    assert controller.phase == ControllerPhase.IDLE
    assert not any(isinstance(e, Succeeded) for e in listener.events)
    assert controller.cancel() is False


@pytest.mark.asyncio
async def test_listener_errors_do_not_break_the_run(submission, clock, listener) -> None:
    status = FakeStatusGateway({"task-1": [TaskState.succeeded("task-1", GenerationResult(image_url="http://x/a.png"))]})
    controller = TaskLifecycleController(submission, status, clock=clock)

    def broken(event) -> None:
        raise ValueError("listener bug")

    controller.on_state_change(broken)
    unsubscribe = controller.on_state_change(listener)

    await controller.submit("a cat", "1:1")
    outcome = await controller.wait()

    assert isinstance(outcome, Succeeded)
    assert isinstance(listener.events[-1], Succeeded)

    unsubscribe()
    await controller.submit("a dog", "1:1")
    await controller.wait()
    assert all(e.handle is None or e.handle.task_id == "task-1" for e in listener.events)


@pytest.mark.asyncio
async def test_echoed_request_fields_win_over_submitted_ones(submission, clock, listener) -> None:
    echoed = GenerationResult(image_url="http://x/a.png", prompt="upstream prompt", aspect_ratio=AspectRatio.TALL)
    status = FakeStatusGateway({"task-1": [TaskState.succeeded("task-1", echoed)]})
    controller = _controller(submission, status, clock, listener)

    await controller.submit("local prompt", "1:1")
    outcome = await controller.wait()

    assert isinstance(outcome, Succeeded)
    assert outcome.result == echoed


def test_poll_policy_rejects_nonsense() -> None:
    with pytest.raises(ValueError):
        PollPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        PollPolicy(interval_seconds=-1.0)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "prompt, ratio",
    [
        ("   ", "1:1"),
        ("x" * 1001, "1:1"),
        ("a dog", "2:1"),
    ],
)
async def test_invalid_submit_leaves_running_job_polling(submission, status, listener, prompt, ratio) -> None:
    gate = asyncio.Event()
    clock = FakeClock(gate=gate)
    controller = _controller(submission, status, clock, listener, policy=PollPolicy(interval_seconds=2.0, max_attempts=3))

    first = await controller.submit("a cat", "1:1")
    await settle(lambda: len(clock.sleeps) == 1)
    seen = list(listener.events)

    with pytest.raises(ValidationError):
        await controller.submit(prompt, ratio)

    assert controller.phase == ControllerPhase.POLLING
    assert controller.handle == first
    assert listener.events == seen
    assert len(submission.calls) == 1

    gate.set()
    outcome = await controller.wait()

    assert isinstance(outcome, TimedOut)
    assert outcome.handle == first
    assert status.calls == ["task-1"] * 3


@pytest.mark.asyncio
async def test_invalid_submit_when_idle_changes_nothing(submission, status, clock, listener) -> None:
    controller = _controller(submission, status, clock, listener)

    with pytest.raises(ValidationError) as info:
        await controller.submit("", "1:1")

    assert info.value.message == "please enter a prompt to generate an image"
    assert controller.phase == ControllerPhase.IDLE
    assert listener.events == []
    assert submission.calls == []
    assert await controller.wait() is None
