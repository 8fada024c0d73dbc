# src/zimage_studio/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from ..cli.bootstrap import GenerationSession
from ..cli.commands import registry as command_registry
from ..core.errors import GenerationError, ValidationError
from ..core.models import GenerationRequest, validate_request
from ..tasks.task_models import Failed, InProgress, StateEvent, Succeeded, TimedOut

logger = logging.getLogger(__name__)

LineReader = Callable[[], Awaitable[str]]
LineWriter = Callable[[str], None]


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def format_event(event: StateEvent) -> str:
    if isinstance(event, InProgress):
        if event.handle is None:
            return event.label
        if event.attempt == 0:
            return f"{event.label} (task {event.handle})"
        return f"{event.label} {event.elapsed_seconds:.0f}s"

    if isinstance(event, Succeeded):
        result = event.result
        lines = [f"Image ready: {result.image_url}"]
        if result.prompt:
            lines.append(f"  prompt: {result.prompt}")
        if result.aspect_ratio:
            lines.append(f"  aspect ratio: {result.aspect_ratio.label}")
        return "\n".join(lines)

    if isinstance(event, TimedOut):
        return f"[TIMEOUT] {event.message}"

    if isinstance(event, Failed):
        return f"[ERROR] {event.message}"

    return str(event)


async def _read_stdin() -> str:
    # input() blocks; keep it off the event loop so polling keeps running while we wait.
    return await asyncio.to_thread(input, ">>> ")


async def run_console_loop(
        session: GenerationSession,
        *,
        read_line: LineReader | None = None,
        write: LineWriter = print,
) -> None:
    """
    Interactive loop.

    Lines starting with "/" are commands; anything else is submitted as a prompt with the
    session's aspect ratio. Typing a new prompt while one is running replaces it.
    """
    reader = read_line or _read_stdin
    controller = session.controller

    def on_event(event: StateEvent) -> None:
        write(f"[{_ts_local()}] {format_event(event)}")

    unsubscribe = controller.on_state_change(on_event)
    logger.info("Console connector started (aspect_ratio=%s).", session.aspect_ratio)
    write(f"[{_ts_local()}] Type a prompt to generate an image. Use /help for commands, /exit to quit.")

    try:
        while True:
            try:
                line = (await reader()).strip()
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break

            if not line:
                continue

            if line.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            reply = command_registry.handle(session, line)
            if reply is not None:
                write(f"[{_ts_local()}] {reply}")
                continue

            try:
                validate_request(GenerationRequest(prompt=line, aspect_ratio=session.aspect_ratio))
            except ValidationError as e:
                # Any run in progress is left alone.
                write(f"[{_ts_local()}] {format_event(Failed(handle=None, message=e.message))}")
                continue

            if controller.phase.active:
                write(f"[{_ts_local()}] Replacing the generation in progress.")

            try:
                await controller.submit(line, session.aspect_ratio)
            except GenerationError as e:
                # Already reported through the Failed event.
                logger.debug("Submission rejected: %r", e)
    finally:
        unsubscribe()
        logger.info("Console connector finished.")
