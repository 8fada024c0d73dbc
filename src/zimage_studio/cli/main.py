# src/zimage_studio/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds the GenerationSession, then either:
- runs a single generation (prompt given on the command line), or
- starts the interactive console loop.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys

from ..config import get_settings
from ..connectors.console_connector import format_event, run_console_loop
from ..core.errors import GenerationError, ValidationError
from ..core.models import AspectRatio
from ..logging_setup import setup_logging
from ..tasks.task_models import Failed, Succeeded
from .bootstrap import GenerationSession, create_session

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zimage-studio",
        description="Generate an image from a text prompt and wait for the result.",
    )
    parser.add_argument("prompt", nargs="?", help="prompt to generate; omit to start the console")
    parser.add_argument(
        "-r",
        "--aspect-ratio",
        choices=[r.value for r in AspectRatio],
        default=None,
        help="output aspect ratio (default: ZIMAGE_DEFAULT_ASPECT_RATIO or 1:1)",
    )
    return parser


async def run_once(session: GenerationSession, prompt: str) -> int:
    """Submit one prompt, print progress, return the process exit code."""
    controller = session.controller
    controller.on_state_change(lambda event: print(format_event(event), flush=True))

    try:
        await controller.submit(prompt, session.aspect_ratio)
    except ValidationError as e:
        print(format_event(Failed(handle=None, message=e.message)), flush=True)
        return 1
    except GenerationError:
        return 1

    outcome = await controller.wait()
    return 0 if isinstance(outcome, Succeeded) else 1


async def _amain(args: argparse.Namespace) -> int:
    settings = get_settings()
    session = create_session(settings=settings)
    if args.aspect_ratio:
        session.aspect_ratio = AspectRatio(args.aspect_ratio)

    main_task = asyncio.current_task()
    loop = asyncio.get_running_loop()
    if main_task is not None:
        # Not available on every platform (e.g. Windows event loops).
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGTERM, main_task.cancel)

    try:
        if args.prompt:
            return await run_once(session, args.prompt)
        await run_console_loop(session)
        return 0
    finally:
        await session.aclose()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)
    try:
        return asyncio.run(_amain(args))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down.")
        return 130
    except asyncio.CancelledError:
        logger.info("Terminated, shutting down.")
        return 143
    finally:
        logger.info("Bye.")


if __name__ == "__main__":
    sys.exit(main())
