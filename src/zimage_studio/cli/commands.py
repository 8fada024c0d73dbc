# src/zimage_studio/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Callable

from ..core.models import AspectRatio
from .bootstrap import GenerationSession

CommandHandler = Callable[[GenerationSession, list[str]], str]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console loop (/help, /ratio, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(self, session: GenerationSession, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        return handler(session, parts[1:])

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        lines.append("Anything else is sent as an image prompt.")
        return "\n".join(lines)


registry = CommandRegistry()


def cmd_help(session: GenerationSession, args: list[str]) -> str:
    return registry.build_help()


def cmd_ratios(session: GenerationSession, args: list[str]) -> str:
    lines = ["Aspect ratios:"]
    for ratio in AspectRatio:
        marker = "*" if ratio == session.aspect_ratio else " "
        lines.append(f" {marker} {ratio.label}")
    return "\n".join(lines)


def cmd_ratio(session: GenerationSession, args: list[str]) -> str:
    """
    /ratio        -> show current aspect ratio
    /ratio 16:9   -> use 16:9 for the next prompts
    """
    if not args:
        return f"Aspect ratio: {session.aspect_ratio.label}. Use /ratio <value> to change it."

    ratio = AspectRatio.parse(args[0])
    if ratio is None:
        allowed = ", ".join(r.value for r in AspectRatio)
        return f"Invalid aspect ratio: {args[0]}. Use one of: {allowed}."

    session.aspect_ratio = ratio
    logger.debug("Aspect ratio set to %s", ratio)
    return f"Aspect ratio set to {ratio.label}."


def cmd_cancel(session: GenerationSession, args: list[str]) -> str:
    if session.controller.cancel():
        return "Generation cancelled."
    return "Nothing to cancel."


def cmd_status(session: GenerationSession, args: list[str]) -> str:
    controller = session.controller
    lines = [
        "Status:",
        f"  Phase: {controller.phase}",
        f"  Aspect ratio: {session.aspect_ratio.label}",
    ]
    if controller.phase.active:
        handle = controller.handle
        lines.append(f"  Task: {handle.task_id if handle else '(submitting)'}")
        lines.append(
            f"  Attempts: {controller.attempts}/{controller.policy.max_attempts}"
            f" ({controller.elapsed_seconds:.0f}s elapsed)"
        )
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("ratio", cmd_ratio, help_text="Show or set the aspect ratio: /ratio 16:9.")
registry.register("ratios", cmd_ratios, help_text="List the supported aspect ratios.")
registry.register("cancel", cmd_cancel, help_text="Cancel the generation in progress.")
registry.register("status", cmd_status, help_text="Show the current generation state.")
