# src/zimage_studio/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- builds the shared httpx.AsyncClient and both gateways from explicit config,
- wires them into a TaskLifecycleController held by a GenerationSession.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from ..api.http import build_client
from ..api.status import TaskStatusGateway
from ..api.submission import TaskSubmissionGateway
from ..config import Settings, get_settings
from ..core.models import AspectRatio
from ..core.ports import Clock
from ..tasks.task_controller import TaskLifecycleController

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GenerationSession:
    settings: Settings
    client: httpx.AsyncClient
    controller: TaskLifecycleController
    aspect_ratio: AspectRatio

    async def aclose(self) -> None:
        await self.controller.aclose()
        await self.client.aclose()


def create_session(
        *,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Clock | None = None,
) -> GenerationSession:
    """
    Build a GenerationSession from the provided settings.

    Keeping settings (and the HTTP transport) injectable makes the wiring testable.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    api_config = settings.api_config()
    if not api_config.api_key:
        logger.warning("No API key configured (ZIMAGE_API_KEY); every request will fail until one is set.")

    client = build_client(api_config, transport=transport)
    controller = TaskLifecycleController(
        TaskSubmissionGateway(api_config, client),
        TaskStatusGateway(api_config, client),
        policy=settings.poll_policy(),
        clock=clock,
    )
    logger.debug("Session ready base_url=%s policy=%s", api_config.base_url, controller.policy)

    return GenerationSession(
        settings=settings,
        client=client,
        controller=controller,
        aspect_ratio=settings.default_aspect_ratio,
    )
