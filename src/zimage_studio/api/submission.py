# src/zimage_studio/api/submission.py

from __future__ import annotations

import logging

import httpx

from ..core.errors import UpstreamError
from ..core.models import GenerationRequest, TaskHandle, TaskStatus, validate_request
from .http import ENVELOPE_OK, SUBMIT_PATH, ApiConfig, envelope_code, raise_for_upstream_status, read_envelope, send_request

logger = logging.getLogger(__name__)

SUBMIT_FAILED_MESSAGE = "failed to generate image, please try again"


class TaskSubmissionGateway:
    """POST /api/generate. Each successful call creates a new, independent upstream task."""

    def __init__(self, config: ApiConfig, client: httpx.AsyncClient) -> None:
        self._config = config
        self._client = client

    async def submit(self, request: GenerationRequest) -> TaskHandle:
        request = validate_request(request)
        headers = self._config.auth_headers()

        logger.info("Submitting generation (aspect_ratio=%s, prompt_chars=%d)", request.aspect_ratio, len(request.prompt))
        response = await send_request(
            self._client,
            "POST",
            SUBMIT_PATH,
            operation="submit",
            json=request.to_payload(),
            headers=headers,
        )
        raise_for_upstream_status(response, operation="submit", failure_message=SUBMIT_FAILED_MESSAGE)

        body = read_envelope(response, operation="submit")
        code = envelope_code(body)
        data = body.get("data")
        task_id = data.get("task_id") if isinstance(data, dict) else None

        if code != ENVELOPE_OK or not isinstance(task_id, str) or not task_id.strip():
            logger.warning("submit: malformed envelope code=%s message=%r", body.get("code"), body.get("message"))
            raise UpstreamError(SUBMIT_FAILED_MESSAGE, status_code=response.status_code, upstream_code=code)

        handle = TaskHandle(task_id=task_id.strip(), initial_status=TaskStatus.from_wire(data.get("status")))
        logger.info("Task created task_id=%s status=%s", handle.task_id, handle.initial_status)
        return handle
