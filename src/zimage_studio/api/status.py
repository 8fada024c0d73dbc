# src/zimage_studio/api/status.py

from __future__ import annotations

"""
Status gateway.

Queries GET /api/status?task_id=... and turns the upstream envelope into a TaskState:

- IN_PROGRESS -> TaskState.in_progress
- FAILED      -> TaskState.failed(error_message or a generic reason)
- SUCCESS     -> decode `response` once (array or JSON text of an array):
    * text that is not JSON, or non-string items -> failed("invalid result format")
    * empty, null or not a list -> failed("no result produced")
    * otherwise   -> succeeded(first URL + echoed request fields)
- anything else -> UpstreamError("unknown status")
"""

import json
import logging
from typing import Any

import httpx

from ..core.errors import UpstreamError, ValidationError
from ..core.models import (
    AspectRatio,
    GenerationResult,
    MalformedResult,
    ResultPayload,
    ResultUrls,
    TaskHandle,
    TaskState,
    TaskStatus,
)
from .http import ENVELOPE_OK, STATUS_PATH, ApiConfig, envelope_code, raise_for_upstream_status, read_envelope, send_request

logger = logging.getLogger(__name__)

STATUS_FAILED_MESSAGE = "failed to check status, please try again"
UNKNOWN_STATUS_MESSAGE = "unknown status"
GENERATION_FAILED_MESSAGE = "image generation failed, please try again"
INVALID_RESULT_FORMAT = "invalid result format"
NO_RESULT_PRODUCED = "no result produced"


def parse_result_payload(raw: Any) -> ResultPayload:
    """
    Decode the `response` field of a SUCCESS status.

    Only text that is not JSON at all, or a list holding non-strings, is malformed.
    Anything else that is not a list (null, an object, a number) carries no URLs.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return MalformedResult(reason="response is not valid JSON text")

    if not isinstance(raw, list):
        if raw is not None:
            logger.debug("result payload is %s, not a list of URLs", type(raw).__name__)
        return ResultUrls(urls=())

    urls: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            return MalformedResult(reason=f"expected URL strings, got {type(item).__name__}")
        urls.append(item)
    return ResultUrls(urls=tuple(urls))


def _echoed_request(data: dict[str, Any]) -> tuple[str | None, AspectRatio | None]:
    original = data.get("request")
    if not isinstance(original, dict):
        return None, None
    prompt = original.get("prompt")
    return (prompt if isinstance(prompt, str) and prompt else None), AspectRatio.parse(original.get("aspect_ratio"))


def classify_status(data: dict[str, Any], *, task_id: str) -> TaskState:
    """Pure mapping from the envelope's `data` object to a TaskState."""
    returned_id = data.get("task_id")
    if isinstance(returned_id, str) and returned_id:
        task_id = returned_id

    status = TaskStatus.from_wire(data.get("status"))

    if status == TaskStatus.IN_PROGRESS:
        return TaskState.in_progress(task_id)

    if status == TaskStatus.FAILED:
        reason = data.get("error_message")
        if not isinstance(reason, str) or not reason.strip():
            reason = GENERATION_FAILED_MESSAGE
        return TaskState.failed(task_id, reason.strip())

    if status == TaskStatus.SUCCESS:
        payload = parse_result_payload(data.get("response"))
        if isinstance(payload, MalformedResult):
            logger.warning("task_id=%s: undecodable result payload (%s)", task_id, payload.reason)
            return TaskState.failed(task_id, INVALID_RESULT_FORMAT)
        if not payload.urls:
            return TaskState.failed(task_id, NO_RESULT_PRODUCED)
        if len(payload.urls) > 1:
            logger.debug("task_id=%s: keeping first of %d result URLs", task_id, len(payload.urls))

        prompt, ratio = _echoed_request(data)
        return TaskState.succeeded(
            task_id,
            GenerationResult(image_url=payload.urls[0], prompt=prompt, aspect_ratio=ratio),
        )

    logger.warning("task_id=%s: unknown upstream status %r", task_id, data.get("status"))
    raise UpstreamError(UNKNOWN_STATUS_MESSAGE)


class TaskStatusGateway:
    def __init__(self, config: ApiConfig, client: httpx.AsyncClient) -> None:
        self._config = config
        self._client = client

    async def query(self, handle: TaskHandle | str) -> TaskState:
        task_id = handle.task_id if isinstance(handle, TaskHandle) else handle
        if not isinstance(task_id, str) or not task_id.strip():
            raise ValidationError("missing task id")
        task_id = task_id.strip()

        headers = self._config.auth_headers()
        response = await send_request(
            self._client,
            "GET",
            STATUS_PATH,
            operation="status",
            params={"task_id": task_id},
            headers=headers,
        )
        raise_for_upstream_status(
            response,
            operation="status",
            failure_message=STATUS_FAILED_MESSAGE,
            quota_errors=False,
        )

        body = read_envelope(response, operation="status")
        code = envelope_code(body)
        data = body.get("data")
        if code != ENVELOPE_OK or not isinstance(data, dict):
            logger.warning("status: malformed envelope task_id=%s code=%s", task_id, body.get("code"))
            raise UpstreamError(STATUS_FAILED_MESSAGE, status_code=response.status_code, upstream_code=code)

        state = classify_status(data, task_id=task_id)
        logger.debug("status: task_id=%s -> %s", task_id, state.status)
        return state
