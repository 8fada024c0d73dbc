# src/zimage_studio/api/http.py

"""
Shared HTTP plumbing for the two gateways.

- ApiConfig: endpoint, credential and timeouts (passed in explicitly, never read from env here)
- build_client(): one httpx.AsyncClient shared by submission and status gateways
- send_request(): transport failures -> ConnectivityError
- raise_for_upstream_status(): HTTP status -> error taxonomy
- read_envelope(): JSON body -> dict, malformed bodies -> ConnectivityError
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ..core.errors import (
    ConfigurationError,
    ConnectivityError,
    QuotaError,
    ThrottledError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://zimageturbo.ai"
SUBMIT_PATH = "/api/generate"
STATUS_PATH = "/api/status"

# Embedded success code inside the JSON envelope ({"code": 200, "data": {...}}).
ENVELOPE_OK = 200


@dataclass(frozen=True, slots=True)
class ApiConfig:
    api_key: str | None
    base_url: str = DEFAULT_BASE_URL
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 30.0
    user_agent: str = "zimage-studio/0.1"

    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self.connect_timeout_seconds,
            read=self.read_timeout_seconds,
            write=10.0,
            pool=self.connect_timeout_seconds,
        )

    def auth_headers(self) -> dict[str, str]:
        """Bearer header. A missing key is fatal and is never retried."""
        key = (self.api_key or "").strip()
        if not key:
            raise ConfigurationError("missing credentials, set ZIMAGE_API_KEY")
        return {"Authorization": f"Bearer {key}"}


def build_client(config: ApiConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """Create the AsyncClient. `transport` lets tests plug in httpx.MockTransport."""
    return httpx.AsyncClient(
        base_url=config.base_url.rstrip("/"),
        headers={"User-Agent": config.user_agent},
        timeout=config.timeout(),
        transport=transport,
    )


async def send_request(
        client: httpx.AsyncClient,
        method: str,
        path: str,
        *,
        operation: str,
        **kwargs: Any,
) -> httpx.Response:
    try:
        return await client.request(method, path, **kwargs)
    except httpx.TransportError as e:
        logger.warning("%s: transport error (%s): %s", operation, e.__class__.__name__, e)
        raise ConnectivityError() from e


def raise_for_upstream_status(
        response: httpx.Response,
        *,
        operation: str,
        failure_message: str,
        quota_errors: bool = True,
) -> None:
    """
    Map a non-2xx response onto the error taxonomy.

    401 -> ConfigurationError, 402 -> QuotaError (when quota_errors), 429 -> ThrottledError,
    anything else -> UpstreamError carrying the HTTP status.
    """
    status = response.status_code
    if response.is_success:
        return

    logger.info("%s: upstream returned HTTP %s", operation, status)
    logger.debug("%s: upstream body: %s", operation, response.text[:512])

    if status == 401:
        raise ConfigurationError(status_code=status)
    if status == 402 and quota_errors:
        raise QuotaError(status_code=status)
    if status == 429:
        raise ThrottledError(status_code=status)
    raise UpstreamError(failure_message, status_code=status)


def read_envelope(response: httpx.Response, *, operation: str) -> dict[str, Any]:
    """Parse the JSON envelope of a 2xx response. Unreadable bodies count as transport failures."""
    try:
        body = response.json()
    except ValueError as e:
        logger.warning("%s: response body is not JSON", operation)
        raise ConnectivityError() from e

    if not isinstance(body, dict):
        logger.warning("%s: response body is %s, expected an object", operation, type(body).__name__)
        raise ConnectivityError()
    return body


def envelope_code(body: dict[str, Any]) -> int | None:
    code = body.get("code")
    if isinstance(code, bool):
        return None
    if isinstance(code, int):
        return code
    if isinstance(code, str) and code.strip().isdigit():
        return int(code.strip())
    return None
