# src/zimage_studio/core/errors.py

from __future__ import annotations

"""
Error taxonomy shared by the gateways and the lifecycle controller.

Every error carries exactly one user-facing message. Raw upstream bodies and
tracebacks belong in the logs, never in `message`.
"""


class GenerationError(Exception):
    """Base class for everything the gateways and the controller raise on purpose."""

    default_message = "Image generation failed. Please try again."

    def __init__(
            self,
            message: str | None = None,
            *,
            status_code: int | None = None,
            upstream_code: int | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.status_code = status_code
        self.upstream_code = upstream_code
        super().__init__(self.message)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(message={self.message!r}, "
            f"status_code={self.status_code!r}, upstream_code={self.upstream_code!r})"
        )


class ValidationError(GenerationError):
    """Caller-supplied input is invalid. Never sent upstream."""

    default_message = "invalid request"


class ConfigurationError(GenerationError):
    """Missing or rejected credential."""

    default_message = "invalid credentials"


class QuotaError(GenerationError):
    """Upstream reports insufficient balance (HTTP 402)."""

    default_message = "insufficient credits, please add funds to your account"


class ThrottledError(GenerationError):
    """Upstream rate limit (HTTP 429)."""

    default_message = "rate limit reached, please wait a moment and try again"


class UpstreamError(GenerationError):
    """Any other non-success or malformed upstream response."""

    default_message = "upstream request failed, please try again"


class ConnectivityError(GenerationError):
    """Transport-level failure: unreachable host, timeout, unreadable body."""

    default_message = "failed to connect, please try again"


class TimeoutPolicyError(GenerationError):
    """Local attempt budget exhausted while the task was still in progress."""

    default_message = "generation is taking longer than expected."
