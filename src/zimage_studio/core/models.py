# src/zimage_studio/core/models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from .errors import ValidationError

MAX_PROMPT_CHARS = 1000


class AspectRatio(StrEnum):
    """Output aspect ratios accepted by the generate endpoint."""

    SQUARE = "1:1"
    LANDSCAPE = "4:3"
    PORTRAIT = "3:4"
    WIDE = "16:9"
    TALL = "9:16"

    @property
    def label(self) -> str:
        return f"{self.value} ({self.name.title()})"

    @classmethod
    def parse(cls, raw: object) -> AspectRatio | None:
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, str):
            return None
        try:
            return cls(raw.strip())
        except ValueError:
            return None


class TaskStatus(StrEnum):
    """Task status as reported by the status endpoint."""

    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @classmethod
    def from_wire(cls, raw: object) -> TaskStatus | None:
        if not isinstance(raw, str):
            return None
        try:
            return cls(raw)
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    prompt: str
    aspect_ratio: AspectRatio | str

    def to_payload(self) -> dict[str, str]:
        return {"prompt": self.prompt, "aspect_ratio": str(self.aspect_ratio)}


def validate_request(request: GenerationRequest) -> GenerationRequest:
    """
    Check a request before anything goes over the wire.

    Returns a normalized copy: trimmed prompt, AspectRatio enum member.
    """
    prompt = request.prompt.strip() if isinstance(request.prompt, str) else ""
    if not prompt:
        raise ValidationError("please enter a prompt to generate an image")
    if len(prompt) > MAX_PROMPT_CHARS:
        raise ValidationError(f"prompt must be {MAX_PROMPT_CHARS} characters or less")

    ratio = AspectRatio.parse(request.aspect_ratio)
    if ratio is None:
        raise ValidationError("invalid aspect ratio")

    return GenerationRequest(prompt=prompt, aspect_ratio=ratio)


@dataclass(frozen=True, slots=True)
class TaskHandle:
    """Identifier of one upstream task. Opaque to everything but the gateways."""

    task_id: str
    initial_status: TaskStatus | None = None

    def __str__(self) -> str:
        return self.task_id


@dataclass(frozen=True, slots=True)
class GenerationResult:
    image_url: str
    prompt: str | None = None
    aspect_ratio: AspectRatio | None = None


@dataclass(frozen=True, slots=True)
class TaskState:
    """
    Normalized status of one task.

    - IN_PROGRESS: nothing else set
    - SUCCESS: `result` set
    - FAILED: `reason` set
    """

    task_id: str
    status: TaskStatus
    result: GenerationResult | None = None
    reason: str | None = None

    @property
    def terminal(self) -> bool:
        return self.status != TaskStatus.IN_PROGRESS

    @classmethod
    def in_progress(cls, task_id: str) -> TaskState:
        return cls(task_id=task_id, status=TaskStatus.IN_PROGRESS)

    @classmethod
    def succeeded(cls, task_id: str, result: GenerationResult) -> TaskState:
        return cls(task_id=task_id, status=TaskStatus.SUCCESS, result=result)

    @classmethod
    def failed(cls, task_id: str, reason: str) -> TaskState:
        return cls(task_id=task_id, status=TaskStatus.FAILED, reason=reason)


# ---- Result payload (the `response` field of a SUCCESS status) ----
# Upstream sends either a JSON array of URLs or a string holding that array
# serialized as JSON. It is decoded once, in the status gateway.


@dataclass(frozen=True, slots=True)
class ResultUrls:
    urls: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class MalformedResult:
    reason: str


ResultPayload = ResultUrls | MalformedResult
