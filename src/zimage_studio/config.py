# src/zimage_studio/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time; the API key is only checked when a request is sent.
- Gateways and the controller receive plain values (ApiConfig, PollPolicy), never this module.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

from .api.http import DEFAULT_BASE_URL, ApiConfig
from .core.models import AspectRatio
from .tasks.task_models import MAX_POLL_ATTEMPTS, POLL_INTERVAL_SECONDS, PollPolicy

ENV_PREFIX = "ZIMAGE"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    data_dir: Path

    # ---- Remote task API ----
    api_key: str | None
    base_url: str
    connect_timeout_seconds: float
    read_timeout_seconds: float

    # ---- Polling ----
    poll_interval_seconds: float
    max_poll_attempts: int

    # ---- Console ----
    default_aspect_ratio: AspectRatio

    @staticmethod
    def from_env() -> Settings:
        app_name = _env(_k("APP_NAME"), "zimage-studio").strip() or "zimage-studio"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/zimage"))

        # ZIMAGETURBO_API_KEY is the name the web front-end used.
        api_key = _first_env(_k("API_KEY"), "ZIMAGETURBO_API_KEY", default=None)
        base_url = (_env(_k("BASE_URL"), DEFAULT_BASE_URL).strip() or DEFAULT_BASE_URL).rstrip("/")

        connect_timeout = _env_float(_k("CONNECT_TIMEOUT_SECONDS"), 5.0)
        read_timeout = _env_float(_k("READ_TIMEOUT_SECONDS"), 30.0)

        poll_interval = _env_float(_k("POLL_INTERVAL_SECONDS"), POLL_INTERVAL_SECONDS)
        if poll_interval < 0:
            poll_interval = POLL_INTERVAL_SECONDS
        max_attempts = _env_int(_k("MAX_POLL_ATTEMPTS"), MAX_POLL_ATTEMPTS)
        if max_attempts < 1:
            max_attempts = MAX_POLL_ATTEMPTS

        default_ratio = AspectRatio.parse(_env(_k("DEFAULT_ASPECT_RATIO"), "1:1")) or AspectRatio.SQUARE

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            api_key=api_key.strip() if api_key else None,
            base_url=base_url,
            connect_timeout_seconds=connect_timeout,
            read_timeout_seconds=read_timeout,
            poll_interval_seconds=poll_interval,
            max_poll_attempts=max_attempts,
            default_aspect_ratio=default_ratio,
        )

    def api_config(self) -> ApiConfig:
        return ApiConfig(
            api_key=self.api_key,
            base_url=self.base_url,
            connect_timeout_seconds=self.connect_timeout_seconds,
            read_timeout_seconds=self.read_timeout_seconds,
            user_agent=f"{self.app_name}/0.1",
        )

    def poll_policy(self) -> PollPolicy:
        return PollPolicy(interval_seconds=self.poll_interval_seconds, max_attempts=self.max_poll_attempts)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load .env (without overriding the real environment) and build Settings once."""
    load_dotenv(override=False)
    return Settings.from_env()
