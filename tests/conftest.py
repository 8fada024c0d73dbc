# tests/conftest.py

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from zimage_studio.api.http import ApiConfig, build_client
from zimage_studio.config import Settings
from zimage_studio.core.models import AspectRatio

from .fakes import FakeClock, FakeStatusGateway, FakeSubmissionGateway, RecordingListener

TEST_BASE_URL = "https://zimage.test"


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """
    Settings built directly (not from the environment) so tests never depend on
    the developer's .env or shell.
    """
    return Settings(
        app_name="zimage-test",
        log_level="DEBUG",
        data_dir=tmp_path / "data",
        api_key="test-key",
        base_url=TEST_BASE_URL,
        connect_timeout_seconds=1.0,
        read_timeout_seconds=1.0,
        poll_interval_seconds=2.0,
        max_poll_attempts=30,
        default_aspect_ratio=AspectRatio.SQUARE,
    )


@pytest.fixture()
def api_config() -> ApiConfig:
    return ApiConfig(api_key="test-key", base_url=TEST_BASE_URL)


@pytest.fixture()
def make_client(api_config: ApiConfig):
    """Factory: AsyncClient whose requests go to the given MockTransport handler."""

    def _make(handler, config: ApiConfig | None = None) -> httpx.AsyncClient:
        return build_client(config or api_config, transport=httpx.MockTransport(handler))

    return _make


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def submission() -> FakeSubmissionGateway:
    return FakeSubmissionGateway()


@pytest.fixture()
def status() -> FakeStatusGateway:
    return FakeStatusGateway()


@pytest.fixture()
def listener() -> RecordingListener:
    return RecordingListener()
