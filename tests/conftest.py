"""
CycleCast Test Configuration

Shared fixtures and configuration for all tests.
"""

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from cyclecast.config import (
    ChannelConfig,
    CycleCastConfig,
    PreloadConfig,
    ProgramConfig,
    ScheduleConfig,
)
from cyclecast.main import create_app
from cyclecast.scheduling.registry import Channel, PlaylistRegistry, ProgramItem


class FakeClock:
    """Settable wall clock returning epoch milliseconds."""

    def __init__(self, start_ms: int = 0):
        self.ms = start_ms

    def __call__(self) -> int:
        return self.ms

    def advance(self, seconds: float) -> None:
        self.ms += int(seconds * 1000)


def make_channel(durations: list[int], channel_id: str = "test", name: str = "Test") -> Channel:
    """Channel whose programs are named A, B, C, ... with the given durations."""
    return Channel(
        id=channel_id,
        name=name,
        programs=tuple(
            ProgramItem(
                id=chr(ord("A") + i),
                media_ref=f"media-{chr(ord('a') + i)}",
                title=f"Program {chr(ord('A') + i)}",
                duration_seconds=d,
            )
            for i, d in enumerate(durations)
        ),
    )


# ============ Scheduling Fixtures ============


@pytest.fixture
def abc_channel() -> Channel:
    """A=100s, B=200s, C=300s; a 600 second cycle."""
    return make_channel([100, 200, 300], channel_id="abc", name="ABC")


@pytest.fixture
def registry(abc_channel: Channel) -> PlaylistRegistry:
    """Registry with the ABC channel (default) and a single-program channel."""
    solo = make_channel([60], channel_id="solo", name="Solo")
    return PlaylistRegistry([abc_channel, solo], epoch_ms=0, version="test-1", default_channel_id="abc")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============ FastAPI Test Client Fixtures ============


@pytest.fixture
def test_config() -> CycleCastConfig:
    """Configuration mirroring the ``registry`` fixture, epoch at 1970-01-01."""
    def programs(durations: list[int]) -> list[ProgramConfig]:
        return [
            ProgramConfig(
                id=chr(ord("A") + i),
                media_ref=f"media-{chr(ord('a') + i)}",
                title=f"Program {chr(ord('A') + i)}",
                duration_seconds=d,
            )
            for i, d in enumerate(durations)
        ]

    return CycleCastConfig(
        schedule=ScheduleConfig(
            epoch=datetime(1970, 1, 1, tzinfo=timezone.utc),
            version="test-1",
            default_channel="abc",
            upcoming_default_count=5,
            upcoming_max_count=50,
            channels=[
                ChannelConfig(id="abc", name="ABC", programs=programs([100, 200, 300])),
                ChannelConfig(id="solo", name="Solo", programs=programs([60])),
            ],
        ),
        preload=PreloadConfig(enabled=True, refresh_interval_seconds=3600),
    )


@pytest.fixture
def app(test_config: CycleCastConfig, clock: FakeClock) -> FastAPI:
    """Create a test FastAPI application on the fake clock."""
    return create_app(config=test_config, clock=clock)


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """Create a synchronous test client (runs the lifespan)."""
    with TestClient(app) as client:
        yield client


# ============ Temporary File Fixtures ============


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir: Path) -> Path:
    """Create a temporary config file."""
    config_file = temp_dir / "config.yaml"
    config_content = """
server:
  host: "127.0.0.1"
  port: 9000
  debug: true

logging:
  level: "DEBUG"

schedule:
  epoch: "2025-03-01T06:00:00Z"
  version: "2.1"
  default_channel: "news"
  channels:
    - id: "news"
      name: "News"
      programs:
        - id: "n1"
          media_ref: "vid-n1"
          title: "Morning"
          duration_seconds: 1800
        - id: "n2"
          media_ref: "vid-n2"
          title: "Noon"
          duration_seconds: 900
"""
    config_file.write_text(config_content)
    return config_file


# ============ Environment Fixtures ============


@pytest.fixture(autouse=True)
def clean_environment():
    """Clean environment variables for each test."""
    # Save current environment
    original_env = os.environ.copy()

    # Remove CycleCast-specific vars
    for key in list(os.environ.keys()):
        if key.startswith("CYCLECAST_"):
            del os.environ[key]

    yield

    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def mock_env_vars():
    """Set up mock environment variables."""
    env_vars = {
        "CYCLECAST_PORT": "9100",
        "CYCLECAST_DEBUG": "true",
        "CYCLECAST_SCHEDULE_VERSION": "2024.10",
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


# ============ Markers ============


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
