"""
Unit tests for configuration module.
"""

import os
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from cyclecast.config import (
    ClientConfig,
    CycleCastConfig,
    LoggingConfig,
    PreloadConfig,
    ScheduleConfig,
    ServerConfig,
    _deep_merge,
    _parse_env_value,
    get_config,
    load_config,
    reload_config,
)
from cyclecast.scheduling.registry import PlaylistRegistry


@pytest.mark.unit
class TestServerConfig:
    """Tests for ServerConfig."""

    def test_default_values(self):
        """Test default server configuration values."""
        config = ServerConfig()

        assert config.host == "0.0.0.0"
        assert config.port == 8420
        assert config.debug is False
        assert config.log_level == "INFO"

    def test_custom_values(self):
        """Test custom server configuration."""
        config = ServerConfig(host="127.0.0.1", port=9000, debug=True, log_level="DEBUG")

        assert config.host == "127.0.0.1"
        assert config.port == 9000
        assert config.debug is True


@pytest.mark.unit
class TestLoggingConfig:
    """Tests for LoggingConfig."""

    def test_default_values(self):
        config = LoggingConfig()

        assert config.level == "INFO"
        assert config.max_size == "10MB"
        assert "%(asctime)s" in config.format


@pytest.mark.unit
class TestScheduleConfig:
    """Tests for ScheduleConfig."""

    def test_default_epoch_is_2024_utc(self):
        config = ScheduleConfig()

        assert config.epoch == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert config.epoch_ms == 1_704_067_200_000

    def test_naive_epoch_read_as_utc(self):
        config = ScheduleConfig(epoch=datetime(2024, 1, 1))

        assert config.epoch.tzinfo is not None
        assert config.epoch_ms == 1_704_067_200_000

    def test_iso_string_epoch(self):
        config = ScheduleConfig(epoch="2024-01-01T00:00:10Z")

        assert config.epoch_ms == 1_704_067_210_000

    def test_default_channel_matches_builtin_playlist(self):
        config = ScheduleConfig()

        assert config.default_channel == "bangla-1"
        assert len(config.channels) == 1
        durations = [p.duration_seconds for p in config.channels[0].programs]
        assert durations == [5820, 1494, 1023, 900, 1200]

    def test_defaults_build_a_valid_registry(self):
        registry = PlaylistRegistry.from_config(ScheduleConfig())

        channel = registry.get()
        assert channel.id == "bangla-1"
        assert channel.total_duration == 10437


@pytest.mark.unit
class TestPreloadAndClientConfig:
    """Tests for PreloadConfig and ClientConfig defaults."""

    def test_preload_defaults(self):
        config = PreloadConfig()

        assert config.enabled is True
        assert config.lead_seconds == 300
        assert config.history_cap == 100

    def test_client_defaults(self):
        config = ClientConfig()

        assert config.resync_interval_seconds == 300
        assert config.display_interval_seconds == 0.25
        assert config.drift_tolerance_seconds == 2.0
        assert config.history_cap == 30
        assert config.channel is None


@pytest.mark.unit
class TestCycleCastConfig:
    """Tests for main CycleCastConfig class."""

    def test_default_config(self):
        config = CycleCastConfig()

        assert isinstance(config.server, ServerConfig)
        assert isinstance(config.schedule, ScheduleConfig)
        assert isinstance(config.preload, PreloadConfig)
        assert isinstance(config.client, ClientConfig)

    def test_nested_config(self):
        config = CycleCastConfig(server=ServerConfig(port=9000), preload=PreloadConfig(enabled=False))

        assert config.server.port == 9000
        assert config.preload.enabled is False


@pytest.mark.unit
class TestLoadConfig:
    """Tests for config loading functions."""

    def test_load_from_file(self, temp_config_file: Path):
        config = load_config(str(temp_config_file))

        assert config.server.port == 9000
        assert config.server.debug is True
        assert config.logging.level == "DEBUG"
        assert config.schedule.version == "2.1"
        assert config.schedule.default_channel == "news"
        assert config.schedule.epoch_ms == 1_740_808_800_000
        assert [p.id for p in config.schedule.channels[0].programs] == ["n1", "n2"]

    def test_missing_file_uses_defaults(self, temp_dir: Path):
        config = load_config(str(temp_dir / "absent.yaml"))

        assert config.server.port == 8420
        assert config.schedule.default_channel == "bangla-1"

    def test_env_overrides_file(self, temp_config_file: Path, mock_env_vars):
        config = load_config(str(temp_config_file))

        assert config.server.port == 9100
        assert config.server.debug is True
        # Version stays a string even though it looks numeric
        assert config.schedule.version == "2024.10"

    def test_env_default_channel(self, temp_config_file: Path):
        with patch.dict(os.environ, {"CYCLECAST_DEFAULT_CHANNEL": "other"}):
            config = load_config(str(temp_config_file))

        assert config.schedule.default_channel == "other"

    def test_get_config_caching(self):
        config1 = get_config()
        config2 = get_config()

        assert config1 is config2

    def test_reload_config_creates_new_instance(self):
        config1 = get_config()
        config2 = reload_config()

        assert isinstance(config2, CycleCastConfig)
        assert config1 is not config2


@pytest.mark.unit
class TestConfigHelpers:
    """Tests for env parsing and merging helpers."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("true", True),
            ("no", False),
            ("42", 42),
            ("2.5", 2.5),
            ("http://x", "http://x"),
        ],
    )
    def test_parse_env_value(self, raw, expected):
        assert _parse_env_value(raw) == expected

    def test_deep_merge_nested(self):
        base = {"server": {"host": "a", "port": 1}, "logging": {"level": "INFO"}}
        _deep_merge(base, {"server": {"port": 2}})

        assert base == {"server": {"host": "a", "port": 2}, "logging": {"level": "INFO"}}
