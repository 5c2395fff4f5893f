"""
Configuration management for CycleCast.

Handles loading, validation, and access to application configuration.
"""

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

# Global configuration instance
_config: Optional["CycleCastConfig"] = None


class ServerConfig(BaseModel):
    """Server configuration."""
    host: str = "0.0.0.0"
    port: int = 8420
    debug: bool = False
    log_level: str = "INFO"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    file: str = "logs/cyclecast.log"
    max_size: str = "10MB"
    backup_count: int = 5
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ProgramConfig(BaseModel):
    """A single program entry in a channel playlist."""
    id: str
    media_ref: str
    title: str
    duration_seconds: int
    category: str = ""
    language: str = ""
    description: str = ""
    thumbnail: Optional[str] = None


class ChannelConfig(BaseModel):
    """A channel and its ordered, cyclic playlist."""
    id: str
    name: str
    language: str = ""
    icon: str = ""
    programs: list[ProgramConfig] = Field(default_factory=list)


def _default_channels() -> list[ChannelConfig]:
    """The stock lecture channel shipped with the service."""
    return [
        ChannelConfig(
            id="bangla-1",
            name="Bangla Lectures",
            language="Bengali",
            icon="tv",
            programs=[
                ProgramConfig(
                    id="1",
                    media_ref="BPf0rhGKM-Q",
                    title="হৃদয় স্পর্শ করার মত কিছু কথা",
                    duration_seconds=5820,
                    category="Lecture",
                    language="Bengali",
                    description="A heartfelt, full-length lecture",
                    thumbnail="https://img.youtube.com/vi/BPf0rhGKM-Q/maxresdefault.jpg",
                ),
                ProgramConfig(
                    id="2",
                    media_ref="fXSwr_njN5U",
                    title="Ramadan Guide – রমজান পূর্ব প্রস্তুতি",
                    duration_seconds=1494,
                    category="Lecture",
                    language="Bengali",
                    description="Important Ramadan details and preparation.",
                    thumbnail="https://img.youtube.com/vi/fXSwr_njN5U/maxresdefault.jpg",
                ),
                ProgramConfig(
                    id="3",
                    media_ref="MsyOd9nnXRM",
                    title="Ramadan FAQs – রামাদান প্রশ্নোত্তর",
                    duration_seconds=1023,
                    category="Lecture",
                    language="Bengali",
                    description="Common Ramadan fasting questions answered.",
                    thumbnail="https://img.youtube.com/vi/MsyOd9nnXRM/maxresdefault.jpg",
                ),
                ProgramConfig(
                    id="4",
                    media_ref="O03n_lX0lnU",
                    title="Important Ramadan Answers – মাহে রমজান সম্পর্কিত প্রশ্নের উত্তর",
                    duration_seconds=900,
                    category="Lecture",
                    language="Bengali",
                    description="20 key Ramadan questions answered.",
                    thumbnail="https://img.youtube.com/vi/O03n_lX0lnU/maxresdefault.jpg",
                ),
                ProgramConfig(
                    id="5",
                    media_ref="wX1AEPleTHw",
                    title="Siyam Sunnah & Rules – রোজার নিয়ত ও সুন্নত",
                    duration_seconds=1200,
                    category="Lecture",
                    language="Bengali",
                    description="Complete guide to fasting intention and Sunnah.",
                    thumbnail="https://img.youtube.com/vi/wX1AEPleTHw/maxresdefault.jpg",
                ),
            ],
        )
    ]


class ScheduleConfig(BaseModel):
    """
    Schedule configuration.

    The epoch and the channel playlists together define every answer the
    resolver will ever give. Change either one and bump ``version``.
    """
    epoch: datetime = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
    version: str = "1.0.0"
    default_channel: str = "bangla-1"
    upcoming_default_count: int = 15
    upcoming_max_count: int = 100
    channels: list[ChannelConfig] = Field(default_factory=_default_channels)

    @field_validator("epoch")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Naive datetimes in config files are read as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def epoch_ms(self) -> int:
        """Epoch as integer milliseconds since the Unix epoch."""
        return round(self.epoch.timestamp() * 1000)


class PreloadConfig(BaseModel):
    """Preload/switch timer configuration."""
    enabled: bool = True
    lead_seconds: int = 300  # preload fires 5 minutes before start
    history_cap: int = 100
    granularity_ms: int = 1000
    horizon_count: int = 20
    refresh_interval_seconds: int = 60


class ClientConfig(BaseModel):
    """Receiving-side sync configuration."""
    server_url: str = "http://localhost:8420"
    channel: Optional[str] = None  # None = server default channel
    resync_interval_seconds: float = 300.0
    display_interval_seconds: float = 0.25
    drift_tolerance_seconds: float = 2.0
    request_timeout_seconds: float = 10.0
    history_cap: int = 30
    preferences_file: str = "cyclecast-preferences.json"


class CycleCastConfig(BaseModel):
    """Main CycleCast configuration."""
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    preload: PreloadConfig = Field(default_factory=PreloadConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)


def load_config(config_path: Optional[str] = None) -> CycleCastConfig:
    """
    Load configuration from file.

    Args:
        config_path: Path to config file. Defaults to config.yaml in project root.

    Returns:
        Loaded and validated configuration.
    """
    global _config

    if config_path is None:
        # Look for config.yaml in current directory or project root
        possible_paths = [
            Path("config.yaml"),
            Path(__file__).parent.parent / "config.yaml",
        ]
        for path in possible_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data: dict[str, Any] = {}

    if config_path and Path(config_path).exists():
        with open(config_path, encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}

    # Apply environment variable overrides
    env_overrides = _get_env_overrides()
    _deep_merge(config_data, env_overrides)

    _config = CycleCastConfig(**config_data)
    return _config


def get_config() -> CycleCastConfig:
    """
    Get the current configuration.

    Returns:
        Current configuration (loads default if not yet loaded).
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> CycleCastConfig:
    """
    Reload configuration from disk.

    Returns:
        Freshly loaded configuration.
    """
    global _config
    _config = None
    return load_config()


def _get_env_overrides() -> dict[str, Any]:
    """Get configuration overrides from environment variables."""
    overrides: dict[str, Any] = {}

    # Map of environment variables to config paths
    env_map = {
        "CYCLECAST_HOST": ("server", "host"),
        "CYCLECAST_PORT": ("server", "port"),
        "CYCLECAST_DEBUG": ("server", "debug"),
        "CYCLECAST_LOG_LEVEL": ("logging", "level"),
        "CYCLECAST_DEFAULT_CHANNEL": ("schedule", "default_channel"),
        "CYCLECAST_SCHEDULE_VERSION": ("schedule", "version"),
        "CYCLECAST_SERVER_URL": ("client", "server_url"),
    }

    # Values that must stay strings even when they look numeric
    string_paths = {("schedule", "version"), ("schedule", "default_channel")}

    for env_var, path in env_map.items():
        value = os.environ.get(env_var)
        if value is not None:
            parsed = value if path in string_paths else _parse_env_value(value)
            _set_nested(overrides, path, parsed)

    return overrides


def _parse_env_value(value: str) -> Any:
    """Parse environment variable value to appropriate type."""
    # Boolean
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False

    # Integer
    try:
        return int(value)
    except ValueError:
        pass

    # Float
    try:
        return float(value)
    except ValueError:
        pass

    return value


def _set_nested(d: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    """Set a nested dictionary value from a path tuple."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> None:
    """Deep merge override into base dictionary."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value

