"""
Configuration management for mprishub.

Settings live in a TOML file, by default
``$XDG_CONFIG_HOME/mprishub/config.toml``.  A missing file means defaults.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from mprishub.errors import ConfigError


@dataclass
class ClockConfig:
    """Timing constants of the position clock, in seconds.

    The defaults were picked empirically; they are kept configurable
    rather than treated as derived values.
    """

    drift_threshold: float = 2.0  # resync when interpolation is off by more
    resync_interval: float = 2.0  # minimum time between two drift resyncs
    resume_guard: float = 0.1  # ignore position reports right after resume
    seek_suppress: float = 0.5  # ignore position reports right after a user seek

    def validate(self) -> None:
        """Raise ``ValueError`` if any window is negative."""
        for f in fields(self):
            value = getattr(self, f.name)
            if value < 0:
                raise ValueError(f"clock.{f.name} must be >= 0, got {value}")


@dataclass
class UIConfig:
    """Configuration for the terminal view."""

    refresh_hz: int = 10
    seek_step: float = 5.0  # seconds moved by the arrow keys
    use_colors: bool = True


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: str | None = None  # default: ~/.local/share/mprishub/mprishub.log
    max_file_size_mb: int = 10
    backup_count: int = 5
    console_output: bool = False


@dataclass
class Config:
    """Main configuration object."""

    clock: ClockConfig = field(default_factory=ClockConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def get_config_dir() -> Path:
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "mprishub"
    return Path.home() / ".config" / "mprishub"


def get_data_dir() -> Path:
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "mprishub"
    return Path.home() / ".local" / "share" / "mprishub"


def get_config_path() -> Path:
    return get_config_dir() / "config.toml"


def _section(cls: type, data: Any, name: str):
    if not isinstance(data, dict):
        raise ConfigError(f"[{name}] must be a table")
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown keys in [{name}]: {', '.join(sorted(unknown))}")
    return cls(**data)


def load_config(path: Path | str | None = None) -> Config:
    """Load configuration from *path* (or the default location).

    Raises:
        ConfigError: If the file cannot be parsed or holds invalid values
    """
    config_path = Path(path).expanduser() if path else get_config_path()
    if not config_path.exists():
        if path:
            raise ConfigError(f"Config file not found: {config_path}")
        return Config()

    try:
        with open(config_path, "rb") as f:
            toml_data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Could not read {config_path}: {e}") from e

    config = Config()
    if "clock" in toml_data:
        config.clock = _section(ClockConfig, toml_data["clock"], "clock")
        try:
            config.clock.validate()
        except ValueError as e:
            raise ConfigError(str(e)) from e
    if "ui" in toml_data:
        config.ui = _section(UIConfig, toml_data["ui"], "ui")
        if config.ui.refresh_hz <= 0:
            raise ConfigError("ui.refresh_hz must be positive")
    if "logging" in toml_data:
        config.logging = _section(LoggingConfig, toml_data["logging"], "logging")

    return config


def create_default_config() -> str:
    """Return the default configuration as TOML text."""
    return """
# mprishub configuration

[clock]
# Resync the interpolated position when it drifts this far (seconds)
drift_threshold = 2.0
# Minimum seconds between two drift resyncs
resync_interval = 2.0
# Ignore position reports this long after playback resumes
resume_guard = 0.1
# Ignore position reports this long after a seek from this client
seek_suppress = 0.5

[ui]
refresh_hz = 10
seek_step = 5.0
use_colors = true

[logging]
level = "INFO"
# log_file = "/path/to/mprishub.log"
max_file_size_mb = 10
backup_count = 5
console_output = false
""".strip()
