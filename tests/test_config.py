"""Tests for TOML configuration loading."""

import pytest

from mprishub.config import (
    ClockConfig,
    Config,
    create_default_config,
    get_config_path,
    load_config,
)
from mprishub.errors import ConfigError


def _write(tmp_path, text: str):
    path = tmp_path / "config.toml"
    path.write_text(text)
    return path


class TestLoadConfig:
    def test_missing_default_file_gives_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert get_config_path() == tmp_path / "mprishub" / "config.toml"
        assert load_config() == Config()

    def test_missing_explicit_file_is_an_error(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.toml")

    def test_partial_sections(self, tmp_path):
        path = _write(tmp_path, "[clock]\ndrift_threshold = 1.5\n\n[logging]\nlevel = \"DEBUG\"\n")
        config = load_config(path)
        assert config.clock == ClockConfig(drift_threshold=1.5)
        assert config.logging.level == "DEBUG"
        assert config.ui.refresh_hz == 10

    def test_default_template_round_trips(self, tmp_path):
        path = _write(tmp_path, create_default_config())
        assert load_config(path) == Config()

    def test_invalid_toml(self, tmp_path):
        path = _write(tmp_path, "[clock\n")
        with pytest.raises(ConfigError, match="Could not read"):
            load_config(path)

    def test_unknown_key(self, tmp_path):
        path = _write(tmp_path, "[clock]\ndrift = 3\n")
        with pytest.raises(ConfigError, match="Unknown keys in \\[clock\\]: drift"):
            load_config(path)

    def test_section_must_be_table(self, tmp_path):
        path = _write(tmp_path, "ui = 3\n")
        with pytest.raises(ConfigError, match="must be a table"):
            load_config(path)

    def test_negative_window_rejected(self, tmp_path):
        path = _write(tmp_path, "[clock]\nseek_suppress = -1\n")
        with pytest.raises(ConfigError, match="seek_suppress"):
            load_config(path)

    def test_refresh_rate_must_be_positive(self, tmp_path):
        path = _write(tmp_path, "[ui]\nrefresh_hz = 0\n")
        with pytest.raises(ConfigError, match="refresh_hz"):
            load_config(path)


class TestClockConfig:
    def test_defaults(self):
        config = ClockConfig()
        assert (config.drift_threshold, config.resync_interval) == (2.0, 2.0)
        assert (config.resume_guard, config.seek_suppress) == (0.1, 0.5)
        config.validate()
