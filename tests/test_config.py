"""Tests for settings loading."""

from pathlib import Path
from unittest.mock import patch

import pytest

from trackdeleter.config import (
    Settings,
    ensure_config_exists,
    get_config_dir,
    load_settings,
    settings_from_dict,
)
from trackdeleter.errors import ConfigError
from trackdeleter.fingerprint import MatchMode


class TestLoadSettings:
    """Test TOML loading and validation."""

    def test_defaults_when_default_file_missing(self, tmp_path: Path) -> None:
        with patch(
            "trackdeleter.config.get_config_file", return_value=tmp_path / "none.toml"
        ):
            settings = load_settings()
        assert settings == Settings()
        assert settings.extensions == ["flac", "m4a", "mp3", "wav"]
        assert settings.match_mode == MatchMode.METADATA
        assert settings.duration_tolerance == 1.0

    def test_explicit_missing_file_is_error(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "missing.toml")

    def test_load_values(self, tmp_path: Path) -> None:
        config = tmp_path / "config.toml"
        config.write_text(
            """
[scan]
extensions = [".MP3", "ogg"]
recurse = false
workers = 2

[match]
mode = "strict"
duration_tolerance = 2.5

[delete]
workers = 8
use_staging = true

[cache]
enabled = false
backend = "json"
path = "~/tracks.json"
"""
        )
        settings = load_settings(config)

        assert settings.extensions == ["mp3", "ogg"]
        assert settings.recurse is False
        assert settings.scan_workers == 2
        assert settings.match_mode == MatchMode.STRICT
        assert settings.duration_tolerance == 2.5
        assert settings.delete_workers == 8
        assert settings.use_staging is True
        assert settings.cache_enabled is False
        assert settings.cache_backend == "json"
        assert settings.cache_path == Path("~/tracks.json").expanduser()

    def test_invalid_toml(self, tmp_path: Path) -> None:
        config = tmp_path / "config.toml"
        config.write_text("[scan\nrecurse = ")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_settings(config)

    @pytest.mark.parametrize(
        "data",
        [
            {"match": {"mode": "fuzzy"}},
            {"match": {"duration_tolerance": -1}},
            {"delete": {"workers": 0}},
            {"scan": {"extensions": []}},
            {"cache": {"backend": "redis"}},
            {"scan": "not a table"},
            {"scan": {"recurse": "false"}},
            {"delete": {"use_staging": 1}},
            {"cache": {"enabled": "no"}},
        ],
    )
    def test_invalid_values(self, data: dict) -> None:
        with pytest.raises(ConfigError):
            settings_from_dict(data)


class TestConfigFile:
    def test_ensure_config_exists_copies_template(self, tmp_path: Path) -> None:
        target = tmp_path / "sub" / "config.toml"
        assert ensure_config_exists(target) == target
        assert "[scan]" in target.read_text()
        # The template itself must load cleanly
        assert load_settings(target) == Settings()

    def test_ensure_config_exists_keeps_existing(self, tmp_path: Path) -> None:
        target = tmp_path / "config.toml"
        target.write_text("[scan]\nrecurse = false\n")
        ensure_config_exists(target)
        assert target.read_text() == "[scan]\nrecurse = false\n"

    def test_config_dir_posix(self) -> None:
        with patch("trackdeleter.config.platform.system", return_value="Linux"):
            assert get_config_dir() == Path.home() / ".config" / "trackdeleter"

    def test_config_dir_windows(self) -> None:
        with patch("trackdeleter.config.platform.system", return_value="Windows"):
            with patch.dict("os.environ", {"APPDATA": "C:\\Users\\u\\AppData"}):
                expected = Path("C:\\Users\\u\\AppData") / "trackdeleter"
                assert get_config_dir() == expected

    def test_string_flag_rejected(self, tmp_path: Path) -> None:
        config = tmp_path / "config.toml"
        config.write_text('[scan]\nrecurse = "false"\n')
        with pytest.raises(ConfigError, match="scan.recurse must be true or false"):
            load_settings(config)
