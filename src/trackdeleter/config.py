"""Settings management for trackdeleter.

Configuration is stored in a platform-specific location:
- Linux/macOS: ~/.config/trackdeleter/config.toml
- Windows: %APPDATA%\\trackdeleter\\config.toml

A missing file means defaults. Command line flags override file values.
"""

import os
import platform
import shutil
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigError
from .fingerprint import DEFAULT_TOLERANCE, MatchMode
from .walker import DEFAULT_EXTENSIONS, normalize_extensions

CACHE_BACKENDS = ("sqlite", "json")


def get_config_dir() -> Path:
    """Get platform-specific configuration directory."""
    if platform.system() == "Windows":
        appdata = os.getenv("APPDATA")
        if not appdata:
            raise ConfigError("APPDATA environment variable not set")
        return Path(appdata) / "trackdeleter"
    return Path.home() / ".config" / "trackdeleter"


def get_config_file() -> Path:
    """Get path to user configuration file."""
    return get_config_dir() / "config.toml"


def ensure_config_exists(config_file: Optional[Path] = None) -> Path:
    """
    Create the user configuration file from the packaged template if missing.

    Returns:
        Path to the configuration file
    """
    config_file = config_file or get_config_file()
    if not config_file.exists():
        config_file.parent.mkdir(parents=True, exist_ok=True)
        default_config = Path(__file__).parent / "templates" / "default_config.toml"
        shutil.copy(default_config, config_file)
    return config_file


@dataclass
class Settings:
    """Effective settings for one run."""

    extensions: List[str] = field(default_factory=lambda: sorted(DEFAULT_EXTENSIONS))
    recurse: bool = True
    scan_workers: int = 0  # 0 = CPU count
    match_mode: MatchMode = MatchMode.METADATA
    duration_tolerance: float = DEFAULT_TOLERANCE
    delete_workers: int = 4
    use_staging: bool = False
    cache_enabled: bool = True
    cache_backend: str = "sqlite"
    cache_path: Optional[Path] = None

    def validate(self) -> "Settings":
        """
        Raises:
            ConfigError: If any value is out of range
        """
        if not self.extensions:
            raise ConfigError("scan.extensions must not be empty")
        if self.scan_workers < 0:
            raise ConfigError("scan.workers must be >= 0")
        if self.delete_workers < 1:
            raise ConfigError("delete.workers must be >= 1")
        if self.duration_tolerance < 0:
            raise ConfigError("match.duration_tolerance must be >= 0")
        if self.cache_backend not in CACHE_BACKENDS:
            raise ConfigError(
                f"cache.backend must be one of {', '.join(CACHE_BACKENDS)}"
            )
        return self


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = config.get(name, {})
    if not isinstance(value, dict):
        raise ConfigError(f"[{name}] must be a table")
    return value


def _flag(section: Dict[str, Any], key: str, name: str, default: bool) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{name} must be true or false, got {value!r}")
    return value


def settings_from_dict(config: Dict[str, Any]) -> Settings:
    """Build Settings from a parsed TOML document."""
    settings = Settings()
    scan = _section(config, "scan")
    match = _section(config, "match")
    delete = _section(config, "delete")
    cache = _section(config, "cache")

    try:
        if "extensions" in scan:
            settings.extensions = sorted(normalize_extensions(scan["extensions"]))
        settings.recurse = _flag(scan, "recurse", "scan.recurse", settings.recurse)
        settings.scan_workers = int(scan.get("workers", settings.scan_workers))

        settings.match_mode = MatchMode(match.get("mode", settings.match_mode.value))
        settings.duration_tolerance = float(
            match.get("duration_tolerance", settings.duration_tolerance)
        )

        settings.delete_workers = int(delete.get("workers", settings.delete_workers))
        settings.use_staging = _flag(
            delete, "use_staging", "delete.use_staging", settings.use_staging
        )

        settings.cache_enabled = _flag(
            cache, "enabled", "cache.enabled", settings.cache_enabled
        )
        settings.cache_backend = str(cache.get("backend", settings.cache_backend))
        if cache.get("path"):
            settings.cache_path = Path(cache["path"]).expanduser()
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}") from e

    return settings.validate()


def load_settings(config_file: Optional[Path] = None) -> Settings:
    """
    Load settings from a TOML file.

    Args:
        config_file: Explicit file; defaults to the user configuration file.
            A missing default file yields default settings, a missing
            explicit file is an error.

    Raises:
        ConfigError: If the file cannot be read or holds invalid values
    """
    explicit = config_file is not None
    path = config_file if explicit else get_config_file()

    if not path.exists():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        return Settings()

    try:
        with open(path, "rb") as f:
            config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    return settings_from_dict(config)
