"""
Configuration file parsing and management.

Supports YAML configuration files (JSON when the file ends in ``.json``).
Merges configurations from multiple sources (custom -> project -> user ->
system -> defaults), then applies ``BBREW_*`` environment overrides.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Mapping

import yaml

from .common import vlog


# Configuration file locations (in priority order)
CONFIG_LOCATIONS = [
    ".bbrew.yml",                                      # Project root (highest priority)
    ".bbrew.yaml",
    os.path.expanduser("~/.config/bbrew/config.yml"),  # User global
    os.path.expanduser("~/.config/bbrew/config.yaml"),
    "/etc/bbrew/config.yml",                           # System global
]

# Homebrew itself serializes on locks, so more than a handful rarely helps
DEFAULT_MAX_CONCURRENT = 4
DEFAULT_BATCH_SIZE = 10

# Keys a configuration file may set
_FILE_KEYS = frozenset({
    "version",
    "brew_path",
    "max_concurrent",
    "batch_size",
    "fetch_batch_size",
    "timeout_seconds",
    "update_before_upgrade",
})

# Environment variable -> (field name, parser)
ENV_OVERRIDES = {
    "BBREW_MAX_CONCURRENT": ("max_concurrent", int),
    "BBREW_BATCH_SIZE": ("batch_size", int),
    "BBREW_BREW_PATH": ("brew_path", str),
    "BBREW_TIMEOUT": ("timeout_seconds", int),
}


@dataclass(frozen=True)
class Config:
    """
    Complete configuration for Better Brew.

    Attributes:
        version: Config schema version
        brew_path: Homebrew executable to invoke
        max_concurrent: Maximum number of brew commands running at once
        batch_size: Packages per ``brew install``/``brew reinstall`` command
        fetch_batch_size: Packages per ``brew fetch`` command
        timeout_seconds: Per-command timeout (None waits forever)
        update_before_upgrade: Run ``brew update`` before listing outdated packages
        source: Path to the configuration file that was loaded
        explicit_fields: Keys the configuration file actually set
    """
    version: int = 1
    brew_path: str = "brew"
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    batch_size: int = DEFAULT_BATCH_SIZE
    fetch_batch_size: int = 1
    timeout_seconds: int | None = None
    update_before_upgrade: bool = True
    source: str = ""
    explicit_fields: frozenset = field(default=frozenset(), compare=False, repr=False)

    def __post_init__(self):
        """Validate config after initialization."""
        if self.version != 1:
            raise ValueError(f"Unsupported config version: {self.version}. Expected version 1")

        if not self.brew_path:
            raise ValueError("brew_path must not be empty")

        if self.max_concurrent < 1 or self.max_concurrent > 32:
            raise ValueError(
                f"Invalid max_concurrent: {self.max_concurrent}. "
                "Must be between 1 and 32"
            )

        if self.batch_size < 1 or self.batch_size > 100:
            raise ValueError(
                f"Invalid batch_size: {self.batch_size}. "
                "Must be between 1 and 100"
            )

        if self.fetch_batch_size < 1 or self.fetch_batch_size > 100:
            raise ValueError(
                f"Invalid fetch_batch_size: {self.fetch_batch_size}. "
                "Must be between 1 and 100"
            )

        if self.timeout_seconds is not None and self.timeout_seconds < 1:
            raise ValueError(
                f"Invalid timeout_seconds: {self.timeout_seconds}. "
                "Must be a positive number of seconds or null"
            )

    @staticmethod
    def from_dict(data: dict[str, Any], source: str = "") -> Config:
        """Create Config from dictionary."""
        return Config(
            version=data.get("version", 1),
            brew_path=data.get("brew_path", "brew"),
            max_concurrent=data.get("max_concurrent", DEFAULT_MAX_CONCURRENT),
            batch_size=data.get("batch_size", DEFAULT_BATCH_SIZE),
            fetch_batch_size=data.get("fetch_batch_size", 1),
            timeout_seconds=data.get("timeout_seconds"),
            update_before_upgrade=data.get("update_before_upgrade", True),
            source=source,
            explicit_fields=frozenset(key for key in data if key in _FILE_KEYS),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "explicit_fields"}

    def merge_with(self, other: Config) -> Config:
        """
        Merge this config with another, preferring values from this config.

        A value wins over ``other`` when this config's file set it
        explicitly, or when it differs from the default.

        Args:
            other: Other config to merge (lower priority)

        Returns:
            New merged Config object
        """
        defaults = Config()
        merged: dict[str, Any] = {}
        for f in fields(self):
            if f.name in ("source", "explicit_fields"):
                continue
            mine = getattr(self, f.name)
            if f.name in self.explicit_fields or mine != getattr(defaults, f.name):
                merged[f.name] = mine
            else:
                merged[f.name] = getattr(other, f.name)
        return Config(
            source=self.source or other.source,
            explicit_fields=self.explicit_fields | other.explicit_fields,
            **merged,
        )

    def with_overrides(self, **overrides: Any) -> Config:
        """Return a copy with the given non-None fields replaced."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        if not changes:
            return self
        return replace(self, **changes)


def _load_yaml(file_path: str) -> dict[str, Any] | None:
    """
    Load YAML configuration file.

    Returns:
        Parsed configuration dictionary, or None if the file is unreadable or invalid
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError):
        return None


def _load_json(file_path: str) -> dict[str, Any] | None:
    """
    Load JSON configuration file.

    Returns:
        Parsed configuration dictionary, or None if file invalid
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
            return data if isinstance(data, dict) else {}
    except (OSError, json.JSONDecodeError):
        return None


def load_config_file(file_path: str, verbose: bool = False) -> Config | None:
    """
    Load configuration from a single file.

    Args:
        file_path: Path to configuration file
        verbose: Enable verbose logging

    Returns:
        Config object, or None if file cannot be loaded
    """
    if not os.path.exists(file_path):
        return None

    vlog(f"Loading config from: {file_path}", verbose)

    if file_path.endswith(".json"):
        data = _load_json(file_path)
    else:
        data = _load_yaml(file_path)

    if data is None:
        vlog(f"Invalid config file: {file_path}", verbose)
        return None

    try:
        config = Config.from_dict(data, source=file_path)
        vlog(f"Loaded config successfully: {file_path}", verbose)
        return config
    except (ValueError, TypeError) as e:
        vlog(f"Config validation failed for {file_path}: {e}", verbose)
        return None


def apply_env_overrides(
    config: Config,
    environ: Mapping[str, str] | None = None,
    verbose: bool = False,
) -> Config:
    """
    Apply ``BBREW_*`` environment variables on top of a loaded config.

    Raises:
        ValueError: If a variable is set to a value that cannot be parsed
    """
    if environ is None:
        environ = os.environ

    overrides: dict[str, Any] = {}
    for var, (name, parse) in ENV_OVERRIDES.items():
        raw = environ.get(var, "").strip()
        if not raw:
            continue
        try:
            overrides[name] = parse(raw)
        except ValueError:
            raise ValueError(f"Invalid value for {var}: {raw!r}") from None
        vlog(f"Environment override {var}={raw}", verbose)

    return config.with_overrides(**overrides)


def load_config(
    custom_path: str | None = None,
    verbose: bool = False,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """
    Load and merge configuration from all sources.

    Configuration precedence (highest to lowest):
    1. BBREW_* environment variables
    2. Custom path (if provided)
    3. Project .bbrew.yml
    4. User ~/.config/bbrew/config.yml
    5. System /etc/bbrew/config.yml
    6. Default configuration

    Args:
        custom_path: Optional path to custom configuration file
        verbose: Enable verbose logging
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        Merged Config object (never None, returns defaults if no config found)

    Raises:
        ValueError: If custom_path is provided but file cannot be loaded
    """
    configs: list[Config] = []

    if custom_path:
        config = load_config_file(custom_path, verbose)
        if config is None:
            raise ValueError(f"Could not load config from specified path: {custom_path}")
        configs.append(config)
        vlog(f"Using custom config: {custom_path}", verbose)

    for location in CONFIG_LOCATIONS:
        config = load_config_file(location, verbose)
        if config is not None:
            configs.append(config)
            vlog(f"Found config at: {location}", verbose)

    if not configs:
        vlog("No config files found, using defaults", verbose)
        merged = Config()
    else:
        merged = configs[0]
        for config in configs[1:]:
            merged = merged.merge_with(config)
        vlog(f"Merged {len(configs)} config files", verbose)

    return apply_env_overrides(merged, environ, verbose)


def validate_config(config: Config) -> list[str]:
    """
    Validate configuration and return list of warnings.

    Args:
        config: Config object to validate

    Returns:
        List of validation warning messages (empty if nothing looks off)
    """
    warnings = []

    cpus = os.cpu_count() or 1
    if config.max_concurrent > cpus:
        warnings.append(
            f"max_concurrent ({config.max_concurrent}) exceeds CPU count ({cpus}); "
            "brew may compete for CPU and locks"
        )

    if config.fetch_batch_size > 1 and config.max_concurrent == 1:
        warnings.append("fetch_batch_size > 1 with max_concurrent 1 gives no parallelism")

    if config.timeout_seconds is not None and config.timeout_seconds < 30:
        warnings.append(
            f"timeout_seconds ({config.timeout_seconds}) is short for package downloads"
        )

    return warnings
