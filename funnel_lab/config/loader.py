"""
Configuration management and loading.

Handles application settings from a YAML file and environment variables.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

CONFIG_PATH_ENV = "FUNNEL_LAB_CONFIG"
DB_PATH_ENV = "FUNNEL_LAB_DB"

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class DatabaseSettings:
    """Location of the backing store."""
    path: str = "funnel_lab.db"

    def __post_init__(self):
        if not self.path or not str(self.path).strip():
            raise ValueError("database path cannot be empty")


@dataclass(frozen=True)
class CacheSettings:
    """Result cache behaviour."""
    enabled: bool = True
    ttl_hours: float = 24
    key_prefix: str = "funnel_analysis"

    def __post_init__(self):
        """Validate cache values."""
        if self.ttl_hours <= 0:
            raise ValueError("ttl_hours must be > 0")
        if not self.key_prefix:
            raise ValueError("key_prefix cannot be empty")


@dataclass(frozen=True)
class ProviderSettings:
    """Provider call settings shared by every configuration."""
    timeout_seconds: float = 60
    default_model: str = "gpt-4o"

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")


@dataclass(frozen=True)
class FeatureSettings:
    """Feature name used for entitlement and the service identifier used
    for configuration resolution."""
    name: str = "funnel_analysis"
    service: str = "funnel_analysis"


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"
    json: bool = False

    def __post_init__(self):
        if self.level.upper() not in _VALID_LOG_LEVELS:
            raise ValueError(f"logging level must be one of: {sorted(_VALID_LOG_LEVELS)}")


@dataclass(frozen=True)
class AppSettings:
    """Complete application configuration."""
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    provider: ProviderSettings = field(default_factory=ProviderSettings)
    feature: FeatureSettings = field(default_factory=FeatureSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @property
    def db_path(self) -> str:
        return self.database.path


_SECTIONS = {
    "database": (DatabaseSettings, {"path": str}),
    "cache": (CacheSettings, {"enabled": bool, "ttl_hours": (int, float), "key_prefix": str}),
    "provider": (ProviderSettings, {"timeout_seconds": (int, float), "default_model": str}),
    "feature": (FeatureSettings, {"name": str, "service": str}),
    "logging": (LoggingSettings, {"level": str, "json": bool}),
}


def load_settings(path: Optional[str] = None) -> AppSettings:
    """Load and validate application settings.

    The file is read from `path`, else from the FUNNEL_LAB_CONFIG
    environment variable; with neither, defaults are used. FUNNEL_LAB_DB
    overrides the database path in every case.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated AppSettings object

    Raises:
        FileNotFoundError: If an explicit config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    path = path or os.environ.get(CONFIG_PATH_ENV)
    settings = _load_file(path) if path else AppSettings()

    db_override = os.environ.get(DB_PATH_ENV)
    if db_override:
        settings = replace(settings, database=DatabaseSettings(path=db_override))
    return settings


def _load_file(path: str) -> AppSettings:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return AppSettings()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    unknown_keys = set(raw_config.keys()) - set(_SECTIONS)
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    sections = {
        name: _parse_section(name, raw_config[name])
        for name in _SECTIONS
        if name in raw_config
    }
    return AppSettings(**sections)


def _parse_section(name: str, data: Any):
    """Parse and validate one section.

    Args:
        name: Section name, used in error messages
        data: Raw section data

    Returns:
        The section's settings dataclass

    Raises:
        ValueError: If the section is invalid
    """
    settings_cls, allowed = _SECTIONS[name]
    if data is None:
        return settings_cls()
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")

    unknown_keys = set(data.keys()) - set(allowed)
    if unknown_keys:
        raise ValueError(f"Unknown keys in {name}: {unknown_keys}")

    values: Dict[str, Any] = {}
    for key, value in data.items():
        expected = allowed[key]
        # bool is an int subclass; never accept it for numeric fields
        if isinstance(value, bool) and expected is not bool:
            raise ValueError(f"'{key}' in {name} has an invalid type")
        if not isinstance(value, expected):
            raise ValueError(f"'{key}' in {name} has an invalid type")
        values[key] = value

    return settings_cls(**values)
