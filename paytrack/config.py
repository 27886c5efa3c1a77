"""Configuration loading for paytrack.

Settings come from a TOML file, then environment variables override the
connection settings so secrets can stay out of the file::

    [remote]
    url = "https://xyzcompany.supabase.co"
    api_key = "..."
    user_id = "..."

    [sync]
    retry_attempts = 3
    backoff_seconds = 0.5

    [storage]
    data_dir = "~/.local/share/paytrack"

    [logging]
    level = "INFO"
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.config/paytrack/config.toml").expanduser()
DEFAULT_DATA_DIR = Path("~/.local/share/paytrack").expanduser()

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "PAYTRACK_REMOTE_URL": ("remote", "url"),
    "PAYTRACK_REMOTE_API_KEY": ("remote", "api_key"),
    "PAYTRACK_ACCESS_TOKEN": ("remote", "access_token"),
    "PAYTRACK_USER_ID": ("remote", "user_id"),
    "PAYTRACK_DATA_DIR": ("storage", "data_dir"),
}


class ConfigError(Exception):
    """Configuration file could not be read or is invalid."""


@dataclass
class RemoteConfig:
    """Remote payment store connection settings."""

    url: str = ""
    api_key: str = ""
    access_token: str = ""
    user_id: str = ""
    table: str = "payments"
    timeout_seconds: float = 15.0

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.api_key)


@dataclass
class SyncConfig:
    """Retry policy for remote calls."""

    retry_attempts: int = 3
    backoff_seconds: float = 0.5
    max_backoff_seconds: float = 8.0
    sync_on_start: bool = True


@dataclass
class StorageConfig:
    data_dir: Path = DEFAULT_DATA_DIR
    db_name: str = "paytrack.db"


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file_name: str = "paytrack.log"
    max_bytes: int = 1_000_000
    backup_count: int = 3


@dataclass
class Config:
    """Top-level application configuration."""

    remote: RemoteConfig = field(default_factory=RemoteConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def data_dir(self) -> Path:
        return self.storage.data_dir

    @property
    def db_path(self) -> Path:
        return self.storage.data_dir / self.storage.db_name

    @property
    def log_path(self) -> Path:
        return self.storage.data_dir / self.logging.file_name


def _apply_env_overrides(data: dict[str, dict[str, Any]]) -> None:
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            data.setdefault(section, {})[key] = value


def _build_section(cls: type, values: dict[str, Any], section: str) -> Any:
    known = set(cls.__dataclass_fields__)
    unknown = set(values) - known
    if unknown:
        logger.warning("Ignoring unknown keys in [%s]: %s", section, ", ".join(sorted(unknown)))
    try:
        return cls(**{k: v for k, v in values.items() if k in known})
    except TypeError as e:
        raise ConfigError(f"Invalid [{section}] section: {e}") from e


def load_config(path: Optional[Path] = None) -> Config:
    """Load configuration from a TOML file plus environment overrides.

    Args:
        path: Config file path. Defaults to DEFAULT_CONFIG_PATH; a missing
            file yields the defaults.

    Returns:
        Config instance.

    Raises:
        ConfigError: If the file exists but is not valid TOML.
    """
    config_path = path or DEFAULT_CONFIG_PATH
    data: dict[str, dict[str, Any]] = {}
    if config_path.exists():
        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e
        logger.debug("Loaded config from %s", config_path)
    else:
        logger.debug("No config file at %s, using defaults", config_path)

    _apply_env_overrides(data)

    storage_values = dict(data.get("storage", {}))
    if "data_dir" in storage_values:
        storage_values["data_dir"] = Path(str(storage_values["data_dir"])).expanduser()

    sync_values = dict(data.get("sync", {}))
    for key, cast in (("retry_attempts", int), ("backoff_seconds", float)):
        if key in sync_values:
            try:
                sync_values[key] = cast(sync_values[key])
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Invalid [sync] {key} {sync_values[key]!r}: {e}") from e

    return Config(
        remote=_build_section(RemoteConfig, data.get("remote", {}), "remote"),
        sync=_build_section(SyncConfig, sync_values, "sync"),
        storage=_build_section(StorageConfig, storage_values, "storage"),
        logging=_build_section(LoggingConfig, data.get("logging", {}), "logging"),
    )
