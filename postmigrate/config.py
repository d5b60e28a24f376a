from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_DEVICE_HARDWARE_IDS,
    DEFAULT_DEVICE_NAME_PATTERNS,
    DEFAULT_DRIVER_NAME_EXCLUDES,
    DEFAULT_DRIVER_NAME_KEYWORDS,
    DEFAULT_DRIVER_PROVIDERS,
    DEFAULT_SOFTWARE_NAMES,
    DEFAULT_SOURCE_HYPERVISORS,
)

Backend = Literal["auto", "windows", "linux", "inmemory"]


def _state_root() -> Path:
    if sys.platform == "win32":
        return Path(os.getenv("ProgramData", r"C:\ProgramData")) / "postmigrate"
    return Path("/var/lib/postmigrate")


def _default_backup_dir() -> Path:
    return _state_root() / "backups"


def _default_log_dir() -> Path:
    if sys.platform == "win32":
        return _state_root() / "logs"
    return Path("/var/log/postmigrate")


class MatchRules(BaseModel):
    """Patterns deciding which devices, drivers and software are stale.

    Glob patterns are matched case-insensitively against the whole value;
    keywords are case-insensitive substrings. A driver whose name matches a
    ``driver_name_excludes`` glob is never stale, whatever else it matches.
    """

    device_name_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DEVICE_NAME_PATTERNS)
    )
    device_hardware_ids: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DEVICE_HARDWARE_IDS)
    )
    driver_providers: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DRIVER_PROVIDERS)
    )
    driver_name_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DRIVER_NAME_KEYWORDS)
    )
    driver_name_excludes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DRIVER_NAME_EXCLUDES)
    )
    software_names: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SOFTWARE_NAMES)
    )
    source_hypervisors: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SOURCE_HYPERVISORS)
    )


class BackupConfig(BaseModel):
    directory: Path = Field(default_factory=_default_backup_dir)
    export_drivers: bool = True


class LoggingConfig(BaseModel):
    directory: Path = Field(default_factory=_default_log_dir)
    level: str = "INFO"


class CommandConfig(BaseModel):
    timeout: float = DEFAULT_COMMAND_TIMEOUT


class HistoryConfig(BaseModel):
    database_url: Optional[str] = None


class PostMigrateConfig(BaseModel):
    """Top-level configuration model."""

    backend: Backend = "auto"
    match: MatchRules = Field(default_factory=MatchRules)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    commands: CommandConfig = Field(default_factory=CommandConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)


def load_config(path: Optional[str | Path] = None) -> PostMigrateConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to POSTMIGRATE_CONFIG env
            variable or 'postmigrate.yaml' in the current directory.
    """

    config_path = path or os.getenv("POSTMIGRATE_CONFIG", "postmigrate.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = PostMigrateConfig(**data)
    else:
        config = PostMigrateConfig()

    if os.getenv("POSTMIGRATE_BACKUP_DIR"):
        config.backup.directory = Path(os.environ["POSTMIGRATE_BACKUP_DIR"])
    if os.getenv("POSTMIGRATE_LOG_DIR"):
        config.logging.directory = Path(os.environ["POSTMIGRATE_LOG_DIR"])
    if os.getenv("POSTMIGRATE_BACKEND"):
        config.backend = os.environ["POSTMIGRATE_BACKEND"]
    env_db_url = os.getenv("POSTMIGRATE_DATABASE_URL")
    if env_db_url:
        config.history.database_url = env_db_url
    return config
