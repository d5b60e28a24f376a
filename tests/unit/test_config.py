"""Tests for configuration loading."""

from pathlib import Path

import pytest

from postmigrate.config import PostMigrateConfig, load_config
from postmigrate.history import get_repository
from postmigrate.history.sqlite import SQLiteRunRepository
from postmigrate.systems import InMemorySystemManager, get_system_manager, resolve_backend


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "POSTMIGRATE_CONFIG",
        "POSTMIGRATE_BACKUP_DIR",
        "POSTMIGRATE_LOG_DIR",
        "POSTMIGRATE_BACKEND",
        "POSTMIGRATE_DATABASE_URL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
backend: inmemory
match:
  driver_name_keywords: [vmxnet, svga]
backup:
  directory: /srv/backups
  export_drivers: false
commands:
  timeout: 30
"""
    )
    monkeypatch.setenv("POSTMIGRATE_CONFIG", str(config_path))

    config = load_config()
    assert config.backend == "inmemory"
    assert config.match.driver_name_keywords == ["vmxnet", "svga"]
    assert config.match.driver_providers == ["VMware*"]
    assert config.backup.directory == Path("/srv/backups")
    assert config.backup.export_drivers is False
    assert config.commands.timeout == 30


def test_missing_file_yields_defaults(tmp_path, monkeypatch):
    config = load_config(tmp_path / "absent.yaml")

    assert config == PostMigrateConfig()
    assert "vm3d" in config.match.driver_name_keywords


def test_environment_overrides_file(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("backup:\n  directory: /from/file\n")
    monkeypatch.setenv("POSTMIGRATE_BACKUP_DIR", str(tmp_path / "env-backups"))
    monkeypatch.setenv("POSTMIGRATE_LOG_DIR", str(tmp_path / "env-logs"))
    monkeypatch.setenv("POSTMIGRATE_BACKEND", "inmemory")

    config = load_config(config_path)
    assert config.backup.directory == tmp_path / "env-backups"
    assert config.logging.directory == tmp_path / "env-logs"
    assert config.backend == "inmemory"


def test_get_repository_uses_config(tmp_path, monkeypatch):
    monkeypatch.setattr("postmigrate.history._repository_instance", None)
    config = PostMigrateConfig()
    config.logging.directory = tmp_path / "logs"

    repo = get_repository(config=config)
    assert isinstance(repo, SQLiteRunRepository)
    assert repo.db_path == str(tmp_path / "logs" / "history.db")
    repo.close()


def test_get_system_manager_selects_backend(monkeypatch):
    monkeypatch.setattr("postmigrate.systems._system_instance", None)
    config = PostMigrateConfig(backend="inmemory")

    first = get_system_manager(config=config)
    assert isinstance(first, InMemorySystemManager)
    assert get_system_manager(config=config) is first
    assert resolve_backend("Windows") == "windows"
