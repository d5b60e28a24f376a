"""System manager factory and initialization."""

from __future__ import annotations

import os
import sys
from typing import Optional

from ..config import PostMigrateConfig, load_config
from .base import SystemManager
from .inmemory import InMemorySystemManager

_system_instance: SystemManager | None = None


def resolve_backend(backend: str) -> str:
    backend = backend.lower()
    if backend != "auto":
        return backend
    if sys.platform == "win32":
        return "windows"
    if sys.platform.startswith("linux"):
        return "linux"
    return sys.platform


def get_system_manager(
    backend: Optional[str] = None, config: Optional[PostMigrateConfig] = None
) -> SystemManager:
    """Factory function to get the configured system manager.

    The in-memory backend returns a shared instance so tests can seed it
    through ``_system_instance`` before invoking the CLI.
    """

    global _system_instance
    config = config or load_config()
    backend = resolve_backend(
        backend or os.getenv("POSTMIGRATE_BACKEND") or config.backend
    )
    timeout = config.commands.timeout

    if backend == "inmemory":
        if _system_instance is None:
            _system_instance = InMemorySystemManager()
        return _system_instance
    elif backend == "windows":
        from .windows import WindowsSystemManager

        return WindowsSystemManager(timeout=timeout)
    elif backend == "linux":
        from .linux import LinuxSystemManager

        return LinuxSystemManager(timeout=timeout)
    else:
        raise ValueError(f"Unsupported system backend: {backend}")


__all__ = [
    "SystemManager",
    "InMemorySystemManager",
    "get_system_manager",
    "resolve_backend",
]
