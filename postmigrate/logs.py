"""Logging setup and per-run log files."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

PACKAGE_LOGGER = "postmigrate"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
CONSOLE_HANDLER = "postmigrate-console"


def configure_logging(verbose: bool = False, level: str = "INFO") -> None:
    """Console logging for CLI use.

    The package logger records at ``level`` so run log files get the full
    story; the console only shows warnings unless ``verbose``.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        if handler.get_name() == CONSOLE_HANDLER:
            package_logger.removeHandler(handler)

    console = logging.StreamHandler()
    console.set_name(CONSOLE_HANDLER)
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    package_logger.addHandler(console)
    package_logger.setLevel(
        logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    )


@contextmanager
def run_log_file(log_dir: Path, run_id: str) -> Iterator[Optional[Path]]:
    """Copy package log records into ``<log_dir>/<run_id>.log`` while active.

    Yields ``None`` when the directory cannot be created; the run still
    proceeds with console logging only.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    path = Path(log_dir) / f"{run_id}.log"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
    except OSError as exc:
        package_logger.warning(f"Could not open run log {path}: {exc}")
        yield None
        return

    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(logging.DEBUG)
    package_logger.addHandler(handler)
    try:
        yield path
    finally:
        package_logger.removeHandler(handler)
        handler.close()
