"""Durable, append-only storage of system snapshots."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from pydantic import BaseModel, ValidationError

from .constants import BACKUP_FORMAT_VERSION, BACKUP_SECTIONS, DRIVER_STORE_DIRNAME
from .contracts import BackupHandle, SystemSnapshot, utcnow
from .errors import BackupError, CorruptDataError, NotFoundError

logger = logging.getLogger(__name__)

MANIFEST = "manifest.json"
ID_FORMAT = "%Y%m%dT%H%M%S%fZ"
MAX_SAME_TICK = 99


class BackupManifest(BaseModel):
    """Metadata stored beside the snapshot sections."""

    id: str
    format_version: int = BACKUP_FORMAT_VERSION
    created_at: datetime
    captured_at: datetime
    hostname: str = ""
    platform: str = ""
    hypervisor: str = ""
    partial: bool = False
    errors: dict[str, str] = {}


class BackupStore:
    """One directory per snapshot, named by a timestamp-derived identifier.

    Identifiers sort in creation order. When the clock has not advanced past
    the newest existing identifier, a ``-NN`` suffix keeps them increasing.
    Existing directories are never overwritten.
    """

    def __init__(
        self, root: Path, clock: Callable[[], datetime] = utcnow
    ) -> None:
        self.root = Path(root)
        self._clock = clock

    # ------------------------------------------------------------------
    def _ids(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(
            p.name for p in self.root.iterdir() if p.is_dir() and not p.name.startswith(".")
        )

    def _next_id(self, now: datetime) -> str:
        base = now.astimezone(timezone.utc).strftime(ID_FORMAT)
        ids = self._ids()
        newest = ids[-1] if ids else ""
        if base > newest:
            return base
        # Same or earlier tick: derive from the newest id instead.
        stem, _, suffix = newest.partition("-")
        counter = int(suffix) + 1 if suffix.isdigit() else 1
        if counter > MAX_SAME_TICK:
            raise BackupError(f"Too many backups created at {stem}")
        return f"{stem}-{counter:02d}"

    def handle(self, backup_id: str) -> BackupHandle:
        path = self.root / backup_id
        manifest = path / MANIFEST
        if not manifest.exists():
            raise NotFoundError(f"Backup {backup_id} not found in {self.root}")
        try:
            created = BackupManifest.model_validate_json(manifest.read_text()).created_at
        except (OSError, ValidationError, ValueError) as exc:
            raise CorruptDataError(f"Backup {backup_id} manifest unreadable: {exc}")
        return BackupHandle(id=backup_id, path=path, created_at=created)

    # ------------------------------------------------------------------
    def save(self, snapshot: SystemSnapshot) -> BackupHandle:
        """Persist ``snapshot`` under a new identifier."""
        now = self._clock()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            backup_id = self._next_id(now)
            path = self.root / backup_id
            path.mkdir(exist_ok=False)
            data = snapshot.model_dump(mode="json")
            for section in BACKUP_SECTIONS:
                (path / f"{section}.json").write_text(
                    json.dumps(data[section], indent=2) + "\n"
                )
            manifest = BackupManifest(
                id=backup_id,
                created_at=now,
                captured_at=snapshot.captured_at,
                hostname=snapshot.hostname,
                platform=snapshot.platform,
                hypervisor=snapshot.hypervisor,
                partial=snapshot.partial,
                errors=snapshot.errors,
            )
            # Manifest last: a directory without one is an incomplete write.
            (path / MANIFEST).write_text(manifest.model_dump_json(indent=2) + "\n")
        except OSError as exc:
            raise BackupError(f"Could not write backup to {self.root}: {exc}") from exc
        logger.info(f"Saved backup {backup_id} to {path}")
        return BackupHandle(id=backup_id, path=path, created_at=now)

    def list_backups(self) -> list[BackupHandle]:
        """Return readable backups, newest first."""
        handles = []
        for backup_id in reversed(self._ids()):
            try:
                handles.append(self.handle(backup_id))
            except NotFoundError:
                continue
            except CorruptDataError as exc:
                logger.warning(str(exc))
        return handles

    def ids(self) -> list[str]:
        """Return every backup identifier, newest first."""
        return [i for i in reversed(self._ids()) if (self.root / i / MANIFEST).exists()]

    def latest(self) -> BackupHandle:
        for backup_id in self.ids():
            return self.handle(backup_id)
        raise NotFoundError(f"No backups in {self.root}")

    def get(self, backup_id: str) -> BackupHandle:
        return self.handle(backup_id)

    def load(self, handle: BackupHandle) -> SystemSnapshot:
        """Read a snapshot back.

        Raises:
            NotFoundError: the backup directory or its manifest is missing.
            CorruptDataError: the stored data is unreadable or invalid.
        """
        path = Path(handle.path)
        if not (path / MANIFEST).exists():
            raise NotFoundError(f"Backup {handle.id} not found at {path}")
        try:
            manifest = BackupManifest.model_validate_json((path / MANIFEST).read_text())
            data = {
                section: json.loads((path / f"{section}.json").read_text())
                for section in BACKUP_SECTIONS
            }
            return SystemSnapshot.model_validate(
                {
                    "captured_at": manifest.captured_at,
                    "hostname": manifest.hostname,
                    "platform": manifest.platform,
                    "hypervisor": manifest.hypervisor,
                    "partial": manifest.partial,
                    "errors": manifest.errors,
                    **data,
                }
            )
        except (OSError, ValueError, ValidationError) as exc:
            raise CorruptDataError(f"Backup {handle.id} is unreadable: {exc}") from exc

    def driver_store(self, handle: BackupHandle) -> Path:
        return Path(handle.path) / DRIVER_STORE_DIRNAME
