"""Capture live system state into a snapshot."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from .config import MatchRules
from .contracts import SystemSnapshot
from .errors import SystemManagerError
from .systems.base import SystemManager

logger = logging.getLogger(__name__)


class InventoryProbe:
    """Reads devices, drivers, network, software and disks without side effects.

    A section whose query fails is left empty, its error is recorded and the
    snapshot is flagged partial; the remaining sections are still captured.
    """

    def __init__(
        self,
        system: SystemManager,
        match: Optional[MatchRules] = None,
        logger: logging.Logger = logger,
    ) -> None:
        self.system = system
        self.match = match or MatchRules()
        self._logger = logger

    def _section(self, name: str, query: Callable[[], Iterable], errors: dict) -> tuple:
        try:
            return tuple(query())
        except (SystemManagerError, OSError, ValueError) as exc:
            self._logger.warning(f"Could not read {name}: {exc}")
            errors[name] = str(exc)
            return ()

    def _fact(self, name: str, query: Callable[[], str], errors: dict) -> str:
        try:
            return query()
        except (SystemManagerError, OSError) as exc:
            self._logger.warning(f"Could not read {name}: {exc}")
            errors[name] = str(exc)
            return ""

    def capture(self) -> SystemSnapshot:
        errors: dict[str, str] = {}
        snapshot = SystemSnapshot(
            hostname=self._fact("hostname", self.system.hostname, errors),
            platform=self.system.platform,
            hypervisor=self._fact("hypervisor", self.system.hypervisor, errors),
            devices=self._section("devices", self.system.list_devices, errors),
            drivers=self._section("drivers", self.system.list_driver_packages, errors),
            network=self._section("network", self.system.list_interfaces, errors),
            software=self._section(
                "software",
                lambda: self.system.list_software(self.match.software_names),
                errors,
            ),
            disks=self._section("disks", self.system.list_disks, errors),
            partial=bool(errors),
            errors=errors,
        )
        self._logger.info(
            f"Captured inventory of {snapshot.hostname or 'host'}: "
            f"{len(snapshot.devices)} devices "
            f"({len(snapshot.non_present_devices())} non-present), "
            f"{len(snapshot.drivers)} driver packages, "
            f"{len(snapshot.network)} interfaces, {len(snapshot.disks)} disks"
            + (" [partial]" if snapshot.partial else "")
        )
        return snapshot
