"""Core data contracts for postmigrate workflows."""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import (
    COMMAND_TIMEOUT_CODE,
    REBOOT_REQUIRED_CODES,
)

_MAC_DIGITS = re.compile(r"[^0-9A-Fa-f]")


def normalize_mac(value: str) -> str:
    """Return ``value`` as upper-case colon separated MAC address."""
    digits = _MAC_DIGITS.sub("", value or "")
    if len(digits) != 12:
        return (value or "").upper()
    return ":".join(digits[i : i + 2] for i in range(0, 12, 2)).upper()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True)


# ----------------------------------------------------------------------
# Snapshot sections


class DeviceRecord(_Record):
    """A device known to the OS device manager."""

    instance_id: str
    name: str = ""
    device_class: Optional[str] = None
    present: bool = True
    hardware_ids: tuple[str, ...] = ()
    driver_inf: Optional[str] = None


class IpAddress(_Record):
    address: str
    prefix_length: int


class NetworkInterface(_Record):
    """Addressing of a single network adapter."""

    id: str
    name: str
    mac: str = ""
    addresses: tuple[IpAddress, ...] = ()
    gateway: Optional[str] = None
    dns_servers: tuple[str, ...] = ()
    dhcp: bool = True

    @field_validator("mac")
    @classmethod
    def _normalize_mac(cls, v: str) -> str:
        return normalize_mac(v) if v else ""


class DriverPackage(_Record):
    """A third-party package in the driver store."""

    published_name: str
    original_name: str = ""
    provider: str = ""
    device_class: Optional[str] = None
    version: Optional[str] = None


class InstalledSoftware(_Record):
    """An entry from the installed-software registry."""

    name: str
    version: Optional[str] = None
    product_code: Optional[str] = None
    uninstall_command: Optional[str] = None
    quiet_uninstall_command: Optional[str] = None


class PartitionRecord(_Record):
    partition_id: str
    number: int
    drive_letter: Optional[str] = None
    size: int = 0


class DiskRecord(_Record):
    number: int
    name: str = ""
    offline: bool = False
    read_only: bool = False
    partitions: tuple[PartitionRecord, ...] = ()


class SystemSnapshot(_Record):
    """Point-in-time record of devices, drivers, network and storage."""

    captured_at: datetime = Field(default_factory=utcnow)
    hostname: str = ""
    platform: str = ""
    hypervisor: str = ""
    devices: tuple[DeviceRecord, ...] = ()
    drivers: tuple[DriverPackage, ...] = ()
    network: tuple[NetworkInterface, ...] = ()
    software: tuple[InstalledSoftware, ...] = ()
    disks: tuple[DiskRecord, ...] = ()
    partial: bool = False
    errors: dict[str, str] = Field(default_factory=dict)

    def non_present_devices(self) -> list[DeviceRecord]:
        return [d for d in self.devices if not d.present]


# ----------------------------------------------------------------------
# Execution


class OperationResult(_Record):
    """Structured outcome of one call into an OS management utility."""

    code: int
    message: str = ""

    @classmethod
    def ok(cls, message: str = "") -> "OperationResult":
        return cls(code=0, message=message)

    @property
    def succeeded(self) -> bool:
        return self.code == 0 or self.code in REBOOT_REQUIRED_CODES

    @property
    def timed_out(self) -> bool:
        return self.code == COMMAND_TIMEOUT_CODE


class StepOutcome(str, Enum):
    SUCCESS = "success"
    SUCCESS_REBOOT_REQUIRED = "success_reboot_required"
    SKIPPED = "skipped"
    FAILED = "failed"
    PLANNED = "planned"


class StepContext(BaseModel):
    """What a step's predicate and action get to look at."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    system: Any
    snapshot: SystemSnapshot
    config: Any = None


class Step(BaseModel):
    """A named, stateless unit of mutation."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    description: str = ""
    predicate: Callable[[StepContext], bool]
    action: Callable[[StepContext], OperationResult]
    idempotent: bool = True
    destructive: bool = True
    confirmations: int = Field(default=1, ge=1, le=2)


class StepResult(_Record):
    step: str
    outcome: StepOutcome
    detail: str = ""
    code: Optional[int] = None

    @property
    def failed(self) -> bool:
        return self.outcome is StepOutcome.FAILED


class BackupHandle(_Record):
    id: str
    path: Path
    created_at: datetime


class WorkflowState(str, Enum):
    INIT = "init"
    SCANNING = "scanning"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    BACKING_UP = "backing_up"
    EXECUTING = "executing"
    REPORTING = "reporting"
    DONE = "done"
    ABORTED = "aborted"


class RunStatus(str, Enum):
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    NOTHING_TO_DO = "nothing_to_do"
    DRY_RUN = "dry_run"
    ABORTED_BY_OPERATOR = "aborted_by_operator"
    ABORTED_PRECONDITION = "aborted_precondition"
    ABORTED_BACKUP_FAILED = "aborted_backup_failed"


class WorkflowRun(BaseModel):
    """Record of one sequencer or restore run."""

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow: str
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    dry_run: bool = False
    unattended: bool = False
    state: WorkflowState = WorkflowState.INIT
    transitions: list[WorkflowState] = Field(
        default_factory=lambda: [WorkflowState.INIT]
    )
    status: Optional[RunStatus] = None
    results: list[StepResult] = Field(default_factory=list)
    backup: Optional[BackupHandle] = None
    unmapped: list[str] = Field(default_factory=list)
    events: list[str] = Field(default_factory=list)
    message: Optional[str] = None

    def transition(self, state: WorkflowState) -> None:
        self.state = state
        self.transitions.append(state)

    def record(self, result: StepResult) -> None:
        self.results.append(result)

    @property
    def has_failures(self) -> bool:
        return any(r.failed for r in self.results)

    @property
    def reboot_required(self) -> bool:
        return any(
            r.outcome is StepOutcome.SUCCESS_REBOOT_REQUIRED for r in self.results
        )

    def finalize(self, status: RunStatus, message: Optional[str] = None) -> None:
        self.status = status
        if message:
            self.message = message
        self.finished_at = utcnow()

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "WorkflowRun":
        return cls.model_validate_json(data)
