"""Postmigrate: declarative cleanup of VMs moved off VMware."""

from .backup import BackupStore
from .config import MatchRules, PostMigrateConfig, load_config
from .confirm import ConfirmationGate
from .contracts import (
    RunStatus,
    Step,
    StepOutcome,
    StepResult,
    SystemSnapshot,
    WorkflowRun,
    WorkflowState,
)
from .executor import StepExecutor
from .history import get_repository
from .inventory import InventoryProbe
from .restore import RestoreEngine
from .sequencer import WorkflowSequencer
from .systems import get_system_manager
from .tasks import TASKS, resolve_tasks

__version__ = "0.1.0"
__all__ = [
    "BackupStore",
    "ConfirmationGate",
    "InventoryProbe",
    "MatchRules",
    "PostMigrateConfig",
    "RestoreEngine",
    "RunStatus",
    "Step",
    "StepExecutor",
    "StepOutcome",
    "StepResult",
    "SystemSnapshot",
    "TASKS",
    "WorkflowRun",
    "WorkflowSequencer",
    "WorkflowState",
    "get_repository",
    "get_system_manager",
    "load_config",
    "resolve_tasks",
]
