"""Wrappers for running OS management utilities."""

from __future__ import annotations

import logging
import subprocess
from typing import Optional, Sequence

from pydantic import BaseModel

from ..constants import COMMAND_TIMEOUT_CODE, DEFAULT_COMMAND_TIMEOUT
from ..contracts import OperationResult

logger = logging.getLogger(__name__)


class CommandResult(BaseModel):
    """Return code and decoded output of a finished command."""

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def output(self) -> str:
        return self.stderr or self.stdout

    def to_operation(self, success_message: str = "") -> OperationResult:
        """Collapse into the structured result steps work with."""
        if self.timed_out:
            return OperationResult(code=COMMAND_TIMEOUT_CODE, message=self.stderr)
        if self.returncode == 0:
            return OperationResult(code=0, message=success_message or self.stdout)
        message = self.output or f"{self.args[0]} exited {self.returncode}"
        return OperationResult(code=self.returncode, message=message)


def run_command(
    args: Sequence[str],
    timeout: float = DEFAULT_COMMAND_TIMEOUT,
    input_text: Optional[str] = None,
) -> CommandResult:
    """Run a command and return its result.

    A command that outlives ``timeout`` is killed and reported with
    ``timed_out`` set and return code ``COMMAND_TIMEOUT_CODE``.
    """
    cmd = [str(a) for a in args]
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        proc = subprocess.run(
            cmd,
            input=input_text,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        logger.warning(f"Command timed out after {timeout}s: {' '.join(cmd)}")
        return CommandResult(
            args=cmd,
            returncode=COMMAND_TIMEOUT_CODE,
            stderr=f"Command timed out after {timeout}s",
            timed_out=True,
        )
    except FileNotFoundError:
        return CommandResult(
            args=cmd, returncode=127, stderr=f"{cmd[0]}: command not found"
        )

    if proc.returncode != 0:
        logger.debug(f"  exited {proc.returncode}: {' '.join(cmd)}")
    return CommandResult(
        args=cmd,
        returncode=proc.returncode,
        stdout=(proc.stdout or "").strip(),
        stderr=(proc.stderr or "").strip(),
    )
