"""Exception hierarchy for postmigrate."""

from __future__ import annotations


class PostMigrateError(Exception):
    """Base class for all postmigrate errors."""


class PreconditionError(PostMigrateError):
    """The host is not in a state where cleanup may run.

    Raised before any mutation: not elevated, unsupported platform, still
    running on the source hypervisor or conflicting software installed.
    """


class BackupError(PostMigrateError):
    """A snapshot could not be written or read."""


class NotFoundError(BackupError):
    """The requested backup does not exist."""


class CorruptDataError(BackupError):
    """The backup exists but its data is unreadable or invalid."""


class SystemManagerError(PostMigrateError):
    """A query against the operating system management surface failed."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class CommandTimeoutError(SystemManagerError):
    """An external utility did not finish within the configured timeout."""


class RestoreMappingError(PostMigrateError):
    """A snapshot item has no live counterpart to restore onto."""

    def __init__(self, item: str, reason: str) -> None:
        super().__init__(f"{item}: {reason}")
        self.item = item
        self.reason = reason
