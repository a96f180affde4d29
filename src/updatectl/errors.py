"""Error taxonomy shared by the install workflow.

Precondition and backup failures propagate to the caller. Replace failures
are contained by the orchestrator and converted into a rollback. A restore
that fails after a replace failure is the one unrecoverable outcome and is
reported with its own type and exit code.
"""
from __future__ import annotations

from .exit_codes import ExitCode


class UpdateError(RuntimeError):
    """Base class for failures raised while installing an update."""

    exit_code: ExitCode = ExitCode.PROVIDER


class PreconditionError(UpdateError):
    """Raised before any mutation when the install inputs are unusable."""

    exit_code = ExitCode.VALIDATION


class InvalidArgumentError(PreconditionError):
    """Raised for malformed input such as a blank folder or bad process id."""

    exit_code = ExitCode.VALIDATION


class PathNotFoundError(PreconditionError):
    """Raised when the installation folder or staged package is missing."""

    exit_code = ExitCode.ENVIRONMENT


class ProcessNotFoundError(PreconditionError):
    """Raised when the target process id is not a live process."""

    exit_code = ExitCode.ENVIRONMENT


class BackupFailedError(UpdateError):
    """Raised when a snapshot cannot be captured; nothing was replaced."""

    exit_code = ExitCode.BACKUP


class ReplaceFailedError(UpdateError):
    """Raised when emptying or repopulating the installation folder fails."""

    exit_code = ExitCode.PROVIDER


class RestoreFailedError(UpdateError):
    """Raised when restoring the installation snapshot fails."""

    exit_code = ExitCode.RESTORE


class ProcessControlError(UpdateError):
    """Raised when the target process cannot be terminated."""

    exit_code = ExitCode.PROVIDER


class LaunchError(UpdateError):
    """Raised when the application cannot be started again."""

    exit_code = ExitCode.PROVIDER


__all__ = [
    "BackupFailedError",
    "InvalidArgumentError",
    "LaunchError",
    "PathNotFoundError",
    "PreconditionError",
    "ProcessControlError",
    "ProcessNotFoundError",
    "ReplaceFailedError",
    "RestoreFailedError",
    "UpdateError",
]
