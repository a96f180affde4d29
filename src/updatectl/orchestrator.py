"""Install one staged update package over a live installation.

The run moves through a fixed sequence of states::

    VERIFYING -> STOPPING_PROCESS -> BACKING_UP -> REPLACING
              -> SUCCEEDED | ROLLED_BACK -> RESUMING -> DONE

Verification failures abort before anything else happens. Once past
verification the resume phase always runs exactly once and last, whether the
replace succeeded, was rolled back, or the run is failing with a backup or
restore error.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .backups import BackupManager, BackupSnapshot
from .errors import (
    BackupFailedError,
    InvalidArgumentError,
    ProcessNotFoundError,
    ReplaceFailedError,
    RestoreFailedError,
)
from .locking import LockManager
from .logging import OperationScope
from .process_control import ProcessController
from .providers.app_type import ApplicationKind, AppTypeDetector
from .providers.process import ProcessProvider
from .restart import RestartOutcome, RestartStrategy
from .transfer import InstallTransferExecutor
from .verify import PreconditionVerifier

LOGGER = logging.getLogger(__name__)


class InstallState(Enum):
    """States of a single install run."""

    VERIFYING = "verifying"
    STOPPING_PROCESS = "stopping-process"
    BACKING_UP = "backing-up"
    REPLACING = "replacing"
    SUCCEEDED = "succeeded"
    ROLLED_BACK = "rolled-back"
    RESUMING = "resuming"
    DONE = "done"


class InstallPath(Enum):
    """Which branch the replace phase ended in."""

    SUCCEEDED = "succeeded"
    ROLLED_BACK = "rolled-back"


@dataclass(frozen=True, slots=True)
class InstallRequest:
    """Inputs to one install run."""

    installation_folder: Path
    process_id: int


@dataclass(slots=True)
class InstallResult:
    """Terminal record of a completed install run."""

    request: InstallRequest
    path: InstallPath
    restart: RestartOutcome
    app_kind: ApplicationKind
    states: list[InstallState] = field(default_factory=list)
    snapshots: list[BackupSnapshot] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable summary."""
        return {
            "installation_folder": str(self.request.installation_folder),
            "process_id": self.request.process_id,
            "path": self.path.value,
            "restart": self.restart.value,
            "app_kind": self.app_kind.value,
            "states": [state.value for state in self.states],
            "snapshots": [snapshot.id for snapshot in self.snapshots],
            "error": self.error,
        }


@dataclass(slots=True)
class _RunState:
    states: list[InstallState] = field(default_factory=list)
    snapshots: list[BackupSnapshot] = field(default_factory=list)
    install_snapshot: BackupSnapshot | None = None
    error: str | None = None


class InstallOrchestrator:
    """Sequence verification, backup, replace and resume for one install."""

    def __init__(
        self,
        *,
        verifier: PreconditionVerifier,
        detector: AppTypeDetector,
        controller: ProcessController,
        backups: BackupManager,
        transfer: InstallTransferExecutor,
        strategy: RestartStrategy,
        locks: LockManager,
    ) -> None:
        """Initialise the orchestrator with every collaborator of the run."""
        self.verifier = verifier
        self.detector = detector
        self.controller = controller
        self.backups = backups
        self.transfer = transfer
        self.strategy = strategy
        self.locks = locks

    def install(
        self,
        installation_folder: str | Path,
        process_id: int,
        *,
        op: OperationScope | None = None,
    ) -> InstallResult:
        """Install the staged package into *installation_folder*.

        Precondition, backup and restore failures raise. A failed replace is
        rolled back and reported through :attr:`InstallResult.path`.
        """
        run = _RunState()
        self._enter(run, InstallState.VERIFYING, op)
        self.verifier.verify(installation_folder, process_id)
        request = InstallRequest(
            installation_folder=Path(str(installation_folder)).expanduser(),
            process_id=process_id,
        )

        kind = self.detector.get_app_type()
        if op is not None:
            op.add_step("detect.app_type", status="info", detail=kind.value)

        with self.locks.install_lock(request.installation_folder) as lock:
            if op is not None:
                op.set_lock_wait_ms(lock.wait_ms)
            path, restart = self._run_locked(request, kind, run, op)

        self._enter(run, InstallState.DONE, op)
        return InstallResult(
            request=request,
            path=path,
            restart=restart,
            app_kind=kind,
            states=list(run.states),
            snapshots=list(run.snapshots),
            error=run.error,
        )

    # ------------------------------------------------------------------
    def _run_locked(
        self,
        request: InstallRequest,
        kind: ApplicationKind,
        run: _RunState,
        op: OperationScope | None,
    ) -> tuple[InstallPath, RestartOutcome]:
        try:
            self._stop_process(request, kind, run, op)
            self._back_up(request, run, op)
            path = self._replace(request, run, op)
        except BaseException as exc:
            self._resume_after_failure(request, kind, run, op, exc)
            raise
        return path, self._resume(request, kind, run, op)

    def _resume(
        self,
        request: InstallRequest,
        kind: ApplicationKind,
        run: _RunState,
        op: OperationScope | None,
    ) -> RestartOutcome:
        self._enter(run, InstallState.RESUMING, op)
        restart = self.strategy.resume(request.installation_folder, request.process_id, kind)
        if op is not None:
            op.add_step("resume", status="success", detail=restart.value)
        return restart

    def _resume_after_failure(
        self,
        request: InstallRequest,
        kind: ApplicationKind,
        run: _RunState,
        op: OperationScope | None,
        failure: BaseException,
    ) -> None:
        try:
            self._resume(request, kind, run, op)
        except Exception as resume_exc:
            # The original failure is the one the caller needs to see.
            LOGGER.error(
                "Failed to restart application after aborted install (%s): %s",
                type(failure).__name__,
                resume_exc,
            )
            if op is not None:
                op.add_step("resume", status="error", detail=str(resume_exc))

    def _stop_process(
        self,
        request: InstallRequest,
        kind: ApplicationKind,
        run: _RunState,
        op: OperationScope | None,
    ) -> None:
        self._enter(run, InstallState.STOPPING_PROCESS, op)
        if not self.strategy.terminates_before_replace:
            LOGGER.info("Deferring termination of %s until after the install", request.process_id)
            if op is not None:
                op.add_step("process.terminate", status="skipped", detail="deferred")
            return
        self.controller.terminate(
            request.process_id,
            stop_service=kind is ApplicationKind.SERVICE,
        )
        if op is not None:
            op.add_step("process.terminate", status="success", detail=str(request.process_id))

    def _back_up(self, request: InstallRequest, run: _RunState, op: OperationScope | None) -> None:
        self._enter(run, InstallState.BACKING_UP, op)
        try:
            run.install_snapshot = self.backups.backup(request.installation_folder)
            run.snapshots.append(run.install_snapshot)
            app_data = self.backups.backup_app_data()
        except BackupFailedError as exc:
            LOGGER.error("Backup failed, aborting install: %s", exc)
            if op is not None:
                op.add_step("backup", status="error", detail=str(exc))
            raise
        if app_data is not None:
            run.snapshots.append(app_data)
        if op is not None:
            op.add_step(
                "backup",
                status="success",
                detail=", ".join(snapshot.id for snapshot in run.snapshots),
            )

    def _replace(
        self,
        request: InstallRequest,
        run: _RunState,
        op: OperationScope | None,
    ) -> InstallPath:
        self._enter(run, InstallState.REPLACING, op)
        try:
            self.transfer.replace(request.installation_folder)
        except ReplaceFailedError as exc:
            LOGGER.critical("Failed to copy upgrade package to target folder.", exc_info=exc)
            run.error = str(exc)
            if op is not None:
                op.add_step("replace", status="error", detail=str(exc))
            try:
                snapshot = self.backups.restore(
                    request.installation_folder,
                    run.install_snapshot,
                )
            except RestoreFailedError as restore_exc:
                LOGGER.critical(
                    "Rollback failed; installation folder %s may be empty or partial: %s",
                    request.installation_folder,
                    restore_exc,
                )
                if op is not None:
                    op.add_step("restore", status="error", detail=str(restore_exc))
                raise
            if op is not None:
                op.add_step("restore", status="success", detail=snapshot.id)
            self._enter(run, InstallState.ROLLED_BACK, op)
            return InstallPath.ROLLED_BACK

        if op is not None:
            op.add_step("replace", status="success", detail=str(request.installation_folder))
        self._enter(run, InstallState.SUCCEEDED, op)
        return InstallPath.SUCCEEDED

    @staticmethod
    def _enter(run: _RunState, state: InstallState, op: OperationScope | None) -> None:
        run.states.append(state)
        LOGGER.debug("Install state -> %s", state.value)
        if op is not None:
            op.add_step(f"state.{state.value}", status="info")


def resolve_installation_folder(processes: ProcessProvider, process_id: int) -> Path:
    """Return the folder holding the executable of the running *process_id*."""
    if process_id < 1:
        raise InvalidArgumentError(f"Invalid process ID: {process_id}")
    handle = processes.get_process(process_id)
    if handle is None:
        raise ProcessNotFoundError(f"Process with ID doesn't exist {process_id}")
    if handle.exe is None:
        raise InvalidArgumentError(
            f"Unable to determine the installation folder of process {process_id}; "
            "pass it explicitly."
        )
    return handle.exe.parent


__all__ = [
    "InstallOrchestrator",
    "InstallPath",
    "InstallRequest",
    "InstallResult",
    "InstallState",
    "resolve_installation_folder",
]
