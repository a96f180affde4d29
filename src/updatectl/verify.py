"""Checks that must pass before an install touches anything."""
from __future__ import annotations

import logging
from pathlib import Path

from .errors import InvalidArgumentError, PathNotFoundError, ProcessNotFoundError
from .folders import AppFolders
from .providers.process import ProcessProvider

LOGGER = logging.getLogger(__name__)


class PreconditionVerifier:
    """Validate install inputs and environment without side effects."""

    def __init__(self, processes: ProcessProvider, folders: AppFolders) -> None:
        """Initialise the verifier with its collaborators."""
        self.processes = processes
        self.folders = folders

    def verify(self, installation_folder: str | Path | None, process_id: object) -> None:
        """Raise the error matching the first violated precondition."""
        LOGGER.info("Verifying requirements before update...")

        if installation_folder is None or not str(installation_folder).strip():
            raise InvalidArgumentError("Target folder can not be null or empty")

        target = Path(str(installation_folder)).expanduser()
        if not target.is_dir():
            raise PathNotFoundError(f"Target folder doesn't exist {target}")

        if isinstance(process_id, bool) or not isinstance(process_id, int) or process_id < 1:
            raise InvalidArgumentError(f"Invalid process ID: {process_id}")

        if not self.processes.exists(process_id):
            raise ProcessNotFoundError(f"Process with ID doesn't exist {process_id}")

        LOGGER.info("Verifying update package folder")
        package = self.folders.update_package
        if not package.is_dir():
            raise PathNotFoundError(f"Update folder doesn't exist {package}")


__all__ = ["PreconditionVerifier"]
