"""Replace the contents of the installation folder with the staged package."""
from __future__ import annotations

import logging
from pathlib import Path

from .errors import ReplaceFailedError
from .folders import AppFolders
from .platform import PlatformInfo
from .providers.disk import DiskProvider, TransferMode

LOGGER = logging.getLogger(__name__)


class InstallTransferExecutor:
    """Empty the installation folder and copy the staged package into it.

    Callers must hold a verified backup before :meth:`replace` runs; emptying
    the folder is the point of no return.
    """

    def __init__(
        self,
        disk: DiskProvider,
        folders: AppFolders,
        platform: PlatformInfo,
        *,
        executable: str,
        executable_mode: int = 0o755,
    ) -> None:
        """Initialise the executor with its collaborators and fixup settings."""
        self.disk = disk
        self.folders = folders
        self.platform = platform
        self.executable = executable
        self.executable_mode = executable_mode

    def replace(self, installation_folder: Path) -> None:
        """Swap the installation folder contents for the staged package."""
        target = Path(installation_folder)
        try:
            LOGGER.info("Emptying installation folder")
            self.disk.empty_folder(target)

            LOGGER.info("Copying new files to target folder")
            self.disk.transfer_folder(
                self.folders.update_package,
                target,
                TransferMode.COPY,
                overwrite=False,
            )

            self._apply_fixups(target)
        except Exception as exc:
            raise ReplaceFailedError(
                f"Failed to copy upgrade package to {target}: {exc}"
            ) from exc

    def _apply_fixups(self, target: Path) -> None:
        if not self.platform.requires_executable_bit:
            return
        executable = target / self.executable
        if not executable.is_file():
            LOGGER.warning("Executable %s not found in package; skipping chmod", executable)
            return
        LOGGER.info("Setting executable flag on %s", executable)
        self.disk.set_permissions(executable, self.executable_mode)


__all__ = ["InstallTransferExecutor"]
