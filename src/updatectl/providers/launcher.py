"""Start the application again from its installation folder."""
from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Sequence
from pathlib import Path

from ..errors import LaunchError
from .app_type import ApplicationKind
from .services import ServiceError, ServiceProvider

LOGGER = logging.getLogger(__name__)


class AppLauncher:
    """Launch the application according to its :class:`ApplicationKind`."""

    def __init__(
        self,
        services: ServiceProvider,
        *,
        executable: str,
        console_executable: str,
        launch_args: Sequence[str] = (),
    ) -> None:
        """Initialise the launcher with executable names and arguments."""
        self.services = services
        self.executable = executable
        self.console_executable = console_executable
        self.launch_args = list(launch_args)

    def start(self, kind: ApplicationKind, folder: Path) -> None:
        """Start the application of *kind* installed in *folder*."""
        if kind is ApplicationKind.SERVICE:
            LOGGER.info("Starting service %s", self.services.service_name)
            try:
                self.services.start()
            except ServiceError as exc:
                raise LaunchError(f"Failed to start service: {exc}") from exc
            return

        name = self.executable if kind is ApplicationKind.TRAY else self.console_executable
        self._spawn(Path(folder) / name)

    def _spawn(self, executable: Path) -> None:
        if not executable.is_file():
            raise LaunchError(f"Application executable not found: {executable}")
        cmd = [str(executable), *self.launch_args]
        LOGGER.info("Starting %s", " ".join(cmd))
        try:
            self._run_detached(cmd, cwd=executable.parent)
        except OSError as exc:
            raise LaunchError(f"Failed to start {executable}: {exc}") from exc

    def _run_detached(self, cmd: Sequence[str], *, cwd: Path) -> subprocess.Popen[bytes]:
        """Spawn *cmd* detached from the updater (isolated for testing)."""
        kwargs: dict[str, object] = {
            "cwd": str(cwd),
            "stdin": subprocess.DEVNULL,
            "stdout": subprocess.DEVNULL,
            "stderr": subprocess.DEVNULL,
        }
        if os.name == "nt":
            kwargs["creationflags"] = (
                subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
            )
        else:
            kwargs["start_new_session"] = True
        return subprocess.Popen(list(cmd), **kwargs)  # noqa: S603


__all__ = ["AppLauncher"]
