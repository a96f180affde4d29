"""Bring the application back after an install attempt.

Two strategies exist and exactly one is chosen per run:

* :class:`DirectLaunchStrategy` stops the process before the files are
  replaced and launches the new binary itself afterwards.
* :class:`SupervisedRestartStrategy` leaves the process running during the
  replace, terminates it afterwards and waits a bounded time for an external
  supervisor to restart it, launching directly if nothing shows up.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from .config import RestartConfig
from .platform import PlatformInfo
from .process_control import ProcessController
from .providers.app_type import ApplicationKind
from .providers.launcher import AppLauncher

LOGGER = logging.getLogger(__name__)

DIRECT = "direct"
SUPERVISED = "supervised"


class RestartOutcome(Enum):
    """How the application came back after the install attempt."""

    LAUNCHED_DIRECTLY = "launched-directly"
    EXTERNALLY_RESTARTED = "externally-restarted"


class RestartStrategy:
    """Base class for restart strategies."""

    name = ""
    terminates_before_replace = False

    def __init__(self, controller: ProcessController, launcher: AppLauncher) -> None:
        """Initialise the strategy with its collaborators."""
        self.controller = controller
        self.launcher = launcher

    def resume(
        self,
        installation_folder: Path,
        process_id: int,
        kind: ApplicationKind,
    ) -> RestartOutcome:
        """Make sure the application is running again."""
        raise NotImplementedError


class DirectLaunchStrategy(RestartStrategy):
    """Launch the application from the installation folder once."""

    name = DIRECT
    terminates_before_replace = True

    def resume(
        self,
        installation_folder: Path,
        process_id: int,
        kind: ApplicationKind,
    ) -> RestartOutcome:
        """Start the application directly."""
        self.launcher.start(kind, installation_folder)
        return RestartOutcome.LAUNCHED_DIRECTLY


class SupervisedRestartStrategy(RestartStrategy):
    """Let an external supervisor restart the application, within a budget."""

    name = SUPERVISED
    terminates_before_replace = False

    def __init__(
        self,
        controller: ProcessController,
        launcher: AppLauncher,
        *,
        process_name: str,
        interval: float = 1.0,
        attempts: int = 5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialise the strategy with the polling budget."""
        super().__init__(controller, launcher)
        self.process_name = process_name
        self.interval = interval
        self.attempts = max(1, attempts)
        self.sleep = sleep

    def resume(
        self,
        installation_folder: Path,
        process_id: int,
        kind: ApplicationKind,
    ) -> RestartOutcome:
        """Terminate the old process and wait for the supervisor to restart it."""
        self.controller.terminate(process_id)

        LOGGER.info("Waiting for external auto-restart.")
        if self.wait_for_restart() is not None:
            LOGGER.info("%s was restarted by external process.", self.process_name)
            return RestartOutcome.EXTERNALLY_RESTARTED

        LOGGER.info(
            "%s did not come back after %d checks; starting it directly.",
            self.process_name,
            self.attempts,
        )
        self.launcher.start(kind, installation_folder)
        return RestartOutcome.LAUNCHED_DIRECTLY

    def wait_for_restart(self) -> int | None:
        """Return the tick on which the process reappeared, or None."""
        for tick in range(1, self.attempts + 1):
            self.sleep(self.interval)
            if self.controller.exists(self.process_name):
                return tick
        return None


def select_restart_strategy(
    platform: PlatformInfo,
    config: RestartConfig,
    controller: ProcessController,
    launcher: AppLauncher,
    *,
    process_name: str,
    sleep: Callable[[float], None] = time.sleep,
) -> RestartStrategy:
    """Return the strategy configured for *platform*."""
    choice = config.strategy
    if choice == "auto":
        choice = DIRECT if platform.locks_open_executables else SUPERVISED
    if choice == DIRECT:
        return DirectLaunchStrategy(controller, launcher)
    return SupervisedRestartStrategy(
        controller,
        launcher,
        process_name=process_name,
        interval=config.poll_interval,
        attempts=config.poll_attempts,
        sleep=sleep,
    )


__all__ = [
    "DirectLaunchStrategy",
    "RestartOutcome",
    "RestartStrategy",
    "SupervisedRestartStrategy",
    "select_restart_strategy",
]
