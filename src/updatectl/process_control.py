"""Stop the running application and observe whether it is alive."""
from __future__ import annotations

import logging

import psutil

from .errors import ProcessControlError
from .providers.process import ProcessProvider
from .providers.services import ServiceError, ServiceProvider

LOGGER = logging.getLogger(__name__)


class ProcessController:
    """Terminate the target process and answer existence queries."""

    def __init__(
        self,
        processes: ProcessProvider,
        services: ServiceProvider,
        *,
        timeout: float = 10.0,
    ) -> None:
        """Initialise the controller with its collaborators."""
        self.processes = processes
        self.services = services
        self.timeout = timeout

    def terminate(self, process_id: int, *, stop_service: bool = False) -> None:
        """Make sure *process_id* is no longer running.

        Calling this for a process that already exited is not an error. With
        *stop_service* the service unit is stopped first so the service manager
        does not race the install by restarting the old binaries.
        """
        if stop_service:
            self._stop_service()

        LOGGER.info("Terminating process %s", process_id)
        try:
            stopped = self.processes.terminate(process_id, timeout=self.timeout)
        except psutil.AccessDenied as exc:
            raise ProcessControlError(
                f"Access denied while terminating process {process_id}: {exc}"
            ) from exc
        except psutil.TimeoutExpired as exc:
            raise ProcessControlError(
                f"Process {process_id} did not exit after being killed: {exc}"
            ) from exc
        if not stopped:
            LOGGER.info("Process %s has already exited", process_id)

    def exists(self, target: int | str) -> bool:
        """Return True when a process with id or name *target* is alive."""
        return self.processes.exists(target)

    def _stop_service(self) -> None:
        if not self.services.is_active():
            return
        LOGGER.info("Stopping service %s", self.services.service_name)
        try:
            self.services.stop()
        except ServiceError as exc:
            raise ProcessControlError(f"Failed to stop service: {exc}") from exc


__all__ = ["ProcessController"]
