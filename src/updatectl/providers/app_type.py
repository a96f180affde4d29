"""Detect how the running application instance was launched."""
from __future__ import annotations

import logging
from enum import Enum

from .process import ProcessProvider
from .services import ServiceProvider

LOGGER = logging.getLogger(__name__)


class ApplicationKind(Enum):
    """Hosting mode of the running application."""

    SERVICE = "service"
    TRAY = "tray"
    CONSOLE = "console"


class AppTypeDetector:
    """Decide which :class:`ApplicationKind` is currently running."""

    def __init__(
        self,
        processes: ProcessProvider,
        services: ServiceProvider,
        *,
        app_name: str,
    ) -> None:
        """Initialise the detector with its process and service collaborators."""
        self.processes = processes
        self.services = services
        self.app_name = app_name

    def get_app_type(self) -> ApplicationKind:
        """Return the hosting mode, preferring service over tray over console."""
        if self.services.is_active():
            kind = ApplicationKind.SERVICE
        elif self.processes.exists(self.app_name):
            kind = ApplicationKind.TRAY
        else:
            kind = ApplicationKind.CONSOLE
        LOGGER.info("Detected application type: %s", kind.value)
        return kind


__all__ = ["AppTypeDetector", "ApplicationKind"]
