"""Collaborator providers for updatectl."""
from __future__ import annotations

from .app_type import AppTypeDetector, ApplicationKind
from .disk import DiskProvider, TransferMode
from .launcher import AppLauncher
from .process import ProcessHandle, ProcessProvider
from .services import (
    ServiceError,
    ServiceProvider,
    SystemdServiceProvider,
    WindowsServiceProvider,
    create_service_provider,
)

__all__ = [
    "AppLauncher",
    "AppTypeDetector",
    "ApplicationKind",
    "DiskProvider",
    "ProcessHandle",
    "ProcessProvider",
    "ServiceError",
    "ServiceProvider",
    "SystemdServiceProvider",
    "TransferMode",
    "WindowsServiceProvider",
    "create_service_provider",
]
