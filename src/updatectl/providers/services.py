"""Service manager providers for service-hosted application instances."""
from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass

from ..platform import PlatformInfo


class ServiceError(RuntimeError):
    """Raised when service manager operations fail."""


@dataclass(slots=True)
class ServiceProvider:
    """Common command plumbing shared by the concrete service managers."""

    service_name: str

    def is_active(self) -> bool:
        """Return True when the service is currently running."""
        raise NotImplementedError

    def start(self) -> subprocess.CompletedProcess[str]:
        """Start the service."""
        raise NotImplementedError

    def stop(self) -> subprocess.CompletedProcess[str]:
        """Stop the service."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    def _run_command(
        self,
        args: Sequence[str],
        *,
        check: bool,
        error_prefix: str,
    ) -> subprocess.CompletedProcess[str]:
        try:
            result = subprocess.run(  # noqa: S603, S607
                list(args),
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ServiceError(f"{args[0]} not found: {exc}") from exc
        if check and result.returncode != 0:
            stdout = getattr(result, "stdout", "") or ""
            stderr = getattr(result, "stderr", "") or ""
            message = stderr.strip() or stdout.strip() or "no output"
            raise ServiceError(f"{error_prefix} failed (exit {result.returncode}): {message}")
        return result


@dataclass(slots=True)
class SystemdServiceProvider(ServiceProvider):
    """Control the application's systemd unit."""

    systemctl_bin: str = "systemctl"

    @property
    def unit_name(self) -> str:
        """Return the systemd unit name for the service."""
        name = self.service_name.replace("/", "-")
        return name if name.endswith(".service") else f"{name}.service"

    def is_active(self) -> bool:
        """Return True when ``systemctl is-active`` reports the unit active."""
        try:
            result = self._systemctl("is-active", check=False)
        except ServiceError:
            return False
        return result.returncode == 0 and (result.stdout or "").strip() == "active"

    def start(self) -> subprocess.CompletedProcess[str]:
        """Start the unit."""
        return self._systemctl("start")

    def stop(self) -> subprocess.CompletedProcess[str]:
        """Stop the unit."""
        return self._systemctl("stop")

    def _systemctl(
        self,
        command: str,
        *,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        args = [self.systemctl_bin, command, self.unit_name]
        return self._run_command(
            args,
            check=check,
            error_prefix=f"{self.systemctl_bin} {command}",
        )


@dataclass(slots=True)
class WindowsServiceProvider(ServiceProvider):
    """Control the application's Windows service through ``sc.exe``."""

    sc_bin: str = "sc.exe"

    def is_active(self) -> bool:
        """Return True when the service reports ``RUNNING``."""
        try:
            result = self._sc("query", check=False)
        except ServiceError:
            return False
        return result.returncode == 0 and "RUNNING" in (result.stdout or "")

    def start(self) -> subprocess.CompletedProcess[str]:
        """Start the service."""
        return self._sc("start")

    def stop(self) -> subprocess.CompletedProcess[str]:
        """Stop the service."""
        return self._sc("stop")

    def _sc(
        self,
        command: str,
        *,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        args = [self.sc_bin, command, self.service_name]
        return self._run_command(
            args,
            check=check,
            error_prefix=f"{self.sc_bin} {command}",
        )


def create_service_provider(
    platform: PlatformInfo,
    service_name: str,
    *,
    systemctl_bin: str = "systemctl",
    sc_bin: str = "sc.exe",
) -> ServiceProvider:
    """Return the service provider matching *platform*."""
    if platform.is_windows:
        return WindowsServiceProvider(service_name=service_name, sc_bin=sc_bin)
    return SystemdServiceProvider(service_name=service_name, systemctl_bin=systemctl_bin)


__all__ = [
    "ServiceError",
    "ServiceProvider",
    "SystemdServiceProvider",
    "WindowsServiceProvider",
    "create_service_provider",
]
