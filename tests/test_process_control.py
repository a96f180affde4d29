"""Tests for process inspection and termination."""
from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import psutil
import pytest

from updatectl.errors import ProcessControlError
from updatectl.process_control import ProcessController
from updatectl.providers.app_type import ApplicationKind, AppTypeDetector
from updatectl.providers.process import ProcessProvider
from updatectl.providers.services import ServiceError


class FakeServices:
    """Service provider double recording start/stop calls."""

    service_name = "app"

    def __init__(self, *, active: bool = False, fail_stop: bool = False) -> None:
        self.active = active
        self.fail_stop = fail_stop
        self.calls: list[str] = []

    def is_active(self) -> bool:
        return self.active

    def stop(self) -> None:
        self.calls.append("stop")
        if self.fail_stop:
            raise ServiceError("systemctl stop failed (exit 1): denied")
        self.active = False

    def start(self) -> None:
        self.calls.append("start")
        self.active = True


class FakeProcesses:
    """Process provider double tracking terminate calls."""

    def __init__(self, alive: set[int | str]) -> None:
        self.alive = alive
        self.terminated: list[int] = []
        self.error: Exception | None = None

    def exists(self, target: int | str) -> bool:
        return target in self.alive

    def terminate(self, pid: int, *, timeout: float = 10.0) -> bool:
        if self.error is not None:
            raise self.error
        self.terminated.append(pid)
        if pid not in self.alive:
            return False
        self.alive.discard(pid)
        return True


def test_terminate_is_idempotent() -> None:
    """Terminating an already-exited process is not an error."""
    processes = FakeProcesses({42})
    controller = ProcessController(processes, FakeServices())  # type: ignore[arg-type]

    controller.terminate(42)
    controller.terminate(42)

    assert processes.terminated == [42, 42]
    assert controller.exists(42) is False


def test_terminate_stops_active_service_first() -> None:
    """Service-hosted instances are stopped through the service manager first."""
    services = FakeServices(active=True)
    controller = ProcessController(FakeProcesses({42}), services)  # type: ignore[arg-type]

    controller.terminate(42, stop_service=True)

    assert services.calls == ["stop"]


def test_terminate_skips_inactive_service() -> None:
    """No stop is issued for a service that is not running."""
    services = FakeServices(active=False)
    controller = ProcessController(FakeProcesses({42}), services)  # type: ignore[arg-type]

    controller.terminate(42, stop_service=True)

    assert services.calls == []


def test_service_stop_failure_is_wrapped() -> None:
    """Service manager errors surface as ProcessControlError."""
    services = FakeServices(active=True, fail_stop=True)
    controller = ProcessController(FakeProcesses({42}), services)  # type: ignore[arg-type]

    with pytest.raises(ProcessControlError, match="Failed to stop service"):
        controller.terminate(42, stop_service=True)


def test_access_denied_is_wrapped() -> None:
    """Permission problems are reported instead of being ignored."""
    processes = FakeProcesses({42})
    processes.error = psutil.AccessDenied(pid=42)
    controller = ProcessController(processes, FakeServices())  # type: ignore[arg-type]

    with pytest.raises(ProcessControlError, match="Access denied"):
        controller.terminate(42)


@pytest.mark.skipif(os.name == "nt", reason="relies on POSIX signals")
def test_provider_terminates_real_process() -> None:
    """The psutil-backed provider stops a child and then reports it gone."""
    child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
    provider = ProcessProvider()
    try:
        assert provider.exists(child.pid) is True
        assert provider.terminate(child.pid, timeout=5.0) is True
        child.wait(timeout=5)
        assert provider.exists(child.pid) is False
        assert provider.terminate(child.pid, timeout=1.0) is False
    finally:
        if child.poll() is None:
            child.kill()
            child.wait()


def test_provider_rejects_non_positive_pid() -> None:
    """Pids below one never exist."""
    assert ProcessProvider().exists(0) is False


def test_provider_matches_process_names(monkeypatch: pytest.MonkeyPatch) -> None:
    """Names match case-insensitively against name, exe and hosted binary."""

    class FakeProc:
        def __init__(self, info: dict[str, object]) -> None:
            self.info = info

        def status(self) -> str:
            return psutil.STATUS_RUNNING

    procs = [
        FakeProc({"pid": 10, "name": "bash", "exe": "/bin/bash", "cmdline": ["bash"]}),
        FakeProc(
            {
                "pid": 11,
                "name": "mono",
                "exe": "/usr/bin/mono",
                "cmdline": ["mono", "/opt/app/NzbDrone.exe"],
            }
        ),
        FakeProc({"pid": 12, "name": "Radarr.exe", "exe": None, "cmdline": []}),
    ]
    monkeypatch.setattr(psutil, "process_iter", lambda attrs=None: iter(procs))
    provider = ProcessProvider()

    hosted = provider.find_process_by_name("nzbdrone")
    assert hosted is not None and hosted.pid == 11
    assert hosted.exe == Path("/usr/bin/mono")
    assert provider.exists("radarr") is True
    assert provider.exists("sonarr") is False


def test_app_type_detection_order() -> None:
    """Service beats tray, tray beats console."""
    services = FakeServices(active=True)
    processes = FakeProcesses({"app"})
    detector = AppTypeDetector(processes, services, app_name="app")  # type: ignore[arg-type]

    assert detector.get_app_type() is ApplicationKind.SERVICE
    services.active = False
    assert detector.get_app_type() is ApplicationKind.TRAY
    processes.alive.clear()
    assert detector.get_app_type() is ApplicationKind.CONSOLE
