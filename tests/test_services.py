"""Tests for the service manager providers."""
from __future__ import annotations

from collections.abc import Sequence

import pytest

from updatectl.platform import PlatformInfo
from updatectl.providers.services import (
    ServiceError,
    SystemdServiceProvider,
    WindowsServiceProvider,
    create_service_provider,
)


class DummyResult:
    """Simple stand-in for ``subprocess.CompletedProcess``."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        """Initialise the dummy result."""
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def _record_runs(
    monkeypatch: pytest.MonkeyPatch,
    result: DummyResult,
) -> list[list[str]]:
    calls: list[list[str]] = []

    def fake_run(args: Sequence[str], **kwargs: object) -> DummyResult:
        calls.append(list(args))
        return result

    monkeypatch.setattr("updatectl.providers.services.subprocess.run", fake_run)
    return calls


def test_systemd_stop_targets_unit(monkeypatch: pytest.MonkeyPatch) -> None:
    """``stop`` shells out to systemctl with the normalised unit name."""
    calls = _record_runs(monkeypatch, DummyResult())

    SystemdServiceProvider(service_name="app").stop()

    assert calls == [["systemctl", "stop", "app.service"]]


def test_systemd_is_active_reads_stdout(monkeypatch: pytest.MonkeyPatch) -> None:
    """Only an ``active`` answer counts as running."""
    _record_runs(monkeypatch, DummyResult(stdout="active\n"))
    assert SystemdServiceProvider(service_name="app.service").is_active() is True

    _record_runs(monkeypatch, DummyResult(returncode=3, stdout="inactive\n"))
    assert SystemdServiceProvider(service_name="app.service").is_active() is False


def test_failed_command_raises_service_error(monkeypatch: pytest.MonkeyPatch) -> None:
    """A non-zero exit from a checked command carries stderr in the error."""
    _record_runs(monkeypatch, DummyResult(returncode=5, stderr="Unit app.service not loaded."))

    with pytest.raises(ServiceError, match="systemctl start failed \\(exit 5\\)"):
        SystemdServiceProvider(service_name="app").start()


def test_missing_binary_counts_as_inactive(monkeypatch: pytest.MonkeyPatch) -> None:
    """Hosts without the service manager report the service as not running."""

    def missing(args: Sequence[str], **kwargs: object) -> DummyResult:
        raise FileNotFoundError(args[0])

    monkeypatch.setattr("updatectl.providers.services.subprocess.run", missing)

    assert WindowsServiceProvider(service_name="App").is_active() is False


def test_windows_query_detects_running(monkeypatch: pytest.MonkeyPatch) -> None:
    """``sc.exe query`` output containing RUNNING means active."""
    calls = _record_runs(monkeypatch, DummyResult(stdout="STATE : 4 RUNNING"))

    assert WindowsServiceProvider(service_name="App").is_active() is True
    assert calls == [["sc.exe", "query", "App"]]


def test_create_service_provider_follows_platform() -> None:
    """Windows hosts get sc.exe, every other host gets systemd."""
    windows = create_service_provider(PlatformInfo.detect("win32"), "App")
    linux = create_service_provider(PlatformInfo.detect("linux"), "App")
    darwin = create_service_provider(PlatformInfo.detect("darwin"), "App")

    assert isinstance(windows, WindowsServiceProvider)
    assert isinstance(linux, SystemdServiceProvider)
    assert isinstance(darwin, SystemdServiceProvider)
