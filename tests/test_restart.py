"""Tests for restart strategies and their selection."""
from __future__ import annotations

from pathlib import Path

import pytest

from updatectl.config import RestartConfig
from updatectl.platform import PlatformInfo
from updatectl.providers.app_type import ApplicationKind
from updatectl.restart import (
    DirectLaunchStrategy,
    RestartOutcome,
    SupervisedRestartStrategy,
    select_restart_strategy,
)


class FakeController:
    """Controller double whose process reappears on a chosen existence check."""

    def __init__(self, reappear_on: int | None = None) -> None:
        self.reappear_on = reappear_on
        self.terminated: list[int] = []
        self.checks = 0

    def terminate(self, process_id: int, *, stop_service: bool = False) -> None:
        self.terminated.append(process_id)

    def exists(self, target: int | str) -> bool:
        self.checks += 1
        return self.reappear_on is not None and self.checks >= self.reappear_on


class FakeLauncher:
    """Launcher double recording start requests."""

    def __init__(self) -> None:
        self.started: list[tuple[ApplicationKind, Path]] = []

    def start(self, kind: ApplicationKind, folder: Path) -> None:
        self.started.append((kind, folder))


def _supervised(
    controller: FakeController,
    launcher: FakeLauncher,
    sleeps: list[float],
    attempts: int = 5,
) -> SupervisedRestartStrategy:
    return SupervisedRestartStrategy(
        controller,  # type: ignore[arg-type]
        launcher,  # type: ignore[arg-type]
        process_name="app",
        interval=1.0,
        attempts=attempts,
        sleep=sleeps.append,
    )


def test_direct_strategy_launches_once(tmp_path: Path) -> None:
    """Direct restarts launch the application exactly once."""
    controller = FakeController()
    launcher = FakeLauncher()
    strategy = DirectLaunchStrategy(controller, launcher)  # type: ignore[arg-type]

    outcome = strategy.resume(tmp_path, 42, ApplicationKind.TRAY)

    assert outcome is RestartOutcome.LAUNCHED_DIRECTLY
    assert launcher.started == [(ApplicationKind.TRAY, tmp_path)]
    assert controller.terminated == []
    assert strategy.terminates_before_replace is True


@pytest.mark.parametrize("tick", [1, 3, 5])
def test_supervised_stops_polling_when_process_reappears(tmp_path: Path, tick: int) -> None:
    """Polling stops on the tick the process comes back and nothing is launched."""
    controller = FakeController(reappear_on=tick)
    launcher = FakeLauncher()
    sleeps: list[float] = []
    strategy = _supervised(controller, launcher, sleeps)

    outcome = strategy.resume(tmp_path, 42, ApplicationKind.CONSOLE)

    assert outcome is RestartOutcome.EXTERNALLY_RESTARTED
    assert controller.terminated == [42]
    assert controller.checks == tick
    assert sleeps == [1.0] * tick
    assert launcher.started == []


def test_supervised_falls_back_to_single_launch(tmp_path: Path) -> None:
    """After the polling budget runs out the application is launched once."""
    controller = FakeController(reappear_on=None)
    launcher = FakeLauncher()
    sleeps: list[float] = []
    strategy = _supervised(controller, launcher, sleeps)

    outcome = strategy.resume(tmp_path, 42, ApplicationKind.CONSOLE)

    assert outcome is RestartOutcome.LAUNCHED_DIRECTLY
    assert controller.checks == 5
    assert len(sleeps) == 5
    assert launcher.started == [(ApplicationKind.CONSOLE, tmp_path)]
    assert strategy.terminates_before_replace is False


def test_supervised_attempts_never_below_one(tmp_path: Path) -> None:
    """A zero budget still checks once before launching."""
    controller = FakeController(reappear_on=None)
    strategy = _supervised(controller, FakeLauncher(), [], attempts=0)

    assert strategy.wait_for_restart() is None
    assert controller.checks == 1


@pytest.mark.parametrize(
    ("platform", "choice", "expected"),
    [
        ("win32", "auto", DirectLaunchStrategy),
        ("linux", "auto", SupervisedRestartStrategy),
        ("darwin", "auto", SupervisedRestartStrategy),
        ("linux", "direct", DirectLaunchStrategy),
        ("win32", "supervised", SupervisedRestartStrategy),
    ],
)
def test_select_restart_strategy(platform: str, choice: str, expected: type) -> None:
    """Auto selection follows whether the platform locks running executables."""
    strategy = select_restart_strategy(
        PlatformInfo.detect(platform),
        RestartConfig(strategy=choice, poll_interval=0.5, poll_attempts=3),
        FakeController(),  # type: ignore[arg-type]
        FakeLauncher(),  # type: ignore[arg-type]
        process_name="app",
    )

    assert isinstance(strategy, expected)
    if isinstance(strategy, SupervisedRestartStrategy):
        assert strategy.interval == 0.5
        assert strategy.attempts == 3
