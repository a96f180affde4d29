"""Tests for host platform detection."""
from __future__ import annotations

import pytest

from updatectl.platform import LINUX, OSX, WINDOWS, PlatformInfo


@pytest.mark.parametrize(
    ("raw", "family"),
    [("win32", WINDOWS), ("cygwin", WINDOWS), ("darwin", OSX), ("linux", LINUX)],
)
def test_detect_maps_sys_platform(raw: str, family: str) -> None:
    """``sys.platform`` values collapse onto the three supported families."""
    assert PlatformInfo.detect(raw).family == family


def test_windows_locks_executables_and_skips_exec_bit() -> None:
    """Only non-Windows hosts need the execute bit restored after a copy."""
    windows = PlatformInfo.detect("win32")
    darwin = PlatformInfo.detect("darwin")

    assert windows.locks_open_executables is True
    assert windows.requires_executable_bit is False
    assert darwin.locks_open_executables is False
    assert darwin.requires_executable_bit is True
