"""Host platform facts that steer the install workflow."""
from __future__ import annotations

import sys
from dataclasses import dataclass

WINDOWS = "windows"
OSX = "osx"
LINUX = "linux"


@dataclass(frozen=True, slots=True)
class PlatformInfo:
    """Operating-system family of the host running the install."""

    family: str

    @classmethod
    def detect(cls, platform: str | None = None) -> PlatformInfo:
        """Return the platform for *platform* (defaults to ``sys.platform``)."""
        value = (platform or sys.platform).lower()
        if value.startswith(("win", "cygwin", "msys")):
            return cls(WINDOWS)
        if value.startswith("darwin"):
            return cls(OSX)
        return cls(LINUX)

    @property
    def is_windows(self) -> bool:
        """Return True on Windows hosts."""
        return self.family == WINDOWS

    @property
    def locks_open_executables(self) -> bool:
        """Return True when running executables cannot be overwritten."""
        return self.is_windows

    @property
    def requires_executable_bit(self) -> bool:
        """Return True when copied binaries need an explicit execute bit."""
        return not self.is_windows


__all__ = ["LINUX", "OSX", "WINDOWS", "PlatformInfo"]
