"""Process inspection backed by psutil."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import psutil

LOGGER = logging.getLogger(__name__)

_ATTRS = ["pid", "name", "exe", "cmdline"]


@dataclass(frozen=True, slots=True)
class ProcessHandle:
    """Snapshot of an observed OS process."""

    pid: int
    name: str
    exe: Path | None = None


def _stem(value: str | None) -> str:
    if not value:
        return ""
    name = Path(value).name
    lowered = name.lower()
    if lowered.endswith(".exe") or lowered.endswith(".dll"):
        name = name[:-4]
    return name.lower()


def _matches(info: dict[str, object], name: str) -> bool:
    wanted = _stem(name)
    if not wanted:
        return False
    candidates = [_stem(str(info.get("name") or "")), _stem(str(info.get("exe") or ""))]
    cmdline = info.get("cmdline") or []
    if isinstance(cmdline, list):
        # Interpreter-hosted apps show up as e.g. ``mono App.exe`` or ``python app``.
        candidates.extend(_stem(str(arg)) for arg in cmdline[:2])
    return wanted in candidates


def _handle_from_info(info: dict[str, object]) -> ProcessHandle:
    exe = info.get("exe")
    return ProcessHandle(
        pid=int(str(info.get("pid"))),
        name=str(info.get("name") or ""),
        exe=Path(str(exe)) if exe else None,
    )


class ProcessProvider:
    """Look up, observe and signal OS processes."""

    def exists(self, target: int | str) -> bool:
        """Return True when a process with the given id or name is alive."""
        if isinstance(target, int):
            return self._pid_alive(target)
        return self.find_process_by_name(target) is not None

    def get_process(self, pid: int) -> ProcessHandle | None:
        """Return a handle for *pid*, or None when it is gone."""
        try:
            process = psutil.Process(pid)
            info = process.as_dict(attrs=_ATTRS)
        except (psutil.NoSuchProcess, psutil.ZombieProcess):
            return None
        except psutil.AccessDenied:
            return ProcessHandle(pid=pid, name="")
        return _handle_from_info(info)

    def find_processes_by_name(self, name: str) -> list[ProcessHandle]:
        """Return every live process matching *name*."""
        handles: list[ProcessHandle] = []
        for process in psutil.process_iter(_ATTRS):
            info = process.info
            if not _matches(info, name):
                continue
            if info.get("pid") is None:
                continue
            try:
                if process.status() == psutil.STATUS_ZOMBIE:
                    continue
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
            handles.append(_handle_from_info(info))
        return handles

    def find_process_by_name(self, name: str) -> ProcessHandle | None:
        """Return the first live process matching *name*."""
        matches = self.find_processes_by_name(name)
        return matches[0] if matches else None

    def terminate(self, pid: int, *, timeout: float = 10.0) -> bool:
        """Terminate *pid*, escalating to a kill after *timeout* seconds.

        Returns False when the process had already exited. ``psutil.AccessDenied``
        propagates to the caller.
        """
        try:
            process = psutil.Process(pid)
            LOGGER.info("Killing process %s [%s]", pid, process.name())
            process.terminate()
        except psutil.NoSuchProcess:
            return False
        try:
            process.wait(timeout=timeout)
        except psutil.NoSuchProcess:
            return True
        except psutil.TimeoutExpired:
            LOGGER.warning("Process %s did not exit after %.1fs; killing it.", pid, timeout)
            try:
                process.kill()
                process.wait(timeout=timeout)
            except psutil.NoSuchProcess:
                return True
        return True

    @staticmethod
    def _pid_alive(pid: int) -> bool:
        if pid < 1:
            return False
        try:
            process = psutil.Process(pid)
            return process.status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            return True


__all__ = ["ProcessHandle", "ProcessProvider"]
