"""File-based locks guarding one resource at a time.

Each lock is a file under the runtime directory holding JSON metadata about
the current holder. Locks are scoped to a single resource (an installation
folder, a named resource) so unrelated operations never contend.
"""
from __future__ import annotations

import hashlib
import json
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import IO

if os.name == "nt":
    import msvcrt
else:
    import fcntl

_POLL_INTERVAL = 0.05


class LockError(RuntimeError):
    """Raised when a lock cannot be acquired or released."""


class LockTimeoutError(LockError):
    """Raised when a lock is still held by someone else after the timeout."""


@dataclass(frozen=True, slots=True)
class LockHandle:
    """Details about an acquired lock."""

    resource: str
    path: Path
    wait_ms: int


def _safe_name(value: str) -> str:
    return "".join(char if char.isalnum() or char in {"-", "_", "."} else "-" for char in value)


def _try_lock(handle: IO[str]) -> bool:
    try:
        if os.name == "nt":
            handle.seek(0)
            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
        else:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        return False
    return True


def _unlock(handle: IO[str]) -> None:
    if os.name == "nt":
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


class LockManager:
    """Hand out per-resource locks under *runtime_dir*."""

    def __init__(self, runtime_dir: Path, default_timeout: float = 30.0) -> None:
        """Initialise the manager with its lock directory and default timeout."""
        self.runtime_dir = Path(runtime_dir).expanduser()
        self.default_timeout = default_timeout

    def lock_path(self, resource: str, *, namespace: str | None = None) -> Path:
        """Return the lock file used for *resource*."""
        base = self.runtime_dir / namespace if namespace else self.runtime_dir
        return base / f"{_safe_name(resource)}.lock"

    @contextmanager
    def resource_lock(
        self,
        resource: str,
        *,
        timeout: float | None = None,
        namespace: str | None = None,
    ) -> Iterator[LockHandle]:
        """Hold an exclusive lock on *resource* for the duration of the block."""
        name = resource.strip()
        if not name:
            raise LockError("Lock resource name must be a non-empty string.")
        path = self.lock_path(name, namespace=namespace)
        limit = self.default_timeout if timeout is None else timeout
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            handle = path.open("a+", encoding="utf-8")
        except OSError as exc:
            raise LockError(f"Unable to open lock file {path}: {exc}") from exc

        started = time.monotonic()
        try:
            while not _try_lock(handle):
                if time.monotonic() - started >= limit:
                    raise LockTimeoutError(
                        f"Timed out after {limit:.1f}s waiting for lock on {name} ({path})."
                    )
                time.sleep(_POLL_INTERVAL)
            wait_ms = int((time.monotonic() - started) * 1000)
            self._write_metadata(handle, name, path)
            try:
                yield LockHandle(resource=name, path=path, wait_ms=wait_ms)
            finally:
                _unlock(handle)
        finally:
            handle.close()

    @contextmanager
    def install_lock(
        self,
        installation_folder: Path,
        *,
        timeout: float | None = None,
    ) -> Iterator[LockHandle]:
        """Lock a single installation folder against concurrent installs."""
        resolved = Path(installation_folder).expanduser().resolve()
        digest = hashlib.sha256(str(resolved).encode("utf-8")).hexdigest()[:12]
        resource = f"{resolved.name or 'root'}-{digest}"
        with self.resource_lock(resource, timeout=timeout, namespace="installs") as handle:
            yield handle

    @staticmethod
    def _write_metadata(handle: IO[str], resource: str, path: Path) -> None:
        payload = {
            "pid": os.getpid(),
            "resource": resource,
            "path": str(path),
            "acquired_at": datetime.now(tz=UTC).isoformat(timespec="seconds").replace(
                "+00:00", "Z"
            ),
        }
        handle.seek(0)
        handle.truncate()
        handle.write(json.dumps(payload))
        handle.flush()


__all__ = ["LockError", "LockHandle", "LockManager", "LockTimeoutError"]
