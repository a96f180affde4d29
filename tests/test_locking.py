"""Tests for the locking primitives."""
from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from updatectl.locking import LockError, LockManager, LockTimeoutError


def test_resource_lock_creates_metadata(tmp_path: Path) -> None:
    """Acquiring a lock writes metadata and releases cleanly."""
    manager = LockManager(tmp_path / "run", default_timeout=1.0)

    lock_path = tmp_path / "run" / "alpha.lock"
    with manager.resource_lock("alpha") as handle:
        assert handle.wait_ms >= 0
        assert handle.path == lock_path
        assert lock_path.exists()
        data = json.loads(lock_path.read_text(encoding="utf-8"))
        assert data["pid"] == os.getpid()
        assert data["path"] == str(lock_path)
        assert data["resource"] == "alpha"

    # Lockfile persists for diagnostics but no longer holds the lock.
    with manager.resource_lock("alpha", timeout=0.2):
        pass


def test_resource_lock_timeout(tmp_path: Path) -> None:
    """Second acquisition times out while the first lock is held."""
    manager = LockManager(tmp_path / "run", default_timeout=1.0)

    with manager.resource_lock("alpha"):
        with pytest.raises(LockTimeoutError):
            with manager.resource_lock("alpha", timeout=0.1):
                pass


def test_blank_resource_rejected(tmp_path: Path) -> None:
    """Lock names must not be blank."""
    manager = LockManager(tmp_path / "run", default_timeout=1.0)

    with pytest.raises(LockError):
        with manager.resource_lock("   "):
            pass


def test_install_lock_is_scoped_per_folder(tmp_path: Path) -> None:
    """Different installation folders never contend; the same folder does."""
    manager = LockManager(tmp_path / "run", default_timeout=1.0)
    first = tmp_path / "apps" / "first"
    second = tmp_path / "apps" / "second"
    first.mkdir(parents=True)
    second.mkdir(parents=True)

    with manager.install_lock(first) as handle:
        assert handle.path.parent == tmp_path / "run" / "installs"
        assert handle.resource.startswith("first-")
        with manager.install_lock(second, timeout=0.1) as other:
            assert other.path != handle.path
        with pytest.raises(LockTimeoutError):
            with manager.install_lock(first / ".." / "first", timeout=0.1):
                pass
