"""Tests for the installation replace step."""
from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from updatectl.errors import ReplaceFailedError
from updatectl.folders import AppFolders
from updatectl.platform import PlatformInfo
from updatectl.providers.disk import DiskProvider
from updatectl.transfer import InstallTransferExecutor


def _tree(root: Path, files: dict[str, str]) -> Path:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


def _executor(tmp_path: Path, platform: str = "linux") -> InstallTransferExecutor:
    folders = AppFolders(
        update_package=tmp_path / "package",
        backup_root=tmp_path / "backups",
        app_data=tmp_path / "data",
    )
    return InstallTransferExecutor(
        DiskProvider(),
        folders,
        PlatformInfo.detect(platform),
        executable="app",
        executable_mode=0o755,
    )


def test_replace_swaps_folder_contents(tmp_path: Path) -> None:
    """Old files are gone and the package contents are in place."""
    _tree(tmp_path / "package", {"app": "v2", "lib/new.dll": "new"})
    install = _tree(tmp_path / "install", {"app": "v1", "lib/old.dll": "old", "stale.cfg": "s"})

    _executor(tmp_path).replace(install)

    assert sorted(p.relative_to(install).as_posix() for p in install.rglob("*") if p.is_file()) == [
        "app",
        "lib/new.dll",
    ]
    assert (install / "app").read_text(encoding="utf-8") == "v2"
    assert (tmp_path / "package" / "app").exists()


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions only")
def test_replace_marks_executable_on_posix(tmp_path: Path) -> None:
    """The main executable gets its execute bit after the copy."""
    package = _tree(tmp_path / "package", {"app": "#!/bin/sh\n"})
    (package / "app").chmod(0o644)
    install = _tree(tmp_path / "install", {"app": "old"})

    _executor(tmp_path, "darwin").replace(install)

    assert stat.S_IMODE((install / "app").stat().st_mode) == 0o755


def test_replace_skips_fixup_on_windows(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Windows hosts never touch permission bits."""
    _tree(tmp_path / "package", {"app": "v2"})
    install = _tree(tmp_path / "install", {"app": "v1"})
    calls: list[Path] = []
    monkeypatch.setattr(
        DiskProvider,
        "set_permissions",
        lambda self, path, mode, owner=None, group=None: calls.append(path),
    )

    _executor(tmp_path, "win32").replace(install)

    assert calls == []


def test_replace_failure_is_wrapped(tmp_path: Path) -> None:
    """A missing package surfaces as ReplaceFailedError after the folder was emptied."""
    install = _tree(tmp_path / "install", {"app": "v1"})

    with pytest.raises(ReplaceFailedError, match="Failed to copy upgrade package"):
        _executor(tmp_path).replace(install)

    assert list(install.iterdir()) == []
