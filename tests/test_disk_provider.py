"""Tests for the filesystem provider."""
from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from updatectl.providers.disk import DiskProvider, TransferMode


def _tree(root: Path, files: dict[str, str]) -> Path:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


def test_empty_folder_keeps_folder(tmp_path: Path) -> None:
    """Every child is removed but the folder itself survives."""
    folder = _tree(tmp_path / "install", {"a.txt": "a", "lib/b.dll": "b", "lib/deep/c": "c"})
    provider = DiskProvider()

    provider.empty_folder(folder)

    assert folder.is_dir()
    assert list(folder.iterdir()) == []


def test_transfer_folder_copy_preserves_structure(tmp_path: Path) -> None:
    """Copy mode mirrors the tree and leaves the source untouched."""
    source = _tree(tmp_path / "src", {"app": "bin", "lib/core.dll": "core", "ui/index.html": "<html>"})
    destination = tmp_path / "dst"
    provider = DiskProvider()

    provider.transfer_folder(source, destination, TransferMode.COPY)

    assert (destination / "app").read_text(encoding="utf-8") == "bin"
    assert (destination / "lib" / "core.dll").read_text(encoding="utf-8") == "core"
    assert (destination / "ui" / "index.html").read_text(encoding="utf-8") == "<html>"
    assert (source / "app").exists()


def test_transfer_folder_move_removes_source(tmp_path: Path) -> None:
    """Move mode leaves nothing behind at the source."""
    source = _tree(tmp_path / "src", {"app": "bin", "lib/core.dll": "core"})
    destination = tmp_path / "dst"

    DiskProvider().transfer_folder(source, destination, TransferMode.MOVE)

    assert not source.exists()
    assert (destination / "lib" / "core.dll").read_text(encoding="utf-8") == "core"


def test_transfer_folder_refuses_overwrite(tmp_path: Path) -> None:
    """Existing destination files raise unless overwrite is requested."""
    source = _tree(tmp_path / "src", {"app": "new"})
    destination = _tree(tmp_path / "dst", {"app": "old"})
    provider = DiskProvider()

    with pytest.raises(FileExistsError):
        provider.transfer_folder(source, destination, TransferMode.COPY, overwrite=False)
    assert (destination / "app").read_text(encoding="utf-8") == "old"

    provider.transfer_folder(source, destination, TransferMode.COPY, overwrite=True)
    assert (destination / "app").read_text(encoding="utf-8") == "new"


def test_transfer_folder_missing_source(tmp_path: Path) -> None:
    """A missing source folder is reported before anything is created."""
    with pytest.raises(FileNotFoundError):
        DiskProvider().transfer_folder(tmp_path / "missing", tmp_path / "dst")
    assert not (tmp_path / "dst").exists()


@pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")
def test_transfer_folder_keeps_symlinked_directories(tmp_path: Path) -> None:
    """Symlinked directories are copied as links, not expanded."""
    source = _tree(tmp_path / "src", {"real/file.txt": "x"})
    (source / "alias").symlink_to("real", target_is_directory=True)
    destination = tmp_path / "dst"

    DiskProvider().transfer_folder(source, destination)

    assert (destination / "alias").is_symlink()
    assert os.readlink(destination / "alias") == "real"


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions only")
def test_set_permissions_applies_mode(tmp_path: Path) -> None:
    """Permission bits are applied on POSIX hosts."""
    target = tmp_path / "app"
    target.write_text("#!/bin/sh\n", encoding="utf-8")
    target.chmod(0o644)

    DiskProvider().set_permissions(target, 0o755)

    assert stat.S_IMODE(target.stat().st_mode) == 0o755


def test_copy_file_creates_parents(tmp_path: Path) -> None:
    """Single file copies create missing parent folders."""
    source = tmp_path / "config.xml"
    source.write_text("<config/>", encoding="utf-8")
    destination = tmp_path / "deep" / "nested" / "config.xml"

    DiskProvider().copy_file(source, destination)

    assert destination.read_text(encoding="utf-8") == "<config/>"
    assert DiskProvider().folder_exists(destination.parent)
