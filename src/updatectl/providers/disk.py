"""Filesystem primitives used to move installation trees around."""
from __future__ import annotations

import logging
import os
import shutil
from enum import Enum
from pathlib import Path

LOGGER = logging.getLogger(__name__)


class TransferMode(Enum):
    """How :meth:`DiskProvider.transfer_folder` treats the source tree."""

    COPY = "copy"
    MOVE = "move"


class DiskProvider:
    """Folder and file operations with overwrite control."""

    def folder_exists(self, path: Path) -> bool:
        """Return True when *path* is an existing directory."""
        return Path(path).is_dir()

    def empty_folder(self, path: Path) -> None:
        """Remove every entry inside *path* while keeping the folder itself."""
        folder = Path(path)
        for entry in folder.iterdir():
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()

    def transfer_folder(
        self,
        source: Path,
        destination: Path,
        mode: TransferMode = TransferMode.COPY,
        *,
        overwrite: bool = False,
    ) -> None:
        """Copy or move the contents of *source* into *destination*.

        Directory structure is preserved. When *overwrite* is False an existing
        destination file raises ``FileExistsError``.
        """
        source = Path(source)
        destination = Path(destination)
        if not source.is_dir():
            raise FileNotFoundError(f"Source folder does not exist: {source}")
        destination.mkdir(parents=True, exist_ok=True)
        LOGGER.debug("%s %s -> %s", mode.value.capitalize(), source, destination)

        for root, dirs, files in os.walk(source):
            root_path = Path(root)
            relative = root_path.relative_to(source)
            target_root = destination / relative
            target_root.mkdir(parents=True, exist_ok=True)
            for dirname in dirs:
                if (root_path / dirname).is_symlink():
                    self._transfer_file(
                        root_path / dirname,
                        target_root / dirname,
                        mode,
                        overwrite=overwrite,
                    )
                    continue
                (target_root / dirname).mkdir(exist_ok=True)
            for filename in files:
                self._transfer_file(
                    root_path / filename,
                    target_root / filename,
                    mode,
                    overwrite=overwrite,
                )

        if mode is TransferMode.MOVE:
            shutil.rmtree(source)

    def copy_file(self, source: Path, destination: Path, *, overwrite: bool = False) -> None:
        """Copy a single file, creating parent directories as needed."""
        self._transfer_file(Path(source), Path(destination), TransferMode.COPY, overwrite=overwrite)

    def set_permissions(
        self,
        path: Path,
        mode: int,
        owner: str | None = None,
        group: str | None = None,
    ) -> None:
        """Apply POSIX *mode* and optional ownership to *path*.

        Windows has no POSIX permission bits, so this is a no-op there.
        """
        if os.name == "nt":
            return
        os.chmod(path, mode)
        kwargs: dict[str, str] = {}
        if owner:
            kwargs["user"] = owner
        if group:
            kwargs["group"] = group
        if kwargs:
            shutil.chown(path, **kwargs)

    def _transfer_file(
        self,
        source: Path,
        destination: Path,
        mode: TransferMode,
        *,
        overwrite: bool,
    ) -> None:
        if destination.exists() or destination.is_symlink():
            if not overwrite:
                raise FileExistsError(f"Destination file already exists: {destination}")
            if destination.is_dir() and not destination.is_symlink():
                shutil.rmtree(destination)
            else:
                destination.unlink()
        destination.parent.mkdir(parents=True, exist_ok=True)
        if mode is TransferMode.MOVE:
            shutil.move(str(source), str(destination))
        else:
            shutil.copy2(source, destination, follow_symlinks=False)


__all__ = ["DiskProvider", "TransferMode"]
