"""Snapshots of the installation folder and application data.

Snapshots are plain directory copies under the backup root, recorded in a JSON
index together with a SHA-256 manifest so a restore can be verified file by
file before the install run is allowed to report a rollback.
"""
from __future__ import annotations

import json
import logging
import os
import secrets
import shutil
import tempfile
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from .archive import build_manifest, diff_manifest, manifest_size
from .errors import BackupFailedError, RestoreFailedError
from .folders import AppFolders
from .providers.disk import DiskProvider, TransferMode

LOGGER = logging.getLogger(__name__)

INSTALL_KIND = "install"
APPDATA_KIND = "appdata"


class SnapshotRegistryError(RuntimeError):
    """Raised when snapshot index interactions fail."""


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class BackupSnapshot:
    """A captured copy of a directory tree or of application-state files."""

    id: str
    kind: str
    source: Path
    path: Path
    created_at: str
    manifest: dict[str, str] = field(default_factory=dict)
    size_bytes: int = 0
    status: str = "available"

    def to_entry(self) -> dict[str, object]:
        """Return the JSON-serialisable index entry."""
        return {
            "id": self.id,
            "kind": self.kind,
            "source": str(self.source),
            "path": str(self.path),
            "created_at": self.created_at,
            "size_bytes": self.size_bytes,
            "file_count": len(self.manifest),
            "manifest": dict(self.manifest),
            "status": self.status,
        }

    @classmethod
    def from_entry(cls, entry: Mapping[str, object]) -> BackupSnapshot:
        """Build a snapshot from an index entry."""
        manifest_raw = entry.get("manifest")
        manifest = (
            {str(key): str(value) for key, value in manifest_raw.items()}
            if isinstance(manifest_raw, Mapping)
            else {}
        )
        size_raw = entry.get("size_bytes", 0)
        return cls(
            id=str(entry.get("id", "")),
            kind=str(entry.get("kind", "")),
            source=Path(str(entry.get("source", ""))),
            path=Path(str(entry.get("path", ""))),
            created_at=str(entry.get("created_at", "")),
            manifest=manifest,
            size_bytes=size_raw if isinstance(size_raw, int) else 0,
            status=str(entry.get("status", "available")),
        )


@dataclass(slots=True)
class SnapshotRegistry:
    """Manage the JSON snapshot index under the backup root."""

    root: Path
    index: Path

    def __post_init__(self) -> None:
        """Normalise root/index paths after initialisation."""
        self.root = self.root.expanduser()
        self.index = self.index.expanduser()

    def ensure_root(self) -> None:
        """Ensure the backup root directory exists with safe permissions."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            os.chmod(self.root, 0o750)
        except OSError as exc:  # pragma: no cover - permissions env-specific
            raise SnapshotRegistryError(
                f"Failed to prepare backup root {self.root}: {exc}"
            ) from exc

    def read(self) -> dict[str, object]:
        """Return the parsed index (empty structure when missing)."""
        if not self.index.exists():
            return {"snapshots": []}
        try:
            data = json.loads(self.index.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {"snapshots": []}
        except json.JSONDecodeError as exc:
            raise SnapshotRegistryError(
                f"Snapshot index corrupted ({self.index}): {exc}"
            ) from exc
        if not isinstance(data, Mapping):
            raise SnapshotRegistryError(f"Snapshot index must be a JSON object ({self.index}).")
        return dict(data)

    def write(self, payload: Mapping[str, object]) -> None:
        """Atomically persist *payload* to the index."""
        self.ensure_root()
        self.index.parent.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_name = tempfile.mkstemp(
            dir=str(self.index.parent),
            prefix=f".{self.index.name}.",
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=False)
                handle.write("\n")
            os.replace(tmp_path, self.index)
            os.chmod(self.index, 0o640)
        except OSError as exc:
            raise SnapshotRegistryError(f"Failed to write snapshot index: {exc}") from exc
        finally:
            tmp_path.unlink(missing_ok=True)

    def list_entries(self) -> list[dict[str, object]]:
        """Return every snapshot entry in index order."""
        snapshots = self.read().get("snapshots", [])
        entries: list[dict[str, object]] = []
        if isinstance(snapshots, list):
            for item in snapshots:
                if isinstance(item, Mapping):
                    entries.append(dict(item))
        return entries

    def append(self, entry: Mapping[str, object]) -> None:
        """Append *entry* to the index."""
        entries = self.list_entries()
        entries.append(dict(entry))
        self.write({"snapshots": entries})

    def remove(self, snapshot_id: str) -> None:
        """Drop the entry for *snapshot_id* if present."""
        entries = [
            entry for entry in self.list_entries() if str(entry.get("id", "")) != snapshot_id
        ]
        self.write({"snapshots": entries})

    def update_entry(
        self,
        snapshot_id: str,
        mutator: Callable[[dict[str, object]], None],
    ) -> dict[str, object]:
        """Apply *mutator* to the entry for *snapshot_id* and persist changes."""
        entries = self.list_entries()
        for index, entry in enumerate(entries):
            if str(entry.get("id", "")) == snapshot_id:
                mutable = dict(entry)
                mutator(mutable)
                entries[index] = mutable
                self.write({"snapshots": entries})
                return mutable
        raise SnapshotRegistryError(f"Snapshot '{snapshot_id}' not found in index.")

    def generate_identifier(self, kind: str) -> str:
        """Return a unique, timestamped snapshot identifier."""
        timestamp = datetime.now(tz=UTC).strftime("%Y%m%d-%H%M%S")
        return f"{timestamp}-{kind}-{secrets.token_hex(3)}"


class BackupManager:
    """Capture and restore snapshots for one install run."""

    def __init__(
        self,
        registry: SnapshotRegistry,
        disk: DiskProvider,
        folders: AppFolders,
        *,
        data_files: tuple[str, ...] = (),
        retain: int = 3,
    ) -> None:
        """Initialise the manager with its index, disk provider and folders."""
        self.registry = registry
        self.disk = disk
        self.folders = folders
        self.data_files = data_files
        self.retain = max(1, retain)

    # Queries ----------------------------------------------------------
    def list_snapshots(self, kind: str | None = None) -> list[BackupSnapshot]:
        """Return snapshots (optionally of one *kind*), oldest first."""
        snapshots = [BackupSnapshot.from_entry(entry) for entry in self.registry.list_entries()]
        if kind is not None:
            snapshots = [snapshot for snapshot in snapshots if snapshot.kind == kind]
        return snapshots

    def latest(
        self,
        kind: str = INSTALL_KIND,
        *,
        source: Path | None = None,
    ) -> BackupSnapshot | None:
        """Return the most recent snapshot of *kind*, optionally taken from *source*."""
        snapshots = self.list_snapshots(kind)
        if source is not None:
            snapshots = [snapshot for snapshot in snapshots if snapshot.source == Path(source)]
        return snapshots[-1] if snapshots else None

    # Capture ----------------------------------------------------------
    def backup(self, installation_folder: Path) -> BackupSnapshot:
        """Copy the installation folder into a new snapshot."""
        source = Path(installation_folder)
        LOGGER.info("Creating backup of existing installation")
        snapshot_id = self.registry.generate_identifier(INSTALL_KIND)
        destination = self.folders.install_backups / snapshot_id
        try:
            self.registry.ensure_root()
            self.disk.transfer_folder(source, destination, TransferMode.COPY, overwrite=False)
            manifest = build_manifest(destination)
            snapshot = BackupSnapshot(
                id=snapshot_id,
                kind=INSTALL_KIND,
                source=source,
                path=destination,
                created_at=_now_iso(),
                manifest=manifest,
                size_bytes=manifest_size(destination, manifest),
            )
            self.registry.append(snapshot.to_entry())
        except (OSError, SnapshotRegistryError) as exc:
            shutil.rmtree(destination, ignore_errors=True)
            raise BackupFailedError(f"Failed to back up {source}: {exc}") from exc

        self._prune(INSTALL_KIND, source)
        LOGGER.info("Backup %s captured %d files", snapshot_id, len(manifest))
        return snapshot

    def backup_app_data(self) -> BackupSnapshot | None:
        """Copy application-state files into a new snapshot."""
        data_dir = self.folders.app_data
        if not data_dir.is_dir():
            LOGGER.warning("App data folder %s not found; skipping app data backup", data_dir)
            return None

        LOGGER.info("Backing up app data")
        snapshot_id = self.registry.generate_identifier(APPDATA_KIND)
        destination = self.folders.app_data_backups / snapshot_id
        try:
            self.registry.ensure_root()
            destination.mkdir(parents=True, exist_ok=True)
            for name in self.data_files:
                candidate = data_dir / name
                if not candidate.is_file():
                    LOGGER.warning("App data file %s not found; skipping", candidate)
                    continue
                self.disk.copy_file(candidate, destination / name, overwrite=True)
            manifest = build_manifest(destination)
            snapshot = BackupSnapshot(
                id=snapshot_id,
                kind=APPDATA_KIND,
                source=data_dir,
                path=destination,
                created_at=_now_iso(),
                manifest=manifest,
                size_bytes=manifest_size(destination, manifest),
            )
            self.registry.append(snapshot.to_entry())
        except (OSError, SnapshotRegistryError) as exc:
            shutil.rmtree(destination, ignore_errors=True)
            raise BackupFailedError(f"Failed to back up app data {data_dir}: {exc}") from exc

        self._prune(APPDATA_KIND, data_dir)
        return snapshot

    # Restore ----------------------------------------------------------
    def restore(
        self,
        installation_folder: Path,
        snapshot: BackupSnapshot | None = None,
    ) -> BackupSnapshot:
        """Reinstate *snapshot* over *installation_folder*.

        Without an explicit snapshot the newest installation snapshot taken from
        the same folder is used.
        """
        target = Path(installation_folder)
        if snapshot is None:
            try:
                snapshot = self.latest(INSTALL_KIND, source=target)
            except SnapshotRegistryError as exc:
                raise RestoreFailedError(f"Unable to read snapshot index: {exc}") from exc
        if snapshot is None or not snapshot.path.is_dir():
            raise RestoreFailedError(f"No installation snapshot available to restore {target}")

        LOGGER.info("Attempting to rollback upgrade from snapshot %s", snapshot.id)
        try:
            target.mkdir(parents=True, exist_ok=True)
            self.disk.empty_folder(target)
            self.disk.transfer_folder(snapshot.path, target, TransferMode.COPY, overwrite=True)
            problems = diff_manifest(target, snapshot.manifest)
        except OSError as exc:
            raise RestoreFailedError(
                f"Failed to restore {target} from snapshot {snapshot.id}: {exc}"
            ) from exc

        if problems:
            raise RestoreFailedError(
                f"Restored files in {target} do not match snapshot {snapshot.id}: "
                + "; ".join(problems[:10])
            )

        try:
            self.registry.update_entry(
                snapshot.id,
                lambda entry: entry.update({"status": "restored", "restored_at": _now_iso()}),
            )
        except SnapshotRegistryError as exc:
            LOGGER.warning("Restored %s but could not update snapshot index: %s", target, exc)
        LOGGER.info("Restored %s from snapshot %s", target, snapshot.id)
        return snapshot

    # Retention --------------------------------------------------------
    def _prune(self, kind: str, source: Path) -> None:
        try:
            snapshots = [
                snapshot for snapshot in self.list_snapshots(kind) if snapshot.source == source
            ]
            for stale in snapshots[: max(0, len(snapshots) - self.retain)]:
                shutil.rmtree(stale.path, ignore_errors=True)
                self.registry.remove(stale.id)
                LOGGER.debug("Pruned snapshot %s", stale.id)
        except SnapshotRegistryError as exc:
            LOGGER.warning("Unable to prune %s snapshots: %s", kind, exc)


__all__ = [
    "APPDATA_KIND",
    "INSTALL_KIND",
    "BackupManager",
    "BackupSnapshot",
    "SnapshotRegistry",
    "SnapshotRegistryError",
]
