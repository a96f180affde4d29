"""Well-known folders used during an install run."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .config import AppConfig


@dataclass(frozen=True, slots=True)
class AppFolders:
    """Locations of the staged package, snapshots and application data."""

    update_package: Path
    backup_root: Path
    app_data: Path

    @classmethod
    def from_config(cls, config: AppConfig, *, package_dir: Path | None = None) -> AppFolders:
        """Build folder locations from *config*, honouring a package override."""
        return cls(
            update_package=(package_dir or config.update_package_dir).expanduser(),
            backup_root=config.backups.root,
            app_data=config.app.data_dir,
        )

    @property
    def install_backups(self) -> Path:
        """Directory holding installation snapshots."""
        return self.backup_root / "install"

    @property
    def app_data_backups(self) -> Path:
        """Directory holding application-data snapshots."""
        return self.backup_root / "appdata"


__all__ = ["AppFolders"]
