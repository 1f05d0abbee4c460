"""Deployment store — the on-disk state owned by the package.

Holds the version marker, the install record, the manifest of owned paths
and the backup snapshots. Transactions receive a store instead of touching
these files directly, so tests can point one at a temporary directory.
"""

from __future__ import annotations

import json
import logging
import shutil
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from specfirst.deploy.layout import DeploymentLayout
from specfirst.errors import FormatError
from specfirst.versioning import marker
from specfirst.versioning.semver import Version

logger = logging.getLogger(__name__)

BACKUP_STAMP = "%Y%m%d-%H%M%S-%f"


@dataclass
class InstallRecord:
    """Contents of the ``.installed`` file."""

    package: str
    version: str
    installed_at: str = ""
    updated_at: str = ""
    shared_mode: str = "append"
    shared_created: bool = False
    created_dirs: list[str] = field(default_factory=list)

    def touch(self) -> None:
        now = datetime.now(timezone.utc).isoformat()
        if not self.installed_at:
            self.installed_at = now
        self.updated_at = now


class DeploymentStore:
    """Reads and writes the package's metadata under one target root."""

    def __init__(self, layout: DeploymentLayout):
        self.layout = layout

    # -- install record -----------------------------------------------------

    def is_installed(self) -> bool:
        return self.layout.install_record.is_file()

    def read_record(self) -> InstallRecord | None:
        path = self.layout.install_record
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise FormatError(str(path), f"Corrupt install record {path}: {e}") from e
        return InstallRecord(
            package=data.get("package", self.layout.namespace),
            version=data.get("version", ""),
            installed_at=data.get("installed_at", ""),
            updated_at=data.get("updated_at", ""),
            shared_mode=data.get("shared_mode", "append"),
            shared_created=data.get("shared_created", False),
            created_dirs=data.get("created_dirs", []),
        )

    def write_record(self, record: InstallRecord) -> None:
        marker.atomic_write_text(
            self.layout.install_record, json.dumps(asdict(record), indent=2) + "\n"
        )

    # -- version marker -----------------------------------------------------

    def read_version(self) -> Version:
        return marker.read(self.layout.marker)

    def write_version(self, version: Version) -> Path | None:
        return marker.write(self.layout.marker, version)

    # -- owned paths --------------------------------------------------------

    def read_manifest(self) -> list[str] | None:
        """Target-relative owned paths, or None when there is no manifest."""
        path = self.layout.manifest
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable manifest %s", path)
            return None
        return list(data.get("files", []))

    def write_manifest(self, files: list[str]) -> None:
        doc = {"package": self.layout.namespace, "files": sorted(set(files))}
        marker.atomic_write_text(self.layout.manifest, json.dumps(doc, indent=2) + "\n")

    # -- backups ------------------------------------------------------------

    def list_backups(self) -> list[Path]:
        """Backup snapshots, oldest first (names sort chronologically)."""
        base = self.layout.backups_dir
        if not base.is_dir():
            return []
        return sorted(p for p in base.iterdir() if p.is_dir() and p.name[:2] == "20")

    def new_backup_dir(self) -> Path:
        base = self.layout.backups_dir
        stamp = datetime.now().strftime(BACKUP_STAMP)
        candidate = base / stamp
        counter = 1
        while candidate.exists():
            candidate = base / f"{stamp}-{counter:02d}"
            counter += 1
        candidate.mkdir(parents=True)
        return candidate

    def snapshot(self, relative_paths: list[str]) -> Path:
        """Copy the given target-relative files into a fresh backup snapshot."""
        backup = self.new_backup_dir()
        try:
            for rel in relative_paths:
                src = self.layout.absolute(rel)
                if not src.is_file():
                    continue
                dst = backup / rel
                dst.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(src, dst)
        except BaseException:
            shutil.rmtree(backup, ignore_errors=True)
            raise
        logger.debug("Snapshot of %d path(s) written to %s", len(relative_paths), backup)
        return backup

    def restore(self, backup: Path) -> list[str]:
        """Copy every file of a snapshot back over the target."""
        restored = []
        for src in sorted(backup.rglob("*")):
            if not src.is_file():
                continue
            rel = src.relative_to(backup).as_posix()
            dst = self.layout.absolute(rel)
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dst)
            restored.append(rel)
        return restored

    def prune_backups(self, keep: int) -> list[Path]:
        """Delete all but the *keep* most recent snapshots."""
        backups = self.list_backups()
        if len(backups) <= keep:
            return []
        removed = []
        for old in backups[: len(backups) - keep]:
            try:
                shutil.rmtree(old)
            except OSError as e:
                logger.warning("Could not remove old backup %s: %s", old, e)
                continue
            removed.append(old)
            logger.debug("Removed old backup %s", old.name)
        return removed
