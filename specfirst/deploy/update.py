"""In-place update of an installed package.

Before anything is overwritten, every owned path (and the metadata) is
copied into a fresh snapshot under ``<meta>/backups/<timestamp>/``. Files are
then overwritten in place, so anything the user added next to them survives.
On failure the files the update created are deleted, the snapshot is copied
back and ``UpdateFailed`` is raised. On success old snapshots beyond the
retention count are pruned, oldest first.
"""

from __future__ import annotations

import logging
import shutil
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

from specfirst.deploy.install import Copier
from specfirst.deploy.layout import CATEGORIES, SourceTree
from specfirst.deploy.ledger import Ledger
from specfirst.deploy.shared import SharedMerge, merge_shared
from specfirst.deploy.store import DeploymentStore, InstallRecord
from specfirst.errors import MissingFileError, UpdateFailed
from specfirst.versioning import marker
from specfirst.versioning.semver import Version

logger = logging.getLogger(__name__)


@dataclass
class UpdateResult:
    version: Version
    target: Path
    previous_version: str = ""
    backup_dir: Path | None = None
    counts: dict[str, int] = field(default_factory=dict)
    created: list[str] = field(default_factory=list)
    pruned: list[Path] = field(default_factory=list)
    shared: SharedMerge | None = None

    @property
    def total(self) -> int:
        return sum(self.counts.values())


class UpdateTransaction:
    """Back up, overwrite in place, restore on failure, prune on success."""

    def __init__(
        self,
        source: SourceTree,
        store: DeploymentStore,
        shared_mode: str = "append",
        retention: int = 5,
        copier: Copier = shutil.copy2,
        trap_signals: bool = True,
    ):
        self.source = source
        self.store = store
        self.layout = store.layout
        self.shared_mode = shared_mode
        self.retention = retention
        self.copier = copier
        self.trap_signals = trap_signals

    def run(self) -> UpdateResult:
        if not self.store.is_installed():
            raise UpdateFailed(f"Nothing installed at {self.layout.target_root}")
        if not self.source.exists():
            raise MissingFileError(self.source.root)

        version = marker.read(self.source.version_file)
        previous = self.store.read_record()
        artifacts = self.source.artifacts()
        owned = self.store.read_manifest() or []

        result = UpdateResult(
            version=version,
            target=self.layout.target_root,
            previous_version=previous.version if previous else "",
        )
        logger.info(
            "Updating %s %s -> %s in %s",
            self.layout.namespace,
            result.previous_version or "?",
            version,
            self.layout.target_root,
        )

        counts = Counter({c: 0 for c in CATEGORIES})
        installed: list[str] = []

        try:
            with Ledger(trap_signals=self.trap_signals) as ledger:
                result.backup_dir = self.store.snapshot(self._snapshot_paths(owned, artifacts))
                backup = result.backup_dir
                ledger.on_rollback(lambda: self.store.restore(backup), f"restore {backup.name}")

                for artifact in artifacts:
                    dst = artifact.destination(self.layout)
                    rel = self.layout.relative(dst)
                    ledger.ensure_dir(dst.parent)
                    if not dst.exists():
                        ledger.created_file(dst)
                        result.created.append(rel)
                    self.copier(artifact.source, dst)
                    counts[artifact.category] += 1
                    installed.append(rel)
                    logger.debug("Updated %s", dst)

                result.shared = merge_shared(
                    self.layout,
                    self.source.shared_path,
                    self.shared_mode,
                    ledger,
                    first_install=False,
                )

                backup_marker = self.store.write_version(version)
                if backup_marker is not None:
                    ledger.created_file(backup_marker)

                record = previous or InstallRecord(package=self.layout.namespace, version="")
                record.version = str(version)
                record.shared_mode = self.shared_mode
                record.shared_created = record.shared_created or bool(
                    result.shared and result.shared.created
                )
                record.created_dirs = sorted(
                    set(record.created_dirs)
                    | {
                        self.layout.relative(e.path)
                        for e in ledger.entries
                        if e.kind == "dir" and self.layout.contains(e.path)
                    }
                )
                record.touch()
                self.store.write_record(record)
                self.store.write_manifest(owned + installed)
                ledger.commit()
        except (Exception, KeyboardInterrupt) as e:
            raise UpdateFailed(
                f"Update of {self.layout.target_root} failed, previous deployment restored: {e}"
            ) from e

        result.counts = dict(counts)
        result.pruned = self.store.prune_backups(self.retention)
        logger.info("Updated %d file(s), %d new", result.total, len(result.created))
        return result

    def _snapshot_paths(self, owned: list[str], artifacts) -> list[str]:
        paths = set(owned)
        for artifact in artifacts:
            dst = artifact.destination(self.layout)
            if dst.is_file():
                paths.add(self.layout.relative(dst))
        for meta in self.layout.metadata_files():
            paths.add(self.layout.relative(meta))
        paths.add(self.layout.relative(self.layout.shared_path))
        if self.layout.preinstall_dir.is_dir():
            for p in self.layout.preinstall_dir.rglob("*"):
                if p.is_file():
                    paths.add(self.layout.relative(p))
        return sorted(paths)
