"""Clean install of the package into an empty (or absent) target.

Every directory and file the install creates goes into a ``Ledger`` before it
is created. Any failure, Ctrl-C or SIGTERM included, walks the ledger back so
the target is left exactly as it was found, then ``InstallFailed`` is raised
with the original error chained.
"""

from __future__ import annotations

import logging
import shutil
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from specfirst.deploy.layout import CATEGORIES, SourceTree
from specfirst.deploy.ledger import Ledger
from specfirst.deploy.shared import SharedMerge, merge_shared
from specfirst.deploy.store import DeploymentStore, InstallRecord
from specfirst.errors import InstallFailed, MissingFileError
from specfirst.versioning import marker
from specfirst.versioning.semver import Version

logger = logging.getLogger(__name__)

Copier = Callable[[Path, Path], object]


@dataclass
class InstallResult:
    version: Version
    target: Path
    counts: dict[str, int] = field(default_factory=dict)
    files: list[str] = field(default_factory=list)
    shared: SharedMerge | None = None

    @property
    def total(self) -> int:
        return sum(self.counts.values())


class InstallTransaction:
    """Copy the source tree into the target with full rollback on failure."""

    def __init__(
        self,
        source: SourceTree,
        store: DeploymentStore,
        shared_mode: str = "append",
        copier: Copier = shutil.copy2,
        trap_signals: bool = True,
    ):
        self.source = source
        self.store = store
        self.layout = store.layout
        self.shared_mode = shared_mode
        self.copier = copier
        self.trap_signals = trap_signals

    def run(self) -> InstallResult:
        # Precondition failures are raised as-is: nothing has been touched yet.
        if not self.source.exists():
            raise MissingFileError(self.source.root)
        version = marker.read(self.source.version_file)
        artifacts = self.source.artifacts()

        logger.info("Installing %s %s into %s", self.layout.namespace, version, self.layout.target_root)
        result = InstallResult(version=version, target=self.layout.target_root)
        counts = Counter({c: 0 for c in CATEGORIES})

        try:
            with Ledger(trap_signals=self.trap_signals) as ledger:
                ledger.ensure_dir(self.layout.target_root)
                ledger.ensure_dir(self.layout.meta_dir)

                for artifact in artifacts:
                    dst = artifact.destination(self.layout)
                    ledger.ensure_dir(dst.parent)
                    ledger.modified_file(dst)
                    self.copier(artifact.source, dst)
                    counts[artifact.category] += 1
                    result.files.append(self.layout.relative(dst))
                    logger.debug("Installed %s", dst)

                result.shared = merge_shared(
                    self.layout, self.source.shared_path, self.shared_mode, ledger
                )

                self._write_metadata(ledger, version, result)
                ledger.commit()
        except (Exception, KeyboardInterrupt) as e:
            raise InstallFailed(
                f"Install into {self.layout.target_root} failed and was rolled back: {e}"
            ) from e

        result.counts = dict(counts)
        logger.info("Installed %d file(s)", result.total)
        return result

    def _write_metadata(self, ledger: Ledger, version: Version, result: InstallResult) -> None:
        ledger.modified_file(self.layout.marker)
        backup = self.store.write_version(version)
        if backup is not None:
            ledger.created_file(backup)

        created_dirs = [
            self.layout.relative(e.path)
            for e in ledger.entries
            if e.kind == "dir" and self.layout.contains(e.path) and e.path != self.layout.target_root
        ]
        record = InstallRecord(
            package=self.layout.namespace,
            version=str(version),
            shared_mode=self.shared_mode,
            shared_created=bool(result.shared and result.shared.created),
            created_dirs=created_dirs,
        )
        record.touch()
        ledger.modified_file(self.layout.install_record)
        self.store.write_record(record)

        ledger.modified_file(self.layout.manifest)
        self.store.write_manifest(result.files)
