"""Uninstall — remove exactly what the package owns.

Owned files come from the manifest written at install time. When the
manifest is missing (an install from an older release, or a damaged one),
every file under the namespaced category directories is treated as owned.
Directories are only removed once empty, so a directory that still holds a
file the package does not own is left in place.

Removal is best effort: paths that cannot be removed are collected and
reported through ``UninstallPartialFailure``; nothing already removed is put
back.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from specfirst.deploy import shared
from specfirst.deploy.layout import CATEGORIES
from specfirst.deploy.store import DeploymentStore
from specfirst.errors import FormatError, UninstallPartialFailure

logger = logging.getLogger(__name__)

Confirm = Callable[["UninstallPlan"], bool]


@dataclass
class UninstallPlan:
    """What an uninstall would remove, shown to the user before confirming."""

    target: Path
    files: list[Path] = field(default_factory=list)
    version: str = ""
    from_manifest: bool = True
    shared_file: Path | None = None

    @property
    def empty(self) -> bool:
        return not self.files and self.shared_file is None


@dataclass
class UninstallResult:
    removed: list[Path] = field(default_factory=list)
    removed_dirs: list[Path] = field(default_factory=list)
    shared_action: str | None = None
    cancelled: bool = False
    nothing_installed: bool = False


class UninstallTransaction:
    """Plan, confirm, then remove the package's files from the target."""

    def __init__(self, store: DeploymentStore, confirm: Confirm):
        self.store = store
        self.layout = store.layout
        self.confirm = confirm

    def plan(self) -> UninstallPlan:
        record = self._record()
        plan = UninstallPlan(
            target=self.layout.target_root,
            version=record.version if record else "",
        )

        manifest = self.store.read_manifest()
        if manifest is not None:
            files = [self.layout.absolute(rel) for rel in manifest]
        else:
            plan.from_manifest = False
            files = []
            for directory in self.layout.category_dirs().values():
                if directory.is_dir():
                    files.extend(p for p in sorted(directory.rglob("*")) if p.is_file())
        plan.files = [p for p in files if p.exists() or p.is_symlink()]

        if self._has_shared_content(record):
            plan.shared_file = self.layout.shared_path
        return plan

    def run(self) -> UninstallResult:
        plan = self.plan()
        result = UninstallResult()

        if plan.empty and not self.store.is_installed():
            logger.info("Nothing to uninstall at %s", self.layout.target_root)
            result.nothing_installed = True
            return result

        # Malformed delimiters must stop us before anything is deleted.
        shared.check_section(self.layout)

        if not self.confirm(plan):
            logger.info("Uninstall cancelled")
            result.cancelled = True
            return result

        record = self._record()
        failures: list[Path] = []

        for path in plan.files:
            if not self.layout.contains(path.parent):
                logger.error("Refusing to delete %s outside %s", path, self.layout.target_root)
                failures.append(path)
                continue
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error("Could not remove %s: %s", path, e)
                failures.append(path)
                continue
            result.removed.append(path)

        try:
            result.shared_action = shared.unmerge_shared(
                self.layout,
                mode=record.shared_mode if record else "append",
                created=record.shared_created if record else False,
            )
        except OSError as e:
            logger.error("Could not clean up %s: %s", self.layout.shared_path, e)
            failures.append(self.layout.shared_path)

        failures.extend(self._remove_metadata())
        failures.extend(self._prune_dirs(record.created_dirs if record else [], result))

        if failures:
            raise UninstallPartialFailure(failures)
        logger.info("Removed %d file(s) from %s", len(result.removed), self.layout.target_root)
        return result

    def _record(self):
        try:
            return self.store.read_record()
        except FormatError as e:
            logger.warning("%s", e)
            return None

    def _has_shared_content(self, record) -> bool:
        path = self.layout.shared_path
        if (self.layout.preinstall_dir / path.name).is_file():
            return True
        if not path.is_file():
            return False
        if record is not None and record.shared_mode == "replace":
            return record.shared_created
        begin, _ = shared.delimiters(self.layout.namespace)
        return begin in path.read_text(encoding="utf-8")

    def _remove_metadata(self) -> list[Path]:
        meta = self.layout.meta_dir
        if not meta.is_dir():
            return []

        targets = [*self.layout.metadata_files(), self.layout.backups_dir, self.layout.preinstall_dir]
        targets.extend(meta.glob("VERSION.bak.*"))
        failures = []
        for path in targets:
            try:
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                elif path.exists():
                    path.unlink()
            except OSError as e:
                logger.error("Could not remove %s: %s", path, e)
                failures.append(path)
        return failures

    def _prune_dirs(self, created: list[str], result: UninstallResult) -> list[Path]:
        candidates = {self.layout.absolute(rel) for rel in created}
        for category in CATEGORIES:
            directory = self.layout.category_dir(category)
            candidates.add(directory)
            if directory.is_dir():
                candidates.update(p for p in directory.rglob("*") if p.is_dir())
            if directory.parent != self.layout.meta_dir:
                candidates.add(directory.parent)
        candidates.add(self.layout.meta_dir)

        # Deepest first so parents see their children already gone.
        ordered = sorted(
            (p for p in candidates if self.layout.contains(p) and p != self.layout.target_root),
            key=lambda p: len(p.parts),
            reverse=True,
        )
        failures = []
        for directory in ordered:
            if not directory.is_dir():
                continue
            if any(directory.iterdir()):
                logger.debug("Keeping non-empty directory %s", directory)
                continue
            try:
                directory.rmdir()
            except OSError as e:
                logger.error("Could not remove directory %s: %s", directory, e)
                failures.append(directory)
                continue
            result.removed_dirs.append(directory)
        return failures
