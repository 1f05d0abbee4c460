"""Directory lifecycle manager.

A workspace root holds one live run and the archive of earlier ones::

    <root>/.mode                     next transition (first | update | new)
    <root>/current.json              pointer into the archive, if any
    <root>/current/spec.md           primary artifact
    <root>/current/work/             working files
    <root>/archive/<id>/...          archived runs, ids sort by time

The mode flag is consumed once: every successful transition clears it, so a
bare re-run behaves like ``first``. After ``new`` the live spec is gone and
``current_artifact()`` resolves through the pointer into the archive entry
until a new spec is written.
"""

from __future__ import annotations

import json
import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable

from specfirst.errors import LifecycleError
from specfirst.versioning.marker import atomic_write_text, backup_path

logger = logging.getLogger(__name__)

MODES = ("first", "update", "new")
ARCHIVE_STAMP = "%Y%m%d-%H%M%S"


@dataclass
class Transition:
    mode: str
    archive_id: str | None = None
    backup: Path | None = None
    cleared: int = 0


class DirectoryLifecycleManager:
    def __init__(
        self,
        root: str | Path,
        artifact_name: str = "spec.md",
        work_name: str = "work",
        mover: Callable[[str, str], object] = shutil.move,
    ):
        self.root = Path(root)
        self.artifact_name = artifact_name
        self.work_name = work_name
        self.mover = mover

    # -- paths --------------------------------------------------------------

    @property
    def mode_file(self) -> Path:
        return self.root / ".mode"

    @property
    def pointer_file(self) -> Path:
        return self.root / "current.json"

    @property
    def current_dir(self) -> Path:
        return self.root / "current"

    @property
    def archive_dir(self) -> Path:
        return self.root / "archive"

    @property
    def artifact(self) -> Path:
        return self.current_dir / self.artifact_name

    @property
    def work_dir(self) -> Path:
        return self.current_dir / self.work_name

    # -- mode flag ----------------------------------------------------------

    def set_mode(self, mode: str) -> None:
        if mode not in MODES:
            raise LifecycleError(f"Unknown mode {mode!r} (expected one of {', '.join(MODES)})")
        atomic_write_text(self.mode_file, mode + "\n")

    def read_mode(self) -> str:
        if not self.mode_file.is_file():
            return "first"
        mode = self.mode_file.read_text(encoding="utf-8").strip() or "first"
        if mode not in MODES:
            raise LifecycleError(f"Invalid mode flag {mode!r} in {self.mode_file}")
        return mode

    # -- pointer ------------------------------------------------------------

    def pointer(self) -> str | None:
        """Archive id that "current" resolves into, or None."""
        if not self.pointer_file.is_file():
            return None
        try:
            data = json.loads(self.pointer_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise LifecycleError(f"Corrupt pointer record {self.pointer_file}: {e}") from e
        return data.get("archived")

    def current_artifact(self) -> Path | None:
        """The live spec if there is one, else the archived spec it points at."""
        if self.artifact.is_file():
            return self.artifact
        archived = self.pointer()
        if archived:
            candidate = self.archive_dir / archived / self.artifact_name
            if candidate.is_file():
                return candidate
        return None

    def archives(self) -> list[str]:
        if not self.archive_dir.is_dir():
            return []
        return sorted(p.name for p in self.archive_dir.iterdir() if p.is_dir())

    # -- transitions --------------------------------------------------------

    def run(self, mode: str | None = None) -> Transition:
        """Run one transition: *mode* if given, else the flag, else ``first``."""
        mode = mode or self.read_mode()
        if mode not in MODES:
            raise LifecycleError(f"Unknown mode {mode!r}")

        logger.debug("Running %s transition in %s", mode, self.root)
        transition = getattr(self, f"_{mode}")()

        self.work_dir.mkdir(parents=True, exist_ok=True)
        self.mode_file.unlink(missing_ok=True)
        return transition

    def _first(self) -> Transition:
        self.work_dir.mkdir(parents=True, exist_ok=True)
        # A fresh spec replaces whatever the pointer named.
        if self.artifact.is_file():
            self.pointer_file.unlink(missing_ok=True)
        return Transition(mode="first")

    def _update(self) -> Transition:
        transition = Transition(mode="update")
        if self.artifact.is_file():
            backup = backup_path(self.artifact)
            shutil.copy2(self.artifact, backup)
            transition.backup = backup
            logger.info("Backed up %s to %s", self.artifact_name, backup.name)

        if self.work_dir.is_dir():
            for child in self.work_dir.iterdir():
                if child.is_dir() and not child.is_symlink():
                    shutil.rmtree(child)
                else:
                    child.unlink()
                transition.cleared += 1
        return transition

    def _new(self) -> Transition:
        has_artifact = self.artifact.is_file()
        sources = [self.artifact] if has_artifact else []
        if self.work_dir.is_dir() and any(self.work_dir.iterdir()):
            sources.append(self.work_dir)
        if not sources:
            logger.info("Nothing to archive in %s", self.current_dir)
            return Transition(mode="new")

        archive_id = self._new_id()
        entry = self.archive_dir / archive_id
        moved: list[tuple[Path, Path]] = []
        try:
            entry.mkdir(parents=True)
            for src in sources:
                dst = entry / src.name
                self.mover(str(src), str(dst))
                moved.append((src, dst))
            # The pointer only ever names an entry that holds the artifact.
            if has_artifact:
                atomic_write_text(
                    self.pointer_file,
                    json.dumps({"archived": archive_id, "artifact": self.artifact_name}, indent=2) + "\n",
                )
        except OSError as e:
            self._undo_archive(entry, moved)
            raise LifecycleError(f"Could not archive current run as {archive_id}: {e}") from e

        logger.info("Archived current run as %s", archive_id)
        return Transition(mode="new", archive_id=archive_id)

    def _undo_archive(self, entry: Path, moved: list[tuple[Path, Path]]) -> None:
        restored = True
        for src, dst in reversed(moved):
            try:
                shutil.move(str(dst), str(src))
            except OSError as e:
                restored = False
                logger.error("Could not move %s back to %s: %s", dst, src, e)
        if restored:
            shutil.rmtree(entry, ignore_errors=True)
        else:
            logger.error("Leaving partial archive entry %s in place", entry)

    def _new_id(self) -> str:
        stamp = datetime.now().strftime(ARCHIVE_STAMP)
        candidate = stamp
        counter = 1
        while (self.archive_dir / candidate).exists():
            candidate = f"{stamp}-{counter:02d}"
            counter += 1
        return candidate
