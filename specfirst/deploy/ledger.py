"""Ledger — ordered record of changes made by a transaction.

Used as a context manager. Every change is recorded *before* it is made;
if the block exits with any exception (including ``KeyboardInterrupt`` and a
SIGTERM received while the block runs) the ledger is walked in reverse and
each change undone. ``commit()`` discards the ledger so a normal exit keeps
the changes::

    with Ledger() as ledger:
        ledger.created_file(dst)
        shutil.copy2(src, dst)
        ledger.commit()
"""

from __future__ import annotations

import logging
import signal
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)


class TransactionInterrupted(KeyboardInterrupt):
    """Raised inside a transaction when the process receives SIGTERM."""


@dataclass
class Entry:
    kind: str  # dir | file | modified | action
    path: Path | None = None
    original: bytes | None = None
    action: Callable[[], None] | None = None
    description: str = ""


class Ledger:
    """Reverse-order undo log with guaranteed cleanup."""

    def __init__(self, trap_signals: bool = True):
        self.entries: list[Entry] = []
        self.committed = False
        self.rollback_errors: list[str] = []
        self._trap_signals = trap_signals
        self._previous_handler = None
        self._trapped = False

    # -- recording ----------------------------------------------------------

    def created_dir(self, path: Path) -> None:
        self.entries.append(Entry("dir", Path(path)))

    def created_file(self, path: Path) -> None:
        self.entries.append(Entry("file", Path(path)))

    def modified_file(self, path: Path) -> None:
        """Record a file about to be overwritten (or created, if absent)."""
        path = Path(path)
        if path.is_file():
            self.entries.append(Entry("modified", path, original=path.read_bytes()))
        else:
            self.entries.append(Entry("file", path))

    def on_rollback(self, action: Callable[[], None], description: str = "") -> None:
        """Run *action* when the walk back reaches this point."""
        self.entries.append(Entry("action", action=action, description=description))

    def ensure_dir(self, path: Path) -> None:
        """Create *path* and any missing parents, recording each one created."""
        path = Path(path)
        missing = []
        current = path
        while not current.exists():
            missing.append(current)
            if current.parent == current:
                break
            current = current.parent
        for directory in reversed(missing):
            self.created_dir(directory)
            directory.mkdir()

    # -- outcome ------------------------------------------------------------

    def commit(self) -> None:
        self.entries.clear()
        self.committed = True

    def rollback(self) -> list[str]:
        """Undo every recorded change, newest first. Returns undo failures."""
        errors = []
        for entry in reversed(self.entries):
            try:
                self._undo(entry)
            except Exception as e:
                errors.append(f"{entry.kind} {entry.path or entry.description}: {e}")
                logger.error("Rollback step failed for %s: %s", entry.path or entry.description, e)
        self.entries.clear()
        self.rollback_errors = errors
        return errors

    @staticmethod
    def _undo(entry: Entry) -> None:
        if entry.kind == "file":
            entry.path.unlink(missing_ok=True)
        elif entry.kind == "modified":
            entry.path.parent.mkdir(parents=True, exist_ok=True)
            entry.path.write_bytes(entry.original)
        elif entry.kind == "dir":
            if entry.path.is_dir() and not any(entry.path.iterdir()):
                entry.path.rmdir()
            elif entry.path.exists():
                logger.warning("Leaving non-empty directory %s in place", entry.path)
        elif entry.kind == "action":
            entry.action()

    # -- context manager ----------------------------------------------------

    def __enter__(self) -> Ledger:
        if self._trap_signals and threading.current_thread() is threading.main_thread():
            self._previous_handler = signal.signal(signal.SIGTERM, _raise_interrupted)
            self._trapped = True
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc_type is not None and not self.committed:
                logger.debug("Rolling back %d change(s) after %s", len(self.entries), exc_type.__name__)
                self.rollback()
        finally:
            if self._trapped:
                signal.signal(signal.SIGTERM, self._previous_handler or signal.SIG_DFL)
                self._trapped = False
        return False


def _raise_interrupted(signum, frame):
    raise TransactionInterrupted(f"Received signal {signum}")
