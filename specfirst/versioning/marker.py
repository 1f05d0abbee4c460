"""Version marker file — the single-line ``VERSION`` file.

The marker is the source of truth for the deployed (or to-be-released)
version. Reads are strict: a missing, blank or malformed file is an error,
never silently replaced by a default. Writes back up the previous file with
a timestamp suffix and then replace the marker atomically.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from specfirst.errors import EmptyFileError, MissingFileError, WriteError
from specfirst.versioning.semver import Version, parse

logger = logging.getLogger(__name__)

MARKER_NAME = "VERSION"
BACKUP_INFIX = ".bak."


@dataclass
class MarkerInfo:
    """Where a marker lives and what it says."""

    version: Version
    path: Path
    location: Path
    mode: str  # repository | installed | metadata | explicit


def read(path: str | Path) -> Version:
    """Read and parse the marker at *path*."""
    marker = Path(path)
    if not marker.is_file():
        raise MissingFileError(marker)

    text = marker.read_text(encoding="utf-8").strip()
    if not text:
        raise EmptyFileError(marker)

    return parse(text)


def write(path: str | Path, version: Version | str) -> Path | None:
    """Write *version* to *path*, backing up any existing marker first.

    Returns the backup path, or None when there was nothing to back up.
    """
    marker = Path(path)
    value = parse(version) if isinstance(version, str) else version

    backup = None
    if marker.exists():
        backup = backup_path(marker)
        try:
            shutil.copy2(marker, backup)
        except OSError as e:
            raise WriteError(f"Failed to create backup of {marker}: {e}") from e
        logger.debug("Backed up %s to %s", marker, backup)

    atomic_write_text(marker, f"{value}\n")
    logger.debug("Wrote version %s to %s", value, marker)
    return backup


def atomic_write_text(path: Path, content: str) -> None:
    """Write *content* through a temp file in the same directory, then rename."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    except OSError as e:
        raise WriteError(f"Failed to write {path}: {e}") from e

    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise WriteError(f"Failed to write {path}: {e}") from e


def list_backups(path: str | Path) -> list[Path]:
    """Return the timestamped backups of a marker, oldest first."""
    marker = Path(path)
    if not marker.parent.is_dir():
        return []
    prefix = marker.name + BACKUP_INFIX
    return sorted(p for p in marker.parent.iterdir() if p.name.startswith(prefix))


def resolve_marker(start: str | Path = ".", namespace: str = "specfirst") -> MarkerInfo:
    """Locate the marker for the current execution context.

    Checked in order: repository mode (``framework/VERSION``), installed mode
    (``./VERSION``) and metadata mode (``./.<namespace>/VERSION``).
    """
    base = Path(start)
    candidates = [
        (base / "framework", "repository"),
        (base, "installed"),
        (base / f".{namespace}", "metadata"),
    ]
    for location, mode in candidates:
        marker = location / MARKER_NAME
        if marker.is_file():
            return MarkerInfo(version=read(marker), path=marker, location=location, mode=mode)

    raise MissingFileError(base / "framework" / MARKER_NAME)


def info(path: str | Path) -> MarkerInfo:
    """Describe an explicitly given marker file."""
    marker = Path(path)
    return MarkerInfo(version=read(marker), path=marker, location=marker.parent, mode="explicit")


def backup_path(marker: Path) -> Path:
    """Timestamped backup name next to *marker*, with a -N suffix on collision."""
    stamp = datetime.now().strftime("%Y%m%d%H%M%S")
    candidate = marker.with_name(f"{marker.name}{BACKUP_INFIX}{stamp}")
    counter = 1
    while candidate.exists():
        candidate = marker.with_name(f"{marker.name}{BACKUP_INFIX}{stamp}-{counter}")
        counter += 1
    return candidate
