"""Shared instructions document.

The host application reads one instructions file from the target root, and
other packages may write to it too. In ``append`` mode the package owns only
the lines between its delimiters::

    <!-- specfirst:begin -->
    ...
    <!-- specfirst:end -->

In ``replace`` mode the whole file is overwritten and the file found before
the first install is kept under ``<meta>/preinstall/`` for uninstall.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from specfirst.deploy.layout import DeploymentLayout
from specfirst.deploy.ledger import Ledger
from specfirst.errors import SharedSectionError
from specfirst.versioning.marker import atomic_write_text

logger = logging.getLogger(__name__)


def delimiters(namespace: str) -> tuple[str, str]:
    return f"<!-- {namespace}:begin -->", f"<!-- {namespace}:end -->"


def find_section(text: str, namespace: str) -> tuple[int, int] | None:
    """Line indexes of the begin and end delimiters, or None if absent.

    Raises SharedSectionError for duplicated, nested or unbalanced
    delimiters.
    """
    begin, end = delimiters(namespace)
    lines = text.splitlines()
    starts = [i for i, line in enumerate(lines) if line.strip() == begin]
    ends = [i for i, line in enumerate(lines) if line.strip() == end]

    if not starts and not ends:
        return None
    if len(starts) > 1 or len(ends) > 1:
        raise SharedSectionError(
            f"Found {len(starts)} begin and {len(ends)} end delimiter(s) for '{namespace}'"
        )
    if len(starts) != len(ends):
        raise SharedSectionError(f"Unbalanced section delimiters for '{namespace}'")
    if ends[0] < starts[0]:
        raise SharedSectionError(f"End delimiter precedes begin delimiter for '{namespace}'")
    return starts[0], ends[0]


def upsert_section(text: str, namespace: str, body: str) -> str:
    """Insert the package section, or replace an existing one in place."""
    begin, end = delimiters(namespace)
    section = [begin, *body.strip("\n").splitlines(), end]
    lines = text.splitlines()

    span = find_section(text, namespace)
    if span is not None:
        start, stop = span
        lines[start : stop + 1] = section
        return "\n".join(lines) + "\n"

    while lines and not lines[-1].strip():
        lines.pop()
    if lines:
        lines.append("")
    return "\n".join(lines + section) + "\n"


def remove_section(text: str, namespace: str) -> str:
    """Drop the package section and the blank line that separated it."""
    span = find_section(text, namespace)
    if span is None:
        return text

    lines = text.splitlines()
    start, stop = span
    before = lines[:start]
    after = lines[stop + 1 :]
    while before and not before[-1].strip():
        before.pop()
    while after and not after[0].strip():
        after.pop(0)

    if before and after:
        remaining = before + [""] + after
    else:
        remaining = before or after
    return "\n".join(remaining) + "\n" if remaining else ""


def check_section(layout: DeploymentLayout) -> None:
    """Raise SharedSectionError if the target file's delimiters are malformed."""
    path = layout.shared_path
    if path.is_file():
        find_section(path.read_text(encoding="utf-8"), layout.namespace)


# ---------------------------------------------------------------------------
# Install / uninstall
# ---------------------------------------------------------------------------


@dataclass
class SharedMerge:
    path: Path
    mode: str
    created: bool = False
    preserved: Path | None = None


def merge_shared(
    layout: DeploymentLayout,
    source: Path,
    mode: str,
    ledger: Ledger,
    first_install: bool = True,
) -> SharedMerge | None:
    """Merge the source instructions document into the target.

    Every change is recorded in *ledger* before it is made. Returns None when
    the source tree ships no shared document.
    """
    if not source.is_file():
        return None

    target = layout.shared_path
    existed = target.is_file()
    merge = SharedMerge(path=target, mode=mode, created=not existed)
    content = source.read_text(encoding="utf-8")

    if mode == "replace":
        if existed and first_install:
            merge.preserved = _preserve(layout, target, ledger)
        ledger.modified_file(target)
        shutil.copy2(source, target)
    else:
        current = target.read_text(encoding="utf-8") if existed else ""
        merged = upsert_section(current, layout.namespace, content)
        ledger.modified_file(target)
        atomic_write_text(target, merged)

    logger.debug("Merged %s into %s (%s)", source, target, mode)
    return merge


def _preserve(layout: DeploymentLayout, target: Path, ledger: Ledger) -> Path:
    backup = layout.preinstall_dir / target.name
    ledger.ensure_dir(backup.parent)
    ledger.modified_file(backup)
    shutil.copy2(target, backup)
    logger.info("Preserved existing %s in %s", target.name, backup.parent)
    return backup


def unmerge_shared(layout: DeploymentLayout, mode: str, created: bool) -> str | None:
    """Undo what install did to the shared file.

    Returns what was done (``restored``, ``removed``, ``excised``) or None
    when the file holds nothing of ours.
    """
    target = layout.shared_path
    preserved = layout.preinstall_dir / target.name

    if preserved.is_file():
        shutil.copy2(preserved, target)
        return "restored"

    if not target.is_file():
        return None

    if mode == "replace":
        if created:
            target.unlink()
            return "removed"
        logger.warning("No pre-install copy of %s, leaving it in place", target)
        return None

    text = target.read_text(encoding="utf-8")
    if find_section(text, layout.namespace) is None:
        return None

    remaining = remove_section(text, layout.namespace)
    if not remaining.strip():
        target.unlink()
        return "removed"
    atomic_write_text(target, remaining)
    return "excised"
