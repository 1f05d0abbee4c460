"""Fetch the package source from a git repository."""

from __future__ import annotations

import logging
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from git import GitCommandError, Repo

from specfirst.errors import GitError

logger = logging.getLogger(__name__)


@contextmanager
def cloned_checkout(repo_url: str) -> Iterator[Path]:
    """Shallow-clone *repo_url* into a temp directory for the duration of the block.

    The clone is deleted on exit, whether or not the block succeeded.
    """
    with tempfile.TemporaryDirectory(prefix="specfirst_") as tmp:
        clone_dir = Path(tmp) / "checkout"
        logger.info("Cloning %s", repo_url)
        try:
            Repo.clone_from(repo_url, clone_dir, depth=1)
        except GitCommandError as e:
            raise GitError(f"Could not clone {repo_url}: {e}") from e
        yield clone_dir


def source_root_in(checkout: Path, source_root: Path) -> Path:
    """Resolve a configured source root against a fresh checkout."""
    if source_root.is_absolute():
        return source_root
    return checkout / source_root
