"""Error types raised by specfirst.

Every error derives from ``SpecFirstError`` so the CLI can turn expected
failures into a diagnostic and a non-zero exit code without a traceback.
"""

from __future__ import annotations

from pathlib import Path


class SpecFirstError(Exception):
    """Base class for all specfirst errors."""


# ── Versions ─────────────────────────────────────────────────────────


class FormatError(SpecFirstError, ValueError):
    """Text is not a valid ``MAJOR.MINOR.PATCH`` version (or changelog)."""

    def __init__(self, value: str, message: str = ""):
        self.value = value
        super().__init__(message or f"Invalid version format: {value!r} (expected: X.Y.Z)")


class InvalidFieldError(SpecFirstError, ValueError):
    """Increment field is not one of major, minor, patch."""

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(
            f"Invalid increment type: {field_name!r} (must be major, minor, or patch)"
        )


class MissingFileError(SpecFirstError, FileNotFoundError):
    """A required marker file does not exist."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        super().__init__(f"VERSION file not found at {self.path}")


class EmptyFileError(SpecFirstError):
    """A marker file exists but holds no version."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        super().__init__(f"VERSION file is empty: {self.path}")


class WriteError(SpecFirstError, OSError):
    """An atomic write (or its backup) could not be completed."""


# ── Transactions ─────────────────────────────────────────────────────


class InstallFailed(SpecFirstError):
    """Install failed; the target has already been rolled back."""


class UpdateFailed(SpecFirstError):
    """Update failed; the previous deployment has already been restored."""


class UninstallPartialFailure(SpecFirstError):
    """Some owned paths could not be removed."""

    def __init__(self, paths: list[Path]):
        self.paths = list(paths)
        listing = ", ".join(str(p) for p in self.paths)
        super().__init__(f"Could not remove {len(self.paths)} path(s): {listing}")


class SharedSectionError(SpecFirstError):
    """A shared file holds duplicated or unbalanced section delimiters."""


class LifecycleError(SpecFirstError):
    """A working-directory lifecycle transition could not be completed."""


class ConfigError(SpecFirstError):
    """Configuration file or environment value is invalid."""


class GitError(SpecFirstError):
    """A git operation failed (gate query or source clone)."""
