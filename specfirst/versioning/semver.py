"""Semantic versions — parse, validate, compare and increment.

Only plain ``MAJOR.MINOR.PATCH`` triples are accepted. Pre-release and build
suffixes are rejected so that every version has exactly one canonical text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from specfirst.errors import FormatError, InvalidFieldError

_VERSION_RE = re.compile(r"^([0-9]+)\.([0-9]+)\.([0-9]+)$")

INCREMENT_FIELDS = ("major", "minor", "patch")


class Comparison(Enum):
    """Result of comparing two versions (left relative to right)."""

    EQUAL = "=="
    GREATER = ">"
    LESS = "<"


@dataclass(frozen=True, order=True)
class Version:
    """A semantic version. Ordering is lexicographic over the triple."""

    major: int
    minor: int
    patch: int

    def __post_init__(self):
        for name in INCREMENT_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise FormatError(str(value), f"Version {name} must be a non-negative integer")

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


def parse(text: str) -> Version:
    """Parse canonical version text.

    Surrounding whitespace is ignored (marker files end with a newline), but
    anything else besides three dot-separated base-10 integers is rejected.
    """
    if text is None:
        raise FormatError("", "Version cannot be empty")
    stripped = text.strip()
    if not stripped:
        raise FormatError(text, "Version cannot be empty")

    match = _VERSION_RE.match(stripped)
    if not match:
        raise FormatError(stripped)

    major, minor, patch = (int(g) for g in match.groups())
    return Version(major, minor, patch)


def validate(text: str) -> bool:
    """Return True when *text* parses as a version."""
    try:
        parse(text)
    except FormatError:
        return False
    return True


def compare(a: Version | str, b: Version | str) -> Comparison:
    """Compare two versions; strings are parsed first."""
    left = parse(a) if isinstance(a, str) else a
    right = parse(b) if isinstance(b, str) else b

    if left == right:
        return Comparison.EQUAL
    return Comparison.GREATER if left > right else Comparison.LESS


def increment(version: Version | str, field: str) -> Version:
    """Return the next version for *field*.

    A major bump resets minor and patch; a minor bump resets patch.
    """
    current = parse(version) if isinstance(version, str) else version

    if field == "major":
        return Version(current.major + 1, 0, 0)
    if field == "minor":
        return Version(current.major, current.minor + 1, 0)
    if field == "patch":
        return Version(current.major, current.minor, current.patch + 1)
    raise InvalidFieldError(field)
