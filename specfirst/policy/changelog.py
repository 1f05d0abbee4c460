"""Changelog validation for version bumps.

A changelog follows the Keep a Changelog layout::

    # Changelog

    ## [1.2.0] - 2026-03-01
    ### Added
    - ...

When a bump is required the section for the *new* version must exist and
carry at least one ``###`` category. All checks run; failures accumulate
rather than stopping at the first.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from specfirst.versioning.semver import Version

# ---------------------------------------------------------------------------
# Issue codes
# ---------------------------------------------------------------------------

MISSING_CHANGELOG = "missing-changelog"
MISSING_TITLE = "missing-title"
MISSING_VERSION_HEADERS = "missing-version-headers"
MISSING_CURRENT_VERSION = "missing-current-version"
MISSING_CATEGORIES = "missing-categories"

_MESSAGES = {
    MISSING_CHANGELOG: "CHANGELOG.md is required when version is bumped",
    MISSING_TITLE: "Changelog must start with a '# Changelog' title",
    MISSING_VERSION_HEADERS: "Changelog has no '## [X.Y.Z]' version sections",
    MISSING_CURRENT_VERSION: "Version {version} must be documented in the changelog",
    MISSING_CATEGORIES: "No change categories found for version {version} (### Added, ### Changed, ...)",
}

# ---------------------------------------------------------------------------
# Regex helpers
# ---------------------------------------------------------------------------

_TITLE_RE = re.compile(r"^#[ \t]+Changelog\b", re.MULTILINE | re.IGNORECASE)

# "## [1.2.3] - 2026-01-31", optionally followed by a title such as
# " - Codename"; the date part is optional too, e.g. "## [Unreleased]"
_SECTION_RE = re.compile(
    r"^##[ \t]+\[(?P<version>[^\]\n]+)\](?:[ \t]*-[ \t]*(?P<date>\S+))?(?P<title>[^\n]*)$",
    re.MULTILINE,
)

_CATEGORY_RE = re.compile(r"^###[ \t]+(?P<name>\S.*?)[ \t]*$", re.MULTILINE)


@dataclass
class ChangelogSection:
    """One ``## [version]`` section."""

    version: str
    date: str = ""
    categories: list[str] = field(default_factory=list)


@dataclass
class ChangelogIssue:
    code: str
    message: str


@dataclass
class ChangelogResult:
    """Outcome of validating a changelog against a target version."""

    version: str
    issues: list[ChangelogIssue] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.issues

    @property
    def codes(self) -> list[str]:
        return [i.code for i in self.issues]

    def summary(self) -> str:
        if self.passed:
            return f"[PASS] changelog documents {self.version}"
        return f"[FAIL] {', '.join(self.codes)}"


def parse_sections(text: str) -> list[ChangelogSection]:
    """Split a changelog into its version sections, in document order."""
    matches = list(_SECTION_RE.finditer(text))
    sections = []
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        body = text[match.end():end]
        sections.append(
            ChangelogSection(
                version=match.group("version").strip(),
                date=(match.group("date") or "").strip(),
                categories=[m.group("name") for m in _CATEGORY_RE.finditer(body)],
            )
        )
    return sections


def validate_changelog(text: str, version: Version | str) -> ChangelogResult:
    """Validate changelog *text* for the target *version*."""
    target = str(version)
    result = ChangelogResult(version=target)

    if not _TITLE_RE.search(text):
        _add(result, MISSING_TITLE)

    sections = parse_sections(text)
    if not sections:
        _add(result, MISSING_VERSION_HEADERS)

    section = next((s for s in sections if s.version == target), None)
    if section is None:
        _add(result, MISSING_CURRENT_VERSION)
    elif not section.categories:
        _add(result, MISSING_CATEGORIES)

    return result


def validate_file(path: str | Path, version: Version | str) -> ChangelogResult:
    """Validate the changelog file at *path*; a missing file is one issue."""
    changelog = Path(path)
    if not changelog.is_file():
        return missing_changelog(version)
    return validate_changelog(changelog.read_text(encoding="utf-8"), version)


def _add(result: ChangelogResult, code: str) -> None:
    result.issues.append(
        ChangelogIssue(code=code, message=_MESSAGES[code].format(version=result.version))
    )


def missing_changelog(version: Version | str) -> ChangelogResult:
    """Result for a bump whose changelog file does not exist at all."""
    result = ChangelogResult(version=str(version))
    _add(result, MISSING_CHANGELOG)
    return result
