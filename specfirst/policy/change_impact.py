"""Change impact — decide whether a change set requires a version bump.

Changed paths are sorted into three buckets by an ordered pattern table:
bump-required rules are checked first, then exempt rules; the first match
wins and anything left over is unclassified. Unclassified paths are reported
for review but never block or force the decision.
"""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable

import yaml

from specfirst.errors import ConfigError

logger = logging.getLogger(__name__)


class MatchKind(Enum):
    """How a rule's pattern is compared against a path."""

    EXACT = "exact"  # Whole path equality
    PREFIX = "prefix"  # Directory prefix, e.g. "framework/"
    SUFFIX = "suffix"  # Path ends with the pattern, e.g. ".md"
    GLOB = "glob"  # fnmatch-style, e.g. "*.md"


class Bucket(Enum):
    BUMP_REQUIRED = "bump_required"
    EXEMPT = "exempt"
    UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class PatternRule:
    """A single path rule."""

    pattern: str
    kind: MatchKind = MatchKind.EXACT

    def matches(self, path: str) -> bool:
        return match_path(self, path)

    @classmethod
    def infer(cls, pattern: str) -> PatternRule:
        """Build a rule from a bare pattern string, guessing its kind."""
        if pattern.endswith("/"):
            return cls(pattern, MatchKind.PREFIX)
        if any(c in pattern for c in "*?["):
            return cls(pattern, MatchKind.GLOB)
        return cls(pattern, MatchKind.EXACT)


@dataclass
class PatternTable:
    """Two disjoint ordered rule lists plus the bump policy threshold.

    ``min_required`` is the number of bump-required paths needed before a
    bump is demanded. The default of 1 means a single protected change
    outweighs any number of exempt ones.
    """

    bump_required: list[PatternRule] = field(default_factory=list)
    exempt: list[PatternRule] = field(default_factory=list)
    min_required: int = 1

    def bucket_for(self, path: str) -> Bucket:
        for rule in self.bump_required:
            if rule.matches(path):
                return Bucket.BUMP_REQUIRED
        for rule in self.exempt:
            if rule.matches(path):
                return Bucket.EXEMPT
        return Bucket.UNCLASSIFIED


@dataclass
class Classification:
    """Result of classifying a change set."""

    bump_required: list[str] = field(default_factory=list)
    exempt: list[str] = field(default_factory=list)
    unclassified: list[str] = field(default_factory=list)
    min_required: int = 1

    @property
    def requires_bump(self) -> bool:
        return len(self.bump_required) >= max(self.min_required, 1)

    @property
    def total(self) -> int:
        return len(self.bump_required) + len(self.exempt) + len(self.unclassified)

    def merge(self, other: Classification) -> Classification:
        """Combine two classifications bucket by bucket."""
        return Classification(
            bump_required=self.bump_required + other.bump_required,
            exempt=self.exempt + other.exempt,
            unclassified=self.unclassified + other.unclassified,
            min_required=self.min_required,
        )

    def summary(self) -> str:
        status = "REQUIRED" if self.requires_bump else "not required"
        return (
            f"Version bump {status}: {len(self.bump_required)} protected, "
            f"{len(self.exempt)} exempt, {len(self.unclassified)} unclassified"
        )


DEFAULT_BUMP_REQUIRED = ["framework/"]

DEFAULT_EXEMPT = [
    ".github/workflows/",
    "tests/",
    "scripts/",
    "README.md",
    "docs/",
    "*.md",
    ".gitignore",
    ".gitmodules",
    "LICENSE",
]


def default_table() -> PatternTable:
    """The table used when no configuration overrides it."""
    return PatternTable(
        bump_required=[PatternRule.infer(p) for p in DEFAULT_BUMP_REQUIRED],
        exempt=[PatternRule.infer(p) for p in DEFAULT_EXEMPT],
    )


def match_path(rule: PatternRule, path: str) -> bool:
    """Dispatch on the rule kind. Paths are compared in POSIX form."""
    path = path.replace("\\", "/")

    if rule.kind == MatchKind.EXACT:
        return path == rule.pattern

    if rule.kind == MatchKind.PREFIX:
        prefix = rule.pattern if rule.pattern.endswith("/") else rule.pattern + "/"
        return path.startswith(prefix)

    if rule.kind == MatchKind.SUFFIX:
        return path.endswith(rule.pattern)

    if rule.kind == MatchKind.GLOB:
        return fnmatch.fnmatchcase(path, rule.pattern)

    return False


def classify(paths: Iterable[str], table: PatternTable | None = None) -> Classification:
    """Partition *paths* into bump-required, exempt and unclassified."""
    table = table or default_table()
    result = Classification(min_required=table.min_required)

    for path in paths:
        path = path.strip()
        if not path:
            continue
        bucket = table.bucket_for(path)
        if bucket == Bucket.BUMP_REQUIRED:
            result.bump_required.append(path)
        elif bucket == Bucket.EXEMPT:
            result.exempt.append(path)
        else:
            result.unclassified.append(path)

    for path in result.unclassified:
        logger.warning("Unclassified change (review required): %s", path)

    return result


def table_from_dict(data: dict | None) -> PatternTable:
    """Build a table from the ``patterns`` mapping of a config file.

    Missing lists fall back to the defaults. Entries are either bare pattern
    strings or ``{pattern, kind}`` mappings.
    """
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError("'patterns' must be a mapping")

    defaults = default_table()
    bump_required = (
        _rules_from_list(data["bump_required"], "bump_required")
        if "bump_required" in data
        else defaults.bump_required
    )
    exempt = _rules_from_list(data["exempt"], "exempt") if "exempt" in data else defaults.exempt

    try:
        min_required = int(data.get("min_required", 1))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'min_required' must be an integer: {e}") from e
    if min_required < 1:
        raise ConfigError("'min_required' must be at least 1")

    overlap = {r.pattern for r in bump_required} & {r.pattern for r in exempt}
    if overlap:
        raise ConfigError(f"Patterns listed as both bump_required and exempt: {sorted(overlap)}")

    return PatternTable(bump_required=bump_required, exempt=exempt, min_required=min_required)


def load_table(path: str | Path) -> PatternTable:
    """Load a pattern table from a YAML file (top-level or under ``patterns``)."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if "patterns" in data:
        data = data["patterns"]
    return table_from_dict(data)


def _rules_from_list(entries, key: str) -> list[PatternRule]:
    if not isinstance(entries, list):
        raise ConfigError(f"'{key}' must be a list of patterns")

    rules = []
    for entry in entries:
        if isinstance(entry, str):
            rules.append(PatternRule.infer(entry))
        elif isinstance(entry, dict) and "pattern" in entry:
            try:
                kind = MatchKind(entry.get("kind", "exact"))
            except ValueError as e:
                raise ConfigError(f"Unknown match kind in '{key}': {entry.get('kind')}") from e
            rules.append(PatternRule(str(entry["pattern"]), kind))
        else:
            raise ConfigError(f"Invalid pattern entry in '{key}': {entry!r}")
    return rules
