"""Policy gate — enforce the version bump policy in CI.

Compares the working tree against a base ref:

1. collect the changed paths (``git diff --name-only BASE...HEAD``);
2. classify them with the pattern table;
3. if a bump is required, check that the version marker moved forward and
   that the changelog documents the new version.

The outcome is reported both for humans and as ``key=value`` pairs for
automation (``version_required``, ``base_version``, ``current_version``,
``requirement_status``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

from specfirst.errors import FormatError, GitError
from specfirst.policy.change_impact import Classification, PatternTable, classify
from specfirst.policy.changelog import ChangelogResult, missing_changelog, validate_changelog
from specfirst.versioning.semver import Comparison, compare

logger = logging.getLogger(__name__)

DEFAULT_BASE_REF = "origin/main"
DEFAULT_VERSION_FILE = "framework/VERSION"
DEFAULT_CHANGELOG = "CHANGELOG.md"

# Used when the marker does not exist at a ref, e.g. before the first release.
UNVERSIONED = "0.0.0"


class RequirementStatus:
    SATISFIED = "satisfied"
    UNSATISFIED = "unsatisfied"
    NOT_REQUIRED = "not_required"


@dataclass
class RequirementReport:
    """Result of the bump requirement check."""

    classification: Classification
    base_version: str = UNVERSIONED
    current_version: str = UNVERSIONED
    status: str = RequirementStatus.NOT_REQUIRED
    reason: str = ""
    changelog: ChangelogResult | None = None
    problems: list[str] = field(default_factory=list)

    @property
    def version_required(self) -> bool:
        return self.classification.requires_bump

    @property
    def passed(self) -> bool:
        return self.status != RequirementStatus.UNSATISFIED

    def outputs(self) -> dict[str, str]:
        """Machine-readable key/value pairs, in a stable order."""
        return {
            "version_required": "true" if self.version_required else "false",
            "base_version": self.base_version,
            "current_version": self.current_version,
            "requirement_status": self.status,
            "reason": self.reason,
        }


@dataclass
class VersionChangeReport:
    """Result of validating an actual version change."""

    base_version: str
    current_version: str
    version_changed: bool = False
    changelog: ChangelogResult | None = None
    problems: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.problems

    def outputs(self) -> dict[str, str]:
        return {
            "base_version": self.base_version,
            "current_version": self.current_version,
            "version_bumped": "true" if self.version_changed else "false",
            "validation_status": "passed" if self.passed else "failed",
        }


# ---------------------------------------------------------------------------
# Pure evaluation
# ---------------------------------------------------------------------------


def evaluate_requirement(
    classification: Classification,
    base_version: str,
    current_version: str,
    changelog_text: str | None = None,
) -> RequirementReport:
    """Decide the requirement status from already-collected inputs.

    ``changelog_text`` of None means the changelog file does not exist.
    """
    report = RequirementReport(
        classification=classification,
        base_version=base_version,
        current_version=current_version,
    )

    if not classification.total:
        report.reason = "no_changes"
        return report

    if not classification.requires_bump:
        report.reason = "no_framework_changes"
        return report

    report.status = RequirementStatus.UNSATISFIED

    try:
        relation = compare(current_version, base_version)
    except FormatError as e:
        report.reason = "invalid_version"
        report.problems.append(str(e))
        return report

    if relation == Comparison.EQUAL:
        report.reason = "version_not_bumped"
        report.problems.append(f"Version bump required but not found (still {current_version})")
        return report

    if relation == Comparison.LESS:
        report.reason = "version_not_incremented"
        report.problems.append(
            f"Version must increment from {base_version}, got {current_version}"
        )
        return report

    report.changelog = _changelog_result(changelog_text, current_version)

    if not report.changelog.passed:
        report.reason = "changelog_invalid"
        report.problems.extend(i.message for i in report.changelog.issues)
        return report

    report.status = RequirementStatus.SATISFIED
    report.reason = "framework_changes"
    return report


def evaluate_version_change(
    base_version: str,
    current_version: str,
    changelog_text: str | None = None,
    check_changelog: bool = True,
    check_semantics: bool = True,
) -> VersionChangeReport:
    """Validate a version change: changelog entry and forward progression."""
    report = VersionChangeReport(base_version=base_version, current_version=current_version)
    report.version_changed = base_version.strip() != current_version.strip()
    if not report.version_changed:
        return report

    if check_changelog:
        report.changelog = _changelog_result(changelog_text, current_version)
        report.problems.extend(i.message for i in report.changelog.issues)

    if check_semantics:
        try:
            relation = compare(base_version, current_version)
        except FormatError as e:
            report.problems.append(str(e))
        else:
            if relation != Comparison.LESS:
                report.problems.append(
                    f"Version must increment from {base_version} to {current_version} "
                    f"(current relationship: {base_version} {relation.value} {current_version})"
                )

    return report


# ---------------------------------------------------------------------------
# Git-backed inputs
# ---------------------------------------------------------------------------


def open_repo(repo_path: str | Path) -> Repo:
    try:
        return Repo(repo_path, search_parent_directories=True)
    except (InvalidGitRepositoryError, NoSuchPathError) as e:
        raise GitError(f"Not a git repository: {repo_path}") from e


def changed_files(repo: Repo, base_ref: str) -> list[str]:
    """Paths changed between the merge base of *base_ref* and HEAD."""
    try:
        output = repo.git.diff("--name-only", f"{base_ref}...HEAD")
    except GitCommandError as e:
        raise GitError(f"Could not determine changed files against {base_ref}: {e}") from e
    return [line for line in output.splitlines() if line.strip()]


def version_at_ref(repo: Repo, ref: str, version_file: str) -> str:
    """Marker content at *ref*, or ``0.0.0`` when it does not exist there."""
    try:
        return repo.git.show(f"{ref}:{version_file}").strip() or UNVERSIONED
    except GitCommandError:
        logger.debug("No %s at %s, treating as %s", version_file, ref, UNVERSIONED)
        return UNVERSIONED


def working_version(root: Path, version_file: str) -> str:
    marker = root / version_file
    if not marker.is_file():
        return UNVERSIONED
    return marker.read_text(encoding="utf-8").strip() or UNVERSIONED


def check_requirements(
    repo_path: str | Path = ".",
    base_ref: str = DEFAULT_BASE_REF,
    table: PatternTable | None = None,
    version_file: str = DEFAULT_VERSION_FILE,
    changelog_file: str = DEFAULT_CHANGELOG,
) -> RequirementReport:
    """Run the full bump requirement check against a git working tree."""
    repo = open_repo(repo_path)
    root = Path(repo.working_tree_dir)

    paths = changed_files(repo, base_ref)
    logger.debug("%d changed file(s) against %s", len(paths), base_ref)
    classification = classify(paths, table)

    changelog = root / changelog_file
    return evaluate_requirement(
        classification,
        base_version=version_at_ref(repo, base_ref, version_file),
        current_version=working_version(root, version_file),
        changelog_text=changelog.read_text(encoding="utf-8") if changelog.is_file() else None,
    )


def check_version_change(
    repo_path: str | Path = ".",
    base_ref: str = DEFAULT_BASE_REF,
    version_file: str = DEFAULT_VERSION_FILE,
    changelog_file: str = DEFAULT_CHANGELOG,
    check_changelog: bool = True,
    check_semantics: bool = True,
) -> VersionChangeReport:
    """Validate the version change between *base_ref* and the working tree."""
    repo = open_repo(repo_path)
    root = Path(repo.working_tree_dir)
    changelog = root / changelog_file

    return evaluate_version_change(
        base_version=version_at_ref(repo, base_ref, version_file),
        current_version=working_version(root, version_file),
        changelog_text=changelog.read_text(encoding="utf-8") if changelog.is_file() else None,
        check_changelog=check_changelog,
        check_semantics=check_semantics,
    )


def format_outputs(outputs: dict[str, str]) -> str:
    return "\n".join(f"{key}={value}" for key, value in outputs.items())


def write_github_output(outputs: dict[str, str], path: str | Path) -> None:
    """Append the outputs to a GitHub Actions ``$GITHUB_OUTPUT`` file."""
    with open(path, "a", encoding="utf-8") as f:
        f.write(format_outputs(outputs) + "\n")


def _changelog_result(text: str | None, version: str) -> ChangelogResult:
    if text is None:
        return missing_changelog(version)
    return validate_changelog(text, version)
