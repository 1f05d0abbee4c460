"""Tests for changelog validation."""

import tempfile
from pathlib import Path

from specfirst.policy.changelog import (
    MISSING_CATEGORIES,
    MISSING_CHANGELOG,
    MISSING_CURRENT_VERSION,
    MISSING_TITLE,
    MISSING_VERSION_HEADERS,
    parse_sections,
    validate_changelog,
    validate_file,
)

GOOD = """# Changelog

All notable changes to this project are documented here.

## [0.2.0] - 2026-03-01
### Added
- New command

### Fixed
- Typo

## [0.1.0] - 2026-01-15
### Added
- Initial release
"""


def test_valid_changelog_passes():
    result = validate_changelog(GOOD, "0.2.0")
    assert result.passed
    assert result.codes == []
    assert "PASS" in result.summary()


def test_parse_sections():
    sections = parse_sections(GOOD)
    assert [s.version for s in sections] == ["0.2.0", "0.1.0"]
    assert sections[0].date == "2026-03-01"
    assert sections[0].categories == ["Added", "Fixed"]
    assert sections[1].categories == ["Added"]


def test_unreleased_section_without_date():
    sections = parse_sections("# Changelog\n\n## [Unreleased]\n### Changed\n- x\n")
    assert sections[0].version == "Unreleased"
    assert sections[0].date == ""


def test_section_header_with_trailing_title():
    text = "# Changelog\n\n## [0.2.0] - 2026-03-01 - Codename\n### Added\n- agents\n"
    sections = parse_sections(text)
    assert sections[0].version == "0.2.0"
    assert sections[0].date == "2026-03-01"
    assert validate_changelog(text, "0.2.0").passed


def test_missing_current_version():
    result = validate_changelog(GOOD, "0.3.0")
    assert result.codes == [MISSING_CURRENT_VERSION]


def test_section_without_categories():
    text = "# Changelog\n\n## [0.3.0] - 2026-04-01\n- something\n\n## [0.2.0] - 2026-03-01\n### Added\n- x\n"
    result = validate_changelog(text, "0.3.0")
    assert result.codes == [MISSING_CATEGORIES]


def test_failures_accumulate():
    result = validate_changelog("Some notes without structure\n", "1.0.0")
    assert result.codes == [MISSING_TITLE, MISSING_VERSION_HEADERS, MISSING_CURRENT_VERSION]
    assert not result.passed
    assert "FAIL" in result.summary()


def test_title_must_be_a_heading():
    text = "Changelog\n\n## [1.0.0] - 2026-01-01\n### Added\n- x\n"
    assert validate_changelog(text, "1.0.0").codes == [MISSING_TITLE]


def test_validate_file_missing():
    with tempfile.TemporaryDirectory() as tmp:
        result = validate_file(Path(tmp) / "CHANGELOG.md", "1.0.0")
        assert result.codes == [MISSING_CHANGELOG]


def test_validate_file_present():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "CHANGELOG.md"
        path.write_text(GOOD)
        assert validate_file(path, "0.1.0").passed
