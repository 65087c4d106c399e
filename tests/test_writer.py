"""Tests for changelog_generator.writer (merge and write-back)."""

from __future__ import annotations

import logging
from datetime import date

from changelog_generator.formatter import create_new_changelog
from changelog_generator.models import Category
from changelog_generator.parser import parse_changelog
from changelog_generator.writer import (
    find_insertion_index,
    insert_version,
    preview_changelog,
    refresh_unreleased_section,
    render_changelog,
    update_compare_links,
    write_changelog,
)

REPO_URL = "https://example.com/org/repo"
RELEASE_DATE = date(2024, 2, 1)
CHANGES = {"Fixed": ["Fix crash"]}
NEW_BLOCK = "## [1.1.0] - 2024-02-01\n\n### Fixed\n- Fix crash\n\n"


def test_inserts_between_unreleased_and_previous_release(existing_changelog: str) -> None:
    merged = insert_version(existing_changelog, "1.1.0", RELEASE_DATE, CHANGES)
    head, _, tail = existing_changelog.partition("## [1.0.0]")
    assert merged == head + NEW_BLOCK + "## [1.0.0]" + tail

    labels = [line for line in merged.splitlines() if line.startswith("## ")]
    assert labels == ["## [Unreleased]", "## [1.1.0] - 2024-02-01", "## [1.0.0] - 2024-01-01"]


def test_inserts_before_first_version_without_unreleased() -> None:
    existing = "# Changelog\n\n## [1.0.0] - 2024-01-01\n\n### Added\n- First\n"
    merged = insert_version(existing, "1.1.0", RELEASE_DATE, CHANGES)
    assert merged == "# Changelog\n\n" + NEW_BLOCK + "## [1.0.0] - 2024-01-01\n\n### Added\n- First\n"


def test_appends_when_document_has_no_versions() -> None:
    merged = insert_version("# Changelog\n\nIntro.\n", "1.1.0", RELEASE_DATE, CHANGES)
    assert merged == "# Changelog\n\nIntro.\n\n## [1.1.0] - 2024-02-01\n\n### Fixed\n- Fix crash\n"


def test_unreleased_without_following_version_appends_at_end() -> None:
    merged = insert_version("# Changelog\n\n## [Unreleased]\n", "1.1.0", RELEASE_DATE, CHANGES)
    assert merged == (
        "# Changelog\n\n## [Unreleased]\n\n## [1.1.0] - 2024-02-01\n\n### Fixed\n- Fix crash\n"
    )


def test_find_insertion_index() -> None:
    assert find_insertion_index(["# T", "## [Unreleased]", "", "## [1.0.0]"]) == 3
    assert find_insertion_index(["# T", "", "## [1.0.0]", "## [0.9.0]"]) == 2
    assert find_insertion_index(["# T", "", "### Added"]) == 3


def test_no_existing_text_bootstraps_document() -> None:
    first = insert_version(None, "1.0.0", RELEASE_DATE, CHANGES)
    second = insert_version(None, "1.0.0", RELEASE_DATE, CHANGES)
    assert first == second == create_new_changelog("1.0.0", RELEASE_DATE, CHANGES)


def test_footer_after_last_version_is_preserved(existing_changelog: str) -> None:
    merged = insert_version(existing_changelog, "1.1.0", RELEASE_DATE, CHANGES, REPO_URL)
    original_tail = existing_changelog[existing_changelog.index("## [1.0.0]"):]
    assert merged.endswith(original_tail)
    assert merged.endswith("[1.0.0]: https://example.com/org/repo/releases/tag/1.0.0\n")


def test_crlf_line_endings_are_kept(existing_changelog: str) -> None:
    crlf = existing_changelog.replace("\n", "\r\n")
    merged = insert_version(crlf, "1.1.0", RELEASE_DATE, CHANGES)
    expected = insert_version(existing_changelog, "1.1.0", RELEASE_DATE, CHANGES)
    assert merged == expected.replace("\n", "\r\n")


def test_duplicate_labels_are_inserted_with_warning(existing_changelog: str, caplog) -> None:
    with caplog.at_level(logging.WARNING):
        merged = insert_version(existing_changelog, "1.0.0", RELEASE_DATE, CHANGES)
    assert merged.count("## [1.0.0]") == 2
    assert "Version already present" in caplog.text


def test_refresh_unreleased_section(existing_changelog: str) -> None:
    refreshed = refresh_unreleased_section(existing_changelog, {"Changed": ["Rework"]})
    assert refreshed == existing_changelog.replace(
        "## [Unreleased]\n\n### Added\n- Pending feature\n",
        "## [Unreleased]\n\n### Changed\n- Rework\n",
    )


def test_refresh_unreleased_at_end_of_file() -> None:
    existing = "# Changelog\n\n## [Unreleased]\n\n### Added\n- Old\n"
    refreshed = refresh_unreleased_section(existing, {"Changed": ["Rework"]})
    assert refreshed == "# Changelog\n\n## [Unreleased]\n\n### Changed\n- Rework\n"


def test_refresh_without_unreleased_is_a_no_op() -> None:
    existing = "# Changelog\n\n## [1.0.0]\n"
    assert refresh_unreleased_section(existing, {"Added": ["x"]}) == existing


def test_render_unreleased_refreshes_instead_of_duplicating(existing_changelog: str) -> None:
    rendered = render_changelog(existing_changelog, "unreleased", None, {"Added": ["Draft"]})
    assert rendered.count("## [Unreleased]") == 1
    assert "- Draft" in rendered
    assert "- Pending feature" not in rendered


def test_preview_matches_write(tmp_path, existing_changelog: str) -> None:
    path = tmp_path / "CHANGELOG.md"
    path.write_text(existing_changelog, encoding="utf-8")

    preview = preview_changelog(path, "1.1.0", RELEASE_DATE, CHANGES, REPO_URL)
    assert path.read_text(encoding="utf-8") == existing_changelog

    written = write_changelog(path, "1.1.0", RELEASE_DATE, CHANGES, REPO_URL)
    assert written == preview
    assert path.read_text(encoding="utf-8") == preview


def test_write_creates_missing_file(tmp_path) -> None:
    path = tmp_path / "CHANGELOG.md"
    write_changelog(path, "1.0.0", RELEASE_DATE, CHANGES)
    assert path.read_text(encoding="utf-8") == create_new_changelog("1.0.0", RELEASE_DATE, CHANGES)


def test_write_keeps_crlf_file(tmp_path, existing_changelog: str) -> None:
    path = tmp_path / "CHANGELOG.md"
    path.write_bytes(existing_changelog.replace("\n", "\r\n").encode("utf-8"))
    write_changelog(path, "1.1.0", RELEASE_DATE, CHANGES)
    raw = path.read_bytes().decode("utf-8")
    assert "\r\n## [1.1.0] - 2024-02-01\r\n" in raw
    assert "\n" not in raw.replace("\r\n", "")


def test_update_compare_links_replaces_footer(existing_changelog: str) -> None:
    updated = update_compare_links(existing_changelog, ["v1.1.0", "v1.0.0"], REPO_URL)
    assert updated.endswith(
        "- Initial release\n\n"
        "[Unreleased]: https://example.com/org/repo/compare/v1.1.0...HEAD\n"
        "[1.1.0]: https://example.com/org/repo/compare/v1.0.0...v1.1.0\n"
        "[1.0.0]: https://example.com/org/repo/releases/tag/v1.0.0\n"
    )


def test_update_compare_links_appends_footer() -> None:
    updated = update_compare_links("# Changelog\n\n## [1.0.0]\n", ["1.0.0"], REPO_URL)
    assert updated == (
        "# Changelog\n\n## [1.0.0]\n\n"
        "[Unreleased]: https://example.com/org/repo/compare/1.0.0...HEAD\n"
        "[1.0.0]: https://example.com/org/repo/releases/tag/1.0.0\n"
    )


def test_update_compare_links_needs_refs_and_url(existing_changelog: str) -> None:
    assert update_compare_links(existing_changelog, [], REPO_URL) == existing_changelog
    assert update_compare_links(existing_changelog, ["v1.0.0"], None) == existing_changelog


INLINE_LINKS = """\
# Changelog

## [Unreleased]

## [1.0.0] - 2024-01-01

### Added
- Export to CSV

[1.0.0]: https://example.com/org/repo/compare/v0.9.0...v1.0.0

## [0.9.0] - 2023-12-01

### Added
- First preview

[0.9.0]: https://example.com/org/repo/releases/tag/v0.9.0
"""

FOOTER_WITH_ISSUES = """\
# Changelog

## [Unreleased]

## [1.0.0] - 2024-01-01

### Fixed
- Crash on start ([#12])

[1.0.0]: https://example.com/org/repo/releases/tag/v1.0.0
[#12]: https://example.com/org/repo/issues/12
"""


def test_compare_links_keep_sections_with_inline_links() -> None:
    merged = render_changelog(
        INLINE_LINKS,
        "1.1.0",
        RELEASE_DATE,
        {"Added": ["Import from CSV"]},
        REPO_URL,
        ["v1.1.0", "v1.0.0", "v0.9.0"],
    )
    document = parse_changelog(merged)
    assert [section.label for section in document.versions] == ["Unreleased", "1.1.0", "1.0.0", "0.9.0"]
    assert document.find("0.9.0").descriptions()[Category.ADDED] == ["First preview"]
    assert "[1.0.0]: https://example.com/org/repo/compare/v0.9.0...v1.0.0\n\n## [0.9.0]" in merged
    assert merged.count("[1.0.0]:") == 1
    assert merged.endswith(
        "- First preview\n\n"
        "[Unreleased]: https://example.com/org/repo/compare/v1.1.0...HEAD\n"
        "[1.1.0]: https://example.com/org/repo/compare/v1.0.0...v1.1.0\n"
        "[0.9.0]: https://example.com/org/repo/releases/tag/v0.9.0\n"
    )


def test_compare_links_keep_unrelated_definitions() -> None:
    updated = update_compare_links(FOOTER_WITH_ISSUES, ["v1.1.0", "v1.0.0"], REPO_URL)
    assert updated.endswith(
        "- Crash on start ([#12])\n\n"
        "[Unreleased]: https://example.com/org/repo/compare/v1.1.0...HEAD\n"
        "[1.1.0]: https://example.com/org/repo/compare/v1.0.0...v1.1.0\n"
        "[1.0.0]: https://example.com/org/repo/releases/tag/v1.0.0\n"
        "[#12]: https://example.com/org/repo/issues/12\n"
    )


def test_compare_links_never_drop_body_lines() -> None:
    updated = update_compare_links(FOOTER_WITH_ISSUES, ["v1.1.0", "v1.0.0"], REPO_URL)
    original_lines = [line for line in FOOTER_WITH_ISSUES.splitlines() if not line.startswith("[1.0.0]:")]
    assert all(line in updated.splitlines() for line in original_lines)


def test_compare_links_keep_crlf() -> None:
    content = FOOTER_WITH_ISSUES.replace("\n", "\r\n")
    updated = update_compare_links(content, ["v1.1.0", "v1.0.0"], REPO_URL)
    assert "\n" not in updated.replace("\r\n", "")
    assert updated.endswith("[#12]: https://example.com/org/repo/issues/12\r\n")
