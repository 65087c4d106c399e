"""pytest configuration and shared fixtures."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from changelog_generator.commits import CommitInfo

REPO_URL = "https://example.com/org/repo"

EXISTING_CHANGELOG = """\
# Changelog

All notable changes to this project will be documented in this file.

## [Unreleased]

### Added
- Pending feature

## [1.0.0] - 2024-01-01

### Added
- Initial release

[1.0.0]: https://example.com/org/repo/releases/tag/1.0.0
"""


def make_commit(
    hash: str = "abcdef1234567890abcdef1234567890abcdef12",
    subject: str = "feat: add widget",
    body: str = "",
    author: str = "Test User",
    files: tuple[str, ...] = ("src/widget.py",),
    diff: str = "",
) -> CommitInfo:
    return CommitInfo(
        hash=hash,
        author=author,
        date=datetime(2024, 1, 2, 12, 0, tzinfo=timezone.utc),
        subject=subject,
        body=body,
        files=files,
        diff=diff,
    )


@pytest.fixture
def existing_changelog() -> str:
    return EXISTING_CHANGELOG


@pytest.fixture
def commit_factory():
    return make_commit
