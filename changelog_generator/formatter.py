from __future__ import annotations

from datetime import date, datetime, timezone
from typing import List, Mapping, Optional, Sequence, Union

from .models import (
    CATEGORY_ORDER,
    DEFAULT_TITLE,
    UNRELEASED,
    Category,
    ChangeItem,
    Entry,
    canonical_label,
    is_unreleased_label,
    normalize_changes,
)

KEEP_A_CHANGELOG_URL = "https://keepachangelog.com/en/1.1.0/"
SEMVER_URL = "https://semver.org/spec/v2.0.0.html"
BOILERPLATE = [
    "All notable changes to this project will be documented in this file.",
    "",
    f"The format is based on [Keep a Changelog]({KEEP_A_CHANGELOG_URL}),",
    f"and this project adheres to [Semantic Versioning]({SEMVER_URL}).",
]
SHORT_HASH_LENGTH = 7


def format_date(value: Union[date, datetime]) -> str:
    """Render ``YYYY-MM-DD``; aware datetimes are converted to UTC first."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        value = value.date()
    return value.isoformat()


def format_commit_link(commit: str, repo_url: str) -> str:
    return f"[{commit[:SHORT_HASH_LENGTH]}]({repo_url.rstrip('/')}/commit/{commit})"


def format_entry(entry: Entry, repo_url: Optional[str] = None) -> str:
    line = f"- {entry.description}"
    if entry.related_commits and repo_url:
        links = ", ".join(format_commit_link(commit, repo_url) for commit in entry.related_commits)
        line += f" ({links})"
    return line


def _as_entry(category: Category, item: ChangeItem) -> Entry:
    if isinstance(item, Entry):
        return item
    return Entry(category=category, description=item)


def format_entries(
    changes: Mapping[Union[Category, str], Sequence[ChangeItem]],
    repo_url: Optional[str] = None,
) -> str:
    """Render one ``### <Category>`` block per non-empty category, in canonical order."""
    normalized = normalize_changes(changes)
    blocks: List[str] = []
    for category in CATEGORY_ORDER:
        items = normalized[category]
        if not items:
            continue
        lines = [f"### {category.value}"]
        lines.extend(format_entry(_as_entry(category, item), repo_url) for item in items)
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def format_version_header(label: str, release_date: Optional[Union[date, datetime]] = None) -> str:
    header = f"## [{canonical_label(label)}]"
    if release_date is not None:
        header += f" - {format_date(release_date)}"
    return header


def format_version(
    label: str,
    release_date: Optional[Union[date, datetime]],
    changes: Mapping[Union[Category, str], Sequence[ChangeItem]],
    repo_url: Optional[str] = None,
) -> str:
    lines = [format_version_header(label, release_date), ""]
    body = format_entries(changes, repo_url)
    if body:
        lines.append(body)
    return "\n".join(lines)


def format_unreleased_header() -> str:
    return f"## [{UNRELEASED}]"


def create_new_changelog(
    label: str,
    release_date: Optional[Union[date, datetime]],
    changes: Mapping[Union[Category, str], Sequence[ChangeItem]],
    repo_url: Optional[str] = None,
) -> str:
    lines = [f"# {DEFAULT_TITLE}", "", *BOILERPLATE, ""]
    if not is_unreleased_label(label):
        lines.extend([format_unreleased_header(), ""])
    lines.append(format_version(label, release_date, changes, repo_url).rstrip("\n"))
    return "\n".join(lines) + "\n"


def generate_compare_links(versions: Sequence[str], repo_url: Optional[str]) -> str:
    """Reference links comparing each version with the one before it.

    ``versions`` are git refs, newest first; a leading ``v`` is dropped from the link labels.
    """
    if not repo_url or len(versions) < 2:
        return ""
    base = repo_url.rstrip("/")
    lines = [
        f"[{current.lstrip('v')}]: {base}/compare/{previous}...{current}"
        for current, previous in zip(versions, versions[1:])
    ]
    lines.append(f"[{versions[-1].lstrip('v')}]: {base}/releases/tag/{versions[-1]}")
    return "\n".join(lines)
