"""Splice rendered version sections into existing changelog text.

The merge works on raw lines so that content the parser does not model
(reference links, comments, custom formatting) survives untouched.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Union

from .formatter import create_new_changelog, format_version, generate_compare_links
from .logging_utils import get_logger
from .models import UNRELEASED, Category, ChangeItem, is_unreleased_label
from .parser import is_unreleased_header, is_version_header, parse_changelog

ReleaseDate = Optional[Union[date, datetime]]
Changes = Mapping[Union[Category, str], Sequence[ChangeItem]]

REFERENCE_LINK_RE = re.compile(r"^\[(?P<label>[^\]]+)\]:\s*\S")

logger = get_logger("changelog.writer")


def detect_newline(content: str) -> str:
    return "\r\n" if "\r\n" in content else "\n"


def _block_lines(block: str) -> List[str]:
    return block.rstrip("\n").split("\n")


def find_insertion_index(lines: Sequence[str]) -> int:
    """Index of the line the new section goes in front of.

    After an Unreleased header this is the next version header; without one
    it is the first version header. Falls back to the end of the document.
    """
    found_unreleased = False
    for index, line in enumerate(lines):
        if is_unreleased_header(line):
            found_unreleased = True
            continue
        if is_version_header(line):
            return index
    if found_unreleased:
        logger.debug("Unreleased section is the last version; appending at end of file.")
    return len(lines)


def insert_version(
    existing_content: Optional[str],
    version: str,
    release_date: ReleaseDate,
    changes: Changes,
    repo_url: Optional[str] = None,
) -> str:
    if existing_content is None:
        return create_new_changelog(version, release_date, changes, repo_url)

    if parse_changelog(existing_content).find(version) is not None:
        logger.warning(
            "Version already present in changelog; adding another section.",
            extra={"version": version},
        )

    newline = detect_newline(existing_content)
    lines = existing_content.split(newline)
    index = find_insertion_index(lines)
    block = _block_lines(format_version(version, release_date, changes, repo_url))
    result = [*lines[:index], *block, "", *lines[index:]]
    return newline.join(result)


def refresh_unreleased_section(
    existing_content: str,
    changes: Changes,
    repo_url: Optional[str] = None,
) -> str:
    """Replace the body of the Unreleased section, leaving everything else alone."""
    newline = detect_newline(existing_content)
    lines = existing_content.split(newline)
    start: Optional[int] = None
    end: Optional[int] = None
    for index, line in enumerate(lines):
        if start is None:
            if is_unreleased_header(line):
                start = index
            continue
        if is_version_header(line):
            end = index
            break

    if start is None:
        return existing_content
    if end is None:
        end = len(lines)

    block = _block_lines(format_version(UNRELEASED, None, changes, repo_url))
    result = [*lines[:start], *block, "", *lines[end:]]
    return newline.join(result)


def render_changelog(
    existing_content: Optional[str],
    version: str,
    release_date: ReleaseDate,
    changes: Changes,
    repo_url: Optional[str] = None,
    compare_refs: Optional[Sequence[str]] = None,
) -> str:
    """The one rendering path shared by preview and write."""
    if (
        existing_content is not None
        and is_unreleased_label(version)
        and any(is_unreleased_header(line) for line in existing_content.splitlines())
    ):
        content = refresh_unreleased_section(existing_content, changes, repo_url)
    else:
        content = insert_version(existing_content, version, release_date, changes, repo_url)
    if compare_refs:
        content = update_compare_links(content, compare_refs, repo_url)
    return content


def read_existing(path: Path) -> Optional[str]:
    if not path.exists():
        return None
    with path.open("r", encoding="utf-8", newline="") as handle:
        return handle.read()


def preview_changelog(
    path: Path | str,
    version: str,
    release_date: ReleaseDate,
    changes: Changes,
    repo_url: Optional[str] = None,
    compare_refs: Optional[Sequence[str]] = None,
) -> str:
    return render_changelog(
        read_existing(Path(path)), version, release_date, changes, repo_url, compare_refs
    )


def write_changelog(
    path: Path | str,
    version: str,
    release_date: ReleaseDate,
    changes: Changes,
    repo_url: Optional[str] = None,
    compare_refs: Optional[Sequence[str]] = None,
) -> str:
    path = Path(path)
    content = render_changelog(
        read_existing(path), version, release_date, changes, repo_url, compare_refs
    )
    path.write_text(content, encoding="utf-8", newline="")
    logger.info("Changelog written.", extra={"path": path, "version": version})
    return content


def build_compare_links(refs: Sequence[str], repo_url: str, include_unreleased: bool = True) -> str:
    base = repo_url.rstrip("/")
    lines: List[str] = []
    if include_unreleased:
        lines.append(f"[{UNRELEASED}]: {base}/compare/{refs[0]}...HEAD")
    links = generate_compare_links(refs, repo_url)
    if links:
        lines.append(links)
    else:
        lines.append(f"[{refs[0].lstrip('v')}]: {base}/releases/tag/{refs[0]}")
    return "\n".join(lines)


def update_compare_links(
    content: str,
    refs: Sequence[str],
    repo_url: Optional[str],
    include_unreleased: bool = True,
) -> str:
    """Rewrite (or append) the reference-link footer for ``refs``, newest first.

    Only the trailing run of reference-link and blank lines is touched. In it,
    definitions for the generated labels are replaced and all others are kept.
    Labels already defined above the footer are not repeated.
    """
    refs = [ref for ref in refs if ref]
    if not refs or not repo_url:
        return content

    newline = detect_newline(content)
    lines = content.rstrip().split(newline)
    start = len(lines)
    while start > 0 and (not lines[start - 1].strip() or _link_label(lines[start - 1])):
        start -= 1
    body, footer = lines[:start], [line for line in lines[start:] if line.strip()]

    generated = build_compare_links(refs, repo_url, include_unreleased).split("\n")
    generated_labels = {_link_label(line) for line in generated}
    defined_above = {_link_label(line) for line in body} - {None}

    links = [line for line in generated if _link_label(line) not in defined_above]
    links.extend(line for line in footer if _link_label(line) not in generated_labels)

    trimmed = newline.join(body).rstrip()
    if not links:
        return trimmed + newline
    if not trimmed:
        return newline.join(links) + newline
    return trimmed + newline + newline + newline.join(links) + newline


def _link_label(line: str) -> Optional[str]:
    match = REFERENCE_LINK_RE.match(line)
    return match.group("label").strip().lower() if match else None
