"""Parse Keep a Changelog markdown into a :class:`ChangelogDocument`.

Parsing is best-effort: lines that match no rule are dropped, so hand-edited
files never make the parser fail.
"""

from __future__ import annotations

import re
from datetime import date
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from .logging_utils import get_logger
from .models import (
    Category,
    ChangelogDocument,
    DEFAULT_TITLE,
    Entry,
    VersionSection,
    canonical_label,
)

TITLE_RE = re.compile(r"^#\s+(?P<title>.*\S)")
VERSION_HEADER_RE = re.compile(
    r"^##\s+(?:\[(?P<bracketed>[^\]]+)\]|(?P<bare>[^\s\[\]]+))"
    r"(?:\s*-\s*|\s+)?(?P<date>\d{4}-\d{2}-\d{2})?"
)
UNRELEASED_HEADER_RE = re.compile(r"^##\s+\[?unreleased\b", re.IGNORECASE)
CATEGORY_HEADER_RE = re.compile(r"^###\s+(?P<name>.*\S)")
ENTRY_RE = re.compile(r"^[-*]\s+(?P<text>.*\S)")

_COMMIT_LINK = r"\[[0-9a-fA-F]+\]\([^()\s]+/commit/(?P<hash>[0-9a-fA-F]+)\)"
COMMIT_LINK_RE = re.compile(_COMMIT_LINK)
COMMIT_SUFFIX_RE = re.compile(
    r"\s+\((?P<links>{link}(?:,\s*{link})*)\)$".format(link=_COMMIT_LINK.replace("?P<hash>", ""))
)

TITLE_SEARCH_LINES = 5

logger = get_logger("changelog.parser")


def split_lines(text: str) -> List[str]:
    return re.split(r"\r?\n", text)


def is_version_header(line: str) -> bool:
    return VERSION_HEADER_RE.match(line) is not None


def is_unreleased_header(line: str) -> bool:
    return UNRELEASED_HEADER_RE.match(line) is not None


def parse_release_date(raw: Optional[str]) -> Optional[date]:
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        return None


def split_commit_links(text: str) -> Tuple[str, Tuple[str, ...]]:
    """Separate a trailing ``([abc1234](.../commit/<hash>), ...)`` suffix from an entry."""
    match = COMMIT_SUFFIX_RE.search(text)
    if not match:
        return text, ()
    commits = tuple(link.group("hash") for link in COMMIT_LINK_RE.finditer(match.group("links")))
    return text[: match.start()].rstrip(), commits


class ScanState(Enum):
    PREAMBLE = "preamble"
    IN_VERSION = "in_version"
    IN_CATEGORY = "in_category"


class ChangelogScanner:
    """Single-pass line scanner.

    States are ``PREAMBLE``, ``IN_VERSION`` (no category yet, or after an
    unrecognised ``###`` heading) and ``IN_CATEGORY`` (bullets attach to
    ``self.category``).
    """

    def __init__(self) -> None:
        self.state = ScanState.PREAMBLE
        self.title = DEFAULT_TITLE
        self.preamble_lines: List[str] = []
        self.preamble = ""
        self.versions: List[VersionSection] = []
        self.current: Optional[VersionSection] = None
        self.category: Optional[Category] = None
        self._line_no = 0

    def feed(self, line: str) -> None:
        index = self._line_no
        self._line_no += 1

        if self.state is ScanState.PREAMBLE and index < TITLE_SEARCH_LINES:
            title = TITLE_RE.match(line)
            if title:
                self.title = title.group("title").strip()
                return

        header = VERSION_HEADER_RE.match(line)
        if header:
            self._open_version(header)
            return

        if self.state is ScanState.PREAMBLE:
            if line.strip():
                self.preamble_lines.append(line)
            return

        heading = CATEGORY_HEADER_RE.match(line)
        if heading:
            self.category = Category.lookup(heading.group("name"))
            self.state = ScanState.IN_CATEGORY if self.category else ScanState.IN_VERSION
            return

        bullet = ENTRY_RE.match(line)
        if bullet and self.current is not None and self.category is not None:
            description, commits = split_commit_links(bullet.group("text").strip())
            self.current.entries.append(Entry(self.category, description, commits))

    def _open_version(self, header: re.Match) -> None:
        if self.current is not None:
            self.versions.append(self.current)
        if self.state is ScanState.PREAMBLE:
            self.preamble = "\n".join(self.preamble_lines).strip()
        label = (header.group("bracketed") or header.group("bare")).strip()
        self.current = VersionSection(
            label=canonical_label(label),
            release_date=parse_release_date(header.group("date")),
        )
        self.category = None
        self.state = ScanState.IN_VERSION

    def finish(self) -> ChangelogDocument:
        if self.current is not None:
            self.versions.append(self.current)
            self.current = None
        elif self.state is ScanState.PREAMBLE:
            self.preamble = "\n".join(self.preamble_lines).strip()
        return ChangelogDocument(title=self.title, preamble=self.preamble, versions=self.versions)


def parse_changelog(content: str) -> ChangelogDocument:
    scanner = ChangelogScanner()
    for line in split_lines(content):
        scanner.feed(line)
    return scanner.finish()


def load_changelog(path: Path | str) -> Optional[ChangelogDocument]:
    path = Path(path)
    if not path.exists():
        return None
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Unable to read changelog.", extra={"path": path, "error": exc})
        return None
    return parse_changelog(content)


def latest_version(document: ChangelogDocument) -> Optional[VersionSection]:
    for section in document.versions:
        if not section.is_unreleased:
            return section
    return None


def latest_version_date(document: ChangelogDocument) -> Optional[date]:
    section = latest_version(document)
    return section.release_date if section else None
