from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Sequence, Tuple

DIFF_MAX_LENGTH = 4000
DIFF_MAX_HUNK_LINES = 20
DIFF_TRUNCATED = "... (diff truncated for length)"
HUNK_TRUNCATED = "... (hunk truncated)"


@dataclass(frozen=True)
class CommitInfo:
    hash: str
    author: str
    date: datetime
    subject: str
    body: str = ""
    files: Tuple[str, ...] = field(default_factory=tuple)
    diff: str = ""

    @property
    def short_hash(self) -> str:
        return self.hash[:7]

    @property
    def message(self) -> str:
        return f"{self.subject}\n{self.body}"


def parse_commit_date(raw: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_commit_log(
    hash: str,
    author: str,
    date: str,
    message: str,
    files: Sequence[str] = (),
    diff: str = "",
) -> CommitInfo:
    subject, _, body = message.strip("\n").partition("\n")
    return CommitInfo(
        hash=hash.strip(),
        author=author.strip(),
        date=parse_commit_date(date),
        subject=subject.strip(),
        body=body.strip(),
        files=tuple(files),
        diff=diff,
    )


def _pattern_matches(pattern: str, message: str) -> bool:
    if "*" in pattern:
        regex = ".*".join(re.escape(part) for part in pattern.split("*"))
        return re.search(regex, message, flags=re.IGNORECASE | re.DOTALL) is not None
    return pattern.lower() in message.lower()


def should_exclude_commit(commit: CommitInfo, exclude_patterns: Iterable[str]) -> bool:
    message = commit.message
    return any(_pattern_matches(pattern, message) for pattern in exclude_patterns if pattern)


def filter_commits(commits: Iterable[CommitInfo], exclude_patterns: Sequence[str]) -> List[CommitInfo]:
    return [commit for commit in commits if not should_exclude_commit(commit, exclude_patterns)]


def truncate_diff(diff: str, max_length: int = DIFF_MAX_LENGTH) -> str:
    """Shorten a diff for the prompt, keeping file and hunk headers and the top of each hunk."""
    if len(diff) <= max_length:
        return diff

    budget = max_length - 100
    result: List[str] = []
    length = 0
    in_hunk = False
    hunk_lines = 0

    for line in diff.split("\n"):
        if line.startswith(("diff --git", "---", "+++", "@@")):
            if length + len(line) + 1 > budget:
                result.append(DIFF_TRUNCATED)
                break
            result.append(line)
            length += len(line) + 1
            in_hunk = line.startswith("@@")
            hunk_lines = 0
            continue

        if not in_hunk:
            continue
        hunk_lines += 1
        if hunk_lines <= DIFF_MAX_HUNK_LINES:
            if length + len(line) + 1 > budget:
                result.append(DIFF_TRUNCATED)
                break
            result.append(line)
            length += len(line) + 1
        elif hunk_lines == DIFF_MAX_HUNK_LINES + 1:
            result.append(HUNK_TRUNCATED)
            length += len(HUNK_TRUNCATED) + 1

    return "\n".join(result)
