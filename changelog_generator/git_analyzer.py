from __future__ import annotations

import re
import subprocess
from datetime import date
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .commits import CommitInfo, filter_commits, parse_commit_log, truncate_diff
from .logging_utils import get_logger

EMPTY_TREE_SHA = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"
LATEST_TAG = "latest-tag"
FIELD_SEP = "\x1f"
RECORD_SEP = "\x1e"

SEMVER_RE = re.compile(
    r"^v?(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$"
)
REMOTE_PATTERNS = [
    re.compile(r"^git@(?P<host>[^:]+):(?P<path>.+)$"),
    re.compile(r"^ssh://(?:[^@/]+@)?(?P<host>[^:/]+)(?::\d+)?/(?P<path>.+)$"),
    re.compile(r"^https?://(?:[^@/]+@)?(?P<host>[^/]+)/(?P<path>.+)$"),
]


class GitError(RuntimeError):
    pass


def parse_semver(tag: str) -> Optional[Tuple[int, int, int, Optional[str]]]:
    match = SEMVER_RE.match(tag.strip())
    if not match:
        return None
    return int(match["major"]), int(match["minor"]), int(match["patch"]), match["pre"]


def _semver_key(tag: str) -> Tuple[int, int, int, int, str]:
    major, minor, patch, pre = parse_semver(tag) or (0, 0, 0, None)
    # A release sorts above its own pre-releases.
    return major, minor, patch, 0 if pre else 1, pre or ""


def sort_semver_tags(tags: Sequence[str]) -> List[str]:
    return sorted((tag for tag in tags if parse_semver(tag)), key=_semver_key, reverse=True)


def normalize_remote_url(remote_url: str) -> Optional[str]:
    """Turn an ssh or https remote into the browsable https URL of the repository."""
    remote_url = remote_url.strip()
    if remote_url.endswith(".git"):
        remote_url = remote_url[:-4]
    for pattern in REMOTE_PATTERNS:
        match = pattern.match(remote_url)
        if match:
            return f"https://{match.group('host')}/{match.group('path').strip('/')}"
    return None


def suggest_next_version(latest_tag: Optional[str]) -> str:
    if not latest_tag:
        return "1.0.0"
    parsed = parse_semver(latest_tag)
    if parsed is None:
        match = re.match(r"^v?(\d+)\.(\d+)\.(\d+)", latest_tag)
        if not match:
            return "Unreleased"
        parsed = (int(match.group(1)), int(match.group(2)), int(match.group(3)), None)
    major, minor, patch, _ = parsed
    return f"{major}.{minor}.{patch + 1}"


class GitAnalyzer:
    def __init__(self, repo_path: Path | str = "."):
        self.repo_path = Path(repo_path)
        self.logger = get_logger("changelog.git").bind(repo=str(self.repo_path))

    def run_git(self, args: Sequence[str]) -> str:
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=True,
            )
        except FileNotFoundError as exc:
            raise GitError("git executable not found on PATH") from exc
        except subprocess.CalledProcessError as exc:
            raise GitError(f"git {' '.join(args)} failed: {exc.stderr.strip()}") from exc
        return result.stdout

    def is_git_repo(self) -> bool:
        try:
            return self.run_git(["rev-parse", "--is-inside-work-tree"]).strip() == "true"
        except GitError:
            return False

    def get_repo_url(self) -> Optional[str]:
        try:
            remote_url = self.run_git(["config", "--get", "remote.origin.url"]).strip()
        except GitError:
            return None
        if not remote_url:
            return None
        repo_url = normalize_remote_url(remote_url)
        if repo_url is None:
            self.logger.warning("Unable to derive repository URL from remote.", extra={"remote": remote_url})
        return repo_url

    def get_semver_tags(self) -> List[str]:
        try:
            raw = self.run_git(["tag", "--list"])
        except GitError:
            return []
        return sort_semver_tags([line.strip() for line in raw.splitlines() if line.strip()])

    def get_latest_tag(self) -> Optional[str]:
        tags = self.get_semver_tags()
        return tags[0] if tags else None

    def _commit_diff(self, commit_hash: str) -> str:
        try:
            return self.run_git(["diff", f"{commit_hash}^", commit_hash])
        except GitError:
            pass
        # Root commit: compare against the empty tree.
        try:
            return self.run_git(["diff", EMPTY_TREE_SHA, commit_hash])
        except GitError:
            return ""

    def _commit_files(self, commit_hash: str) -> List[str]:
        raw = self.run_git(["show", commit_hash, "--name-only", "--format="])
        return [line.strip() for line in raw.splitlines() if line.strip()]

    def get_commits_between(
        self,
        from_ref: Optional[str],
        to_ref: str = "HEAD",
        exclude_patterns: Sequence[str] = (),
        since: Optional[date] = None,
    ) -> List[CommitInfo]:
        range_spec = f"{from_ref}..{to_ref}" if from_ref else to_ref
        args = [
            "log",
            "--no-color",
            f"--pretty=format:%H{FIELD_SEP}%an{FIELD_SEP}%aI{FIELD_SEP}%B{RECORD_SEP}",
        ]
        if since is not None:
            args.append(f"--since={since.isoformat()}")
        args.append(range_spec)
        raw = self.run_git(args)

        commits: List[CommitInfo] = []
        for record in raw.split(RECORD_SEP):
            record = record.strip("\n")
            if not record.strip():
                continue
            try:
                commit_hash, author, authored, message = record.split(FIELD_SEP, 3)
            except ValueError:
                self.logger.warning("Skipping malformed git log record.", extra={"record": record[:40]})
                continue
            commit_hash = commit_hash.strip()
            commit = parse_commit_log(
                commit_hash,
                author,
                authored,
                message,
                self._commit_files(commit_hash),
                truncate_diff(self._commit_diff(commit_hash)),
            )
            commits.append(commit)

        kept = filter_commits(commits, exclude_patterns)
        if len(kept) < len(commits):
            self.logger.debug("Excluded commits by pattern.", extra={"excluded": len(commits) - len(kept)})
        return kept

    def determine_from_ref(self, version_source: str, explicit_from: Optional[str] = None) -> Optional[str]:
        if explicit_from:
            if explicit_from == LATEST_TAG:
                return self.get_latest_tag()
            return explicit_from
        if version_source == "tags":
            return self.get_latest_tag()
        return None

    def find_tag_for_version(self, label: str) -> Optional[str]:
        tags = self.get_semver_tags()
        for candidate in (label, f"v{label}"):
            if candidate in tags:
                return candidate
        return None
