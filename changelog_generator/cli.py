"""Command-line entry point: ``changelog-gen generate`` and ``changelog-gen init``."""

from __future__ import annotations

import argparse
import sys
from datetime import date, datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import httpx

from . import __version__
from .ai import AICategorizationError, OpenAIService
from .config import DEFAULT_CONFIG_FILE, Config, get_api_key, load_config, render_default_config
from .git_analyzer import GitAnalyzer, GitError, suggest_next_version
from .logging_utils import get_logger, setup_logging
from .models import CATEGORY_ORDER, CategorizedChanges, count_changes, is_unreleased_label
from .parser import latest_version, load_changelog
from .writer import preview_changelog, write_changelog

logger = get_logger("changelog.cli")


def resolve_start(
    git: GitAnalyzer,
    config: Config,
    explicit_from: Optional[str],
    changelog_path: Path,
) -> Tuple[Optional[str], Optional[date]]:
    """Pick the commit range start: a ref, or a date when only the changelog knows it."""
    if explicit_from:
        from_ref = git.determine_from_ref(config.version_source, explicit_from)
        if from_ref and from_ref != explicit_from:
            logger.info("Using latest tag.", extra={"tag": from_ref})
        return from_ref, None

    if config.version_source == "changelog":
        document = load_changelog(changelog_path)
        section = latest_version(document) if document else None
        if section is not None:
            tag = git.find_tag_for_version(section.label)
            if tag:
                logger.info("Using tag of latest changelog version.", extra={"tag": tag})
                return tag, None
            if section.release_date:
                logger.info(
                    "Using commits after latest changelog entry.",
                    extra={"since": section.release_date.isoformat()},
                )
                return None, section.release_date
        return git.get_latest_tag(), None

    from_ref = git.determine_from_ref(config.version_source)
    if from_ref:
        logger.info("Using latest tag.", extra={"tag": from_ref})
    return from_ref, None


def compare_refs_for(tags: Sequence[str], version: str) -> List[str]:
    """Tags (newest first) to link in the footer, including the tag the new version will get."""
    refs = list(tags)
    if is_unreleased_label(version):
        return refs
    if version in refs or f"v{version}" in refs:
        return refs
    prefix = "v" if refs and refs[0].startswith("v") else ""
    return [f"{prefix}{version}", *refs]


def log_summary(changes: CategorizedChanges) -> None:
    for category in CATEGORY_ORDER:
        if changes[category]:
            logger.info(
                "Changes summary.",
                extra={"category": category.value, "entries": len(changes[category])},
            )


def run_generate(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    output = args.output or config.output
    openai_url = args.openai_url or config.openai_url
    model = args.model or config.model
    api_key = args.api_key or get_api_key()

    if not api_key:
        logger.error("OpenAI API key is required. Set OPENAI_API_KEY or use --api-key.")
        return 1

    git = GitAnalyzer(Path.cwd())
    if not git.is_git_repo():
        logger.error("Not a git repository.", extra={"path": Path.cwd()})
        return 1

    output_path = Path.cwd() / output
    try:
        logger.info("Analyzing git history.")
        from_ref, since = resolve_start(git, config, args.from_ref, output_path)
        commits = git.get_commits_between(from_ref, args.to_ref, config.exclude_patterns, since=since)
        if not commits:
            logger.warning("No commits found in the specified range.")
            return 0
        logger.info("Found commits to analyze.", extra={"count": len(commits)})

        repo_url = config.repo_url
        if not repo_url and config.include_commit_links:
            repo_url = git.get_repo_url()

        logger.info("Analyzing changes with AI.", extra={"endpoint": openai_url})
        with OpenAIService(api_key, openai_url, model) as ai:
            changes = ai.categorize_commits(commits)

        if count_changes(changes) == 0:
            logger.warning("No significant changes detected.")
            return 0

        version = args.version
        if not version:
            version = suggest_next_version(git.get_latest_tag())
            logger.info("Using suggested version.", extra={"version": version})
        release_date = None if is_unreleased_label(version) else datetime.now(timezone.utc).date()

        compare_refs = None
        if config.compare_links and repo_url:
            compare_refs = compare_refs_for(git.get_semver_tags(), version)

        if args.dry_run:
            preview = preview_changelog(output_path, version, release_date, changes, repo_url, compare_refs)
            print("--- DRY RUN: Preview of changelog ---\n")
            print(preview.rstrip("\n"))
            print("\n--- End of preview ---")
        else:
            write_changelog(output_path, version, release_date, changes, repo_url, compare_refs)

        log_summary(changes)
    except (GitError, AICategorizationError, httpx.HTTPError, OSError) as exc:
        logger.error("Changelog generation failed.", extra={"error": exc})
        return 1
    return 0


def run_init(args: argparse.Namespace) -> int:
    config_path = Path.cwd() / DEFAULT_CONFIG_FILE
    if config_path.exists() and not args.force:
        logger.error("Config file already exists. Use --force to overwrite.", extra={"path": config_path})
        return 1
    config_path.write_text(render_default_config(), encoding="utf-8")
    logger.info("Created config file.", extra={"path": config_path})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="changelog-gen",
        description="AI-powered changelog generator for GitHub and GitLab repositories.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO).")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Generate changelog entries from git commits.")
    generate.add_argument("-f", "--from", dest="from_ref", help='Starting point (tag, SHA, or "latest-tag").')
    generate.add_argument("-t", "--to", dest="to_ref", default="HEAD", help="End point (default: HEAD).")
    generate.add_argument("-o", "--output", help="Output file path.")
    generate.add_argument("-u", "--openai-url", help="OpenAI-compatible API endpoint.")
    generate.add_argument("-k", "--api-key", help="OpenAI API key (or use OPENAI_API_KEY).")
    generate.add_argument("-m", "--model", help="Model to use for summarization.")
    generate.add_argument("-v", "--version", dest="version", help="Version string for the new release.")
    generate.add_argument("-c", "--config", help="Path to config file.")
    generate.add_argument("-d", "--dry-run", action="store_true", help="Preview without writing.")
    generate.set_defaults(handler=run_generate)

    init = subparsers.add_parser("init", help="Create a default configuration file.")
    init.add_argument("-f", "--force", action="store_true", help="Overwrite existing config file.")
    init.set_defaults(handler=run_init)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level)
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
