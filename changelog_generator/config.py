from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .logging_utils import get_logger

CONFIG_FILE_NAMES = [
    ".changelogrc.yaml",
    ".changelogrc.yml",
    ".changelogrc.json",
    "changelog.config.yaml",
    "changelog.config.yml",
]
DEFAULT_CONFIG_FILE = ".changelogrc.yaml"
VERSION_SOURCES = ("tags", "changelog", "manual")
API_KEY_ENV = "OPENAI_API_KEY"

# File keys are camelCase; snake_case field names are accepted too.
KEY_ALIASES = {
    "openaiUrl": "openai_url",
    "versionSource": "version_source",
    "includeCommitLinks": "include_commit_links",
    "excludePatterns": "exclude_patterns",
    "repoUrl": "repo_url",
    "compareLinks": "compare_links",
}

logger = get_logger("changelog.config")


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class Config:
    output: str = "CHANGELOG.md"
    openai_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    version_source: str = "tags"
    include_commit_links: bool = True
    exclude_patterns: List[str] = field(
        default_factory=lambda: ["chore(deps):", "Merge branch", "Merge pull request"]
    )
    repo_url: Optional[str] = None
    compare_links: bool = False

    def merged(self, overrides: Mapping[str, Any]) -> "Config":
        known = {item.name for item in fields(self)}
        values: Dict[str, Any] = {}
        for key, value in overrides.items():
            name = KEY_ALIASES.get(key, key)
            if name not in known:
                logger.warning("Ignoring unknown config key.", extra={"key": key})
                continue
            if value is None and name != "repo_url":
                continue
            values[name] = value
        config = replace(self, **values)
        if config.version_source not in VERSION_SOURCES:
            logger.warning(
                "Unknown versionSource; falling back to tags.",
                extra={"version_source": config.version_source},
            )
            config = replace(config, version_source="tags")
        if isinstance(config.exclude_patterns, str):
            config = replace(config, exclude_patterns=[config.exclude_patterns])
        return config

    def to_file_dict(self) -> Dict[str, Any]:
        reverse = {name: alias for alias, name in KEY_ALIASES.items()}
        return {
            reverse.get(key, key): value
            for key, value in asdict(self).items()
            if value is not None
        }


DEFAULT_CONFIG = Config()


def find_config_file(start_dir: Path | str | None = None) -> Optional[Path]:
    current = Path(start_dir or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        for name in CONFIG_FILE_NAMES:
            candidate = directory / name
            if candidate.is_file():
                return candidate
    return None


def load_config_file(path: Path | str) -> Dict[str, Any]:
    path = Path(path)
    with path.open("r", encoding="utf-8") as handle:
        if path.suffix == ".json":
            data = json.load(handle)
        else:
            data = yaml.safe_load(handle)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


def load_config(config_path: Path | str | None = None, start_dir: Path | str | None = None) -> Config:
    config_file = Path(config_path) if config_path else find_config_file(start_dir)
    if config_file is None or not config_file.exists():
        if config_path:
            logger.warning("Config file not found; using defaults.", extra={"path": config_path})
        return DEFAULT_CONFIG

    try:
        file_config = load_config_file(config_file)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        logger.warning(
            "Failed to parse config file; using defaults.",
            extra={"path": config_file, "error": exc},
        )
        return DEFAULT_CONFIG

    logger.debug("Loaded config file.", extra={"path": config_file})
    return DEFAULT_CONFIG.merged(file_config)


def get_api_key() -> Optional[str]:
    return os.environ.get(API_KEY_ENV) or None


def render_default_config() -> str:
    body = yaml.safe_dump(DEFAULT_CONFIG.to_file_dict(), sort_keys=False, width=1000)
    return (
        "# Changelog Generator Configuration\n"
        "# Keys may also be written in snake_case.\n\n"
        f"{body}"
    )
