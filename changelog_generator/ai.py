"""Categorize commits into Keep a Changelog sections with an OpenAI-compatible API."""

from __future__ import annotations

import json
import time
from typing import Any, Callable, Dict, Optional, Sequence

import httpx

from .commits import CommitInfo
from .logging_utils import get_logger
from .models import CATEGORY_ORDER, CategorizedChanges, Category, empty_changes

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"
BATCH_SIZE = 10
MAX_ATTEMPTS = 3
REQUEST_TIMEOUT = 60.0
RATE_LIMITED = 429

SYSTEM_PROMPT = """You are a changelog writer assistant. Your task is to analyze git commits and their diffs, then categorize and summarize the changes according to the Keep a Changelog format.

Categories you MUST use:
- Added: New features or capabilities
- Changed: Changes to existing functionality
- Deprecated: Features that will be removed in future versions
- Removed: Features that have been removed
- Fixed: Bug fixes
- Security: Security-related changes or vulnerability fixes

Guidelines:
1. Write clear, concise descriptions that explain WHAT changed and WHY it matters to users
2. Focus on user-facing changes; internal refactoring should be summarized briefly
3. Group related commits into single entries when appropriate
4. Use present tense (e.g., "Add user authentication" not "Added")
5. Start each entry with a verb
6. Do not include commit hashes or technical implementation details unless relevant
7. If a commit doesn't fit any category or is too minor (e.g., typo fixes, formatting), you may omit it

Respond with valid JSON only, using this exact format:
{
  "categories": {
    "Added": ["description 1", "description 2"],
    "Changed": ["description"],
    "Deprecated": [],
    "Removed": [],
    "Fixed": ["description"],
    "Security": []
  }
}

Empty arrays are fine for categories with no changes."""


class AICategorizationError(RuntimeError):
    pass


def build_user_prompt(commits: Sequence[CommitInfo]) -> str:
    descriptions = []
    for commit in commits:
        lines = [
            f"## Commit: {commit.short_hash}",
            f"Author: {commit.author}",
            f"Date: {commit.date.isoformat()}",
            f"Message: {commit.subject}",
        ]
        if commit.body:
            lines.append(f"Body: {commit.body}")
        lines.append(f"Files changed: {', '.join(commit.files)}")
        text = "\n".join(lines) + "\n"
        if commit.diff:
            text += f"\nDiff:\n```\n{commit.diff}\n```\n"
        descriptions.append(text)
    joined = "\n---\n".join(descriptions)
    return f"Please analyze the following {len(commits)} commit(s) and categorize the changes:\n\n{joined}"


def parse_categories(content: Optional[str]) -> CategorizedChanges:
    """Validate a model reply and coerce it into the six categories."""
    if not content:
        raise AICategorizationError("Empty response from AI")
    try:
        payload = json.loads(content)
    except json.JSONDecodeError as exc:
        raise AICategorizationError(f"Failed to parse AI response as JSON: {exc}") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("categories"), dict):
        raise AICategorizationError("Invalid response structure: missing categories")

    raw: Dict[str, Any] = payload["categories"]
    result = empty_changes()
    for key, items in raw.items():
        category = Category.lookup(str(key))
        if category is None or not isinstance(items, list):
            continue
        result[category].extend(str(item).strip() for item in items if str(item).strip())
    return result


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, httpx.TimeoutException):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == RATE_LIMITED or status >= 500
    return isinstance(exc, httpx.TransportError)


class OpenAIService:
    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        *,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
        batch_size: int = BATCH_SIZE,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.batch_size = batch_size
        self._sleep = sleep
        self._client = client or httpx.Client(timeout=REQUEST_TIMEOUT)
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        self.logger = get_logger("changelog.ai").bind(model=model)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "OpenAIService":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def categorize_commits(self, commits: Sequence[CommitInfo]) -> CategorizedChanges:
        merged = empty_changes()
        for start in range(0, len(commits), self.batch_size):
            batch = commits[start : start + self.batch_size]
            self.logger.info(
                "Categorizing commit batch.",
                extra={"batch_start": start, "batch_size": len(batch)},
            )
            result = self.process_batch(batch)
            for category in CATEGORY_ORDER:
                merged[category].extend(result[category])
        return merged

    def process_batch(self, commits: Sequence[CommitInfo], retries: int = MAX_ATTEMPTS) -> CategorizedChanges:
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(commits)},
            ],
            "temperature": 0.3,
            "response_format": {"type": "json_object"},
        }
        url = f"{self.base_url}/chat/completions"

        attempt = 0
        while True:
            attempt += 1
            try:
                response = self._client.post(url, json=body, headers=self._headers)
                response.raise_for_status()
                return parse_categories(_message_content(response.json()))
            except ValueError as exc:
                raise AICategorizationError(f"Failed to parse AI response as JSON: {exc}") from exc
            except httpx.HTTPError as exc:
                if not _is_retryable(exc):
                    raise
                if attempt >= retries:
                    raise AICategorizationError(f"AI request failed after {attempt} attempts: {exc}") from exc
                wait = 2 ** (attempt - 1)
                self.logger.warning(
                    "AI request failed; retrying.",
                    extra={"attempt": attempt, "wait_seconds": wait, "error": exc},
                )
                self._sleep(wait)


def _message_content(payload: Any) -> Optional[str]:
    try:
        return payload["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None

