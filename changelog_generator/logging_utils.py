"""Logging setup for the command line: one stderr handler with UTC timestamps."""

from __future__ import annotations

import logging
import sys
import time
from typing import Any, Mapping

LOG_FORMAT = "%(asctime)s.%(msecs)03dZ [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_HANDLER: logging.Handler | None = None


def parse_level(level: str | int | None) -> int:
    """Accept a level name (``debug``), a number (``10`` or ``"10"``) or nothing for INFO."""
    if isinstance(level, int):
        return level
    value = (level or "").strip()
    if value.isdigit():
        return int(value)
    return logging._nameToLevel.get(value.upper(), logging.INFO)


def format_context(context: Mapping[str, Any]) -> str:
    pairs = []
    for key in sorted(context):
        if context[key] is None:
            continue
        text = str(context[key])
        if not text or " " in text:
            text = repr(text)
        pairs.append(f"{key}={text}")
    return " ".join(pairs)


class ChangelogLogger(logging.LoggerAdapter):
    """Appends bound and per-call ``extra`` context to each message."""

    def bind(self, **context: Any) -> "ChangelogLogger":
        return ChangelogLogger(self.logger, {**self.extra, **context})

    def process(self, msg: Any, kwargs: dict[str, Any]):
        context = {**self.extra, **(kwargs.pop("extra", None) or {})}
        suffix = format_context(context)
        return (f"{msg} | {suffix}" if suffix else msg), kwargs


def setup_logging(*, level: str | int | None = None) -> None:
    """Route records to stderr, replacing the handler installed by an earlier call."""
    global _HANDLER
    root = logging.getLogger()
    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    formatter.converter = time.gmtime  # type: ignore[assignment]
    handler.setFormatter(formatter)
    if _HANDLER is not None:
        root.removeHandler(_HANDLER)
    root.addHandler(handler)
    root.setLevel(parse_level(level))
    _HANDLER = handler


def get_logger(name: str) -> ChangelogLogger:
    return ChangelogLogger(logging.getLogger(name), {})
