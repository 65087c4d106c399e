"""Generate Keep a Changelog sections from git history with AI categorization."""

__version__ = "1.0.0"
