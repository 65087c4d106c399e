"""In-memory model of a Keep a Changelog document."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

UNRELEASED = "Unreleased"
DEFAULT_TITLE = "Changelog"


class Category(str, Enum):
    ADDED = "Added"
    CHANGED = "Changed"
    DEPRECATED = "Deprecated"
    REMOVED = "Removed"
    FIXED = "Fixed"
    SECURITY = "Security"

    @classmethod
    def lookup(cls, name: str) -> Optional["Category"]:
        """Return the category whose name matches ``name`` ignoring case, if any."""
        wanted = name.strip().lower()
        for category in cls:
            if category.value.lower() == wanted:
                return category
        return None


CATEGORY_ORDER: Tuple[Category, ...] = tuple(Category)


@dataclass(frozen=True)
class Entry:
    category: Category
    description: str
    related_commits: Tuple[str, ...] = ()


@dataclass
class VersionSection:
    label: str
    release_date: Optional[date] = None
    entries: List[Entry] = field(default_factory=list)

    @property
    def is_unreleased(self) -> bool:
        return is_unreleased_label(self.label)

    def grouped(self) -> Dict[Category, List[Entry]]:
        groups: Dict[Category, List[Entry]] = {category: [] for category in CATEGORY_ORDER}
        for entry in self.entries:
            groups[entry.category].append(entry)
        return groups

    def descriptions(self) -> Dict[Category, List[str]]:
        return {
            category: [entry.description for entry in entries]
            for category, entries in self.grouped().items()
        }


@dataclass
class ChangelogDocument:
    title: str = DEFAULT_TITLE
    preamble: str = ""
    versions: List[VersionSection] = field(default_factory=list)

    def find(self, label: str) -> Optional[VersionSection]:
        wanted = canonical_label(label)
        for section in self.versions:
            if section.label == wanted:
                return section
        return None


ChangeItem = Union[str, Entry]
CategorizedChanges = Dict[Category, List[ChangeItem]]


def is_unreleased_label(label: str) -> bool:
    return label.strip().lower() == UNRELEASED.lower()


def canonical_label(label: str) -> str:
    label = label.strip()
    return UNRELEASED if is_unreleased_label(label) else label


def empty_changes() -> CategorizedChanges:
    return {category: [] for category in CATEGORY_ORDER}


def normalize_changes(
    changes: Mapping[Union[Category, str], Sequence[ChangeItem]] | None,
) -> CategorizedChanges:
    """Coerce a loosely keyed mapping into one keyed by every category, in order.

    String keys are matched case-insensitively and unknown keys are dropped.
    """
    normalized = empty_changes()
    for key, items in (changes or {}).items():
        category = key if isinstance(key, Category) else Category.lookup(str(key))
        if category is None or not items:
            continue
        normalized[category].extend(items)
    return normalized


def count_changes(changes: Mapping[Category, Sequence[ChangeItem]]) -> int:
    return sum(len(items) for items in changes.values())
