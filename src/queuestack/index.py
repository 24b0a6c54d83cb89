"""StackIndex: in-memory snapshot of all items, their labels and categories.

The walk over the stack directory stays the source of truth; the index is
rebuilt from it on :meth:`StackIndex.build` and never written back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from queuestack.item import Item, Status
from queuestack.layout import Lifecycle
from queuestack.storage import Storage

UNCATEGORIZED = "uncategorized"


class SortBy(str, Enum):
    ID = "id"
    DATE = "date"
    TITLE = "title"


@dataclass
class IndexedItem:
    item: Item
    lifecycle: Lifecycle
    category: str | None


@dataclass
class FilterCriteria:
    """Empty/``None`` fields match everything."""

    search: str = ""
    labels: list[str] = field(default_factory=list)
    category: str | None = None
    author: str | None = None
    status: Status | None = None

    def is_empty(self) -> bool:
        return not (self.search or self.labels or self.category or self.author or self.status)

    def matches(self, entry: IndexedItem) -> bool:
        item = entry.item
        if self.search and not matches_search_text(item, self.search):
            return False
        if self.labels:
            wanted = {label.lower() for label in self.labels}
            if not wanted.intersection(label.lower() for label in item.labels):
                return False
        if self.category is not None and not matches_category(entry.category, self.category):
            return False
        if self.author and self.author.lower() not in item.author.lower():
            return False
        if self.status is not None and item.status is not self.status:
            return False
        return True


def matches_search_text(item: Item, query: str) -> bool:
    """Case-insensitive substring search over title, id and body."""
    q = query.lower()
    return q in item.title.lower() or q in item.id.lower() or q in item.body.lower()


def matches_category(category: str | None, wanted: str) -> bool:
    if category is None:
        return wanted.lower() == UNCATEGORIZED
    return category.lower() == wanted.lower()


class StackIndex:
    """Scans the stack once and answers label, category and filter queries."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage
        self.items: dict[str, IndexedItem] = {}
        self.labels: dict[str, list[str]] = {}
        self.categories: dict[str | None, list[str]] = {}

    # ------------------------------------------------------------------
    # Build / refresh
    # ------------------------------------------------------------------

    def build(self, lifecycles: tuple[Lifecycle, ...] = tuple(Lifecycle)) -> None:
        """(Re-)scan the stack and rebuild all indexes."""
        self.items = {}
        for item in self.storage.load_all(lifecycles):
            lifecycle = self.storage.layout.lifecycle_of(item.path)
            category = self.storage.category_of(item)
            self.items[item.id] = IndexedItem(item, lifecycle, category)
        self._build_labels()
        self._build_categories()

    def _build_labels(self) -> None:
        self.labels = {}
        for item_id, entry in self.items.items():
            for label in entry.item.labels:
                self.labels.setdefault(label, []).append(item_id)

    def _build_categories(self) -> None:
        self.categories = {}
        for item_id, entry in self.items.items():
            self.categories.setdefault(entry.category, []).append(item_id)

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    def in_lifecycle(self, lifecycle: Lifecycle) -> list[IndexedItem]:
        return [e for e in self.items.values() if e.lifecycle is lifecycle]

    def search(self, query: str) -> list[Item]:
        return [e.item for e in self.items.values() if matches_search_text(e.item, query)]

    def filter(self, criteria: FilterCriteria, sort: SortBy = SortBy.ID) -> list[IndexedItem]:
        result = [e for e in self.items.values() if criteria.matches(e)]
        if sort is SortBy.DATE:
            result.sort(key=lambda e: e.item.created_at, reverse=True)
        elif sort is SortBy.TITLE:
            result.sort(key=lambda e: e.item.title.lower())
        else:
            result.sort(key=lambda e: e.item.id)
        return result

    def label_counts(self, lifecycle: Lifecycle | None = Lifecycle.LIVE) -> dict[str, int]:
        """Label → number of items, most used first."""
        counts: dict[str, int] = {}
        for entry in self.items.values():
            if lifecycle is None or entry.lifecycle is lifecycle:
                for label in entry.item.labels:
                    counts[label] = counts.get(label, 0) + 1
        return dict(sorted(counts.items(), key=lambda kv: (-kv[1], kv[0])))

    def category_counts(self, lifecycle: Lifecycle | None = Lifecycle.LIVE) -> dict[str, int]:
        """Category → number of items; ``None`` is reported as ``uncategorized``."""
        counts: dict[str, int] = {}
        for entry in self.items.values():
            if lifecycle is None or entry.lifecycle is lifecycle:
                key = entry.category or UNCATEGORIZED
                counts[key] = counts.get(key, 0) + 1
        return dict(sorted(counts.items()))
