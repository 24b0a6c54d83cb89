"""Core Item dataclass."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from queuestack.naming import (
    attachment_dir_name,
    attachment_index,
    item_filename,
    normalize_token,
    slugify,
)


class Status(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    TEMPLATE = "template"

    def __str__(self) -> str:
        return self.value


def is_url(value: str) -> bool:
    """True for ``http(s)://host/...`` references; anything else is a file name."""
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


@dataclass
class Item:
    """A single tracked record.

    ``category`` is not stored: it is derived from where the file
    sits, see :meth:`queuestack.layout.StackLayout.derive_category`.
    """

    id: str
    title: str
    author: str
    created_at: datetime
    status: Status = Status.OPEN
    labels: list[str] = field(default_factory=list)
    attachments: list[str] = field(default_factory=list)
    body: str = ""
    #: Highest attachment index ever assigned; indices are never reused.
    attachment_counter: int = 0
    path: Path | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        tokens = (normalize_token(label) for label in self.labels if label.strip())
        self.labels = list(dict.fromkeys(tokens))

    @property
    def slug(self) -> str:
        return slugify(self.title)

    @property
    def filename(self) -> str:
        return item_filename(self.id, self.title)

    @property
    def attachment_dir(self) -> Path | None:
        """Directory beside the item file holding its copied attachments."""
        if self.path is None:
            return None
        return self.path.parent / attachment_dir_name(self.path.name)

    # ------------------------------------------------------------------
    # Labels
    # ------------------------------------------------------------------

    def add_label(self, label: str) -> None:
        token = normalize_token(label)
        if token and token not in self.labels:
            self.labels.append(token)

    def remove_label(self, label: str) -> None:
        token = normalize_token(label)
        self.labels = [label for label in self.labels if label != token]

    # ------------------------------------------------------------------
    # Attachments
    # ------------------------------------------------------------------

    def next_attachment_index(self) -> int:
        used = [attachment_index(a) for a in self.attachments if not is_url(a)]
        highest = max([i for i in used if i is not None] + [self.attachment_counter])
        return highest + 1

    def file_attachments(self) -> list[str]:
        return [a for a in self.attachments if not is_url(a)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "created_at": self.created_at.isoformat(),
            "status": self.status.value,
            "labels": self.labels,
            "attachments": self.attachments,
            "body": self.body,
        }
