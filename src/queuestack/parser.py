"""YAML front-matter codec for item files.

An item file is a ``---`` delimited YAML block followed by a blank line and
the free-text body::

    ---
    id: 260109-02F7K9M
    title: Fix login bug
    author: Ada
    created_at: '2026-01-09T10:00:00+00:00'
    status: open
    labels:
      - bug
    attachments: []
    ---

    Body text.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from queuestack.errors import (
    IoFailureError,
    MalformedFrontmatterError,
    MissingFieldError,
    UnknownFieldError,
)
from queuestack.item import Item, Status

MARKER = "---"
REQUIRED_FIELDS = ("id", "title", "author", "created_at", "status")
OPTIONAL_FIELDS = ("labels", "attachments", "attachment_counter")
KNOWN_FIELDS = frozenset(REQUIRED_FIELDS + OPTIONAL_FIELDS)

# YAML front-matter block; the closing marker may end the file
_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)^---[ \t]*(?:\r?\n|\Z)", re.DOTALL | re.MULTILINE)


class _IndentedDumper(yaml.SafeDumper):
    """Indent block sequences under their key (``labels:\\n  - bug``)."""

    def increase_indent(self, flow: bool = False, indentless: bool = False) -> None:
        return super().increase_indent(flow, False)


def split_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Split *content* into ``(metadata_dict, body)``.

    A missing block or invalid YAML is an error: every item file must carry
    its metadata.
    """
    content = content.lstrip("\ufeff")
    match = _FRONTMATTER_RE.match(content)
    if not match:
        if content.startswith(MARKER):
            raise MalformedFrontmatterError("No closing front-matter marker (---) found")
        raise MalformedFrontmatterError("File does not start with a front-matter marker (---)")
    try:
        meta = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        raise MalformedFrontmatterError(f"Invalid YAML front-matter: {exc}") from exc
    if meta is None:
        meta = {}
    if not isinstance(meta, dict):
        raise MalformedFrontmatterError("Front-matter must be a mapping of key: value pairs")

    body = content[match.end() :]
    # One separator line belongs to the format, not the body
    if body.startswith("\r\n"):
        body = body[2:]
    elif body.startswith("\n"):
        body = body[1:]
    return meta, body


def _as_str_list(value: Any, field: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, list):
        return [str(v) for v in value if v is not None]
    raise MalformedFrontmatterError(f"Field '{field}' must be a list")


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        result = value
    else:
        try:
            result = datetime.fromisoformat(str(value))
        except ValueError as exc:
            raise MalformedFrontmatterError(f"Invalid created_at timestamp: {value!r}") from exc
    if result.tzinfo is None:
        result = result.replace(tzinfo=timezone.utc)
    return result


def parse(content: str, *, strict: bool = True) -> Item:
    """Decode a full item file into an :class:`Item` (without ``path``).

    With *strict* (the default) any metadata key this engine does not manage
    raises :class:`UnknownFieldError`; otherwise such keys are ignored.
    """
    meta, body = split_frontmatter(content)

    for name in REQUIRED_FIELDS:
        if meta.get(name) is None:
            raise MissingFieldError(name)
    unknown = sorted(str(k) for k in meta if k not in KNOWN_FIELDS)
    if unknown and strict:
        raise UnknownFieldError(unknown)

    try:
        status = Status(str(meta["status"]).lower())
    except ValueError as exc:
        raise MalformedFrontmatterError(f"Invalid status: {meta['status']!r}") from exc

    counter = meta.get("attachment_counter") or 0
    if not isinstance(counter, int):
        raise MalformedFrontmatterError("Field 'attachment_counter' must be an integer")

    return Item(
        id=str(meta["id"]),
        title=str(meta["title"]),
        author=str(meta["author"]),
        created_at=_as_datetime(meta["created_at"]),
        status=status,
        labels=_as_str_list(meta.get("labels"), "labels"),
        attachments=_as_str_list(meta.get("attachments"), "attachments"),
        body=body,
        attachment_counter=counter,
    )


def serialize(item: Item) -> str:
    """Encode *item* as file contents; :func:`parse` inverts this exactly."""
    meta: dict[str, Any] = {
        "id": item.id,
        "title": item.title,
        "author": item.author,
        "created_at": item.created_at.isoformat(),
        "status": item.status.value,
        "labels": list(item.labels),
        "attachments": list(item.attachments),
    }
    if item.attachment_counter:
        meta["attachment_counter"] = item.attachment_counter
    block = yaml.dump(
        meta,
        Dumper=_IndentedDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=1_000_000,
    )
    return f"{MARKER}\n{block}{MARKER}\n\n{item.body}"


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


def read_item(path: Path, *, strict: bool = True) -> Item:
    """Read a ``.md`` item file and return a fully-populated :class:`Item`."""
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise IoFailureError(path, exc, "read") from exc
    item = parse(content, strict=strict)
    item.path = path
    return item


def write_item(item: Item, path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(serialize(item), encoding="utf-8")
    except OSError as exc:
        raise IoFailureError(path, exc, "write") from exc
