"""Canonical file, attachment, label and category names."""

from __future__ import annotations

import re
import unicodedata
from pathlib import PurePath

MAX_SLUG_LENGTH = 50
ITEM_EXTENSION = "md"
ATTACHMENTS_SUFFIX = ".attachments"

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_TOKEN_RE = re.compile(r"[^a-z0-9_-]")
_ATTACHMENT_INDEX_RE = re.compile(r"^(\d+)-")


def slugify(title: str) -> str:
    """Lowercase ASCII slug of *title*, at most :data:`MAX_SLUG_LENGTH` chars.

    Accented letters are transliterated (``Café`` → ``cafe``); every other
    run of non-alphanumerics becomes a single ``-``.  Truncation prefers a
    word boundary when one exists in the back half of the limit.
    """
    ascii_title = unicodedata.normalize("NFKD", title).encode("ascii", "ignore").decode("ascii")
    slug = _NON_ALNUM_RE.sub("-", ascii_title.lower()).strip("-")
    if len(slug) > MAX_SLUG_LENGTH:
        slug = slug[:MAX_SLUG_LENGTH]
        cut = slug.rfind("-")
        if cut > MAX_SLUG_LENGTH // 2:
            slug = slug[:cut]
        slug = slug.rstrip("-")
    return slug


def normalize_token(value: str) -> str:
    """Normalize a label or category name: ``"My Label"`` → ``"my-label"``."""
    return _TOKEN_RE.sub("-", value.strip().lower())


def normalize_category(value: str | None) -> str | None:
    """Normalize each ``/``-separated segment; empty input means uncategorized."""
    if value is None:
        return None
    segments = [normalize_token(s) for s in value.split("/") if s.strip()]
    return "/".join(segments) or None


def item_filename(item_id: str, title: str) -> str:
    """``{id}-{slug}.md``, or ``{id}.md`` when the title has no sluggable text."""
    slug = slugify(title)
    stem = f"{item_id}-{slug}" if slug else item_id
    return f"{stem}.{ITEM_EXTENSION}"


def attachment_dir_name(item_filename: str) -> str:
    """Name of the directory that sits beside an item file and holds its attachments."""
    return PurePath(item_filename).stem + ATTACHMENTS_SUFFIX


def attachment_name(index: int, original_name: str) -> str:
    """``{index}-{sanitized-name}.{ext}`` for a copied attachment file."""
    original = PurePath(original_name)
    base = slugify(original.stem) or "file"
    ext = original.suffix.lower()
    return f"{index}-{base}{ext}"


def attachment_index(name: str) -> int | None:
    """Index prefix of an attachment file name, or ``None`` if it has none."""
    m = _ATTACHMENT_INDEX_RE.match(name)
    return int(m.group(1)) if m else None
