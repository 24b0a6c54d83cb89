"""Template lookup and instantiation.

A reference resolves in three stages, stopping at the first stage with any
match: id prefix, then title substring, then filename-slug substring.  Each
stage needs exactly one match; an ambiguous stage does not fall through.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from queuestack.config import resolve_author
from queuestack.errors import AmbiguousIdError, IoFailureError, NotFoundError, ParseError
from queuestack.item import Item, Status
from queuestack.layout import Lifecycle
from queuestack.naming import slugify
from queuestack.storage import AttachmentWarning, Storage, resolve_prefix

logger = logging.getLogger(__name__)


@dataclass
class TemplateOverrides:
    """Values that replace or extend what a template provides."""

    title: str | None = None
    labels: list[str] = field(default_factory=list)
    category: str | None = None
    author: str | None = None
    body: str | None = None
    #: Place the new item at the live root even if the template has a category
    clear_category: bool = False


def _single(reference: str, matches: list[Path]) -> Path | None:
    if len(matches) > 1:
        raise AmbiguousIdError(reference, matches)
    return matches[0] if matches else None


def _filtered(paths: Iterable[Path], predicate: Callable[[Path], bool]) -> list[Path]:
    return [p for p in paths if predicate(p)]


def find_template(storage: Storage, reference: str) -> Path:
    """Resolve *reference* to a template file path."""
    paths = list(storage.walk(Lifecycle.TEMPLATE))
    needle = reference.strip().lower()
    if not needle:
        raise NotFoundError(reference, "template")

    try:
        return resolve_prefix(paths, storage.id_of, reference)
    except NotFoundError:
        pass

    titles: dict[Path, str] = {}
    for path in paths:
        try:
            titles[path] = storage.load(path).title
        except (ParseError, IoFailureError) as exc:
            logger.warning("skipping template %s: %s", path, exc.message)
    found = _single(reference, _filtered(titles, lambda p: needle in titles[p].lower()))
    if found:
        return found

    slug_needle = slugify(reference)

    def slug_matches(path: Path) -> bool:
        item_id = storage.id_of(path) or ""
        slug = path.stem[len(item_id) :].lstrip("-").lower()
        return needle in slug or bool(slug_needle) and slug_needle in slug

    found = _single(reference, _filtered(paths, slug_matches))
    if found:
        return found
    raise NotFoundError(reference, "template")


def instantiate(
    storage: Storage,
    template: Item,
    overrides: TemplateOverrides | None = None,
) -> tuple[Item, list[AttachmentWarning]]:
    """Create a new open item from *template*.

    The new item gets a fresh id, timestamp and author; labels are the union
    of the template's and the overrides'; the category defaults to the
    template's own unless ``clear_category`` is set; attachment files are
    copied with new indices.
    """
    overrides = overrides or TemplateOverrides()
    now = storage.now()
    category = overrides.category
    if overrides.clear_category:
        category = None
    elif category is None:
        category = storage.category_of(template)

    item = Item(
        id=storage.new_id(now),
        title=overrides.title or template.title,
        author=overrides.author or resolve_author(storage.config, storage.mover),
        created_at=now,
        status=Status.OPEN,
        labels=[*template.labels, *overrides.labels],
        body=template.body if overrides.body is None else overrides.body,
    )
    storage.create(item, category)
    warnings = storage.copy_attachments(template, item) if template.attachments else []
    logger.debug("instantiated %s from template %s", item.id, template.id)
    return item, warnings


def create_from_template(
    storage: Storage,
    reference: str,
    overrides: TemplateOverrides | None = None,
) -> tuple[Item, list[AttachmentWarning]]:
    """:func:`find_template` followed by :func:`instantiate`."""
    template = storage.load(find_template(storage, reference))
    return instantiate(storage, template, overrides)
