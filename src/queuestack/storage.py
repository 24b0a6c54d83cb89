"""Storage engine: walking, lookup and lifecycle moves of item files.

Every public operation re-reads the tree it acts on; nothing is cached
between calls.  Multi-step operations treat the item file move as the
operation of record: once it has succeeded, failures while relocating the
attachment directory are reported as :class:`AttachmentWarning` values
instead of exceptions.
"""

from __future__ import annotations

import logging
import random
import shutil
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from queuestack.config import Config, resolve_author
from queuestack.errors import (
    AlreadyExistsError,
    AmbiguousIdError,
    IndexOutOfRangeError,
    InvalidCategoryError,
    InvalidStateError,
    IoFailureError,
    NotFoundError,
    ParseError,
    QueueStackError,
)
from queuestack.ids import extract_id, generate_unique
from queuestack.item import Item, Status, is_url
from queuestack.layout import Lifecycle, StackLayout
from queuestack.movers import Mover, PlainMover
from queuestack.naming import (
    ATTACHMENTS_SUFFIX,
    ITEM_EXTENSION,
    attachment_dir_name,
    attachment_name,
    normalize_category,
)
from queuestack.parser import read_item, write_item

logger = logging.getLogger(__name__)

#: Directory levels searched below a lifecycle root (root + two category levels)
MAX_WALK_DEPTH = 3
#: Deepest category nesting the walk still reaches
MAX_CATEGORY_DEPTH = MAX_WALK_DEPTH - 1

_STATUS_FOR = {
    Lifecycle.LIVE: Status.OPEN,
    Lifecycle.ARCHIVED: Status.CLOSED,
    Lifecycle.TEMPLATE: Status.TEMPLATE,
}
_LIFECYCLE_FOR = {status: lifecycle for lifecycle, status in _STATUS_FOR.items()}


@dataclass(frozen=True)
class AttachmentWarning:
    path: Path
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


class Storage:
    """File-backed item store rooted at ``config.stack_path``."""

    def __init__(
        self,
        config: Config,
        mover: Mover | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config
        self.layout: StackLayout = config.layout
        self.mover = mover or PlainMover()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._rng = rng

    @property
    def root(self) -> Path:
        return self.layout.root

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def walk(self, lifecycle: Lifecycle = Lifecycle.LIVE) -> Iterator[Path]:
        """Lazily yield item files under *lifecycle*'s root, in sorted order.

        Reserved roots are skipped when walking live items, attachment
        directories are never entered, and recursion stops after
        :data:`MAX_WALK_DEPTH` levels. A directory that cannot be listed raises
        :class:`IoFailureError`.
        """
        base = self.layout.lifecycle_root(lifecycle)
        if not base.is_dir():
            return
        skip_top = self.layout.reserved if lifecycle is Lifecycle.LIVE else frozenset()
        yield from self._walk_dir(base, 0, skip_top)

    def _walk_dir(self, directory: Path, depth: int, skip: frozenset[str]) -> Iterator[Path]:
        try:
            entries = sorted(directory.iterdir())
        except OSError as exc:
            raise IoFailureError(directory, exc, "list") from exc
        for entry in entries:
            if entry.is_dir():
                name = entry.name
                if name.startswith(".") or name.endswith(ATTACHMENTS_SUFFIX):
                    continue
                if depth == 0 and name in skip:
                    continue
                if depth + 1 < MAX_WALK_DEPTH:
                    yield from self._walk_dir(entry, depth + 1, skip)
            elif entry.suffix == f".{ITEM_EXTENSION}" and self.id_of(entry):
                yield entry

    def walk_all(self) -> Iterator[Path]:
        """Live then archived items (templates are a separate namespace)."""
        yield from self.walk(Lifecycle.LIVE)
        yield from self.walk(Lifecycle.ARCHIVED)

    def id_of(self, path: Path) -> str | None:
        return extract_id(Path(path).name, self.config.id_pattern)

    def load(self, path: Path) -> Item:
        return read_item(Path(path))

    def save(self, item: Item) -> None:
        write_item(item, self._path_of(item))

    def load_all(
        self, lifecycles: Iterable[Lifecycle] = (Lifecycle.LIVE, Lifecycle.ARCHIVED)
    ) -> list[Item]:
        """Load every item in *lifecycles*, skipping files that fail to parse."""
        items: list[Item] = []
        for lifecycle in lifecycles:
            for path in self.walk(lifecycle):
                try:
                    items.append(read_item(path))
                except (ParseError, IoFailureError) as exc:
                    logger.warning("skipping %s: %s", path, exc.message)
        return items

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find_by_id(self, partial_id: str) -> Path:
        """Resolve a case-insensitive id prefix to a single item path.

        An exact full-id match wins immediately; otherwise exactly one prefix
        match is required.
        """
        return resolve_prefix(self.walk_all(), self.id_of, partial_id)

    def find_and_load(self, partial_id: str) -> Item:
        return self.load(self.find_by_id(partial_id))

    def load_from_file(self, file_path: Path) -> Item:
        path = Path(file_path)
        if not path.is_absolute():
            path = Path.cwd() / path
        if not path.is_file():
            raise NotFoundError(str(file_path), "file")
        return self.load(path)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def now(self) -> datetime:
        return self._clock().replace(microsecond=0)

    def existing_ids(self) -> set[str]:
        """Upper-cased ids of every item in every lifecycle."""
        ids: set[str] = set()
        for lifecycle in Lifecycle:
            ids.update((self.id_of(p) or "").upper() for p in self.walk(lifecycle))
        return ids

    def new_id(self, now: datetime | None = None) -> str:
        taken = self.existing_ids()
        return generate_unique(
            self.config.id_pattern,
            now or self.now(),
            lambda candidate: candidate.upper() in taken,
            rng=self._rng,
        )

    def create(self, item: Item, category: str | None = None) -> Path:
        """Write *item* into the directory for its status and *category*."""
        category = self._checked_category(category)
        directory = self.layout.target_dir(_LIFECYCLE_FOR[item.status], category)
        path = directory / item.filename
        if path.exists():
            raise AlreadyExistsError(path)
        write_item(item, path)
        item.path = path
        logger.debug("created %s", path)
        return path

    def create_item(
        self,
        title: str,
        *,
        labels: Iterable[str] = (),
        category: str | None = None,
        body: str = "",
        author: str | None = None,
        attachments: Iterable[str] = (),
    ) -> Item:
        """Create a new open item with a fresh id, author and timestamp."""
        sources = list(attachments)
        for source in sources:
            if not is_url(source) and not Path(source).expanduser().is_file():
                raise NotFoundError(source, "attachment source")
        now = self.now()
        item = Item(
            id=self.new_id(now),
            title=title,
            author=author or resolve_author(self.config, self.mover),
            created_at=now,
            status=Status.OPEN,
            labels=list(labels),
            body=body,
        )
        self.create(item, category)
        for source in sources:
            self.add_attachment(item, source)
        return item

    # ------------------------------------------------------------------
    # Lifecycle moves
    # ------------------------------------------------------------------

    def archive(self, path: Path) -> tuple[Path, list[AttachmentWarning]]:
        """Move a live item into the archive, keeping its category; status becomes closed."""
        return self._change_lifecycle(Path(path), Lifecycle.LIVE, Lifecycle.ARCHIVED)

    def unarchive(self, path: Path) -> tuple[Path, list[AttachmentWarning]]:
        """Move an archived item back to its live category; status becomes open."""
        return self._change_lifecycle(Path(path), Lifecycle.ARCHIVED, Lifecycle.LIVE)

    def to_template(self, path: Path) -> tuple[Path, list[AttachmentWarning]]:
        """Turn a live item into a template in the matching template category."""
        return self._change_lifecycle(Path(path), Lifecycle.LIVE, Lifecycle.TEMPLATE)

    def close(self, path: Path) -> tuple[Path, list[AttachmentWarning]]:
        item = self.load(path)
        if item.status is not Status.OPEN:
            raise InvalidStateError(f"Item '{item.id}' is already {item.status}")
        return self.archive(path)

    def reopen(self, path: Path) -> tuple[Path, list[AttachmentWarning]]:
        item = self.load(path)
        if item.status is not Status.CLOSED:
            raise InvalidStateError(f"Item '{item.id}' is already {item.status}")
        return self.unarchive(path)

    def _change_lifecycle(
        self, path: Path, source: Lifecycle, target: Lifecycle
    ) -> tuple[Path, list[AttachmentWarning]]:
        current = self.layout.lifecycle_of(path)
        if current is not source:
            raise InvalidStateError(f"{path.name} is {current.value}, expected {source.value}")
        item = self.load(path)
        category = self.layout.derive_category(path)
        dest = self.layout.target_dir(target, category) / path.name
        return self._relocate(item, dest, _STATUS_FOR[target])

    def _relocate(
        self, item: Item, dest: Path, status: Status
    ) -> tuple[Path, list[AttachmentWarning]]:
        src = self._path_of(item)
        if dest.exists():
            raise AlreadyExistsError(dest)
        previous = item.status
        if previous is not status:
            item.status = status
            write_item(item, src)
        try:
            self.mover.move(src, dest)
        except QueueStackError:
            if previous is not status:
                item.status = previous
                try:
                    write_item(item, src)
                except IoFailureError as exc:
                    logger.error("could not restore status of %s: %s", src, exc.message)
            raise
        item.path = dest
        return dest, self._move_attachments(src, dest)

    def move_to_category(
        self, path: Path, category: str | None
    ) -> tuple[Path, list[AttachmentWarning]]:
        """Move an item to *category* within its current lifecycle; ``None`` = uncategorized."""
        path = Path(path)
        category = self._checked_category(category)
        lifecycle = self.layout.lifecycle_of(path)
        dest = self.layout.target_dir(lifecycle, category) / path.name
        return self._move(path, dest)

    def rename(self, path: Path, new_filename: str) -> tuple[Path, list[AttachmentWarning]]:
        """Rename an item file in place (after a title change)."""
        path = Path(path)
        return self._move(path, path.with_name(new_filename))

    def _move(self, path: Path, dest: Path) -> tuple[Path, list[AttachmentWarning]]:
        if dest == path:
            return path, []
        self.mover.move(path, dest)
        return dest, self._move_attachments(path, dest)

    def _move_attachments(self, src: Path, dest: Path) -> list[AttachmentWarning]:
        src_dir = src.parent / attachment_dir_name(src.name)
        if not src_dir.is_dir():
            return []
        dest_dir = dest.parent / attachment_dir_name(dest.name)
        try:
            self.mover.move(src_dir, dest_dir)
        except QueueStackError as exc:
            logger.warning("failed to move attachments %s: %s", src_dir, exc.message)
            return [AttachmentWarning(src_dir, f"failed to move attachments: {exc.message}")]
        return []

    # ------------------------------------------------------------------
    # Update / delete
    # ------------------------------------------------------------------

    def update(
        self,
        item: Item,
        *,
        title: str | None = None,
        add_labels: Iterable[str] = (),
        remove_labels: Iterable[str] = (),
        body: str | None = None,
        category: str | None = None,
        clear_category: bool = False,
    ) -> list[AttachmentWarning]:
        """Apply changes, rewrite metadata, then rename/move the file as needed."""
        path = self._path_of(item)
        if title is not None:
            item.title = title
        for label in add_labels:
            item.add_label(label)
        for label in remove_labels:
            item.remove_label(label)
        if body is not None:
            item.body = body
        write_item(item, path)

        warnings: list[AttachmentWarning] = []
        if item.filename != path.name:
            path, moved = self.rename(path, item.filename)
            warnings.extend(moved)
        if clear_category or category is not None:
            path, moved = self.move_to_category(path, None if clear_category else category)
            warnings.extend(moved)
        item.path = path
        return warnings

    def delete(self, path: Path) -> list[AttachmentWarning]:
        """Remove an item file and its attachment directory."""
        path = Path(path)
        if not path.is_file():
            raise NotFoundError(str(path), "file")
        self.mover.remove(path)
        logger.debug("deleted %s", path)
        attachments = path.parent / attachment_dir_name(path.name)
        if not attachments.exists():
            return []
        try:
            self.mover.remove(attachments)
        except QueueStackError as exc:
            logger.warning("failed to remove attachments %s: %s", attachments, exc.message)
            return [AttachmentWarning(attachments, exc.message)]
        return []

    # ------------------------------------------------------------------
    # Attachments
    # ------------------------------------------------------------------

    def add_attachment(self, item: Item, source: str | Path) -> Item:
        """Attach a URL (stored as-is) or copy a file into the attachment directory."""
        path = self._path_of(item)
        if item.status is Status.CLOSED:
            raise InvalidStateError(f"Cannot attach to closed item '{item.id}'")
        if isinstance(source, str) and is_url(source):
            item.attachments.append(source)
        else:
            src = Path(source).expanduser()
            if not src.is_file():
                raise NotFoundError(str(source), "attachment source")
            self._attach_file(item, src, src.name)
        write_item(item, path)
        return item

    def _attach_file(self, item: Item, src: Path, original_name: str) -> str:
        index = item.next_attachment_index()
        name = attachment_name(index, original_name)
        path = self._path_of(item)
        directory = path.parent / attachment_dir_name(path.name)
        dest = directory / name
        if dest.exists():
            raise AlreadyExistsError(dest)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dest)
        except OSError as exc:
            raise IoFailureError(dest, exc, "copy attachment to") from exc
        logger.debug("copied attachment %s -> %s", src, dest)
        item.attachments.append(name)
        item.attachment_counter = index
        return name

    def remove_attachment(self, item: Item, index: int) -> tuple[Item, list[AttachmentWarning]]:
        """Drop the 1-based *index* entry; a copied file is deleted best-effort."""
        path = self._path_of(item)
        count = len(item.attachments)
        if not 1 <= index <= count:
            raise IndexOutOfRangeError(index, count)
        item.attachment_counter = item.next_attachment_index() - 1
        removed = item.attachments.pop(index - 1)
        write_item(item, path)

        warnings: list[AttachmentWarning] = []
        directory = item.attachment_dir
        if is_url(removed) or directory is None:
            return item, warnings
        target = self._attachment_file(directory, removed)
        if target is None:
            logger.warning("not deleting %s: outside %s", removed, directory)
            warnings.append(AttachmentWarning(Path(removed), "outside the attachment directory"))
            return item, warnings
        try:
            self.mover.remove(target)
            if directory.is_dir() and not any(directory.iterdir()):
                directory.rmdir()
        except (QueueStackError, OSError) as exc:
            message = exc.message if isinstance(exc, QueueStackError) else str(exc)
            logger.warning("failed to delete attachment %s: %s", target, message)
            warnings.append(AttachmentWarning(target, message))
        return item, warnings

    def copy_attachments(self, source: Item, target: Item) -> list[AttachmentWarning]:
        """Copy *source*'s attachments onto *target* with fresh indices."""
        warnings: list[AttachmentWarning] = []
        for entry in source.attachments:
            if is_url(entry):
                target.attachments.append(entry)
                continue
            directory = source.attachment_dir
            src_file = self._attachment_file(directory, entry) if directory else None
            if src_file is None or not src_file.is_file():
                warnings.append(AttachmentWarning(Path(entry), "attachment file is missing"))
                continue
            original = entry.split("-", 1)[1] if "-" in entry else entry
            try:
                self._attach_file(target, src_file, original)
            except QueueStackError as exc:
                warnings.append(AttachmentWarning(src_file, exc.message))
        self.save(target)
        return warnings

    def check_attachments(self, item: Item) -> list[str]:
        """Attachment entries with no file behind them (URLs are always valid).

        Entries pointing outside the attachment directory count as dangling.
        """
        directory = item.attachment_dir
        dangling = []
        for entry in item.file_attachments():
            target = self._attachment_file(directory, entry) if directory else None
            if target is None or not target.is_file():
                dangling.append(entry)
        return dangling

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def category_of(self, item_or_path: Item | Path) -> str | None:
        path = item_or_path.path if isinstance(item_or_path, Item) else item_or_path
        return self.layout.derive_category(path) if path is not None else None

    def _checked_category(self, category: str | None) -> str | None:
        category = normalize_category(category)
        if not category:
            return category
        segments = category.split("/")
        if segments[0] in self.layout.reserved:
            raise InvalidCategoryError(category, "reserved directory name")
        if len(segments) > MAX_CATEGORY_DEPTH:
            raise InvalidCategoryError(
                category, f"at most {MAX_CATEGORY_DEPTH} nested levels are allowed"
            )
        return category

    @staticmethod
    def _attachment_file(directory: Path, entry: str) -> Path | None:
        """``directory / entry`` when it names a file directly inside *directory*."""
        target = directory / entry
        if target.resolve().parent != directory.resolve():
            return None
        return target

    @staticmethod
    def _path_of(item: Item) -> Path:
        if item.path is None:
            raise InvalidStateError(f"Item '{item.id}' has not been saved")
        return item.path


def resolve_prefix(
    paths: Iterable[Path], id_of: Callable[[Path], str | None], reference: str
) -> Path:
    """Shared prefix-resolution rule: exact id wins, else exactly one prefix match."""
    needle = reference.strip().upper()
    if not needle:
        raise NotFoundError(reference)
    matches: list[Path] = []
    for path in paths:
        item_id = (id_of(path) or "").upper()
        if item_id == needle:
            return path
        if item_id.startswith(needle):
            matches.append(path)
    if not matches:
        raise NotFoundError(reference)
    if len(matches) > 1:
        raise AmbiguousIdError(reference, matches)
    return matches[0]


@dataclass(frozen=True)
class ItemRef:
    """An item given either by (partial) id or by file path."""

    id: str | None = None
    file: Path | None = None

    def __post_init__(self) -> None:
        if (self.id is None) == (self.file is None):
            raise ValueError("Exactly one of id or file must be given")

    def resolve(self, storage: Storage) -> Item:
        if self.id is not None:
            return storage.find_and_load(self.id)
        return storage.load_from_file(self.file)
