"""Directory layout: lifecycle roots and category directories.

::

    {stack}/
      {category}/.../{id}-{slug}.md
      {archive_dir}/{category}/.../{id}-{slug}.md
      {template_dir}/{category}/.../{id}-{slug}.md

Archive and template roots mirror the live category tree, so a record keeps
its category when it is closed or turned into a template.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from queuestack.naming import ITEM_EXTENSION


class Lifecycle(str, Enum):
    LIVE = "live"
    ARCHIVED = "archived"
    TEMPLATE = "template"


@dataclass(frozen=True)
class StackLayout:
    """Maps ``(lifecycle, category)`` pairs to directories under *root*."""

    root: Path
    archive_dir: str = "archive"
    template_dir: str = ".templates"

    @property
    def reserved(self) -> frozenset[str]:
        return frozenset({self.archive_dir, self.template_dir})

    def lifecycle_root(self, lifecycle: Lifecycle) -> Path:
        if lifecycle is Lifecycle.ARCHIVED:
            return self.root / self.archive_dir
        if lifecycle is Lifecycle.TEMPLATE:
            return self.root / self.template_dir
        return self.root

    def target_dir(self, lifecycle: Lifecycle, category: str | None = None) -> Path:
        base = self.lifecycle_root(lifecycle)
        if not category:
            return base
        return base.joinpath(*category.split("/"))

    def lifecycle_of(self, path: Path) -> Lifecycle:
        """Which lifecycle root *path* sits under (live when outside both reserved roots)."""
        parts = self._relative_parts(path)
        if parts and parts[0] == self.archive_dir:
            return Lifecycle.ARCHIVED
        if parts and parts[0] == self.template_dir:
            return Lifecycle.TEMPLATE
        return Lifecycle.LIVE

    def derive_category(self, path: Path) -> str | None:
        """Category implied by *path*, the inverse of :meth:`target_dir`.

        *path* may be an item file (``*.md``, its parent directory is used) or
        a directory. Returns ``None`` directly under a lifecycle root.
        """
        path = Path(path)
        directory = path.parent if path.suffix == f".{ITEM_EXTENSION}" else path
        parts = self._relative_parts(directory)
        if parts and parts[0] in self.reserved:
            parts = parts[1:]
        return "/".join(parts) or None

    def _relative_parts(self, path: Path) -> tuple[str, ...]:
        try:
            return Path(path).relative_to(self.root).parts
        except ValueError:
            return ()
