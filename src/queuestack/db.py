"""StackDB: tabular views over item metadata.

Uses DuckDB (in-memory) as a query engine over an already-built
:class:`~queuestack.index.StackIndex` and returns :mod:`polars` DataFrames.

Usage::

    db = StackDB(index)

    df = db.query("SELECT id, title FROM items WHERE 'bug' = ANY(labels)")
    table = db.table_view(status="open", label="bug", order_by="created_at DESC")
    groups = db.category_view()
"""

from __future__ import annotations

from datetime import timezone
from typing import TYPE_CHECKING, Any

import duckdb
import polars as pl

if TYPE_CHECKING:
    from queuestack.index import StackIndex

_ORDERABLE = {"id", "title", "author", "created_at", "status", "category", "lifecycle"}


class StackDB:
    """In-memory DuckDB database over item metadata."""

    def __init__(self, index: "StackIndex") -> None:
        self.conn: duckdb.DuckDBPyConnection = duckdb.connect(":memory:")
        self.refresh(index)

    # ------------------------------------------------------------------
    # Build / refresh
    # ------------------------------------------------------------------

    def refresh(self, index: "StackIndex") -> None:
        """(Re-)populate the database from *index* (call after index rebuild)."""
        self._index = index
        self._create_schema()
        self._load_items()

    def _create_schema(self) -> None:
        self.conn.execute("""
            CREATE OR REPLACE TABLE items (
                id          VARCHAR PRIMARY KEY,
                title       VARCHAR,
                author      VARCHAR,
                created_at  TIMESTAMP,
                status      VARCHAR,
                lifecycle   VARCHAR,
                category    VARCHAR,
                labels      VARCHAR[],
                attachments VARCHAR[],
                body        TEXT,
                path        VARCHAR
            )
        """)

    def _load_items(self) -> None:
        rows = [
            (
                entry.item.id,
                entry.item.title,
                entry.item.author,
                entry.item.created_at.astimezone(timezone.utc).replace(tzinfo=None),
                entry.item.status.value,
                entry.lifecycle.value,
                entry.category,
                entry.item.labels,
                entry.item.attachments,
                entry.item.body,
                str(entry.item.path) if entry.item.path else None,
            )
            for entry in self._index.items.values()
        ]
        if rows:
            self.conn.executemany(
                "INSERT OR REPLACE INTO items VALUES (?,?,?,?,?,?,?,?,?,?,?)", rows
            )

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def query(self, sql: str, params: list[Any] | None = None) -> pl.DataFrame:
        """Run a raw SQL query and return a Polars DataFrame."""
        return self.conn.execute(sql, params or []).pl()

    def table_view(
        self,
        *,
        status: str | None = None,
        label: str | None = None,
        category: str | None = None,
        search: str | None = None,
        columns: list[str] | None = None,
        order_by: str = "id",
    ) -> pl.DataFrame:
        """Return items as a Polars DataFrame, optionally filtered.

        Parameters
        ----------
        status:
            ``open``, ``closed`` or ``template``.
        label:
            Only include items carrying this label.
        category:
            Exact category; ``"uncategorized"`` selects items without one.
        search:
            Case-insensitive substring filter on id, title or body.
        columns:
            Which columns to include.  Defaults to
            ``id, title, status, category, labels``.
        order_by:
            Column to sort by, optionally followed by ``ASC``/``DESC``.
        """
        cols = ", ".join(c for c in (columns or []) if c.isidentifier()) or (
            "id, title, status, category, labels"
        )
        where: list[str] = []
        params: list[Any] = []

        if status:
            where.append("status = ?")
            params.append(status)
        if label:
            where.append("list_contains(labels, ?)")
            params.append(label)
        if category:
            if category.lower() == "uncategorized":
                where.append("category IS NULL")
            else:
                where.append("lower(category) = lower(?)")
                params.append(category)
        if search:
            where.append("(id ILIKE ? OR title ILIKE ? OR body ILIKE ?)")
            params.extend([f"%{search}%"] * 3)

        where_sql = f"WHERE {' AND '.join(where)}" if where else ""
        sql = f"SELECT {cols} FROM items {where_sql} ORDER BY {_order_clause(order_by)}"
        return self.conn.execute(sql, params).pl()

    def category_view(self, status: str = "open") -> dict[str, list[dict[str, Any]]]:
        """Group items by category for a board-style view.

        Items without a category are grouped under ``"uncategorized"``.
        """
        df = self.conn.execute(
            """
            SELECT id, title, labels, COALESCE(category, 'uncategorized') AS group_val
            FROM items
            WHERE status = ?
            ORDER BY group_val, id
            """,
            [status],
        ).pl()

        groups: dict[str, list[dict[str, Any]]] = {}
        for row in df.to_dicts():
            gv = str(row.pop("group_val"))
            groups.setdefault(gv, []).append(row)
        return groups

    def label_counts(self) -> pl.DataFrame:
        """Return a label → count table sorted by frequency."""
        return self.conn.execute(
            """
            SELECT label, COUNT(*) AS item_count
            FROM (SELECT unnest(labels) AS label FROM items WHERE status = 'open')
            GROUP BY label
            ORDER BY item_count DESC, label
            """
        ).pl()

    def schema_info(self) -> pl.DataFrame:
        return self.conn.execute("DESCRIBE items").pl()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "StackDB":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _order_clause(order_by: str) -> str:
    parts = order_by.split()
    column = parts[0] if parts and parts[0] in _ORDERABLE else "id"
    direction = "DESC" if len(parts) > 1 and parts[1].upper() == "DESC" else "ASC"
    return f"{column} {direction}"
