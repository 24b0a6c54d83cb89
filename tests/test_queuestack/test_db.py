"""Unit tests for queuestack.db.StackDB."""

import duckdb
import polars as pl
import pytest

from queuestack.db import StackDB
from queuestack.index import StackIndex
from queuestack.storage import Storage

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def db(storage: Storage) -> StackDB:
    storage.create_item("Alpha", labels=["python", "tutorial"], category="docs")
    storage.create_item("Beta", labels=["python"], body="Mentions gamma rays.\n")
    gamma = storage.create_item("Gamma", labels=["data"], category="docs")
    storage.archive(gamma.path)
    idx = StackIndex(storage)
    idx.build()
    return StackDB(idx)


# ---------------------------------------------------------------------------
# query()
# ---------------------------------------------------------------------------


class TestStackDBQuery:
    def test_basic_select(self, db: StackDB):
        df = db.query("SELECT title FROM items ORDER BY title")
        assert list(df["title"]) == ["Alpha", "Beta", "Gamma"]

    def test_filter_by_label(self, db: StackDB):
        df = db.query("SELECT title FROM items WHERE 'python' = ANY(labels) ORDER BY title")
        assert list(df["title"]) == ["Alpha", "Beta"]

    def test_parameters(self, db: StackDB):
        df = db.query("SELECT title FROM items WHERE status = ?", ["closed"])
        assert list(df["title"]) == ["Gamma"]

    def test_returns_polars_dataframe(self, db: StackDB):
        assert isinstance(db.query("SELECT id FROM items"), pl.DataFrame)

    def test_invalid_sql_raises(self, db: StackDB):
        with pytest.raises(duckdb.Error):
            db.query("SELECT * FROM nonexistent_table")


# ---------------------------------------------------------------------------
# table_view()
# ---------------------------------------------------------------------------


class TestTableView:
    def test_returns_all_by_default(self, db: StackDB):
        assert len(db.table_view()) == 3

    def test_status(self, db: StackDB):
        df = db.table_view(status="open", order_by="title")
        assert list(df["title"]) == ["Alpha", "Beta"]

    def test_label(self, db: StackDB):
        df = db.table_view(label="data")
        assert list(df["title"]) == ["Gamma"]

    def test_category(self, db: StackDB):
        df = db.table_view(category="DOCS", order_by="title")
        assert list(df["title"]) == ["Alpha", "Gamma"]

    def test_uncategorized(self, db: StackDB):
        df = db.table_view(category="uncategorized")
        assert list(df["title"]) == ["Beta"]

    def test_search_is_case_insensitive_and_covers_body(self, db: StackDB):
        df = db.table_view(search="GAMMA", order_by="title")
        assert list(df["title"]) == ["Beta", "Gamma"]

    def test_custom_columns(self, db: StackDB):
        df = db.table_view(columns=["id", "title"])
        assert list(df.columns) == ["id", "title"]

    def test_order_descending(self, db: StackDB):
        df = db.table_view(order_by="title DESC")
        assert list(df["title"]) == ["Gamma", "Beta", "Alpha"]

    def test_unknown_order_column_falls_back_to_id(self, db: StackDB):
        df = db.table_view(order_by="title; DROP TABLE items", columns=["id"])
        assert list(df["id"]) == sorted(df["id"])


# ---------------------------------------------------------------------------
# category_view() / label_counts()
# ---------------------------------------------------------------------------


class TestCategoryView:
    def test_groups_open_items(self, db: StackDB):
        groups = db.category_view()
        assert sorted(groups) == ["docs", "uncategorized"]
        assert [row["title"] for row in groups["docs"]] == ["Alpha"]

    def test_closed_items(self, db: StackDB):
        groups = db.category_view(status="closed")
        assert list(groups) == ["docs"]


class TestLabelCounts:
    def test_python_has_count_two(self, db: StackDB):
        df = db.label_counts()
        row = df.filter(pl.col("label") == "python")
        assert row["item_count"][0] == 2

    def test_archived_labels_are_excluded(self, db: StackDB):
        assert "data" not in list(db.label_counts()["label"])

    def test_sorted_by_frequency_desc(self, db: StackDB):
        counts = list(db.label_counts()["item_count"])
        assert counts == sorted(counts, reverse=True)


class TestSchema:
    def test_columns(self, db: StackDB):
        names = list(db.schema_info()["column_name"])
        assert names[:4] == ["id", "title", "author", "created_at"]

    def test_context_manager_closes(self, storage: Storage):
        idx = StackIndex(storage)
        idx.build()
        with StackDB(idx) as db:
            assert len(db.table_view()) == 0
        with pytest.raises(duckdb.Error):
            db.query("SELECT 1")
