"""
Unit tests for InMemoryTableStore.
"""

from datetime import datetime

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from libraries.warehouse_loading.storage.memory import InMemoryTableStore


class TestInMemoryTableStore:
    """Test cases for InMemoryTableStore."""

    @pytest.fixture
    def store(self):
        return InMemoryTableStore({"events": [
            {"id": 1, "ts": "2024-01-01"},
            {"id": 2, "ts": "2024-01-03"},
        ]})

    def test_initial_tables(self, store):
        assert store.table_exists("events")
        assert not store.table_exists("missing")
        assert store.columns("events") == ["id", "ts"]
        assert not store.is_empty("events")
        assert store.is_empty("missing")

    def test_max_value(self, store):
        assert store.max_value("events", "ts").isoformat() == "2024-01-03T00:00:00"
        with pytest.raises(KeyError):
            store.max_value("events", "other")

    def test_read_rows_returns_copies(self, store):
        rows = store.read_rows("events")
        rows[0]["id"] = 99

        assert store.read_rows("events")[0]["id"] == 1

    def test_read_missing_table(self, store):
        with pytest.raises(KeyError, match="Table not found"):
            store.read_rows("missing")

    def test_create_table_fails_if_exists(self, store):
        with pytest.raises(ValueError, match="already exists"):
            store.create_table("events", [], ["id", "ts"])

    def test_append_rows_skips_existing_keys(self, store):
        written = store.append_rows("events", [
            {"id": 2, "ts": "2024-01-03"},
            {"id": 3, "ts": "2024-01-04"},
        ], unique_key=["id"])

        assert written == 1
        assert [row["id"] for row in store.read_rows("events")] == [1, 2, 3]

    def test_append_rows_rejects_unknown_columns(self, store):
        with pytest.raises(ValueError, match="not in table"):
            store.append_rows("events", [{"id": 3, "ts": "2024-01-04", "extra": 1}])
        assert len(store.read_rows("events")) == 2

    def test_replace_table(self, store):
        store.replace_table("events", [{"id": 7, "ts": None}], ["id", "ts"])
        assert store.read_rows("events") == [{"id": 7, "ts": None}]

    def test_merge_history(self):
        store = InMemoryTableStore({"dim": [
            {"id": 1, "sk": "a", "valid_to": None, "is_current": True},
        ]})

        affected = store.merge_history(
            "dim",
            inserts=[{"id": 1, "sk": "b", "valid_to": None, "is_current": True}],
            closures=[{"id": 1, "sk": "a", "valid_to": "2024-01-02", "is_current": False}],
            key_column="sk",
            valid_to_column="valid_to",
            is_current_column="is_current",
        )

        assert affected == 2
        assert store.read_rows("dim") == [
            {"id": 1, "sk": "a", "valid_to": "2024-01-02", "is_current": False},
            {"id": 1, "sk": "b", "valid_to": None, "is_current": True},
        ]
        assert store.read_open_versions("dim", "is_current") == [
            {"id": 1, "sk": "b", "valid_to": None, "is_current": True},
        ]

    def test_merge_history_is_all_or_nothing(self):
        store = InMemoryTableStore({"dim": [
            {"id": 1, "sk": "a", "valid_to": None, "is_current": True},
        ]})

        with pytest.raises(LookupError):
            store.merge_history(
                "dim",
                inserts=[{"id": 2, "sk": "c", "valid_to": None, "is_current": True}],
                closures=[
                    {"id": 1, "sk": "a", "valid_to": "2024-01-02", "is_current": False},
                    {"id": 3, "sk": "z", "valid_to": "2024-01-02", "is_current": False},
                ],
                key_column="sk",
                valid_to_column="valid_to",
                is_current_column="is_current",
            )

        assert store.read_rows("dim") == [
            {"id": 1, "sk": "a", "valid_to": None, "is_current": True},
        ]

    @pytest.fixture
    def history_store(self):
        return InMemoryTableStore({"dim": [
            {"id": 1, "sk": "a", "valid_to": "2024-01-02", "is_current": False},
            {"id": 1, "sk": "b", "valid_to": "2024-01-05", "is_current": False},
            {"id": 2, "sk": "c", "valid_to": "2024-01-03", "is_current": False},
            {"id": 2, "sk": "d", "valid_to": None, "is_current": True},
            {"id": 3, "sk": "e", "valid_to": None, "is_current": True},
        ]})

    def test_read_open_versions_restricted_to_keys(self, history_store):
        rows = history_store.read_open_versions("dim", "is_current", key_columns=["id"], keys=[(3,)])

        assert [row["sk"] for row in rows] == ["e"]
        assert history_store.read_open_versions("dim", "is_current", key_columns=["id"], keys=[]) == []

    def test_read_closed_bounds(self, history_store):
        bounds = history_store.read_closed_bounds("dim", ["id"], [(1,), (2,), (3,)],
                                                  "valid_to", "is_current")

        assert sorted(bounds, key=lambda row: row["id"]) == [
            {"id": 1, "valid_to": datetime(2024, 1, 5)},
            {"id": 2, "valid_to": datetime(2024, 1, 3)},
        ]
        assert history_store.read_closed_bounds("dim", ["id"], [(3,)], "valid_to", "is_current") == []
