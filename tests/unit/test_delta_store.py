"""
Unit tests for DeltaTableStore with mocked Spark session.
This version avoids Java dependency issues for development.
"""

from datetime import datetime
from decimal import Decimal
from unittest.mock import Mock, MagicMock, patch

import pytest
from pyspark.sql.types import (
    BooleanType,
    DecimalType,
    LongType,
    StringType,
    StructField,
    StructType,
    TimestampType
)

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from libraries.warehouse_loading.incremental.window_selector import WindowPredicate
from libraries.warehouse_loading.common.config import RunKind, WindowMode
from libraries.warehouse_loading.storage.delta_store import (
    DeltaTableStore,
    MERGE_KEY_COLUMN,
    quote_identifier,
    spark_type_for
)

HISTORY_SCHEMA = StructType([
    StructField("id", StringType(), True),
    StructField("surrogate_key", StringType(), True),
    StructField("valid_from", TimestampType(), True),
    StructField("valid_to", TimestampType(), True),
    StructField("is_current", BooleanType(), True),
])


class TestHelpers:
    """Test cases for module helpers."""

    def test_quote_identifier(self):
        assert quote_identifier("valid_to") == "`valid_to`"
        assert quote_identifier("odd`name") == "`odd``name`"

    def test_spark_type_for(self):
        assert spark_type_for(True) == BooleanType()
        assert spark_type_for(3) == LongType()
        assert spark_type_for(datetime(2024, 1, 1)) == TimestampType()
        assert spark_type_for("x") == StringType()


class TestDeltaTableStoreMocked:
    """Test cases for DeltaTableStore with mocked Spark session."""

    @pytest.fixture
    def mock_spark(self):
        """Create mocked Spark session."""
        mock_spark = MagicMock()
        mock_spark.table.return_value.schema = HISTORY_SCHEMA
        return mock_spark

    @pytest.fixture
    def store(self, mock_spark):
        return DeltaTableStore(mock_spark, same_type_as={"valid_to": "valid_from"})

    def test_table_exists(self, store, mock_spark):
        mock_spark.catalog.tableExists.return_value = True

        assert store.table_exists("dev.scd_raw_listings") is True
        mock_spark.catalog.tableExists.assert_called_once_with("dev.scd_raw_listings")

    def test_max_value(self, store, mock_spark):
        mock_spark.sql.return_value.collect.return_value = [{"max_value": datetime(2024, 1, 5)}]

        assert store.max_value("dev.fct_reviews", "review_date") == datetime(2024, 1, 5)
        query = mock_spark.sql.call_args[0][0]
        assert "MAX(`review_date`)" in query
        assert "dev.fct_reviews" in query

    def test_read_rows_pushes_predicate_down(self, store, mock_spark):
        df = mock_spark.table.return_value
        filtered = df.filter.return_value
        row = Mock()
        row.asDict.return_value = {"review_date": datetime(2024, 1, 6)}
        filtered.collect.return_value = [row]
        predicate = WindowPredicate("review_date", WindowMode.WATERMARK, RunKind.INCREMENTAL_RUN,
                                    lower=datetime(2024, 1, 5))

        rows = store.read_rows("dev.src_reviews", predicate)

        df.filter.assert_called_once_with("`review_date` > TIMESTAMP '2024-01-05 00:00:00'")
        assert rows == [{"review_date": datetime(2024, 1, 6)}]

    def test_read_rows_unbounded_predicate(self, store, mock_spark):
        df = mock_spark.table.return_value
        df.collect.return_value = []
        predicate = WindowPredicate("review_date", WindowMode.WATERMARK, RunKind.FIRST_RUN)

        store.read_rows("dev.src_reviews", predicate)

        df.filter.assert_not_called()

    def test_create_table_infers_schema(self, store, mock_spark):
        rows = [{
            "id": "1",
            "surrogate_key": "abc",
            "valid_from": datetime(2024, 1, 1),
            "valid_to": None,
            "is_current": True,
        }]

        written = store.create_table("dev.scd_raw_listings", rows, HISTORY_SCHEMA.fieldNames())

        assert written == 1
        data, schema = mock_spark.createDataFrame.call_args[0]
        assert data == [("1", "abc", datetime(2024, 1, 1), None, True)]
        assert schema == HISTORY_SCHEMA
        df = mock_spark.createDataFrame.return_value
        df.write.format.assert_called_once_with("delta")
        df.write.format.return_value.mode.assert_called_once_with("errorifexists")

    def test_append_rows_with_unique_key_merges(self, store, mock_spark):
        mock_spark.table.return_value.count.side_effect = [5, 6]

        with patch("libraries.warehouse_loading.storage.delta_store.DeltaTable") as delta_table:
            inserted = store.append_rows("dev.fct_reviews", [{"id": "1"}], unique_key=["id"])

        assert inserted == 1
        merge = delta_table.forName.return_value.alias.return_value.merge
        assert merge.call_args[0][1] == "target.`id` <=> source.`id`"
        merge.return_value.whenNotMatchedInsertAll.return_value.execute.assert_called_once()

    def test_merge_history_single_merge(self, store, mock_spark):
        closure = {"id": "1", "surrogate_key": "old", "valid_from": datetime(2024, 1, 1),
                   "valid_to": datetime(2024, 2, 1), "is_current": False}
        insert = {"id": "1", "surrogate_key": "new", "valid_from": datetime(2024, 2, 1),
                  "valid_to": None, "is_current": True}

        with patch("libraries.warehouse_loading.storage.delta_store.DeltaTable") as delta_table:
            affected = store.merge_history("dev.scd_raw_listings", [insert], [closure],
                                           "surrogate_key", "valid_to", "is_current")

        assert affected == 2
        data, schema = mock_spark.createDataFrame.call_args[0]
        assert schema.fieldNames()[-1] == MERGE_KEY_COLUMN
        assert [row[-1] for row in data] == ["old", None]

        merge = delta_table.forName.return_value.alias.return_value.merge
        assert merge.call_args[0][1] == (
            "target.`surrogate_key` = staged._merge_key AND target.`is_current` = true"
        )
        matched = merge.return_value.whenMatchedUpdate
        assert matched.call_args[1]["set"] == {
            "valid_to": "staged.`valid_to`",
            "is_current": "staged.`is_current`",
        }
        not_matched = matched.return_value.whenNotMatchedInsert
        assert not_matched.call_args[1]["condition"] == "staged._merge_key IS NULL"
        assert MERGE_KEY_COLUMN not in not_matched.call_args[1]["values"]
        not_matched.return_value.execute.assert_called_once()

    def test_merge_history_nothing_to_do(self, store, mock_spark):
        assert store.merge_history("dev.scd_raw_listings", [], [], "surrogate_key",
                                   "valid_to", "is_current") == 0
        mock_spark.createDataFrame.assert_not_called()

    def test_read_open_versions_restricts_to_keys(self, store, mock_spark):
        df = mock_spark.table.return_value
        joined = df.filter.return_value.join.return_value
        row = Mock()
        row.asDict.return_value = {"id": "1", "is_current": True}
        joined.collect.return_value = [row]

        rows = store.read_open_versions("dev.scd_raw_listings", "is_current",
                                        key_columns=["id"], keys=[("1",), ("1",)])

        assert rows == [{"id": "1", "is_current": True}]
        df.filter.assert_called_once_with("`is_current` = true")
        join_kwargs = df.filter.return_value.join.call_args[1]
        assert join_kwargs["on"] == ["id"]
        assert join_kwargs["how"] == "left_semi"
        data, schema = mock_spark.createDataFrame.call_args[0]
        assert data == [("1",)]
        assert schema == StructType([StructField("id", StringType(), True)])

    def test_read_open_versions_without_keys_reads_all_current(self, store, mock_spark):
        df = mock_spark.table.return_value
        df.filter.return_value.collect.return_value = []

        assert store.read_open_versions("dev.scd_raw_listings", "is_current") == []
        df.filter.return_value.join.assert_not_called()

    def test_read_open_versions_empty_key_list(self, store, mock_spark):
        assert store.read_open_versions("dev.scd_raw_listings", "is_current",
                                        key_columns=["id"], keys=[]) == []
        mock_spark.table.assert_not_called()

    def test_read_closed_bounds_aggregates_in_spark(self, store, mock_spark):
        df = mock_spark.table.return_value
        grouped = df.filter.return_value.join.return_value.groupBy
        renamed = grouped.return_value.agg.return_value.withColumnRenamed
        row = Mock()
        row.asDict.return_value = {"id": "1", "valid_to": datetime(2024, 1, 3)}
        renamed.return_value.collect.return_value = [row]

        bounds = store.read_closed_bounds("dev.scd_raw_listings", ["id"], [("1",)],
                                          "valid_to", "is_current")

        assert bounds == [{"id": "1", "valid_to": datetime(2024, 1, 3)}]
        df.filter.assert_called_once_with("`is_current` = false")
        grouped.assert_called_once_with("id")
        grouped.return_value.agg.assert_called_once_with({"valid_to": "max"})
        renamed.assert_called_once_with("max(valid_to)", "valid_to")

    def test_read_closed_bounds_no_keys(self, store, mock_spark):
        assert store.read_closed_bounds("dev.scd_raw_listings", ["id"], [],
                                        "valid_to", "is_current") == []
        mock_spark.table.assert_not_called()

    def test_create_table_reuses_source_column_types(self, store, mock_spark):
        mock_spark.catalog.tableExists.return_value = True
        mock_spark.table.return_value.schema = StructType([
            StructField("id", StringType(), True),
            StructField("price", DecimalType(10, 2), True),
            StructField("minimum_nights", LongType(), True),
        ])
        rows = [{
            "id": "1",
            "price": Decimal("1.50"),
            "minimum_nights": None,
            "valid_from": datetime(2024, 1, 1),
            "valid_to": None,
        }]

        store.create_table("dev.scd_raw_listings", rows, list(rows[0]), like="dev.raw_listings")

        mock_spark.table.assert_called_once_with("dev.raw_listings")
        _, schema = mock_spark.createDataFrame.call_args[0]
        assert schema == StructType([
            StructField("id", StringType(), True),
            StructField("price", DecimalType(10, 2), True),
            StructField("minimum_nights", LongType(), True),
            StructField("valid_from", TimestampType(), True),
            StructField("valid_to", TimestampType(), True),
        ])
