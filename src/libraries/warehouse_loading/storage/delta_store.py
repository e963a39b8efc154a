"""
Delta Lake table store backed by a Spark session.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence
import logging

from pyspark.sql import DataFrame, SparkSession
from pyspark.sql.types import (
    BooleanType,
    DataType,
    DateType,
    DecimalType,
    DoubleType,
    LongType,
    StringType,
    StructField,
    StructType,
    TimestampType,
)
from delta.tables import DeltaTable

from .base import Record, TableStore

logger = logging.getLogger(__name__)

MERGE_KEY_COLUMN = "_merge_key"

# bool before int and datetime before date: isinstance matches subclasses
_PYTHON_TO_SPARK = [
    (bool, BooleanType),
    (int, LongType),
    (float, DoubleType),
    (Decimal, lambda: DecimalType(38, 18)),
    (datetime, TimestampType),
    (date, DateType),
    (str, StringType),
]


def quote_identifier(name: str) -> str:
    """Quote a column name for Spark SQL."""
    return "`" + name.replace("`", "``") + "`"


def spark_type_for(value: Any) -> DataType:
    """Map a Python value to the Spark SQL type used to store it."""
    for python_type, spark_type in _PYTHON_TO_SPARK:
        if isinstance(value, python_type):
            return spark_type()
    return StringType()


class DeltaTableStore(TableStore):
    """Table store reading and writing Delta tables through Spark."""

    def __init__(self, spark: SparkSession, same_type_as: Optional[Dict[str, str]] = None):
        """
        Initialize DeltaTableStore with a Spark session.

        Args:
            spark: Spark session with Delta Lake enabled
            same_type_as: Column -> column whose type an all-null column takes
                when a table is created, e.g. {"valid_to": "valid_from"}
        """
        self.spark = spark
        self.same_type_as = dict(same_type_as or {})

    def table_exists(self, table: str) -> bool:
        return self.spark.catalog.tableExists(table)

    def columns(self, table: str) -> List[str]:
        return list(self.spark.table(table).columns)

    def max_value(self, table: str, column: str) -> Any:
        rows = self.spark.sql(
            f"SELECT MAX({quote_identifier(column)}) AS max_value FROM {table}"
        ).collect()
        return rows[0]["max_value"] if rows else None

    def read_rows(self, table: str, predicate=None) -> List[Record]:
        df = self.spark.table(table)
        if predicate is not None:
            condition = predicate.to_sql()
            if condition:
                logger.info(f"Reading {table} where {condition}")
                df = df.filter(condition)
        return [row.asDict() for row in df.collect()]

    def read_open_versions(self, table: str, is_current_column: str,
                           key_columns: Optional[Sequence[str]] = None,
                           keys: Optional[Sequence[tuple]] = None) -> List[Record]:
        if keys is not None and not keys:
            return []
        current_records = self.spark.table(table).filter(f"{quote_identifier(is_current_column)} = true")
        if keys is not None:
            current_records = current_records.join(
                self._keys_frame(table, key_columns, keys), on=list(key_columns), how="left_semi"
            )
        rows = [row.asDict() for row in current_records.collect()]
        logger.info(f"Retrieved {len(rows)} current records from {table}")
        return rows

    def read_closed_bounds(self, table: str, key_columns: Sequence[str], keys: Sequence[tuple],
                           valid_to_column: str, is_current_column: str) -> List[Record]:
        if not keys:
            return []
        bounds = (self.spark.table(table)
                  .filter(f"{quote_identifier(is_current_column)} = false")
                  .join(self._keys_frame(table, key_columns, keys), on=list(key_columns), how="left_semi")
                  .groupBy(*key_columns)
                  .agg({valid_to_column: "max"})
                  .withColumnRenamed(f"max({valid_to_column})", valid_to_column))
        rows = [row.asDict() for row in bounds.collect()]
        logger.info(f"Retrieved closed-version bounds for {len(rows)} keys from {table}")
        return rows

    def is_empty(self, table: str) -> bool:
        return not self.table_exists(table) or self.spark.table(table).isEmpty()

    def create_table(self, table: str, rows: Sequence[Record], columns: Sequence[str],
                     like: Optional[str] = None) -> int:
        df = self._to_dataframe(rows, self._infer_schema(rows, columns, like))
        df.write.format("delta").mode("errorifexists").saveAsTable(table)
        logger.info(f"Created Delta table {table} with {len(rows)} rows")
        return len(rows)

    def replace_table(self, table: str, rows: Sequence[Record], columns: Sequence[str],
                      like: Optional[str] = None) -> int:
        if self.table_exists(table):
            schema = self.spark.table(table).schema
        else:
            schema = self._infer_schema(rows, columns, like)
        df = self._to_dataframe(rows, schema)
        df.write.format("delta").mode("overwrite").saveAsTable(table)
        logger.info(f"Replaced Delta table {table} with {len(rows)} rows")
        return len(rows)

    def append_rows(self, table: str, rows: Sequence[Record],
                    unique_key: Optional[Sequence[str]] = None) -> int:
        if not rows:
            return 0

        df = self._to_dataframe(rows, self.spark.table(table).schema)
        if not unique_key:
            df.write.format("delta").mode("append").saveAsTable(table)
            logger.info(f"Appended {len(rows)} rows to {table}")
            return len(rows)

        merge_condition = " AND ".join(
            f"target.{quote_identifier(c)} <=> source.{quote_identifier(c)}" for c in unique_key
        )
        before_count = self.spark.table(table).count()

        (DeltaTable.forName(self.spark, table).alias("target")
         .merge(df.alias("source"), merge_condition)
         .whenNotMatchedInsertAll()
         .execute())

        inserted = self.spark.table(table).count() - before_count
        logger.info(f"Inserted {inserted} new rows into {table}")
        return inserted

    def merge_history(self, table: str, inserts: Sequence[Record], closures: Sequence[Record],
                      key_column: str, valid_to_column: str, is_current_column: str) -> int:
        if not inserts and not closures:
            return 0

        target_schema = self.spark.table(table).schema
        staged_schema = StructType(
            list(target_schema.fields) + [StructField(MERGE_KEY_COLUMN, StringType(), True)]
        )

        # Close-outs match their open row by key; new versions never match
        staged_rows = [dict(row, **{MERGE_KEY_COLUMN: row[key_column]}) for row in closures]
        staged_rows.extend(dict(row, **{MERGE_KEY_COLUMN: None}) for row in inserts)
        staged_df = self._to_dataframe(staged_rows, staged_schema)

        merge_condition = (
            f"target.{quote_identifier(key_column)} = staged.{MERGE_KEY_COLUMN} "
            f"AND target.{quote_identifier(is_current_column)} = true"
        )
        insert_values = {
            name: f"staged.{quote_identifier(name)}"
            for name in target_schema.fieldNames()
        }

        (DeltaTable.forName(self.spark, table).alias("target")
         .merge(staged_df.alias("staged"), merge_condition)
         .whenMatchedUpdate(set={
             valid_to_column: f"staged.{quote_identifier(valid_to_column)}",
             is_current_column: f"staged.{quote_identifier(is_current_column)}",
         })
         .whenNotMatchedInsert(condition=f"staged.{MERGE_KEY_COLUMN} IS NULL", values=insert_values)
         .execute())

        logger.info(f"Merged {len(closures)} close-outs and {len(inserts)} inserts into {table}")
        return len(closures) + len(inserts)

    def _infer_schema(self, rows: Sequence[Record], columns: Sequence[str],
                      like: Optional[str] = None) -> StructType:
        """
        Build the schema of a new table.

        Columns present in the ``like`` table keep its types, so decimals
        keep their precision and all-null columns keep their source type.
        The rest are inferred from Python values.

        Args:
            rows: Records to store
            columns: Ordered column names
            like: Optional table whose column types are reused

        Returns:
            StructType with every column nullable
        """
        types: Dict[str, Optional[DataType]] = {}
        if like is not None and self.table_exists(like):
            types.update(
                (field.name, field.dataType)
                for field in self.spark.table(like).schema.fields
                if field.name in columns
            )

        for name in columns:
            if types.get(name) is None:
                sample = next((row.get(name) for row in rows if row.get(name) is not None), None)
                types[name] = None if sample is None else spark_type_for(sample)

        for name in columns:
            if types[name] is None:
                source = self.same_type_as.get(name)
                types[name] = types.get(source) or StringType()

        return StructType([StructField(name, types[name], True) for name in columns])

    def _keys_frame(self, table: str, key_columns: Sequence[str], keys: Sequence[tuple]) -> DataFrame:
        """DataFrame of the wanted natural keys, typed like the target's key columns."""
        target_schema = self.spark.table(table).schema
        key_schema = StructType([
            StructField(name, target_schema[name].dataType, True) for name in key_columns
        ])
        return self.spark.createDataFrame(list(dict.fromkeys(tuple(k) for k in keys)), key_schema)

    def _to_dataframe(self, rows: Sequence[Record], schema: StructType) -> DataFrame:
        names = schema.fieldNames()
        ordered = [tuple(row.get(name) for name in names) for row in rows]
        return self.spark.createDataFrame(ordered, schema)
