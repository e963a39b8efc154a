"""
In-process table store for local runs and tests.
"""

from typing import Any, Dict, List, Optional, Sequence
import copy
import logging

from ..common.utils import max_timestamp, natural_key
from .base import Record, TableStore

logger = logging.getLogger(__name__)


class InMemoryTableStore(TableStore):
    """
    Table store keeping tables as lists of records.

    Writes build the complete new row list first and swap it in as the
    last step, so a failing write leaves the table untouched.
    """

    def __init__(self, tables: Optional[Dict[str, Sequence[Record]]] = None):
        """
        Initialize InMemoryTableStore.

        Args:
            tables: Optional initial tables, name -> rows
        """
        self._columns: Dict[str, List[str]] = {}
        self._rows: Dict[str, List[Record]] = {}
        for name, rows in (tables or {}).items():
            columns = list(rows[0].keys()) if rows else []
            self._commit(name, self._project(rows, columns), columns)

    def table_exists(self, table: str) -> bool:
        return table in self._rows

    def columns(self, table: str) -> List[str]:
        self._require(table)
        return list(self._columns[table])

    def max_value(self, table: str, column: str) -> Any:
        self._require(table)
        if column not in self._columns[table]:
            raise KeyError(f"Column {column} not found in {table}")
        return max_timestamp(row.get(column) for row in self._rows[table])

    def read_rows(self, table: str, predicate=None) -> List[Record]:
        self._require(table)
        rows = self._rows[table]
        if predicate is not None:
            rows = [row for row in rows if predicate.matches(row)]
        return copy.deepcopy(rows)

    def read_open_versions(self, table: str, is_current_column: str,
                           key_columns: Optional[Sequence[str]] = None,
                           keys: Optional[Sequence[tuple]] = None) -> List[Record]:
        self._require(table)
        rows = [row for row in self._rows[table] if row.get(is_current_column) is True]
        if keys is not None:
            wanted = set(keys)
            rows = [row for row in rows if natural_key(row, key_columns) in wanted]
        return copy.deepcopy(rows)

    def read_closed_bounds(self, table: str, key_columns: Sequence[str], keys: Sequence[tuple],
                           valid_to_column: str, is_current_column: str) -> List[Record]:
        self._require(table)
        wanted = set(keys)
        bounds: Dict[tuple, Any] = {}
        for row in self._rows[table]:
            key = natural_key(row, key_columns)
            if row.get(is_current_column) is True or key not in wanted:
                continue
            valid_to = max_timestamp([bounds.get(key), row.get(valid_to_column)])
            if valid_to is not None:
                bounds[key] = valid_to
        return [
            dict(zip(key_columns, key), **{valid_to_column: valid_to})
            for key, valid_to in bounds.items()
        ]

    def create_table(self, table: str, rows: Sequence[Record], columns: Sequence[str],
                     like: Optional[str] = None) -> int:
        if self.table_exists(table):
            raise ValueError(f"Table already exists: {table}")
        columns = list(columns)
        self._commit(table, self._project(rows, columns), columns)
        logger.info(f"Created table {table} with {len(rows)} rows")
        return len(rows)

    def replace_table(self, table: str, rows: Sequence[Record], columns: Sequence[str],
                      like: Optional[str] = None) -> int:
        columns = list(columns)
        self._commit(table, self._project(rows, columns), columns)
        logger.info(f"Replaced table {table} with {len(rows)} rows")
        return len(rows)

    def append_rows(self, table: str, rows: Sequence[Record],
                    unique_key: Optional[Sequence[str]] = None) -> int:
        self._require(table)
        columns = self._columns[table]
        new_rows = self._project(rows, columns)

        if unique_key:
            seen = {natural_key(row, unique_key) for row in self._rows[table]}
            kept = []
            for row in new_rows:
                key = natural_key(row, unique_key)
                if key not in seen:
                    seen.add(key)
                    kept.append(row)
            new_rows = kept

        self._commit(table, self._rows[table] + new_rows, columns)
        logger.info(f"Appended {len(new_rows)} rows to {table}")
        return len(new_rows)

    def merge_history(self, table: str, inserts: Sequence[Record], closures: Sequence[Record],
                      key_column: str, valid_to_column: str, is_current_column: str) -> int:
        self._require(table)
        columns = self._columns[table]
        updated = copy.deepcopy(self._rows[table])

        open_rows = {
            row[key_column]: row for row in updated if row.get(is_current_column) is True
        }
        for closure in closures:
            target = open_rows.pop(closure[key_column], None)
            if target is None:
                raise LookupError(
                    f"No open version with {key_column}={closure[key_column]} in {table}"
                )
            target[valid_to_column] = closure[valid_to_column]
            target[is_current_column] = closure[is_current_column]

        updated.extend(self._project(inserts, columns))
        self._commit(table, updated, columns)
        logger.info(f"Merged {len(closures)} close-outs and {len(inserts)} inserts into {table}")
        return len(closures) + len(inserts)

    def is_empty(self, table: str) -> bool:
        return not self._rows.get(table)

    def _require(self, table: str) -> None:
        if table not in self._rows:
            raise KeyError(f"Table not found: {table}")

    @staticmethod
    def _project(rows: Sequence[Record], columns: Sequence[str]) -> List[Record]:
        projected = []
        for row in rows:
            unexpected = set(row) - set(columns)
            if unexpected:
                raise ValueError(f"Row has columns not in table: {sorted(unexpected)}")
            projected.append({column: copy.deepcopy(row.get(column)) for column in columns})
        return projected

    def _commit(self, table: str, rows: List[Record], columns: List[str]) -> None:
        self._rows[table] = rows
        self._columns[table] = columns
