"""
Tabular storage boundary used by the loaders and MergeExecutor.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

Record = Dict[str, Any]


class TableStore(ABC):
    """
    Read/write interface against a relational engine.

    Every write method is a single atomic commit: either all of its rows
    become visible or none do. Predicates passed to ``read_rows`` expose
    ``matches(record)`` and ``to_sql()``; a store uses whichever it can
    push down.
    """

    @abstractmethod
    def table_exists(self, table: str) -> bool:
        """Check whether a table exists."""

    @abstractmethod
    def columns(self, table: str) -> List[str]:
        """Get the ordered column names of an existing table."""

    @abstractmethod
    def max_value(self, table: str, column: str) -> Any:
        """Get the maximum non-null value of a column, or None for an empty table."""

    @abstractmethod
    def read_rows(self, table: str, predicate=None) -> List[Record]:
        """Read rows from a table, optionally restricted by a predicate."""

    @abstractmethod
    def read_open_versions(self, table: str, is_current_column: str,
                           key_columns: Optional[Sequence[str]] = None,
                           keys: Optional[Sequence[tuple]] = None) -> List[Record]:
        """
        Read the currently open versions of a history table.

        When ``keys`` is given, only versions whose ``key_columns`` values
        are among ``keys`` are returned.
        """

    @abstractmethod
    def read_closed_bounds(self, table: str, key_columns: Sequence[str], keys: Sequence[tuple],
                           valid_to_column: str, is_current_column: str) -> List[Record]:
        """
        Read the latest ``valid_to`` of the closed versions of the given keys.

        Returns one record per key that has closed versions, holding the
        key columns and ``valid_to_column``.
        """

    @abstractmethod
    def create_table(self, table: str, rows: Sequence[Record], columns: Sequence[str],
                     like: Optional[str] = None) -> int:
        """
        Create a table holding the given rows. Fails if the table exists.

        Columns also present in table ``like`` take their types from it.
        """

    @abstractmethod
    def replace_table(self, table: str, rows: Sequence[Record], columns: Sequence[str],
                      like: Optional[str] = None) -> int:
        """Replace the full contents of a table, creating it like ``create_table`` if needed."""

    @abstractmethod
    def append_rows(self, table: str, rows: Sequence[Record],
                    unique_key: Optional[Sequence[str]] = None) -> int:
        """
        Append rows to a table.

        When ``unique_key`` is given, rows whose key already exists in the
        table are skipped. Returns the number of rows written.
        """

    @abstractmethod
    def merge_history(self, table: str, inserts: Sequence[Record], closures: Sequence[Record],
                      key_column: str, valid_to_column: str, is_current_column: str) -> int:
        """
        Apply close-outs and new versions to a history table in one commit.

        ``closures`` identify open rows by ``key_column`` and carry the new
        ``valid_to_column`` and ``is_current_column`` values. Returns the
        number of rows affected.
        """

    def is_empty(self, table: str) -> bool:
        """Check whether a table is missing or holds no rows."""
        return not self.table_exists(table) or not self.read_rows(table)
