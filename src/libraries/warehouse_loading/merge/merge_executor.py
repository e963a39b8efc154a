"""
Atomic application of a ChangeSet to persisted storage.
"""

from typing import List, Optional, Sequence
import logging
import time

from ..common.config import ExecutionMode, SnapshotConfig
from ..common.exceptions import CommitFailureError, ConfigurationError
from ..common.utils import natural_key
from ..storage.base import TableStore
from .change_set import ChangeSet, Record

logger = logging.getLogger(__name__)


class MergeExecutor:
    """
    Writes a ChangeSet to storage as one transaction.

    Each mode maps to exactly one store write, so either every row of the
    ChangeSet becomes visible or none does. Storage failures surface as
    CommitFailureError and are not retried here: a retry must recompute
    the ChangeSet from fresh state.
    """

    def __init__(self, store: TableStore):
        """
        Initialize MergeExecutor with a table store.

        Args:
            store: Storage receiving the writes
        """
        self.store = store

    def apply(self, table: str, mode: ExecutionMode, change_set: ChangeSet,
              columns: Sequence[str], unique_key: Optional[Sequence[str]] = None,
              snapshot_config: Optional[SnapshotConfig] = None,
              schema_source: Optional[str] = None) -> int:
        """
        Apply a ChangeSet in the given execution mode.

        Args:
            table: Destination table
            mode: FULL_REPLACE, APPEND_ONLY or HISTORY_MERGE
            change_set: Mutations to apply
            columns: Ordered destination columns
            unique_key: Dedup key for APPEND_ONLY
            snapshot_config: History column names for HISTORY_MERGE
            schema_source: Table whose column types a newly created table reuses

        Returns:
            Number of rows written or updated
        """
        if mode is ExecutionMode.HISTORY_MERGE and snapshot_config is None:
            raise ConfigurationError("snapshot_config is required for history merge",
                                     config_field="snapshot_config", entity=table)
        if mode is not ExecutionMode.HISTORY_MERGE and change_set.close_outs:
            raise ConfigurationError(f"{mode.value} cannot apply close-outs",
                                     config_field="mode", entity=table)

        start_time = time.time()
        logger.info(f"Applying {mode.value} to {table}: {change_set.summary()}")

        try:
            if mode is ExecutionMode.FULL_REPLACE:
                rows = self._dedupe_batch(change_set.inserts, unique_key) if unique_key else change_set.inserts
                written = self.store.replace_table(table, rows, columns, like=schema_source)
            elif mode is ExecutionMode.APPEND_ONLY:
                written = self._append(table, change_set.inserts, columns, unique_key, schema_source)
            else:
                written = self._merge_history(table, change_set, columns, snapshot_config, schema_source)
        except Exception as e:
            logger.error(f"Commit to {table} failed: {str(e)}")
            raise CommitFailureError(
                f"Commit to {table} failed: {str(e)}", entity=table, operation=mode.value
            ) from e

        logger.info(f"Committed {written} rows to {table} in {time.time() - start_time:.2f} seconds")
        return written

    def _append(self, table: str, rows: List[Record], columns: Sequence[str],
                unique_key: Optional[Sequence[str]], schema_source: Optional[str] = None) -> int:
        if unique_key:
            rows = self._dedupe_batch(rows, unique_key)
        if not self.store.table_exists(table):
            if not rows:
                logger.info(f"Nothing to write; {table} not created")
                return 0
            return self.store.create_table(table, rows, columns, like=schema_source)
        if not rows:
            return 0
        return self.store.append_rows(table, rows, unique_key)

    def _merge_history(self, table: str, change_set: ChangeSet, columns: Sequence[str],
                       config: SnapshotConfig, schema_source: Optional[str] = None) -> int:
        if not self.store.table_exists(table):
            if change_set.close_outs:
                raise LookupError(f"Cannot close versions in missing table {table}")
            if not change_set.inserts:
                logger.info(f"Nothing to write; {table} not created")
                return 0
            return self.store.create_table(table, change_set.inserts, columns, like=schema_source)

        if change_set.is_empty():
            logger.info(f"No changes for {table}")
            return 0

        return self.store.merge_history(
            table,
            change_set.inserts,
            change_set.close_outs,
            key_column=config.surrogate_key_column,
            valid_to_column=config.valid_to_column,
            is_current_column=config.is_current_column,
        )

    @staticmethod
    def _dedupe_batch(rows: List[Record], unique_key: Sequence[str]) -> List[Record]:
        seen = set()
        kept = []
        for row in rows:
            key = natural_key(row, unique_key)
            if key not in seen:
                seen.add(key)
                kept.append(row)
        if len(kept) < len(rows):
            logger.warning(f"Dropped {len(rows) - len(kept)} rows repeating a unique key in batch")
        return kept
