"""
Incremental loading of append-only fact streams.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
import logging
import time

from ..common.config import ExecutionMode, IncrementalConfig, MissingKeyPolicy, ProcessingMetrics, RunKind
from ..common.exceptions import MissingKeyError, ProcessingError, SchemaMismatchError, WarehouseLoadingError
from ..common.utils import ensure_uniform_columns, find_schema_drift, log_records_info
from ..key_generation.surrogate_key import SurrogateKeyGenerator
from ..merge.change_set import ChangeSet
from ..merge.merge_executor import MergeExecutor
from ..storage.base import TableStore
from .window_selector import IncrementalWindowSelector, WindowPredicate

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class IncrementalLoader:
    """Loads the new slice of a fact stream into its destination table."""

    def __init__(self, config: IncrementalConfig, store: TableStore):
        """
        Initialize IncrementalLoader with configuration and storage.

        Args:
            config: Incremental load configuration
            store: Storage holding source and destination tables
        """
        self.config = config
        self.store = store

        self.selector = IncrementalWindowSelector(config, store)
        self.key_generator = SurrogateKeyGenerator(config.hash_algorithm)
        self.merge_executor = MergeExecutor(store)

        logger.info(f"Initialized IncrementalLoader for table: {config.target_table}")

    def load(self, source_table: str) -> ProcessingMetrics:
        """
        Load the current window of a source table.

        The watermark is read before anything is written.

        Args:
            source_table: Table holding the fact stream

        Returns:
            ProcessingMetrics: Processing metrics and status
        """
        def read(predicate: WindowPredicate) -> List[Record]:
            try:
                return self.store.read_rows(source_table, predicate)
            except Exception as e:
                raise ProcessingError(
                    f"Failed to read {source_table}: {str(e)}",
                    entity=self.config.target_table,
                    processing_step="read_source",
                ) from e

        return self._load(read, schema_source=source_table)

    def load_records(self, source_records: Iterable[Record]) -> ProcessingMetrics:
        """
        Load the current window of an in-memory fact stream.

        Args:
            source_records: Every available source row; rows outside the
                window are ignored

        Returns:
            ProcessingMetrics: Processing metrics and status
        """
        def read(predicate: WindowPredicate) -> List[Record]:
            return [record for record in source_records if predicate.matches(record)]

        return self._load(read)

    def _load(self, read: Callable[[WindowPredicate], List[Record]],
              schema_source: Optional[str] = None) -> ProcessingMetrics:
        start_time = time.time()
        table = self.config.target_table
        metrics = ProcessingMetrics()

        try:
            # Window is fixed before any read or write
            predicate = self.selector.select()
            records = read(predicate)
            metrics.run_kind = predicate.run_kind.value
            metrics.records_read = len(records)
            log_records_info(records, f"Window {predicate.describe()}")

            columns = ensure_uniform_columns(records, table)
            self._check_configured_columns(columns, records)

            # Null filtering and key policy are separate rules
            records, metrics.records_filtered = self._filter_required(records)
            records, metrics.records_rejected = self._filter_missing_keys(records)

            if self.config.surrogate_key_column:
                records = self.key_generator.tag_records(
                    records, self.config.surrogate_key_columns, self.config.surrogate_key_column
                )
                if self.config.surrogate_key_column not in columns:
                    columns = columns + [self.config.surrogate_key_column]

            if self.store.table_exists(table):
                destination_columns = self.store.columns(table)
                if records:
                    self._check_schema(columns, destination_columns)
                columns = destination_columns

            if predicate.run_kind is RunKind.FIRST_RUN:
                mode = ExecutionMode.FULL_REPLACE
            else:
                mode = ExecutionMode.APPEND_ONLY

            if records:
                metrics.records_inserted = self.merge_executor.apply(
                    table,
                    mode,
                    ChangeSet(inserts=records),
                    columns,
                    unique_key=self.config.dedup_key,
                    schema_source=schema_source,
                )
            else:
                logger.info(f"No rows to load into {table}")

            # Derived from committed data, reported only
            metrics.watermark = self.selector.read_watermark()
            metrics.processing_time_seconds = time.time() - start_time

            logger.info(f"Incremental load completed successfully. Metrics: {metrics.to_dict()}")
            return metrics

        except WarehouseLoadingError:
            raise
        except Exception as e:
            logger.error(f"Incremental load failed: {str(e)}")
            raise ProcessingError(
                f"Incremental load failed: {str(e)}", entity=table, processing_step="incremental"
            ) from e

    def _check_configured_columns(self, columns: List[str], records: List[Record]) -> None:
        if not records:
            return
        required = [self.config.timestamp_column]
        required += self.config.required_columns
        required += self.config.natural_key
        required += self.config.surrogate_key_columns
        missing = sorted(set(required) - set(columns))
        if missing:
            raise SchemaMismatchError(
                f"Extract for {self.config.target_table} lacks configured columns",
                entity=self.config.target_table,
                missing_columns=missing,
            )

    def _check_schema(self, columns: List[str], destination_columns: List[str]) -> None:
        missing, unexpected = find_schema_drift(columns, destination_columns)
        if missing or unexpected:
            raise SchemaMismatchError(
                f"Extract for {self.config.target_table} does not match destination columns",
                entity=self.config.target_table,
                missing_columns=missing,
                unexpected_columns=unexpected,
            )

    def _filter_required(self, records: List[Record]) -> Tuple[List[Record], int]:
        if not self.config.required_columns:
            return records, 0
        kept = [
            record for record in records
            if all(record.get(c) is not None for c in self.config.required_columns)
        ]
        filtered = len(records) - len(kept)
        if filtered:
            logger.info(f"Filtered {filtered} rows with nulls in {self.config.required_columns}")
        return kept, filtered

    def _filter_missing_keys(self, records: List[Record]) -> Tuple[List[Record], int]:
        key_columns = self.config.natural_key
        if not key_columns:
            return records, 0

        kept = []
        rejected = 0
        for index, record in enumerate(records):
            null_columns = [c for c in key_columns if record.get(c) is None]
            if not null_columns:
                kept.append(record)
                continue
            if self.config.key_policy is MissingKeyPolicy.FAIL:
                raise MissingKeyError(
                    f"Row {index} has null values in {null_columns}",
                    entity=self.config.target_table,
                    key_columns=null_columns,
                    row_index=index,
                )
            logger.warning(f"Skipping row {index}: null values in {null_columns}")
            rejected += 1
        return kept, rejected
