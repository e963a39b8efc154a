"""
Main snapshot processor for the dimension-history path.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
import logging
import time

from ..common.config import ExecutionMode, ProcessingMetrics, RunKind, SnapshotConfig
from ..common.exceptions import (
    ConfigurationError,
    ProcessingError,
    SchemaMismatchError,
    WarehouseLoadingError,
)
from ..common.utils import ensure_uniform_columns, log_records_info, natural_key, normalize_timestamp
from ..merge.merge_executor import MergeExecutor
from ..storage.base import TableStore
from .snapshot_engine import ChangeSnapshotEngine
from .validators import SnapshotValidator

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class SnapshotProcessor:
    """Runs one SCD Type 2 snapshot of an entity: validate, diff, merge."""

    def __init__(self, config: SnapshotConfig, store: TableStore):
        """
        Initialize SnapshotProcessor with configuration and storage.

        Args:
            config: Snapshot configuration
            store: Storage holding the history table
        """
        self.config = config
        self.store = store

        # Initialize components
        self.engine = ChangeSnapshotEngine(config)
        self.validator = SnapshotValidator(config)
        self.merge_executor = MergeExecutor(store)

        logger.info(f"Initialized SnapshotProcessor for table: {config.target_table}")

    def process(self, source_records: Iterable[Record], run_timestamp: Any = None,
                schema_source: Optional[str] = None) -> ProcessingMetrics:
        """
        Main entry point for snapshot processing.

        Args:
            source_records: Full current-state extract of the entity
            run_timestamp: Timestamp of this run, defaults to now (UTC)
            schema_source: Table whose column types a new history table reuses

        Returns:
            ProcessingMetrics: Processing metrics and status
        """
        start_time = time.time()
        metrics = ProcessingMetrics()
        table = self.config.target_table

        try:
            run_timestamp = self._run_timestamp(run_timestamp)

            records = list(source_records)
            metrics.records_read = len(records)
            log_records_info(records, "Incoming extract")

            # Step 1: Validate shape of the extract
            columns = ensure_uniform_columns(records, table)
            validation_result = self.validator.validate_source_data(records)
            if not validation_result.is_valid:
                logger.error(f"Validation failed: {validation_result.errors}")
                raise SchemaMismatchError(
                    f"Validation failed: {validation_result.errors}",
                    entity=table,
                    missing_columns=[c for c in self.validator.required_columns if c not in columns],
                    unexpected_columns=[c for c in self.config.metadata_columns if c in columns],
                )

            table_exists = self.store.table_exists(table)
            metrics.run_kind = (RunKind.INCREMENTAL_RUN if table_exists else RunKind.FIRST_RUN).value
            if table_exists:
                destination_columns = self.store.columns(table)
                self.validator.check_schema(records, destination_columns)
            else:
                destination_columns = columns + self.config.metadata_columns

            # Step 2: Apply missing-key policy and reduce to one row per key
            records, metrics.records_rejected = self.validator.filter_missing_keys(records)
            records, metrics.records_deduplicated = self.engine.deduplicate(records)

            if not records and self.config.invalidate_hard_deletes and table_exists:
                logger.warning(f"Empty extract will invalidate every open version of {table}")

            # Step 3: Read the history touching this extract and compute the change set
            open_versions: List[Record] = []
            closed_versions: List[Record] = []
            if table_exists:
                keys = [natural_key(row, self.config.unique_key) for row in records]
                open_versions = self.store.read_open_versions(
                    table,
                    self.config.is_current_column,
                    key_columns=self.config.unique_key,
                    keys=None if self.config.invalidate_hard_deletes else keys,
                )
                closed_versions = self.store.read_closed_bounds(
                    table,
                    self.config.unique_key,
                    keys,
                    self.config.valid_to_column,
                    self.config.is_current_column,
                )
            change_set = self.engine.compute_change_set(
                records, open_versions, run_timestamp, closed_versions
            )

            # Step 4: Apply as one transaction
            self.merge_executor.apply(
                table,
                ExecutionMode.HISTORY_MERGE,
                change_set,
                destination_columns,
                snapshot_config=self.config,
                schema_source=schema_source,
            )

            metrics.records_inserted = len(change_set.inserts)
            metrics.records_closed = len(change_set.closures)
            metrics.records_invalidated = len(change_set.invalidations)
            metrics.processing_time_seconds = time.time() - start_time

            logger.info(f"Snapshot processing completed successfully. Metrics: {metrics.to_dict()}")
            return metrics

        except WarehouseLoadingError:
            raise
        except Exception as e:
            logger.error(f"Snapshot processing failed: {str(e)}")
            raise ProcessingError(
                f"Snapshot processing failed: {str(e)}", entity=table, processing_step="snapshot"
            ) from e

    def _run_timestamp(self, run_timestamp: Any) -> datetime:
        if run_timestamp is None:
            run_timestamp = datetime.now(timezone.utc)
        try:
            return normalize_timestamp(run_timestamp)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid run timestamp {run_timestamp!r}: {str(e)}",
                entity=self.config.target_table,
                config_field="run_timestamp",
            ) from e

    def process_table(self, source_table: str, run_timestamp: Any = None) -> ProcessingMetrics:
        """
        Snapshot an entity whose extract is a table in the same store.

        Args:
            source_table: Table holding the full current-state extract
            run_timestamp: Timestamp of this run, defaults to now (UTC)

        Returns:
            ProcessingMetrics: Processing metrics and status
        """
        logger.info(f"Reading snapshot source {source_table}")
        try:
            records = self.store.read_rows(source_table)
        except Exception as e:
            raise ProcessingError(
                f"Failed to read {source_table}: {str(e)}",
                entity=self.config.target_table,
                processing_step="read_source",
            ) from e
        return self.process(records, run_timestamp, schema_source=source_table)

    def validate_history(self):
        """
        Check interval integrity of the stored history.

        Returns:
            ValidationResult for the whole history table
        """
        try:
            rows = self.store.read_rows(self.config.target_table)
        except Exception as e:
            raise ProcessingError(
                f"Failed to read {self.config.target_table}: {str(e)}",
                entity=self.config.target_table,
                processing_step="read_history",
            ) from e
        return self.validator.validate_history(rows)
