"""
Data validation utilities for snapshot processing.
"""

from typing import Any, Dict, List, Sequence, Tuple
import logging

from ..common.config import ChangeStrategy, MissingKeyPolicy, SnapshotConfig, ValidationResult
from ..common.exceptions import MissingKeyError, SchemaMismatchError
from ..common.utils import (
    ensure_uniform_columns,
    find_schema_drift,
    key_sort_value,
    natural_key,
    normalize_timestamp,
)

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class SnapshotValidator:
    """Validates extracts and stored history for snapshot processing."""

    def __init__(self, config: SnapshotConfig):
        """
        Initialize SnapshotValidator with configuration.

        Args:
            config: Snapshot configuration
        """
        self.config = config

    @property
    def non_null_columns(self) -> List[str]:
        """Columns every incoming row must populate."""
        columns = list(self.config.unique_key)
        if self.config.change_strategy is ChangeStrategy.TIMESTAMP:
            columns.append(self.config.updated_at)
        return columns

    @property
    def required_columns(self) -> List[str]:
        """Columns every incoming extract must carry."""
        return self.non_null_columns + list(self.config.check_columns or [])

    def validate_source_data(self, records: Sequence[Record]) -> ValidationResult:
        """
        Validate the incoming extract before diffing.

        Args:
            records: Incoming extract

        Returns:
            ValidationResult with validation status and errors
        """
        result = ValidationResult(is_valid=True)
        if not records:
            result.add_warning("Incoming extract is empty")
            return result

        columns = set(records[0].keys())

        # Check required columns
        missing_columns = set(self.required_columns) - columns
        if missing_columns:
            result.add_error(f"Missing required columns: {sorted(missing_columns)}")

        # History columns are owned by the engine
        reserved = set(self.config.metadata_columns) & columns
        if reserved:
            result.add_error(f"Extract contains reserved history columns: {sorted(reserved)}")

        logger.info(f"Validation completed. Valid: {result.is_valid}, Errors: {len(result.errors)}")
        return result

    def check_schema(self, records: Sequence[Record], destination_columns: Sequence[str]) -> None:
        """
        Fail when the extract's shape differs from the destination's.

        Args:
            records: Incoming extract
            destination_columns: Columns of the existing history table
        """
        columns = ensure_uniform_columns(records, self.config.target_table)
        if not columns:
            return

        expected = [c for c in destination_columns if c not in self.config.metadata_columns]
        missing, unexpected = find_schema_drift(columns, expected)
        if missing or unexpected:
            raise SchemaMismatchError(
                f"Extract for {self.config.target_table} does not match destination columns",
                entity=self.config.target_table,
                missing_columns=missing,
                unexpected_columns=unexpected,
            )

        absent = set(self.config.metadata_columns) - set(destination_columns)
        if absent:
            raise SchemaMismatchError(
                f"Destination {self.config.target_table} is missing history columns",
                entity=self.config.target_table,
                missing_columns=sorted(absent),
            )

    def filter_missing_keys(self, records: Sequence[Record]) -> Tuple[List[Record], int]:
        """
        Apply the missing-key policy to the extract.

        Args:
            records: Incoming extract

        Returns:
            Tuple of (rows kept, rows rejected)
        """
        columns = self.non_null_columns
        kept = []
        rejected = 0
        for index, record in enumerate(records):
            null_columns = [c for c in columns if record.get(c) is None]
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

    def validate_history(self, rows: Sequence[Record]) -> ValidationResult:
        """
        Check interval integrity of a history table.

        Per natural key, intervals must not overlap, at most one may be open
        and it must be the latest, and ``is_current`` must agree with
        ``valid_to``. Gaps are reported as warnings because hard-delete
        invalidation legitimately leaves them.

        Args:
            rows: Every row of the history table

        Returns:
            ValidationResult with validation status
        """
        result = ValidationResult(is_valid=True)
        valid_from = self.config.valid_from_column
        valid_to = self.config.valid_to_column
        is_current = self.config.is_current_column

        by_key: Dict[tuple, List[Record]] = {}
        for row in rows:
            by_key.setdefault(natural_key(row, self.config.unique_key), []).append(row)

        for key in sorted(by_key, key=key_sort_value):
            versions = sorted(by_key[key], key=lambda r: normalize_timestamp(r[valid_from]))

            open_versions = [v for v in versions if v[valid_to] is None]
            if len(open_versions) > 1:
                result.add_error(f"Key {key} has {len(open_versions)} open versions")
            if open_versions and open_versions[-1] is not versions[-1]:
                result.add_error(f"Key {key} has an open version that is not the latest")

            for version in versions:
                if bool(version[is_current]) != (version[valid_to] is None):
                    result.add_error(f"Key {key} has {is_current} inconsistent with {valid_to}")
                end = normalize_timestamp(version[valid_to])
                if end is not None and end < normalize_timestamp(version[valid_from]):
                    result.add_error(f"Key {key} has {valid_to} before {valid_from}")

            for previous, following in zip(versions, versions[1:]):
                end = normalize_timestamp(previous[valid_to])
                start = normalize_timestamp(following[valid_from])
                if end is None or end > start:
                    result.add_error(f"Key {key} has overlapping versions at {start}")
                elif end < start:
                    result.add_warning(f"Key {key} has a gap between {end} and {start}")

        logger.info(f"History validation completed. Valid: {result.is_valid}, "
                    f"Errors: {len(result.errors)}, Warnings: {len(result.warnings)}")
        return result
