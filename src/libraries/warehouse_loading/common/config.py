"""
Configuration classes for warehouse loading library.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Union
from enum import Enum

from .utils import normalize_timestamp


class ChangeStrategy(Enum):
    """How an incoming row is judged different from its stored open version."""
    TIMESTAMP = "timestamp"
    ROW_HASH = "row_hash"


class MissingKeyPolicy(Enum):
    """What to do with an incoming row whose natural key is null."""
    FAIL = "fail"
    SKIP = "skip"


class ExecutionMode(Enum):
    """How MergeExecutor writes a ChangeSet to storage."""
    FULL_REPLACE = "full_replace"
    APPEND_ONLY = "append_only"
    HISTORY_MERGE = "history_merge"


class RunKind(Enum):
    """Whether the destination already holds committed rows."""
    FIRST_RUN = "first_run"
    INCREMENTAL_RUN = "incremental_run"


class WindowMode(Enum):
    """Enumeration of incremental window modes."""
    WATERMARK = "watermark"
    EXPLICIT = "explicit"


STRATEGY_ALIASES = {"check": ChangeStrategy.ROW_HASH.value}
SUPPORTED_HASH_ALGORITHMS = ("sha256", "md5")


def _as_column_list(value: Union[str, List[str], None]) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


@dataclass
class SnapshotConfig:
    """Configuration for SCD Type 2 snapshot processing."""

    # Required parameters
    target_table: str
    unique_key: Union[str, List[str]]

    # Change detection
    strategy: str = "timestamp"
    updated_at: Optional[str] = None
    check_columns: Optional[List[str]] = None
    invalidate_hard_deletes: bool = False

    # Error handling
    missing_key_policy: str = "fail"

    # Standard column names
    surrogate_key_column: str = "surrogate_key"
    valid_from_column: str = "valid_from"
    valid_to_column: str = "valid_to"
    is_current_column: str = "is_current"

    hash_algorithm: str = "sha256"

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.target_table:
            raise ValueError("target_table is required")
        self.unique_key = _as_column_list(self.unique_key)
        if not self.unique_key:
            raise ValueError("unique_key cannot be empty")

        self.strategy = STRATEGY_ALIASES.get(self.strategy, self.strategy)
        valid_strategies = [strategy.value for strategy in ChangeStrategy]
        if self.strategy not in valid_strategies:
            raise ValueError(f"strategy must be one of {valid_strategies}")
        if self.change_strategy is ChangeStrategy.TIMESTAMP and not self.updated_at:
            raise ValueError("updated_at is required for 'timestamp' strategy")
        if self.check_columns is not None:
            if self.change_strategy is not ChangeStrategy.ROW_HASH:
                raise ValueError("check_columns is only valid for 'row_hash' strategy")
            self.check_columns = _as_column_list(self.check_columns)
            if not self.check_columns:
                raise ValueError("check_columns cannot be empty")

        valid_policies = [policy.value for policy in MissingKeyPolicy]
        if self.missing_key_policy not in valid_policies:
            raise ValueError(f"missing_key_policy must be one of {valid_policies}")

        if self.hash_algorithm not in SUPPORTED_HASH_ALGORITHMS:
            raise ValueError(f"Unsupported hash algorithm: {self.hash_algorithm}")

        overlap = set(self.unique_key) & set(self.metadata_columns)
        if overlap:
            raise ValueError(f"unique_key overlaps history metadata columns: {sorted(overlap)}")

    @property
    def change_strategy(self) -> ChangeStrategy:
        return ChangeStrategy(self.strategy)

    @property
    def key_policy(self) -> MissingKeyPolicy:
        return MissingKeyPolicy(self.missing_key_policy)

    @property
    def metadata_columns(self) -> List[str]:
        """History columns maintained by the snapshot engine, in table order."""
        return [
            self.surrogate_key_column,
            self.valid_from_column,
            self.valid_to_column,
            self.is_current_column,
        ]


@dataclass
class IncrementalConfig:
    """Configuration for incremental loads of append-only fact streams."""

    # Required parameters
    target_table: str
    timestamp_column: str

    # Explicit window (backfills and replays)
    start: Any = None
    end: Any = None

    # Dedup key for idempotent re-insertion
    unique_key: Optional[Union[str, List[str]]] = None

    # Surrogate key tagging
    surrogate_key_column: Optional[str] = None
    surrogate_key_columns: Optional[List[str]] = None

    # Rows with a null in any of these columns are filtered out
    required_columns: Optional[List[str]] = None

    missing_key_policy: str = "fail"
    hash_algorithm: str = "sha256"

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.target_table:
            raise ValueError("target_table is required")
        if not self.timestamp_column:
            raise ValueError("timestamp_column is required")

        if (self.start is None) != (self.end is None):
            raise ValueError("start and end must be provided together")
        if self.start is not None:
            self.start = normalize_timestamp(self.start)
            self.end = normalize_timestamp(self.end)
            if not self.start < self.end:
                raise ValueError("start must be earlier than end")

        self.unique_key = _as_column_list(self.unique_key)
        self.surrogate_key_columns = _as_column_list(self.surrogate_key_columns)
        self.required_columns = _as_column_list(self.required_columns)

        if self.surrogate_key_columns and not self.surrogate_key_column:
            raise ValueError("surrogate_key_column is required when surrogate_key_columns is set")
        if self.surrogate_key_column and not self.surrogate_key_columns:
            raise ValueError("surrogate_key_columns cannot be empty when surrogate_key_column is set")

        valid_policies = [policy.value for policy in MissingKeyPolicy]
        if self.missing_key_policy not in valid_policies:
            raise ValueError(f"missing_key_policy must be one of {valid_policies}")

        if self.hash_algorithm not in SUPPORTED_HASH_ALGORITHMS:
            raise ValueError(f"Unsupported hash algorithm: {self.hash_algorithm}")

    @property
    def window_mode(self) -> WindowMode:
        return WindowMode.EXPLICIT if self.start is not None else WindowMode.WATERMARK

    @property
    def key_policy(self) -> MissingKeyPolicy:
        return MissingKeyPolicy(self.missing_key_policy)

    @property
    def dedup_key(self) -> List[str]:
        """Columns identifying a fact row for idempotent re-insertion."""
        if self.unique_key:
            return list(self.unique_key)
        if self.surrogate_key_column:
            return [self.surrogate_key_column]
        return []

    @property
    def natural_key(self) -> List[str]:
        """Columns that must not be null on an incoming fact row."""
        return list(self.unique_key)


@dataclass
class ProcessingMetrics:
    """Metrics for processing operations."""

    run_kind: Optional[str] = None
    records_read: int = 0
    records_filtered: int = 0
    records_rejected: int = 0
    records_deduplicated: int = 0
    records_inserted: int = 0
    records_closed: int = 0
    records_invalidated: int = 0
    watermark: Any = None
    processing_time_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary."""
        watermark = self.watermark
        if watermark is not None and hasattr(watermark, "isoformat"):
            watermark = watermark.isoformat()
        return {
            "run_kind": self.run_kind,
            "records_read": self.records_read,
            "records_filtered": self.records_filtered,
            "records_rejected": self.records_rejected,
            "records_deduplicated": self.records_deduplicated,
            "records_inserted": self.records_inserted,
            "records_closed": self.records_closed,
            "records_invalidated": self.records_invalidated,
            "watermark": watermark,
            "processing_time_seconds": self.processing_time_seconds,
        }


@dataclass
class ValidationResult:
    """Result of data validation."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, error: str) -> None:
        """Add an error message."""
        self.errors.append(error)
        self.is_valid = False

    def add_warning(self, warning: str) -> None:
        """Add a warning message."""
        self.warnings.append(warning)

    def to_dict(self) -> Dict[str, Any]:
        """Convert validation result to dictionary."""
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings
        }
