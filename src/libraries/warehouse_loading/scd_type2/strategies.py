"""
Comparison strategies deciding whether an incoming row is a new version.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence
import logging

from ..common.config import ChangeStrategy, SnapshotConfig
from ..common.utils import normalize_timestamp
from ..key_generation.surrogate_key import SurrogateKeyGenerator

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class ComparisonStrategy(ABC):
    """Pluggable change detection between an incoming row and its open version."""

    @abstractmethod
    def has_changed(self, incoming: Record, stored: Record) -> bool:
        """Check whether the incoming row supersedes the stored open version."""

    @abstractmethod
    def version_timestamp(self, incoming: Record, run_timestamp: Any) -> Any:
        """Timestamp opening the incoming row's version and closing its predecessor."""

    def bind(self, columns: Sequence[str]) -> None:
        """Resolve defaults against the extract's columns before a diff."""


class TimestampStrategy(ComparisonStrategy):
    """
    A row changed when its ``updated_at`` is strictly greater than the stored one.

    Equal or older values are no-ops, so exact duplicates and late-arriving
    updates are ignored. Versions are stamped with the row's ``updated_at``.
    """

    def __init__(self, updated_at: str):
        self.updated_at = updated_at

    def has_changed(self, incoming: Record, stored: Record) -> bool:
        stored_value = normalize_timestamp(stored.get(self.updated_at))
        if stored_value is None:
            return True
        return normalize_timestamp(incoming.get(self.updated_at)) > stored_value

    def version_timestamp(self, incoming: Record, run_timestamp: Any) -> Any:
        return normalize_timestamp(incoming.get(self.updated_at))


class RowHashStrategy(ComparisonStrategy):
    """
    A row changed when the hash of its checked columns differs from the stored one.

    Versions are stamped with the run timestamp.
    """

    def __init__(self, key_columns: Sequence[str], check_columns: Optional[Sequence[str]] = None,
                 key_generator: Optional[SurrogateKeyGenerator] = None,
                 updated_at: Optional[str] = None):
        self.key_columns = list(key_columns)
        self.updated_at = updated_at
        self.check_columns: Optional[List[str]] = list(check_columns) if check_columns else None
        self._configured_columns = self.check_columns
        self.key_generator = key_generator or SurrogateKeyGenerator()

    def bind(self, columns: Sequence[str]) -> None:
        if self._configured_columns is None:
            excluded = set(self.key_columns) | {self.updated_at}
            self.check_columns = [c for c in columns if c not in excluded]
            logger.info(f"Row-hash strategy checking all payload columns: {self.check_columns}")

    def compute_hash(self, record: Record) -> str:
        return self.key_generator.row_hash(record, self.check_columns)

    def has_changed(self, incoming: Record, stored: Record) -> bool:
        return self.compute_hash(incoming) != self.compute_hash(stored)

    def version_timestamp(self, incoming: Record, run_timestamp: Any) -> Any:
        return run_timestamp


def create_strategy(config: SnapshotConfig,
                    key_generator: Optional[SurrogateKeyGenerator] = None) -> ComparisonStrategy:
    """
    Build the comparison strategy named in a snapshot configuration.

    Args:
        config: Snapshot configuration
        key_generator: Generator used for row hashes

    Returns:
        ComparisonStrategy instance
    """
    if config.change_strategy is ChangeStrategy.TIMESTAMP:
        return TimestampStrategy(config.updated_at)
    return RowHashStrategy(config.unique_key, config.check_columns, key_generator, config.updated_at)
