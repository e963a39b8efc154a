"""
SCD Type 2 change detection between an incoming extract and stored history.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

from ..common.config import ChangeStrategy, SnapshotConfig
from ..common.exceptions import ConfigurationError, DuplicateKeyError
from ..common.utils import key_sort_value, natural_key, normalize_timestamp, record_columns
from ..key_generation.surrogate_key import SurrogateKeyGenerator
from ..merge.change_set import ChangeSet
from .strategies import ComparisonStrategy, create_strategy

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class ChangeSnapshotEngine:
    """
    Computes the ChangeSet that brings versioned history up to date.

    The engine is pure: it reads nothing and writes nothing, and identical
    inputs always produce an identical ChangeSet. Rows are emitted in
    natural-key order.
    """

    def __init__(self, config: SnapshotConfig,
                 strategy: Optional[ComparisonStrategy] = None,
                 key_generator: Optional[SurrogateKeyGenerator] = None):
        """
        Initialize ChangeSnapshotEngine with configuration.

        Args:
            config: Snapshot configuration
            strategy: Comparison strategy, defaults to the one named in config
            key_generator: Generator for version surrogate keys
        """
        self.config = config
        self.key_generator = key_generator or SurrogateKeyGenerator(config.hash_algorithm)
        self.strategy = strategy or create_strategy(config, self.key_generator)

    def deduplicate(self, incoming: Sequence[Record]) -> Tuple[List[Record], int]:
        """
        Reduce the extract to one row per natural key.

        With the timestamp strategy the row with the latest ``updated_at``
        wins. Exact duplicate rows collapse to one. Any other collision
        cannot be resolved deterministically and fails.

        Args:
            incoming: Incoming extract

        Returns:
            Tuple of (deduplicated rows, number of rows removed)
        """
        grouped: Dict[tuple, List[Record]] = {}
        for row in incoming:
            grouped.setdefault(natural_key(row, self.config.unique_key), []).append(row)

        result = []
        for key, rows in grouped.items():
            if len(rows) == 1:
                result.append(rows[0])
                continue

            candidates = rows
            if self.config.change_strategy is ChangeStrategy.TIMESTAMP:
                latest = max(normalize_timestamp(row[self.config.updated_at]) for row in rows)
                candidates = [
                    row for row in rows
                    if normalize_timestamp(row[self.config.updated_at]) == latest
                ]

            if any(row != candidates[0] for row in candidates[1:]):
                raise DuplicateKeyError(
                    f"Incoming extract has conflicting rows for key {key}",
                    entity=self.config.target_table,
                    natural_key=key,
                )
            result.append(candidates[0])

        removed = len(incoming) - len(result)
        if removed:
            logger.warning(f"Removed {removed} duplicate records from incoming extract")
        return result, removed

    def compute_change_set(self, incoming: Sequence[Record], open_versions: Sequence[Record],
                           run_timestamp: Any,
                           closed_versions: Optional[Sequence[Record]] = None) -> ChangeSet:
        """
        Diff the incoming extract against the currently open versions.

        A new version never starts before the history it follows: a key
        returning after a hard delete starts no earlier than its latest
        ``valid_to``, and a changed key starts after its open version's
        ``valid_from``. When the strategy's timestamp falls at or below that
        bound, the run timestamp is used instead, and a changed key whose run
        timestamp is not after its open version fails.

        Args:
            incoming: Full current-state extract, one row per natural key
            open_versions: Stored rows with ``is_current`` true
            run_timestamp: Timestamp of this run
            closed_versions: Latest ``valid_to`` per natural key among closed
                rows, as records holding the key columns and ``valid_to``

        Returns:
            ChangeSet of inserts, close-outs and hard-delete invalidations
        """
        run_timestamp = normalize_timestamp(run_timestamp)
        self.strategy.bind(record_columns(incoming))

        stored_by_key = self._index_open_versions(open_versions)
        closed_until = self._index_closed_versions(closed_versions or [])
        incoming_by_key = {natural_key(row, self.config.unique_key): row for row in incoming}

        change_set = ChangeSet()
        for key in sorted(incoming_by_key, key=key_sort_value):
            row = incoming_by_key[key]
            stored = stored_by_key.get(key)

            if stored is None:
                version_ts = self._version_start(row, run_timestamp, closed_until.get(key))
                change_set.inserts.append(self._new_version(row, key, version_ts))
            elif self.strategy.has_changed(row, stored):
                floor = normalize_timestamp(stored.get(self.config.valid_from_column))
                version_ts = self._version_start(row, run_timestamp, floor)
                if floor is not None and version_ts <= floor:
                    raise ConfigurationError(
                        f"Run timestamp {run_timestamp} does not follow the open version of key {key}",
                        entity=self.config.target_table,
                        config_field="run_timestamp",
                    )
                change_set.closures.append(self._close(stored, version_ts))
                change_set.inserts.append(self._new_version(row, key, version_ts))

        if self.config.invalidate_hard_deletes:
            deleted_keys = set(stored_by_key) - set(incoming_by_key)
            for key in sorted(deleted_keys, key=key_sort_value):
                stored = stored_by_key[key]
                valid_to = run_timestamp
                valid_from = normalize_timestamp(stored.get(self.config.valid_from_column))
                if valid_from is not None and valid_from > valid_to:
                    valid_to = valid_from
                change_set.invalidations.append(self._close(stored, valid_to))

        logger.info(f"Change set for {self.config.target_table}: {change_set.summary()}")
        return change_set

    def version_key(self, key: tuple, valid_from: Any) -> str:
        """Surrogate key of a version: the natural key followed by its valid_from."""
        return self.key_generator.generate(list(key) + [valid_from])

    def _version_start(self, row: Record, run_timestamp: Any, floor: Any) -> Any:
        version_ts = self.strategy.version_timestamp(row, run_timestamp)
        if floor is None or version_ts > floor:
            return version_ts
        return max(floor, run_timestamp)

    def _index_closed_versions(self, closed_versions: Sequence[Record]) -> Dict[tuple, Any]:
        indexed: Dict[tuple, Any] = {}
        for row in closed_versions:
            key = natural_key(row, self.config.unique_key)
            valid_to = normalize_timestamp(row.get(self.config.valid_to_column))
            if valid_to is not None and (key not in indexed or valid_to > indexed[key]):
                indexed[key] = valid_to
        return indexed

    def _index_open_versions(self, open_versions: Sequence[Record]) -> Dict[tuple, Record]:
        indexed: Dict[tuple, Record] = {}
        for row in open_versions:
            key = natural_key(row, self.config.unique_key)
            if key in indexed:
                raise DuplicateKeyError(
                    f"Stored history has more than one open version for key {key}",
                    entity=self.config.target_table,
                    natural_key=key,
                )
            indexed[key] = row
        return indexed

    def _new_version(self, row: Record, key: tuple, valid_from: Any) -> Record:
        version = dict(row)
        version[self.config.surrogate_key_column] = self.version_key(key, valid_from)
        version[self.config.valid_from_column] = valid_from
        version[self.config.valid_to_column] = None
        version[self.config.is_current_column] = True
        return version

    def _close(self, stored: Record, valid_to: Any) -> Record:
        closed = dict(stored)
        closed[self.config.valid_to_column] = valid_to
        closed[self.config.is_current_column] = False
        return closed
