"""
Warehouse Loading Library

Batch loading of append-only fact streams and history-preserving
(SCD Type 2) dimension tables against Delta Lake or any TableStore.

Main Components:
- SurrogateKeyGenerator: Deterministic keys from composite natural keys
- IncrementalWindowSelector: Watermark and explicit-window read predicates
- ChangeSnapshotEngine: SCD Type 2 diff producing a ChangeSet
- MergeExecutor: Applies a ChangeSet to storage in one transaction
- SnapshotProcessor / IncrementalLoader: Per-run orchestration

Author: Data Engineering Team
Version: 1.0.0
"""

from .key_generation.surrogate_key import SurrogateKeyGenerator
from .incremental.window_selector import IncrementalWindowSelector, WindowPredicate
from .incremental.incremental_loader import IncrementalLoader
from .scd_type2.snapshot_engine import ChangeSnapshotEngine
from .scd_type2.snapshot_processor import SnapshotProcessor
from .merge.change_set import ChangeSet
from .merge.merge_executor import MergeExecutor
from .storage.base import TableStore
from .storage.memory import InMemoryTableStore
from .common.config import (
    SnapshotConfig,
    IncrementalConfig,
    ProcessingMetrics,
    ChangeStrategy,
    ExecutionMode,
    RunKind
)
from .common.exceptions import (
    WarehouseLoadingError,
    SchemaMismatchError,
    MissingKeyError,
    DuplicateKeyError,
    CommitFailureError,
    ConfigurationError,
    ProcessingError
)

__version__ = "1.0.0"
__author__ = "Data Engineering Team"

__all__ = [
    "SurrogateKeyGenerator",
    "IncrementalWindowSelector",
    "WindowPredicate",
    "IncrementalLoader",
    "ChangeSnapshotEngine",
    "SnapshotProcessor",
    "ChangeSet",
    "MergeExecutor",
    "TableStore",
    "InMemoryTableStore",
    "SnapshotConfig",
    "IncrementalConfig",
    "ProcessingMetrics",
    "ChangeStrategy",
    "ExecutionMode",
    "RunKind",
    "WarehouseLoadingError",
    "SchemaMismatchError",
    "MissingKeyError",
    "DuplicateKeyError",
    "CommitFailureError",
    "ConfigurationError",
    "ProcessingError"
]
