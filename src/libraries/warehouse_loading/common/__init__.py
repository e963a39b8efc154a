"""
Common utilities and configurations for warehouse loading library.
"""

from .config import (
    SnapshotConfig,
    IncrementalConfig,
    ProcessingMetrics,
    ValidationResult,
    ChangeStrategy,
    MissingKeyPolicy,
    ExecutionMode,
    RunKind,
    WindowMode
)
from .config_loader import ModelConfig, build_model_config, load_model_config
from .exceptions import (
    WarehouseLoadingError,
    SchemaMismatchError,
    MissingKeyError,
    DuplicateKeyError,
    CommitFailureError,
    ConfigurationError,
    ProcessingError
)
from .utils import normalize_timestamp, find_schema_drift

__all__ = [
    "SnapshotConfig",
    "IncrementalConfig",
    "ProcessingMetrics",
    "ValidationResult",
    "ChangeStrategy",
    "MissingKeyPolicy",
    "ExecutionMode",
    "RunKind",
    "WindowMode",
    "ModelConfig",
    "build_model_config",
    "load_model_config",
    "WarehouseLoadingError",
    "SchemaMismatchError",
    "MissingKeyError",
    "DuplicateKeyError",
    "CommitFailureError",
    "ConfigurationError",
    "ProcessingError",
    "normalize_timestamp",
    "find_schema_drift"
]
