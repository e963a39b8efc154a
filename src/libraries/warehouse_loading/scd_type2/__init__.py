"""
SCD Type 2 snapshot modules.
"""

from .snapshot_processor import SnapshotProcessor
from .snapshot_engine import ChangeSnapshotEngine
from .strategies import ComparisonStrategy, TimestampStrategy, RowHashStrategy, create_strategy
from .validators import SnapshotValidator

__all__ = [
    "SnapshotProcessor",
    "ChangeSnapshotEngine",
    "ComparisonStrategy",
    "TimestampStrategy",
    "RowHashStrategy",
    "create_strategy",
    "SnapshotValidator"
]
