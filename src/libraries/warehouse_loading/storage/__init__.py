"""
Storage backends for warehouse loading.
"""

from .base import TableStore
from .memory import InMemoryTableStore
from .delta_store import DeltaTableStore

__all__ = [
    "TableStore",
    "InMemoryTableStore",
    "DeltaTableStore"
]
