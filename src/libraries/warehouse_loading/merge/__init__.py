"""
Storage write modules.
"""

from .change_set import ChangeSet
from .merge_executor import MergeExecutor

__all__ = [
    "ChangeSet",
    "MergeExecutor"
]
