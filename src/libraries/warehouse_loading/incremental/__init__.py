"""
Incremental fact loading modules.
"""

from .incremental_loader import IncrementalLoader
from .window_selector import IncrementalWindowSelector, WindowPredicate

__all__ = [
    "IncrementalLoader",
    "IncrementalWindowSelector",
    "WindowPredicate"
]
