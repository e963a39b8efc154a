"""
ChangeSet produced by the snapshot engine and consumed by MergeExecutor.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

Record = Dict[str, Any]


@dataclass
class ChangeSet:
    """
    Storage mutations reconciling stored history with one incoming extract.

    ``closures`` and ``invalidations`` are full copies of stored open rows
    with their ``valid_to`` and ``is_current`` fields already set to the
    closed values. Each ChangeSet is applied once and then discarded; it is
    never replayed against newer state.
    """

    inserts: List[Record] = field(default_factory=list)
    closures: List[Record] = field(default_factory=list)
    invalidations: List[Record] = field(default_factory=list)

    @property
    def close_outs(self) -> List[Record]:
        """Every row to close, changed versions first then hard deletes."""
        return self.closures + self.invalidations

    def is_empty(self) -> bool:
        return not (self.inserts or self.closures or self.invalidations)

    def __len__(self) -> int:
        return len(self.inserts) + len(self.closures) + len(self.invalidations)

    def summary(self) -> Dict[str, int]:
        return {
            "inserts": len(self.inserts),
            "closures": len(self.closures),
            "invalidations": len(self.invalidations),
        }
