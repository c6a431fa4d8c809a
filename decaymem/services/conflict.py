"""
Pluggable conflict resolution for newly extracted memories.
"""

from enum import Enum
from typing import List, Optional, Protocol, Sequence

from ..models.core import MemoryRecord
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class ConflictStrategy(Enum):
    NONE = 'none'
    NEWEST_WINS = 'newest_wins'
    IMPORTANCE_BASED = 'importance_based'
    MERGE = 'merge'
    NEWEST_WITH_MERGE = 'newest_with_merge'

    @classmethod
    def parse(cls, value: Optional[str]) -> 'ConflictStrategy':
        """Parse a strategy name case-insensitively; unknown names become NONE."""
        if isinstance(value, ConflictStrategy):
            return value
        if not value:
            return cls.NONE
        try:
            return cls(value.strip().lower())
        except ValueError:
            logger.warning(f'Unknown conflict strategy {value!r}, using none')
            return cls.NONE


class ConflictResolver(Protocol):
    """Reconciles a batch of records before they are stored."""

    def resolve(self, records: Sequence[MemoryRecord], strategy: ConflictStrategy) -> List[MemoryRecord]:
        ...


def apply_conflict_resolution(records: Sequence[MemoryRecord],
                              strategy: ConflictStrategy,
                              resolver: Optional[ConflictResolver] = None) -> List[MemoryRecord]:
    """Run the resolver for the configured strategy; records pass through unchanged otherwise."""
    if strategy is ConflictStrategy.NONE or resolver is None or not records:
        return list(records)

    resolved = resolver.resolve(list(records), strategy)
    logger.debug(f'Conflict resolution ({strategy.value}) kept {len(resolved)} of {len(records)} memories')
    return list(resolved)
