"""
Core data models for the long-term memory system.
"""

import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from ..utils.timestamp_utils import ensure_utc, utc_now
from .namespace import Namespace

FREQUENCY_BONUS_FACTOR = 0.1
DEFAULT_IMPORTANCE = 0.5
DEFAULT_DECAY_FACTOR = 1.0

# Conversation turns are plain dicts with 'role' and 'content' keys
Message = Dict[str, str]


class MemoryType(Enum):
    """Category of a stored fact, with its default importance and daily decay rate."""
    FACT = ('Objective information about the user', 0.7, 0.02)
    PREFERENCE = ('User preferences and habits', 0.8, 0.015)
    GOAL = ('Long-term goals and intentions', 0.9, 0.01)
    EPISODE = ('Important interaction events', 0.6, 0.05)
    RELATIONSHIP = ('Relationships mentioned by user', 0.75, 0.01)

    def __init__(self, description: str, default_importance: float, decay_rate: float):
        self.description = description
        self.default_importance = default_importance
        self.decay_rate = decay_rate

    @classmethod
    def parse(cls, value: Optional[str]) -> 'MemoryType':
        """Parse a type name case-insensitively; unknown or missing names become FACT."""
        if isinstance(value, MemoryType):
            return value
        if not value or not isinstance(value, str):
            return cls.FACT
        return cls.__members__.get(value.strip().upper(), cls.FACT)


@dataclass(frozen=True)
class MemoryRecord:
    """Immutable snapshot of a stored fact.

    The embedding is not part of the record: it lives in the vector store under the same id.
    Mutations (access, decay) are applied through the store coordinator, which returns fresh
    snapshots; never rely on a snapshot being current.
    """
    content: str
    namespace: Optional[Namespace] = None
    type: Optional[MemoryType] = None
    importance: float = DEFAULT_IMPORTANCE
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    access_count: int = 0
    decay_factor: float = DEFAULT_DECAY_FACTOR
    created_at: datetime = field(default_factory=utc_now)
    last_accessed_at: Optional[datetime] = field(default_factory=utc_now)
    session_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    @classmethod
    def create(cls,
               content: str,
               namespace: Optional[Namespace] = None,
               memory_type: Optional[MemoryType] = None,
               importance: Optional[float] = None,
               session_id: Optional[str] = None,
               metadata: Optional[Dict[str, Any]] = None,
               record_id: Optional[str] = None) -> 'MemoryRecord':
        """Build a new record, taking importance from the type default when not given."""
        if importance is None:
            importance = memory_type.default_importance if memory_type is not None else DEFAULT_IMPORTANCE
        kwargs = {}
        if record_id:
            kwargs['id'] = record_id
        return cls(content=content,
                   namespace=namespace,
                   type=memory_type,
                   importance=clamp_unit(importance),
                   session_id=session_id,
                   metadata=dict(metadata or {}),
                   **kwargs)

    @property
    def namespace_path(self) -> Optional[str]:
        return self.namespace.to_path() if self.namespace is not None else None

    @property
    def decay_rate(self) -> Optional[float]:
        return self.type.decay_rate if self.type is not None else None

    def effective_score(self, similarity: float) -> float:
        """similarity x importance x decay x (1 + 0.1 * ln(1 + access_count))."""
        frequency_bonus = 1.0 + FREQUENCY_BONUS_FACTOR * math.log1p(self.access_count)
        return similarity * self.importance * self.decay_factor * frequency_bonus

    def with_access(self, accessed_at: Optional[datetime] = None) -> 'MemoryRecord':
        return replace(self, access_count=self.access_count + 1, last_accessed_at=accessed_at or utc_now())

    def with_decay(self, decay_factor: float) -> 'MemoryRecord':
        return replace(self, decay_factor=clamp_unit(decay_factor))

    def with_scope(self, namespace: Namespace, session_id: Optional[str] = None) -> 'MemoryRecord':
        return replace(self, namespace=namespace, session_id=session_id or self.session_id)

    def with_metadata(self, **values: Any) -> 'MemoryRecord':
        return replace(self, metadata={**self.metadata, **values})

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'namespace': self.namespace_path,
            'content': self.content,
            'type': self.type.name if self.type is not None else None,
            'importance': self.importance,
            'access_count': self.access_count,
            'decay_factor': self.decay_factor,
            'created_at': self.created_at.isoformat(),
            'last_accessed_at': self.last_accessed_at.isoformat() if self.last_accessed_at else None,
            'session_id': self.session_id,
            'metadata': dict(self.metadata),
        }


@dataclass(frozen=True)
class SearchFilter:
    """Optional constraints applied to candidates before ranking; all present ones must hold."""
    types: Optional[FrozenSet[MemoryType]] = None
    min_importance: Optional[float] = None
    min_decay_factor: Optional[float] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None

    @classmethod
    def for_types(cls, types: Iterable[MemoryType]) -> 'SearchFilter':
        return cls(types=frozenset(types))

    def matches(self, record: MemoryRecord) -> bool:
        if self.types and record.type not in self.types:
            return False
        if self.min_importance is not None and record.importance < self.min_importance:
            return False
        if self.min_decay_factor is not None and record.decay_factor < self.min_decay_factor:
            return False
        created_at = ensure_utc(record.created_at) if record.created_at else None
        if self.created_after is not None and (created_at is None or created_at < ensure_utc(self.created_after)):
            return False
        if self.created_before is not None and (created_at is None or created_at > ensure_utc(self.created_before)):
            return False
        return True


@dataclass(frozen=True)
class VectorSearchResult:
    """A record id and its similarity to the query vector."""
    id: str
    similarity: float


@dataclass
class RawConversationRecord:
    """Source transcript of an extraction batch, kept for provenance when raw storage is enabled."""
    namespace_path: str
    messages: List[Message]
    session_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utc_now)
    expires_at: Optional[datetime] = None

    def messages_in_range(self, start: int, end: int) -> List[Message]:
        """Messages from start to end inclusive, clamped to the transcript bounds."""
        if not self.messages:
            return []
        start = max(0, start)
        end = min(len(self.messages) - 1, end)
        if start > end:
            return []
        return list(self.messages[start:end + 1])

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return ensure_utc(now or utc_now()) > ensure_utc(self.expires_at)


def clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, float(value)))
