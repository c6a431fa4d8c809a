"""
Pluggable storage interfaces.

Metadata and embeddings live in separate backends keyed by the same record id so each
can be scaled or swapped independently. Namespace isolation is enforced by passing the
canonical namespace path to every scoped query.
"""

from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from ..models.core import MemoryRecord, MemoryType, RawConversationRecord, SearchFilter, VectorSearchResult


class MetadataStore(Protocol):
    """Persists record attributes; the coordinator is its only writer."""

    def save(self, record: MemoryRecord) -> None:
        ...

    def save_all(self, records: Sequence[MemoryRecord]) -> None:
        ...

    def find_by_id(self, record_id: str) -> Optional[MemoryRecord]:
        ...

    def find_by_ids(self, record_ids: Sequence[str]) -> List[MemoryRecord]:
        ...

    def find_by_namespace(self, namespace_path: str) -> List[MemoryRecord]:
        ...

    def find_by_namespace_with_filter(self, namespace_path: str,
                                      search_filter: Optional[SearchFilter] = None) -> List[MemoryRecord]:
        ...

    def delete(self, record_id: str) -> bool:
        """Remove a record; unknown ids are a no-op returning False."""

    def delete_by_namespace(self, namespace_path: str) -> int:
        ...

    def record_access(self, record_ids: Sequence[str], accessed_at: Optional[datetime] = None) -> None:
        """Increment access count and set last-accessed time; unknown ids are skipped."""

    def update_decay_factor(self, record_id: str, decay_factor: float) -> None:
        ...

    def find_all(self) -> List[MemoryRecord]:
        ...

    def find_decayed(self, namespace_path: str, threshold: float) -> List[MemoryRecord]:
        """Records in the namespace with decay factor strictly below threshold."""

    def find_all_decayed(self, threshold: float) -> List[MemoryRecord]:
        ...

    def count(self, namespace_path: str) -> int:
        ...

    def count_by_type(self, namespace_path: str, memory_type: MemoryType) -> int:
        ...

    def count_all(self) -> int:
        ...


class VectorStore(Protocol):
    """Persists embeddings by record id and answers similarity queries."""

    def save(self, record_id: str, embedding: Sequence[float]) -> None:
        ...

    def save_all(self, record_ids: Sequence[str], embeddings: Sequence[Sequence[float]]) -> None:
        ...

    def search(self,
               query_embedding: Sequence[float],
               top_k: int,
               candidate_ids: Optional[Sequence[str]] = None) -> List[VectorSearchResult]:
        """Most similar first; restricted to candidate_ids when given."""

    def delete(self, record_id: str) -> None:
        ...

    def delete_all(self, record_ids: Sequence[str]) -> None:
        ...

    def count(self) -> int:
        ...


class RawConversationStore(Protocol):
    """Keeps source transcripts of extraction batches."""

    def save(self, record: RawConversationRecord) -> None:
        ...

    def find_by_id(self, record_id: str) -> Optional[RawConversationRecord]:
        ...

    def delete_by_namespace(self, namespace_path: str) -> int:
        ...

    def delete_expired(self, now: Optional[datetime] = None) -> int:
        ...
