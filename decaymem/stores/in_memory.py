"""
In-memory reference backends for development, tests and single-process deployments.
"""

import threading
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..exceptions import InvalidArgumentError, SizeMismatchError
from ..models.core import MemoryRecord, MemoryType, RawConversationRecord, SearchFilter, VectorSearchResult
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import utc_now

logger = get_logger(__name__)

LOCK_STRIPES = 64


class InMemoryMetadataStore:
    """Metadata backend holding immutable record snapshots keyed by id.

    Saves, deletes and read-modify-write updates of one record serialize on a lock picked
    from a fixed stripe by record id; there is no store-wide lock, so scans see each
    record's latest committed snapshot independently.
    """

    def __init__(self, lock_stripes: int = LOCK_STRIPES):
        self._records: Dict[str, MemoryRecord] = {}
        self._locks = [threading.Lock() for _ in range(max(1, lock_stripes))]

    def _lock_for(self, record_id: str) -> threading.Lock:
        return self._locks[hash(record_id) % len(self._locks)]

    def save(self, record: MemoryRecord) -> None:
        with self._lock_for(record.id):
            self._records[record.id] = record

    def save_all(self, records: Sequence[MemoryRecord]) -> None:
        for record in records:
            self.save(record)

    def find_by_id(self, record_id: str) -> Optional[MemoryRecord]:
        return self._records.get(record_id)

    def find_by_ids(self, record_ids: Sequence[str]) -> List[MemoryRecord]:
        return [record for record in (self._records.get(record_id) for record_id in record_ids) if record is not None]

    def find_by_namespace(self, namespace_path: str) -> List[MemoryRecord]:
        return [record for record in self._snapshot() if record.namespace_path == namespace_path]

    def find_by_namespace_with_filter(self, namespace_path: str,
                                      search_filter: Optional[SearchFilter] = None) -> List[MemoryRecord]:
        return [
            record for record in self.find_by_namespace(namespace_path)
            if search_filter is None or search_filter.matches(record)
        ]

    def delete(self, record_id: str) -> bool:
        with self._lock_for(record_id):
            removed = self._records.pop(record_id, None)
        return removed is not None

    def delete_by_namespace(self, namespace_path: str) -> int:
        deleted = 0
        for record in self.find_by_namespace(namespace_path):
            if self.delete(record.id):
                deleted += 1
        return deleted

    def record_access(self, record_ids: Sequence[str], accessed_at: Optional[datetime] = None) -> None:
        accessed_at = accessed_at or utc_now()
        for record_id in record_ids:
            with self._lock_for(record_id):
                record = self._records.get(record_id)
                if record is not None:
                    self._records[record_id] = record.with_access(accessed_at)

    def update_decay_factor(self, record_id: str, decay_factor: float) -> None:
        with self._lock_for(record_id):
            record = self._records.get(record_id)
            if record is not None:
                self._records[record_id] = record.with_decay(decay_factor)

    def find_all(self) -> List[MemoryRecord]:
        return self._snapshot()

    def find_decayed(self, namespace_path: str, threshold: float) -> List[MemoryRecord]:
        return [record for record in self.find_by_namespace(namespace_path) if record.decay_factor < threshold]

    def find_all_decayed(self, threshold: float) -> List[MemoryRecord]:
        return [record for record in self._snapshot() if record.decay_factor < threshold]

    def count(self, namespace_path: str) -> int:
        return len(self.find_by_namespace(namespace_path))

    def count_by_type(self, namespace_path: str, memory_type: MemoryType) -> int:
        return sum(1 for record in self.find_by_namespace(namespace_path) if record.type is memory_type)

    def count_all(self) -> int:
        return len(self._records)

    def _snapshot(self) -> List[MemoryRecord]:
        # list() over a dict copy is safe against concurrent inserts/deletes
        return list(self._records.copy().values())


class InMemoryVectorStore:
    """Brute-force cosine similarity over embeddings held in process memory."""

    def __init__(self, dimension: Optional[int] = None):
        self.dimension = dimension
        self._embeddings: Dict[str, np.ndarray] = {}

    def _as_vector(self, embedding: Sequence[float]) -> np.ndarray:
        vector = np.asarray(embedding, dtype=np.float32)
        if vector.ndim != 1:
            raise InvalidArgumentError(f'Embedding must be one-dimensional, got shape {vector.shape}')
        if self.dimension is not None and vector.shape[0] != self.dimension:
            raise InvalidArgumentError(f'Embedding dimension {vector.shape[0]} does not match configured {self.dimension}')
        return vector

    def save(self, record_id: str, embedding: Sequence[float]) -> None:
        self._embeddings[record_id] = self._as_vector(embedding)

    def save_all(self, record_ids: Sequence[str], embeddings: Sequence[Sequence[float]]) -> None:
        if len(record_ids) != len(embeddings):
            raise SizeMismatchError('Record ids and embeddings must have same size')
        vectors = [self._as_vector(embedding) for embedding in embeddings]
        for record_id, vector in zip(record_ids, vectors):
            self._embeddings[record_id] = vector

    def search(self,
               query_embedding: Sequence[float],
               top_k: int,
               candidate_ids: Optional[Sequence[str]] = None) -> List[VectorSearchResult]:
        if top_k <= 0:
            return []
        query = np.asarray(query_embedding, dtype=np.float32)
        embeddings = self._embeddings.copy()
        ids = list(embeddings) if not candidate_ids else [i for i in candidate_ids if i in embeddings]

        results = [VectorSearchResult(id=record_id, similarity=cosine_similarity(query, embeddings[record_id])) for record_id in ids]
        results.sort(key=lambda result: result.similarity, reverse=True)
        return results[:top_k]

    def delete(self, record_id: str) -> None:
        self._embeddings.pop(record_id, None)

    def delete_all(self, record_ids: Sequence[str]) -> None:
        for record_id in record_ids:
            self._embeddings.pop(record_id, None)

    def count(self) -> int:
        return len(self._embeddings)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity; 0.0 for mismatched shapes or zero vectors."""
    if a.shape != b.shape:
        return 0.0
    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    return float(np.dot(a, b) / norm)


class InMemoryRawConversationStore:
    """Raw transcript storage keyed by record id."""

    def __init__(self):
        self._records: Dict[str, RawConversationRecord] = {}

    def save(self, record: RawConversationRecord) -> None:
        self._records[record.id] = record

    def find_by_id(self, record_id: str) -> Optional[RawConversationRecord]:
        return self._records.get(record_id)

    def delete_by_namespace(self, namespace_path: str) -> int:
        doomed = [record.id for record in list(self._records.copy().values()) if record.namespace_path == namespace_path]
        for record_id in doomed:
            self._records.pop(record_id, None)
        return len(doomed)

    def delete_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utc_now()
        expired = [record.id for record in list(self._records.copy().values()) if record.is_expired(now)]
        for record_id in expired:
            self._records.pop(record_id, None)
        if expired:
            logger.debug(f'Removed {len(expired)} expired raw conversations')
        return len(expired)
