"""
Memory store coordinator: the single entry point that keeps metadata and vector backends in step.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from ..exceptions import InvalidArgumentError, MemoryStoreError, SizeMismatchError
from ..models.core import Message, MemoryRecord, MemoryType, RawConversationRecord, SearchFilter
from ..models.namespace import Namespace
from ..stores.base import MetadataStore, RawConversationStore, VectorStore
from ..utils.config import LongTermMemoryConfig
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import utc_now
from .decay import decay_for_record

logger = get_logger(__name__)

# Vector search over-fetches by this factor so re-ranking has headroom
RERANKING_MULTIPLIER = 2
DECAY_UPDATE_THRESHOLD = 0.001


class MemoryStoreCoordinator:
    """Dual-write facade over a metadata store and a vector store.

    Writes go to metadata first, then vectors. There is no cross-backend transaction: a
    failure between the two leaves a record present in one backend only, and reads
    silently exclude records missing from either side.
    """

    def __init__(self,
                 metadata_store: MetadataStore,
                 vector_store: VectorStore,
                 config: Optional[LongTermMemoryConfig] = None,
                 raw_store: Optional[RawConversationStore] = None):
        self.metadata_store = metadata_store
        self.vector_store = vector_store
        self.config = config or LongTermMemoryConfig()
        self.raw_store = raw_store

        logger.info(f'Initialized MemoryStoreCoordinator (decay={"on" if self.config.enable_decay else "off"}, '
                    f'raw_storage={"on" if self.raw_enabled else "off"})')

    @property
    def raw_enabled(self) -> bool:
        return self.config.enable_raw_storage and self.raw_store is not None

    def save(self, record: MemoryRecord, embedding: Sequence[float]) -> None:
        """Persist a record and its embedding.

        Raises:
            MemoryStoreError: naming the backend that failed
        """
        try:
            self.metadata_store.save(record)
        except Exception as e:
            logger.error(f'Metadata store error saving {record.id}: {e}')
            raise MemoryStoreError(f'Metadata store save failed for {record.id}: {e}')

        try:
            self.vector_store.save(record.id, embedding)
        except InvalidArgumentError:
            raise
        except Exception as e:
            logger.error(f'Vector store error saving {record.id}: {e}')
            raise MemoryStoreError(f'Vector store save failed for {record.id}: {e}')

        logger.debug(f'Saved memory {record.id} in {record.namespace_path}')

    def save_all(self, records: Sequence[MemoryRecord], embeddings: Sequence[Sequence[float]]) -> None:
        """Persist records with embeddings paired by position.

        Raises:
            SizeMismatchError: if the two sequences differ in length
            MemoryStoreError: naming the backend that failed
        """
        if len(records) != len(embeddings):
            raise SizeMismatchError('Records and embeddings must have same size')
        if not records:
            return

        try:
            self.metadata_store.save_all(records)
        except Exception as e:
            logger.error(f'Metadata store error saving {len(records)} records: {e}')
            raise MemoryStoreError(f'Metadata store batch save failed: {e}')

        try:
            self.vector_store.save_all([record.id for record in records], embeddings)
        except InvalidArgumentError:
            raise
        except Exception as e:
            logger.error(f'Vector store error saving {len(records)} embeddings: {e}')
            raise MemoryStoreError(f'Vector store batch save failed: {e}')

        logger.debug(f'Saved {len(records)} memories')

    def find_by_id(self, record_id: str) -> Optional[MemoryRecord]:
        return self.metadata_store.find_by_id(record_id)

    def delete(self, record_id: str) -> bool:
        """Delete a record from both backends; unknown ids are a no-op."""
        if not record_id or not record_id.strip():
            logger.warning('Empty memory ID provided for deletion')
            return False

        deleted = self.metadata_store.delete(record_id)
        self.vector_store.delete(record_id)
        if deleted:
            logger.debug(f'Deleted memory: {record_id}')
        return deleted

    def search(self,
               namespace: Namespace,
               query_embedding: Sequence[float],
               top_k: int,
               search_filter: Optional[SearchFilter] = None,
               min_similarity: Optional[float] = None) -> List[MemoryRecord]:
        """Two-stage search within one namespace.

        Candidates come from the metadata store (namespace plus filter); the vector store ranks
        only those ids, over-fetching by RERANKING_MULTIPLIER. Results are re-ranked by
        effective score and the returned records have their access recorded.

        Args:
            namespace: Tenant to search
            query_embedding: Embedding of the query text
            top_k: Maximum number of records to return
            search_filter: Optional attribute constraints
            min_similarity: Optional floor on raw similarity

        Returns:
            Records ordered by effective score, as they were before this access
        """
        if top_k <= 0:
            return []

        candidates = self.metadata_store.find_by_namespace_with_filter(namespace.to_path(), search_filter)
        if not candidates:
            logger.debug(f'No candidate memories in {namespace.to_path()}')
            return []

        by_id: Dict[str, MemoryRecord] = {record.id: record for record in candidates}
        fetch_k = min(top_k * RERANKING_MULTIPLIER, len(by_id))
        vector_results = self.vector_store.search(query_embedding, fetch_k, list(by_id))

        scored = []
        for result in vector_results:
            record = by_id.get(result.id)
            if record is None:
                continue
            if min_similarity is not None and result.similarity < min_similarity:
                continue
            scored.append((record.effective_score(result.similarity), record))

        # sort() is stable, so equal scores keep vector-similarity order
        scored.sort(key=lambda item: item[0], reverse=True)
        results = [record for _, record in scored[:top_k]]

        if results:
            self.record_access([record.id for record in results])
        logger.debug(f'Search in {namespace.to_path()} returned {len(results)} of {len(candidates)} candidates')
        return results

    def record_access(self, record_ids: Sequence[str], accessed_at: Optional[datetime] = None) -> None:
        if not record_ids:
            return
        self.metadata_store.record_access(record_ids, accessed_at or utc_now())

    def update_decay(self, now: Optional[datetime] = None) -> int:
        """Recompute decay factors for every record; returns how many changed.

        Only factors that moved by more than DECAY_UPDATE_THRESHOLD are written back.
        """
        if not self.config.enable_decay:
            return 0

        now = now or utc_now()
        updated = 0
        for record in self.metadata_store.find_all():
            new_decay = decay_for_record(record, now)
            if abs(new_decay - record.decay_factor) > DECAY_UPDATE_THRESHOLD:
                self.metadata_store.update_decay_factor(record.id, new_decay)
                updated += 1

        if updated:
            logger.info(f'Updated decay factor for {updated} memories')
        return updated

    def cleanup_decayed(self, threshold: Optional[float] = None) -> int:
        """Delete records in any namespace whose decay factor is below threshold."""
        threshold = self.config.decay_threshold if threshold is None else threshold
        decayed = self.metadata_store.find_all_decayed(threshold)
        if not decayed:
            logger.debug('No decayed memories found for cleanup')
            return 0

        ids = [record.id for record in decayed]
        for record_id in ids:
            self.metadata_store.delete(record_id)
        self.vector_store.delete_all(ids)

        logger.info(f'Cleaned up {len(ids)} decayed memories below {threshold}')
        return len(ids)

    def get_decayed_memories(self, namespace: Namespace, threshold: Optional[float] = None) -> List[MemoryRecord]:
        threshold = self.config.decay_threshold if threshold is None else threshold
        return self.metadata_store.find_decayed(namespace.to_path(), threshold)

    def delete_by_namespace(self, namespace: Namespace) -> int:
        """Delete every record stored under exactly this namespace, including raw transcripts."""
        path = namespace.to_path()
        ids = [record.id for record in self.metadata_store.find_by_namespace(path)]
        deleted = self.metadata_store.delete_by_namespace(path)
        self.vector_store.delete_all(ids)

        if self.raw_store is not None:
            self.raw_store.delete_by_namespace(path)

        logger.info(f'Deleted {deleted} memories in {path}')
        return deleted

    def count(self, namespace: Namespace) -> int:
        return self.metadata_store.count(namespace.to_path())

    def count_by_type(self, namespace: Namespace, memory_type: MemoryType) -> int:
        return self.metadata_store.count_by_type(namespace.to_path(), memory_type)

    def count_all(self) -> int:
        return self.metadata_store.count_all()

    def save_raw_conversation(self,
                              namespace: Namespace,
                              messages: Sequence[Message],
                              session_id: Optional[str] = None) -> Optional[RawConversationRecord]:
        """Store the transcript of an extraction batch when raw storage is enabled."""
        if not self.raw_enabled or not messages:
            return None

        created_at = utc_now()
        record = RawConversationRecord(namespace_path=namespace.to_path(),
                                       messages=[dict(message) for message in messages],
                                       session_id=session_id,
                                       created_at=created_at,
                                       expires_at=created_at + timedelta(days=self.config.raw_retention_days))
        self.raw_store.save(record)
        logger.debug(f'Saved raw conversation {record.id} ({len(record.messages)} messages)')
        return record

    def get_raw_conversation(self, raw_record_id: str) -> Optional[RawConversationRecord]:
        if self.raw_store is None or not raw_record_id:
            return None
        return self.raw_store.find_by_id(raw_record_id)

    def get_source_conversation(self, record: MemoryRecord) -> List[Message]:
        """Messages a record was extracted from, using its raw_record_id/start_turn/end_turn metadata."""
        raw = self.get_raw_conversation(record.metadata.get('raw_record_id'))
        if raw is None:
            return []
        start = int(record.metadata.get('start_turn', 0))
        end = int(record.metadata.get('end_turn', len(raw.messages) - 1))
        return raw.messages_in_range(start, end)

    def cleanup_expired_raw_conversations(self, now: Optional[datetime] = None) -> int:
        if self.raw_store is None:
            return 0
        return self.raw_store.delete_expired(now)
