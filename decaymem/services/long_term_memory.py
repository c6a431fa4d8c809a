"""
Long-term memory facade consumed by agent runtimes.
"""

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from ..models.core import Message, MemoryRecord, MemoryType, SearchFilter
from ..models.namespace import Namespace, NamespaceTemplate
from ..stores.in_memory import InMemoryMetadataStore, InMemoryRawConversationStore, InMemoryVectorStore
from ..utils.bedrock_embed import BedrockEmbed
from ..utils.bedrock_llm import BedrockLLM
from ..utils.config import AppConfig, LongTermMemoryConfig
from ..utils.logging_config import get_logger
from .conflict import ConflictResolver
from .extraction_coordinator import ExtractionCoordinator
from .memory_extraction import BedrockMemoryExtractor, Embedder, Extractor
from .memory_management import MemoryStoreCoordinator

logger = get_logger(__name__)

CONTEXT_HEADER = '[User Memory]'


class LongTermMemory:
    """Session lifecycle and recall API over the store and extraction coordinators."""

    def __init__(self,
                 store: MemoryStoreCoordinator,
                 extractor: Extractor,
                 embedder: Embedder,
                 config: Optional[LongTermMemoryConfig] = None,
                 conflict_resolver: Optional[ConflictResolver] = None,
                 token_counter: Optional[Callable[[str], int]] = None):
        self.store = store
        self.embedder = embedder
        self.config = config or store.config
        self.namespace_template = NamespaceTemplate.from_path(self.config.namespace_template)
        self.coordinator = ExtractionCoordinator(store,
                                                 extractor,
                                                 embedder,
                                                 self.config,
                                                 conflict_resolver=conflict_resolver,
                                                 token_counter=token_counter)
        self._current_namespace: Optional[Namespace] = None
        self._current_session_id: Optional[str] = None

    def start_session(self, scope: Union[Namespace, Mapping[str, str]], session_id: Optional[str] = None) -> Namespace:
        """Start a session in a namespace, or in the namespace the configured template resolves to.

        Raises:
            MissingVariableError: if scope is a mapping lacking a template variable
        """
        namespace = scope if isinstance(scope, Namespace) else self.namespace_template.resolve(scope)
        self._current_namespace = namespace
        self._current_session_id = session_id
        self.coordinator.init_session(namespace, session_id)
        return namespace

    def start_session_for_user(self, user_id: str, session_id: Optional[str] = None) -> Namespace:
        return self.start_session(Namespace.for_user(user_id), session_id)

    def on_message(self, message: Optional[Message]) -> None:
        self.coordinator.on_message(message)

    def end_session(self) -> None:
        self.coordinator.on_session_end()

    def add_memory(self,
                   content: str,
                   memory_type: Optional[MemoryType] = None,
                   importance: Optional[float] = None,
                   metadata: Optional[Dict[str, Any]] = None,
                   namespace: Optional[Namespace] = None) -> Optional[MemoryRecord]:
        """Store a memory directly, bypassing extraction. Returns None without a namespace."""
        namespace = namespace or self._current_namespace
        if namespace is None:
            logger.warning('No namespace given and no active session, memory not added')
            return None
        if not content or not content.strip():
            logger.warning('Empty memory content provided, memory not added')
            return None

        record = MemoryRecord.create(content=content.strip(),
                                     namespace=namespace,
                                     memory_type=memory_type,
                                     importance=importance,
                                     session_id=self._current_session_id,
                                     metadata=metadata)
        self.store.save(record, self.embedder.embed(record.content))
        logger.debug(f'Added memory {record.id} to {namespace.to_path()}')
        return record

    def recall(self,
               query: str,
               top_k: Optional[int] = None,
               types: Optional[Iterable[MemoryType]] = None,
               namespace: Optional[Namespace] = None) -> List[MemoryRecord]:
        """Most relevant memories for a query; [] when there is no session or embedding fails."""
        namespace = namespace or self._current_namespace
        if namespace is None or not query or not query.strip():
            return []

        query_embedding = self._embed_query(query)
        if query_embedding is None:
            return []

        types = frozenset(types or ())
        search_filter = SearchFilter.for_types(types) if types else None
        return self.store.search(namespace,
                                 query_embedding,
                                 top_k if top_k is not None else self.config.default_top_k,
                                 search_filter=search_filter,
                                 min_similarity=self.config.min_similarity_threshold or None)

    @staticmethod
    def format_as_context(memories: Optional[List[MemoryRecord]]) -> str:
        if not memories:
            return ''
        lines = [CONTEXT_HEADER] + [f'- {record.content}' for record in memories]
        return '\n'.join(lines) + '\n'

    def has_memories(self) -> bool:
        return self.get_memory_count() > 0

    def get_memory_count(self) -> int:
        if self._current_namespace is None:
            return 0
        return self.store.count(self._current_namespace)

    def wait_for_extraction(self, timeout: Optional[float] = None) -> bool:
        return self.coordinator.wait_for_completion(timeout)

    def is_extraction_in_progress(self) -> bool:
        return self.coordinator.is_extraction_in_progress()

    @property
    def current_namespace(self) -> Optional[Namespace]:
        return self._current_namespace

    @property
    def current_session_id(self) -> Optional[str]:
        return self._current_session_id

    def close(self) -> None:
        self.coordinator.shutdown()

    def _embed_query(self, query: str) -> Optional[List[float]]:
        embed = getattr(self.embedder, 'embed_query', self.embedder.embed)
        try:
            return embed(query)
        except Exception as e:
            logger.warning(f'Failed to embed recall query (length {len(query)}): {e}')
            return None


def build_store(app_config: AppConfig) -> MemoryStoreCoordinator:
    """Wire the metadata and vector backends selected by configuration."""
    memory_config = app_config.memory

    if memory_config.metadata_backend == 'neptune':
        from ..stores.neptune_metadata_store import NeptuneMetadataStore
        metadata_store = NeptuneMetadataStore(app_config.neptune)
    elif memory_config.metadata_backend == 'in_memory':
        metadata_store = InMemoryMetadataStore()
    else:
        raise ValueError(f'Unsupported metadata backend: {memory_config.metadata_backend}')

    if memory_config.vector_backend == 'opensearch':
        from ..stores.opensearch_vector_store import OpenSearchVectorStore
        vector_store = OpenSearchVectorStore(app_config.opensearch)
    elif memory_config.vector_backend == 'in_memory':
        vector_store = InMemoryVectorStore(memory_config.embedding_dimension)
    else:
        raise ValueError(f'Unsupported vector backend: {memory_config.vector_backend}')

    raw_store = InMemoryRawConversationStore() if memory_config.enable_raw_storage else None
    return MemoryStoreCoordinator(metadata_store, vector_store, memory_config, raw_store=raw_store)


def build_long_term_memory(app_config: Optional[AppConfig] = None,
                           conflict_resolver: Optional[ConflictResolver] = None) -> LongTermMemory:
    """Build a LongTermMemory with Bedrock extraction/embedding and the configured backends."""
    if app_config is None:
        from ..utils.config import config as default_config
        app_config = default_config

    store = build_store(app_config)
    extractor = BedrockMemoryExtractor(BedrockLLM(app_config.bedrock_llm))
    embedder = BedrockEmbed(app_config.bedrock_embed)

    logger.info(f'Built LongTermMemory (metadata={app_config.memory.metadata_backend}, '
                f'vector={app_config.memory.vector_backend})')
    return LongTermMemory(store, extractor, embedder, app_config.memory, conflict_resolver=conflict_resolver)
