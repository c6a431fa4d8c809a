"""
Session buffering and trigger policy for memory extraction.

Conversation turns are buffered per session and flushed to the extractor when the buffer
reaches ``max_buffer_turns`` messages or ``max_buffer_tokens`` tokens, and once more when the
session ends. Extraction runs inline (sync mode) or on a worker pool bounded by
``extraction_timeout_seconds`` (async mode). Memory capture is best effort: failed or timed
out batches are logged and dropped, never retried.
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from enum import Enum
from typing import Callable, List, Optional

from ..exceptions import ExtractionError
from ..models.core import Message, MemoryRecord
from ..models.namespace import Namespace
from ..utils.config import LongTermMemoryConfig
from ..utils.logging_config import get_logger
from ..utils.tokens import count_tokens
from .conflict import ConflictResolver, ConflictStrategy, apply_conflict_resolution
from .memory_extraction import Embedder, Extractor
from .memory_management import MemoryStoreCoordinator

logger = get_logger(__name__)


class SessionState(Enum):
    IDLE = 'idle'
    BUFFERING = 'buffering'
    EXTRACTING = 'extracting'


class ExtractionCoordinator:
    """Decides when buffered conversation is sent to the extractor and stores the result."""

    def __init__(self,
                 store: MemoryStoreCoordinator,
                 extractor: Extractor,
                 embedder: Embedder,
                 config: Optional[LongTermMemoryConfig] = None,
                 conflict_resolver: Optional[ConflictResolver] = None,
                 token_counter: Optional[Callable[[str], int]] = None,
                 executor: Optional[ThreadPoolExecutor] = None):
        self.store = store
        self.extractor = extractor
        self.embedder = embedder
        self.config = config or LongTermMemoryConfig()
        self.conflict_resolver = conflict_resolver
        self.conflict_strategy = ConflictStrategy.parse(self.config.conflict_strategy)
        self.token_counter = token_counter or count_tokens

        self._executor = executor
        self._owns_executor = executor is None

        self._lock = threading.RLock()
        self._buffer: List[Message] = []
        self._buffered_tokens = 0
        self._current_turn_index = 0
        self._last_extracted_turn_index = 0
        self._extraction_count = 0

        self._namespace: Optional[Namespace] = None
        self._session_id: Optional[str] = None
        self._generation = 0

        self._future: Optional[Future] = None
        self._deadline: Optional[float] = None
        self._sync_running = False

    def init_session(self, namespace: Namespace, session_id: Optional[str] = None) -> None:
        """Start a fresh session; results still in flight from the previous one are discarded."""
        with self._lock:
            self._generation += 1
            self._namespace = namespace
            self._session_id = session_id
            self._reset_buffer()
            self._current_turn_index = 0
            self._last_extracted_turn_index = 0

        logger.info(f'Initialized extraction session {session_id} in {namespace.to_path()}')

    def on_message(self, message: Optional[Message]) -> None:
        """Buffer a conversation turn and trigger extraction when a threshold is reached."""
        if message is None or message.get('role') == 'system':
            return

        with self._lock:
            if self._namespace is None:
                logger.warning('Message received with no active session, ignoring')
                return

            if message.get('role') == 'user':
                self._current_turn_index += 1

            self._buffer.append(message)
            self._buffered_tokens += self.token_counter(message.get('content') or '')

            should_trigger = self._should_trigger()

        if should_trigger:
            self._trigger_extraction()

    def on_session_end(self) -> None:
        """Flush the remaining buffer (when configured), wait for it, then clear the session."""
        self.wait_for_completion()

        if self.config.extract_on_session_end and self.buffer_size > 0:
            logger.info(f'Session ending, extracting remaining {self.buffer_size} messages')
            self._trigger_extraction()
            self.wait_for_completion()

        with self._lock:
            self._reset_buffer()
            self._namespace = None
            self._session_id = None

        logger.info('Extraction session ended')

    def wait_for_completion(self, timeout: Optional[float] = None) -> bool:
        """Block until the in-flight extraction finishes.

        Args:
            timeout: Seconds to wait; defaults to what is left of the extraction timeout

        Returns:
            True if nothing is in flight any more, False if the wait timed out
        """
        with self._lock:
            future = self._future
            deadline = self._deadline

        if future is None or future.done():
            return True

        if timeout is None:
            timeout = max(0.0, deadline - time.monotonic()) if deadline is not None else None

        try:
            future.result(timeout=timeout)
            return True
        except FuturesTimeoutError:
            logger.warning(f'Extraction still running after {timeout:.1f}s wait')
            return False

    def is_extraction_in_progress(self) -> bool:
        with self._lock:
            return self._in_flight()

    def shutdown(self, wait: bool = False) -> None:
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    @property
    def state(self) -> SessionState:
        with self._lock:
            if self._sync_running or self._in_flight():
                return SessionState.EXTRACTING
            if self._buffer:
                return SessionState.BUFFERING
            return SessionState.IDLE

    @property
    def buffer_size(self) -> int:
        with self._lock:
            return len(self._buffer)

    @property
    def buffered_token_count(self) -> int:
        return self._buffered_tokens

    @property
    def current_turn_index(self) -> int:
        return self._current_turn_index

    @property
    def last_extracted_turn_index(self) -> int:
        return self._last_extracted_turn_index

    @property
    def extraction_count(self) -> int:
        """Number of batches handed to the extractor since construction."""
        return self._extraction_count

    @property
    def namespace(self) -> Optional[Namespace]:
        return self._namespace

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    def _reset_buffer(self) -> None:
        self._buffer = []
        self._buffered_tokens = 0

    def _in_flight(self) -> bool:
        # An extraction past its deadline is abandoned and no longer counts as in flight
        if self._sync_running:
            return True
        if self._future is None or self._future.done():
            return False
        return self._deadline is None or time.monotonic() < self._deadline

    def _should_trigger(self) -> bool:
        if self._in_flight():
            return False
        return len(self._buffer) >= self.config.max_buffer_turns or self._buffered_tokens >= self.config.max_buffer_tokens

    def _trigger_extraction(self) -> None:
        with self._lock:
            if not self._buffer or self._in_flight() or self._namespace is None:
                return

            messages = list(self._buffer)
            start_turn = self._last_extracted_turn_index + 1
            end_turn = self._current_turn_index
            self._reset_buffer()

            namespace = self._namespace
            session_id = self._session_id
            generation = self._generation
            self._extraction_count += 1

            if self.config.async_extraction:
                self._deadline = time.monotonic() + self.config.extraction_timeout_seconds
                self._future = self._get_executor().submit(self._perform_extraction, messages, namespace, session_id,
                                                           generation, start_turn, end_turn, self._deadline)
            else:
                self._sync_running = True

        logger.info(f'Triggering extraction: {len(messages)} messages, turns {start_turn}-{end_turn}')

        if not self.config.async_extraction:
            try:
                self._perform_extraction(messages, namespace, session_id, generation, start_turn, end_turn, None)
            finally:
                with self._lock:
                    self._sync_running = False

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix='memory-extraction')
        return self._executor

    def _perform_extraction(self,
                            messages: List[Message],
                            namespace: Namespace,
                            session_id: Optional[str],
                            generation: int,
                            start_turn: int,
                            end_turn: int,
                            deadline: Optional[float]) -> int:
        """Extract, embed and store one batch; returns the number of records saved."""
        try:
            records = self._extract(namespace, messages)
            if not records:
                logger.debug(f'No memories extracted from {len(messages)} messages')
                return 0

            raw = self.store.save_raw_conversation(namespace, messages, session_id)
            records = [self._scope_record(record, namespace, session_id, raw.id if raw else None, len(messages)) for record in records]

            records = apply_conflict_resolution(records, self.conflict_strategy, self.conflict_resolver)
            if not records:
                logger.debug('No records to save after conflict resolution')
                return 0

            embeddings = self._embed(records)

            with self._lock:
                if generation != self._generation:
                    logger.warning(f'Discarding {len(records)} memories from a previous session')
                    return 0
                if deadline is not None and time.monotonic() > deadline:
                    logger.warning(f'Discarding {len(records)} memories extracted after the '
                                   f'{self.config.extraction_timeout_seconds}s timeout')
                    return 0

            # Backend writes can be slow; conversation threads must not wait on them
            self.store.save_all(records, embeddings)

            with self._lock:
                if generation == self._generation:
                    self._last_extracted_turn_index = end_turn

            logger.info(f'Extracted and saved {len(records)} memories from turns {start_turn}-{end_turn}')
            return len(records)

        except ExtractionError as e:
            logger.warning(f'Dropping batch for turns {start_turn}-{end_turn}: {e}')
            return 0
        except Exception as e:
            logger.error(f'Failed to extract memories from turns {start_turn}-{end_turn}: {e}')
            return 0

    def _extract(self, namespace: Namespace, messages: List[Message]) -> List[MemoryRecord]:
        try:
            return self.extractor.extract(namespace, messages) or []
        except Exception as e:
            raise ExtractionError(f'Extractor failed: {e}') from e

    def _embed(self, records: List[MemoryRecord]) -> List[List[float]]:
        try:
            return [self.embedder.embed(record.content) for record in records]
        except Exception as e:
            raise ExtractionError(f'Embedder failed: {e}') from e

    @staticmethod
    def _scope_record(record: MemoryRecord,
                      namespace: Namespace,
                      session_id: Optional[str],
                      raw_record_id: Optional[str],
                      message_count: int) -> MemoryRecord:
        record = record.with_scope(namespace, session_id)
        if raw_record_id:
            record = record.with_metadata(raw_record_id=raw_record_id, start_turn=0, end_turn=message_count - 1)
        return record
