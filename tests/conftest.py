"""Test configuration and fixtures."""

import re
import threading
from typing import List

import pytest

from decaymem.models.core import MemoryRecord, MemoryType
from decaymem.services.memory_management import MemoryStoreCoordinator
from decaymem.stores.in_memory import InMemoryMetadataStore, InMemoryRawConversationStore, InMemoryVectorStore
from decaymem.utils.config import LongTermMemoryConfig

VOCABULARY = ['coffee', 'tea', 'python', 'guitar', 'japan', 'dog', 'cat', 'music']
EMBEDDING_DIMENSION = len(VOCABULARY) + 1


def word_count(text: str) -> int:
    """Stand-in token counter: one token per whitespace-separated word."""
    return len(text.split())


class KeywordEmbedder:
    """Deterministic bag-of-keywords embedder; the last axis collects unknown words."""

    def __init__(self):
        self.calls: List[str] = []

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        vector = [0.0] * EMBEDDING_DIMENSION
        for word in re.findall(r'[a-z]+', text.lower()):
            if word in VOCABULARY:
                vector[VOCABULARY.index(word)] += 1.0
            else:
                vector[-1] += 0.1
        return vector


class FakeExtractor:
    """Turns every user message into one FACT record."""

    def __init__(self):
        self.calls = []

    def extract(self, namespace, messages):
        self.calls.append(list(messages))
        return [
            MemoryRecord.create(message['content'], namespace, MemoryType.FACT)
            for message in messages
            if message.get('role') == 'user'
        ]


class BlockingExtractor(FakeExtractor):
    """FakeExtractor that waits for `release` before returning."""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def extract(self, namespace, messages):
        self.started.set()
        self.release.wait(5)
        return super().extract(namespace, messages)


def user(content: str) -> dict:
    return {'role': 'user', 'content': content}


def assistant(content: str) -> dict:
    return {'role': 'assistant', 'content': content}


@pytest.fixture
def memory_config() -> LongTermMemoryConfig:
    """Synchronous extraction and a small embedding dimension."""
    return LongTermMemoryConfig(async_extraction=False,
                                max_buffer_turns=4,
                                max_buffer_tokens=10_000,
                                embedding_dimension=EMBEDDING_DIMENSION)


@pytest.fixture
def store(memory_config) -> MemoryStoreCoordinator:
    return MemoryStoreCoordinator(InMemoryMetadataStore(), InMemoryVectorStore(EMBEDDING_DIMENSION), memory_config)


@pytest.fixture
def raw_store(memory_config) -> MemoryStoreCoordinator:
    """Coordinator with raw conversation storage enabled."""
    memory_config.enable_raw_storage = True
    return MemoryStoreCoordinator(InMemoryMetadataStore(),
                                  InMemoryVectorStore(EMBEDDING_DIMENSION),
                                  memory_config,
                                  raw_store=InMemoryRawConversationStore())


@pytest.fixture
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()
