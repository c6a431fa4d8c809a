"""
Memory extraction: turning conversation transcripts into typed, scored memory records.
"""

import json
from typing import Callable, List, Optional, Protocol, Sequence

from ..models.core import DEFAULT_IMPORTANCE, Message, MemoryRecord, MemoryType
from ..models.namespace import Namespace
from ..utils.bedrock_llm import BedrockLLM, BedrockLLMError
from ..utils.json_utils import extract_json_array
from ..utils.logging_config import get_logger
from ..utils.tokens import count_tokens, truncate_tokens

logger = get_logger(__name__)

MAX_TURNS_PER_EXTRACTION = 5
MAX_TOKENS_PER_MESSAGE = 1000
TRUNCATION_MARKER = '\n[truncated]'

ROLE_LABELS = {'user': 'User', 'assistant': 'Assistant', 'tool': 'Tool'}

EXTRACTION_SYSTEM_PROMPT = """
You are a memory extraction specialist. Analyze the conversation and extract key long-term memories about the user.

Extract information that stays relevant beyond this conversation:
- FACT: objective information about the user (name, location, job, pets)
- PREFERENCE: likes, dislikes and habits
- GOAL: long-term plans or intentions
- EPISODE: important events in the user's interactions
- RELATIONSHIP: people or organizations the user is connected to

Ignore small talk, pleasantries, questions directed at the assistant and purely temporary context
(e.g. "what is the weather like today", "I'm busy this afternoon").

Return a JSON array with this exact format:
```json
[
  {
    "content": "concise, self-contained memory",
    "type": "FACT|PREFERENCE|GOAL|EPISODE|RELATIONSHIP",
    "importance": 0.8
  }
]
```

Importance is between 0.0 and 1.0.
Return empty array [] if no significant memories are found."""


class Extractor(Protocol):
    """Turns a batch of conversation messages into memory records."""

    def extract(self, namespace: Namespace, messages: Sequence[Message]) -> List[MemoryRecord]:
        ...


class Embedder(Protocol):
    """Maps text to a fixed-dimension embedding."""

    def embed(self, text: str) -> List[float]:
        ...


class BedrockMemoryExtractor:
    """Extract memories from conversation chunks with a Bedrock LLM.

    Long conversations are split into chunks of at most ``max_turns_per_chunk`` user turns and
    over-long messages are truncated before prompting. A chunk whose LLM call or response parse
    fails contributes no records; other chunks are unaffected.
    """

    def __init__(self,
                 llm: BedrockLLM,
                 max_turns_per_chunk: int = MAX_TURNS_PER_EXTRACTION,
                 max_tokens_per_message: int = MAX_TOKENS_PER_MESSAGE,
                 token_counter: Optional[Callable[[str], int]] = None,
                 truncator: Optional[Callable[[str, int], str]] = None):
        self.llm = llm
        self.max_turns_per_chunk = max_turns_per_chunk
        self.max_tokens_per_message = max_tokens_per_message
        self.token_counter = token_counter or count_tokens
        self.truncator = truncator or truncate_tokens

        logger.info('Initialized BedrockMemoryExtractor')

    def extract(self, namespace: Namespace, messages: Sequence[Message]) -> List[MemoryRecord]:
        if not messages:
            logger.warning('Empty messages provided for memory extraction')
            return []

        records = []
        for chunk in self.split_by_turns(messages):
            records.extend(self._extract_from_chunk(namespace, [self._truncate_if_needed(msg) for msg in chunk]))

        logger.debug(f'Extracted {len(records)} memories from {len(messages)} messages')
        return records

    def split_by_turns(self, messages: Sequence[Message]) -> List[List[Message]]:
        """Group messages so that no chunk holds more than max_turns_per_chunk user messages."""
        chunks = []
        current = []
        turns = 0
        for msg in messages:
            if msg.get('role') == 'user':
                if turns >= self.max_turns_per_chunk and current:
                    chunks.append(current)
                    current = []
                    turns = 0
                turns += 1
            current.append(msg)

        if current:
            chunks.append(current)
        return chunks

    def _truncate_if_needed(self, msg: Message) -> Message:
        content = msg.get('content') or ''
        if not content or self.token_counter(content) <= self.max_tokens_per_message:
            return msg
        return {**msg, 'content': self.truncator(content, self.max_tokens_per_message) + TRUNCATION_MARKER}

    @staticmethod
    def format_conversation(messages: Sequence[Message]) -> str:
        lines = []
        for msg in messages:
            role = msg.get('role')
            content = msg.get('content') or ''
            if role == 'system' or not content.strip():
                continue
            lines.append(f'{ROLE_LABELS.get(role, "Unknown")}: {content}')
        return '\n'.join(lines)

    def _extract_from_chunk(self, namespace: Namespace, chunk: List[Message]) -> List[MemoryRecord]:
        conversation = self.format_conversation(chunk)
        if not conversation.strip():
            return []

        try:
            response = self.llm.complete_json(f'Extract memories from the conversation:\n{conversation}',
                                              EXTRACTION_SYSTEM_PROMPT)
        except BedrockLLMError as e:
            logger.error(f'LLM error during memory extraction: {e}')
            return []

        return self.parse_response(namespace, response)

    @staticmethod
    def parse_response(namespace: Namespace, response: str) -> List[MemoryRecord]:
        """Parse the JSON array of ``{content, type, importance}`` items in an LLM response."""
        try:
            items = json.loads(extract_json_array(response))
        except json.JSONDecodeError as e:
            logger.warning(f'Failed to parse memory extraction JSON: {e}')
            return []

        if not isinstance(items, list):
            logger.warning(f'Expected list, got {type(items)}')
            return []

        records = []
        for item in items:
            if not isinstance(item, dict):
                continue

            content = item.get('content')
            if not isinstance(content, str) or not content.strip():
                continue

            try:
                importance = float(item.get('importance', DEFAULT_IMPORTANCE))
            except (ValueError, TypeError):
                importance = DEFAULT_IMPORTANCE

            records.append(
                MemoryRecord.create(content=content.strip(),
                                    namespace=namespace,
                                    memory_type=MemoryType.parse(item.get('type')),
                                    importance=importance))
        return records
