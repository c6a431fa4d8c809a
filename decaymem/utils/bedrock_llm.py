"""
Amazon Bedrock Converse client used by the memory extractor.
"""

import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import BedrockLLMConfig
from .logging_config import get_logger

logger = get_logger(__name__)

JSON_FENCE = '```json'
FENCE = '```'


class BedrockLLMError(Exception):
    """Custom exception for Bedrock LLM errors."""
    pass


@dataclass
class LLMResponse:
    """Text streamed back by the model plus its usage/latency metadata."""
    text: str
    usage: Dict[str, Any] = field(default_factory=dict)


class BedrockLLM:
    """Streams Converse completions, retrying throttling and transport errors."""

    def __init__(self, config: BedrockLLMConfig, client=None):
        self.config = config
        self.model_id = config.model_id
        self.bedrock_runtime = client or boto3.client('bedrock-runtime',
                                                      region_name=config.region,
                                                      config=BotoConfig(connect_timeout=60,
                                                                        read_timeout=300,
                                                                        retries={'max_attempts': 0}))

        logger.info(f'Initialized Bedrock LLM client with model: {self.model_id}')

    def converse(self,
                 messages: List[Dict[str, Any]],
                 system_prompt: str,
                 max_tokens: Optional[int] = None,
                 temperature: Optional[float] = None,
                 stop_sequences: Optional[List[str]] = None) -> LLMResponse:
        """
        Run one Converse call over the streaming API.

        Args:
            messages: Messages in Bedrock Converse format
            system_prompt: System instruction
            max_tokens: Generation limit (config default if None)
            temperature: Sampling temperature (config default if None)
            stop_sequences: Sequences that end generation; not included in the text

        Raises:
            BedrockLLMError: If the call keeps failing or fails unexpectedly
        """
        inference_config = {
            'maxTokens': max_tokens or self.config.max_tokens,
            'temperature': self.config.temperature if temperature is None else temperature,
            'stopSequences': stop_sequences or [],
        }

        def call() -> LLMResponse:
            response = self.bedrock_runtime.converse_stream(modelId=self.model_id,
                                                            messages=messages,
                                                            system=[{'text': system_prompt}],
                                                            inferenceConfig=inference_config)
            return self._collect_stream(response.get('stream') or [])

        result = self._with_retry(call)
        logger.debug(f'Bedrock LLM returned {len(result.text)} characters')
        return result

    def complete_json(self, user_message: str, system_prompt: str) -> str:
        """Ask for a JSON answer by prefilling the assistant turn with an opening ```json fence.

        Generation stops at the closing fence, so the returned text is the bare JSON body.
        """
        messages = [
            {'role': 'user', 'content': [{'text': user_message}]},
            {'role': 'assistant', 'content': [{'text': JSON_FENCE}]},
        ]
        return self.converse(messages, system_prompt, stop_sequences=[FENCE]).text

    def health_check(self) -> bool:
        try:
            reply = self.converse([{'role': 'user', 'content': [{'text': 'ping'}]}],
                                  'Reply with the single word OK.',
                                  max_tokens=5,
                                  temperature=0.0)
            return bool(reply.text.strip())
        except Exception as e:
            logger.error(f'Bedrock LLM health check failed: {e}')
            return False

    @staticmethod
    def _collect_stream(stream: Iterable[Dict[str, Any]]) -> LLMResponse:
        chunks = []
        usage: Dict[str, Any] = {}
        for event in stream:
            if 'contentBlockDelta' in event:
                chunks.append(event['contentBlockDelta']['delta'].get('text', ''))
            if 'metadata' in event:
                usage.update(event['metadata'].get('usage', {}))
                usage.update(event['metadata'].get('metrics', {}))
        return LLMResponse(text=''.join(chunks), usage=usage)

    def _with_retry(self, call: Callable[[], LLMResponse]) -> LLMResponse:
        attempts = max(1, self.config.retry_attempts)
        for attempt in range(attempts):
            try:
                return call()
            except (ClientError, BotoCoreError) as e:
                logger.warning(f'Bedrock LLM attempt {attempt + 1}/{attempts} failed: {e}')
                if attempt == attempts - 1:
                    raise BedrockLLMError(f'Bedrock LLM failed after {attempts} attempts: {e}')
                # Exponential backoff with jitter
                time.sleep(self.config.retry_delay * (2**attempt) + random.uniform(0, 1))
            except Exception as e:
                logger.error(f'Unexpected error in Bedrock LLM: {e}')
                raise BedrockLLMError(f'Unexpected Bedrock LLM error: {e}')
        raise BedrockLLMError(f'Bedrock LLM failed after {attempts} attempts')
