"""
Unit tests for the Bedrock embedding and LLM wrappers with stubbed runtime clients.
"""

import io
import json
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from decaymem.utils.bedrock_embed import BedrockEmbed, BedrockEmbedError
from decaymem.utils.bedrock_llm import BedrockLLM, BedrockLLMError
from decaymem.utils.config import BedrockEmbedConfig, BedrockLLMConfig

THROTTLED = ClientError({'Error': {'Code': 'ThrottlingException', 'Message': 'Rate exceeded'}}, 'InvokeModel')


def invoke_response(payload):
    return {'body': io.BytesIO(json.dumps(payload).encode())}


def embed_config(model_id='amazon.titan-embed-text-v2:0', dimension=3):
    return BedrockEmbedConfig(region='us-east-1', model_id=model_id, dimension=dimension, retry_attempts=3, retry_delay=0.0)


@pytest.fixture
def llm_config():
    return BedrockLLMConfig(region='us-east-1', model_id='anthropic.claude-3-haiku-20240307-v1:0', max_tokens=512,
                            temperature=0.3, retry_attempts=3, retry_delay=0.0)


def test_titan_embed_request():
    client = MagicMock()
    client.invoke_model.return_value = invoke_response({'embedding': [0.1, 0.2, 0.3]})

    embedding = BedrockEmbed(embed_config(), client=client).embed('I like tea')

    assert embedding == [0.1, 0.2, 0.3]
    body = json.loads(client.invoke_model.call_args.kwargs['body'])
    assert body == {'inputText': 'I like tea', 'dimensions': 3}


def test_cohere_distinguishes_query_embeddings():
    client = MagicMock()
    client.invoke_model.side_effect = lambda **kwargs: invoke_response({'embeddings': [[0.5] * 1024]})
    embedder = BedrockEmbed(embed_config('cohere.embed-english-v3', 1024), client=client)

    embedder.embed('doc')
    embedder.embed_query('query')

    input_types = [json.loads(call.kwargs['body'])['input_type'] for call in client.invoke_model.call_args_list]
    assert input_types == ['search_document', 'search_query']


def test_cohere_rejects_other_dimensions():
    with pytest.raises(BedrockEmbedError):
        BedrockEmbed(embed_config('cohere.embed-english-v3', 512), client=MagicMock())


def test_embed_rejects_empty_text():
    client = MagicMock()
    with pytest.raises(BedrockEmbedError):
        BedrockEmbed(embed_config(), client=client).embed('  ')
    client.invoke_model.assert_not_called()


def test_embed_retries_throttling():
    client = MagicMock()
    client.invoke_model.side_effect = [THROTTLED, invoke_response({'embedding': [1.0, 0.0, 0.0]})]

    with patch('decaymem.utils.bedrock_embed.time.sleep') as sleep:
        embedding = BedrockEmbed(embed_config(), client=client).embed('hello')

    assert embedding == [1.0, 0.0, 0.0]
    assert client.invoke_model.call_count == 2
    sleep.assert_called_once()


def test_embed_fails_after_retries():
    client = MagicMock()
    client.invoke_model.side_effect = THROTTLED

    with patch('decaymem.utils.bedrock_embed.time.sleep'):
        with pytest.raises(BedrockEmbedError, match='3 attempts'):
            BedrockEmbed(embed_config(), client=client).embed('hello')
    assert client.invoke_model.call_count == 3


def test_embed_health_check_checks_dimension():
    client = MagicMock()
    client.invoke_model.side_effect = lambda **kwargs: invoke_response({'embedding': [0.1, 0.2]})
    assert BedrockEmbed(embed_config(), client=client).health_check() is False


def test_converse_concatenates_stream(llm_config):
    client = MagicMock()
    client.converse_stream.return_value = {
        'stream': [
            {'contentBlockDelta': {'delta': {'text': '[{"content": '}}},
            {'contentBlockDelta': {'delta': {'text': '"x"}]'}}},
            {'metadata': {'usage': {'inputTokens': 10}, 'metrics': {'latencyMs': 5}}},
        ]
    }

    response = BedrockLLM(llm_config, client=client).converse([], 'system')

    assert response.text == '[{"content": "x"}]'
    assert response.usage == {'inputTokens': 10, 'latencyMs': 5}


def test_complete_json_prefills_fence(llm_config):
    client = MagicMock()
    client.converse_stream.return_value = {'stream': [{'contentBlockDelta': {'delta': {'text': '\n[]\n'}}}]}

    assert BedrockLLM(llm_config, client=client).complete_json('Extract', 'system') == '\n[]\n'

    kwargs = client.converse_stream.call_args.kwargs
    assert kwargs['messages'][-1] == {'role': 'assistant', 'content': [{'text': '```json'}]}
    assert kwargs['inferenceConfig']['stopSequences'] == ['```']
    assert kwargs['system'] == [{'text': 'system'}]


def test_converse_fails_after_retries(llm_config):
    client = MagicMock()
    client.converse_stream.side_effect = THROTTLED

    with patch('decaymem.utils.bedrock_llm.time.sleep'):
        with pytest.raises(BedrockLLMError):
            BedrockLLM(llm_config, client=client).converse([], 'system')
    assert client.converse_stream.call_count == 3


def test_unexpected_llm_error_is_not_retried(llm_config):
    client = MagicMock()
    client.converse_stream.side_effect = ValueError('bad request shape')

    with pytest.raises(BedrockLLMError, match='Unexpected'):
        BedrockLLM(llm_config, client=client).converse([], 'system')
    assert client.converse_stream.call_count == 1
