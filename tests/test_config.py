"""
Unit tests for environment-driven configuration.
"""

from decaymem.utils.config import LongTermMemoryConfig, load_config, load_memory_config


def test_memory_defaults():
    memory_config = LongTermMemoryConfig()

    assert memory_config.decay_threshold == 0.1
    assert memory_config.max_buffer_turns == 10
    assert memory_config.max_buffer_tokens == 2000
    assert memory_config.async_extraction is True
    assert memory_config.enable_raw_storage is False
    assert memory_config.decay_check_interval_seconds == 24 * 3600


def test_memory_config_from_environment(monkeypatch):
    monkeypatch.setenv('MEMORY_MAX_BUFFER_TURNS', '6')
    monkeypatch.setenv('MEMORY_ASYNC_EXTRACTION', 'false')
    monkeypatch.setenv('MEMORY_ENABLE_RAW_STORAGE', 'yes')
    monkeypatch.setenv('MEMORY_NAMESPACE_TEMPLATE', '{org_id}/{user_id}')
    monkeypatch.setenv('MEMORY_DECAY_CHECK_INTERVAL_HOURS', '0.5')

    memory_config = load_memory_config()

    assert memory_config.max_buffer_turns == 6
    assert memory_config.async_extraction is False
    assert memory_config.enable_raw_storage is True
    assert memory_config.namespace_template == '{org_id}/{user_id}'
    assert memory_config.decay_check_interval_seconds == 1800


def test_embedding_dimension_propagates(monkeypatch):
    monkeypatch.setenv('MEMORY_EMBEDDING_DIMENSION', '512')
    monkeypatch.delenv('BEDROCK_EMBED_DIMENSION', raising=False)
    monkeypatch.delenv('OPENSEARCH_DIMENSION', raising=False)

    app_config = load_config()

    assert app_config.memory.embedding_dimension == 512
    assert app_config.bedrock_embed.dimension == 512
    assert app_config.opensearch.dimension == 512


def test_explicit_backend_dimension_wins(monkeypatch):
    monkeypatch.setenv('MEMORY_EMBEDDING_DIMENSION', '512')
    monkeypatch.setenv('OPENSEARCH_DIMENSION', '256')

    assert load_config().opensearch.dimension == 256
