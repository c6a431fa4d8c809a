"""
Configuration management for AWS services and memory engine settings.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class BedrockLLMConfig:
    """Configuration for Amazon Bedrock LLM service used by memory extraction."""
    region: str
    model_id: str
    max_tokens: int
    temperature: float
    retry_attempts: int
    retry_delay: float


@dataclass
class BedrockEmbedConfig:
    """Configuration for Amazon Bedrock Embed service."""
    region: str
    model_id: str
    dimension: int
    retry_attempts: int
    retry_delay: float


@dataclass
class NeptuneConfig:
    """Configuration for the Amazon Neptune metadata backend."""
    endpoint: str
    port: int
    region: str


@dataclass
class OpenSearchConfig:
    """Configuration for the OpenSearch vector backend."""
    endpoint: str
    port: int
    region: str
    index_name: str
    dimension: int


@dataclass
class LongTermMemoryConfig:
    """Configuration for decay, search, extraction triggers and storage backends."""
    # Decay
    enable_decay: bool = True
    decay_check_interval_hours: float = 24.0
    decay_threshold: float = 0.1

    # Search
    default_top_k: int = 10
    min_similarity_threshold: float = 0.0

    # Extraction triggers
    max_buffer_turns: int = 10
    max_buffer_tokens: int = 2000
    extract_on_session_end: bool = True
    async_extraction: bool = True
    extraction_timeout_seconds: float = 30.0

    # Storage
    embedding_dimension: int = 1024
    enable_raw_storage: bool = False
    raw_retention_days: int = 30
    metadata_backend: str = 'in_memory'
    vector_backend: str = 'in_memory'

    # Scoping and conflicts
    namespace_template: str = 'user/{user_id}'
    conflict_strategy: str = 'none'

    @property
    def decay_check_interval_seconds(self) -> float:
        return self.decay_check_interval_hours * 3600


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    bedrock_llm: BedrockLLMConfig
    bedrock_embed: BedrockEmbedConfig
    neptune: NeptuneConfig
    opensearch: OpenSearchConfig
    memory: LongTermMemoryConfig
    mcp: MCPConfig


def load_memory_config() -> LongTermMemoryConfig:
    """Load long-term memory settings from environment variables with defaults."""
    return LongTermMemoryConfig(enable_decay=_env_bool('MEMORY_ENABLE_DECAY', 'true'),
                                decay_check_interval_hours=float(os.getenv('MEMORY_DECAY_CHECK_INTERVAL_HOURS', '24')),
                                decay_threshold=float(os.getenv('MEMORY_DECAY_THRESHOLD', '0.1')),
                                default_top_k=int(os.getenv('MEMORY_DEFAULT_TOP_K', '10')),
                                min_similarity_threshold=float(os.getenv('MEMORY_MIN_SIMILARITY_THRESHOLD', '0.0')),
                                max_buffer_turns=int(os.getenv('MEMORY_MAX_BUFFER_TURNS', '10')),
                                max_buffer_tokens=int(os.getenv('MEMORY_MAX_BUFFER_TOKENS', '2000')),
                                extract_on_session_end=_env_bool('MEMORY_EXTRACT_ON_SESSION_END', 'true'),
                                async_extraction=_env_bool('MEMORY_ASYNC_EXTRACTION', 'true'),
                                extraction_timeout_seconds=float(os.getenv('MEMORY_EXTRACTION_TIMEOUT_SECONDS', '30')),
                                embedding_dimension=int(os.getenv('MEMORY_EMBEDDING_DIMENSION', '1024')),
                                enable_raw_storage=_env_bool('MEMORY_ENABLE_RAW_STORAGE', 'false'),
                                raw_retention_days=int(os.getenv('MEMORY_RAW_RETENTION_DAYS', '30')),
                                metadata_backend=os.getenv('MEMORY_METADATA_BACKEND', 'in_memory'),
                                vector_backend=os.getenv('MEMORY_VECTOR_BACKEND', 'in_memory'),
                                namespace_template=os.getenv('MEMORY_NAMESPACE_TEMPLATE', 'user/{user_id}'),
                                conflict_strategy=os.getenv('MEMORY_CONFLICT_STRATEGY', 'none'))


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')

    # Bedrock configuration
    bedrock_llm_config = BedrockLLMConfig(region=os.getenv('BEDROCK_LLM_AWS_REGION', 'us-east-1'),
                                          model_id=os.getenv('BEDROCK_LLM_MODEL_ID', 'anthropic.claude-3-haiku-20240307-v1:0'),
                                          max_tokens=int(os.getenv('BEDROCK_LLM_MAX_TOKENS', '2048')),
                                          temperature=float(os.getenv('BEDROCK_LLM_TEMPERATURE', '0.3')),
                                          retry_attempts=int(os.getenv('BEDROCK_LLM_RETRY_ATTEMPTS', '3')),
                                          retry_delay=float(os.getenv('BEDROCK_LLM_RETRY_DELAY', '1.0')))

    memory_config = load_memory_config()

    # Bedrock Embed configuration; dimension follows the memory engine unless overridden
    bedrock_embed_config = BedrockEmbedConfig(region=os.getenv('BEDROCK_EMBED_AWS_REGION', 'us-east-1'),
                                              model_id=os.getenv('BEDROCK_EMBED_MODEL_ID', 'amazon.titan-embed-text-v2:0'),
                                              dimension=int(os.getenv('BEDROCK_EMBED_DIMENSION',
                                                                      str(memory_config.embedding_dimension))),
                                              retry_attempts=int(os.getenv('BEDROCK_EMBED_RETRY_ATTEMPTS', '3')),
                                              retry_delay=float(os.getenv('BEDROCK_EMBED_RETRY_DELAY', '1.0')))

    # Neptune configuration
    neptune_config = NeptuneConfig(endpoint=os.getenv('NEPTUNE_ENDPOINT', 'localhost'),
                                   port=int(os.getenv('NEPTUNE_PORT', '8182')),
                                   region=os.getenv('NEPTUNE_AWS_REGION', 'us-east-1'))

    # Vector search configuration
    opensearch_config = OpenSearchConfig(endpoint=os.getenv('OPENSEARCH_ENDPOINT', 'localhost'),
                                         port=int(os.getenv('OPENSEARCH_PORT', '443')),
                                         region=os.getenv('OPENSEARCH_AWS_REGION', 'us-east-1'),
                                         index_name=os.getenv('OPENSEARCH_INDEX', 'memory_embeddings'),
                                         dimension=int(os.getenv('OPENSEARCH_DIMENSION',
                                                                 str(memory_config.embedding_dimension))))

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'sse'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     bedrock_llm=bedrock_llm_config,
                     bedrock_embed=bedrock_embed_config,
                     neptune=neptune_config,
                     opensearch=opensearch_config,
                     memory=memory_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()
