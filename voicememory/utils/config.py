"""
Configuration management for AWS services and application settings.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass
class BedrockLLMConfig:
    """Configuration for Amazon Bedrock LLM service."""
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
    quota_retry_delay: float  # Base delay for quota errors, doubled per attempt
    transient_retry_delay: float  # Linear delay for other request errors
    retry_jitter: float


@dataclass
class OpenSearchConfig:
    """Configuration for OpenSearch."""
    endpoint: str
    port: int
    region: str
    service: str  # 'aoss' for serverless collections, 'es' for managed domains
    index_prefix: str
    dimension: int
    refresh_on_write: bool


@dataclass
class VectorStoreConfig:
    """Configuration for the vector store backend."""
    backend: str  # 'opensearch' or 'memory'


@dataclass
class MemoryConfig:
    """Configuration for record storage."""
    max_text_length: int
    deduplicate_voice_patterns: bool


@dataclass
class IngestionConfig:
    """Configuration for bulk corpus ingestion."""
    min_document_length: int
    document_delay: float
    error_delay: float


@dataclass
class ContextConfig:
    """Configuration for draft context assembly."""
    history_top_k: int
    relevant_top_k: int
    voice_top_k: int
    tone_top_k: int
    tone_examples_shown: int
    kb_top_k: int
    notes_top_k: int
    snippet_length: int
    query_timeout: float
    max_workers: int


@dataclass
class AgentConfig:
    """Configuration for the inbox agent."""
    owner_name: str
    unread_batch_size: int
    sent_lookback_hours: int
    decision_cache_size: int
    decision_cache_ttl: int
    outbox_max_attempts: int


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
    opensearch: OpenSearchConfig
    vector_store: VectorStoreConfig
    memory: MemoryConfig
    ingestion: IngestionConfig
    context: ContextConfig
    agent: AgentConfig
    mcp: MCPConfig


def _getenv_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')

    # Bedrock configuration
    bedrock_llm_config = BedrockLLMConfig(region=os.getenv('BEDROCK_LLM_AWS_REGION', 'us-east-1'),
                                          model_id=os.getenv('BEDROCK_LLM_MODEL_ID', 'anthropic.claude-3-sonnet-20240229-v1:0'),
                                          max_tokens=int(os.getenv('BEDROCK_LLM_MAX_TOKENS', '400')),
                                          temperature=float(os.getenv('BEDROCK_LLM_TEMPERATURE', '0.7')),
                                          retry_attempts=int(os.getenv('BEDROCK_LLM_RETRY_ATTEMPTS', '3')),
                                          retry_delay=float(os.getenv('BEDROCK_LLM_RETRY_DELAY', '1.0')))

    # Bedrock Embed configuration
    bedrock_embed_config = BedrockEmbedConfig(region=os.getenv('BEDROCK_EMBED_AWS_REGION', 'us-east-1'),
                                              model_id=os.getenv('BEDROCK_EMBED_MODEL_ID', 'amazon.titan-embed-text-v2:0'),
                                              dimension=int(os.getenv('BEDROCK_EMBED_DIMENSION', '1024')),
                                              retry_attempts=int(os.getenv('BEDROCK_EMBED_RETRY_ATTEMPTS', '3')),
                                              quota_retry_delay=float(os.getenv('BEDROCK_EMBED_QUOTA_RETRY_DELAY', '60.0')),
                                              transient_retry_delay=float(os.getenv('BEDROCK_EMBED_RETRY_DELAY', '1.0')),
                                              retry_jitter=float(os.getenv('BEDROCK_EMBED_RETRY_JITTER', '0.5')))

    # Vector search configuration
    opensearch_config = OpenSearchConfig(endpoint=os.getenv('OPENSEARCH_ENDPOINT', 'localhost'),
                                         port=int(os.getenv('OPENSEARCH_PORT', '443')),
                                         region=os.getenv('OPENSEARCH_AWS_REGION', 'us-east-1'),
                                         service=os.getenv('OPENSEARCH_SERVICE', 'aoss'),
                                         index_prefix=os.getenv('OPENSEARCH_INDEX_PREFIX', 'voice_memory'),
                                         dimension=int(os.getenv('OPENSEARCH_DIMENSION', '1024')),
                                         refresh_on_write=_getenv_bool('OPENSEARCH_REFRESH_ON_WRITE', 'true'))

    vector_store_config = VectorStoreConfig(backend=os.getenv('VECTOR_STORE_BACKEND', 'opensearch'))

    # Memory configuration
    memory_config = MemoryConfig(max_text_length=int(os.getenv('MEMORY_MAX_TEXT_LENGTH', '1000')),
                                 deduplicate_voice_patterns=_getenv_bool('MEMORY_DEDUPLICATE_VOICE_PATTERNS', 'true'))

    ingestion_config = IngestionConfig(min_document_length=int(os.getenv('INGESTION_MIN_DOCUMENT_LENGTH', '50')),
                                       document_delay=float(os.getenv('INGESTION_DOCUMENT_DELAY', '0.1')),
                                       error_delay=float(os.getenv('INGESTION_ERROR_DELAY', '0.5')))

    context_config = ContextConfig(history_top_k=int(os.getenv('CONTEXT_HISTORY_TOP_K', '3')),
                                   relevant_top_k=int(os.getenv('CONTEXT_RELEVANT_TOP_K', '2')),
                                   voice_top_k=int(os.getenv('CONTEXT_VOICE_TOP_K', '10')),
                                   tone_top_k=int(os.getenv('CONTEXT_TONE_TOP_K', '5')),
                                   tone_examples_shown=int(os.getenv('CONTEXT_TONE_EXAMPLES_SHOWN', '3')),
                                   kb_top_k=int(os.getenv('CONTEXT_KB_TOP_K', '2')),
                                   notes_top_k=int(os.getenv('CONTEXT_NOTES_TOP_K', '2')),
                                   snippet_length=int(os.getenv('CONTEXT_SNIPPET_LENGTH', '200')),
                                   query_timeout=float(os.getenv('CONTEXT_QUERY_TIMEOUT', '10.0')),
                                   max_workers=int(os.getenv('CONTEXT_MAX_WORKERS', '6')))

    agent_config = AgentConfig(owner_name=os.getenv('AGENT_OWNER_NAME', 'Amy'),
                               unread_batch_size=int(os.getenv('AGENT_UNREAD_BATCH_SIZE', '20')),
                               sent_lookback_hours=int(os.getenv('AGENT_SENT_LOOKBACK_HOURS', '24')),
                               decision_cache_size=int(os.getenv('AGENT_DECISION_CACHE_SIZE', '1000')),
                               decision_cache_ttl=int(os.getenv('AGENT_DECISION_CACHE_TTL', '86400')),
                               outbox_max_attempts=int(os.getenv('AGENT_OUTBOX_MAX_ATTEMPTS', '5')))

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'sse'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     bedrock_llm=bedrock_llm_config,
                     bedrock_embed=bedrock_embed_config,
                     opensearch=opensearch_config,
                     vector_store=vector_store_config,
                     memory=memory_config,
                     ingestion=ingestion_config,
                     context=context_config,
                     agent=agent_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()
