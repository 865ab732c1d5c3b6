"""
Memory Management Service for namespaced record storage and retrieval.
"""

import uuid
from typing import Any, Dict, List, Optional, Union

from ..models.core import Namespace, PatternSource, SearchResult, TextRecord, VoicePattern
from ..utils.bedrock_embed import BedrockEmbed, InvalidInputError
from ..utils.config import AppConfig, config
from ..utils.logging_config import get_logger
from ..utils.text_utils import content_hash, truncate
from ..utils.timestamp_utils import to_iso
from ..utils.vector_store import InMemoryVectorStore, VectorStore

logger = get_logger(__name__)

# Generic query used to pull the most representative voice patterns
VOICE_STYLE_QUERY = 'email communication style tone voice'


def create_vector_store(app_config: AppConfig) -> VectorStore:
    """Build the configured vector store backend."""
    backend = app_config.vector_store.backend.lower()
    if backend == 'memory':
        return InMemoryVectorStore()
    if backend == 'opensearch':
        from ..utils.opensearch_client import OpenSearchVectorStore
        return OpenSearchVectorStore(app_config.opensearch)
    raise ValueError(f'Unknown vector store backend: {app_config.vector_store.backend}')


def to_namespace(namespace: Union[Namespace, str]) -> Namespace:
    """Coerce a namespace name into the enum, rejecting unknown names as caller errors."""
    if isinstance(namespace, Namespace):
        return namespace
    try:
        return Namespace(namespace)
    except ValueError:
        raise InvalidInputError(f'Unknown namespace: {namespace}')


class MemoryManagementService:
    """Unified service for storing and retrieving records across namespaces.

    Embedding and store errors propagate unchanged so that callers can tell a
    quota stop (BedrockEmbed QuotaExceededError) from an unavailable store
    (StoreUnavailableError) and apply their own failure policy.
    """

    def __init__(self,
                 app_config: Optional[AppConfig] = None,
                 store: Optional[VectorStore] = None,
                 embed: Optional[BedrockEmbed] = None):
        """Initialize the memory management service."""
        self.config = app_config or config
        self.store = store or create_vector_store(self.config)
        self.embed = embed or BedrockEmbed(self.config.bedrock_embed)
        self.max_text_length = self.config.memory.max_text_length

        logger.info('Initialized MemoryManagementService')

    def store_record(self,
                     namespace: Union[Namespace, str],
                     text: str,
                     metadata: Optional[Dict[str, Any]] = None,
                     record_id: Optional[str] = None) -> str:
        """Embed and store a text record.

        The text is truncated before embedding so the stored copy and its
        vector always describe the same content.

        Args:
            namespace: Target namespace
            text: Raw content
            metadata: Open key-value metadata
            record_id: Explicit id, defaults to a hash of the stored text

        Returns:
            The id of the stored record
        """
        namespace = to_namespace(namespace)
        stored_text = truncate(text, self.max_text_length)
        embedding = self.embed.embed_document(stored_text)

        record_id = record_id or f'{namespace.value}-{content_hash(stored_text)}'
        record_metadata = {'timestamp': to_iso(), **(metadata or {})}
        self.store.upsert(namespace, TextRecord(id=record_id, namespace=namespace, text=stored_text, embedding=embedding,
                                                metadata=record_metadata))

        logger.debug(f'Stored record {record_id} in {namespace.value}')
        return record_id

    def store_conversation(self,
                           email_id: str,
                           subject: str,
                           sender: str,
                           body: str,
                           timestamp: str,
                           summary: str = '') -> str:
        """Index an email so it can be recalled as conversation history."""
        search_text = f'Subject: {subject}\nFrom: {sender}\n{body}'
        metadata = {'subject': subject, 'from': sender, 'timestamp': timestamp, 'summary': summary}
        record_id = self.store_record(Namespace.CONVERSATIONS, search_text, metadata, record_id=email_id)
        logger.info(f'Stored conversation: {email_id}')
        return record_id

    def search(self,
               namespace: Union[Namespace, str],
               query_text: str,
               top_k: int,
               metadata_filter: Optional[Dict[str, Any]] = None) -> List[SearchResult]:
        """Embed query_text and rank records of one namespace against it."""
        namespace = to_namespace(namespace)
        query_vector = self.embed.embed_query(query_text)
        return self.store.query(namespace, query_vector, top_k, metadata_filter)

    def get_conversation_history(self, contact_email: str, limit: int = 5) -> List[SearchResult]:
        """Retrieve past conversations with a contact."""
        return self.search(Namespace.CONVERSATIONS, contact_email, limit, {'from': contact_email})

    def search_relevant_context(self, query: str, contact_email: str, limit: int = 3) -> List[SearchResult]:
        """Search the contact's conversations for content related to query."""
        return self.search(Namespace.CONVERSATIONS, query, limit, {'from': contact_email})

    def _voice_pattern_id(self, pattern: VoicePattern) -> str:
        if self.config.memory.deduplicate_voice_patterns:
            return f'voice-{pattern.source.value}-{content_hash(pattern.pattern)}'
        return f'voice-{pattern.source.value}-{uuid.uuid4().hex[:16]}'

    def store_voice_pattern(self, pattern: VoicePattern, merge_frequency: bool = True) -> str:
        """Store a voice pattern in the voice namespace.

        With deduplication enabled the id is derived from the normalised
        pattern text. A repeat of a known pattern then bumps its frequency
        (reusing the stored vector) when merge_frequency is set, or simply
        overwrites it otherwise, which keeps bulk re-ingestion idempotent.

        Args:
            pattern: Pattern to store
            merge_frequency: Add to the frequency of an existing identical pattern

        Returns:
            The id of the stored pattern
        """
        pattern_id = self._voice_pattern_id(pattern)
        frequency = pattern.frequency
        embedding = None
        stored_text = truncate(pattern.pattern, self.max_text_length)

        if merge_frequency and self.config.memory.deduplicate_voice_patterns:
            existing = self.store.get(Namespace.VOICE, pattern_id)
            if existing is not None:
                frequency += int(existing.metadata.get('frequency', 1))
                # The stored vector belongs to the first wording, so that wording is kept
                embedding = existing.embedding
                stored_text = existing.text
                logger.debug(f'Voice pattern {pattern_id} seen again, frequency now {frequency}')

        if embedding is None:
            # Embed the full pattern; only the stored copy is truncated
            embedding = self.embed.embed_document(pattern.pattern)

        metadata = {
            **pattern.metadata,
            'pattern': stored_text,
            'frequency': frequency,
            'context': pattern.context,
            'source': pattern.source.value,
            'active': True,
            'timestamp': to_iso(),
        }
        self.store.upsert(Namespace.VOICE, TextRecord(id=pattern_id, namespace=Namespace.VOICE, text=stored_text,
                                                      embedding=embedding, metadata=metadata))

        logger.info(f'Stored voice pattern: {pattern_id}')
        return pattern_id

    def get_voice_patterns(self,
                           limit: int = 10,
                           source: Optional[PatternSource] = None,
                           query_text: Optional[str] = None) -> List[SearchResult]:
        """Get voice patterns for draft generation.

        Args:
            limit: Maximum number of patterns
            source: Restrict to patterns learned from this source
            query_text: Rank by similarity to this text instead of the generic style query
        """
        metadata_filter = {'source': source.value} if source else None
        return self.search(Namespace.VOICE, query_text or VOICE_STYLE_QUERY, limit, metadata_filter)

    def delete_records(self, namespace: Union[Namespace, str], ids: List[str]) -> None:
        """Delete records by id; missing ids are ignored."""
        namespace = to_namespace(namespace)
        self.store.delete(namespace, ids)
        logger.debug(f'Deleted {len(ids)} records from {namespace.value}')
