# tests/conftest.py
#
# Shared fixtures: an in-memory store and a deterministic bag-of-words
# embedder, so no test ever reaches Bedrock or OpenSearch.

import hashlib

import pytest

from voicememory.services.memory_management import MemoryManagementService
from voicememory.utils.bedrock_embed import InvalidInputError
from voicememory.utils.config import load_config
from voicememory.utils.vector_store import InMemoryVectorStore

DIMENSION = 64


def fake_vector(text):
    """Hash each lower-cased word into one of DIMENSION buckets."""
    vector = [0.0] * DIMENSION
    for word in text.lower().split():
        index = int(hashlib.md5(word.encode('utf-8')).hexdigest(), 16) % DIMENSION
        vector[index] += 1.0
    return vector


class FakeEmbed:
    """Stands in for BedrockEmbed. Texts containing a key of `failures` raise its error."""

    def __init__(self):
        self.calls = []
        self.failures = {}

    def embed(self, text, input_type='search_document'):
        if not text or not text.strip():
            raise InvalidInputError('Empty text provided for embedding')
        self.calls.append(text)
        for marker, error in self.failures.items():
            if marker in text:
                raise error
        return fake_vector(text)

    def embed_document(self, text):
        return self.embed(text, 'search_document')

    def embed_query(self, text):
        return self.embed(text, 'search_query')


@pytest.fixture
def app_config():
    """Fresh config per test with no pacing delays."""
    cfg = load_config()
    cfg.vector_store.backend = 'memory'
    cfg.memory.max_text_length = 1000
    cfg.memory.deduplicate_voice_patterns = True
    cfg.ingestion.document_delay = 0.0
    cfg.ingestion.error_delay = 0.0
    cfg.ingestion.min_document_length = 50
    cfg.context.snippet_length = 200
    cfg.context.query_timeout = 10.0
    cfg.agent.owner_name = 'Amy'
    cfg.agent.outbox_max_attempts = 5
    return cfg


@pytest.fixture
def store():
    return InMemoryVectorStore()


@pytest.fixture
def embed():
    return FakeEmbed()


@pytest.fixture
def memory(app_config, store, embed):
    return MemoryManagementService(app_config=app_config, store=store, embed=embed)
