# tests/test_memory_management.py
#
# Tests for namespaced storage: truncation, ids, voice pattern merging and
# error propagation.

import pytest

from voicememory.models.core import Namespace, PatternSource, VoicePattern
from voicememory.services.memory_management import create_vector_store, to_namespace
from voicememory.utils.bedrock_embed import InvalidInputError, QuotaExceededError
from voicememory.utils.vector_store import InMemoryVectorStore


class TestStoreRecord:
    """Generic record storage."""

    def test_text_is_truncated_before_embedding(self, app_config, memory, store, embed):
        """Stored text and the embedded text are the same truncated string."""
        app_config.memory.max_text_length = 20
        memory.max_text_length = 20

        record_id = memory.store_record(Namespace.NOTES, 'a' * 30 + ' tail words')

        record = store.get(Namespace.NOTES, record_id)
        assert record.text == 'a' * 20
        assert embed.calls[-1] == 'a' * 20

    def test_default_id_is_content_addressed(self, memory, store):
        first = memory.store_record('notes', 'Alice prefers calls on Tuesdays')
        second = memory.store_record('notes', 'Alice prefers calls on Tuesdays')

        assert first == second
        assert first.startswith('notes-')
        assert store.count(Namespace.NOTES) == 1

    def test_metadata_gets_timestamp(self, memory, store):
        record_id = memory.store_record(Namespace.NOTES, 'Renewal due in March', {'contact': 'alice@x.com'})

        metadata = store.get(Namespace.NOTES, record_id).metadata
        assert metadata['contact'] == 'alice@x.com'
        assert 'timestamp' in metadata

    def test_unknown_namespace_is_invalid_input(self, memory):
        with pytest.raises(InvalidInputError):
            memory.store_record('calendar', 'anything')

    def test_embedding_errors_propagate(self, memory, embed):
        embed.failures['quota'] = QuotaExceededError('quota exhausted')

        with pytest.raises(QuotaExceededError):
            memory.store_record(Namespace.NOTES, 'this will hit the quota')


class TestConversations:
    """Conversation history lookups are filtered by sender."""

    def test_history_only_returns_contact_messages(self, memory):
        memory.store_conversation('m1', 'Pricing', 'alice@x.com', 'Can we talk pricing?', '2024-01-01T00:00:00Z')
        memory.store_conversation('m2', 'Hiring', 'bob@x.com', 'Are you hiring?', '2024-01-02T00:00:00Z')

        history = memory.get_conversation_history('alice@x.com', limit=5)

        assert [r.id for r in history] == ['m1']
        assert history[0].metadata['subject'] == 'Pricing'
        assert history[0].metadata['timestamp'] == '2024-01-01T00:00:00Z'

    def test_relevant_context_is_ranked_by_query(self, memory):
        memory.store_conversation('m1', 'Pricing', 'alice@x.com', 'pricing tiers and discounts', '')
        memory.store_conversation('m2', 'Offsite', 'alice@x.com', 'team offsite venue ideas', '')

        results = memory.search_relevant_context('pricing tiers discounts', 'alice@x.com', limit=1)

        assert [r.id for r in results] == ['m1']


class TestVoicePatterns:
    """Voice pattern ids, frequency merging and truncation."""

    def _pattern(self, text='Happy to take a look'):
        return VoicePattern(pattern=text, source=PatternSource.EMAIL_EDIT, context='draft:d1 sent:s1')

    def test_repeat_pattern_bumps_frequency_without_reembedding(self, memory, store, embed):
        first = memory.store_voice_pattern(self._pattern())
        second = memory.store_voice_pattern(self._pattern('  happy TO take a look '))

        assert first == second
        assert store.get(Namespace.VOICE, first).metadata['frequency'] == 2
        assert len(embed.calls) == 1

    def test_merged_pattern_keeps_the_text_its_vector_was_built_from(self, memory, store, embed):
        first = VoicePattern(pattern='Happy to help!!! Really', source=PatternSource.MANUAL, context='manual')
        second = VoicePattern(pattern='happy to help really', source=PatternSource.MANUAL, context='manual')

        pattern_id = memory.store_voice_pattern(first)
        before = store.get(Namespace.VOICE, pattern_id).embedding
        assert memory.store_voice_pattern(second) == pattern_id

        record = store.get(Namespace.VOICE, pattern_id)
        assert embed.calls == ['Happy to help!!! Really']
        assert record.text == 'Happy to help!!! Really'
        assert record.metadata['pattern'] == 'Happy to help!!! Really'
        assert record.embedding == before
        assert record.metadata['frequency'] == 2

    def test_without_merge_repeat_overwrites(self, memory, store):
        pattern_id = memory.store_voice_pattern(self._pattern(), merge_frequency=False)
        memory.store_voice_pattern(self._pattern(), merge_frequency=False)

        assert store.get(Namespace.VOICE, pattern_id).metadata['frequency'] == 1
        assert store.count(Namespace.VOICE) == 1

    def test_dedup_disabled_keeps_every_pattern(self, app_config, memory, store):
        app_config.memory.deduplicate_voice_patterns = False

        memory.store_voice_pattern(self._pattern())
        memory.store_voice_pattern(self._pattern())

        assert store.count(Namespace.VOICE) == 2

    def test_long_pattern_is_embedded_whole_but_stored_truncated(self, memory, store, embed):
        memory.max_text_length = 20
        text = 'Happy to walk through the rollout plan together next week'

        pattern_id = memory.store_voice_pattern(self._pattern(text))

        record = store.get(Namespace.VOICE, pattern_id)
        assert embed.calls == [text]
        assert record.text == text[:20]
        assert record.metadata['pattern'] == text[:20]

    def test_pattern_metadata(self, memory, store):
        pattern_id = memory.store_voice_pattern(self._pattern())

        metadata = store.get(Namespace.VOICE, pattern_id).metadata
        assert metadata['source'] == 'email-edit'
        assert metadata['context'] == 'draft:d1 sent:s1'
        assert metadata['active'] is True

    def test_source_filter(self, memory):
        memory.store_voice_pattern(self._pattern('Happy to help with that'))
        memory.store_voice_pattern(VoicePattern(pattern='Why this matters for teams', source=PatternSource.LINKEDIN,
                                                context='LinkedIn post'))

        results = memory.get_voice_patterns(limit=10, source=PatternSource.LINKEDIN)

        assert [r.metadata['source'] for r in results] == ['linkedin']


class TestHelpers:
    """Backend selection and namespace coercion."""

    def test_memory_backend(self, app_config):
        assert isinstance(create_vector_store(app_config), InMemoryVectorStore)

    def test_unknown_backend(self, app_config):
        app_config.vector_store.backend = 'redis'

        with pytest.raises(ValueError):
            create_vector_store(app_config)

    def test_to_namespace_accepts_values(self):
        assert to_namespace('knowledgeBase') == Namespace.KNOWLEDGE_BASE
        assert to_namespace(Namespace.NOTES) == Namespace.NOTES
