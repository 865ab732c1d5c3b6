# tests/test_vector_store.py
#
# Tests for the in-process vector store: ranking, filters, ties and deletes.

import numpy as np
import pytest

from voicememory.models.core import Namespace, TextRecord
from voicememory.utils.vector_store import InMemoryVectorStore, StoreUnavailableError, cosine_similarity, matches_filter


def _record(record_id, embedding, namespace=Namespace.NOTES, text='', **metadata):
    return TextRecord(id=record_id, namespace=namespace, text=text or record_id, embedding=embedding, metadata=metadata)


class TestInMemoryQuery:
    """Similarity ranking within a namespace."""

    def test_stored_record_is_top_hit_for_its_own_vector(self):
        """Querying with a record's own embedding returns it first with score ~1."""
        store = InMemoryVectorStore()
        store.upsert(Namespace.NOTES, _record('a', [1.0, 0.0, 0.0]))
        store.upsert(Namespace.NOTES, _record('b', [0.0, 1.0, 0.0]))

        results = store.query(Namespace.NOTES, [1.0, 0.0, 0.0], top_k=2)

        assert [r.id for r in results] == ['a', 'b']
        assert results[0].score == pytest.approx(1.0)
        assert results[1].score == pytest.approx(0.0)

    def test_top_k_limits_results(self):
        store = InMemoryVectorStore()
        for i in range(5):
            store.upsert(Namespace.NOTES, _record(f'r{i}', [1.0, float(i)]))

        assert len(store.query(Namespace.NOTES, [1.0, 0.0], top_k=3)) == 3

    def test_ties_prefer_most_recent_write(self):
        """Equal scores come back newest first."""
        store = InMemoryVectorStore()
        store.upsert(Namespace.NOTES, _record('older', [0.5, 0.5]))
        store.upsert(Namespace.NOTES, _record('newer', [0.5, 0.5]))

        results = store.query(Namespace.NOTES, [1.0, 1.0], top_k=2)

        assert [r.id for r in results] == ['newer', 'older']

    def test_namespaces_are_isolated(self):
        store = InMemoryVectorStore()
        store.upsert(Namespace.NOTES, _record('note', [1.0, 0.0], namespace=Namespace.NOTES))

        assert store.query(Namespace.VOICE, [1.0, 0.0], top_k=5) == []

    def test_empty_namespace_returns_empty_list(self):
        assert InMemoryVectorStore().query(Namespace.CONVERSATIONS, [1.0], top_k=3) == []


class TestInMemoryFilters:
    """Metadata filters are applied before ranking."""

    def test_filter_restricts_candidates(self):
        store = InMemoryVectorStore()
        store.upsert(Namespace.CONVERSATIONS, _record('alice', [1.0, 0.0], namespace=Namespace.CONVERSATIONS, **{'from': 'alice@x.com'}))
        store.upsert(Namespace.CONVERSATIONS, _record('bob', [1.0, 0.0], namespace=Namespace.CONVERSATIONS, **{'from': 'bob@x.com'}))

        results = store.query(Namespace.CONVERSATIONS, [1.0, 0.0], top_k=5, metadata_filter={'from': 'bob@x.com'})

        assert [r.id for r in results] == ['bob']

    def test_record_missing_filter_key_never_matches(self):
        store = InMemoryVectorStore()
        store.upsert(Namespace.NOTES, _record('untagged', [1.0, 0.0]))

        assert store.query(Namespace.NOTES, [1.0, 0.0], top_k=5, metadata_filter={'contact': 'alice@x.com'}) == []

    def test_matches_filter_helper(self):
        assert matches_filter({'a': 1}, None)
        assert matches_filter({'a': 1, 'b': 2}, {'a': 1})
        assert not matches_filter({'a': 1}, {'a': 2})
        assert not matches_filter({}, {'a': 1})


class TestInMemoryWrites:
    """Upsert, delete and failure cases."""

    def test_upsert_overwrites_by_id(self):
        store = InMemoryVectorStore()
        store.upsert(Namespace.NOTES, _record('a', [1.0, 0.0], text='first'))
        store.upsert(Namespace.NOTES, _record('a', [0.0, 1.0], text='second'))

        assert store.count(Namespace.NOTES) == 1
        assert store.get(Namespace.NOTES, 'a').text == 'second'

    def test_delete_ignores_missing_ids(self):
        store = InMemoryVectorStore()
        store.upsert(Namespace.NOTES, _record('a', [1.0, 0.0]))

        store.delete(Namespace.NOTES, ['a', 'does-not-exist'])

        assert store.get(Namespace.NOTES, 'a') is None
        assert store.count(Namespace.NOTES) == 0

    def test_empty_embedding_is_rejected(self):
        with pytest.raises(StoreUnavailableError):
            InMemoryVectorStore().upsert(Namespace.NOTES, _record('a', []))

    def test_dimension_mismatch_raises(self):
        store = InMemoryVectorStore()
        store.upsert(Namespace.NOTES, _record('a', [1.0, 0.0, 0.0]))

        with pytest.raises(StoreUnavailableError):
            store.query(Namespace.NOTES, [1.0, 0.0], top_k=1)

    def test_zero_vector_scores_zero(self):
        assert cosine_similarity(np.zeros(3), np.ones(3)) == 0.0
