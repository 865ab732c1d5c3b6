"""
Namespaced vector store contract and an in-process backend.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np

from ..models.core import Namespace, SearchResult, TextRecord
from .logging_config import get_logger
from .timestamp_utils import now_millis

logger = get_logger(__name__)


class StoreUnavailableError(Exception):
    """Custom exception for vector store errors."""
    pass


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity, 0.0 when either vector has zero norm."""
    denominator = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denominator == 0.0:
        return 0.0
    return float(np.dot(a, b) / denominator)


def matches_filter(metadata: Dict[str, Any], metadata_filter: Optional[Dict[str, Any]]) -> bool:
    """Equality predicate over metadata fields; a missing field never matches."""
    if not metadata_filter:
        return True
    return all(key in metadata and metadata[key] == value for key, value in metadata_filter.items())


def rank_results(candidates: Iterable[Tuple[float, int, SearchResult]], top_k: int) -> List[SearchResult]:
    """Order (score, written_at, result) by score, most recent write first among ties."""
    ordered = sorted(candidates, key=lambda item: (-item[0], -item[1]))
    return [result for _, _, result in ordered[:top_k]]


class VectorStore(ABC):
    """Vector storage partitioned into namespaces.

    Any backend failure surfaces as StoreUnavailableError.
    """

    @abstractmethod
    def upsert(self, namespace: Namespace, record: TextRecord) -> None:
        """Insert or overwrite a record by id within a namespace."""

    @abstractmethod
    def get(self, namespace: Namespace, record_id: str) -> Optional[TextRecord]:
        """Fetch a record by id, or None when absent."""

    @abstractmethod
    def query(self,
              namespace: Namespace,
              query_vector: List[float],
              top_k: int,
              metadata_filter: Optional[Dict[str, Any]] = None) -> List[SearchResult]:
        """Rank records by cosine similarity to query_vector, best first."""

    @abstractmethod
    def delete(self, namespace: Namespace, ids: List[str]) -> None:
        """Delete records by id. Missing ids are ignored."""

    def health_check(self) -> bool:
        return True


class InMemoryVectorStore(VectorStore):
    """Process-local vector store for development and tests.

    Reads see every completed write immediately.
    """

    def __init__(self):
        self._records: Dict[Namespace, Dict[str, Tuple[TextRecord, np.ndarray, int]]] = {}
        self._sequence = 0
        self._lock = threading.Lock()
        logger.info('Initialized in-memory vector store')

    def _next_sequence(self) -> int:
        # Monotonic even when two writes land in the same millisecond
        self._sequence = max(self._sequence + 1, now_millis())
        return self._sequence

    def upsert(self, namespace: Namespace, record: TextRecord) -> None:
        if not record.embedding:
            raise StoreUnavailableError(f'Record {record.id} has no embedding')

        with self._lock:
            bucket = self._records.setdefault(namespace, {})
            bucket[record.id] = (record, np.asarray(record.embedding, dtype=float), self._next_sequence())
        logger.debug(f'Upserted {record.id} into {namespace.value}')

    def get(self, namespace: Namespace, record_id: str) -> Optional[TextRecord]:
        with self._lock:
            entry = self._records.get(namespace, {}).get(record_id)
        return entry[0] if entry else None

    def query(self,
              namespace: Namespace,
              query_vector: List[float],
              top_k: int,
              metadata_filter: Optional[Dict[str, Any]] = None) -> List[SearchResult]:
        vector = np.asarray(query_vector, dtype=float)
        with self._lock:
            entries = list(self._records.get(namespace, {}).values())

        candidates = []
        for record, embedding, written_at in entries:
            if not matches_filter(record.metadata, metadata_filter):
                continue
            if embedding.shape != vector.shape:
                raise StoreUnavailableError(f'Dimension mismatch in {namespace.value}: {embedding.shape} vs {vector.shape}')
            score = cosine_similarity(vector, embedding)
            candidates.append((score, written_at, SearchResult(id=record.id, score=score, metadata=dict(record.metadata),
                                                               text=record.text)))

        results = rank_results(candidates, top_k)
        logger.debug(f'In-memory query on {namespace.value} returned {len(results)} results')
        return results

    def delete(self, namespace: Namespace, ids: List[str]) -> None:
        with self._lock:
            bucket = self._records.get(namespace, {})
            for record_id in ids:
                bucket.pop(record_id, None)

    def count(self, namespace: Namespace) -> int:
        with self._lock:
            return len(self._records.get(namespace, {}))
