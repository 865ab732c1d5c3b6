"""
OpenSearch client wrapper for namespaced vector similarity search.
"""

import time
from typing import Any, Dict, List, Optional, Set

import boto3
from opensearchpy import OpenSearch, RequestsHttpConnection
from opensearchpy.exceptions import NotFoundError, OpenSearchException
from requests_aws4auth import AWS4Auth

from ..models.core import Namespace, SearchResult, TextRecord
from .config import OpenSearchConfig
from .logging_config import get_logger
from .timestamp_utils import now_millis
from .vector_store import StoreUnavailableError, VectorStore, rank_results

logger = get_logger(__name__)

# Serverless collections need a moment before a fresh index accepts writes
INDEX_SYNC_DELAY = 15

# Extra k-NN candidates so equal scores at the top_k cutoff still go to the newest write
TIE_CANDIDATE_MARGIN = 10


class OpenSearchVectorStore(VectorStore):
    """OpenSearch k-NN store with one index per namespace and AWS authentication."""

    def __init__(self, config: OpenSearchConfig, client: Optional[OpenSearch] = None):
        """
        Initialize OpenSearch client.

        Args:
            config: OpenSearchConfig instance with connection parameters
            client: Optional pre-built OpenSearch client
        """
        self.config = config
        self._ready_indexes: Set[str] = set()

        if client is None:
            # Get AWS credentials and create auth
            credentials = boto3.Session().get_credentials()
            auth = AWS4Auth(region=config.region, service=config.service, refreshable_credentials=credentials)
            endpoint = config.endpoint
            if '://' in endpoint:
                # Remove protocol if present
                endpoint = endpoint.split('://', 1)[1]

            client = OpenSearch(hosts=[{
                'host': endpoint,
                'port': config.port
            }],
                                http_auth=auth,
                                use_ssl=True,
                                verify_certs=True,
                                connection_class=RequestsHttpConnection)
        self.client = client

        logger.info(f'Initialized OpenSearch client for endpoint: {config.endpoint}')

    def index_name(self, namespace: Namespace) -> str:
        return f'{self.config.index_prefix}_{namespace.value.lower()}'

    def _index_body(self) -> Dict[str, Any]:
        return {
            'mappings': {
                'dynamic_templates': [{
                    'metadata_strings': {
                        'path_match': 'metadata.*',
                        'match_mapping_type': 'string',
                        'mapping': {
                            'type': 'keyword'
                        }
                    }
                }],
                'properties': {
                    'id': {
                        'type': 'keyword'
                    },
                    'namespace': {
                        'type': 'keyword'
                    },
                    'text': {
                        'type': 'text'
                    },
                    'metadata': {
                        'type': 'object',
                        'dynamic': True
                    },
                    'embedding': {
                        'type': 'knn_vector',
                        'dimension': self.config.dimension,
                        'method': {
                            'name': 'hnsw',
                            'space_type': 'cosinesimil',
                            'engine': 'lucene'
                        }
                    },
                    'indexed_at': {
                        'type': 'long'
                    }
                }
            },
            'settings': {
                'index': {
                    'knn': True
                }
            }
        }

    def create_index_if_not_exists(self, namespace: Namespace) -> str:
        """
        Create the index backing a namespace if it doesn't exist.

        Args:
            namespace: Namespace whose index should exist

        Returns:
            'exists', 'created' or 'failed'
        """
        index_name = self.index_name(namespace)
        if index_name in self._ready_indexes:
            return 'exists'

        try:
            if self.client.indices.exists(index=index_name):
                logger.debug(f'Index {index_name} already exists')
                self._ready_indexes.add(index_name)
                return 'exists'

            response = self.client.indices.create(index=index_name, body=self._index_body())
            logger.info(f'Created index {index_name}')
            if response.get('acknowledged', False):
                logger.info(f'Waiting {INDEX_SYNC_DELAY}s for index {index_name} sync-up...')
                time.sleep(INDEX_SYNC_DELAY)
                self._ready_indexes.add(index_name)
                return 'created'
            return 'failed'
        except OpenSearchException as e:
            logger.error(f'Error creating index {index_name}: {e}')
            raise StoreUnavailableError(f'Failed to create index: {e}')
        except Exception as e:
            logger.error(f'Unexpected error creating index {index_name}: {e}')
            raise StoreUnavailableError(f'Unexpected error creating index: {e}')

    def upsert(self, namespace: Namespace, record: TextRecord) -> None:
        """
        Index a record, overwriting any existing document with the same id.

        Raises:
            StoreUnavailableError: If OpenSearch rejects or fails the write
        """
        self.create_index_if_not_exists(namespace)
        index_name = self.index_name(namespace)
        document = {
            'id': record.id,
            'namespace': namespace.value,
            'text': record.text,
            'metadata': record.metadata,
            'embedding': record.embedding,
            'indexed_at': now_millis()
        }

        kwargs = {}
        # Serverless collections reject the refresh parameter
        if self.config.refresh_on_write and self.config.service != 'aoss':
            kwargs['refresh'] = 'wait_for'

        try:
            response = self.client.index(index=index_name, id=record.id, body=document, **kwargs)
        except OpenSearchException as e:
            logger.error(f'Error indexing {record.id} into {index_name}: {e}')
            raise StoreUnavailableError(f'Failed to index document: {e}')
        except Exception as e:
            logger.error(f'Unexpected error indexing document: {e}')
            raise StoreUnavailableError(f'Unexpected error indexing document: {e}')

        if response.get('result') not in ['created', 'updated']:
            logger.warning(f'Unexpected result indexing document: {response}')
            raise StoreUnavailableError(f"Indexing {record.id} returned {response.get('result')}")
        logger.debug(f"Indexed {record.id} in {index_name} ({response.get('result')})")

    def get(self, namespace: Namespace, record_id: str) -> Optional[TextRecord]:
        """Fetch a record by id, or None when it does not exist."""
        self.create_index_if_not_exists(namespace)
        index_name = self.index_name(namespace)
        try:
            response = self.client.get(index=index_name, id=record_id)
        except NotFoundError:
            return None
        except OpenSearchException as e:
            logger.error(f'Error getting document {record_id} from {index_name}: {e}')
            raise StoreUnavailableError(f'Failed to get document: {e}')
        except Exception as e:
            logger.error(f'Unexpected error getting document {record_id}: {e}')
            raise StoreUnavailableError(f'Unexpected error getting document: {e}')

        if not response.get('found', False):
            return None
        source = response['_source']
        return TextRecord(id=response['_id'],
                          namespace=namespace,
                          text=source.get('text', ''),
                          embedding=source.get('embedding', []),
                          metadata=source.get('metadata', {}))

    def query(self,
              namespace: Namespace,
              query_vector: List[float],
              top_k: int,
              metadata_filter: Optional[Dict[str, Any]] = None) -> List[SearchResult]:
        """
        Perform vector similarity search within a namespace.

        Args:
            namespace: Namespace to search
            query_vector: Query vector for similarity search
            top_k: Number of results to return
            metadata_filter: Equality predicate over metadata fields, applied before ranking

        Returns:
            Search results ordered by cosine similarity

        Raises:
            StoreUnavailableError: If the search fails
        """
        self.create_index_if_not_exists(namespace)
        index_name = self.index_name(namespace)

        candidates_k = top_k + TIE_CANDIDATE_MARGIN
        knn_clause: Dict[str, Any] = {'vector': query_vector, 'k': candidates_k}
        if metadata_filter:
            # Efficient k-NN filtering restricts candidates before scoring
            knn_clause['filter'] = {
                'bool': {
                    'must': [{
                        'term': {
                            f'metadata.{key}': value
                        }
                    } for key, value in metadata_filter.items()]
                }
            }

        search_body = {
            'size': candidates_k,
            'query': {
                'knn': {
                    'embedding': knn_clause
                }
            },
            '_source': {
                'excludes': ['embedding']  # Don't return embedding in results
            }
        }

        try:
            response = self.client.search(index=index_name, body=search_body)
        except OpenSearchException as e:
            logger.error(f'Error performing vector search on {index_name}: {e}')
            raise StoreUnavailableError(f'Vector search failed: {e}')
        except Exception as e:
            logger.error(f'Unexpected error in vector search: {e}')
            raise StoreUnavailableError(f'Unexpected error in vector search: {e}')

        candidates = []
        for hit in response['hits']['hits']:
            source = hit['_source']
            # Lucene reports cosine as (1 + cos) / 2
            score = 2.0 * float(hit['_score']) - 1.0
            result = SearchResult(id=hit['_id'], score=score, metadata=source.get('metadata', {}), text=source.get('text', ''))
            candidates.append((score, int(source.get('indexed_at', 0)), result))

        results = rank_results(candidates, top_k)
        logger.debug(f'Vector search on {index_name} returned {len(results)} results')
        return results

    def delete(self, namespace: Namespace, ids: List[str]) -> None:
        """
        Delete documents from a namespace. Missing ids are not an error.

        Raises:
            StoreUnavailableError: If a deletion fails for any other reason
        """
        index_name = self.index_name(namespace)
        for doc_id in ids:
            try:
                self.client.delete(index=index_name, id=doc_id)
                logger.debug(f'Deleted document {doc_id} from {index_name}')
            except NotFoundError:
                logger.debug(f'Document {doc_id} not found for deletion')
            except OpenSearchException as e:
                logger.error(f'Error deleting document {doc_id}: {e}')
                raise StoreUnavailableError(f'Failed to delete document: {e}')

    def cleanup(self) -> bool:
        """
        Delete every namespace index.

        Returns:
            True if cleanup was successful
        """
        try:
            for namespace in Namespace:
                index_name = self.index_name(namespace)
                if self.client.indices.exists(index=index_name):
                    self.client.indices.delete(index=index_name)
                    logger.info(f'Deleted index: {index_name}')
                else:
                    logger.info(f'Index {index_name} does not exist')
            self._ready_indexes.clear()
            return True

        except OpenSearchException as e:
            logger.error(f'Error during OpenSearch cleanup: {e}')
            raise StoreUnavailableError(f'Failed to cleanup OpenSearch: {e}')

    def health_check(self) -> bool:
        """
        Perform a health check on the OpenSearch service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            response = self.client.indices.exists(index=self.index_name(Namespace.VOICE))

            return response in [True, False]

        except Exception as e:
            logger.error(f'OpenSearch health check failed: {e}')
            return False
