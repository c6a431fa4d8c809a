"""
OpenSearch k-NN vector backend for memory embeddings.

Documents are indexed without a caller-supplied ``_id`` (Serverless vector collections assign
their own) and carry the memory record id in a keyword ``id`` field. Lookups, candidate filters
and deletes all go through that field.
"""

import time
from typing import List, Optional, Sequence

import boto3
from opensearchpy import OpenSearch, RequestsHttpConnection
from opensearchpy.exceptions import OpenSearchException
from opensearchpy.helpers import bulk
from requests_aws4auth import AWS4Auth

from ..exceptions import InvalidArgumentError, SizeMismatchError
from ..models.core import VectorSearchResult
from ..utils.config import OpenSearchConfig
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

# Lucene supports a filter inside the knn clause (pre-filtered, still returns k hits)
KNN_ENGINE = 'lucene'


class OpenSearchError(Exception):
    """Custom exception for OpenSearch errors."""
    pass


def score_to_cosine(score: float) -> float:
    """Invert the Lucene cosinesimil score ``(1 + cos) / 2`` back to cosine similarity."""
    return max(-1.0, min(1.0, 2.0 * score - 1.0))


class OpenSearchVectorStore:
    """Stores one document per record id holding only its embedding."""

    def __init__(self, config: OpenSearchConfig, client: Optional[OpenSearch] = None, index_sync_wait: float = 15.0):
        """
        Initialize the OpenSearch vector store and ensure its index exists.

        Args:
            config: OpenSearchConfig instance with connection parameters
            client: Optional pre-built OpenSearch client
            index_sync_wait: Seconds to wait after creating the index
        """
        self.config = config
        self.index_name = config.index_name
        self.dimension = config.dimension
        self.index_sync_wait = index_sync_wait
        self.client = client or self._build_client(config)

        self.create_index_if_not_exists()
        logger.info(f'Initialized OpenSearch vector store for index: {self.index_name}')

    @staticmethod
    def _build_client(config: OpenSearchConfig) -> OpenSearch:
        credentials = boto3.Session().get_credentials()
        auth = AWS4Auth(region=config.region, service='aoss', refreshable_credentials=credentials)

        endpoint = config.endpoint
        if '://' in endpoint:
            endpoint = endpoint.split('://', 1)[1]

        return OpenSearch(hosts=[{
            'host': endpoint,
            'port': config.port
        }],
                          http_auth=auth,
                          use_ssl=True,
                          verify_certs=True,
                          connection_class=RequestsHttpConnection)

    def create_index_if_not_exists(self) -> str:
        """
        Create the k-NN index if missing.

        Returns:
            'exists', 'created' or 'failed'
        """
        try:
            if self.client.indices.exists(index=self.index_name):
                logger.debug(f'Index {self.index_name} already exists')
                return 'exists'

            index_body = {
                'mappings': {
                    'properties': {
                        'id': {
                            'type': 'keyword'
                        },
                        'embedding': {
                            'type': 'knn_vector',
                            'dimension': self.dimension,
                            'method': {
                                'name': 'hnsw',
                                'space_type': 'cosinesimil',
                                'engine': KNN_ENGINE,
                                'parameters': {
                                    'ef_construction': 128,
                                    'm': 16
                                }
                            }
                        }
                    }
                },
                'settings': {
                    'index': {
                        'knn': True
                    }
                }
            }

            response = self.client.indices.create(index=self.index_name, body=index_body)
            if not response.get('acknowledged', False):
                return 'failed'

            logger.info(f'Created index {self.index_name}, waiting {self.index_sync_wait}s for sync-up')
            if self.index_sync_wait:
                time.sleep(self.index_sync_wait)
            return 'created'

        except OpenSearchException as e:
            logger.error(f'Error creating index {self.index_name}: {e}')
            raise OpenSearchError(f'Failed to create index: {e}')

    def _validate(self, embedding: Sequence[float]) -> List[float]:
        if len(embedding) != self.dimension:
            raise InvalidArgumentError(f'Embedding dimension {len(embedding)} does not match configured {self.dimension}')
        return [float(value) for value in embedding]

    def save(self, record_id: str, embedding: Sequence[float]) -> None:
        document = {'id': record_id, 'embedding': self._validate(embedding)}
        # Replace any earlier document for this record
        self.delete_all([record_id])
        try:
            self.client.index(index=self.index_name, body=document)
            logger.debug(f'Indexed embedding for {record_id}')
        except OpenSearchException as e:
            logger.error(f'Error indexing embedding {record_id}: {e}')
            raise OpenSearchError(f'Failed to index embedding: {e}')

    def save_all(self, record_ids: Sequence[str], embeddings: Sequence[Sequence[float]]) -> None:
        if len(record_ids) != len(embeddings):
            raise SizeMismatchError('Record ids and embeddings must have same size')
        if not record_ids:
            return

        actions = [{
            '_index': self.index_name,
            '_source': {
                'id': record_id,
                'embedding': self._validate(embedding)
            }
        } for record_id, embedding in zip(record_ids, embeddings)]

        self.delete_all(record_ids)
        try:
            success, errors = bulk(self.client, actions, raise_on_error=False)
        except OpenSearchException as e:
            logger.error(f'Error bulk indexing {len(actions)} embeddings: {e}')
            raise OpenSearchError(f'Failed to bulk index embeddings: {e}')

        if errors:
            raise OpenSearchError(f'Failed to index {len(errors)} of {len(actions)} embeddings')
        logger.debug(f'Bulk indexed {success} embeddings')

    def search(self,
               query_embedding: Sequence[float],
               top_k: int,
               candidate_ids: Optional[Sequence[str]] = None) -> List[VectorSearchResult]:
        """
        k-NN search, restricted to candidate_ids when given.

        Returns:
            Results ordered by descending cosine similarity
        """
        if top_k <= 0:
            return []

        knn_query = {'vector': [float(value) for value in query_embedding], 'k': top_k}
        if candidate_ids:
            knn_query['filter'] = {'terms': {'id': list(candidate_ids)}}

        search_body = {
            'size': top_k,
            'query': {
                'knn': {
                    'embedding': knn_query
                }
            },
            '_source': {
                'excludes': ['embedding']
            }
        }

        try:
            response = self.client.search(index=self.index_name, body=search_body)
        except OpenSearchException as e:
            logger.error(f'Error performing vector search: {e}')
            raise OpenSearchError(f'Vector search failed: {e}')

        results = [
            VectorSearchResult(id=hit['_source']['id'], similarity=score_to_cosine(float(hit['_score'])))
            for hit in response['hits']['hits']
        ]
        results.sort(key=lambda result: result.similarity, reverse=True)

        logger.debug(f'Vector search returned {len(results)} results')
        return results[:top_k]

    def delete(self, record_id: str) -> None:
        self.delete_all([record_id])

    def delete_all(self, record_ids: Sequence[str]) -> None:
        """Delete every document stored for record_ids; ids with no document are skipped."""
        if not record_ids:
            return

        doc_ids = self._document_ids(record_ids)
        if not doc_ids:
            logger.debug(f'No embeddings found for {len(record_ids)} record ids')
            return

        actions = [{'_op_type': 'delete', '_index': self.index_name, '_id': doc_id} for doc_id in doc_ids]
        try:
            _, errors = bulk(self.client, actions, raise_on_error=False)
        except OpenSearchException as e:
            logger.error(f'Error deleting {len(doc_ids)} embeddings: {e}')
            raise OpenSearchError(f'Failed to delete embeddings: {e}')

        # A document already gone comes back as a 404 item
        failed = [item for item in errors if item.get('delete', {}).get('status') != 404]
        if failed:
            raise OpenSearchError(f'Failed to delete {len(failed)} of {len(doc_ids)} embeddings')
        logger.debug(f'Deleted {len(doc_ids)} embeddings')

    def _document_ids(self, record_ids: Sequence[str]) -> List[str]:
        search_body = {
            'size': len(record_ids),
            'query': {
                'terms': {
                    'id': list(record_ids)
                }
            },
            '_source': ['id']
        }
        try:
            response = self.client.search(index=self.index_name, body=search_body)
        except OpenSearchException as e:
            logger.error(f'Error looking up embeddings for deletion: {e}')
            raise OpenSearchError(f'Failed to look up embeddings: {e}')
        return [hit['_id'] for hit in response['hits']['hits']]

    def count(self) -> int:
        try:
            return int(self.client.count(index=self.index_name)['count'])
        except OpenSearchException as e:
            logger.error(f'Error counting embeddings: {e}')
            raise OpenSearchError(f'Failed to count embeddings: {e}')

    def health_check(self) -> bool:
        try:
            self.client.indices.exists(index=self.index_name)
            return True
        except Exception as e:
            logger.error(f'OpenSearch health check failed: {e}')
            return False
