"""
Amazon Neptune metadata backend using the Gremlin Python driver with AWS SigV4 authentication.

Each memory is a ``Memory`` vertex whose properties mirror the record fields. Timestamps are
stored as epoch seconds so decay and range queries can compare them numerically; metadata is
stored as a JSON string.
"""

import json
from datetime import datetime
from functools import wraps
from typing import Any, Dict, List, Optional, Sequence

from boto3 import Session
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest
from gremlin_python.driver.aiohttp.transport import AiohttpTransport
from gremlin_python.driver.driver_remote_connection import DriverRemoteConnection
from gremlin_python.process.anonymous_traversal import traversal
from gremlin_python.process.graph_traversal import __
from gremlin_python.process.traversal import Cardinality, P

from ..models.core import MemoryRecord, MemoryType, SearchFilter
from ..models.namespace import Namespace
from ..utils.config import NeptuneConfig
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import to_datetime, utc_now

logger = get_logger(__name__)

MEMORY_LABEL = 'Memory'


class NeptuneError(Exception):
    """Custom exception for Neptune errors."""
    pass


def retry_on_connection_error(func):
    """Decorator to retry Neptune operations once after reconnecting a closed transport."""

    @wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except Exception as e:
            if 'cannot write to closing transport' in str(e).lower():
                logger.warning(f'Connection error detected: {e}. Reconnecting...')
                self.close()
                self._connect()
                try:
                    return func(self, *args, **kwargs)
                except Exception as retry_e:
                    logger.error(f'Error in {func.__name__}: {retry_e}')
                    raise NeptuneError(f'Failed to {func.__name__}: {retry_e}')
            else:
                logger.error(f'Error in {func.__name__}: {e}')
                raise NeptuneError(f'Failed to {func.__name__}: {e}')

    return wrapper


def _first(data: Dict[Any, Any], key: str, default: Any = None) -> Any:
    """Unwrap a value_map entry, which Gremlin returns as a single-element list."""
    value = data.get(key, default)
    if isinstance(value, list):
        return value[0] if value else default
    return value


def _epoch(value: datetime) -> float:
    return value.timestamp()


class NeptuneMetadataStore:
    """Metadata store backed by Memory vertices in Amazon Neptune."""

    def __init__(self, config: NeptuneConfig, traversal_source=None):
        """
        Initialize the store and connect to Neptune.

        Args:
            config: NeptuneConfig instance with connection parameters
            traversal_source: Optional pre-built graph traversal source
        """
        self.config = config
        self.connection = None
        self.g = traversal_source
        if self.g is None:
            self._connect()
            logger.info(f'Connected to Neptune at {config.endpoint}')

    def _connect(self):
        """Establish connection to Neptune."""
        conn_string = f'wss://{self.config.endpoint}:{self.config.port}/gremlin'

        credentials = Session().get_credentials()
        if credentials is None:
            raise NeptuneError('No AWS credentials found')
        creds = credentials.get_frozen_credentials()

        region = Session().region_name or self.config.region or 'us-east-1'

        # Sign the websocket handshake
        request = AWSRequest(method='GET', url=conn_string, data=None)
        SigV4Auth(creds, 'neptune-db', region).add_auth(request)

        self.connection = DriverRemoteConnection(conn_string,
                                                 'g',
                                                 headers=request.headers.items(),
                                                 transport_factory=lambda: AiohttpTransport(call_from_event_loop=True))
        self.g = traversal().with_remote(self.connection)

    def close(self):
        """Close the Neptune connection."""
        if self.connection is not None:
            self.connection.close()
            self.connection = None

    def _memories(self):
        return self.g.V().has_label(MEMORY_LABEL)

    def _upsert(self, record: MemoryRecord):
        t = self.g.V().has(MEMORY_LABEL, 'id', record.id).fold()\
            .coalesce(__.unfold(), __.add_v(MEMORY_LABEL).property('id', record.id))\
            .property(Cardinality.single, 'namespace', record.namespace_path or '')\
            .property(Cardinality.single, 'content', record.content)\
            .property(Cardinality.single, 'type', record.type.name if record.type else '')\
            .property(Cardinality.single, 'importance', float(record.importance))\
            .property(Cardinality.single, 'access_count', int(record.access_count))\
            .property(Cardinality.single, 'decay_factor', float(record.decay_factor))\
            .property(Cardinality.single, 'created_at', _epoch(record.created_at))\
            .property(Cardinality.single, 'session_id', record.session_id or '')\
            .property(Cardinality.single, 'metadata', json.dumps(record.metadata, default=str))

        if record.last_accessed_at is not None:
            t = t.property(Cardinality.single, 'last_accessed_at', _epoch(record.last_accessed_at))
        else:
            t = t.side_effect(__.properties('last_accessed_at').drop())
        return t

    @staticmethod
    def _to_record(data: Dict[Any, Any]) -> MemoryRecord:
        """Build a MemoryRecord from a ``value_map(True)`` result."""
        type_name = _first(data, 'type', '')
        last_accessed = _first(data, 'last_accessed_at')
        namespace_path = _first(data, 'namespace', '')
        metadata = _first(data, 'metadata', '') or '{}'

        return MemoryRecord(id=_first(data, 'id', ''),
                            namespace=Namespace.from_path(namespace_path) if namespace_path else None,
                            content=_first(data, 'content', ''),
                            type=MemoryType.parse(type_name) if type_name else None,
                            importance=float(_first(data, 'importance', 0.5)),
                            access_count=int(float(_first(data, 'access_count', 0))),
                            decay_factor=float(_first(data, 'decay_factor', 1.0)),
                            created_at=to_datetime(_first(data, 'created_at', 0)),
                            last_accessed_at=to_datetime(last_accessed) if last_accessed is not None else None,
                            session_id=_first(data, 'session_id') or None,
                            metadata=json.loads(metadata))

    def _to_records(self, rows: List[Dict[Any, Any]]) -> List[MemoryRecord]:
        return [self._to_record(row) for row in rows]

    @retry_on_connection_error
    def save(self, record: MemoryRecord) -> None:
        self._upsert(record).iterate()
        logger.debug(f'Saved memory vertex: {record.id}')

    @retry_on_connection_error
    def save_all(self, records: Sequence[MemoryRecord]) -> None:
        for record in records:
            self._upsert(record).iterate()
        logger.debug(f'Saved {len(records)} memory vertices')

    @retry_on_connection_error
    def find_by_id(self, record_id: str) -> Optional[MemoryRecord]:
        rows = self._memories().has('id', record_id).value_map(True).to_list()
        return self._to_record(rows[0]) if rows else None

    @retry_on_connection_error
    def find_by_ids(self, record_ids: Sequence[str]) -> List[MemoryRecord]:
        if not record_ids:
            return []
        rows = self._memories().has('id', P.within(list(record_ids))).value_map(True).to_list()
        return self._to_records(rows)

    @retry_on_connection_error
    def find_by_namespace(self, namespace_path: str) -> List[MemoryRecord]:
        rows = self._memories().has('namespace', namespace_path).value_map(True).to_list()
        return self._to_records(rows)

    @retry_on_connection_error
    def find_by_namespace_with_filter(self,
                                      namespace_path: str,
                                      search_filter: Optional[SearchFilter] = None) -> List[MemoryRecord]:
        t = self._memories().has('namespace', namespace_path)
        if search_filter is not None:
            if search_filter.types:
                t = t.has('type', P.within([memory_type.name for memory_type in search_filter.types]))
            if search_filter.min_importance is not None:
                t = t.has('importance', P.gte(float(search_filter.min_importance)))
            if search_filter.min_decay_factor is not None:
                t = t.has('decay_factor', P.gte(float(search_filter.min_decay_factor)))
            if search_filter.created_after is not None:
                t = t.has('created_at', P.gte(_epoch(search_filter.created_after)))
            if search_filter.created_before is not None:
                t = t.has('created_at', P.lte(_epoch(search_filter.created_before)))
        return self._to_records(t.value_map(True).to_list())

    @retry_on_connection_error
    def delete(self, record_id: str) -> bool:
        existing = self._memories().has('id', record_id).count().next()
        if not existing:
            return False
        self._memories().has('id', record_id).drop().iterate()
        logger.debug(f'Deleted memory vertex: {record_id}')
        return True

    @retry_on_connection_error
    def delete_by_namespace(self, namespace_path: str) -> int:
        count = self._memories().has('namespace', namespace_path).count().next()
        if count:
            self._memories().has('namespace', namespace_path).drop().iterate()
        return int(count)

    @retry_on_connection_error
    def record_access(self, record_ids: Sequence[str], accessed_at: Optional[datetime] = None) -> None:
        if not record_ids:
            return
        accessed_at = accessed_at or utc_now()
        self._memories().has('id', P.within(list(record_ids)))\
            .property(Cardinality.single, 'access_count', __.values('access_count').math('_ + 1'))\
            .property(Cardinality.single, 'last_accessed_at', _epoch(accessed_at))\
            .iterate()

    @retry_on_connection_error
    def update_decay_factor(self, record_id: str, decay_factor: float) -> None:
        self._memories().has('id', record_id)\
            .property(Cardinality.single, 'decay_factor', float(decay_factor))\
            .iterate()

    @retry_on_connection_error
    def find_all(self) -> List[MemoryRecord]:
        return self._to_records(self._memories().value_map(True).to_list())

    @retry_on_connection_error
    def find_decayed(self, namespace_path: str, threshold: float) -> List[MemoryRecord]:
        rows = self._memories().has('namespace', namespace_path)\
            .has('decay_factor', P.lt(float(threshold)))\
            .value_map(True).to_list()
        return self._to_records(rows)

    @retry_on_connection_error
    def find_all_decayed(self, threshold: float) -> List[MemoryRecord]:
        rows = self._memories().has('decay_factor', P.lt(float(threshold))).value_map(True).to_list()
        return self._to_records(rows)

    @retry_on_connection_error
    def count(self, namespace_path: str) -> int:
        return int(self._memories().has('namespace', namespace_path).count().next())

    @retry_on_connection_error
    def count_by_type(self, namespace_path: str, memory_type: MemoryType) -> int:
        return int(self._memories().has('namespace', namespace_path).has('type', memory_type.name).count().next())

    @retry_on_connection_error
    def count_all(self) -> int:
        return int(self._memories().count().next())

    def health_check(self) -> bool:
        try:
            self.g.V().limit(1).count().next()
            return True
        except Exception as e:
            logger.error(f'Neptune health check failed: {e}')
            return False
