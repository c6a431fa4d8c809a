"""
Unit tests for NeptuneMetadataStore row parsing and traversal wiring, with a mocked traversal source.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from decaymem.models.core import MemoryRecord, MemoryType
from decaymem.models.namespace import Namespace
from decaymem.stores.neptune_metadata_store import NeptuneError, NeptuneMetadataStore, retry_on_connection_error
from decaymem.utils.config import NeptuneConfig

CREATED = datetime(2025, 5, 1, tzinfo=timezone.utc)
ACCESSED = datetime(2025, 5, 20, tzinfo=timezone.utc)


def vertex_row(**overrides):
    row = {
        'id': ['m1'],
        'namespace': ['user/alice'],
        'content': ['Likes coffee'],
        'type': ['PREFERENCE'],
        'importance': [0.8],
        'access_count': [3],
        'decay_factor': [0.9],
        'created_at': [CREATED.timestamp()],
        'last_accessed_at': [ACCESSED.timestamp()],
        'session_id': ['s1'],
        'metadata': ['{"raw_record_id": "r1"}'],
    }
    row.update(overrides)
    return row


@pytest.fixture
def g():
    return MagicMock()


@pytest.fixture
def metadata_store(g):
    return NeptuneMetadataStore(NeptuneConfig(endpoint='neptune.example.com', port=8182, region='us-east-1'),
                                traversal_source=g)


def test_to_record_parses_value_map():
    record = NeptuneMetadataStore._to_record(vertex_row())

    assert record.id == 'm1'
    assert record.namespace == Namespace.for_user('alice')
    assert record.type is MemoryType.PREFERENCE
    assert record.importance == 0.8
    assert record.access_count == 3
    assert record.decay_factor == 0.9
    assert record.created_at == CREATED
    assert record.last_accessed_at == ACCESSED
    assert record.session_id == 's1'
    assert record.metadata == {'raw_record_id': 'r1'}


def test_to_record_handles_empty_optionals():
    row = vertex_row(type=[''], session_id=[''], metadata=[''])
    del row['last_accessed_at']

    record = NeptuneMetadataStore._to_record(row)

    assert record.type is None
    assert record.session_id is None
    assert record.last_accessed_at is None
    assert record.metadata == {}


def test_find_by_id(metadata_store, g):
    g.V().has_label().has().value_map().to_list.return_value = [vertex_row()]

    record = metadata_store.find_by_id('m1')

    assert record.content == 'Likes coffee'
    g.V().has_label.assert_called_with('Memory')


def test_find_by_id_missing(metadata_store, g):
    g.V().has_label().has().value_map().to_list.return_value = []
    assert metadata_store.find_by_id('missing') is None


def test_find_by_ids_empty_skips_query(metadata_store, g):
    assert metadata_store.find_by_ids([]) == []
    g.V.assert_not_called()


def test_delete_unknown_id(metadata_store, g):
    g.V().has_label().has().count().next.return_value = 0

    assert metadata_store.delete('missing') is False
    g.V().has_label().has().drop.assert_not_called()


def test_delete_existing_id(metadata_store, g):
    g.V().has_label().has().count().next.return_value = 1

    assert metadata_store.delete('m1') is True
    g.V().has_label().has().drop().iterate.assert_called_once()


def test_delete_by_namespace_returns_count(metadata_store, g):
    g.V().has_label().has().count().next.return_value = 5
    assert metadata_store.delete_by_namespace('user/alice') == 5


def test_counts(metadata_store, g):
    g.V().has_label().count().next.return_value = 9
    g.V().has_label().has().count().next.return_value = 4

    assert metadata_store.count_all() == 9
    assert metadata_store.count('user/alice') == 4


def test_record_access_empty_is_noop(metadata_store, g):
    metadata_store.record_access([])
    g.V.assert_not_called()


def test_save_upserts_vertex(metadata_store, g):
    metadata_store.save(MemoryRecord.create('Likes tea', Namespace.for_user('alice'), MemoryType.PREFERENCE))

    g.V().has.assert_called()
    assert g.V().has.call_args[0][0] == 'Memory'


def test_traversal_errors_are_wrapped(metadata_store, g):
    g.V().has_label().count().next.side_effect = RuntimeError('server unavailable')

    with pytest.raises(NeptuneError, match='count_all'):
        metadata_store.count_all()


def test_health_check(metadata_store, g):
    assert metadata_store.health_check() is True
    g.V().limit().count().next.side_effect = RuntimeError('down')
    assert metadata_store.health_check() is False


class Dummy:

    def __init__(self, failures):
        self.failures = failures
        self.calls = 0
        self.reconnects = 0

    def close(self):
        pass

    def _connect(self):
        self.reconnects += 1

    @retry_on_connection_error
    def query(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError('Cannot write to closing transport')
        return 'ok'


def test_retry_reconnects_on_closed_transport():
    dummy = Dummy(failures=1)

    assert dummy.query() == 'ok'
    assert dummy.reconnects == 1
    assert dummy.calls == 2


def test_retry_gives_up_after_second_failure():
    dummy = Dummy(failures=2)

    with pytest.raises(NeptuneError):
        dummy.query()
    assert dummy.reconnects == 1
