"""
Unit tests for MemoryType, MemoryRecord, SearchFilter and RawConversationRecord.
"""

import dataclasses
import math
from datetime import datetime, timedelta, timezone

import pytest

from decaymem.models.core import MemoryRecord, MemoryType, RawConversationRecord, SearchFilter
from decaymem.models.namespace import Namespace

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize('memory_type,importance,rate', [
    (MemoryType.FACT, 0.7, 0.02),
    (MemoryType.PREFERENCE, 0.8, 0.015),
    (MemoryType.GOAL, 0.9, 0.01),
    (MemoryType.EPISODE, 0.6, 0.05),
    (MemoryType.RELATIONSHIP, 0.75, 0.01),
])
def test_memory_type_defaults(memory_type, importance, rate):
    assert memory_type.default_importance == importance
    assert memory_type.decay_rate == rate
    assert memory_type.description


def test_memory_type_parse():
    assert MemoryType.parse('preference') is MemoryType.PREFERENCE
    assert MemoryType.parse(' Goal ') is MemoryType.GOAL
    assert MemoryType.parse('opinion') is MemoryType.FACT
    assert MemoryType.parse(None) is MemoryType.FACT
    assert MemoryType.parse(MemoryType.EPISODE) is MemoryType.EPISODE


def test_create_uses_type_default_importance():
    record = MemoryRecord.create('Prefers tea', Namespace.for_user('1'), MemoryType.PREFERENCE)

    assert record.importance == 0.8
    assert record.decay_factor == 1.0
    assert record.access_count == 0
    assert record.namespace_path == 'user/1'
    assert record.id


def test_create_without_type_defaults_importance():
    assert MemoryRecord.create('Something').importance == 0.5


def test_create_clamps_importance():
    assert MemoryRecord.create('x', importance=1.7).importance == 1.0
    assert MemoryRecord.create('x', importance=-0.2).importance == 0.0


def test_ids_are_unique():
    assert MemoryRecord.create('a').id != MemoryRecord.create('a').id


def test_records_are_immutable():
    record = MemoryRecord.create('x')
    with pytest.raises(dataclasses.FrozenInstanceError):
        record.access_count = 5


def test_effective_score_formula():
    record = MemoryRecord(content='x', importance=0.8, decay_factor=0.5, access_count=3)
    expected = 0.9 * 0.8 * 0.5 * (1 + 0.1 * math.log(4))
    assert record.effective_score(0.9) == pytest.approx(expected)


def test_access_increases_effective_score():
    record = MemoryRecord.create('x', importance=0.6)
    accessed = record.with_access(NOW)

    assert accessed.access_count == 1
    assert accessed.last_accessed_at == NOW
    assert accessed.effective_score(0.7) > record.effective_score(0.7)
    assert record.access_count == 0


def test_with_decay_clamps():
    record = MemoryRecord.create('x')
    assert record.with_decay(1.5).decay_factor == 1.0
    assert record.with_decay(0.25).decay_factor == 0.25


def test_with_metadata_copies():
    record = MemoryRecord.create('x', metadata={'source': 'chat'})
    updated = record.with_metadata(turn=3)

    assert updated.metadata == {'source': 'chat', 'turn': 3}
    assert record.metadata == {'source': 'chat'}


def test_to_dict():
    record = MemoryRecord.create('Lives in Paris', Namespace.for_user('7'), MemoryType.FACT, session_id='s1')
    data = record.to_dict()

    assert data['namespace'] == 'user/7'
    assert data['type'] == 'FACT'
    assert data['session_id'] == 's1'


def test_filter_absent_constraints_match():
    assert SearchFilter().matches(MemoryRecord.create('x'))


def test_filter_empty_types_treated_as_absent():
    assert SearchFilter(types=frozenset()).matches(MemoryRecord.create('x', memory_type=MemoryType.GOAL))


def test_filter_types():
    search_filter = SearchFilter.for_types([MemoryType.GOAL, MemoryType.FACT])

    assert search_filter.matches(MemoryRecord.create('x', memory_type=MemoryType.GOAL))
    assert not search_filter.matches(MemoryRecord.create('x', memory_type=MemoryType.EPISODE))
    assert not search_filter.matches(MemoryRecord.create('x'))


def test_filter_thresholds_are_and_combined():
    search_filter = SearchFilter(min_importance=0.5, min_decay_factor=0.3)

    assert search_filter.matches(MemoryRecord(content='x', importance=0.5, decay_factor=0.3))
    assert not search_filter.matches(MemoryRecord(content='x', importance=0.4, decay_factor=0.9))
    assert not search_filter.matches(MemoryRecord(content='x', importance=0.9, decay_factor=0.2))


def test_filter_creation_bounds():
    record = MemoryRecord(content='x', created_at=NOW)

    assert SearchFilter(created_after=NOW - timedelta(days=1), created_before=NOW + timedelta(days=1)).matches(record)
    assert not SearchFilter(created_after=NOW + timedelta(seconds=1)).matches(record)
    assert not SearchFilter(created_before=NOW - timedelta(seconds=1)).matches(record)


def test_raw_conversation_range_is_inclusive_and_clamped():
    messages = [{'role': 'user', 'content': str(i)} for i in range(5)]
    raw = RawConversationRecord(namespace_path='user/1', messages=messages)

    assert [m['content'] for m in raw.messages_in_range(1, 3)] == ['1', '2', '3']
    assert [m['content'] for m in raw.messages_in_range(-4, 1)] == ['0', '1']
    assert [m['content'] for m in raw.messages_in_range(3, 99)] == ['3', '4']
    assert raw.messages_in_range(4, 2) == []


def test_raw_conversation_expiry():
    raw = RawConversationRecord(namespace_path='user/1', messages=[], expires_at=NOW)

    assert not raw.is_expired(NOW)
    assert raw.is_expired(NOW + timedelta(seconds=1))
    assert not RawConversationRecord(namespace_path='user/1', messages=[]).is_expired(NOW)
