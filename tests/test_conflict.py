"""
Unit tests for conflict strategy parsing and the resolver hook.
"""

from unittest.mock import MagicMock

import pytest

from decaymem.models.core import MemoryRecord
from decaymem.services.conflict import ConflictStrategy, apply_conflict_resolution


@pytest.mark.parametrize('value,expected', [
    ('newest_wins', ConflictStrategy.NEWEST_WINS),
    (' MERGE ', ConflictStrategy.MERGE),
    ('importance_based', ConflictStrategy.IMPORTANCE_BASED),
    ('newest_with_merge', ConflictStrategy.NEWEST_WITH_MERGE),
    ('', ConflictStrategy.NONE),
    (None, ConflictStrategy.NONE),
    ('coin_flip', ConflictStrategy.NONE),
])
def test_parse(value, expected):
    assert ConflictStrategy.parse(value) is expected


def test_none_strategy_passes_records_through():
    resolver = MagicMock()
    records = [MemoryRecord.create('a'), MemoryRecord.create('b')]

    assert apply_conflict_resolution(records, ConflictStrategy.NONE, resolver) == records
    resolver.resolve.assert_not_called()


def test_missing_resolver_passes_records_through():
    records = [MemoryRecord.create('a')]
    assert apply_conflict_resolution(records, ConflictStrategy.MERGE) == records


def test_resolver_output_is_used():
    records = [MemoryRecord.create('old'), MemoryRecord.create('new')]
    resolver = MagicMock()
    resolver.resolve.return_value = records[1:]

    assert apply_conflict_resolution(records, ConflictStrategy.NEWEST_WINS, resolver) == records[1:]
    resolver.resolve.assert_called_once_with(records, ConflictStrategy.NEWEST_WINS)
