"""
Unit tests for the periodic decay sweep.
"""

import time
from datetime import timedelta

from decaymem.models.core import MemoryRecord, MemoryType
from decaymem.models.namespace import Namespace
from decaymem.services.maintenance import DecayMaintenance
from decaymem.utils.timestamp_utils import utc_now

from conftest import EMBEDDING_DIMENSION

ALICE = Namespace.for_user('alice')
VECTOR = [1.0] + [0.0] * (EMBEDDING_DIMENSION - 1)


def stale_record(days):
    return MemoryRecord(content=f'{days} days old', namespace=ALICE, type=MemoryType.EPISODE,
                        last_accessed_at=utc_now() - timedelta(days=days))


def test_run_once_updates_and_removes(store):
    fresh = MemoryRecord.create('fresh', ALICE, MemoryType.EPISODE)
    somewhat = stale_record(10)
    ancient = stale_record(100)
    store.save_all([fresh, somewhat, ancient], [VECTOR] * 3)

    result = DecayMaintenance(store).run_once()

    assert result == {'updated': 2, 'removed': 1}
    assert store.find_by_id(ancient.id) is None
    assert store.find_by_id(somewhat.id).decay_factor < 1.0
    assert store.find_by_id(fresh.id).decay_factor == 1.0


def test_background_loop_runs_until_stopped(store, memory_config):
    memory_config.decay_check_interval_hours = 0.01 / 3600
    store.save(stale_record(100), VECTOR)
    maintenance = DecayMaintenance(store)

    maintenance.start()
    try:
        assert maintenance.is_running
        deadline = time.monotonic() + 2
        while store.count_all() and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        maintenance.stop()

    assert store.count_all() == 0
    assert not maintenance.is_running
