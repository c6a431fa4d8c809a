"""
Exponential relevance decay: ``decay = e^(-rate * days_since_last_access)``.

All functions are pure; ``now`` may be passed explicitly for deterministic sweeps.
"""

import math
from datetime import datetime
from typing import Optional

from ..exceptions import InvalidArgumentError
from ..models.core import MemoryRecord
from ..utils.timestamp_utils import utc_now, whole_days_between

DEFAULT_DECAY_RATE = 0.02


def calculate_decay(last_accessed: Optional[datetime], rate: float, now: Optional[datetime] = None) -> float:
    """Decay factor in [0, 1] for a record last accessed at last_accessed.

    Elapsed time is counted in whole days, so anything accessed within the last
    24 hours keeps a factor of 1.0. Records never accessed are not decayed.
    """
    if last_accessed is None:
        return 1.0
    days = whole_days_between(last_accessed, now or utc_now())
    return math.exp(-rate * days)


def decay_for_record(record: MemoryRecord, now: Optional[datetime] = None) -> float:
    if record is None:
        return 1.0
    rate = record.decay_rate if record.decay_rate is not None else DEFAULT_DECAY_RATE
    return calculate_decay(record.last_accessed_at, rate, now)


def half_life_days(rate: float) -> float:
    """Days for the decay factor to halve at the given daily rate."""
    if rate <= 0:
        raise InvalidArgumentError(f'Decay rate must be positive, got {rate}')
    return math.log(2) / rate


def decay_rate_for_half_life(days: float) -> float:
    """Daily rate that halves the decay factor every `days` days."""
    if days <= 0:
        raise InvalidArgumentError(f'Half-life must be positive, got {days}')
    return math.log(2) / days


def days_until_threshold(rate: float, threshold: float) -> float:
    """Days until the decay factor falls to threshold."""
    if not 0 < threshold < 1:
        raise InvalidArgumentError(f'Threshold must be strictly between 0 and 1, got {threshold}')
    if rate <= 0:
        raise InvalidArgumentError(f'Decay rate must be positive, got {rate}')
    return -math.log(threshold) / rate
