"""
Periodic decay sweep and cleanup, run off the request path on a daemon thread.
"""

import threading
from typing import Dict, Optional

from ..utils.config import LongTermMemoryConfig
from ..utils.logging_config import get_logger
from .memory_management import MemoryStoreCoordinator

logger = get_logger(__name__)


class DecayMaintenance:
    """Runs ``update_decay`` then ``cleanup_decayed`` every ``decay_check_interval_hours``."""

    def __init__(self, store: MemoryStoreCoordinator, config: Optional[LongTermMemoryConfig] = None):
        self.store = store
        self.config = config or store.config
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> Dict[str, int]:
        """One sweep; returns the number of records updated and removed."""
        updated = self.store.update_decay()
        removed = self.store.cleanup_decayed(self.config.decay_threshold)
        expired_raw = self.store.cleanup_expired_raw_conversations()

        logger.info(f'Decay maintenance: updated={updated}, removed={removed}, expired_raw={expired_raw}')
        return {'updated': updated, 'removed': removed}

    def start(self) -> None:
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name='decay-maintenance', daemon=True)
        self._thread.start()
        logger.info(f'Started decay maintenance every {self.config.decay_check_interval_hours}h')

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info('Stopped decay maintenance')

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        while not self._stop_event.wait(self.config.decay_check_interval_seconds):
            try:
                self.run_once()
            except Exception as e:
                logger.error(f'Decay maintenance failed: {e}')
