"""
Health check utilities for the memory engine's external collaborators and backends.
"""

from typing import Any, Dict

from .logging_config import get_logger

logger = get_logger(__name__)


def _components(memory) -> Dict[str, Any]:
    store = memory.store
    extractor = memory.coordinator.extractor
    return {
        'bedrock_llm': getattr(extractor, 'llm', None),
        'bedrock_embed': memory.embedder,
        'metadata_store': store.metadata_store,
        'vector_store': store.vector_store,
    }


def get_health_status(memory) -> Dict[str, Any]:
    """Get detailed health status of every component that exposes ``health_check()``.

    Args:
        memory: LongTermMemory instance to inspect

    Returns:
        Dictionary with health status of each component
    """
    health_status = {}

    for name, component in _components(memory).items():
        check = getattr(component, 'health_check', None)
        if check is None:
            continue

        service = type(component).__name__
        try:
            health_status[name] = {'healthy': bool(check()), 'service': service}
        except Exception as e:
            health_status[name] = {'healthy': False, 'service': service, 'error': str(e)}

    return health_status


def check_health(memory) -> bool:
    """Check the health of all system components.

    Returns:
        True if all components are healthy, False otherwise
    """
    try:
        health_status = get_health_status(memory)
        all_healthy = all(status.get('healthy', False) for status in health_status.values())

        if all_healthy:
            logger.info('All system components are healthy')
        else:
            unhealthy = [name for name, status in health_status.items() if not status.get('healthy')]
            logger.warning(f'Unhealthy components: {", ".join(unhealthy)}')

        return all_healthy

    except Exception as e:
        logger.error(f'Health check failed: {e}')
        return False
