"""
MCP Interface Layer using fastmcp to expose long-term memory to agents.
"""

from typing import Dict, List, Optional, Tuple

from fastmcp import FastMCP

from .models.core import MemoryType
from .models.namespace import Namespace
from .services.long_term_memory import LongTermMemory, build_long_term_memory
from .services.maintenance import DecayMaintenance
from .utils.config import config
from .utils.logging_config import get_logger

logger = get_logger(__name__)

mcp = FastMCP('DecayMem')

_memory: Optional[LongTermMemory] = None


def get_memory() -> LongTermMemory:
    """Lazily build the shared LongTermMemory from configuration."""
    global _memory
    if _memory is None:
        _memory = build_long_term_memory(config)
    return _memory


def set_memory(memory: Optional[LongTermMemory]) -> None:
    global _memory
    _memory = memory


def _user_namespace(user_id: str) -> Namespace:
    if not user_id or not user_id.strip():
        raise ValueError('User ID is required')
    return get_memory().namespace_template.resolve_for_user(user_id.strip())


def recall_user_memories(user_id: str, query: str, top_k: int = 10) -> List[Tuple[str, str]]:
    namespace = _user_namespace(user_id)
    if not query or not query.strip():
        return []

    memories = get_memory().recall(query, top_k=top_k, namespace=namespace)
    result = [(memory.id, memory.content) for memory in memories]

    logger.debug(f'MCP recall returned {len(result)} memories for user {user_id}')
    return result


def remember_for_user(user_id: str, content: str, memory_type: str = 'FACT', importance: Optional[float] = None) -> str:
    namespace = _user_namespace(user_id)
    record = get_memory().add_memory(content, MemoryType.parse(memory_type), importance, namespace=namespace)
    if record is None:
        raise ValueError('Memory content is required')
    return record.id


def forget_user_memories(user_id: str) -> int:
    namespace = _user_namespace(user_id)
    return get_memory().store.delete_by_namespace(namespace)


def run_maintenance() -> Dict[str, int]:
    return DecayMaintenance(get_memory().store).run_once()


@mcp.tool()
def recall_memories(user_id: str, query: str, top_k: int = 10) -> List[Tuple[str, str]]:
    """Recall a user's most relevant long-term memories.

    Args:
        user_id: User ID
        query: Natural language query
        top_k: Maximum number of results to return (default: 10)

    Returns:
        List of tuples (memory_id, content)
    """
    return recall_user_memories(user_id, query, top_k)


@mcp.tool()
def remember(user_id: str, content: str, memory_type: str = 'FACT', importance: Optional[float] = None) -> str:
    """Store a memory for a user.

    Args:
        user_id: User ID
        content: Memory text
        memory_type: FACT, PREFERENCE, GOAL, EPISODE or RELATIONSHIP
        importance: Optional weight in [0, 1]; defaults to the type's importance

    Returns:
        The new memory ID
    """
    return remember_for_user(user_id, content, memory_type, importance)


@mcp.tool()
def forget_user(user_id: str) -> int:
    """Delete every memory stored for a user. Returns the number removed."""
    return forget_user_memories(user_id)


@mcp.tool()
def run_decay_maintenance() -> Dict[str, int]:
    """Recompute decay factors and remove memories that decayed below the threshold."""
    return run_maintenance()


if __name__ == '__main__':
    mcp.run(transport=config.mcp.transport, host=config.mcp.host, port=config.mcp.port)
