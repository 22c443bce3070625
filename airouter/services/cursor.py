"""
Round-robin cursors keyed by organization and capability.
"""
import threading
from typing import Dict, Optional, Protocol

from airouter.core.cache import RedisCache, round_robin_cache_key
from airouter.core.logger import get_logger

logger = get_logger(__name__)


class RoundRobinCursor(Protocol):
    async def next(self, organization_id: str, capability: str) -> int:
        """Return the current position and advance it by one."""
        ...

    async def peek(self, organization_id: str, capability: str) -> int:
        """Return the position ``next`` would hand out, without advancing."""
        ...


class InMemoryCursor:
    """Process-local counters, advanced atomically under a lock."""

    def __init__(self):
        self._positions: Dict[str, int] = {}
        self._lock = threading.Lock()

    async def next(self, organization_id: str, capability: str) -> int:
        return self.next_sync(organization_id, capability)

    async def peek(self, organization_id: str, capability: str) -> int:
        return self.peek_sync(organization_id, capability)

    def next_sync(self, organization_id: str, capability: str) -> int:
        key = round_robin_cache_key(organization_id, capability)
        with self._lock:
            position = self._positions.get(key, 0)
            self._positions[key] = position + 1
            return position

    def peek_sync(self, organization_id: str, capability: str) -> int:
        key = round_robin_cache_key(organization_id, capability)
        with self._lock:
            return self._positions.get(key, 0)


class RedisCursor:
    """
    Cursor shared across worker processes through Redis ``INCR``.

    Falls back to a local counter while Redis is unavailable.
    """

    def __init__(self, cache: RedisCache, fallback: Optional[InMemoryCursor] = None):
        self.cache = cache
        self.fallback = fallback or InMemoryCursor()

    async def next(self, organization_id: str, capability: str) -> int:
        key = round_robin_cache_key(organization_id, capability)
        value = await self.cache.increment(key)
        if value is None:
            logger.debug("Round-robin cursor using local fallback", key=key)
            return self.fallback.next_sync(organization_id, capability)
        return value - 1

    async def peek(self, organization_id: str, capability: str) -> int:
        if not self.cache.available:
            return self.fallback.peek_sync(organization_id, capability)
        # The stored counter is the number of positions already handed out
        value = await self.cache.get(round_robin_cache_key(organization_id, capability))
        return int(value or 0)
