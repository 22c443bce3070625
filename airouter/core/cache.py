"""
Redis access for state shared between router workers.

Every operation degrades to a no-op result while Redis is disabled or
unreachable, so callers can fall back to process-local state.
"""
import json
from typing import Any, Awaitable, Callable, Optional, TypeVar

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from airouter.core.config import settings
from airouter.core.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RedisCache:
    """Thin wrapper over a pooled ``redis.asyncio`` client."""

    def __init__(self, url: Optional[str] = None, enabled: Optional[bool] = None):
        self.url = url or settings.redis_url
        self.enabled = settings.redis_enabled if enabled is None else enabled
        self.redis: Optional[aioredis.Redis] = None

    @property
    def available(self) -> bool:
        return self.enabled and self.redis is not None

    async def connect(self) -> None:
        if not self.enabled:
            logger.info("Redis disabled, using process-local routing state")
            return

        client = aioredis.from_url(
            self.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=10
        )
        try:
            await client.ping()
        except RedisError as e:
            logger.error("Redis unreachable, using process-local routing state", error=str(e))
            await client.aclose()
            self.enabled = False
            return

        self.redis = client
        logger.info("Redis connected")

    async def disconnect(self) -> None:
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None
            logger.info("Redis disconnected")

    async def _run(
        self,
        operation: str,
        key: str,
        call: Callable[[aioredis.Redis], Awaitable[T]],
        default: T
    ) -> T:
        if not self.available:
            return default
        try:
            return await call(self.redis)
        except RedisError as e:
            logger.warning("Redis operation failed", operation=operation, key=key, error=str(e))
            return default

    async def get(self, key: str) -> Optional[Any]:
        """JSON-decoded value stored at ``key``, or None."""
        raw = await self._run("get", key, lambda r: r.get(key), None)
        return json.loads(raw) if raw else None

    async def increment(self, key: str, amount: int = 1) -> Optional[int]:
        """
        Atomically add ``amount`` to the counter at ``key``.

        Returns:
            The new value, or None when Redis cannot be used
        """
        return await self._run("increment", key, lambda r: r.incrby(key, amount), None)


def round_robin_cache_key(organization_id: str, capability: str) -> str:
    return f"router:rr:{organization_id}:{capability}"
