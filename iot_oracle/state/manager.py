"""Redis-backed key/value and hash storage.

Values that are dicts, lists or booleans are stored as JSON and decoded on
read; strings are stored as given so callers can hand in documents they
have already serialized.
"""

import json
from typing import Any

import redis.asyncio as redis

from iot_oracle.config import get_settings
from iot_oracle.utils.logging import get_logger

logger = get_logger(__name__)


def _encode(value: Any) -> Any:
    if isinstance(value, (dict, list, bool)):
        return json.dumps(value)
    return value


def _decode(value: Any) -> Any:
    if not value:
        return None
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return value


class StateManager:
    """Thin async wrapper over one Redis database, connecting lazily."""

    def __init__(self, redis_url: str | None = None) -> None:
        self.redis_url = redis_url or get_settings().redis_url
        self.redis_client: redis.Redis | None = None

    async def connect(self) -> None:
        if self.redis_client is None:
            self.redis_client = await redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info("redis_connected", url=self.redis_url)

    async def disconnect(self) -> None:
        if self.redis_client:
            await self.redis_client.close()
            self.redis_client = None
            logger.info("redis_disconnected")

    async def _client(self) -> redis.Redis:
        if self.redis_client is None:
            await self.connect()
        return self.redis_client

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store a value, expiring it after ``ttl`` seconds when given."""
        client = await self._client()
        await client.set(key, _encode(value), ex=ttl or None)
        logger.debug("state_set", key=key, ttl=ttl)

    async def get(self, key: str) -> Any:
        client = await self._client()
        return _decode(await client.get(key))

    async def delete(self, key: str) -> None:
        client = await self._client()
        await client.delete(key)
        logger.debug("state_deleted", key=key)

    async def hset(self, key: str, field: str, value: Any) -> None:
        client = await self._client()
        await client.hset(key, field, _encode(value))

    async def hset_many(self, key: str, mapping: dict[str, str]) -> None:
        """Write several pre-encoded hash fields in one round trip."""
        if not mapping:
            return
        client = await self._client()
        await client.hset(key, mapping=mapping)

    async def hget(self, key: str, field: str) -> Any:
        client = await self._client()
        return _decode(await client.hget(key, field))

    async def hgetall(self, key: str) -> dict[str, Any]:
        client = await self._client()
        data = await client.hgetall(key)
        return {field: _decode(value) for field, value in data.items()}

    async def hdel(self, key: str, *fields: str) -> None:
        client = await self._client()
        await client.hdel(key, *fields)

    async def flush(self) -> None:
        """Drop every key in the database."""
        client = await self._client()
        await client.flushdb()
        logger.warning("redis_flushed", url=self.redis_url)


# Global state manager instance
_state_manager: StateManager | None = None


async def get_state_manager() -> StateManager:
    """Get the global state manager instance."""
    global _state_manager
    if _state_manager is None:
        _state_manager = StateManager()
        await _state_manager.connect()
    return _state_manager
