import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ...application.ports.cache_store import CacheStore

logger = logging.getLogger(__name__)


class RedisCacheStore(CacheStore):
    """Single long-lived async Redis connection pool shared by the whole process."""

    # INCR then EXPIRE only when this call created the key, so concurrent
    # increments can never restart the window.
    _INCR_WITH_TTL_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
  redis.call('EXPIRE', KEYS[1], tonumber(ARGV[1]))
end
return count
"""

    _COMPARE_AND_DELETE_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
  return redis.call('DEL', KEYS[1])
end
return 0
"""

    def __init__(self, url: str, *, socket_timeout: float = 5.0, client: Optional[aioredis.Redis] = None) -> None:
        self.client = client or aioredis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        self._incr_with_ttl = self.client.register_script(self._INCR_WITH_TTL_SCRIPT)
        self._compare_and_delete = self.client.register_script(self._COMPARE_AND_DELETE_SCRIPT)

    async def set_ex(self, key: str, ttl_seconds: int, value: str) -> None:
        await self.client.setex(key, ttl_seconds, value)

    async def set(self, key: str, value: str) -> None:
        await self.client.set(key, value)

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def delete(self, key: str) -> int:
        return int(await self.client.delete(key))

    async def incr_with_ttl(self, key: str, ttl_seconds: int) -> int:
        count = await self._incr_with_ttl(keys=[key], args=[ttl_seconds])
        return int(count)

    async def ttl(self, key: str) -> int:
        return int(await self.client.ttl(key))

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        deleted = await self._compare_and_delete(keys=[key], args=[expected])
        return int(deleted) == 1

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("Redis client disconnected")
