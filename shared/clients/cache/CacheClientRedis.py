"""Key-value cache client over redis.asyncio.

One instance is constructed explicitly at startup and handed to every cache
that needs it. When CACHE_REDIS_URL is unset the client is disabled: reads
return nothing and writes are dropped.
"""

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.helper.HelperConfig import HelperConfig


class CacheClientRedis:
    def __init__(self, helper_config: HelperConfig, redis_client: redis.Redis | None = None):
        self.logging = helper_config.get_logger()
        self._url = helper_config.get_string_val("CACHE_REDIS_URL", default="")
        self._socket_timeout = helper_config.get_number_val("CACHE_TIMEOUT", default=2.0)
        self._redis: redis.Redis | None = redis_client

    ##########################################
    ################ GETTER ##################
    ##########################################

    def is_enabled(self) -> bool:
        return self._redis is not None or bool(self._url)

    ##########################################
    ############## LIFECYCLE #################
    ##########################################

    async def boot(self) -> None:
        """Create the connection pool and ping the server. A failed ping only logs a warning."""
        if self._redis is None and self._url:
            self._redis = redis.from_url(
                self._url,
                decode_responses=True,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_timeout,
            )
        if self._redis is None:
            self.logging.info("No CACHE_REDIS_URL configured, caching disabled.")
            return
        try:
            await self._redis.ping()
            self.logging.info("Redis cache connection established.")
        except (RedisError, OSError) as e:
            self.logging.warning("Redis ping failed, cache operations will degrade to misses: %s", e)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    ##########################################
    ############### COMMANDS #################
    ##########################################

    # Commands raise RedisError on connection problems; the caches decide how to degrade.

    async def get(self, key: str) -> str | None:
        if self._redis is None:
            return None
        return await self._redis.get(key)

    async def setex(self, key: str, ttl_seconds: int, value: str) -> None:
        if self._redis is None:
            return
        await self._redis.setex(key, int(ttl_seconds), value)

    async def delete(self, *keys: str) -> int:
        if self._redis is None or not keys:
            return 0
        return int(await self._redis.delete(*keys))

    async def scan_keys(self, pattern: str, count: int = 100) -> list[str]:
        """Collect all keys matching a glob pattern using SCAN, never KEYS."""
        if self._redis is None:
            return []
        return [key async for key in self._redis.scan_iter(match=pattern, count=count)]

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern. Returns the number of deleted keys."""
        keys = await self.scan_keys(pattern)
        if not keys:
            return 0
        return await self.delete(*keys)
