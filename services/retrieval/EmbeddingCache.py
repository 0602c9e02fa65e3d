"""Embedding cache.

Maps a normalized query to its vector under a provider namespace, so vectors
of different providers or models never share a key. Every read is validated
before it is returned; anything that is not a list of exactly D finite
numbers counts as a miss and is deleted. Cache failures of any kind degrade
to a miss or a no-op and are never raised to the caller.
"""

import json
import math

from redis.exceptions import RedisError

from shared.clients.cache.CacheClientRedis import CacheClientRedis
from shared.helper.HelperCacheKeys import hash_query
from shared.helper.HelperConfig import HelperConfig

KEY_PREFIX = "qv"


class EmbeddingCache:
    def __init__(
        self,
        helper_config: HelperConfig,
        cache_client: CacheClientRedis,
        namespace: str,
        dimension: int,
        ttl_seconds: int = 3600,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._cache = cache_client
        self._namespace = namespace
        self._dimension = dimension
        self._ttl = ttl_seconds
        self._hits = 0
        self._misses = 0

    ##########################################
    ################ GETTER ##################
    ##########################################

    def is_enabled(self) -> bool:
        return self._cache.is_enabled()

    def make_key(self, query: str) -> str:
        return f"{KEY_PREFIX}:{self._namespace}:{hash_query(query)}"

    def is_valid_vector(self, value) -> bool:
        if not isinstance(value, list) or len(value) != self._dimension:
            return False
        # bool is an int subclass but never a vector component
        return all(
            isinstance(x, (int, float)) and not isinstance(x, bool) and math.isfinite(x)
            for x in value
        )

    ##########################################
    ############### READ/WRITE ###############
    ##########################################

    async def get(self, query: str) -> list[float] | None:
        """Return the cached vector for a query, or None on a miss.

        A returned vector always has exactly the configured dimension and only finite components.
        """
        key = self.make_key(query)
        try:
            raw = await self._cache.get(key)
        except UnicodeDecodeError:
            return await self._drop_corrupted(key)
        except (RedisError, OSError) as e:
            self.logging.warning("Embedding cache read failed for key %s: %s", key, e)
            self._misses += 1
            return None

        if raw is None:
            self._misses += 1
            return None

        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            value = None
        if not self.is_valid_vector(value):
            return await self._drop_corrupted(key)

        self._hits += 1
        return [float(x) for x in value]

    async def set(self, query: str, vector: list[float]) -> None:
        """Store a vector. Invalid vectors are never written; failures are logged and dropped."""
        if not self.is_valid_vector(vector):
            self.logging.warning("Refusing to cache an invalid vector for namespace %s.", self._namespace)
            return
        key = self.make_key(query)
        try:
            await self._cache.setex(key, self._ttl, json.dumps(vector))
        except (RedisError, OSError, TypeError, ValueError) as e:
            self.logging.warning("Embedding cache write failed for key %s: %s", key, e)

    async def _drop_corrupted(self, key: str) -> None:
        self.logging.warning("Corrupted embedding cache entry %s, deleting it.", key)
        self._misses += 1
        try:
            await self._cache.delete(key)
        except (RedisError, OSError) as e:
            self.logging.warning("Could not delete corrupted cache entry %s: %s", key, e)

    ##########################################
    ############ MAINTENANCE #################
    ##########################################

    async def invalidate_provider(self, namespace: str | None = None) -> int:
        """Delete every cached vector of a provider namespace (default: this cache's own)."""
        pattern = f"{KEY_PREFIX}:{namespace or self._namespace}:*"
        try:
            deleted = await self._cache.delete_pattern(pattern)
        except (RedisError, OSError) as e:
            self.logging.warning("Embedding cache invalidation failed for %s: %s", pattern, e)
            return 0
        self.logging.info("Invalidated %d embedding cache keys matching %s.", deleted, pattern)
        return deleted

    def get_metrics(self) -> dict:
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "total": total,
            "hit_rate": (self._hits / total) if total else 0.0,
        }

    def reset_metrics(self) -> None:
        self._hits = 0
        self._misses = 0

    async def get_stats(self) -> dict:
        """Metrics plus the number of keys currently stored for this namespace."""
        stats = {"enabled": self.is_enabled(), "namespace": self._namespace, "key_count": 0, "metrics": self.get_metrics()}
        try:
            stats["key_count"] = len(await self._cache.scan_keys(f"{KEY_PREFIX}:{self._namespace}:*"))
        except (RedisError, OSError) as e:
            self.logging.warning("Embedding cache stats unavailable: %s", e)
        return stats
