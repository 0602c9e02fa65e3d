"""Retrieval cache.

Holds complete retrieval results per (document, normalized query). Entries
expire by TTL and are purged explicitly whenever their document is
re-ingested or deleted. Failures degrade to a miss or a no-op.
"""

from pydantic import ValidationError
from redis.exceptions import RedisError

from shared.clients.cache.CacheClientRedis import CacheClientRedis
from shared.helper.HelperCacheKeys import hash_query
from shared.helper.HelperConfig import HelperConfig
from shared.models.retrieval import RetrievalResult

KEY_PREFIX = "rag:query"


class RetrievalCache:
    def __init__(self, helper_config: HelperConfig, cache_client: CacheClientRedis, ttl_seconds: int = 1800) -> None:
        self.logging = helper_config.get_logger()
        self._cache = cache_client
        self._ttl = ttl_seconds

    def is_enabled(self) -> bool:
        return self._cache.is_enabled()

    def make_key(self, document_id: str, query: str) -> str:
        return f"{KEY_PREFIX}:{document_id}:{hash_query(query)}"

    async def get(self, document_id: str, query: str) -> RetrievalResult | None:
        """Return the cached result flagged as cached, or None on a miss."""
        key = self.make_key(document_id, query)
        try:
            raw = await self._cache.get(key)
        except UnicodeDecodeError:
            return await self._drop_corrupted(key)
        except (RedisError, OSError) as e:
            self.logging.warning("Retrieval cache read failed for key %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            result = RetrievalResult.model_validate_json(raw)
        except ValidationError:
            return await self._drop_corrupted(key)
        return result.model_copy(update={"cached": True})

    async def _drop_corrupted(self, key: str) -> None:
        self.logging.warning("Corrupted retrieval cache entry %s, deleting it.", key)
        try:
            await self._cache.delete(key)
        except (RedisError, OSError) as e:
            self.logging.warning("Could not delete corrupted cache entry %s: %s", key, e)

    async def set(self, document_id: str, query: str, result: RetrievalResult) -> None:
        key = self.make_key(document_id, query)
        try:
            payload = result.model_copy(update={"cached": False}).model_dump_json()
            await self._cache.setex(key, self._ttl, payload)
        except (RedisError, OSError) as e:
            self.logging.warning("Retrieval cache write failed for key %s: %s", key, e)

    async def invalidate_document(self, document_id: str) -> int:
        """Purge every cached result of a document. Returns the number of deleted entries."""
        pattern = f"{KEY_PREFIX}:{document_id}:*"
        try:
            deleted = await self._cache.delete_pattern(pattern)
        except (RedisError, OSError) as e:
            self.logging.warning("Retrieval cache invalidation failed for document %s: %s", document_id, e)
            return 0
        if deleted:
            self.logging.info("Invalidated %d cached retrievals of document %s.", deleted, document_id)
        return deleted

    async def get_stats(self, document_id: str | None = None) -> dict:
        pattern = f"{KEY_PREFIX}:{document_id}:*" if document_id else f"{KEY_PREFIX}:*"
        stats = {"enabled": self.is_enabled(), "document_id": document_id, "key_count": 0}
        try:
            stats["key_count"] = len(await self._cache.scan_keys(pattern))
        except (RedisError, OSError) as e:
            self.logging.warning("Retrieval cache stats unavailable: %s", e)
        return stats
