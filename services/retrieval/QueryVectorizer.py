"""Query vectorizer: turns a question into a query vector, cache first."""

import asyncio

import httpx
from shared.clients.ClientInterface import ClientRequestError
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperTasks import HelperTasks
from shared.models.config import PipelineSettings
from shared.models.errors import QueryVectorizationError, QueryVectorizationErrorCode
from services.retrieval.EmbeddingCache import EmbeddingCache


class QueryVectorizer:
    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        settings: PipelineSettings,
        tasks: HelperTasks,
        embedding_cache: EmbeddingCache | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._embed_client = embed_client
        self._cache = embedding_cache
        self._tasks = tasks
        self._max_length = settings.max_query_length
        self._timeout = settings.embed_batch_timeout

    async def do_vectorize(self, query: str) -> list[float]:
        """Return the vector of a query.

        Reads the embedding cache first; on a miss calls the provider, checks the
        dimension and schedules the cache write in the background.

        Raises:
            QueryVectorizationError: INVALID_INPUT for an empty or too long query,
                DIMENSION_MISMATCH, or the mapped provider failure.
        """
        query = (query or "").strip()
        if not query:
            raise QueryVectorizationError(QueryVectorizationErrorCode.INVALID_INPUT, "Query must not be empty.")
        if len(query) > self._max_length:
            raise QueryVectorizationError(
                QueryVectorizationErrorCode.INVALID_INPUT,
                f"Query is too long ({len(query)} characters, max {self._max_length}).",
            )

        if self._cache is not None:
            cached = await self._cache.get(query)
            if cached is not None:
                self.logging.debug("Query vector cache hit for '%s'.", query[:50])
                return cached

        try:
            vectors = await asyncio.wait_for(self._embed_client.do_embed([query]), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise QueryVectorizationError(
                QueryVectorizationErrorCode.EMBEDDING_TIMEOUT,
                f"Embedding provider did not answer within {self._timeout}s.",
                cause=e,
            ) from e
        except Exception as e:
            raise self._map_provider_error(e) from e

        vector = vectors[0]
        expected = self._embed_client.get_dimension()
        if len(vector) != expected:
            raise QueryVectorizationError(
                QueryVectorizationErrorCode.DIMENSION_MISMATCH,
                f"Provider returned a {len(vector)}D query vector, configured dimension is {expected}D.",
            )

        if self._cache is not None:
            self._tasks.spawn(self._cache.set(query, vector), label="embedding cache write")
        return vector

    def _map_provider_error(self, error: Exception) -> QueryVectorizationError:
        if isinstance(error, httpx.TimeoutException):
            return QueryVectorizationError(QueryVectorizationErrorCode.EMBEDDING_TIMEOUT, f"Embedding request timed out: {error}", cause=error)
        text = str(error).lower()
        if isinstance(error, ClientRequestError) and error.status_code == 429:
            return QueryVectorizationError(QueryVectorizationErrorCode.RATE_LIMIT_EXCEEDED, f"Embedding rate limit hit: {error}", cause=error)
        if (isinstance(error, ClientRequestError) and error.status_code == 402) or "quota" in text:
            return QueryVectorizationError(QueryVectorizationErrorCode.QUOTA_EXCEEDED, f"Embedding quota exceeded: {error}", cause=error)
        if "rate limit" in text:
            return QueryVectorizationError(QueryVectorizationErrorCode.RATE_LIMIT_EXCEEDED, f"Embedding rate limit hit: {error}", cause=error)
        return QueryVectorizationError(QueryVectorizationErrorCode.EMBEDDING_ERROR, f"Embedding request failed: {error}", cause=error)
