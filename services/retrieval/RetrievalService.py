"""Retrieval service.

Answers "which chunks of this document are relevant to this question":
validates the query, consults the retrieval cache, checks document access
while the query is being vectorized, ranks the index hits and caches the
result in the background.
"""

import asyncio
import time

from shared.clients.db.DBClientInterface import DBClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperTasks import HelperTasks
from shared.models.config import PipelineSettings
from shared.models.document import DocumentRecord, DocumentStatus
from shared.models.errors import QueryVectorizationError, RetrievalError, RetrievalErrorCode
from shared.models.retrieval import RetrievalOptions, RetrievalResult, SearchFilter
from services.retrieval.QueryVectorizer import QueryVectorizer
from services.retrieval.RetrievalCache import RetrievalCache
from services.retrieval.RetrievalRanker import RetrievalRanker


class RetrievalService:
    def __init__(
        self,
        helper_config: HelperConfig,
        db_client: DBClientInterface,
        vectorizer: QueryVectorizer,
        ranker: RetrievalRanker,
        settings: PipelineSettings,
        tasks: HelperTasks,
        retrieval_cache: RetrievalCache | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._db_client = db_client
        self._vectorizer = vectorizer
        self._ranker = ranker
        self._cache = retrieval_cache
        self._tasks = tasks
        self._max_query_length = settings.max_query_length

    ##########################################
    ################# CORE ###################
    ##########################################

    async def do_retrieve(
        self,
        query: str,
        document_id: str,
        owner_id: str,
        options: RetrievalOptions | None = None,
    ) -> RetrievalResult:
        """Retrieve the ranked context of a question about one document.

        Args:
            query (str): The user question.
            document_id (str): Document to search in.
            owner_id (str): Requesting user; must own the document.
            options (RetrievalOptions | None): top_k, min_score and use_cache.

        Returns:
            RetrievalResult: Unique chunks ordered by score, then chunk index.

        Raises:
            RetrievalError: INVALID_QUERY, DOCUMENT_NOT_FOUND, DOCUMENT_NOT_READY,
                NO_RELEVANT_CONTENT or RETRIEVAL_ERROR.
            QueryVectorizationError: If the query could not be vectorized.
        """
        options = options or RetrievalOptions()
        started = time.monotonic()
        query = (query or "").strip()
        try:
            if not query:
                raise RetrievalError(RetrievalErrorCode.INVALID_QUERY, "Query must not be empty.")
            if len(query) > self._max_query_length:
                raise RetrievalError(
                    RetrievalErrorCode.INVALID_QUERY,
                    f"Query is too long (max {self._max_query_length} characters).",
                )

            use_cache = options.use_cache and self._cache is not None and self._cache.is_enabled()
            if use_cache:
                cached = await self._cache.get(document_id, query)
                if cached is not None:
                    # the key carries no owner, so access is still checked on a hit
                    await self.verify_document_access(document_id, owner_id)
                    self.logging.debug("Retrieval cache hit for document %s.", document_id)
                    return cached

            _, vector = await asyncio.gather(
                self.verify_document_access(document_id, owner_id),
                self._vectorizer.do_vectorize(query),
            )
            chunks, total_found = await self._ranker.do_rank(
                vector=vector,
                search_filter=SearchFilter(owner_id=owner_id, document_id=document_id),
                top_k=options.top_k,
                min_score=options.min_score,
            )
            result = RetrievalResult(
                query=query,
                document_id=document_id,
                chunks=chunks,
                total_found=total_found,
                retrieval_time_ms=int((time.monotonic() - started) * 1000),
                cached=False,
            )

            if use_cache:
                self._tasks.spawn(self._cache.set(document_id, query, result), label="retrieval cache write")

            self.logging.info(
                "Retrieved %d chunks (of %d) for '%s' on document %s in %d ms.",
                len(chunks), total_found, query[:50], document_id, result.retrieval_time_ms,
            )
            return result

        except (RetrievalError, QueryVectorizationError) as e:
            self.logging.warning(
                "Retrieval for '%s' on document %s failed after %d ms: %s",
                query[:50], document_id, int((time.monotonic() - started) * 1000), e,
            )
            raise
        except Exception as e:
            self.logging.error("Retrieval for '%s' on document %s failed: %s", query[:50], document_id, e)
            raise RetrievalError(RetrievalErrorCode.RETRIEVAL_ERROR, "Retrieval failed.", cause=e) from e

    async def verify_document_access(self, document_id: str, owner_id: str) -> DocumentRecord:
        """Return the document if it exists, belongs to owner_id and is READY.

        Raises:
            RetrievalError: DOCUMENT_NOT_FOUND (also for foreign documents) or DOCUMENT_NOT_READY.
        """
        document = await self._db_client.do_get_document(document_id)
        if document is None or document.owner_id != owner_id:
            raise RetrievalError(RetrievalErrorCode.DOCUMENT_NOT_FOUND, "Document not found or access denied.")
        if document.status != DocumentStatus.READY:
            raise RetrievalError(
                RetrievalErrorCode.DOCUMENT_NOT_READY,
                f"Document is {document.status.value}; wait for processing to complete.",
            )
        return document

    async def invalidate_document_cache(self, document_id: str) -> int:
        if self._cache is None:
            return 0
        return await self._cache.invalidate_document(document_id)
