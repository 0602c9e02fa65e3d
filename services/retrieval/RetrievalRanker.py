"""Retrieval ranker.

Over-fetches candidates from the vector index, drops duplicates (first
occurrence wins) and anything below the score threshold, orders by score
descending with ties broken by chunk index ascending, and keeps the top K.
"""

from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.retrieval import RetrievalChunk, SearchFilter, SearchHit
from shared.models.errors import RetrievalError, RetrievalErrorCode

MIN_FETCH = 10


class RetrievalRanker:
    def __init__(self, helper_config: HelperConfig, rag_client: RAGClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._rag_client = rag_client

    async def do_rank(
        self,
        vector: list[float],
        search_filter: SearchFilter,
        top_k: int = 5,
        min_score: float = 0.3,
    ) -> tuple[list[RetrievalChunk], int]:
        """Search and rank the chunks most similar to a query vector.

        Returns:
            tuple[list[RetrievalChunk], int]: At most top_k unique chunks, and the number of
                unique candidates that met the threshold before truncation.

        Raises:
            RetrievalError: NO_RELEVANT_CONTENT if no candidate survives deduplication and thresholding.
        """
        hits = await self._rag_client.do_search(
            vector=vector,
            top_k=max(top_k, MIN_FETCH),
            min_score=min_score,
            search_filter=search_filter,
        )
        chunks = self.rank(hits, min_score)
        if not chunks:
            raise RetrievalError(RetrievalErrorCode.NO_RELEVANT_CONTENT, "No relevant content found for this query.")
        self.logging.debug("Ranked %d raw hits into %d unique chunks.", len(hits), len(chunks))
        return chunks[:top_k], len(chunks)

    @staticmethod
    def rank(hits: list[SearchHit], min_score: float) -> list[RetrievalChunk]:
        """Deduplicate, threshold and sort raw hits. Pure; does not truncate."""
        seen: set[str] = set()
        chunks: list[RetrievalChunk] = []
        for hit in hits:
            if hit.id in seen:
                continue
            seen.add(hit.id)
            if hit.score < min_score:
                continue
            payload = hit.payload
            chunks.append(
                RetrievalChunk(
                    id=hit.id,
                    document_id=str(payload.get("document_id", "")),
                    chunk_index=int(payload.get("chunk_index", 0)),
                    content=payload.get("content", ""),
                    score=hit.score,
                )
            )
        chunks.sort(key=lambda c: (-c.score, c.chunk_index))
        return chunks
