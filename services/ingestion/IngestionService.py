"""Ingestion orchestration: chunk a document, then embed its chunks."""

from shared.clients.db.DBClientInterface import DBClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import DocumentStatus, EmbeddingReport
from shared.models.errors import EmbeddingError, EmbeddingErrorCode
from services.ingestion.ChunkingService import ChunkingService
from services.ingestion.EmbeddingBatchProcessor import EmbeddingBatchProcessor
from services.retrieval.RetrievalCache import RetrievalCache


class IngestionService:
    def __init__(
        self,
        helper_config: HelperConfig,
        db_client: DBClientInterface,
        chunking_service: ChunkingService,
        batch_processor: EmbeddingBatchProcessor,
        retrieval_cache: RetrievalCache | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._db_client = db_client
        self._chunking_service = chunking_service
        self._batch_processor = batch_processor
        self._retrieval_cache = retrieval_cache

    async def do_ingest(self, document_id: str, text: str) -> EmbeddingReport:
        """Run chunking and batch embedding for a freshly parsed document.

        Raises:
            ChunkingError: If chunking fails (document is FAILED).
            EmbeddingError: If embedding fails (document is FAILED).
        """
        chunks = await self._chunking_service.do_chunk(document_id, text)
        report = await self._batch_processor.do_process(document_id, chunks)
        await self._invalidate(document_id)
        return report

    async def do_reembed(self, document_id: str) -> EmbeddingReport:
        """Re-run embedding over the stored chunks of a FAILED document.

        Chunks are kept; vectors are upserted under the chunk ids, so batches that
        already succeeded are simply overwritten.

        Raises:
            EmbeddingError: DOCUMENT_NOT_FOUND, INVALID_STATE if the document is not
                FAILED, EMBEDDING_ERROR if it has no stored chunks, or any batch error.
        """
        document = await self._db_client.do_get_document(document_id)
        if document is None:
            raise EmbeddingError(EmbeddingErrorCode.DOCUMENT_NOT_FOUND, f"Document {document_id} does not exist.")
        if document.status != DocumentStatus.FAILED:
            raise EmbeddingError(
                EmbeddingErrorCode.INVALID_STATE,
                f"Only FAILED documents can be re-embedded, document {document_id} is {document.status.value}.",
            )

        await self._invalidate(document_id)

        chunks = await self._db_client.do_list_chunks(document_id)
        if not chunks:
            raise EmbeddingError(
                EmbeddingErrorCode.EMBEDDING_ERROR,
                f"Document {document_id} has no stored chunks; ingest it again instead.",
            )

        # a retry restarts the lifecycle at EMBEDDING
        await self._db_client.do_update_document(document_id, {"status": DocumentStatus.EMBEDDING}, current=document.status)
        self.logging.info("Re-embedding document %s (%d chunks).", document_id, len(chunks))
        return await self._batch_processor.do_process(document_id, chunks)

    async def _invalidate(self, document_id: str) -> None:
        if self._retrieval_cache is not None:
            await self._retrieval_cache.invalidate_document(document_id)
