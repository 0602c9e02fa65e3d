"""Chunking service.

Splits a document's extracted text into overlapping chunks, stores them in
one batch insert and advances the document to EMBEDDING.
"""

from shared.clients.db.DBClientInterface import DBClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import PipelineSettings
from shared.models.document import CHUNKABLE_STATUSES, ChunkDraft, ChunkRecord, DocumentStatus
from shared.models.errors import ChunkingError, ChunkingErrorCode
from services.ingestion.TextSplitter import TextSplitter


class ChunkingService:
    def __init__(
        self,
        helper_config: HelperConfig,
        db_client: DBClientInterface,
        settings: PipelineSettings,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._db_client = db_client
        self._splitter = TextSplitter(chunk_size=settings.chunk_size, chunk_overlap=settings.chunk_overlap)

    ##########################################
    ################# CORE ###################
    ##########################################

    async def do_chunk(self, document_id: str, text: str) -> list[ChunkRecord]:
        """Chunk a document and persist the chunks.

        Args:
            document_id (str): Id of the document to chunk.
            text (str): The already-extracted plain text.

        Returns:
            list[ChunkRecord]: The stored chunks ordered by chunk index (contiguous from 0).

        Raises:
            ChunkingError: DOCUMENT_NOT_FOUND, INVALID_STATE, EMPTY_CONTENT or STORAGE_ERROR.
                Except for DOCUMENT_NOT_FOUND the document is left in FAILED with the error recorded.
        """
        try:
            return await self._chunk(document_id, text)
        except ChunkingError as e:
            if e.code != ChunkingErrorCode.DOCUMENT_NOT_FOUND:
                await self._record_failure(document_id, e)
            raise
        except Exception as e:
            error = ChunkingError(ChunkingErrorCode.STORAGE_ERROR, f"Chunking failed: {e}", cause=e)
            await self._record_failure(document_id, error)
            raise error from e

    async def _chunk(self, document_id: str, text: str) -> list[ChunkRecord]:
        document = await self._db_client.do_get_document(document_id)
        if document is None:
            raise ChunkingError(ChunkingErrorCode.DOCUMENT_NOT_FOUND, f"Document {document_id} does not exist.")

        if document.status not in CHUNKABLE_STATUSES:
            raise ChunkingError(
                ChunkingErrorCode.INVALID_STATE,
                f"Document {document_id} is {document.status.value}, expected one of "
                f"{sorted(s.value for s in CHUNKABLE_STATUSES)}.",
            )

        if not text or not text.strip():
            raise ChunkingError(ChunkingErrorCode.EMPTY_CONTENT, f"Document {document_id} has no extracted text.")

        pieces = self._splitter.split_text(text)
        if not pieces:
            raise ChunkingError(ChunkingErrorCode.EMPTY_CONTENT, f"Document {document_id} produced no chunks.")

        self.logging.info("Document %s: split %d characters into %d chunks.", document_id, len(text), len(pieces))

        drafts = [ChunkDraft(document_id=document_id, chunk_index=i, content=piece) for i, piece in enumerate(pieces)]
        try:
            chunks = await self._db_client.do_insert_chunks(drafts)
        except Exception as e:
            raise ChunkingError(
                ChunkingErrorCode.STORAGE_ERROR,
                f"Failed to store {len(drafts)} chunks for document {document_id}: {e}",
                cause=e,
            ) from e

        await self._db_client.do_update_document(
            document_id,
            {"status": DocumentStatus.EMBEDDING, "content_length": len(text)},
            current=document.status,
        )
        return chunks

    ##########################################
    ################ HELPERS #################
    ##########################################

    async def _record_failure(self, document_id: str, error: ChunkingError) -> None:
        self.logging.error("Chunking failed for document %s: %s", document_id, error)
        try:
            await self._db_client.do_mark_document_failed(document_id, error.code.value, error.message)
        except Exception as e:
            self.logging.error("Could not record chunking failure on document %s: %s", document_id, e)
