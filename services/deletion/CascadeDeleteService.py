"""Cascade delete.

Removes a document and everything derived from it, strictly in this order:

  1. vectors of all chunks from the vector index (retried with exponential backoff),
  2. the uploaded blob from object storage (best effort),
  3. the document row, whose chunk rows are removed with it by the
     foreign key cascade.

If step 1 still fails after the last attempt nothing else is touched, so the
document and all its chunk rows remain. Independent documents may be
deleted concurrently.
"""

import asyncio
from typing import Awaitable, Callable

from pydantic import BaseModel

from shared.clients.db.DBClientInterface import DBClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.storage.StorageClientInterface import StorageClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import PipelineSettings
from shared.models.errors import CascadeDeleteError, CascadeDeleteErrorCode
from services.retrieval.RetrievalCache import RetrievalCache


class DeleteOutcome(BaseModel):
    """Result of deleting one document."""

    document_id: str
    deleted: bool
    vectors_deleted: int = 0
    vector_attempts: int = 0
    blob_deleted: bool = False
    error_code: str | None = None
    error_message: str | None = None


class CascadeDeleteService:
    def __init__(
        self,
        helper_config: HelperConfig,
        db_client: DBClientInterface,
        rag_client: RAGClientInterface,
        storage_client: StorageClientInterface,
        settings: PipelineSettings,
        retrieval_cache: RetrievalCache | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._db_client = db_client
        self._rag_client = rag_client
        self._storage_client = storage_client
        self._retrieval_cache = retrieval_cache
        self._max_attempts = max(1, settings.delete_max_attempts)
        self._backoff_base = settings.delete_backoff_base
        self._sleep = sleep

    ##########################################
    ################# CORE ###################
    ##########################################

    async def do_delete(self, document_id: str, owner_id: str | None = None) -> DeleteOutcome:
        """Delete a document across all stores.

        Args:
            document_id (str): The document to delete.
            owner_id (str | None): If given, the document must belong to this owner.

        Returns:
            DeleteOutcome: What was removed.

        Raises:
            CascadeDeleteError: DOCUMENT_NOT_FOUND; VECTOR_DELETE_FAILED (relational state
                untouched); DATABASE_DELETE_FAILED.
        """
        document = await self._db_client.do_get_document(document_id)
        if document is None or (owner_id is not None and document.owner_id != owner_id):
            raise CascadeDeleteError(CascadeDeleteErrorCode.DOCUMENT_NOT_FOUND, f"Document {document_id} not found.")

        outcome = DeleteOutcome(document_id=document_id, deleted=False)

        # 1. vectors
        chunk_ids = await self._db_client.do_list_chunk_ids(document_id)
        outcome.vector_attempts = await self._delete_vectors_with_retry(document_id, chunk_ids)
        outcome.vectors_deleted = len(chunk_ids)

        # 2. blob
        if document.storage_path:
            try:
                await self._storage_client.do_delete_file(document.storage_path)
                outcome.blob_deleted = True
            except Exception as e:
                self.logging.warning(
                    "Could not delete blob '%s' of document %s, leaving it for cleanup: %s",
                    document.storage_path, document_id, e,
                )

        # 3. rows
        try:
            await self._db_client.do_delete_document(document_id)
        except Exception as e:
            self.logging.error("Deleting rows of document %s failed: %s", document_id, e)
            raise CascadeDeleteError(
                CascadeDeleteErrorCode.DATABASE_DELETE_FAILED,
                f"Vectors of document {document_id} were removed but its rows could not be deleted: {e}",
                cause=e,
            ) from e

        if self._retrieval_cache is not None:
            await self._retrieval_cache.invalidate_document(document_id)

        outcome.deleted = True
        self.logging.info(
            "Deleted document %s (%d vectors, blob %s).",
            document_id, len(chunk_ids), "removed" if outcome.blob_deleted else "kept",
        )
        return outcome

    async def do_delete_many(self, document_ids: list[str], owner_id: str | None = None) -> list[DeleteOutcome]:
        """Delete several documents concurrently. One failure does not affect the others."""
        results = await asyncio.gather(
            *[self.do_delete(document_id, owner_id) for document_id in document_ids],
            return_exceptions=True,
        )
        outcomes: list[DeleteOutcome] = []
        for document_id, result in zip(document_ids, results):
            if isinstance(result, CascadeDeleteError):
                outcomes.append(
                    DeleteOutcome(
                        document_id=document_id,
                        deleted=False,
                        error_code=result.code.value,
                        error_message=result.message,
                    )
                )
            elif isinstance(result, Exception):
                self.logging.error("Deleting document %s failed unexpectedly: %s", document_id, result)
                outcomes.append(
                    DeleteOutcome(document_id=document_id, deleted=False, error_code=type(result).__name__, error_message=str(result))
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes.append(result)
        deleted = sum(1 for o in outcomes if o.deleted)
        self.logging.info("Bulk delete: %d of %d documents deleted.", deleted, len(document_ids))
        return outcomes

    ##########################################
    ################ HELPERS #################
    ##########################################

    async def _delete_vectors_with_retry(self, document_id: str, chunk_ids: list[str]) -> int:
        """Delete the vectors, waiting base * 2^(n-1) seconds after the n-th failed attempt.

        Returns:
            int: The number of attempts used.
        """
        for attempt in range(1, self._max_attempts + 1):
            try:
                await self._rag_client.do_delete_batch(chunk_ids)
                return attempt
            except Exception as e:
                if attempt == self._max_attempts:
                    self.logging.error(
                        "Deleting %d vectors of document %s failed after %d attempts: %s",
                        len(chunk_ids), document_id, attempt, e,
                    )
                    raise CascadeDeleteError(
                        CascadeDeleteErrorCode.VECTOR_DELETE_FAILED,
                        f"Could not delete vectors of document {document_id} after {attempt} attempts; "
                        "document and chunks were left untouched.",
                        cause=e,
                    ) from e
                delay = self._backoff_base * (2 ** (attempt - 1))
                self.logging.warning(
                    "Vector delete attempt %d/%d for document %s failed (%s), retrying in %.1fs.",
                    attempt, self._max_attempts, document_id, e, delay,
                )
                await self._sleep(delay)
        return self._max_attempts
