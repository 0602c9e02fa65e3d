"""Parallel embedding batch processor.

Turns the chunks of a document into indexed vectors. Chunks are cut into
fixed-size batches whose indices sit in a shared asyncio.Queue; a fixed
number of workers drain the queue, each taking the next index and running
that batch to completion. A failing batch is recorded and never retried;
the remaining batches still run. Once the queue is empty the document is
set to READY, or to FAILED listing the failed batch numbers.
"""

import asyncio
from datetime import datetime, timezone
import math

import httpx
from shared.clients.ClientInterface import ClientRequestError
from shared.clients.db.DBClientInterface import DBClientInterface
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import CONTENT_PREVIEW_CHARS, VectorPayload, VectorPoint
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import PipelineSettings
from shared.models.document import ChunkRecord, DocumentRecord, DocumentStatus, EmbeddingReport
from shared.models.errors import EmbeddingError, EmbeddingErrorCode


class EmbeddingBatchProcessor:
    def __init__(
        self,
        helper_config: HelperConfig,
        db_client: DBClientInterface,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
        settings: PipelineSettings,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._db_client = db_client
        self._embed_client = embed_client
        self._rag_client = rag_client
        self._batch_size = settings.embed_batch_size
        self._concurrency = max(1, settings.embed_concurrency)
        self._batch_timeout = settings.embed_batch_timeout

    ##########################################
    ################# CORE ###################
    ##########################################

    async def do_process(self, document_id: str, chunks: list[ChunkRecord]) -> EmbeddingReport:
        """Embed, index and mark all chunks of a document.

        Args:
            document_id (str): Id of the document the chunks belong to.
            chunks (list[ChunkRecord]): All stored chunks of the document, ordered by index.

        Returns:
            EmbeddingReport: The batch tally of a fully successful run (document is READY).

        Raises:
            EmbeddingError: DOCUMENT_NOT_FOUND or INVALID_STATE (document not EMBEDDING) before any work; BATCH_FAILED when k > 0
                batches failed; DIMENSION_MISMATCH when the provider returned vectors of
                the wrong size. In the last two cases the document is FAILED, vectors of
                successful batches stay in the index and the error carries the report.
        """
        document = await self._db_client.do_get_document(document_id)
        if document is None:
            raise EmbeddingError(EmbeddingErrorCode.DOCUMENT_NOT_FOUND, f"Document {document_id} does not exist.")
        if document.status != DocumentStatus.EMBEDDING:
            raise EmbeddingError(
                EmbeddingErrorCode.INVALID_STATE,
                f"Document {document_id} is {document.status.value}, only EMBEDDING documents can be embedded.",
            )

        batches = [chunks[i:i + self._batch_size] for i in range(0, len(chunks), self._batch_size)]
        report = EmbeddingReport(document_id=document_id, total_batches=len(batches))
        self.logging.info(
            "Document %s: embedding %d chunks in %d batches (concurrency %d).",
            document_id, len(chunks), len(batches), self._concurrency,
        )

        queue: asyncio.Queue[int] = asyncio.Queue()
        for index in range(len(batches)):
            queue.put_nowait(index)
        abort = asyncio.Event()

        workers = [
            asyncio.create_task(self._worker(queue, batches, document, report, abort))
            for _ in range(min(self._concurrency, len(batches)))
        ]
        await asyncio.gather(*workers)

        if abort.is_set():
            report.aborted = True
            fatal = next(msg for msg in report.batch_errors.values() if msg.startswith("[DIMENSION_MISMATCH]"))
            await self._db_client.do_mark_document_failed(
                document_id, EmbeddingErrorCode.DIMENSION_MISMATCH.value, fatal,
            )
            raise EmbeddingError(EmbeddingErrorCode.DIMENSION_MISMATCH, fatal, report=report)

        if report.failed_batches:
            message = (
                f"Embedding failed for batches {report.failed_label} "
                f"({len(report.failed_batches)} of {report.total_batches})."
            )
            self.logging.error("Document %s: %s", document_id, message)
            await self._db_client.do_mark_document_failed(document_id, EmbeddingErrorCode.BATCH_FAILED.value, message)
            raise EmbeddingError(EmbeddingErrorCode.BATCH_FAILED, message, report=report)

        await self._mark_ready(document, len(chunks))
        self.logging.info("Document %s: %d chunks embedded, document READY.", document_id, len(chunks), color="green")
        return report

    ##########################################
    ################ WORKERS #################
    ##########################################

    async def _worker(
        self,
        queue: asyncio.Queue,
        batches: list[list[ChunkRecord]],
        document: DocumentRecord,
        report: EmbeddingReport,
        abort: asyncio.Event,
    ) -> None:
        while not abort.is_set():
            try:
                index = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            number = index + 1
            try:
                await self._run_batch(batches[index], document)
            except EmbeddingError as e:
                report.failed_batches.append(number)
                report.batch_errors[number] = str(e)
                if e.code == EmbeddingErrorCode.DIMENSION_MISMATCH:
                    self.logging.critical("Batch %d of document %s: %s", number, document.id, e.message)
                    abort.set()
                else:
                    self.logging.error("Batch %d of document %s failed: %s", number, document.id, e.message)
            except Exception as e:
                report.failed_batches.append(number)
                report.batch_errors[number] = f"[{EmbeddingErrorCode.EMBEDDING_ERROR.value}] {e}"
                self.logging.error("Batch %d of document %s failed unexpectedly: %s", number, document.id, e)
            else:
                report.succeeded_batches.append(number)
                report.embedded_chunks += len(batches[index])
                self.logging.debug("Batch %d/%d of document %s done.", number, len(batches), document.id)
            finally:
                queue.task_done()

    async def _run_batch(self, batch: list[ChunkRecord], document: DocumentRecord) -> None:
        texts = [chunk.content for chunk in batch]
        try:
            vectors = await asyncio.wait_for(self._embed_client.do_embed(texts), timeout=self._batch_timeout)
        except asyncio.TimeoutError as e:
            raise EmbeddingError(
                EmbeddingErrorCode.EMBEDDING_TIMEOUT,
                f"Embedding provider did not answer within {self._batch_timeout}s.",
                cause=e,
            ) from e
        except Exception as e:
            raise self._map_provider_error(e) from e

        self._validate_vectors(vectors, batch)

        dimension = self._embed_client.get_dimension()
        points = [
            VectorPoint(
                id=chunk.id,
                vector=vector,
                payload=VectorPayload(
                    owner_id=document.owner_id,
                    document_id=document.id,
                    chunk_id=chunk.id,
                    chunk_index=chunk.chunk_index,
                    content=chunk.content[:CONTENT_PREVIEW_CHARS],
                    length=chunk.length,
                    dimension=dimension,
                    provider=self._embed_client.get_engine_name(),
                ),
            )
            for chunk, vector in zip(batch, vectors)
        ]
        try:
            await self._rag_client.do_upsert_batch(points)
            await self._db_client.do_mark_chunks_embedded([chunk.id for chunk in batch])
        except Exception as e:
            raise EmbeddingError(EmbeddingErrorCode.STORAGE_ERROR, f"Failed to store vectors: {e}", cause=e) from e

    ##########################################
    ################ HELPERS #################
    ##########################################

    def _validate_vectors(self, vectors: list[list[float]], batch: list[ChunkRecord]) -> None:
        expected = self._embed_client.get_dimension()
        for chunk, vector in zip(batch, vectors):
            if not isinstance(vector, list):
                raise EmbeddingError(
                    EmbeddingErrorCode.EMBEDDING_ERROR,
                    f"Provider returned {type(vector).__name__} instead of a vector for chunk {chunk.chunk_index}.",
                )
            if len(vector) != expected:
                raise EmbeddingError(
                    EmbeddingErrorCode.DIMENSION_MISMATCH,
                    f"Provider '{self._embed_client.get_namespace()}' returned a {len(vector)}D vector for chunk "
                    f"{chunk.chunk_index}, configured dimension is {expected}D. Fix EMBED_MODEL/EMBED_DIMENSION "
                    "and re-process the document.",
                )
            if not all(isinstance(x, (int, float)) and math.isfinite(x) for x in vector):
                raise EmbeddingError(
                    EmbeddingErrorCode.EMBEDDING_ERROR,
                    f"Provider returned a vector with non-finite components for chunk {chunk.chunk_index}.",
                )

    def _map_provider_error(self, error: Exception) -> EmbeddingError:
        if isinstance(error, httpx.TimeoutException):
            return EmbeddingError(EmbeddingErrorCode.EMBEDDING_TIMEOUT, f"Embedding request timed out: {error}", cause=error)
        text = str(error).lower()
        if (isinstance(error, ClientRequestError) and error.status_code in (402, 429)) or "quota" in text or "rate limit" in text:
            return EmbeddingError(EmbeddingErrorCode.QUOTA_EXCEEDED, f"Embedding quota exceeded: {error}", cause=error)
        return EmbeddingError(EmbeddingErrorCode.EMBEDDING_ERROR, f"Embedding request failed: {error}", cause=error)

    async def _mark_ready(self, document: DocumentRecord, chunk_count: int) -> None:
        metadata = dict(document.metadata)
        metadata.pop("error", None)
        metadata["embedding"] = {
            "vector_count": chunk_count,
            "dimension": self._embed_client.get_dimension(),
            "provider": self._embed_client.get_engine_name(),
            "model": self._embed_client.embed_model,
            "completed_at": datetime.now(timezone.utc).isoformat(),
        }
        await self._db_client.do_update_document(
            document.id,
            {"status": DocumentStatus.READY, "chunks_count": chunk_count, "metadata": metadata},
            current=document.status,
        )
