from abc import abstractmethod
import asyncio
from datetime import datetime, timezone

import httpx
from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import ChunkDraft, ChunkRecord, DocumentRecord, DocumentStatus, ensure_transition


class DBClientInterface(ClientInterface):
    """Relational store contract for documents and their chunk rows.

    Every request is a single statement; the store applies each one atomically.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "db"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_documents(self) -> str:
        """Returns the endpoint path of the documents table (e.g. "/rest/v1/documents")."""
        pass

    @abstractmethod
    def _get_endpoint_chunks(self) -> str:
        """Returns the endpoint path of the chunks table (e.g. "/rest/v1/document_chunks")."""
        pass

    ################ PARAMS BUILDER ##################
    @abstractmethod
    def get_document_params(self, document_id: str) -> dict:
        """Query params selecting exactly one document row by id."""
        pass

    @abstractmethod
    def get_chunks_params(self, document_id: str, columns: str = "*", ordered: bool = True) -> dict:
        """Query params selecting all chunk rows of a document, ordered by chunk index unless ordered is False."""
        pass

    @abstractmethod
    def get_chunk_params(self, chunk_id: str) -> dict:
        """Query params selecting exactly one chunk row by id."""
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_document_update_payload(self, fields: dict) -> dict:
        """Translate generic document fields (status, chunks_count, metadata...) into row columns."""
        pass

    @abstractmethod
    def get_chunk_insert_payload(self, drafts: list[ChunkDraft]) -> list[dict]:
        """Build the rows for one batch insert of chunks."""
        pass

    ################ RESPONSE PARSER ##################
    @abstractmethod
    def extract_document(self, row: dict) -> DocumentRecord:
        """Map a raw document row to a DocumentRecord."""
        pass

    @abstractmethod
    def extract_chunk(self, row: dict) -> ChunkRecord:
        """Map a raw chunk row to a ChunkRecord."""
        pass

    @abstractmethod
    def extract_count(self, response: httpx.Response) -> int:
        """Read the exact row count from a count response."""
        pass

    @abstractmethod
    def get_count_headers(self) -> dict:
        """Headers asking the backend for an exact row count without returning rows."""
        pass

    @abstractmethod
    def get_return_rows_headers(self) -> dict:
        """Headers asking the backend to return the written rows."""
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    ################ DOCUMENTS ##################
    async def do_get_document(self, document_id: str) -> DocumentRecord | None:
        """Fetch a document by id.

        Returns:
            DocumentRecord | None: The document, or None if no row has this id.
        """
        resp = await self.do_request(
            method="GET",
            endpoint=self._get_endpoint_documents(),
            params=self.get_document_params(document_id),
            raise_on_error=True,
        )
        rows = resp.json()
        if not rows:
            return None
        return self.extract_document(rows[0])

    async def do_update_document(self, document_id: str, fields: dict, current: DocumentStatus | None = None) -> None:
        """Update columns of a document row. Metadata is written as given, callers merge beforehand.

        Raises:
            InvalidStatusTransition: current is given and the status field is not a legal next state.
        """
        if current is not None and "status" in fields:
            ensure_transition(current, DocumentStatus(fields["status"]))
        if "status" in fields and isinstance(fields["status"], DocumentStatus):
            fields = {**fields, "status": fields["status"].value}
        await self.do_request(
            method="PATCH",
            endpoint=self._get_endpoint_documents(),
            params=self.get_document_params(document_id),
            json=self.get_document_update_payload(fields),
            raise_on_error=True,
        )

    async def do_delete_document(self, document_id: str) -> None:
        """Delete the document row in one statement. Deleting an absent row is a no-op.

        Chunk rows reference the document with ON DELETE CASCADE, so they go in the
        same statement: either both disappear or neither does.
        """
        await self.do_request(
            method="DELETE",
            endpoint=self._get_endpoint_documents(),
            params=self.get_document_params(document_id),
            raise_on_error=True,
        )

    ################ CHUNKS ##################
    async def do_insert_chunks(self, drafts: list[ChunkDraft]) -> list[ChunkRecord]:
        """Insert all chunks of a document in one statement.

        The (document_id, chunk_index) uniqueness constraint of the table rejects
        the whole batch on a duplicate.

        Returns:
            list[ChunkRecord]: The stored rows with their assigned ids, ordered by chunk index.
        """
        if not drafts:
            return []
        resp = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_chunks(),
            json=self.get_chunk_insert_payload(drafts),
            additional_headers=self.get_return_rows_headers(),
            raise_on_error=True,
        )
        chunks = [self.extract_chunk(row) for row in resp.json()]
        return sorted(chunks, key=lambda c: c.chunk_index)

    async def do_list_chunks(self, document_id: str) -> list[ChunkRecord]:
        """List all chunk rows of a document ordered by chunk index."""
        resp = await self.do_request(
            method="GET",
            endpoint=self._get_endpoint_chunks(),
            params=self.get_chunks_params(document_id),
            raise_on_error=True,
        )
        return [self.extract_chunk(row) for row in resp.json()]

    async def do_list_chunk_ids(self, document_id: str) -> list[str]:
        """List the ids of all chunk rows of a document."""
        resp = await self.do_request(
            method="GET",
            endpoint=self._get_endpoint_chunks(),
            params=self.get_chunks_params(document_id, columns="id"),
            raise_on_error=True,
        )
        return [str(row["id"]) for row in resp.json()]

    async def do_count_chunks(self, document_id: str) -> int:
        """Count the chunk rows of a document."""
        resp = await self.do_request(
            method="HEAD",
            endpoint=self._get_endpoint_chunks(),
            params=self.get_chunks_params(document_id, columns="id", ordered=False),
            additional_headers=self.get_count_headers(),
            raise_on_error=True,
        )
        return self.extract_count(resp)

    async def do_mark_chunks_embedded(self, chunk_ids: list[str]) -> None:
        """Fill in the embedding reference of each chunk. The vector id equals the chunk id."""

        async def _mark(chunk_id: str) -> None:
            await self.do_request(
                method="PATCH",
                endpoint=self._get_endpoint_chunks(),
                params=self.get_chunk_params(chunk_id),
                json={"embedding_id": chunk_id},
                raise_on_error=True,
            )

        await asyncio.gather(*[_mark(chunk_id) for chunk_id in chunk_ids])

    ################ STATUS ##################
    async def do_mark_document_failed(self, document_id: str, error_type: str, message: str) -> None:
        """Set a document to FAILED and record the error, keeping its existing metadata.

        The error lands in metadata as {"error": {"type", "message", "timestamp"}}.
        A document that no longer exists is left alone.
        """
        document = await self.do_get_document(document_id)
        if document is None:
            self.logging.warning("Cannot mark document %s as FAILED: it no longer exists.", document_id)
            return
        metadata = dict(document.metadata)
        metadata["error"] = {
            "type": error_type,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        await self.do_update_document(
            document_id, {"status": DocumentStatus.FAILED, "metadata": metadata}, current=document.status,
        )
