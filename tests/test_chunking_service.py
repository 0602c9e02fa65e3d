"""
Tests for the chunking service.
"""

import pytest

from shared.models.config import PipelineSettings
from shared.models.document import DocumentStatus
from shared.models.errors import ChunkingError, ChunkingErrorCode
from services.ingestion.ChunkingService import ChunkingService

TEXT = " ".join(f"word{i}" for i in range(200))


@pytest.fixture
def service(helper_config, db):
    return ChunkingService(helper_config, db, PipelineSettings(chunk_size=100, chunk_overlap=10))


class TestDoChunk:
    """Successful chunking."""

    async def test_chunks_are_stored_with_contiguous_indices(self, service, db):
        db.add_document("doc-1", status=DocumentStatus.PARSING)

        chunks = await service.do_chunk("doc-1", TEXT)

        assert len(chunks) > 1
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        assert len(db.chunks_of("doc-1")) == len(chunks)
        assert db.calls.count("insert_chunks") == 1

    async def test_document_advances_to_embedding(self, service, db):
        db.add_document("doc-1")

        await service.do_chunk("doc-1", TEXT)

        document = db.documents["doc-1"]
        assert document.status == DocumentStatus.EMBEDDING
        assert document.content_length == len(TEXT)


class TestDoChunkFailures:
    """Every failure except a missing document leaves the document FAILED."""

    async def test_missing_document(self, service, db):
        with pytest.raises(ChunkingError) as exc_info:
            await service.do_chunk("ghost", TEXT)
        assert exc_info.value.code == ChunkingErrorCode.DOCUMENT_NOT_FOUND
        assert db.documents == {}

    async def test_wrong_state(self, service, db):
        db.add_document("doc-1", status=DocumentStatus.READY)

        with pytest.raises(ChunkingError) as exc_info:
            await service.do_chunk("doc-1", TEXT)

        assert exc_info.value.code == ChunkingErrorCode.INVALID_STATE
        document = db.documents["doc-1"]
        assert document.status == DocumentStatus.FAILED
        assert document.metadata["error"]["type"] == "INVALID_STATE"
        assert db.chunks == {}

    async def test_blank_text(self, service, db):
        db.add_document("doc-1")

        with pytest.raises(ChunkingError) as exc_info:
            await service.do_chunk("doc-1", "  \n\t ")

        assert exc_info.value.code == ChunkingErrorCode.EMPTY_CONTENT
        assert db.documents["doc-1"].status == DocumentStatus.FAILED
        assert db.documents["doc-1"].metadata["error"]["type"] == "EMPTY_CONTENT"

    async def test_insert_failure(self, service, db):
        db.add_document("doc-1")
        db.fail_insert = True

        with pytest.raises(ChunkingError) as exc_info:
            await service.do_chunk("doc-1", TEXT)

        assert exc_info.value.code == ChunkingErrorCode.STORAGE_ERROR
        assert db.documents["doc-1"].status == DocumentStatus.FAILED
        assert db.chunks == {}

    async def test_existing_metadata_is_kept_on_failure(self, service, db):
        db.add_document("doc-1", metadata={"source": "upload"})

        with pytest.raises(ChunkingError):
            await service.do_chunk("doc-1", "")

        metadata = db.documents["doc-1"].metadata
        assert metadata["source"] == "upload"
        assert metadata["error"]["type"] == "EMPTY_CONTENT"
