"""
Tests for cascade deletion across vector index, object storage and relational store.
"""

import pytest

from shared.clients.rag.models.VectorPoint import VectorPayload, VectorPoint
from shared.models.config import PipelineSettings
from shared.models.document import DocumentStatus
from shared.models.errors import CascadeDeleteError, CascadeDeleteErrorCode
from services.deletion.CascadeDeleteService import CascadeDeleteService
from services.retrieval.RetrievalCache import RetrievalCache


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def service(helper_config, db, rag, storage, cache_client, sleeps):
    async def fake_sleep(seconds):
        sleeps.append(seconds)

    return CascadeDeleteService(
        helper_config,
        db_client=db,
        rag_client=rag,
        storage_client=storage,
        settings=PipelineSettings(delete_max_attempts=3, delete_backoff_base=1.0),
        retrieval_cache=RetrievalCache(helper_config, cache_client),
        sleep=fake_sleep,
    )


def seed(db, rag, document_id="doc-1", owner_id="u1", chunks=4):
    db.add_document(document_id, owner_id=owner_id, status=DocumentStatus.READY, storage_path=f"{owner_id}/{document_id}.pdf")
    for chunk in db.add_chunks(document_id, chunks):
        rag.points[chunk.id] = VectorPoint(
            id=chunk.id,
            vector=[0.1] * 8,
            payload=VectorPayload(
                owner_id=owner_id,
                document_id=document_id,
                chunk_id=chunk.id,
                chunk_index=chunk.chunk_index,
                dimension=8,
                provider="fake",
            ),
        )


class TestDoDelete:
    """Happy path and retries."""

    async def test_everything_is_removed(self, service, db, rag, storage, fake_redis):
        seed(db, rag)
        fake_redis.store["rag:query:doc-1:abc"] = "{}"

        outcome = await service.do_delete("doc-1", owner_id="u1")

        assert outcome.deleted
        assert outcome.vectors_deleted == 4
        assert outcome.vector_attempts == 1
        assert outcome.blob_deleted
        assert rag.points == {}
        assert storage.deleted == ["u1/doc-1.pdf"]
        assert await db.do_count_chunks("doc-1") == 0
        assert "doc-1" not in db.documents
        assert fake_redis.store == {}

    async def test_vector_delete_is_retried_with_backoff(self, service, db, rag, sleeps):
        seed(db, rag)
        rag.delete_failures = 2

        outcome = await service.do_delete("doc-1")

        assert outcome.deleted
        assert outcome.vector_attempts == 3
        assert sleeps == [1.0, 2.0]
        assert await db.do_count_chunks("doc-1") == 0

    async def test_blob_failure_does_not_block(self, service, db, rag, storage):
        seed(db, rag)
        storage.fail = True

        outcome = await service.do_delete("doc-1")

        assert outcome.deleted
        assert not outcome.blob_deleted
        assert "doc-1" not in db.documents

    async def test_rows_go_in_one_statement(self, service, db, rag):
        seed(db, rag)

        await service.do_delete("doc-1")

        assert db.calls.count("delete_document") == 1
        assert db.chunks_of("doc-1") == []

    async def test_other_documents_are_untouched(self, service, db, rag):
        seed(db, rag, "doc-1")
        seed(db, rag, "doc-2")

        await service.do_delete("doc-1")

        assert set(db.documents) == {"doc-2"}
        assert len(db.chunks_of("doc-2")) == 4
        assert all(point.payload.document_id == "doc-2" for point in rag.points.values())


class TestDoDeleteFailures:
    async def test_vector_failure_keeps_all_rows(self, service, db, rag, storage, sleeps):
        seed(db, rag)
        rag.delete_failures = 3

        with pytest.raises(CascadeDeleteError) as exc_info:
            await service.do_delete("doc-1")

        assert exc_info.value.code == CascadeDeleteErrorCode.VECTOR_DELETE_FAILED
        assert rag.delete_attempts == 3
        assert sleeps == [1.0, 2.0]
        assert "doc-1" in db.documents
        assert len(db.chunks_of("doc-1")) == 4
        assert storage.deleted == []

    async def test_missing_document(self, service, rag):
        with pytest.raises(CascadeDeleteError) as exc_info:
            await service.do_delete("ghost")

        assert exc_info.value.code == CascadeDeleteErrorCode.DOCUMENT_NOT_FOUND
        assert rag.delete_attempts == 0

    async def test_foreign_document_is_not_found(self, service, db, rag):
        seed(db, rag, owner_id="u1")

        with pytest.raises(CascadeDeleteError) as exc_info:
            await service.do_delete("doc-1", owner_id="u2")

        assert exc_info.value.code == CascadeDeleteErrorCode.DOCUMENT_NOT_FOUND
        assert "doc-1" in db.documents

    async def test_second_delete_reports_not_found(self, service, db, rag):
        seed(db, rag)
        await service.do_delete("doc-1")

        with pytest.raises(CascadeDeleteError) as exc_info:
            await service.do_delete("doc-1")

        assert exc_info.value.code == CascadeDeleteErrorCode.DOCUMENT_NOT_FOUND

    async def test_row_failure(self, service, db, rag):
        seed(db, rag)
        db.fail_delete_rows = True

        with pytest.raises(CascadeDeleteError) as exc_info:
            await service.do_delete("doc-1")

        assert exc_info.value.code == CascadeDeleteErrorCode.DATABASE_DELETE_FAILED
        assert rag.points == {}
        assert db.documents["doc-1"].status == DocumentStatus.READY
        assert len(db.chunks_of("doc-1")) == 4


class TestDoDeleteMany:
    async def test_failures_do_not_affect_other_documents(self, service, db, rag):
        seed(db, rag, "doc-1")
        seed(db, rag, "doc-2")

        outcomes = await service.do_delete_many(["doc-1", "ghost", "doc-2"])

        assert [o.deleted for o in outcomes] == [True, False, True]
        assert outcomes[1].error_code == "DOCUMENT_NOT_FOUND"
        assert db.documents == {}
