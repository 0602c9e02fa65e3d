"""
Pytest configuration and in-memory fakes for the pipeline test suite.

The fakes stand in for the external stores and providers; services under test
receive them through their constructors exactly like the real clients.
"""

import fnmatch
import logging

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from shared.clients.cache.CacheClientRedis import CacheClientRedis
from shared.clients.rag.models.VectorPoint import VectorPoint
from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperTasks import HelperTasks
from shared.logging.logging_setup import ColorLogger
from shared.models.answer import ChatMessage, GenerationOptions
from shared.models.config import PipelineSettings
from shared.models.document import ChunkDraft, ChunkRecord, DocumentRecord, DocumentStatus, ensure_transition
from shared.models.retrieval import SearchFilter, SearchHit

DIMENSION = 8


##########################################
################ FAKES ###################
##########################################


class FakeDBClient:
    """Relational store kept in two dicts."""

    def __init__(self):
        self.documents: dict[str, DocumentRecord] = {}
        self.chunks: dict[str, ChunkRecord] = {}
        self.fail_insert = False
        self.fail_delete_rows = False
        self.calls: list[str] = []

    def add_document(self, document_id="doc-1", owner_id="user-1", status=DocumentStatus.PENDING, **fields) -> DocumentRecord:
        document = DocumentRecord(id=document_id, owner_id=owner_id, status=status, **fields)
        self.documents[document_id] = document
        return document

    def add_chunks(self, document_id: str, count: int) -> list[ChunkRecord]:
        created = []
        for i in range(count):
            chunk = ChunkRecord(id=f"{document_id}-c{i}", document_id=document_id, chunk_index=i, content=f"chunk {i} of {document_id}")
            self.chunks[chunk.id] = chunk
            created.append(chunk)
        return created

    def chunks_of(self, document_id: str) -> list[ChunkRecord]:
        return sorted((c for c in self.chunks.values() if c.document_id == document_id), key=lambda c: c.chunk_index)

    async def do_get_document(self, document_id):
        self.calls.append("get_document")
        document = self.documents.get(document_id)
        return document.model_copy(deep=True) if document else None

    async def do_update_document(self, document_id, fields, current=None):
        self.calls.append("update_document")
        if current is not None and "status" in fields:
            ensure_transition(current, DocumentStatus(fields["status"]))
        document = self.documents[document_id]
        self.documents[document_id] = document.model_copy(update=dict(fields))

    async def do_mark_document_failed(self, document_id, error_type, message):
        document = self.documents.get(document_id)
        if document is None:
            return
        metadata = dict(document.metadata)
        metadata["error"] = {"type": error_type, "message": message, "timestamp": "now"}
        await self.do_update_document(document_id, {"status": DocumentStatus.FAILED, "metadata": metadata}, current=document.status)

    async def do_delete_document(self, document_id):
        """Removes the document and, like the foreign key cascade, its chunk rows."""
        self.calls.append("delete_document")
        if self.fail_delete_rows:
            raise RuntimeError("database unavailable")
        self.documents.pop(document_id, None)
        for chunk in self.chunks_of(document_id):
            del self.chunks[chunk.id]

    async def do_insert_chunks(self, drafts: list[ChunkDraft]):
        self.calls.append("insert_chunks")
        if self.fail_insert:
            raise RuntimeError("insert rejected")
        keys = {(c.document_id, c.chunk_index) for c in self.chunks.values()}
        if any((d.document_id, d.chunk_index) in keys for d in drafts):
            raise RuntimeError("duplicate key value violates unique constraint")
        created = []
        for d in drafts:
            chunk = ChunkRecord(id=f"{d.document_id}-c{d.chunk_index}", document_id=d.document_id, chunk_index=d.chunk_index, content=d.content)
            self.chunks[chunk.id] = chunk
            created.append(chunk)
        return created

    async def do_list_chunks(self, document_id):
        return [c.model_copy() for c in self.chunks_of(document_id)]

    async def do_list_chunk_ids(self, document_id):
        return [c.id for c in self.chunks_of(document_id)]

    async def do_count_chunks(self, document_id):
        return len(self.chunks_of(document_id))

    async def do_mark_chunks_embedded(self, chunk_ids):
        for chunk_id in chunk_ids:
            self.chunks[chunk_id] = self.chunks[chunk_id].model_copy(update={"embedding_id": chunk_id})


class FakeRAGClient:
    """Vector index keeping points by id; search returns the configured hits."""

    def __init__(self):
        self.points: dict[str, VectorPoint] = {}
        self.search_hits: list[SearchHit] = []
        self.search_calls: list[dict] = []
        self.delete_failures = 0
        self.delete_attempts = 0
        self.fail_upsert = False

    async def do_upsert_batch(self, points):
        if self.fail_upsert:
            raise RuntimeError("index unavailable")
        for point in points:
            self.points[point.id] = point

    async def do_search(self, vector, top_k, min_score, search_filter: SearchFilter):
        self.search_calls.append({"vector": vector, "top_k": top_k, "min_score": min_score, "filter": search_filter})
        return list(self.search_hits)

    async def do_delete_batch(self, ids):
        self.delete_attempts += 1
        if self.delete_failures > 0:
            self.delete_failures -= 1
            raise RuntimeError("index timeout")
        for point_id in ids:
            self.points.pop(point_id, None)


class FakeEmbedClient:
    """Embedding provider returning constant vectors unless a handler is set."""

    embed_model = "test-model"
    embed_distance = "Cosine"

    def __init__(self, dimension: int = DIMENSION):
        self.dimension = dimension
        self.calls: list[list[str]] = []
        self.handler = None

    def get_dimension(self):
        return self.dimension

    def get_namespace(self):
        return "fake:test-model"

    def get_engine_name(self):
        return "fake"

    async def do_embed(self, texts):
        texts = [texts] if isinstance(texts, str) else texts
        self.calls.append(list(texts))
        if self.handler is not None:
            return await self.handler(texts)
        return [[0.1] * self.dimension for _ in texts]


class FakeLLMClient:
    """LLM provider streaming a fixed list of fragments."""

    def __init__(self, fragments=None):
        self.fragments = list(fragments or ["Hello", " world"])
        self.fail_after: int | None = None
        self.error: Exception = RuntimeError("provider crashed")
        self.messages: list[ChatMessage] = []
        self.options: GenerationOptions | None = None
        self.closed = False

    async def do_stream_chat(self, messages, options=None):
        self.messages = messages
        self.options = options
        try:
            for i, fragment in enumerate(self.fragments):
                if self.fail_after is not None and i == self.fail_after:
                    raise self.error
                yield fragment
        finally:
            self.closed = True


class FakeStorageClient:
    def __init__(self):
        self.deleted: list[str] = []
        self.fail = False

    async def do_delete_file(self, path):
        if self.fail:
            raise RuntimeError("storage unavailable")
        self.deleted.append(path)


class FakeRedis:
    """The subset of redis.asyncio.Redis used by CacheClientRedis. TTLs are recorded, never enforced."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("connection refused")

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        value = self.store.get(key)
        # decode_responses=True decodes stored bytes on read
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def setex(self, key, ttl, value):
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl

    async def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    async def scan_iter(self, match="*", count=100):
        self._check()
        for key in list(self.store):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def aclose(self):
        pass


##########################################
############### FIXTURES #################
##########################################


@pytest.fixture
def helper_config():
    return HelperConfig(logger=ColorLogger(logging.getLogger("docqa-test")))


@pytest.fixture
def settings():
    return PipelineSettings()


@pytest.fixture
def tasks(helper_config):
    return HelperTasks(helper_config.get_logger())


@pytest.fixture
def db():
    return FakeDBClient()


@pytest.fixture
def rag():
    return FakeRAGClient()


@pytest.fixture
def embed():
    return FakeEmbedClient()


@pytest.fixture
def llm():
    return FakeLLMClient()


@pytest.fixture
def storage():
    return FakeStorageClient()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache_client(helper_config, fake_redis):
    return CacheClientRedis(helper_config, redis_client=fake_redis)
