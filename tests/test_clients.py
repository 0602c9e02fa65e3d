"""
Tests for the HTTP backend clients against httpx.MockTransport.
"""

import json

import httpx
import pytest

from shared.clients.ClientInterface import ClientRequestError
from shared.clients.db.supabase.DBClientSupabase import DBClientSupabase
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.embed.ollama.EmbedClientOllama import EmbedClientOllama
from shared.clients.embed.openai.EmbedClientOpenai import EmbedClientOpenai
from shared.clients.llm.ollama.LLMClientOllama import LLMClientOllama
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.rag.models.VectorPoint import VectorPayload, VectorPoint
from shared.clients.rag.qdrant.RAGClientQdrant import RAGClientQdrant
from shared.clients.storage.supabase.StorageClientSupabase import StorageClientSupabase
from shared.models.answer import ChatMessage, GenerationOptions
from shared.models.document import ChunkDraft, DocumentStatus, InvalidStatusTransition
from shared.models.errors import EmbeddingError, EmbeddingErrorCode
from shared.models.retrieval import SearchFilter


class Recorder:
    """MockTransport handler recording requests and answering from a callable."""

    def __init__(self, respond):
        self.respond = respond
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)


async def booted(client, respond) -> Recorder:
    recorder = Recorder(respond)
    client.use_transport(httpx.MockTransport(recorder))
    await client.boot()
    return recorder


@pytest.fixture
def env(monkeypatch):
    values = {
        "RAG_ENGINE": "qdrant",
        "RAG_QDRANT_BASE_URL": "http://qdrant:6333",
        "RAG_QDRANT_API_KEY": "secret",
        "EMBED_ENGINE": "ollama",
        "EMBED_MODEL": "nomic-embed-text",
        "EMBED_DIMENSION": "4",
        "EMBED_OLLAMA_BASE_URL": "http://ollama:11434",
        "EMBED_OPENAI_API_KEY": "sk-test",
        "LLM_CHAT_MODEL": "llama3",
        "LLM_OLLAMA_BASE_URL": "http://ollama:11434",
        "DB_SUPABASE_BASE_URL": "http://supabase",
        "DB_SUPABASE_API_KEY": "service-key",
        "STORAGE_SUPABASE_BASE_URL": "http://supabase",
        "STORAGE_SUPABASE_API_KEY": "service-key",
    }
    for key, value in values.items():
        monkeypatch.setenv(key, value)
    return values


class TestClientManagers:
    def test_engine_is_resolved_from_environment(self, env, helper_config):
        assert isinstance(RAGClientManager(helper_config).get_client(), RAGClientQdrant)
        assert isinstance(EmbedClientManager(helper_config).get_client(), EmbedClientOllama)

    def test_unknown_engine(self, env, helper_config, monkeypatch):
        monkeypatch.setenv("RAG_ENGINE", "pinecone")
        with pytest.raises(ValueError):
            RAGClientManager(helper_config)

    def test_missing_required_config(self, env, helper_config, monkeypatch):
        monkeypatch.delenv("RAG_QDRANT_BASE_URL")
        with pytest.raises(ValueError):
            RAGClientQdrant(helper_config)


class TestRAGClientQdrant:
    async def test_search_is_scoped_by_owner_and_document(self, env, helper_config):
        client = RAGClientQdrant(helper_config)
        recorder = await booted(
            client,
            lambda r: httpx.Response(200, json={"result": [{"id": "c1", "score": 0.87, "payload": {"chunk_index": 3}}]}),
        )

        hits = await client.do_search([0.1] * 4, top_k=10, min_score=0.3, search_filter=SearchFilter(owner_id="u1", document_id="doc-1"))

        request = recorder.requests[0]
        body = json.loads(request.content)
        assert request.url.path == "/collections/document_chunks/points/search"
        assert request.headers["api-key"] == "secret"
        assert body["limit"] == 10
        assert body["score_threshold"] == 0.3
        assert body["filter"]["must"] == [
            {"key": "owner_id", "match": {"value": "u1"}},
            {"key": "document_id", "match": {"value": "doc-1"}},
        ]
        assert hits[0].id == "c1"
        assert hits[0].score == 0.87
        assert hits[0].payload["chunk_index"] == 3

    async def test_upsert_waits_for_the_write(self, env, helper_config):
        client = RAGClientQdrant(helper_config)
        recorder = await booted(client, lambda r: httpx.Response(200, json={"result": {}}))
        point = VectorPoint(
            id="c1",
            vector=[0.1] * 4,
            payload=VectorPayload(owner_id="u1", document_id="doc-1", chunk_id="c1", chunk_index=0, dimension=4, provider="ollama"),
        )

        await client.do_upsert_batch([point])

        request = recorder.requests[0]
        assert request.method == "PUT"
        assert request.url.params["wait"] == "true"
        assert json.loads(request.content)["points"][0]["payload"]["owner_id"] == "u1"

    async def test_empty_batches_send_nothing(self, env, helper_config):
        client = RAGClientQdrant(helper_config)
        recorder = await booted(client, lambda r: httpx.Response(200))

        await client.do_upsert_batch([])
        await client.do_delete_batch([])

        assert recorder.requests == []

    async def test_delete_failure_raises(self, env, helper_config):
        client = RAGClientQdrant(helper_config)
        await booted(client, lambda r: httpx.Response(503, text="unavailable"))

        with pytest.raises(ClientRequestError) as exc_info:
            await client.do_delete_batch(["c1"])

        assert exc_info.value.status_code == 503

    async def test_collection_is_created_when_missing(self, env, helper_config):
        client = RAGClientQdrant(helper_config)

        def respond(request):
            if request.url.path.endswith("/exists"):
                return httpx.Response(200, json={"result": {"exists": False}})
            return httpx.Response(200, json={"result": True})

        recorder = await booted(client, respond)

        await client.do_ensure_collection(vector_size=4, distance="Cosine")

        create = recorder.requests[1]
        assert create.method == "PUT"
        assert json.loads(create.content) == {"vectors": {"size": 4, "distance": "Cosine"}}


class TestEmbedClients:
    async def test_ollama_embed(self, env, helper_config):
        client = EmbedClientOllama(helper_config)
        recorder = await booted(client, lambda r: httpx.Response(200, json={"embeddings": [[0.1] * 4, [0.2] * 4]}))

        vectors = await client.do_embed(["a", "b"])

        assert vectors == [[0.1] * 4, [0.2] * 4]
        assert json.loads(recorder.requests[0].content) == {"model": "nomic-embed-text", "input": ["a", "b"], "truncate": True}
        assert client.get_namespace() == "ollama:nomic-embed-text"

    async def test_ollama_payload_options(self, env, helper_config, monkeypatch):
        monkeypatch.setenv("EMBED_OLLAMA_TRUNCATE", "false")
        monkeypatch.setenv("EMBED_OLLAMA_KEEP_ALIVE", "10m")
        client = EmbedClientOllama(helper_config)

        payload = client.get_embed_payload(["a"])

        assert payload["truncate"] is False
        assert payload["keep_alive"] == "10m"

    async def test_ollama_null_vector_is_rejected(self, env, helper_config):
        client = EmbedClientOllama(helper_config)
        await booted(client, lambda r: httpx.Response(200, json={"embeddings": [[0.1] * 4, None]}))

        with pytest.raises(ValueError, match="position 1"):
            await client.do_embed(["a", "b"])

    async def test_vector_count_must_match_inputs(self, env, helper_config):
        client = EmbedClientOllama(helper_config)
        await booted(client, lambda r: httpx.Response(200, json={"embeddings": [[0.1] * 4]}))

        with pytest.raises(ValueError):
            await client.do_embed(["a", "b"])

    async def test_error_status_raises(self, env, helper_config):
        client = EmbedClientOllama(helper_config)
        await booted(client, lambda r: httpx.Response(429, text="rate limited"))

        with pytest.raises(ClientRequestError) as exc_info:
            await client.do_embed("a")

        assert exc_info.value.status_code == 429

    async def test_reported_dimension_mismatch(self, env, helper_config):
        client = EmbedClientOllama(helper_config)
        recorder = await booted(client, lambda r: httpx.Response(200, json={"model_info": {"nomic-bert.embedding_length": 768}}))

        with pytest.raises(EmbeddingError) as exc_info:
            await client.do_validate_dimension()

        assert exc_info.value.code == EmbeddingErrorCode.DIMENSION_MISMATCH
        assert json.loads(recorder.requests[-1].content) == {"model": "nomic-embed-text"}

    async def test_openai_restores_input_order(self, env, helper_config):
        client = EmbedClientOpenai(helper_config)
        recorder = await booted(
            client,
            lambda r: httpx.Response(200, json={"data": [{"index": 1, "embedding": [2.0] * 4}, {"index": 0, "embedding": [1.0] * 4}]}),
        )

        vectors = await client.do_embed(["first", "second"])

        assert vectors == [[1.0] * 4, [2.0] * 4]
        assert recorder.requests[0].headers["Authorization"] == "Bearer sk-test"
        # no dimension endpoint, configuration is trusted
        await client.do_validate_dimension()


class TestLLMClientOllama:
    async def test_stream_yields_fragments(self, env, helper_config):
        client = LLMClientOllama(helper_config)
        lines = [
            {"message": {"content": "Hel"}, "done": False},
            {"message": {"content": ""}, "done": False},
            {"message": {"content": "lo"}, "done": False},
            {"message": {"content": ""}, "done": True},
        ]
        body = "\n".join(json.dumps(line) for line in lines).encode()
        recorder = await booted(client, lambda r: httpx.Response(200, content=body))

        fragments = [
            f async for f in client.do_stream_chat([ChatMessage(role="user", content="hi")], GenerationOptions(max_tokens=300))
        ]

        assert fragments == ["Hel", "lo"]
        payload = json.loads(recorder.requests[0].content)
        assert payload["stream"] is True
        assert payload["options"]["num_predict"] == 300
        assert payload["messages"] == [{"role": "user", "content": "hi"}]

    async def test_stream_error_status(self, env, helper_config):
        client = LLMClientOllama(helper_config)
        await booted(client, lambda r: httpx.Response(500, text="model not loaded"))

        with pytest.raises(ClientRequestError):
            async for _ in client.do_stream_chat([ChatMessage(role="user", content="hi")]):
                pass

    async def test_stream_error_line(self, env, helper_config):
        client = LLMClientOllama(helper_config)
        await booted(client, lambda r: httpx.Response(200, content=b'{"error": "out of memory"}\n'))

        with pytest.raises(ValueError):
            async for _ in client.do_stream_chat([ChatMessage(role="user", content="hi")]):
                pass

    async def test_chat(self, env, helper_config):
        client = LLMClientOllama(helper_config)
        await booted(client, lambda r: httpx.Response(200, json={"message": {"role": "assistant", "content": "Hello"}}))

        assert await client.do_chat([ChatMessage(role="user", content="hi")]) == "Hello"


class TestDBClientSupabase:
    async def test_missing_document_is_none(self, env, helper_config):
        client = DBClientSupabase(helper_config)
        recorder = await booted(client, lambda r: httpx.Response(200, json=[]))

        assert await client.do_get_document("doc-1") is None
        request = recorder.requests[0]
        assert request.url.params["id"] == "eq.doc-1"
        assert request.headers["apikey"] == "service-key"

    async def test_document_row_is_mapped(self, env, helper_config):
        client = DBClientSupabase(helper_config)
        row = {"id": "doc-1", "user_id": "u1", "status": "READY", "chunks_count": 3, "metadata": None}
        await booted(client, lambda r: httpx.Response(200, json=[row]))

        document = await client.do_get_document("doc-1")

        assert document.owner_id == "u1"
        assert document.status == DocumentStatus.READY
        assert document.metadata == {}

    async def test_count_from_content_range(self, env, helper_config):
        client = DBClientSupabase(helper_config)
        recorder = await booted(client, lambda r: httpx.Response(200, headers={"Content-Range": "0-24/25"}))

        assert await client.do_count_chunks("doc-1") == 25
        request = recorder.requests[0]
        assert request.method == "HEAD"
        assert request.headers["Prefer"] == "count=exact"

    async def test_missing_count_raises(self, env, helper_config):
        client = DBClientSupabase(helper_config)
        await booted(client, lambda r: httpx.Response(200, headers={"Content-Range": "0-24/*"}))

        with pytest.raises(ValueError):
            await client.do_count_chunks("doc-1")

    async def test_insert_chunks_in_one_request(self, env, helper_config):
        client = DBClientSupabase(helper_config)

        def respond(request):
            rows = json.loads(request.content)
            return httpx.Response(201, json=[{**row, "id": f"id-{row['chunk_index']}"} for row in reversed(rows)])

        recorder = await booted(client, respond)
        drafts = [ChunkDraft(document_id="doc-1", chunk_index=i, content=f"text {i}") for i in range(3)]

        chunks = await client.do_insert_chunks(drafts)

        assert len(recorder.requests) == 1
        assert recorder.requests[0].headers["Prefer"] == "return=representation"
        assert [c.chunk_index for c in chunks] == [0, 1, 2]
        assert chunks[0].id == "id-0"

    async def test_mark_failed_merges_metadata(self, env, helper_config):
        client = DBClientSupabase(helper_config)
        row = {"id": "doc-1", "user_id": "u1", "status": "EMBEDDING", "metadata": {"source": "upload"}}

        def respond(request):
            if request.method == "GET":
                return httpx.Response(200, json=[row])
            return httpx.Response(204)

        recorder = await booted(client, respond)

        await client.do_mark_document_failed("doc-1", "BATCH_FAILED", "batches 2,4 failed")

        patch = json.loads(recorder.requests[1].content)
        assert patch["status"] == "FAILED"
        assert patch["metadata"]["source"] == "upload"
        assert patch["metadata"]["error"]["type"] == "BATCH_FAILED"
        assert "timestamp" in patch["metadata"]["error"]


    async def test_illegal_status_write_sends_nothing(self, env, helper_config):
        client = DBClientSupabase(helper_config)
        recorder = await booted(client, lambda r: httpx.Response(204))

        with pytest.raises(InvalidStatusTransition):
            await client.do_update_document("doc-1", {"status": DocumentStatus.READY}, current=DocumentStatus.PENDING)

        assert recorder.requests == []

    async def test_document_delete_is_one_request(self, env, helper_config):
        client = DBClientSupabase(helper_config)
        recorder = await booted(client, lambda r: httpx.Response(204))

        await client.do_delete_document("doc-1")

        assert [(r.method, r.url.path) for r in recorder.requests] == [("DELETE", "/rest/v1/documents")]
        assert recorder.requests[0].url.params["id"] == "eq.doc-1"

class TestStorageClientSupabase:
    async def test_delete_file(self, env, helper_config):
        client = StorageClientSupabase(helper_config)
        recorder = await booted(client, lambda r: httpx.Response(200, json=[]))

        await client.do_delete_file("u1/doc-1.pdf")

        request = recorder.requests[0]
        assert request.method == "DELETE"
        assert request.url.path == "/storage/v1/object/documents"
        assert json.loads(request.content) == {"prefixes": ["u1/doc-1.pdf"]}
