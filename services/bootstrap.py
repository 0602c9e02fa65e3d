"""Builds the pipeline from the environment for the runners.

Clients are created by their managers from <TYPE>_ENGINE, booted and
health-checked; every service receives its collaborators explicitly.
"""

from shared.clients.ClientInterface import ClientInterface
from shared.clients.cache.CacheClientRedis import CacheClientRedis
from shared.clients.db.DBClientManager import DBClientManager
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.llm.LLMClientManager import LLMClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.storage.StorageClientManager import StorageClientManager
from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperTasks import HelperTasks
from shared.models.config import PipelineSettings
from services.answering.AnswerService import AnswerService
from services.deletion.CascadeDeleteService import CascadeDeleteService
from services.ingestion.ChunkingService import ChunkingService
from services.ingestion.EmbeddingBatchProcessor import EmbeddingBatchProcessor
from services.ingestion.IngestionService import IngestionService
from services.retrieval.EmbeddingCache import EmbeddingCache
from services.retrieval.QueryVectorizer import QueryVectorizer
from services.retrieval.RetrievalCache import RetrievalCache
from services.retrieval.RetrievalRanker import RetrievalRanker
from services.retrieval.RetrievalService import RetrievalService


class Pipeline:
    """All booted clients and the services wired on top of them."""

    def __init__(self, helper_config: HelperConfig) -> None:
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.settings = PipelineSettings.from_config(helper_config)
        self.tasks = HelperTasks(self.logging)

        self.embed_client = EmbedClientManager(helper_config).get_client()
        self.rag_client = RAGClientManager(helper_config).get_client()
        self.db_client = DBClientManager(helper_config).get_client()
        self.storage_client = StorageClientManager(helper_config).get_client()
        self.llm_client = LLMClientManager(helper_config).get_client()
        self.cache_client = CacheClientRedis(helper_config)

        self.embedding_cache = EmbeddingCache(
            helper_config,
            self.cache_client,
            namespace=self.embed_client.get_namespace(),
            dimension=self.embed_client.get_dimension(),
            ttl_seconds=self.settings.embed_cache_ttl,
        )
        self.retrieval_cache = RetrievalCache(helper_config, self.cache_client, ttl_seconds=self.settings.retrieval_cache_ttl)

        self.ingestion = IngestionService(
            helper_config,
            db_client=self.db_client,
            chunking_service=ChunkingService(helper_config, self.db_client, self.settings),
            batch_processor=EmbeddingBatchProcessor(
                helper_config, self.db_client, self.embed_client, self.rag_client, self.settings,
            ),
            retrieval_cache=self.retrieval_cache,
        )
        self.retrieval = RetrievalService(
            helper_config,
            db_client=self.db_client,
            vectorizer=QueryVectorizer(
                helper_config, self.embed_client, self.settings, self.tasks, embedding_cache=self.embedding_cache,
            ),
            ranker=RetrievalRanker(helper_config, self.rag_client),
            settings=self.settings,
            tasks=self.tasks,
            retrieval_cache=self.retrieval_cache,
        )
        self.answering = AnswerService(helper_config, self.llm_client, self.settings)
        self.deletion = CascadeDeleteService(
            helper_config,
            db_client=self.db_client,
            rag_client=self.rag_client,
            storage_client=self.storage_client,
            settings=self.settings,
            retrieval_cache=self.retrieval_cache,
        )

    def _http_clients(self) -> list[ClientInterface]:
        return [self.embed_client, self.rag_client, self.db_client, self.storage_client, self.llm_client]

    async def boot(self) -> None:
        """Boot and health-check every client, check the embedding dimension and ensure the collection.

        Raises:
            ClientRequestError: If a backend is unhealthy.
            EmbeddingError: DIMENSION_MISMATCH if the model does not produce EMBED_DIMENSION vectors.
        """
        for client in self._http_clients():
            await client.boot()
            await client.do_healthcheck()
            self.logging.debug("Booted %s client '%s'.", client.get_client_type(), client.get_engine_name())
        await self.cache_client.boot()

        await self.embed_client.do_validate_dimension()
        await self.rag_client.do_ensure_collection(
            vector_size=self.embed_client.get_dimension(),
            distance=self.embed_client.embed_distance,
        )
        self.logging.info("Pipeline booted.", color="green")

    async def close(self) -> None:
        await self.tasks.drain()
        for client in self._http_clients():
            await client.close()
        await self.cache_client.close()
