from abc import abstractmethod
import json

import httpx
from shared.clients.ClientInterface import ClientInterface
from shared.clients.rag.models.VectorPoint import VectorPoint
from shared.models.retrieval import SearchFilter, SearchHit

from shared.helper.HelperConfig import HelperConfig


class RAGClientInterface(ClientInterface):
    """Vector index contract: upsert, similarity search and idempotent delete by id."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "rag"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_points(self) -> str:
        """
        Returns the endpoint path for point upsert requests (e.g. "/collections/my_col/points").
        """
        pass

    @abstractmethod
    def _get_endpoint_search(self) -> str:
        """
        Returns the endpoint path for similarity search requests (e.g. "/collections/my_col/points/search").
        """
        pass

    @abstractmethod
    def _get_endpoint_delete_points(self) -> str:
        """
        Returns the endpoint path for deleting points (e.g. "/collections/my_col/points/delete").
        """
        pass

    @abstractmethod
    def _get_endpoint_check_collection_existence(self) -> str:
        """
        Returns the endpoint path for collection existence checks.
        """
        pass

    @abstractmethod
    def _get_endpoint_create_collection(self) -> str:
        """
        Returns the endpoint path for collection creation.
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_filter(self, search_filter: SearchFilter) -> dict:
        """Translate the generic search scope into the backend's filter syntax.

        Args:
            search_filter (SearchFilter): owner (mandatory) and optional document scope.

        Returns:
            dict: The backend-specific filter.
        """
        pass

    @abstractmethod
    def get_search_payload(self, vector: list[float], top_k: int, min_score: float, search_filter: SearchFilter) -> dict:
        """Builds the backend-specific request payload for a similarity search."""
        pass

    @abstractmethod
    def get_delete_payload(self, ids: list[str]) -> dict:
        """Builds the backend-specific request payload for deleting points by id."""
        pass

    @abstractmethod
    def get_create_collection_payload(self, vector_size: int, distance: str) -> dict:
        """Builds the backend-specific request payload for creating the collection."""
        pass

    ################ RESPONSE PARSER ##################
    @abstractmethod
    def extract_search_hits(self, raw_response: dict) -> list[SearchHit]:
        """Extracts scored candidates from a raw search response, in backend order."""
        pass

    @abstractmethod
    def extract_collection_exists(self, raw_response: dict) -> bool:
        """Extracts the existence flag from a raw existence check response."""
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_existence_check(self) -> bool:
        """Check if the collection exists in the vector backend."""
        resp = await self.do_request(
            method="GET",
            endpoint=self._get_endpoint_check_collection_existence(),
            raise_on_error=True,
        )
        return self.extract_collection_exists(resp.json())

    async def do_create_collection(self, vector_size: int, distance: str = "Cosine") -> httpx.Response:
        """Create the collection with the given vector size and distance metric."""
        return await self.do_request(
            method="PUT",
            json=self.get_create_collection_payload(vector_size, distance),
            endpoint=self._get_endpoint_create_collection(),
            raise_on_error=True,
        )

    async def do_ensure_collection(self, vector_size: int, distance: str = "Cosine") -> None:
        """Create the collection unless it already exists."""
        if await self.do_existence_check():
            self.logging.info("Vector collection on '%s' already exists.", self.get_engine_name())
            return
        await self.do_create_collection(vector_size=vector_size, distance=distance)
        self.logging.info(
            "Created vector collection on '%s' (size=%d, distance=%s).",
            self.get_engine_name(), vector_size, distance,
        )

    async def do_upsert_batch(self, points: list[VectorPoint]) -> None:
        """Upsert points into the collection.
        Inserts new points or replaces existing ones with the same id.

        Raises:
            ClientRequestError: If the backend rejects the batch.
        """
        if not points:
            return
        await self.do_request(
            method="PUT",
            content=json.dumps({"points": [p.to_backend_dict() for p in points]}),
            endpoint=self._get_endpoint_points(),
            params={"wait": "true"},
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )

    async def do_search(self, vector: list[float], top_k: int, min_score: float, search_filter: SearchFilter) -> list[SearchHit]:
        """Similarity search scoped by the given filter.

        Args:
            vector (list[float]): The query vector.
            top_k (int): Maximum number of candidates.
            min_score (float): Minimum similarity score.
            search_filter (SearchFilter): Owner and document scope.

        Returns:
            list[SearchHit]: Candidates with similarity scores, as ordered by the backend.
        """
        resp = await self.do_request(
            method="POST",
            content=json.dumps(self.get_search_payload(vector, top_k, min_score, search_filter)),
            endpoint=self._get_endpoint_search(),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )
        return self.extract_search_hits(resp.json())

    async def do_delete_batch(self, ids: list[str]) -> None:
        """Delete points by id. Deleting ids that do not exist is a no-op.

        Raises:
            ClientRequestError: If the backend rejects the request.
        """
        if not ids:
            return
        await self.do_request(
            method="POST",
            content=json.dumps(self.get_delete_payload(ids)),
            endpoint=self._get_endpoint_delete_points(),
            params={"wait": "true"},
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )
