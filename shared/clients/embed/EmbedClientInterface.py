from abc import abstractmethod

import httpx
from shared.clients.ClientInterface import ClientInterface, ClientRequestError
from shared.models.errors import EmbeddingError, EmbeddingErrorCode

from shared.helper.HelperConfig import HelperConfig


class EmbedClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        # model and embedding config
        self.embed_distance = helper_config.get_string_val(f"{self.get_client_type().upper()}_DISTANCE", default="Cosine")
        self.embed_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_MODEL")
        self.embed_dimension = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_DIMENSION"))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "embed"

    def get_dimension(self) -> int:
        """
        Returns the configured vector dimension D. Every vector this client hands out must have exactly D components.
        """
        return self.embed_dimension

    def get_namespace(self) -> str:
        """
        Returns the provider namespace used to scope cached vectors, e.g. "ollama:nomic-embed-text".
        Vectors of different providers or models never share cache keys.
        """
        return f"{self.get_engine_name()}:{self.embed_model}"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_models(self) -> str:
        """
        Returns the endpoint path for model listing requests (e.g. "/api/tags").
        """
        pass

    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """
        Returns the endpoint path for embedding requests (e.g. "/api/embed").
        """
        pass

    @abstractmethod
    def get_endpoint_model_details(self) -> str | None:
        """
        Returns the endpoint path for model details requests (e.g. "/api/show"),
        or None if the backend does not report model dimensions.
        """
        pass

    ################ PAYLOAD BUILDER ##################
    def get_model_details_payload(self) -> dict:
        """Body of the model details request."""
        return {"name": self.embed_model}

    @abstractmethod
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Build the backend-specific request body for an embedding request.

        Args:
            texts (list[str]): The texts to embed.

        Returns:
            dict: JSON-serialisable request body (e.g. {"model": "...", "input": [...]}).
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_vector_size_from_model_info(self, model_info: dict) -> int:
        """
        Extracts the embedding vector size from the model information response.

        Raises:
            ValueError: If the vector size cannot be determined.
        """
        pass

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from a raw embedding API response.

        Response format differs by backend:
        - Ollama /api/embed: {"embeddings": [[...], [...]]} (already ordered)
        - OpenAI-compatible: {"data": [{"embedding": [...], "index": 0}]} (needs sorting)

        Returns:
            list[list[float]]: Embedding vectors in the same order as the input texts.

        Raises:
            ValueError: If the response format is invalid or embeddings are empty.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_models(self) -> httpx.Response:
        """Fetch the list of available embedding models from the backend."""
        return await self.do_request(method="GET", endpoint=self._get_endpoint_models())

    async def do_fetch_embedding_vector_size(self) -> int | None:
        """
        Fetch the output vector dimension the backend reports for the configured model.

        Returns:
            int | None: The reported dimension, or None if the backend has no model details endpoint.
        """
        endpoint = self.get_endpoint_model_details()
        if endpoint is None:
            return None
        response = await self.do_request(
            method="POST",
            json=self.get_model_details_payload(),
            endpoint=endpoint,
            raise_on_error=True,
        )
        return self.extract_vector_size_from_model_info(model_info=response.json())

    async def do_validate_dimension(self) -> None:
        """Compare the model's reported dimension with the configured one.

        Raises:
            EmbeddingError: DIMENSION_MISMATCH if the backend reports a different dimension.
        """
        reported = await self.do_fetch_embedding_vector_size()
        if reported is None:
            self.logging.info(
                "Embed engine '%s' does not report model dimensions; trusting configured dimension %d.",
                self.get_engine_name(), self.embed_dimension,
            )
            return
        if reported != self.embed_dimension:
            raise EmbeddingError(
                EmbeddingErrorCode.DIMENSION_MISMATCH,
                f"Configuration mismatch: model '{self.embed_model}' on '{self.get_engine_name()}' produces "
                f"{reported}D vectors, but EMBED_DIMENSION is {self.embed_dimension}D. "
                "Fix the configuration and re-process all documents.",
            )

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        """Send an embedding request and return the extracted vectors.

        Normalises the input to a list, builds the backend-specific payload via
        get_embed_payload(), sends the request, validates the status, and extracts
        the vectors via extract_embeddings_from_response(). Dimensions are not
        checked here; callers validate against get_dimension().

        Args:
            texts (list[str] | str): One or more texts to embed.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the inputs.

        Raises:
            ClientRequestError: If the backend answers with a non-2xx status.
            ValueError: If the response does not contain one vector per input.
        """
        texts = [texts] if isinstance(texts, str) else texts
        body = self.get_embed_payload(texts)
        response = await self.do_request(method="POST", endpoint=self.get_endpoint_embedding(), json=body)
        if response.status_code != 200:
            self.logging.error(
                "Embedding request failed: status %d, body: %s",
                response.status_code,
                response.text[:200],
            )
            raise ClientRequestError(response.status_code, self.get_endpoint_embedding(), response.text)
        vectors = self.extract_embeddings_from_response(response.json())
        if len(vectors) != len(texts):
            raise ValueError(f"Embedding backend returned {len(vectors)} vectors for {len(texts)} inputs.")
        return vectors
