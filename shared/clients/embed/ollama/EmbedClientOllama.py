from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class EmbedClientOllama(EmbedClientInterface):
    """Local Ollama embeddings over /api/embed.

    EMBED_OLLAMA_TRUNCATE=false makes Ollama reject chunks longer than the model
    context instead of silently cutting them. EMBED_OLLAMA_KEEP_ALIVE keeps the
    model loaded between ingestion batches (e.g. "10m").
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._truncate = self.get_config_val("TRUNCATE", default=True, val_type="bool")
        self._keep_alive = self.get_config_val("KEEP_ALIVE", default="", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Ollama"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [EnvConfig(env_key="BASE_URL", val_type="string", default=None)]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        # only set behind an authenticating reverse proxy
        return {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return ""

    def _get_endpoint_models(self) -> str:
        return "/api/tags"

    def get_endpoint_embedding(self) -> str:
        return "/api/embed"

    def get_endpoint_model_details(self) -> str:
        return "/api/show"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str]) -> dict:
        payload = {"model": self.embed_model, "input": texts, "truncate": self._truncate}
        if self._keep_alive:
            payload["keep_alive"] = self._keep_alive
        return payload

    def get_model_details_payload(self) -> dict:
        return {"model": self.embed_model}

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_vector_size_from_model_info(self, model_info: dict) -> int:
        # keyed by architecture, e.g. "nomic-bert.embedding_length"
        sizes = [int(v) for k, v in model_info.get("model_info", {}).items() if k.endswith(".embedding_length")]
        if not sizes:
            raise ValueError(f"Ollama reports no embedding length for model {self.embed_model}.")
        return sizes[0]

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Read {"embeddings": [[...], ...]}, already in input order.

        Raises:
            ValueError: If the list is missing or any entry is not a non-empty list.
        """
        embeddings = response_data.get("embeddings")
        if not isinstance(embeddings, list) or not embeddings:
            raise ValueError(f"Ollama returned no embeddings for model {self.embed_model}: keys {list(response_data)}.")
        for position, vector in enumerate(embeddings):
            if not isinstance(vector, list) or not vector:
                raise ValueError(f"Ollama returned an empty or malformed vector at position {position}.")
        return embeddings
