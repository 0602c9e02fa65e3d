from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.models.config import EnvConfig
from shared.models.retrieval import SearchFilter, SearchHit


class RAGClientQdrant(RAGClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._collection_name = self.get_config_val("COLLECTION", default="document_chunks", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Qdrant"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="COLLECTION", val_type="string", default="document_chunks"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"api-key": f"{self._api_key}"}
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/healthz"

    def _get_endpoint_points(self) -> str:
        return f"/collections/{self._collection_name}/points"

    def _get_endpoint_search(self) -> str:
        return f"/collections/{self._collection_name}/points/search"

    def _get_endpoint_delete_points(self) -> str:
        return f"/collections/{self._collection_name}/points/delete"

    def _get_endpoint_check_collection_existence(self) -> str:
        return f"/collections/{self._collection_name}/exists"

    def _get_endpoint_create_collection(self) -> str:
        return f"/collections/{self._collection_name}"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_filter(self, search_filter: SearchFilter) -> dict:
        must = [{"key": "owner_id", "match": {"value": search_filter.owner_id}}]
        if search_filter.document_id is not None:
            must.append({"key": "document_id", "match": {"value": search_filter.document_id}})
        return {"must": must}

    def get_search_payload(self, vector: list[float], top_k: int, min_score: float, search_filter: SearchFilter) -> dict:
        return {
            "vector": vector,
            "limit": top_k,
            "score_threshold": min_score,
            "filter": self.get_filter(search_filter),
            "with_payload": True,
            "with_vector": False,
        }

    def get_delete_payload(self, ids: list[str]) -> dict:
        return {"points": ids}

    def get_create_collection_payload(self, vector_size: int, distance: str) -> dict:
        return {"vectors": {"size": vector_size, "distance": distance}}

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_search_hits(self, raw_response: dict) -> list[SearchHit]:
        hits = []
        for point in raw_response.get("result", []) or []:
            hits.append(
                SearchHit(
                    id=str(point.get("id")),
                    score=float(point.get("score", 0.0)),
                    payload=point.get("payload") or {},
                )
            )
        return hits

    def extract_collection_exists(self, raw_response: dict) -> bool:
        return bool(raw_response.get("result", {}).get("exists"))
