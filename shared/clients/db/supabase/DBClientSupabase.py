import httpx

from shared.clients.db.DBClientInterface import DBClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.document import ChunkDraft, ChunkRecord, DocumentRecord


class DBClientSupabase(DBClientInterface):
    """Relational store on Supabase, addressed through its PostgREST API."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._documents_table = self.get_config_val("DOCUMENTS_TABLE", default="documents", val_type="string")
        self._chunks_table = self.get_config_val("CHUNKS_TABLE", default="document_chunks", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Supabase"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
            EnvConfig(env_key="DOCUMENTS_TABLE", val_type="string", default="documents"),
            EnvConfig(env_key="CHUNKS_TABLE", val_type="string", default="document_chunks"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        # service role key: bypasses row level security
        return {"apikey": self._api_key, "Authorization": f"Bearer {self._api_key}"}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/rest/v1/"

    def _get_endpoint_documents(self) -> str:
        return f"/rest/v1/{self._documents_table}"

    def _get_endpoint_chunks(self) -> str:
        return f"/rest/v1/{self._chunks_table}"

    ##########################################
    ############ PARAMS BUILDER ##############
    ##########################################

    def get_document_params(self, document_id: str) -> dict:
        return {"id": f"eq.{document_id}"}

    def get_chunks_params(self, document_id: str, columns: str = "*", ordered: bool = True) -> dict:
        params = {"document_id": f"eq.{document_id}", "select": columns}
        if ordered:
            params["order"] = "chunk_index.asc"
        return params

    def get_chunk_params(self, chunk_id: str) -> dict:
        return {"id": f"eq.{chunk_id}"}

    def get_count_headers(self) -> dict:
        return {"Prefer": "count=exact"}

    def get_return_rows_headers(self) -> dict:
        return {"Prefer": "return=representation"}

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_document_update_payload(self, fields: dict) -> dict:
        payload = dict(fields)
        # owner column is named after the auth user
        if "owner_id" in payload:
            payload["user_id"] = payload.pop("owner_id")
        return payload

    def get_chunk_insert_payload(self, drafts: list[ChunkDraft]) -> list[dict]:
        return [
            {
                "document_id": d.document_id,
                "chunk_index": d.chunk_index,
                "content": d.content,
                "metadata": {"length": d.length},
            }
            for d in drafts
        ]

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_document(self, row: dict) -> DocumentRecord:
        return DocumentRecord(
            id=str(row["id"]),
            owner_id=str(row.get("user_id") or row.get("owner_id") or ""),
            status=row.get("status") or "PENDING",
            filename=row.get("filename"),
            storage_path=row.get("storage_path"),
            content_length=row.get("content_length") or 0,
            chunks_count=row.get("chunks_count") or 0,
            metadata=row.get("metadata") or {},
            created_at=row.get("created_at"),
        )

    def extract_chunk(self, row: dict) -> ChunkRecord:
        return ChunkRecord(
            id=str(row["id"]),
            document_id=str(row["document_id"]),
            chunk_index=int(row["chunk_index"]),
            content=row.get("content") or "",
            embedding_id=row.get("embedding_id") or "",
            metadata=row.get("metadata") or {},
        )

    def extract_count(self, response: httpx.Response) -> int:
        # Content-Range: 0-24/25 or */0
        content_range = response.headers.get("content-range", "")
        total = content_range.rsplit("/", 1)[-1] if "/" in content_range else ""
        if not total or total == "*":
            raise ValueError(f"Supabase did not report a row count (Content-Range: '{content_range}').")
        return int(total)
