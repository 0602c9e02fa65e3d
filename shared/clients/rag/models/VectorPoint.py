"""VectorPoint model: one vector record as written to the vector index."""

from pydantic import BaseModel, Field

CONTENT_PREVIEW_CHARS = 500


class VectorPayload(BaseModel):
    """Metadata stored alongside each chunk vector.

    The owner_id field is mandatory and scopes every search, so a vector
    can never be returned to a user who does not own its document.

    Attributes:
        owner_id:     Id of the document owner. Mandatory.
        document_id:  Id of the document the chunk belongs to.
        chunk_id:     Id of the chunk row; identical to the point id.
        chunk_index:  Zero-based position of the chunk within the document.
        content:      Preview of the chunk text, truncated to CONTENT_PREVIEW_CHARS.
        length:       Full length of the chunk text in characters.
        dimension:    Vector dimension at write time.
        provider:     Embedding provider namespace at write time.
    """

    owner_id: str
    document_id: str
    chunk_id: str
    chunk_index: int
    content: str = ""
    length: int = 0
    dimension: int
    provider: str


class VectorPoint(BaseModel):
    """A vector record. id is the chunk id, so each chunk owns at most one point."""

    id: str
    vector: list[float] = Field(default_factory=list)
    payload: VectorPayload

    def to_backend_dict(self) -> dict:
        return {"id": self.id, "vector": self.vector, "payload": self.payload.model_dump()}
