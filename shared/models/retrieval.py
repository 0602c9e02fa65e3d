"""Pydantic models for retrieval requests and results."""

from pydantic import BaseModel, Field


class RetrievalOptions(BaseModel):
    """Per-call retrieval options."""

    top_k: int = Field(default=5, ge=1)
    min_score: float = 0.3
    use_cache: bool = True


class SearchFilter(BaseModel):
    """Scope of a vector search. owner_id is mandatory on every search."""

    owner_id: str
    document_id: str | None = None


class SearchHit(BaseModel):
    """One raw candidate returned by the vector index."""

    id: str
    score: float
    payload: dict = Field(default_factory=dict)


class RetrievalChunk(BaseModel):
    """A ranked chunk handed to the answer generator."""

    id: str
    document_id: str
    chunk_index: int
    content: str
    score: float


class RetrievalResult(BaseModel):
    """Result of one retrieval.

    Chunks are unique by id and sorted by score descending, then chunk index ascending.
    """

    query: str
    document_id: str
    chunks: list[RetrievalChunk]
    total_found: int
    retrieval_time_ms: int = 0
    cached: bool = False
