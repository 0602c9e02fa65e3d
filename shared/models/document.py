"""Pydantic models for documents and their chunks as stored in the relational store.

Hierarchy:
  DocumentStatus: lifecycle states with the allowed transitions.
  DocumentRecord: one uploaded document.
  ChunkDraft: a chunk produced by the splitter, not yet persisted.
  ChunkRecord: a persisted chunk row.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class DocumentStatus(str, Enum):
    PENDING = "PENDING"
    PARSING = "PARSING"
    EMBEDDING = "EMBEDDING"
    READY = "READY"
    FAILED = "FAILED"

    def can_transition_to(self, target: "DocumentStatus") -> bool:
        """Forward-only transitions; FAILED is reachable from every state.

        READY is only reached from EMBEDDING. The only way out of FAILED is back
        to EMBEDDING, which re-runs embedding over the chunks already stored.
        """
        if target == DocumentStatus.FAILED:
            return True
        if self == DocumentStatus.FAILED:
            return target == DocumentStatus.EMBEDDING
        if target == DocumentStatus.READY:
            return self == DocumentStatus.EMBEDDING
        return _STATUS_ORDER.index(target) > _STATUS_ORDER.index(self)


_STATUS_ORDER = [
    DocumentStatus.PENDING,
    DocumentStatus.PARSING,
    DocumentStatus.EMBEDDING,
    DocumentStatus.READY,
]


class InvalidStatusTransition(ValueError):
    def __init__(self, current: DocumentStatus, target: DocumentStatus):
        super().__init__(f"Illegal status transition {current.value} -> {target.value}.")
        self.current = current
        self.target = target


def ensure_transition(current: DocumentStatus, target: DocumentStatus) -> None:
    if not current.can_transition_to(target):
        raise InvalidStatusTransition(current, target)


# states from which extracted text may be chunked
CHUNKABLE_STATUSES = {DocumentStatus.PENDING, DocumentStatus.PARSING}


class DocumentRecord(BaseModel):
    """A document row.

    chunks_count is only meaningful once status is READY.
    """

    id: str
    owner_id: str
    status: DocumentStatus = DocumentStatus.PENDING
    filename: str | None = None
    storage_path: str | None = None
    content_length: int = 0
    chunks_count: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None


class ChunkDraft(BaseModel):
    """A chunk as produced by the splitter, before the store assigns an id."""

    document_id: str
    chunk_index: int
    content: str

    @property
    def length(self) -> int:
        return len(self.content)


class ChunkRecord(BaseModel):
    """A persisted chunk row. embedding_id is filled once its vector is indexed."""

    id: str
    document_id: str
    chunk_index: int
    content: str
    embedding_id: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def length(self) -> int:
        return len(self.content)


class EmbeddingReport(BaseModel):
    """Tally of one embedding run. Batch numbers are 1-indexed.

    Only the aggregate is ordered; batches finish in any order.
    """

    document_id: str
    total_batches: int
    succeeded_batches: list[int] = Field(default_factory=list)
    failed_batches: list[int] = Field(default_factory=list)
    batch_errors: dict[int, str] = Field(default_factory=dict)
    embedded_chunks: int = 0
    aborted: bool = False

    @property
    def failed_label(self) -> str:
        """Failed batch numbers in ascending order, e.g. "2,4"."""
        return ",".join(str(n) for n in sorted(self.failed_batches))
