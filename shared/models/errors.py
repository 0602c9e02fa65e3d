"""Error taxonomy of the pipeline.

Every component raises exactly one exception class whose ``code`` is a
member of that component's own closed enum, so callers can switch on it
exhaustively instead of matching message strings.
"""

from enum import Enum
from typing import Any


class PipelineError(Exception):
    """Base class of all pipeline errors."""

    def __init__(self, code: Enum, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"


class ChunkingErrorCode(str, Enum):
    DOCUMENT_NOT_FOUND = "DOCUMENT_NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    EMPTY_CONTENT = "EMPTY_CONTENT"
    STORAGE_ERROR = "STORAGE_ERROR"


class ChunkingError(PipelineError):
    code: ChunkingErrorCode


class EmbeddingErrorCode(str, Enum):
    DOCUMENT_NOT_FOUND = "DOCUMENT_NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    EMBEDDING_ERROR = "EMBEDDING_ERROR"
    EMBEDDING_TIMEOUT = "EMBEDDING_TIMEOUT"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    STORAGE_ERROR = "STORAGE_ERROR"
    DIMENSION_MISMATCH = "DIMENSION_MISMATCH"
    BATCH_FAILED = "BATCH_FAILED"


class EmbeddingError(PipelineError):
    """Raised by the embedding batch processor.

    ``report`` carries the batch tally when the error ends a processing run.
    """

    code: EmbeddingErrorCode

    def __init__(self, code: EmbeddingErrorCode, message: str, cause: BaseException | None = None, report: Any = None):
        super().__init__(code, message, cause)
        self.report = report


class QueryVectorizationErrorCode(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    EMBEDDING_ERROR = "EMBEDDING_ERROR"
    EMBEDDING_TIMEOUT = "EMBEDDING_TIMEOUT"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    DIMENSION_MISMATCH = "DIMENSION_MISMATCH"


class QueryVectorizationError(PipelineError):
    code: QueryVectorizationErrorCode


class RetrievalErrorCode(str, Enum):
    INVALID_QUERY = "INVALID_QUERY"
    DOCUMENT_NOT_FOUND = "DOCUMENT_NOT_FOUND"
    DOCUMENT_NOT_READY = "DOCUMENT_NOT_READY"
    NO_RELEVANT_CONTENT = "NO_RELEVANT_CONTENT"
    RETRIEVAL_ERROR = "RETRIEVAL_ERROR"


class RetrievalError(PipelineError):
    code: RetrievalErrorCode

    @property
    def is_no_content(self) -> bool:
        """True for the recoverable "nothing relevant found" outcome."""
        return self.code == RetrievalErrorCode.NO_RELEVANT_CONTENT


class GenerationErrorCode(str, Enum):
    GENERATION_TIMEOUT = "GENERATION_TIMEOUT"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    GENERATION_ERROR = "GENERATION_ERROR"


class GenerationError(PipelineError):
    code: GenerationErrorCode


class CascadeDeleteErrorCode(str, Enum):
    DOCUMENT_NOT_FOUND = "DOCUMENT_NOT_FOUND"
    VECTOR_DELETE_FAILED = "VECTOR_DELETE_FAILED"
    DATABASE_DELETE_FAILED = "DATABASE_DELETE_FAILED"


class CascadeDeleteError(PipelineError):
    code: CascadeDeleteErrorCode
