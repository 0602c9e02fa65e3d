"""Pydantic models for answer generation."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class QueryComplexity(str, Enum):
    SIMPLE = "simple"
    COMPLEX = "complex"


class GenerationOptions(BaseModel):
    """Options handed to the LLM provider for a streamed completion."""

    temperature: float = 0.1
    max_tokens: int | None = None
    top_p: float = 0.9


class AnswerTranscript(BaseModel):
    """What the caller keeps from a streamed answer, including a partial one.

    error_code is set when the stream ended early; text then holds everything
    produced before the failure followed by the error marker.
    """

    text: str = ""
    fragments: int = 0
    first_fragment_ms: int | None = None
    elapsed_ms: int = 0
    complexity: QueryComplexity | None = None
    max_tokens: int | None = None
    error_code: str | None = None

    @property
    def completed(self) -> bool:
        return self.error_code is None
