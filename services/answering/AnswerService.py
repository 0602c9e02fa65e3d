"""Answer streaming generator.

Streams a grounded answer as text fragments. The token budget follows the
question's complexity unless the caller sets one. Two budgets apply against
the same clock and are checked on every fragment: the first fragment must
arrive within the first-fragment timeout, the whole answer within the total
timeout.
"""

from contextlib import aclosing
import re
import time
from typing import AsyncIterator, Callable

import httpx
from shared.clients.ClientInterface import ClientRequestError
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.answer import AnswerTranscript, ChatMessage, GenerationOptions, QueryComplexity
from shared.models.config import PipelineSettings
from shared.models.errors import GenerationError, GenerationErrorCode
from shared.models.retrieval import RetrievalChunk
from services.answering import PromptBuilder

COMPLEX_WORDS = re.compile(
    r"\b(?:analy[sz]e|compare|comparison|difference|explain|why|how|evaluate|summari[sz]e"
    r"|pros and cons|in detail|mechanism|principle)\b"
)
# no word boundaries in CJK text, matched as substrings
COMPLEX_KEYWORDS_CJK = [
    "分析", "对比", "比较", "详细", "深入", "为什么", "如何", "解释", "原理", "机制", "优缺点", "区别", "评估", "总结",
]
LIST_MARKERS = re.compile(r"[1-9]\.|[一二三四五]、|•|·")
QUESTION_MARKS = re.compile(r"[?？]")
LONG_QUERY_CHARS = 40

MAX_TOKENS = {
    QueryComplexity.SIMPLE: 300,
    QueryComplexity.COMPLEX: 500,
}


def assess_complexity(query: str) -> QueryComplexity:
    lowered = query.lower()
    if (
        COMPLEX_WORDS.search(lowered)
        or any(keyword in query for keyword in COMPLEX_KEYWORDS_CJK)
        or len(query) > LONG_QUERY_CHARS
        or len(QUESTION_MARKS.findall(query)) > 1
        or LIST_MARKERS.search(query)
    ):
        return QueryComplexity.COMPLEX
    return QueryComplexity.SIMPLE


class AnswerService:
    def __init__(
        self,
        helper_config: HelperConfig,
        llm_client: LLMClientInterface,
        settings: PipelineSettings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._llm_client = llm_client
        self._settings = settings
        self._clock = clock

    ##########################################
    ################# CORE ###################
    ##########################################

    async def stream(
        self,
        query: str,
        chunks: list[RetrievalChunk],
        history: list[ChatMessage] | None = None,
        options: GenerationOptions | None = None,
        transcript: AnswerTranscript | None = None,
    ) -> AsyncIterator[str]:
        """Stream the answer fragments.

        Args:
            transcript (AnswerTranscript | None): Filled in while streaming, if given.

        Raises:
            GenerationError: GENERATION_TIMEOUT, QUOTA_EXCEEDED or GENERATION_ERROR.
        """
        transcript = transcript if transcript is not None else AnswerTranscript()
        complexity = assess_complexity(query)
        options = options or GenerationOptions()
        if options.max_tokens is None:
            options = options.model_copy(update={"max_tokens": MAX_TOKENS[complexity]})
        transcript.complexity = complexity
        transcript.max_tokens = options.max_tokens

        messages = PromptBuilder.build_messages(
            query,
            chunks,
            history,
            context_tokens=self._settings.answer_context_tokens,
            prompt_limit=self._settings.answer_prompt_tokens,
        )

        started = self._clock()
        try:
            async with aclosing(self._llm_client.do_stream_chat(messages, options)) as fragments:
                async for fragment in fragments:
                    elapsed = self._clock() - started
                    if transcript.fragments == 0 and elapsed > self._settings.answer_first_chunk_timeout:
                        raise GenerationError(
                            GenerationErrorCode.GENERATION_TIMEOUT,
                            f"First fragment after {elapsed:.1f}s (limit {self._settings.answer_first_chunk_timeout}s).",
                        )
                    if elapsed > self._settings.answer_total_timeout:
                        raise GenerationError(
                            GenerationErrorCode.GENERATION_TIMEOUT,
                            f"Generation exceeded {self._settings.answer_total_timeout}s.",
                        )
                    if transcript.fragments == 0:
                        transcript.first_fragment_ms = int(elapsed * 1000)
                    transcript.fragments += 1
                    transcript.text += fragment
                    yield fragment
        except GenerationError as e:
            self.logging.error("Answer generation for '%s' aborted: %s", query[:50], e)
            raise
        except Exception as e:
            self.logging.error("Answer generation for '%s' failed: %s", query[:50], e)
            raise self._map_provider_error(e) from e
        finally:
            transcript.elapsed_ms = int((self._clock() - started) * 1000)

        self.logging.info(
            "Answered '%s' (%s, %d fragments, first after %s ms).",
            query[:50], complexity.value, transcript.fragments, transcript.first_fragment_ms,
        )

    async def stream_answer(
        self,
        query: str,
        chunks: list[RetrievalChunk],
        history: list[ChatMessage] | None = None,
        options: GenerationOptions | None = None,
        transcript: AnswerTranscript | None = None,
    ) -> AsyncIterator[str]:
        """Like stream(), but never raises: on failure the partial text is kept and an
        error marker "\\n\\n[error: <CODE>]" is emitted before the stream closes."""
        transcript = transcript if transcript is not None else AnswerTranscript()
        try:
            async with aclosing(self.stream(query, chunks, history, options, transcript)) as fragments:
                async for fragment in fragments:
                    yield fragment
        except GenerationError as e:
            marker = f"\n\n[error: {e.code.value}]"
            transcript.error_code = e.code.value
            transcript.text += marker
            yield marker

    async def do_answer(
        self,
        query: str,
        chunks: list[RetrievalChunk],
        history: list[ChatMessage] | None = None,
        options: GenerationOptions | None = None,
    ) -> AnswerTranscript:
        """Consume stream_answer() completely and return the transcript."""
        transcript = AnswerTranscript()
        async for _ in self.stream_answer(query, chunks, history, options, transcript):
            pass
        return transcript

    ##########################################
    ################ HELPERS #################
    ##########################################

    def _map_provider_error(self, error: Exception) -> GenerationError:
        if isinstance(error, httpx.TimeoutException):
            return GenerationError(GenerationErrorCode.GENERATION_TIMEOUT, f"LLM request timed out: {error}", cause=error)
        text = str(error).lower()
        if (isinstance(error, ClientRequestError) and error.status_code in (402, 429)) or "quota" in text or "rate limit" in text:
            return GenerationError(GenerationErrorCode.QUOTA_EXCEEDED, f"LLM quota exceeded: {error}", cause=error)
        if "timeout" in text or "timed out" in text:
            return GenerationError(GenerationErrorCode.GENERATION_TIMEOUT, f"LLM request timed out: {error}", cause=error)
        return GenerationError(GenerationErrorCode.GENERATION_ERROR, f"LLM generation failed: {error}", cause=error)
