"""Prompt construction for grounded answers.

Context chunks are numbered [1], [2], ... so the model can cite them. Token
counts are estimated as ceil(characters / 4).
"""

import math

from shared.models.answer import ChatMessage
from shared.models.retrieval import RetrievalChunk

DEFAULT_CONTEXT_TOKENS = 2000
DEFAULT_PROMPT_TOKENS = 3000

SYSTEM_PROMPT_TEMPLATE = """You are a document question answering assistant. Answer the user's question using only the document excerpts below.

Instructions:
1. Use only the provided excerpts. Do not invent information.
2. If the answer is not in the excerpts, say that the document does not answer the question.
3. Cite the excerpts you used with their numbers, e.g. [1] or [2][3].
4. Keep the answer concise and precise.
5. Avoid speculation and personal opinion.

Document excerpts:
{context}

Answer the user's question based on the excerpts above."""


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / 4)


def truncate_context(chunks: list[RetrievalChunk], max_tokens: int = DEFAULT_CONTEXT_TOKENS) -> list[RetrievalChunk]:
    """Keep chunks in order until the next one would exceed the token budget."""
    kept: list[RetrievalChunk] = []
    total = 0
    for chunk in chunks:
        tokens = estimate_tokens(chunk.content)
        if total + tokens > max_tokens:
            break
        kept.append(chunk)
        total += tokens
    return kept


def build_system_prompt(chunks: list[RetrievalChunk]) -> str:
    context = "\n\n".join(f"[{i}] {chunk.content}" for i, chunk in enumerate(chunks, start=1))
    return SYSTEM_PROMPT_TEMPLATE.format(context=context)


def prompt_tokens(system_prompt: str, query: str, history: list[ChatMessage]) -> int:
    return estimate_tokens(system_prompt) + estimate_tokens(query) + sum(estimate_tokens(m.content) for m in history)


def build_messages(
    query: str,
    chunks: list[RetrievalChunk],
    history: list[ChatMessage] | None = None,
    context_tokens: int = DEFAULT_CONTEXT_TOKENS,
    prompt_limit: int = DEFAULT_PROMPT_TOKENS,
) -> list[ChatMessage]:
    """Assemble system prompt, history and user question.

    Context is truncated to context_tokens. If the whole prompt still exceeds
    prompt_limit, the older half of the history is dropped once.
    """
    system_prompt = build_system_prompt(truncate_context(chunks, context_tokens))
    history = list(history or [])
    if prompt_tokens(system_prompt, query, history) > prompt_limit:
        history = history[len(history) // 2:]
    return [
        ChatMessage(role="system", content=system_prompt),
        *history,
        ChatMessage(role="user", content=query),
    ]
