"""Context packing and prompt construction for answer generation."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import List, Sequence

from ragcontext.config import DEFAULT_SYSTEM_PROMPT
from ragcontext.errors import InvalidInputError
from ragcontext.models import DocumentContext
from ragcontext.processing.tokenizer import CHARS_PER_TOKEN, Tokenizer

LOGGER = logging.getLogger(__name__)

ELLIPSIS = "..."
MIN_TRUNCATED_TOKENS = 50
SOURCE_HEADER = "[Source: {title}]\n"

PROMPT_INSTRUCTIONS = (
    "Instructions:\n"
    "- Use ONLY the provided context documents to answer questions\n"
    "- If the context doesn't contain enough information, clearly state that\n"
    "- Be concise but thorough in your responses\n"
    "- Maintain a helpful and professional tone\n"
    "- When referencing specific information, you may mention the source document\n"
    "- If multiple sources contain relevant information, synthesize them coherently"
)


def document_title(document: DocumentContext) -> str:
    return document.title or f"Document {document.id}"


class ContextAssembler:
    """Packs the highest scoring documents into a bounded context string.

    Documents are taken in descending score order (ties keep their input order).
    When a document does not fit, a prefix of it is included if enough space is
    left and packing stops there: no lower scored document is ever added after
    one was cut. The top document always contributes, truncated if necessary, so
    a non-empty input never yields an empty context.
    """

    def __init__(
        self,
        window_size: int = 4000,
        max_documents: int = 5,
        *,
        truncation_buffer: int = 50,
        min_partial_size: int = 100,
        tokenizer: Tokenizer | None = None,
    ) -> None:
        if window_size <= 0:
            raise InvalidInputError("window_size must be positive")
        if max_documents <= 0:
            raise InvalidInputError("max_documents must be positive")
        self.window_size = window_size
        self.max_documents = max_documents
        self.truncation_buffer = truncation_buffer
        self.min_partial_size = min_partial_size
        self._tokenizer = tokenizer

    def rank(self, documents: Sequence[DocumentContext]) -> List[DocumentContext]:
        return sorted(documents, key=lambda document: document.score, reverse=True)

    def build_context(self, documents: Sequence[DocumentContext], window_size: int | None = None) -> str:
        window = window_size or self.window_size
        ranked = self.rank(documents)[: self.max_documents]

        parts: List[str] = []
        used = 0
        for document in ranked:
            header = SOURCE_HEADER.format(title=document_title(document))
            block = header + document.content.strip() + "\n\n"
            if used + len(block) <= window:
                parts.append(block)
                used += len(block)
                continue

            remaining = window - used - len(header) - self.truncation_buffer
            if remaining > self.min_partial_size:
                parts.append(header + document.content[:remaining] + ELLIPSIS + "\n\n")
            elif not parts:
                # The best match is too large for the window on its own.
                parts.append(self._clip_to_window(document, window))
            break

        context = "".join(parts).strip()
        LOGGER.debug("Built context of %d characters from %d documents", len(context), len(parts))
        return context

    @staticmethod
    def _clip_to_window(document: DocumentContext, window: int) -> str:
        """Cut header and content together so the block fits ``window``."""

        title = document_title(document)
        # The title may use at most half of the window.
        title_room = max(window // 2 - len(SOURCE_HEADER.format(title="")), 1)
        if len(title) > title_room:
            title = title[: max(title_room - len(ELLIPSIS), 1)] + ELLIPSIS
        block = SOURCE_HEADER.format(title=title) + document.content.strip()
        return block[: max(window - len(ELLIPSIS), 1)] + ELLIPSIS

    def estimate_tokens(self, text: str) -> int:
        if self._tokenizer is not None:
            return self._tokenizer.count(text)
        return math.ceil(len(text) / CHARS_PER_TOKEN)

    def _head(self, text: str, tokens: int) -> str:
        if self._tokenizer is not None:
            return self._tokenizer.head(text, tokens)
        return text[: tokens * CHARS_PER_TOKEN]

    def optimize_context_for_token_limit(
        self, documents: Sequence[DocumentContext], max_tokens: int
    ) -> List[DocumentContext]:
        """Select documents, best first, whose estimated token total fits ``max_tokens``."""

        if max_tokens <= 0:
            raise InvalidInputError("max_tokens must be positive")
        selected: List[DocumentContext] = []
        total = 0
        for document in self.rank(documents):
            tokens = self.estimate_tokens(document.content)
            if total + tokens <= max_tokens:
                selected.append(document)
                total += tokens
                continue
            remaining = max_tokens - total
            if remaining > MIN_TRUNCATED_TOKENS:
                truncated = self._head(document.content, remaining) + ELLIPSIS
                selected.append(replace(document, content=truncated))
            break
        LOGGER.debug("Optimized context: %d documents, ~%d tokens", len(selected), total)
        return selected


@dataclass(frozen=True)
class PromptBuilder:
    """Builds the system and user prompts sent to the language model."""

    base_system_prompt: str = DEFAULT_SYSTEM_PROMPT

    def system_prompt(self, custom_prompt: str | None = None) -> str:
        base = custom_prompt or self.base_system_prompt
        return f"{base}\n\n{PROMPT_INSTRUCTIONS}"

    def user_prompt(self, query: str, context: str, *, include_source_info: bool = False) -> str:
        prompt = (
            f"Context Documents:\n\n{context}\n\n"
            f"Question: {query}\n\n"
            "Please provide a helpful answer based on the context documents above."
        )
        if include_source_info:
            prompt += " If you reference specific information, you may mention which source document it came from."
        return prompt
