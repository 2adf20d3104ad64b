"""Chunking strategies that split documents into bounded segments."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import List, Mapping, Protocol, Sequence

from ragcontext.errors import InvalidInputError
from ragcontext.models import ChunkingOptions, ChunkingStrategy, DocumentChunk
from ragcontext.processing.tokenizer import CharacterTokenizer, Tokenizer

LOGGER = logging.getLogger(__name__)

_SENTENCE = re.compile(r"[^.!?]+")
_SENTENCE_TERMINATOR = re.compile(r"[.!?]")
_SENTENCE_JOINER = ". "


@dataclass(frozen=True)
class Sentence:
    text: str
    start: int
    end: int


@dataclass(frozen=True)
class ChunkSpan:
    """Chunk text with its character offsets in the source text."""

    content: str
    start: int | None = None
    end: int | None = None


def split_sentences(text: str) -> List[Sentence]:
    """Split on runs of ``.``, ``!`` and ``?``, keeping offsets of the trimmed sentences."""

    sentences: List[Sentence] = []
    for match in _SENTENCE.finditer(text):
        raw = match.group()
        stripped = raw.strip()
        if not stripped:
            continue
        start = match.start() + (len(raw) - len(raw.lstrip()))
        sentences.append(Sentence(text=stripped, start=start, end=start + len(stripped)))
    return sentences


class ChunkingStrategyImpl(Protocol):
    """One implementation per :class:`ChunkingStrategy` value."""

    @property
    def applied_strategy(self) -> ChunkingStrategy:
        """Strategy recorded on the chunks this implementation produces."""

    def split(self, text: str, options: ChunkingOptions) -> Sequence[ChunkSpan]:
        """Return the chunk spans for ``text``."""


class FixedSizeChunking:
    """Sliding character window of ``max_chunk_size`` advancing by ``max - overlap``."""

    applied_strategy = ChunkingStrategy.FIXED_SIZE

    def split(self, text: str, options: ChunkingOptions) -> Sequence[ChunkSpan]:
        spans: List[ChunkSpan] = []
        start = 0
        while start < len(text):
            end = min(start + options.max_chunk_size, len(text))
            if options.respect_sentence_boundaries and end < len(text):
                end = self._pull_back_to_sentence_end(text, start, end)
            window = text[start:end]
            if window.strip():
                spans.append(ChunkSpan(content=window, start=start, end=end))
            if end >= len(text):
                break
            start = max(end - options.overlap_size, start + 1)
        return spans

    @staticmethod
    def _pull_back_to_sentence_end(text: str, start: int, end: int) -> int:
        midpoint = start + (end - start) // 2
        last = None
        for match in _SENTENCE_TERMINATOR.finditer(text, midpoint, end):
            last = match.end()
        return last if last is not None else end


class SentenceBoundaryChunking:
    """Greedy packing of whole sentences up to ``max_chunk_size`` characters.

    When ``overlap_size`` is positive, trailing sentences of the previous chunk
    that fit into the overlap budget are repeated at the start of the next one.
    """

    applied_strategy = ChunkingStrategy.SENTENCE_BOUNDARY

    def split(self, text: str, options: ChunkingOptions) -> Sequence[ChunkSpan]:
        spans: List[ChunkSpan] = []
        current: List[Sentence] = []
        for sentence in split_sentences(text):
            candidate = current + [sentence]
            if self._length(candidate) <= options.max_chunk_size:
                current = candidate
                continue
            if current:
                spans.append(self._span(current))
            current = self._carry_over(current, sentence, options)
        if current:
            spans.append(self._span(current))
        return spans

    def _carry_over(
        self,
        previous: Sequence[Sentence],
        sentence: Sentence,
        options: ChunkingOptions,
    ) -> List[Sentence]:
        carried: List[Sentence] = []
        if options.overlap_size > 0:
            for candidate in reversed(previous):
                attempt = [candidate] + carried
                if self._length(attempt) > options.overlap_size:
                    break
                if self._length(attempt + [sentence]) > options.max_chunk_size:
                    break
                carried = attempt
        return carried + [sentence]

    @staticmethod
    def _length(sentences: Sequence[Sentence]) -> int:
        return len(_SENTENCE_JOINER.join(s.text for s in sentences))

    @staticmethod
    def _span(sentences: Sequence[Sentence]) -> ChunkSpan:
        return ChunkSpan(
            content=_SENTENCE_JOINER.join(s.text for s in sentences),
            start=sentences[0].start,
            end=sentences[-1].end,
        )


class TokenAwareChunking:
    """Sentence packing measured in tokens with a token-level overlap.

    ``start`` offsets point at the first full sentence of a chunk; carried
    overlap text precedes it.
    """

    applied_strategy = ChunkingStrategy.TOKEN_AWARE

    def __init__(self, tokenizer: Tokenizer) -> None:
        self._tokenizer = tokenizer

    def split(self, text: str, options: ChunkingOptions) -> Sequence[ChunkSpan]:
        spans: List[ChunkSpan] = []
        current = ""
        current_tokens = 0
        start: int | None = None
        end: int | None = None
        for sentence in split_sentences(text):
            sentence_tokens = self._tokenizer.count(sentence.text)
            if current and current_tokens + sentence_tokens > options.max_chunk_size:
                spans.append(ChunkSpan(content=current.strip(), start=start, end=end))
                overlap = self._tokenizer.tail(current, options.overlap_size).strip()
                if overlap:
                    current = f"{overlap} {sentence.text}"
                    current_tokens = self._tokenizer.count(current)
                else:
                    current = sentence.text
                    current_tokens = sentence_tokens
                start = sentence.start
            else:
                current = f"{current} {sentence.text}" if current else sentence.text
                current_tokens += sentence_tokens
                if start is None:
                    start = sentence.start
            end = sentence.end
        if current.strip():
            spans.append(ChunkSpan(content=current.strip(), start=start, end=end))
        return spans


class SemanticChunking:
    """Semantic boundary detection is not available; delegates to sentence packing."""

    def __init__(self, fallback: SentenceBoundaryChunking | None = None) -> None:
        self._fallback = fallback or SentenceBoundaryChunking()

    @property
    def applied_strategy(self) -> ChunkingStrategy:
        return self._fallback.applied_strategy

    def split(self, text: str, options: ChunkingOptions) -> Sequence[ChunkSpan]:
        LOGGER.warning("Semantic chunking not implemented, falling back to sentence boundary chunking")
        return self._fallback.split(text, options)


class TextChunker:
    """Split documents into :class:`DocumentChunk` objects using a selectable strategy."""

    def __init__(
        self,
        tokenizer: Tokenizer | None = None,
        strategies: Mapping[ChunkingStrategy, ChunkingStrategyImpl] | None = None,
    ) -> None:
        self._tokenizer = tokenizer or CharacterTokenizer()
        sentence_boundary = SentenceBoundaryChunking()
        self._strategies: dict[ChunkingStrategy, ChunkingStrategyImpl] = {
            ChunkingStrategy.FIXED_SIZE: FixedSizeChunking(),
            ChunkingStrategy.SENTENCE_BOUNDARY: sentence_boundary,
            ChunkingStrategy.TOKEN_AWARE: TokenAwareChunking(self._tokenizer),
            ChunkingStrategy.SEMANTIC: SemanticChunking(sentence_boundary),
        }
        if strategies:
            self._strategies.update(strategies)

    def chunk(
        self,
        text: str,
        options: ChunkingOptions,
        *,
        document_id: str,
        source_file: str,
    ) -> List[DocumentChunk]:
        self._validate(options)
        try:
            requested = ChunkingStrategy(options.strategy)
        except ValueError as exc:
            raise InvalidInputError(f"Unsupported chunking strategy: {options.strategy}") from exc
        strategy = self._strategies.get(requested)
        if strategy is None:
            raise InvalidInputError(f"Unsupported chunking strategy: {requested.value}")
        LOGGER.info(
            "Chunking text using %s strategy, max size: %d",
            requested.value,
            options.max_chunk_size,
        )

        chunks: List[DocumentChunk] = []
        for span in strategy.split(text, options):
            content = span.content.strip()
            if not options.preserve_formatting:
                content = " ".join(content.split())
            if not content:
                continue
            index = len(chunks)
            chunks.append(
                DocumentChunk(
                    id=f"{document_id}_chunk_{index}",
                    content=content,
                    source_file=source_file,
                    chunk_index=index,
                    total_chunks=0,
                    token_count=self._tokenizer.count(content),
                    strategy=strategy.applied_strategy,
                    requested_strategy=requested,
                    start_position=span.start,
                    end_position=span.end,
                ),
            )
        return self._annotate_totals(chunks)

    @staticmethod
    def _validate(options: ChunkingOptions) -> None:
        if options.max_chunk_size <= 0:
            raise InvalidInputError("max_chunk_size must be positive")
        if options.overlap_size < 0:
            raise InvalidInputError("overlap_size must not be negative")
        if options.overlap_size >= options.max_chunk_size:
            raise InvalidInputError(
                f"overlap_size ({options.overlap_size}) must be smaller than "
                f"max_chunk_size ({options.max_chunk_size})"
            )

    @staticmethod
    def _annotate_totals(chunks: Sequence[DocumentChunk]) -> List[DocumentChunk]:
        total = len(chunks)
        return [replace(chunk, total_chunks=total) for chunk in chunks]
