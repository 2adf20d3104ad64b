"""Shared domain models used across the retrieval pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Sequence, Tuple


class ChunkingStrategy(str, Enum):
    FIXED_SIZE = "fixed_size"
    SENTENCE_BOUNDARY = "sentence_boundary"
    SEMANTIC = "semantic"
    TOKEN_AWARE = "token_aware"


class DistanceMetric(str, Enum):
    COSINE = "Cosine"
    DOT = "Dot"
    EUCLID = "Euclid"
    MANHATTAN = "Manhattan"

    @property
    def is_similarity(self) -> bool:
        """True when a larger raw score means a closer match."""
        return self in (DistanceMetric.COSINE, DistanceMetric.DOT)


class QueryType(str, Enum):
    TEXT = "text"
    VOICE = "voice"


class QueryState(str, Enum):
    RECEIVED = "received"
    EMBEDDING = "embedding"
    SEARCHING = "searching"
    ANSWERING = "answering"
    ERRORED = "errored"
    LOGGED = "logged"


@dataclass(frozen=True)
class Document:
    """Authoritative document as held by the document store."""

    id: str
    content: str
    title: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    embedding: Tuple[float, ...] | None = None


@dataclass(frozen=True)
class ChunkingOptions:
    """Options for a chunking call.

    ``max_chunk_size`` and ``overlap_size`` are measured in characters for the
    character based strategies and in tokens for ``token_aware``.
    """

    strategy: ChunkingStrategy = ChunkingStrategy.SENTENCE_BOUNDARY
    max_chunk_size: int = 1000
    overlap_size: int = 0
    preserve_formatting: bool = True
    respect_sentence_boundaries: bool = False


@dataclass(frozen=True)
class DocumentChunk:
    """Bounded slice of a document, the unit that gets embedded and indexed."""

    id: str
    content: str
    source_file: str
    chunk_index: int
    total_chunks: int
    token_count: int
    strategy: ChunkingStrategy
    requested_strategy: ChunkingStrategy
    start_position: int | None = None
    end_position: int | None = None


@dataclass(frozen=True)
class VectorPoint:
    id: str
    vector: Tuple[float, ...]
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ScoredPoint:
    """Raw hit as reported by a vector store backend."""

    id: str
    score: float
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class IndexDocument:
    """Input item for batch upserts; ``embedding`` must be set before indexing."""

    id: str
    content: str
    metadata: Mapping[str, Any] = field(default_factory=dict)
    embedding: Sequence[float] | None = None


@dataclass(frozen=True)
class SearchOptions:
    limit: int = 5
    offset: int = 0
    filter: Mapping[str, Any] | None = None
    score_threshold: float | None = None


@dataclass(frozen=True)
class SearchResult:
    """Search hit mapped into the pipeline's vocabulary."""

    id: str
    score: float
    content: str | None = None
    title: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CollectionInfo:
    name: str
    points_count: int
    indexed_vectors_count: int
    status: str
    payload_schema: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DocumentContext:
    """Retrieved document as handed to context assembly."""

    id: str
    content: str
    score: float
    title: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GenerationOptions:
    max_tokens: int | None = None
    temperature: float | None = None
    system_prompt: str | None = None
    include_source_info: bool = False


@dataclass(frozen=True)
class QueryLogRecord:
    """Append-only record of one query and its outcome."""

    id: str
    query: str
    query_type: QueryType = QueryType.TEXT
    user_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    answer: str | None = None
    documents_found: int | None = None
    response_time_ms: float | None = None
    error: str | None = None


@dataclass(frozen=True)
class QueryResult:
    """Answer returned to the caller together with the sources it was built from."""

    answer: str
    sources: Sequence[SearchResult]
    query_id: str
    latency_ms: float
    states: Tuple[QueryState, ...] = ()
