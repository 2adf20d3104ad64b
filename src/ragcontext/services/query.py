"""Query orchestration combining embedding, retrieval, generation and logging."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Sequence

from ragcontext.collaborators import QueryLogSink, SpeechToText
from ragcontext.embeddings.service import EmbeddingGenerator
from ragcontext.errors import InvalidInputError, QueryFailedError, UnsupportedOperationError
from ragcontext.metrics.observability import (
    PipelineMetrics,
    bind_correlation_id,
    clear_correlation_id,
    get_logger,
)
from ragcontext.models import (
    DocumentContext,
    GenerationOptions,
    QueryLogRecord,
    QueryResult,
    QueryState,
    QueryType,
    SearchOptions,
    SearchResult,
)
from ragcontext.services.generation import AnswerGenerator
from ragcontext.vector.client import VectorIndexClient

GENERIC_FAILURE_MESSAGE = (
    "I'm sorry, but I could not complete your request right now. Please try again later."
)


@dataclass(frozen=True)
class QueryConfig:
    """Retrieval defaults applied to every query."""

    search_limit: int = 5
    score_threshold: float | None = 0.7


class QueryService:
    """Runs one query through embed, search and answer, and records it in the query log.

    States advance ``RECEIVED -> EMBEDDING -> SEARCHING -> ANSWERING -> LOGGED``.
    A failure in any stage moves to ``ERRORED`` and the error is still written
    to the log before :class:`QueryFailedError` is raised.
    """

    def __init__(
        self,
        embedder: EmbeddingGenerator,
        index: VectorIndexClient,
        answer_generator: AnswerGenerator,
        query_log: QueryLogSink,
        *,
        config: QueryConfig | None = None,
        transcriber: SpeechToText | None = None,
    ) -> None:
        self._embedder = embedder
        self._index = index
        self._answers = answer_generator
        self._query_log = query_log
        self._config = config or QueryConfig()
        self._transcriber = transcriber
        self._logger = get_logger("query")

    def process_text_query(
        self,
        query: str,
        *,
        user_id: str | None = None,
        options: GenerationOptions | None = None,
    ) -> QueryResult:
        return self._process(lambda: query, query_type=QueryType.TEXT, user_id=user_id, options=options, query=query)

    def process_voice_query(
        self,
        audio: bytes,
        *,
        user_id: str | None = None,
        options: GenerationOptions | None = None,
    ) -> QueryResult:
        if self._transcriber is None:
            raise UnsupportedOperationError("No speech-to-text collaborator is configured")
        transcriber = self._transcriber
        return self._process(
            lambda: transcriber.transcribe(audio),
            query_type=QueryType.VOICE,
            user_id=user_id,
            options=options,
            query="",
        )

    def query_logs(self, limit: int = 100) -> List[QueryLogRecord]:
        return self._query_log.list(limit)

    def query_log(self, record_id: str) -> QueryLogRecord:
        return self._query_log.get(record_id)

    def _process(
        self,
        resolve_query: Callable[[], str],
        *,
        query_type: QueryType,
        user_id: str | None,
        options: GenerationOptions | None,
        query: str,
    ) -> QueryResult:
        query_id = uuid.uuid4().hex
        bind_correlation_id(query_id)
        states: List[QueryState] = [QueryState.RECEIVED]
        start = time.perf_counter()
        self._append_log(QueryLogRecord(id=query_id, query=query, query_type=query_type, user_id=user_id))
        self._logger.info("query.received", query_type=query_type.value, user_id=user_id)
        try:
            try:
                text = resolve_query()
                if query_type is QueryType.VOICE:
                    self._update_log(query_id, {"query": text})
                if not text or not text.strip():
                    raise InvalidInputError("Query text must not be empty")

                states.append(QueryState.EMBEDDING)
                vector = self._embedder.embed(text)

                states.append(QueryState.SEARCHING)
                sources = self._index.search(
                    vector,
                    SearchOptions(
                        limit=self._config.search_limit,
                        score_threshold=self._config.score_threshold,
                    ),
                )
                self._logger.info("retrieval.complete", documents_found=len(sources))

                states.append(QueryState.ANSWERING)
                answer = self._answers.generate_answer(text, self._to_contexts(sources), options)
            except Exception as exc:
                states.append(QueryState.ERRORED)
                latency_ms = self._elapsed_ms(start)
                self._logger.error(
                    "query.failed",
                    stage=states[-2].value,
                    error=str(exc),
                    error_type=type(exc).__name__,
                    latency_ms=latency_ms,
                )
                self._update_log(query_id, {"error": str(exc), "response_time_ms": latency_ms})
                states.append(QueryState.LOGGED)
                PipelineMetrics.record_query("error")
                raise QueryFailedError(
                    f"Query {query_id} failed: {exc}",
                    query_id=query_id,
                    user_message=GENERIC_FAILURE_MESSAGE,
                ) from exc

            latency_ms = self._elapsed_ms(start)
            self._update_log(
                query_id,
                {"answer": answer, "documents_found": len(sources), "response_time_ms": latency_ms},
            )
            states.append(QueryState.LOGGED)
            PipelineMetrics.record_query("success")
            self._logger.info("query.complete", documents_found=len(sources), latency_ms=latency_ms)
            return QueryResult(
                answer=answer,
                sources=sources,
                query_id=query_id,
                latency_ms=latency_ms,
                states=tuple(states),
            )
        finally:
            clear_correlation_id()

    def _append_log(self, record: QueryLogRecord) -> None:
        try:
            self._query_log.append(record)
        except Exception as exc:  # noqa: BLE001 - logging is best effort
            self._logger.warning("query_log.append_failed", error=str(exc))

    def _update_log(self, record_id: str, patch: Mapping[str, Any]) -> None:
        try:
            self._query_log.update(record_id, patch)
        except Exception as exc:  # noqa: BLE001 - logging is best effort
            self._logger.warning("query_log.update_failed", error=str(exc))

    @staticmethod
    def _to_contexts(sources: Sequence[SearchResult]) -> List[DocumentContext]:
        return [
            DocumentContext(
                id=source.id,
                content=source.content or "",
                score=source.score,
                title=source.title,
                metadata=source.metadata,
            )
            for source in sources
        ]

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return (time.perf_counter() - start) * 1000
