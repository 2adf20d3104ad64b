"""Observability helpers for the retrieval pipeline."""

from __future__ import annotations

import logging
import time

import structlog
from prometheus_client import Counter, Histogram

_logger_configured = False


def configure_logging(level: int | str = logging.INFO) -> None:
    global _logger_configured  # noqa: PLW0603 - module-level guard
    if _logger_configured:
        return
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger_configured = True


def bind_correlation_id(correlation_id: str) -> None:
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def clear_correlation_id() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str = "ragcontext") -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


class PipelineMetrics:
    """Prometheus metrics for pipeline stages."""

    chunk_count = Histogram(
        "ragcontext_chunks_per_document",
        "Chunks produced per indexed document.",
        buckets=(0, 1, 5, 10, 20, 40, 80, 160),
    )
    embedding_latency = Histogram(
        "ragcontext_embedding_duration_seconds",
        "Time spent generating embeddings.",
        buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0),
    )
    search_latency = Histogram(
        "ragcontext_search_duration_seconds",
        "Time spent searching the vector index.",
        buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0),
    )
    generation_latency = Histogram(
        "ragcontext_generation_duration_seconds",
        "Time spent generating answers.",
        buckets=(0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0),
    )
    vector_retries = Counter(
        "ragcontext_vector_retries_total",
        "Vector store attempts that failed and were retried.",
        ["operation"],
    )
    query_outcomes = Counter(
        "ragcontext_queries_total",
        "Processed queries by outcome.",
        ["outcome"],
    )

    @classmethod
    def observe_indexing(cls, chunk_count: int) -> None:
        cls.chunk_count.observe(chunk_count)

    @classmethod
    def observe_embedding(cls, duration_seconds: float) -> None:
        cls.embedding_latency.observe(duration_seconds)

    @classmethod
    def observe_search(cls, duration_seconds: float) -> None:
        cls.search_latency.observe(duration_seconds)

    @classmethod
    def observe_generation(cls, duration_seconds: float) -> None:
        cls.generation_latency.observe(duration_seconds)

    @classmethod
    def record_retry(cls, operation: str) -> None:
        cls.vector_retries.labels(operation=operation).inc()

    @classmethod
    def record_query(cls, outcome: str) -> None:
        cls.query_outcomes.labels(outcome=outcome).inc()


class TimedSection:
    """Context manager capturing elapsed time for metrics."""

    def __init__(self, callback) -> None:
        self._callback = callback
        self._start = 0.0
        self.duration = 0.0

    def __enter__(self) -> "TimedSection":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        self.duration = time.perf_counter() - self._start
        self._callback(self.duration)


__all__ = [
    "PipelineMetrics",
    "TimedSection",
    "bind_correlation_id",
    "clear_correlation_id",
    "configure_logging",
    "get_logger",
]
