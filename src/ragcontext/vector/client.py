"""Vector index client: validation, retries and result mapping over a VectorStore."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping, Sequence, TypeVar

from ragcontext.errors import (
    DimensionMismatchError,
    IndexUnavailableError,
    InvalidInputError,
)
from ragcontext.metrics.observability import PipelineMetrics, TimedSection, get_logger
from ragcontext.models import (
    CollectionInfo,
    DistanceMetric,
    IndexDocument,
    ScoredPoint,
    SearchOptions,
    SearchResult,
    VectorPoint,
)
from ragcontext.vector.base import PayloadFilter, VectorStore
from ragcontext.vector.retry import Failure, RetryPolicy

T = TypeVar("T")


class VectorIndexClient:
    """Maintains one collection of (id, vector, payload) points.

    Inputs are validated before the backend is touched. Reads and batch writes go
    through the retry policy; once it is exhausted the last backend error is
    raised as :class:`IndexUnavailableError`.
    """

    def __init__(
        self,
        store: VectorStore,
        *,
        dimension: int,
        distance: DistanceMetric = DistanceMetric.COSINE,
        retry_policy: RetryPolicy | None = None,
        batch_size: int = 100,
    ) -> None:
        if dimension <= 0:
            raise InvalidInputError("dimension must be positive")
        if batch_size <= 0:
            raise InvalidInputError("batch_size must be positive")
        self._store = store
        self._dimension = dimension
        self._distance = DistanceMetric(distance)
        self._retry = retry_policy or RetryPolicy()
        self._batch_size = batch_size
        self._logger = get_logger(__name__)

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def distance(self) -> DistanceMetric:
        return self._distance

    # ------------------------------------------------------------------ collection

    def ensure_collection(self) -> None:
        """Create the collection with the configured dimension and metric if it is missing."""

        def _ensure() -> bool:
            if self._store.collection_exists():
                return False
            self._store.create_collection(self._dimension, self._distance)
            return True

        created = self._run_once(_ensure, name="ensure_collection")
        if created:
            self._logger.info(
                "vector.collection_created",
                dimension=self._dimension,
                distance=self._distance.value,
            )

    def collection_info(self) -> CollectionInfo:
        return self._run(self._store.collection_info, name="collection_info")

    def reindex_all(self, *, confirm: bool = False) -> None:
        """Drop the collection and recreate it empty.

        Callers must re-upsert every document from the document store afterwards.
        """

        if not confirm:
            raise InvalidInputError("reindex_all destroys every indexed point; pass confirm=True")
        self._logger.warning("vector.reindex_all", dimension=self._dimension)

        def _recreate() -> None:
            if self._store.collection_exists():
                self._store.drop_collection()
            self._store.create_collection(self._dimension, self._distance)

        self._run_once(_recreate, name="reindex_all")

    def health_check(self) -> bool:
        try:
            self._store.ping()
        except Exception as exc:  # noqa: BLE001 - any failure means unhealthy
            self._logger.warning("vector.health_check_failed", error=str(exc))
            return False
        return True

    def create_snapshot(self) -> str:
        name = self._run(self._store.create_snapshot, name="create_snapshot")
        self._logger.info("vector.snapshot_created", snapshot=name)
        return name

    def optimize(self) -> None:
        self._run(self._store.optimize, name="optimize")

    def close(self) -> None:
        self._store.close()

    # ---------------------------------------------------------------------- reads

    def search(self, vector: Sequence[float], options: SearchOptions | None = None) -> List[SearchResult]:
        options = options or SearchOptions()
        self._check_vector(vector)
        if options.limit <= 0:
            raise InvalidInputError("limit must be positive")
        if options.offset < 0:
            raise InvalidInputError("offset must not be negative")

        # Distance metrics are normalized client side, so the threshold cannot be
        # handed to the backend in its own units.
        backend_threshold = options.score_threshold if self._distance.is_similarity else None
        with TimedSection(PipelineMetrics.observe_search):
            points = self._run(
                lambda: self._store.search(
                    list(vector),
                    limit=options.limit,
                    offset=options.offset,
                    filter=options.filter,
                    score_threshold=backend_threshold,
                ),
                name="search",
            )

        results = [self._to_result(point, self._normalize(point.score)) for point in points]
        if options.score_threshold is not None:
            results = [result for result in results if result.score >= options.score_threshold]
        results.sort(key=lambda result: result.score, reverse=True)
        return results[: options.limit]

    def get(self, point_id: str) -> SearchResult | None:
        if not point_id:
            raise InvalidInputError("id must not be empty")
        points = self._run(lambda: self._store.retrieve([point_id]), name="get")
        if not points:
            return None
        return self._to_result(points[0], 1.0)

    def count(self, filter: PayloadFilter | None = None) -> int:
        return self._run(lambda: self._store.count(filter), name="count")

    # --------------------------------------------------------------------- writes

    def upsert(self, point_id: str, vector: Sequence[float], payload: Mapping[str, Any] | None = None) -> None:
        if not point_id:
            raise InvalidInputError("id must not be empty")
        self._check_vector(vector)
        point = VectorPoint(id=point_id, vector=tuple(vector), payload=dict(payload or {}))
        self._run_once(lambda: self._store.upsert([point]), name="upsert")
        self._logger.debug("vector.upserted", point_id=point_id)

    def upsert_batch(self, documents: Sequence[IndexDocument]) -> None:
        """Index documents in sub-batches.

        Every document must carry an embedding of the configured dimension; the
        whole batch is rejected before any backend call otherwise.
        """

        if not documents:
            return
        missing = [document.id for document in documents if document.embedding is None]
        if missing:
            raise InvalidInputError(f"{len(missing)} documents missing embeddings")
        for document in documents:
            if not document.id:
                raise InvalidInputError("document id must not be empty")
            self._check_vector(document.embedding)  # type: ignore[arg-type]

        timestamp = datetime.now(timezone.utc).isoformat()
        points = [self._to_point(document, timestamp) for document in documents]
        for offset in range(0, len(points), self._batch_size):
            batch = points[offset : offset + self._batch_size]
            self._run(lambda batch=batch: self._store.upsert(batch), name="upsert_batch")
        self._logger.info("vector.batch_upserted", points=len(points))

    def delete(self, point_id: str) -> None:
        if not point_id:
            raise InvalidInputError("id must not be empty")
        self._run_once(lambda: self._store.delete([point_id]), name="delete")

    def delete_batch(self, ids: Sequence[str]) -> None:
        if not ids:
            return
        if any(not point_id for point_id in ids):
            raise InvalidInputError("ids must not be empty")
        self._run(lambda: self._store.delete(list(ids)), name="delete_batch")
        self._logger.info("vector.batch_deleted", points=len(ids))

    def delete_by_filter(self, filter: PayloadFilter) -> None:
        if not filter:
            raise InvalidInputError("filter must not be empty")
        self._run(lambda: self._store.delete_by_filter(filter), name="delete_by_filter")

    # -------------------------------------------------------------------- helpers

    def _run(self, operation: Callable[[], T], *, name: str) -> T:
        return self._unwrap(self._retry.execute(operation, name=name), name)

    def _run_once(self, operation: Callable[[], T], *, name: str) -> T:
        return self._unwrap(self._retry.single_attempt().execute(operation, name=name), name)

    def _unwrap(self, outcome, name: str):
        if isinstance(outcome, Failure):
            if not outcome.retryable:
                raise outcome.error
            raise IndexUnavailableError(
                f"Vector store {name} failed after {outcome.attempts} attempt(s): {outcome.error}"
            ) from outcome.error
        return outcome.value

    def _check_vector(self, vector: Sequence[float] | None) -> None:
        if vector is None or len(vector) == 0:
            raise InvalidInputError("vector must not be empty")
        if len(vector) != self._dimension:
            raise DimensionMismatchError(self._dimension, len(vector))

    def _normalize(self, score: float) -> float:
        if self._distance.is_similarity:
            return score
        return 1.0 / (1.0 + max(score, 0.0))

    @staticmethod
    def _to_point(document: IndexDocument, timestamp: str) -> VectorPoint:
        metadata = dict(document.metadata)
        payload = {
            "content": document.content,
            "timestamp": timestamp,
            "metadata": metadata,
            "document_id": metadata.get("document_id", document.id),
            "title": metadata.get("title"),
        }
        return VectorPoint(id=document.id, vector=tuple(document.embedding or ()), payload=payload)

    @staticmethod
    def _to_result(point: ScoredPoint, score: float) -> SearchResult:
        payload = dict(point.payload)
        metadata = payload.get("metadata")
        if not isinstance(metadata, Mapping):
            metadata = {key: value for key, value in payload.items() if key != "content"}
        title = metadata.get("title") or payload.get("title") or f"Document {point.id}"
        content = payload.get("content")
        return SearchResult(
            id=point.id,
            score=float(score),
            content=str(content) if content is not None else None,
            title=str(title),
            metadata=dict(metadata),
        )
