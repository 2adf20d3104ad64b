from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Sequence

import pytest

from ragcontext.errors import NotFoundError
from ragcontext.models import CollectionInfo, DistanceMetric, ScoredPoint, VectorPoint


class FakeVectorStore:
    """In-memory VectorStore that records calls and can be told to fail."""

    def __init__(self) -> None:
        self.points: Dict[str, VectorPoint] = {}
        self.exists = False
        self.dimension: int | None = None
        self.distance = DistanceMetric.COSINE
        self.calls: List[str] = []
        self.failures: Dict[str, int] = {}
        self.reachable = True
        self.scores: List[float] | None = None

    def fail(self, operation: str, times: int) -> None:
        self.failures[operation] = times

    def _call(self, operation: str) -> None:
        self.calls.append(operation)
        remaining = self.failures.get(operation, 0)
        if remaining:
            self.failures[operation] = remaining - 1
            raise ConnectionError(f"{operation} unavailable")

    def count_calls(self, operation: str) -> int:
        return self.calls.count(operation)

    def ping(self) -> None:
        self.calls.append("ping")
        if not self.reachable:
            raise ConnectionError("unreachable")

    def collection_exists(self) -> bool:
        self._call("collection_exists")
        return self.exists

    def create_collection(self, dimension: int, distance: DistanceMetric) -> None:
        self._call("create_collection")
        self.exists = True
        self.dimension = dimension
        self.distance = distance

    def drop_collection(self) -> None:
        self._call("drop_collection")
        self.exists = False
        self.points.clear()

    def collection_info(self) -> CollectionInfo:
        self._call("collection_info")
        return CollectionInfo(
            name="fake",
            points_count=len(self.points),
            indexed_vectors_count=len(self.points),
            status="green",
        )

    def upsert(self, points: Sequence[VectorPoint]) -> None:
        self._call("upsert")
        for point in points:
            self.points[point.id] = point

    def search(
        self,
        vector: Sequence[float],
        *,
        limit: int,
        offset: int = 0,
        filter: Mapping[str, Any] | None = None,
        score_threshold: float | None = None,
    ) -> Sequence[ScoredPoint]:
        self._call("search")
        candidates = [point for point in self.points.values() if self._matches(point, filter)]
        if self.scores is not None:
            scored = [
                ScoredPoint(id=point.id, score=score, payload=point.payload)
                for point, score in zip(candidates, self.scores)
            ]
        else:
            scored = [
                ScoredPoint(id=point.id, score=_cosine(vector, point.vector), payload=point.payload)
                for point in candidates
            ]
            scored.sort(key=lambda point: point.score, reverse=True)
        if score_threshold is not None:
            scored = [point for point in scored if point.score >= score_threshold]
        return scored[offset : offset + limit]

    def delete(self, ids: Sequence[str]) -> None:
        self._call("delete")
        for point_id in ids:
            self.points.pop(point_id, None)

    def delete_by_filter(self, filter: Mapping[str, Any]) -> None:
        self._call("delete_by_filter")
        for point_id in [key for key, point in self.points.items() if self._matches(point, filter)]:
            del self.points[point_id]

    def count(self, filter: Mapping[str, Any] | None = None) -> int:
        self._call("count")
        return sum(1 for point in self.points.values() if self._matches(point, filter))

    def retrieve(self, ids: Sequence[str]) -> Sequence[ScoredPoint]:
        self._call("retrieve")
        return [
            ScoredPoint(id=point_id, score=1.0, payload=self.points[point_id].payload)
            for point_id in ids
            if point_id in self.points
        ]

    def create_snapshot(self) -> str:
        self._call("create_snapshot")
        if not self.exists:
            raise NotFoundError("no collection")
        return "fake-snapshot"

    def optimize(self) -> None:
        self._call("optimize")

    def close(self) -> None:
        self.calls.append("close")

    @staticmethod
    def _matches(point: VectorPoint, filter: Mapping[str, Any] | None) -> bool:
        if not filter:
            return True
        return all(point.payload.get(key) == value for key, value in filter.items())


def _cosine(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class RecordingLLM:
    """LLM provider double that records prompts and returns a canned reply or raises."""

    def __init__(self, reply: str | None = "Grounded answer.", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def complete(self, **kwargs: Any) -> str | None:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.reply


class NoSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture()
def fake_store() -> FakeVectorStore:
    return FakeVectorStore()


@pytest.fixture()
def no_sleep() -> NoSleep:
    return NoSleep()
