"""Chroma-backed vector store for local and in-process use."""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Sequence

import chromadb
from chromadb import errors as chroma_errors
from chromadb.api import ClientAPI

from ragcontext.errors import NotFoundError, UnsupportedOperationError
from ragcontext.models import CollectionInfo, DistanceMetric, ScoredPoint, VectorPoint
from ragcontext.vector.base import PayloadFilter

_PAYLOAD_KEY = "_payload"
_SPACES = {
    DistanceMetric.COSINE: "cosine",
    DistanceMetric.DOT: "ip",
    DistanceMetric.EUCLID: "l2",
}
_SCALARS = (str, int, float, bool)
# Older chromadb releases report a missing collection as a bare ValueError.
_MISSING_COLLECTION = tuple(
    error
    for error in (getattr(chroma_errors, name, None) for name in ("NotFoundError", "InvalidCollectionException"))
    if isinstance(error, type)
) + (ValueError,)


def build_where(filter: PayloadFilter | None) -> dict | None:
    if not filter:
        return None
    clauses: List[dict] = []
    for key, value in filter.items():
        if isinstance(value, (list, tuple, set)):
            clauses.append({key: {"$in": list(value)}})
        else:
            clauses.append({key: value})
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


class ChromaVectorStore:
    """Stores points in a single Chroma collection.

    Chroma metadata only holds scalars, so the full payload is kept as JSON next
    to its top-level scalar fields (which remain filterable).
    """

    def __init__(
        self,
        collection_name: str,
        *,
        client: ClientAPI | None = None,
        persist_directory: str | Path | None = None,
    ) -> None:
        if client is not None:
            self._client = client
        elif persist_directory is not None:
            self._client = chromadb.PersistentClient(path=str(persist_directory))
        else:
            self._client = chromadb.EphemeralClient()
        self._name = collection_name

    def _collection(self):
        try:
            return self._client.get_collection(name=self._name)
        except _MISSING_COLLECTION as exc:
            raise NotFoundError(f"Chroma collection '{self._name}' not found") from exc

    def ping(self) -> None:
        self._client.heartbeat()

    def collection_exists(self) -> bool:
        names = {getattr(item, "name", item) for item in self._client.list_collections()}
        return self._name in names

    def create_collection(self, dimension: int, distance: DistanceMetric) -> None:
        distance = DistanceMetric(distance)
        space = _SPACES.get(distance)
        if space is None:
            raise UnsupportedOperationError(f"Chroma does not support the {distance.value} metric")
        self._client.get_or_create_collection(
            name=self._name,
            metadata={"hnsw:space": space, "dimension": dimension},
        )

    def drop_collection(self) -> None:
        self._client.delete_collection(name=self._name)

    def collection_info(self) -> CollectionInfo:
        count = int(self._collection().count())
        return CollectionInfo(
            name=self._name,
            points_count=count,
            indexed_vectors_count=count,
            status="green",
        )

    def upsert(self, points: Sequence[VectorPoint]) -> None:
        self._collection().upsert(
            ids=[point.id for point in points],
            embeddings=[list(point.vector) for point in points],
            documents=[str(point.payload.get("content") or "") for point in points],
            metadatas=[self._serialize_payload(point.payload) for point in points],
        )

    def search(
        self,
        vector: Sequence[float],
        *,
        limit: int,
        offset: int = 0,
        filter: PayloadFilter | None = None,
        score_threshold: float | None = None,
    ) -> Sequence[ScoredPoint]:
        collection = self._collection()
        metric = self._metric_of(collection)
        results = collection.query(
            query_embeddings=[list(vector)],
            n_results=limit + offset,
            where=build_where(filter),
            include=["metadatas", "distances"],
        )
        ids = self._first(results.get("ids"))
        metadatas = self._first(results.get("metadatas"))
        distances = self._first(results.get("distances"))
        points = [
            ScoredPoint(id=point_id, score=self._score(raw, metric), payload=self._deserialize_payload(metadata))
            for point_id, metadata, raw in zip(ids, metadatas, distances)
        ][offset:]
        if score_threshold is not None:
            if metric.is_similarity:
                points = [point for point in points if point.score >= score_threshold]
            else:
                points = [point for point in points if point.score <= score_threshold]
        return points

    def delete(self, ids: Sequence[str]) -> None:
        self._collection().delete(ids=list(ids))

    def delete_by_filter(self, filter: PayloadFilter) -> None:
        self._collection().delete(where=build_where(filter))

    def count(self, filter: PayloadFilter | None = None) -> int:
        collection = self._collection()
        if not filter:
            return int(collection.count())
        return len(collection.get(where=build_where(filter), include=[]).get("ids") or [])

    def retrieve(self, ids: Sequence[str]) -> Sequence[ScoredPoint]:
        batch = self._collection().get(ids=list(ids), include=["metadatas"])
        return [
            ScoredPoint(id=point_id, score=1.0, payload=self._deserialize_payload(metadata))
            for point_id, metadata in zip(batch.get("ids") or [], batch.get("metadatas") or [])
        ]

    def create_snapshot(self) -> str:
        raise UnsupportedOperationError("Chroma collections do not support snapshots")

    def optimize(self) -> None:
        raise UnsupportedOperationError("Chroma collections do not expose optimizer settings")

    def close(self) -> None:
        """Chroma clients hold no sockets that need closing."""

    @staticmethod
    def _metric_of(collection) -> DistanceMetric:
        space = (collection.metadata or {}).get("hnsw:space", "l2")
        for metric, name in _SPACES.items():
            if name == space:
                return metric
        return DistanceMetric.EUCLID

    @staticmethod
    def _score(raw: float | None, metric: DistanceMetric) -> float:
        if raw is None:
            return 0.0
        if metric is DistanceMetric.EUCLID:
            # Chroma reports squared L2.
            return math.sqrt(max(float(raw), 0.0))
        # cosine and ip spaces report 1 - similarity
        return 1.0 - float(raw)

    @staticmethod
    def _serialize_payload(payload: Mapping[str, Any]) -> MutableMapping[str, Any]:
        metadata: MutableMapping[str, Any] = {
            key: value
            for key, value in payload.items()
            if isinstance(value, _SCALARS) and key != "content"
        }
        metadata[_PAYLOAD_KEY] = json.dumps(dict(payload), default=str)
        return metadata

    @staticmethod
    def _deserialize_payload(metadata: Mapping[str, Any] | None) -> Dict[str, Any]:
        if not metadata:
            return {}
        raw = metadata.get(_PAYLOAD_KEY)
        if isinstance(raw, str) and raw:
            try:
                loaded = json.loads(raw)
                if isinstance(loaded, dict):
                    return loaded
            except json.JSONDecodeError:
                pass
        return {key: value for key, value in metadata.items() if key != _PAYLOAD_KEY}

    @staticmethod
    def _first(value: object) -> list:
        if isinstance(value, list):
            return value[0] if value else []
        return []
