"""Qdrant REST backend built on httpx."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping, Sequence

import httpx

from ragcontext.errors import InvalidInputError, NotFoundError
from ragcontext.models import CollectionInfo, DistanceMetric, ScoredPoint, VectorPoint
from ragcontext.vector.base import PayloadFilter

LOGGER = logging.getLogger(__name__)

# Payload key holding the caller's id when it is not a valid Qdrant point id.
ORIGINAL_ID_KEY = "_point_id"

OPTIMIZERS_CONFIG: dict[str, Any] = {
    "deleted_threshold": 0.2,
    "vacuum_min_vector_number": 1000,
    "default_segment_number": 0,
    "max_segment_size": 200000,
    "memmap_threshold": 50000,
    "indexing_threshold": 20000,
    "flush_interval_sec": 5,
    "max_optimization_threads": 1,
}
WAL_CONFIG: dict[str, Any] = {"wal_capacity_mb": 32, "wal_segments_ahead": 0}


def to_point_id(point_id: str) -> int | str:
    """Qdrant only accepts unsigned integers and UUIDs as point ids."""

    if point_id.isdigit():
        return int(point_id)
    try:
        return str(uuid.UUID(point_id))
    except ValueError:
        return str(uuid.uuid5(uuid.NAMESPACE_URL, point_id))


def build_filter(filter: PayloadFilter | None) -> dict | None:
    """Translate a flat payload filter into Qdrant's ``must`` clauses.

    Mappings that already use Qdrant's ``must``/``should``/``must_not`` keys are
    passed through unchanged.
    """

    if not filter:
        return None
    if any(key in filter for key in ("must", "should", "must_not")):
        return dict(filter)
    conditions = []
    for key, value in filter.items():
        if isinstance(value, (list, tuple, set)):
            conditions.append({"key": key, "match": {"any": list(value)}})
        else:
            conditions.append({"key": key, "match": {"value": value}})
    return {"must": conditions}


class QdrantVectorStore:
    """Talks to a single Qdrant collection through its REST API."""

    def __init__(
        self,
        base_url: str,
        collection_name: str,
        *,
        api_key: str | None = None,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._collection = collection_name
        headers = {"api-key": api_key} if api_key else {}
        self._client = client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout, headers=headers)

    ################ ENDPOINTS ##################
    def _collection_path(self) -> str:
        return f"/collections/{self._collection}"

    def _points_path(self, suffix: str = "") -> str:
        return f"{self._collection_path()}/points{suffix}"

    ################ REQUESTS ##################
    def _request(self, method: str, path: str, *, json: Mapping[str, Any] | None = None, params: Mapping[str, Any] | None = None) -> dict:
        response = self._client.request(method, path, json=json, params=params)
        if response.status_code == 404:
            raise NotFoundError(f"Qdrant resource not found: {path}")
        if response.status_code >= 300:
            LOGGER.error(
                "Request to %s failed with status %d: %s", path, response.status_code, response.text
            )
            if 400 <= response.status_code < 500 and response.status_code != 429:
                # 4xx other than 429 means a malformed request, which is never retried.
                raise InvalidInputError(
                    f"Qdrant rejected {method} {path} with status {response.status_code}: {response.text}"
                )
            response.raise_for_status()
        if not response.content:
            return {}
        return response.json()

    def ping(self) -> None:
        self._request("GET", "/collections")

    def collection_exists(self) -> bool:
        body = self._request("GET", f"{self._collection_path()}/exists")
        return bool(body.get("result", {}).get("exists"))

    def create_collection(self, dimension: int, distance: DistanceMetric) -> None:
        self._request(
            "PUT",
            self._collection_path(),
            json={
                "vectors": {"size": dimension, "distance": DistanceMetric(distance).value},
                "optimizers_config": OPTIMIZERS_CONFIG,
                "wal_config": WAL_CONFIG,
            },
        )
        LOGGER.info("Created collection '%s'", self._collection)

    def drop_collection(self) -> None:
        self._request("DELETE", self._collection_path())
        LOGGER.info("Deleted collection '%s'", self._collection)

    def collection_info(self) -> CollectionInfo:
        result = self._request("GET", self._collection_path()).get("result", {})
        return CollectionInfo(
            name=self._collection,
            points_count=int(result.get("points_count") or 0),
            indexed_vectors_count=int(result.get("indexed_vectors_count") or 0),
            status=str(result.get("status") or "unknown"),
            payload_schema=result.get("payload_schema") or {},
        )

    def upsert(self, points: Sequence[VectorPoint]) -> None:
        body = {"points": [self._serialize_point(point) for point in points]}
        self._request("PUT", self._points_path(), json=body, params={"wait": "true"})

    def search(
        self,
        vector: Sequence[float],
        *,
        limit: int,
        offset: int = 0,
        filter: PayloadFilter | None = None,
        score_threshold: float | None = None,
    ) -> Sequence[ScoredPoint]:
        body: dict[str, Any] = {
            "vector": list(vector),
            "limit": limit,
            "offset": offset,
            "with_payload": True,
            "with_vector": False,
        }
        qdrant_filter = build_filter(filter)
        if qdrant_filter is not None:
            body["filter"] = qdrant_filter
        if score_threshold is not None:
            body["score_threshold"] = score_threshold
        result = self._request("POST", self._points_path("/search"), json=body).get("result", [])
        return [self._deserialize_point(raw) for raw in result]

    def delete(self, ids: Sequence[str]) -> None:
        body = {"points": [to_point_id(point_id) for point_id in ids]}
        self._request("POST", self._points_path("/delete"), json=body, params={"wait": "true"})

    def delete_by_filter(self, filter: PayloadFilter) -> None:
        body = {"filter": build_filter(filter)}
        self._request("POST", self._points_path("/delete"), json=body, params={"wait": "true"})

    def count(self, filter: PayloadFilter | None = None) -> int:
        body: dict[str, Any] = {"exact": True}
        qdrant_filter = build_filter(filter)
        if qdrant_filter is not None:
            body["filter"] = qdrant_filter
        return int(self._request("POST", self._points_path("/count"), json=body).get("result", {}).get("count", 0))

    def retrieve(self, ids: Sequence[str]) -> Sequence[ScoredPoint]:
        body = {
            "ids": [to_point_id(point_id) for point_id in ids],
            "with_payload": True,
            "with_vector": False,
        }
        result = self._request("POST", self._points_path(), json=body).get("result", [])
        return [self._deserialize_point(raw, default_score=1.0) for raw in result]

    def create_snapshot(self) -> str:
        result = self._request("POST", f"{self._collection_path()}/snapshots").get("result")
        if not result or "name" not in result:
            raise RuntimeError("Failed to create snapshot: no snapshot name in response")
        return str(result["name"])

    def optimize(self) -> None:
        config = dict(OPTIMIZERS_CONFIG, max_optimization_threads=2)
        self._request("PATCH", self._collection_path(), json={"optimizers_config": config})

    def close(self) -> None:
        self._client.close()

    ################ SERIALIZATION ##################
    @staticmethod
    def _serialize_point(point: VectorPoint) -> dict:
        payload = dict(point.payload)
        qdrant_id = to_point_id(point.id)
        if str(qdrant_id) != point.id:
            payload[ORIGINAL_ID_KEY] = point.id
        return {"id": qdrant_id, "vector": list(point.vector), "payload": payload}

    @staticmethod
    def _deserialize_point(raw: Mapping[str, Any], default_score: float = 0.0) -> ScoredPoint:
        payload = dict(raw.get("payload") or {})
        point_id = payload.pop(ORIGINAL_ID_KEY, None) or str(raw.get("id"))
        return ScoredPoint(id=point_id, score=float(raw.get("score", default_score)), payload=payload)
