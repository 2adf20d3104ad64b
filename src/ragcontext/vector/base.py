"""Backend protocol for vector stores."""

from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence

from ragcontext.models import CollectionInfo, DistanceMetric, ScoredPoint, VectorPoint

PayloadFilter = Mapping[str, Any]


class VectorStore(Protocol):
    """Raw collection operations of a vector store backend.

    Filters are flat ``{payload_key: value}`` mappings matched by equality (a
    list value matches any of its members). Search scores are reported the way
    the collection's metric defines them: larger is closer for Cosine and Dot,
    smaller is closer for Euclid and Manhattan.
    """

    def ping(self) -> None:
        """Raise if the backend cannot be reached."""

    def collection_exists(self) -> bool:
        """Return True if the configured collection exists."""

    def create_collection(self, dimension: int, distance: DistanceMetric) -> None:
        """Create the configured collection."""

    def drop_collection(self) -> None:
        """Delete the configured collection and all its points."""

    def collection_info(self) -> CollectionInfo:
        """Return statistics about the collection."""

    def upsert(self, points: Sequence[VectorPoint]) -> None:
        """Insert or replace points."""

    def search(
        self,
        vector: Sequence[float],
        *,
        limit: int,
        offset: int = 0,
        filter: PayloadFilter | None = None,
        score_threshold: float | None = None,
    ) -> Sequence[ScoredPoint]:
        """Return nearest points."""

    def delete(self, ids: Sequence[str]) -> None:
        """Delete points by id."""

    def delete_by_filter(self, filter: PayloadFilter) -> None:
        """Delete all points whose payload matches ``filter``."""

    def count(self, filter: PayloadFilter | None = None) -> int:
        """Return the number of points matching ``filter``."""

    def retrieve(self, ids: Sequence[str]) -> Sequence[ScoredPoint]:
        """Return stored points by id (score is meaningless)."""

    def create_snapshot(self) -> str:
        """Snapshot the collection and return the snapshot name."""

    def optimize(self) -> None:
        """Apply optimizer settings to the collection."""

    def close(self) -> None:
        """Release network resources."""
