"""Exception taxonomy shared by every pipeline stage."""

from __future__ import annotations


class RagContextError(RuntimeError):
    """Base class for pipeline errors."""


class InvalidInputError(RagContextError, ValueError):
    """Raised for empty or malformed input. Never retried."""


class DimensionMismatchError(InvalidInputError):
    """Raised when a vector does not have the expected number of dimensions."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Vector dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class IndexUnavailableError(RagContextError):
    """Raised when the vector store keeps failing after the retries are exhausted."""


class NotFoundError(RagContextError, LookupError):
    """Raised for a missing document, log record or collection."""


class UnsupportedOperationError(RagContextError):
    """Raised when a backend cannot perform the requested operation."""


class PermissionDeniedError(RagContextError):
    """Raised when the caller lacks the role required for an operation."""


class EmbeddingProviderError(RagContextError):
    """Raised when the embedding provider returns an unusable response."""


class ProviderError(RagContextError):
    """Error raised by an LLM provider, optionally carrying an HTTP status code."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderDegradedError(ProviderError):
    """Provider is rate limited (429) or rejects our credentials (401)."""


class QueryFailedError(RagContextError):
    """Raised by the query orchestrator once a failed query has been logged."""

    def __init__(self, message: str, *, query_id: str, user_message: str) -> None:
        super().__init__(message)
        self.query_id = query_id
        self.user_message = user_message


__all__ = [
    "DimensionMismatchError",
    "EmbeddingProviderError",
    "IndexUnavailableError",
    "InvalidInputError",
    "NotFoundError",
    "PermissionDeniedError",
    "ProviderDegradedError",
    "ProviderError",
    "QueryFailedError",
    "RagContextError",
    "UnsupportedOperationError",
]
