"""Vector index client, retry policy and store backends."""

from .base import PayloadFilter, VectorStore
from .chroma import ChromaVectorStore
from .client import VectorIndexClient
from .qdrant import QdrantVectorStore
from .retry import Failure, RetryPolicy, Success

__all__ = [
    "ChromaVectorStore",
    "Failure",
    "PayloadFilter",
    "QdrantVectorStore",
    "RetryPolicy",
    "Success",
    "VectorIndexClient",
    "VectorStore",
]
