"""Embedding services."""

from .service import (
    EmbeddingConfig,
    EmbeddingGenerator,
    HashEmbeddings,
    HttpEmbeddings,
    build_embedding_provider,
    cosine_similarity,
)

__all__ = [
    "EmbeddingConfig",
    "EmbeddingGenerator",
    "HashEmbeddings",
    "HttpEmbeddings",
    "build_embedding_provider",
    "cosine_similarity",
]
