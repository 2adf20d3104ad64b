"""Runtime configuration for the ragcontext pipeline."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from ragcontext.models import ChunkingOptions, ChunkingStrategy, DistanceMetric

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful customer support assistant. "
    "Answer questions using the company knowledge base."
)


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="ragcontext_", env_file=".env", case_sensitive=False)

    environment: Literal["dev", "test", "prod"] = "dev"
    log_level: str = "INFO"

    # Embeddings
    embedding_provider: Literal["hash", "openai", "huggingface"] = "hash"
    embedding_model: str = "text-embedding-ada-002"
    embedding_batch_size: int = 100
    embedding_api_base: str = "https://api.openai.com/v1"
    embedding_api_key: str | None = None

    # Generation
    llm_provider: Literal["template", "openai", "transformers"] = "template"
    llm_model: str = "gpt-3.5-turbo"
    llm_max_tokens: int = 500
    llm_temperature: float = 0.7
    llm_system_prompt: str = DEFAULT_SYSTEM_PROMPT
    llm_api_base: str = "https://api.openai.com/v1"
    llm_api_key: str | None = None

    # Vector index
    vector_backend: Literal["qdrant", "chroma"] = "chroma"
    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: str | None = None
    chroma_persist_dir: Path | None = Path("./.chroma")
    vector_collection: str = "faq_documents"
    vector_dimension: int = 1536
    vector_distance: DistanceMetric = DistanceMetric.COSINE
    vector_max_retries: int = 3
    vector_retry_delay_ms: int = 1000
    vector_batch_size: int = 100
    request_timeout_seconds: float = 30.0

    # Retrieval and context
    search_limit: int = 5
    score_threshold: float = 0.7
    context_window_size: int = 4000
    context_max_tokens: int | None = None
    max_context_documents: int = 5

    # Chunking
    chunk_strategy: ChunkingStrategy = ChunkingStrategy.SENTENCE_BOUNDARY
    chunk_max_size: int = 1000
    chunk_overlap: int = 0

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    @property
    def retry_delay_seconds(self) -> float:
        return self.vector_retry_delay_ms / 1000.0

    @property
    def chunking_options(self) -> ChunkingOptions:
        return ChunkingOptions(
            strategy=self.chunk_strategy,
            max_chunk_size=self.chunk_max_size,
            overlap_size=self.chunk_overlap,
        )


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()
