"""Embedding providers and the batched embedding generator."""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass
from typing import List, Literal, Sequence, Tuple

import httpx
from langchain_core.embeddings import Embeddings as LangChainEmbeddings

from ragcontext.errors import DimensionMismatchError, EmbeddingProviderError, InvalidInputError
from ragcontext.metrics.observability import PipelineMetrics, TimedSection

LOGGER = logging.getLogger(__name__)

Vector = Tuple[float, ...]


@dataclass(frozen=True)
class EmbeddingConfig:
    """Configuration for embedding providers."""

    provider: Literal["hash", "openai", "huggingface"] = "hash"
    model: str = "text-embedding-ada-002"
    dim: int = 1536
    batch_size: int = 100
    api_base: str = "https://api.openai.com/v1"
    api_key: str | None = None
    timeout: float = 30.0
    normalize: bool = True
    device: str | None = None


class HashEmbeddings(LangChainEmbeddings):
    """Deterministic lightweight embeddings used for testing and offline runs."""

    def __init__(self, dim: int = 1536, normalize: bool = True) -> None:
        self._dim = dim
        self._normalize = normalize

    def _hash_to_vector(self, text: str) -> List[float]:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        repeat = (self._dim + len(digest) - 1) // len(digest)
        raw = (digest * repeat)[: self._dim]
        vector = [byte / 255.0 for byte in raw]
        if self._normalize:
            norm = math.sqrt(sum(value * value for value in vector)) or 1.0
            vector = [value / norm for value in vector]
        return vector

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        return [self._hash_to_vector(text) for text in texts]

    def embed_query(self, text: str) -> List[float]:
        return self._hash_to_vector(text)


class HttpEmbeddings(LangChainEmbeddings):
    """OpenAI-compatible ``/embeddings`` endpoint called over httpx."""

    def __init__(
        self,
        model: str,
        *,
        api_base: str = "https://api.openai.com/v1",
        api_key: str | None = None,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._model = model
        self._url = f"{api_base.rstrip('/')}/embeddings"
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = client or httpx.Client(timeout=timeout, headers=headers)

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        response = self._client.post(self._url, json={"model": self._model, "input": list(texts)})
        response.raise_for_status()
        data = response.json().get("data")
        if not isinstance(data, list) or len(data) != len(texts):
            raise EmbeddingProviderError(
                f"Embedding response contained {len(data) if isinstance(data, list) else 0} "
                f"vectors for {len(texts)} inputs"
            )
        ordered = sorted(data, key=lambda item: item.get("index", 0))
        return [list(item["embedding"]) for item in ordered]

    def embed_query(self, text: str) -> List[float]:
        return self.embed_documents([text])[0]

    def close(self) -> None:
        self._client.close()


def build_embedding_provider(config: EmbeddingConfig) -> LangChainEmbeddings:
    """Construct the provider selected by ``config.provider``."""

    if config.provider == "openai":
        return HttpEmbeddings(
            config.model,
            api_base=config.api_base,
            api_key=config.api_key,
            timeout=config.timeout,
        )
    if config.provider == "huggingface":
        from langchain_community.embeddings import HuggingFaceEmbeddings

        model_kwargs = {"device": config.device} if config.device else {}
        LOGGER.info("Loading embedding model %s", config.model)
        return HuggingFaceEmbeddings(
            model_name=config.model,
            model_kwargs=model_kwargs,
            encode_kwargs={"normalize_embeddings": config.normalize},
        )
    LOGGER.info("Embedding generator running in hash-only mode.")
    return HashEmbeddings(dim=config.dim, normalize=config.normalize)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; 0.0 when either vector has zero norm."""

    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class EmbeddingGenerator:
    """Turns text into fixed-dimension vectors through a LangChain embeddings provider."""

    def __init__(
        self,
        provider: LangChainEmbeddings,
        *,
        dimension: int | None = None,
        batch_size: int = 100,
    ) -> None:
        if batch_size <= 0:
            raise InvalidInputError("batch_size must be positive")
        self._provider = provider
        self._dimension = dimension
        self._batch_size = batch_size

    @property
    def dimension(self) -> int | None:
        return self._dimension

    def embed(self, text: str) -> Vector:
        if not text or not text.strip():
            raise InvalidInputError("Cannot embed empty text")
        LOGGER.debug("Generating embedding for text of length %d", len(text))
        with TimedSection(PipelineMetrics.observe_embedding):
            vector = tuple(self._provider.embed_query(text))
        self._check_dimension(vector)
        return vector

    def embed_batch(self, texts: Sequence[str]) -> List[Vector]:
        """Embed the non-empty entries of ``texts``, preserving their order.

        Empty and whitespace-only strings are dropped before the provider is
        called, so the result aligns with the filtered input.
        """

        filtered = [text for text in texts if text and text.strip()]
        if not filtered:
            raise InvalidInputError("No non-empty texts to embed")
        if len(filtered) != len(texts):
            LOGGER.debug("Dropped %d empty texts before embedding", len(texts) - len(filtered))

        vectors: List[Vector] = []
        with TimedSection(PipelineMetrics.observe_embedding):
            for offset in range(0, len(filtered), self._batch_size):
                batch = filtered[offset : offset + self._batch_size]
                embedded = self._provider.embed_documents(batch)
                if len(embedded) != len(batch):
                    LOGGER.error(
                        "Embedding provider returned %d vectors for %d texts", len(embedded), len(batch)
                    )
                    raise EmbeddingProviderError("Mismatch between number of texts and embedding vectors")
                for raw in embedded:
                    vector = tuple(raw)
                    self._check_dimension(vector)
                    vectors.append(vector)
        LOGGER.debug("Generated %d embeddings in %d batches", len(vectors), math.ceil(len(filtered) / self._batch_size))
        return vectors

    def similarity(self, a: Sequence[float], b: Sequence[float]) -> float:
        return cosine_similarity(a, b)

    def _check_dimension(self, vector: Vector) -> None:
        if self._dimension is not None and len(vector) != self._dimension:
            raise DimensionMismatchError(self._dimension, len(vector))
