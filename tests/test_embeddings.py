from __future__ import annotations

import json
import math

import httpx
import pytest
from langchain_core.embeddings import Embeddings

from ragcontext.embeddings.service import (
    EmbeddingGenerator,
    HashEmbeddings,
    HttpEmbeddings,
    cosine_similarity,
)
from ragcontext.errors import DimensionMismatchError, EmbeddingProviderError, InvalidInputError


class CountingEmbeddings(Embeddings):
    def __init__(self, dim: int = 4) -> None:
        self.dim = dim
        self.batches: list[list[str]] = []

    def embed_documents(self, texts):
        self.batches.append(list(texts))
        return [[float(len(text))] + [1.0] * (self.dim - 1) for text in texts]

    def embed_query(self, text):
        return [float(len(text))] + [1.0] * (self.dim - 1)


def test_hash_embeddings_are_deterministic_and_normalized():
    embeddings = HashEmbeddings(dim=64)
    first = embeddings.embed_query("hello world")
    assert first == embeddings.embed_query("hello world")
    assert len(first) == 64
    assert math.isclose(math.sqrt(sum(value * value for value in first)), 1.0, rel_tol=1e-9)


def test_embed_rejects_blank_text():
    generator = EmbeddingGenerator(HashEmbeddings(dim=8))
    with pytest.raises(InvalidInputError):
        generator.embed("   ")


def test_embed_checks_dimension():
    generator = EmbeddingGenerator(HashEmbeddings(dim=8), dimension=16)
    with pytest.raises(DimensionMismatchError):
        generator.embed("hello")


def test_embed_batch_uses_sub_batches_in_order():
    provider = CountingEmbeddings()
    generator = EmbeddingGenerator(provider, dimension=4, batch_size=100)
    texts = [f"text {index}" * (index % 3 + 1) for index in range(250)]
    vectors = generator.embed_batch(texts)
    assert [len(batch) for batch in provider.batches] == [100, 100, 50]
    assert [vector[0] for vector in vectors] == [float(len(text)) for text in texts]


def test_embed_batch_filters_empty_strings():
    provider = CountingEmbeddings()
    generator = EmbeddingGenerator(provider)
    vectors = generator.embed_batch(["a", "", "  ", "bcd"])
    assert provider.batches == [["a", "bcd"]]
    assert [vector[0] for vector in vectors] == [1.0, 3.0]


def test_embed_batch_rejects_all_empty_input():
    generator = EmbeddingGenerator(CountingEmbeddings())
    with pytest.raises(InvalidInputError):
        generator.embed_batch(["", " "])


def test_cosine_similarity_properties():
    vector = [0.3, -1.2, 4.0]
    assert math.isclose(cosine_similarity(vector, vector), 1.0)
    assert cosine_similarity(vector, [0.0, 0.0, 0.0]) == 0.0
    assert cosine_similarity([1, 0, 0], [0, 1, 0]) == 0.0
    with pytest.raises(DimensionMismatchError):
        cosine_similarity([1, 2], [1, 2, 3])


def test_http_embeddings_orders_by_index():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return httpx.Response(
            200,
            json={"data": [{"index": 1, "embedding": [0.0, 1.0]}, {"index": 0, "embedding": [1.0, 0.0]}]},
        )

    client = httpx.Client(transport=httpx.MockTransport(handler))
    embeddings = HttpEmbeddings("text-embedding-ada-002", api_base="https://example.test/v1", client=client)
    assert embeddings.embed_documents(["first", "second"]) == [[1.0, 0.0], [0.0, 1.0]]
    assert seen == {"model": "text-embedding-ada-002", "input": ["first", "second"]}


def test_http_embeddings_rejects_short_response():
    client = httpx.Client(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"data": []}))
    )
    embeddings = HttpEmbeddings("model", client=client)
    with pytest.raises(EmbeddingProviderError):
        embeddings.embed_documents(["one"])
