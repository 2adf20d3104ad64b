from __future__ import annotations

import pytest

from ragcontext.collaborators import InMemoryDocumentStore
from ragcontext.embeddings.service import EmbeddingGenerator, HashEmbeddings
from ragcontext.errors import InvalidInputError
from ragcontext.ingestion.loaders import UnsupportedFileTypeError, document_id_for, load_document
from ragcontext.ingestion.service import DocumentIndexer
from ragcontext.models import ChunkingOptions, ChunkingStrategy, Document, VectorPoint
from ragcontext.vector.client import VectorIndexClient

DIM = 8

POLICY = (
    "Returns are accepted within thirty days of purchase. "
    "Items must be unused and in the original packaging. "
    "Refunds are issued to the original payment method. "
    "Shipping costs are not refunded."
)


@pytest.fixture()
def indexer(fake_store):
    index = VectorIndexClient(fake_store, dimension=DIM)
    index.ensure_collection()
    return DocumentIndexer(
        EmbeddingGenerator(HashEmbeddings(dim=DIM), dimension=DIM),
        index,
        chunking_options=ChunkingOptions(strategy=ChunkingStrategy.SENTENCE_BOUNDARY, max_chunk_size=80),
    )


def test_load_text_document(tmp_path):
    path = tmp_path / "returns.txt"
    path.write_text(POLICY, encoding="utf-8")

    document = load_document(path, metadata={"category": "policy"})

    assert document.id == document_id_for(path)
    assert document.title == "returns"
    assert document.content.startswith("Returns are accepted")
    assert document.metadata["original_filename"] == "returns.txt"
    assert document.metadata["media_type"] == "txt"
    assert document.metadata["category"] == "policy"


def test_load_document_rejects_unknown_extension(tmp_path):
    path = tmp_path / "archive.zip"
    path.write_bytes(b"PK")
    with pytest.raises(UnsupportedFileTypeError):
        load_document(path)


def test_index_document_writes_chunk_points(indexer, fake_store):
    result = indexer.index_document(Document(id="policy", content=POLICY, title="Returns Policy"))

    assert result.chunk_count > 1
    assert len(fake_store.points) == result.chunk_count
    first = fake_store.points["policy_chunk_0"]
    assert first.payload["document_id"] == "policy"
    assert first.payload["metadata"]["title"] == "Returns Policy"
    assert first.payload["metadata"]["chunk_index"] == 0
    assert first.payload["metadata"]["total_chunks"] == result.chunk_count
    assert first.payload["metadata"]["strategy"] == "sentence_boundary"


def test_reindexing_a_document_replaces_its_chunks(indexer, fake_store):
    indexer.index_document(Document(id="policy", content=POLICY, title="Returns"))
    indexer.index_document(Document(id="other", content="Our office is closed on public holidays.", title="Holidays"))

    result = indexer.index_document(Document(id="policy", content="Returns are accepted for thirty days.", title="Returns"))

    policy_points = [point for point in fake_store.points.values() if point.payload["document_id"] == "policy"]
    assert result.chunk_count == 1
    assert [point.id for point in policy_points] == ["policy_chunk_0"]
    assert "other_chunk_0" in fake_store.points


def test_document_without_text_is_rejected(indexer, fake_store):
    with pytest.raises(InvalidInputError):
        indexer.index_document(Document(id="empty", content="   \n\t "))
    assert fake_store.count_calls("upsert") == 0


def test_index_documents_reports_skipped(indexer):
    results = indexer.index_documents(
        [Document(id="empty", content=""), Document(id="policy", content=POLICY, title="Returns")]
    )
    assert [(result.document_id, result.skipped) for result in results] == [("empty", True), ("policy", False)]
    assert results[0].reason


def test_reindex_all_requires_confirmation(indexer, fake_store):
    store = InMemoryDocumentStore()
    store.create(Document(id="policy", content=POLICY, title="Returns"))
    fake_store.points["stale_chunk_0"] = VectorPoint(
        id="stale_chunk_0", vector=(0.0,) * DIM, payload={"document_id": "stale"}
    )

    with pytest.raises(InvalidInputError):
        indexer.reindex_all(store)
    assert "stale_chunk_0" in fake_store.points

    results = indexer.reindex_all(store, confirm=True)

    assert [result.document_id for result in results] == ["policy"]
    assert "stale_chunk_0" not in fake_store.points
    assert all(point.payload["document_id"] == "policy" for point in fake_store.points.values())


def test_remove_document_deletes_only_its_chunks(indexer, fake_store):
    indexer.index_document(Document(id="policy", content=POLICY, title="Returns"))
    indexer.index_document(Document(id="other", content="Our office is closed on public holidays.", title="Holidays"))

    indexer.remove_document("policy")

    assert {point.payload["document_id"] for point in fake_store.points.values()} == {"other"}
