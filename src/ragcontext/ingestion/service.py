"""Indexing of documents into the vector index."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Sequence

from ragcontext.collaborators import DocumentStore
from ragcontext.embeddings.service import EmbeddingGenerator
from ragcontext.errors import InvalidInputError
from ragcontext.metrics.observability import PipelineMetrics, get_logger
from ragcontext.models import ChunkingOptions, Document, DocumentChunk, IndexDocument
from ragcontext.processing.chunking import TextChunker
from ragcontext.processing.preprocessing import TextPreprocessor
from ragcontext.vector.client import VectorIndexClient

_SCALARS = (str, int, float, bool)


@dataclass(frozen=True)
class IndexingResult:
    document_id: str
    chunk_count: int
    skipped: bool = False
    reason: str | None = None


class DocumentIndexer:
    """Preprocesses, chunks and embeds documents, then replaces their points in the index.

    The document store stays the source of truth: the index only ever holds
    chunks derived from it, keyed ``<document_id>_chunk_<index>``.
    """

    def __init__(
        self,
        embedder: EmbeddingGenerator,
        index: VectorIndexClient,
        *,
        chunker: TextChunker | None = None,
        preprocessor: TextPreprocessor | None = None,
        chunking_options: ChunkingOptions | None = None,
    ) -> None:
        self._embedder = embedder
        self._index = index
        self._chunker = chunker or TextChunker()
        self._preprocessor = preprocessor or TextPreprocessor()
        self._options = chunking_options or ChunkingOptions()
        self._logger = get_logger("ingestion")

    def index_document(self, document: Document, options: ChunkingOptions | None = None) -> IndexingResult:
        start = time.perf_counter()
        text = self._preprocessor.preprocess(document.content)
        if not self._preprocessor.validate(text):
            raise InvalidInputError(f"Document {document.id} has no usable text after preprocessing")

        source_file = str(document.metadata.get("source") or document.title or document.id)
        chunks = self._chunker.chunk(
            text,
            options or self._options,
            document_id=document.id,
            source_file=source_file,
        )
        embed_texts = [self._preprocessor.preprocess_for_embedding(chunk.content) for chunk in chunks]
        pairs = [(chunk, embed_text) for chunk, embed_text in zip(chunks, embed_texts) if embed_text.strip()]
        if not pairs:
            raise InvalidInputError(f"Document {document.id} produced no chunks")
        vectors = self._embedder.embed_batch([embed_text for _, embed_text in pairs])

        points = [
            IndexDocument(
                id=chunk.id,
                content=chunk.content,
                metadata=self._chunk_metadata(document, chunk),
                embedding=vector,
            )
            for (chunk, _), vector in zip(pairs, vectors)
        ]
        self._index.delete_by_filter({"document_id": document.id})
        self._index.upsert_batch(points)

        duration = time.perf_counter() - start
        PipelineMetrics.observe_indexing(len(points))
        self._logger.info(
            "ingestion.complete",
            document_id=document.id,
            chunk_count=len(points),
            strategy=chunks[0].strategy.value,
            requested_strategy=chunks[0].requested_strategy.value,
            duration_seconds=duration,
        )
        return IndexingResult(document_id=document.id, chunk_count=len(points))

    def index_documents(
        self, documents: Iterable[Document], options: ChunkingOptions | None = None
    ) -> List[IndexingResult]:
        """Index each document; documents without usable text are reported as skipped."""

        results: List[IndexingResult] = []
        for document in documents:
            try:
                results.append(self.index_document(document, options))
            except InvalidInputError as exc:
                self._logger.warning("ingestion.skipped", document_id=document.id, reason=str(exc))
                results.append(
                    IndexingResult(document_id=document.id, chunk_count=0, skipped=True, reason=str(exc))
                )
        return results

    def remove_document(self, document_id: str) -> None:
        self._index.delete_by_filter({"document_id": document_id})
        self._logger.info("ingestion.removed", document_id=document_id)

    def reindex_all(self, store: DocumentStore, *, confirm: bool = False) -> List[IndexingResult]:
        """Drop the whole index and rebuild it from every document in ``store``."""

        self._index.reindex_all(confirm=confirm)
        results = self.index_documents(store.list())
        self._logger.info(
            "ingestion.reindexed",
            documents=len(results),
            chunks=sum(result.chunk_count for result in results),
        )
        return results

    def reindex_documents(self, store: DocumentStore, document_ids: Sequence[str]) -> List[IndexingResult]:
        return [self.index_document(store.get(document_id)) for document_id in document_ids]

    @staticmethod
    def _chunk_metadata(document: Document, chunk: DocumentChunk) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            key: value for key, value in document.metadata.items() if isinstance(value, _SCALARS)
        }
        metadata.update(
            {
                "document_id": document.id,
                "title": document.title or f"Document {document.id}",
                "source_file": chunk.source_file,
                "chunk_index": chunk.chunk_index,
                "total_chunks": chunk.total_chunks,
                "token_count": chunk.token_count,
                "strategy": chunk.strategy.value,
                "requested_strategy": chunk.requested_strategy.value,
            }
        )
        if chunk.start_position is not None:
            metadata["start_position"] = chunk.start_position
        if chunk.end_position is not None:
            metadata["end_position"] = chunk.end_position
        return metadata
