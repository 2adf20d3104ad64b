"""Composition root wiring configured collaborators into a pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List

from ragcontext.admin import AdminService
from ragcontext.collaborators import (
    DocumentStore,
    InMemoryDocumentStore,
    InMemoryQueryLogSink,
    QueryLogSink,
    SpeechToText,
)
from ragcontext.config import Settings, get_settings
from ragcontext.embeddings.service import EmbeddingConfig, EmbeddingGenerator, build_embedding_provider
from ragcontext.ingestion.service import DocumentIndexer
from ragcontext.metrics.observability import configure_logging, get_logger
from ragcontext.processing.chunking import TextChunker
from ragcontext.processing.tokenizer import get_tokenizer
from ragcontext.services.context import ContextAssembler, PromptBuilder
from ragcontext.services.generation import (
    AnswerGenerator,
    HttpChatProvider,
    LLMProvider,
    TemplateChatProvider,
    TransformersChatProvider,
    TransformersConfig,
)
from ragcontext.services.query import QueryConfig, QueryService
from ragcontext.vector.base import VectorStore
from ragcontext.vector.chroma import ChromaVectorStore
from ragcontext.vector.client import VectorIndexClient
from ragcontext.vector.qdrant import QdrantVectorStore
from ragcontext.vector.retry import RetryPolicy


@dataclass
class Pipeline:
    settings: Settings
    documents: DocumentStore
    query_log: QueryLogSink
    embedder: EmbeddingGenerator
    index: VectorIndexClient
    indexer: DocumentIndexer
    answers: AnswerGenerator
    queries: QueryService
    admin: AdminService
    _closeables: List[Any] = field(default_factory=list, repr=False)

    def close(self) -> None:
        for resource in self._closeables:
            resource.close()
        self.index.close()


def build_vector_store(settings: Settings) -> VectorStore:
    if settings.vector_backend == "qdrant":
        return QdrantVectorStore(
            settings.qdrant_url,
            settings.vector_collection,
            api_key=settings.qdrant_api_key,
            timeout=settings.request_timeout_seconds,
        )
    return ChromaVectorStore(
        settings.vector_collection,
        persist_directory=settings.chroma_persist_dir,
    )


def build_llm_provider(settings: Settings) -> LLMProvider:
    if settings.llm_provider == "openai":
        return HttpChatProvider(
            api_base=settings.llm_api_base,
            api_key=settings.llm_api_key,
            timeout=settings.request_timeout_seconds,
        )
    if settings.llm_provider == "transformers":
        return TransformersChatProvider(TransformersConfig(model=settings.llm_model))
    return TemplateChatProvider()


def build_pipeline(
    settings: Settings | None = None,
    *,
    store: VectorStore | None = None,
    documents: DocumentStore | None = None,
    query_log: QueryLogSink | None = None,
    llm_provider: LLMProvider | None = None,
    transcriber: SpeechToText | None = None,
    ensure_collection: bool = True,
) -> Pipeline:
    """Assemble every collaborator from ``settings``; explicit arguments win over configured ones."""

    settings = settings or get_settings()
    configure_logging(settings.log_level)
    logger = get_logger("bootstrap")

    provider = build_embedding_provider(
        EmbeddingConfig(
            provider=settings.embedding_provider,
            model=settings.embedding_model,
            dim=settings.vector_dimension,
            batch_size=settings.embedding_batch_size,
            api_base=settings.embedding_api_base,
            api_key=settings.embedding_api_key,
            timeout=settings.request_timeout_seconds,
        )
    )
    embedder = EmbeddingGenerator(
        provider,
        dimension=settings.vector_dimension,
        batch_size=settings.embedding_batch_size,
    )

    retry = RetryPolicy(
        max_attempts=settings.vector_max_retries,
        base_delay=settings.retry_delay_seconds,
    )
    index = VectorIndexClient(
        store or build_vector_store(settings),
        dimension=settings.vector_dimension,
        distance=settings.vector_distance,
        retry_policy=retry,
        batch_size=settings.vector_batch_size,
    )
    if ensure_collection:
        index.ensure_collection()

    tokenizer = get_tokenizer(settings.embedding_model)
    indexer = DocumentIndexer(
        embedder,
        index,
        chunker=TextChunker(tokenizer),
        chunking_options=settings.chunking_options,
    )

    llm = llm_provider or build_llm_provider(settings)
    answers = AnswerGenerator(
        llm,
        model=settings.llm_model,
        max_tokens=settings.llm_max_tokens,
        temperature=settings.llm_temperature,
        assembler=ContextAssembler(
            settings.context_window_size,
            settings.max_context_documents,
            tokenizer=tokenizer,
        ),
        prompt_builder=PromptBuilder(settings.llm_system_prompt),
        context_max_tokens=settings.context_max_tokens,
    )

    documents = documents or InMemoryDocumentStore()
    query_log = query_log or InMemoryQueryLogSink()
    queries = QueryService(
        embedder,
        index,
        answers,
        query_log,
        config=QueryConfig(search_limit=settings.search_limit, score_threshold=settings.score_threshold),
        transcriber=transcriber,
    )
    admin = AdminService(documents, indexer, index, query_log)

    closeables = [resource for resource in (provider, llm) if hasattr(resource, "close")]
    logger.info(
        "pipeline.ready",
        vector_backend=settings.vector_backend,
        embedding_provider=settings.embedding_provider,
        llm_provider=settings.llm_provider,
        collection=settings.vector_collection,
    )
    return Pipeline(
        settings=settings,
        documents=documents,
        query_log=query_log,
        embedder=embedder,
        index=index,
        indexer=indexer,
        answers=answers,
        queries=queries,
        admin=admin,
        _closeables=closeables,
    )
