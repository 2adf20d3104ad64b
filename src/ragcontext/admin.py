"""Administrative operations guarded by a role check."""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Sequence

from ragcontext.collaborators import DocumentStore, QueryLogSink
from ragcontext.errors import InvalidInputError, PermissionDeniedError
from ragcontext.ingestion.loaders import load_document
from ragcontext.ingestion.service import DocumentIndexer, IndexingResult
from ragcontext.metrics.observability import get_logger
from ragcontext.models import Document, QueryLogRecord
from ragcontext.vector.client import VectorIndexClient

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as verified by the authentication gate."""

    user_id: str
    roles: FrozenSet[str] = field(default_factory=frozenset)


def require_role(principal: Principal | None, role: str = ADMIN_ROLE) -> None:
    if principal is None or role not in principal.roles:
        user = principal.user_id if principal else "anonymous"
        raise PermissionDeniedError(f"User {user} lacks the '{role}' role")


@dataclass(frozen=True)
class UploadResult:
    document_id: str
    chunk_count: int
    message: str


@dataclass(frozen=True)
class ReindexResult:
    documents: int
    chunks: int
    full_reindex: bool
    skipped: Sequence[str] = ()


class AdminService:
    """Document management, reindexing and query-log access for administrators."""

    def __init__(
        self,
        documents: DocumentStore,
        indexer: DocumentIndexer,
        index: VectorIndexClient,
        query_log: QueryLogSink,
    ) -> None:
        self._documents = documents
        self._indexer = indexer
        self._index = index
        self._query_log = query_log
        self._logger = get_logger("admin")
        self._started = time.monotonic()

    def upload_document(
        self,
        principal: Principal,
        path: Path,
        *,
        title: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> UploadResult:
        require_role(principal)
        self._logger.info("admin.upload_document", path=str(path), user_id=principal.user_id)
        extra = dict(metadata or {})
        extra["uploaded_at"] = datetime.now(timezone.utc).isoformat()
        document = self._documents.create(load_document(path, title=title, metadata=extra))
        result = self._indexer.index_document(document)
        return UploadResult(
            document_id=document.id,
            chunk_count=result.chunk_count,
            message="Document uploaded and indexed successfully",
        )

    def upload_text_document(
        self,
        principal: Principal,
        title: str,
        content: str,
        *,
        metadata: Mapping[str, Any] | None = None,
    ) -> UploadResult:
        require_role(principal)
        if not content:
            raise InvalidInputError("Content is required for text documents")
        if not title:
            raise InvalidInputError("Title is required for text documents")
        self._logger.info("admin.upload_text_document", title=title, user_id=principal.user_id)
        document = self._documents.create(
            Document(id="", content=content, title=title, metadata=dict(metadata or {}))
        )
        result = self._indexer.index_document(document)
        return UploadResult(
            document_id=document.id,
            chunk_count=result.chunk_count,
            message="Text document created and indexed successfully",
        )

    def list_documents(self, principal: Principal) -> List[Document]:
        require_role(principal)
        return self._documents.list()

    def delete_document(self, principal: Principal, document_id: str) -> None:
        require_role(principal)
        self._documents.get(document_id)
        self._indexer.remove_document(document_id)
        self._documents.delete(document_id)
        self._logger.info("admin.delete_document", document_id=document_id, user_id=principal.user_id)

    def reindex(
        self,
        principal: Principal,
        *,
        full_reindex: bool = False,
        document_ids: Sequence[str] = (),
        confirm: bool = False,
    ) -> ReindexResult:
        require_role(principal)
        self._logger.info(
            "admin.reindex",
            full_reindex=full_reindex,
            documents=len(document_ids),
            user_id=principal.user_id,
        )
        results: List[IndexingResult]
        if full_reindex:
            results = self._indexer.reindex_all(self._documents, confirm=confirm)
        elif document_ids:
            results = self._indexer.reindex_documents(self._documents, document_ids)
        else:
            raise InvalidInputError("Either full_reindex or document_ids is required")
        return ReindexResult(
            documents=sum(1 for result in results if not result.skipped),
            chunks=sum(result.chunk_count for result in results),
            full_reindex=full_reindex,
            skipped=tuple(result.document_id for result in results if result.skipped),
        )

    def query_logs(self, principal: Principal, limit: int = 100) -> List[QueryLogRecord]:
        require_role(principal)
        return self._query_log.list(limit)

    def query_log(self, principal: Principal, record_id: str) -> QueryLogRecord:
        require_role(principal)
        return self._query_log.get(record_id)

    def system_health(self, principal: Principal) -> Dict[str, Any]:
        require_role(principal)
        vector_up = self._index.health_check()
        return {
            "status": "healthy" if vector_up else "unhealthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "services": {"vector_database": "up" if vector_up else "down"},
        }

    def system_stats(self, principal: Principal) -> Dict[str, Any]:
        require_role(principal)
        documents = self._documents.list()
        logs = self._query_log.list(100)
        categories = Counter(str(document.metadata.get("category") or "uncategorized") for document in documents)
        return {
            "total_documents": len(documents),
            "total_queries": len(logs),
            "failed_queries": sum(1 for record in logs if record.error),
            "recent_queries": [record.id for record in logs[:10]],
            "documents_by_category": dict(categories),
            "uptime_seconds": time.monotonic() - self._started,
        }
