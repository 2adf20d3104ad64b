"""Interfaces of the external collaborators plus in-memory bindings."""

from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Protocol

from ragcontext.errors import InvalidInputError, NotFoundError
from ragcontext.models import Document, QueryLogRecord


class DocumentStore(Protocol):
    """Authoritative store of documents; the vector index is derived from it."""

    def create(self, document: Document) -> Document:
        """Persist ``document`` and return it."""

    def get(self, document_id: str) -> Document:
        """Return the document or raise NotFoundError."""

    def list(self) -> List[Document]:
        """Return every document."""

    def update(self, document_id: str, patch: Mapping[str, Any]) -> Document:
        """Apply ``patch`` to the document and return the result."""

    def delete(self, document_id: str) -> None:
        """Remove the document or raise NotFoundError."""

    def search(self, text: str) -> List[Document]:
        """Return documents whose title or content contains ``text``."""


class QueryLogSink(Protocol):
    """Append-only log of queries and their outcome."""

    def append(self, record: QueryLogRecord) -> str:
        """Store ``record`` and return its id."""

    def update(self, record_id: str, patch: Mapping[str, Any]) -> None:
        """Update fields of an existing record."""

    def list(self, limit: int = 100) -> List[QueryLogRecord]:
        """Return the most recent records, newest first."""

    def get(self, record_id: str) -> QueryLogRecord:
        """Return one record or raise NotFoundError."""


class SpeechToText(Protocol):
    def transcribe(self, audio: bytes) -> str:
        """Return the text spoken in ``audio``."""


class InMemoryDocumentStore:
    """Dictionary backed document store."""

    def __init__(self) -> None:
        self._documents: Dict[str, Document] = {}
        self._lock = threading.RLock()

    def create(self, document: Document) -> Document:
        if not document.id:
            document = replace(document, id=uuid.uuid4().hex)
        with self._lock:
            self._documents[document.id] = document
        return document

    def get(self, document_id: str) -> Document:
        try:
            return self._documents[document_id]
        except KeyError as exc:
            raise NotFoundError(f"Document {document_id} not found") from exc

    def list(self) -> List[Document]:
        return list(self._documents.values())

    def update(self, document_id: str, patch: Mapping[str, Any]) -> Document:
        unknown = set(patch) - {"content", "title", "metadata", "embedding"}
        if unknown:
            raise InvalidInputError(f"Unknown document fields: {sorted(unknown)}")
        with self._lock:
            document = self.get(document_id)
            updated = replace(document, **dict(patch))
            self._documents[document_id] = updated
        return updated

    def delete(self, document_id: str) -> None:
        with self._lock:
            if self._documents.pop(document_id, None) is None:
                raise NotFoundError(f"Document {document_id} not found")

    def search(self, text: str) -> List[Document]:
        needle = text.lower()
        return [
            document
            for document in self._documents.values()
            if needle in document.content.lower() or needle in (document.title or "").lower()
        ]


class InMemoryQueryLogSink:
    """Thread-safe in-memory query log."""

    def __init__(self) -> None:
        self._records: Dict[str, QueryLogRecord] = {}
        self._lock = threading.Lock()

    def append(self, record: QueryLogRecord) -> str:
        with self._lock:
            self._records[record.id] = record
        return record.id

    def update(self, record_id: str, patch: Mapping[str, Any]) -> None:
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise NotFoundError(f"Query log {record_id} not found")
            self._records[record_id] = replace(record, **dict(patch))

    def list(self, limit: int = 100) -> List[QueryLogRecord]:
        with self._lock:
            records = list(self._records.values())
        records.sort(key=lambda record: record.created_at, reverse=True)
        return records[:limit]

    def get(self, record_id: str) -> QueryLogRecord:
        with self._lock:
            record = self._records.get(record_id)
        if record is None:
            raise NotFoundError(f"Query log {record_id} not found")
        return record
