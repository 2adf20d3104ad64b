"""File loaders turning uploaded files into documents."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Mapping
from uuid import NAMESPACE_URL, uuid5

from langchain_community.document_loaders import BSHTMLLoader, Docx2txtLoader, PyPDFLoader, TextLoader
from langchain_community.document_loaders.base import BaseLoader

from ragcontext.errors import RagContextError
from ragcontext.models import Document


class IngestionError(RagContextError):
    """Raised when a file cannot be turned into a document."""


class UnsupportedFileTypeError(IngestionError):
    """Raised when a file extension has no loader."""


LOADERS: Mapping[str, type[BaseLoader]] = {
    ".pdf": PyPDFLoader,
    ".docx": Docx2txtLoader,
    ".txt": TextLoader,
    ".md": TextLoader,
    ".html": BSHTMLLoader,
    ".htm": BSHTMLLoader,
}


def document_id_for(path: Path) -> str:
    """Stable id derived from the absolute path, so reloading a file replaces it."""

    return uuid5(NAMESPACE_URL, str(path.resolve())).hex


def _build_loader(loader_cls: type[BaseLoader], path: Path, encoding: str) -> BaseLoader:
    if loader_cls is TextLoader:
        return loader_cls(str(path), encoding=encoding)
    return loader_cls(str(path))


def load_document(
    path: Path,
    *,
    title: str | None = None,
    metadata: Mapping[str, Any] | None = None,
    encoding: str = "utf-8",
) -> Document:
    suffix = path.suffix.lower()
    loader_cls = LOADERS.get(suffix)
    if loader_cls is None:
        raise UnsupportedFileTypeError(f"Unsupported document type: {suffix or '<none>'}")
    try:
        pages = _build_loader(loader_cls, path, encoding).load()
    except Exception as exc:  # loader specific errors
        raise IngestionError(f"Failed to load {path}: {exc}") from exc

    content = "\n\n".join(page.page_content for page in pages)
    merged: Dict[str, Any] = {
        "source": str(path),
        "original_filename": path.name,
        "media_type": suffix.lstrip("."),
        "pages": len(pages),
    }
    merged.update(metadata or {})
    return Document(
        id=document_id_for(path),
        content=content,
        title=title or path.stem,
        metadata=merged,
    )
