"""Document loading and indexing."""

from .loaders import IngestionError, UnsupportedFileTypeError, document_id_for, load_document
from .service import DocumentIndexer, IndexingResult

__all__ = [
    "DocumentIndexer",
    "IndexingResult",
    "IngestionError",
    "UnsupportedFileTypeError",
    "document_id_for",
    "load_document",
]
