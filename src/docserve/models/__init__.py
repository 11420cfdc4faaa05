"""Data models for docserve."""

from docserve.models.document import (
    Chunk,
    Document,
    FailedFile,
    FileMetadata,
    IndexingResult,
    RagQuery,
    SearchResult,
    SkippedFile,
)

__all__ = [
    "Document",
    "Chunk",
    "FileMetadata",
    "RagQuery",
    "SearchResult",
    "SkippedFile",
    "FailedFile",
    "IndexingResult",
]
