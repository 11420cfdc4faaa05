"""Core data models for documents, chunks and queries."""

from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass(frozen=True)
class FileMetadata:
    """Change-detection view of a file on disk."""

    path: str
    hash: str
    last_modified: float
    size_bytes: int
    last_checked: float = 0.0


@dataclass(frozen=True)
class Document:
    """One indexed source file, as stored in the vector store."""

    path: str
    content_hash: str
    last_modified: float
    size_bytes: int
    mime_type: str
    extractor: Optional[str] = None
    chunk_count: int = 0
    indexed_at: Optional[str] = None

    def to_file_metadata(self) -> FileMetadata:
        return FileMetadata(
            path=self.path,
            hash=self.content_hash,
            last_modified=self.last_modified,
            size_bytes=self.size_bytes,
        )


@dataclass
class Chunk:
    """A contiguous slice of a document's text with its position."""

    text: str
    document_path: str
    ordinal: int
    start_char: int
    end_char: int
    embedding: Optional[np.ndarray] = None
    id: Optional[int] = None

    @property
    def char_count(self) -> int:
        return len(self.text)


@dataclass(frozen=True)
class RagQuery:
    """A similarity query against the vector store."""

    query: str
    top_k: int = 5
    min_similarity: float = 0.1
    file_filters: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.top_k < 1:
            raise ValueError(f"top_k must be >= 1, got {self.top_k}")
        if not 0.0 <= self.min_similarity <= 1.0:
            raise ValueError(
                f"min_similarity must be between 0.0 and 1.0, got {self.min_similarity}"
            )
        # Accept any iterable of filters, store as a tuple
        object.__setattr__(self, "file_filters", tuple(f for f in self.file_filters if f))


@dataclass(frozen=True)
class SearchResult:
    """A chunk together with its similarity to the query."""

    chunk: Chunk
    similarity: float


@dataclass(frozen=True)
class SkippedFile:
    path: str
    reason: str
    extension: str
    size_bytes: int


@dataclass(frozen=True)
class FailedFile:
    path: str
    error: str
    extractor: Optional[str] = None


@dataclass(frozen=True)
class IndexingResult:
    """Outcome of one indexing run.

    ``indexed_files`` lists the documents written during the run; files whose
    content hash matched the stored one are listed in ``unchanged_files``.
    """

    started_at: float
    completed_at: float
    indexed_files: tuple[str, ...] = ()
    skipped_files: tuple[SkippedFile, ...] = ()
    failed_files: tuple[FailedFile, ...] = ()
    unchanged_files: tuple[str, ...] = ()
    removed_files: tuple[str, ...] = ()

    @property
    def duration(self) -> float:
        """Run duration in seconds."""
        return self.completed_at - self.started_at
