"""Explicit configuration values handed to each component."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

DEFAULT_DB_NAME = "vectors.db"
DEFAULT_CHUNK_SIZE = 300
DEFAULT_CHUNK_OVERLAP = 50
DEFAULT_MAX_FILE_BYTES = 100 * 1024 * 1024


class OperationMode(str, enum.Enum):
    """Which tool families the server offers."""

    HYBRID = "hybrid"
    RAG = "rag"
    MCP = "mcp"

    @property
    def uses_rag(self) -> bool:
        return self is not OperationMode.MCP


@dataclass(frozen=True)
class IndexingConfig:
    """Chunking, skip and reporting settings for the indexing pipeline."""

    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    max_files_per_category: int = 5
    max_failed_files: int = 10
    max_not_indexed_files: int = 20

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be greater than 0")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ValueError("chunk_overlap must be >= 0 and smaller than chunk_size")
        if self.max_file_bytes <= 0:
            raise ValueError("max_file_bytes must be greater than 0")


@dataclass(frozen=True)
class MiddlewareConfig:
    """Retry and rate-limit settings for AI operations."""

    max_retries: int = 3
    base_retry_delay_ms: int = 1000
    max_retry_delay_ms: int = 30_000
    enable_rate_limiting: bool = True
    max_requests_per_window: int = 60
    rate_limit_window_seconds: float = 60.0
    max_prompt_length: int = 100_000
    # Per provider-key overrides of max_requests_per_window
    key_request_limits: Mapping[str, int] = field(default_factory=dict)

    def requests_per_window(self, provider_key: str) -> int:
        return self.key_request_limits.get(provider_key, self.max_requests_per_window)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_retry_delay_ms < 0 or self.max_retry_delay_ms < 0:
            raise ValueError("retry delays must be >= 0")
        if self.max_requests_per_window <= 0:
            raise ValueError("max_requests_per_window must be greater than 0")
        if self.rate_limit_window_seconds <= 0:
            raise ValueError("rate_limit_window_seconds must be greater than 0")


@dataclass(frozen=True)
class ServerConfig:
    """Everything needed to assemble a server for one document root."""

    root: Path
    db_path: Path | None = None
    mode: OperationMode = OperationMode.HYBRID
    embedder: str = "sentence-transformers"
    embedding_model: str | None = None
    ollama_url: str = "http://localhost:11434"
    ai_model: str = "llama3.2"
    indexing: IndexingConfig = field(default_factory=IndexingConfig)
    middleware: MiddlewareConfig = field(default_factory=MiddlewareConfig)

    @property
    def resolved_db_path(self) -> Path:
        """Database file for this root (one per indexed root)."""
        return self.db_path or (self.root / DEFAULT_DB_NAME)
