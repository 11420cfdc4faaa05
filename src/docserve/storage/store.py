"""SQLite-backed vector store for document chunks and their embeddings."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Optional

import numpy as np

from docserve.models import Chunk, Document, FileMetadata, RagQuery, SearchResult
from docserve.protocols import ChunkingStrategy
from docserve.storage.schema import SCHEMA

if TYPE_CHECKING:
    from docserve.indexing.gateway import EmbeddingGateway

logger = logging.getLogger(__name__)


class VectorStoreError(Exception):
    """The backing database is unusable, or the store has been closed."""


class VectorStore:
    """Chunks, embeddings and document rows in a single SQLite file.

    Every operation opens its own connection, so concurrent readers and the
    indexing writer never share a handle. The database runs in WAL mode:
    a search sees either the old or the new chunk set of a document, never
    a mix.

    ``clear_index`` needs exclusive access to the whole store; callers must
    not run other index mutations while it is in flight.
    """

    def __init__(self, path: Path | str, chunker: ChunkingStrategy, gateway: EmbeddingGateway):
        self.path = Path(path)
        self.chunker = chunker
        self.gateway = gateway
        self._closed = False
        self.initialize()
        self._indexed_model = self._check_embedding_model()

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections."""
        if self._closed:
            raise VectorStoreError(f"Vector store is closed: {self.path}")
        try:
            conn = sqlite3.connect(self.path, timeout=30.0)
        except sqlite3.Error as exc:
            logger.error(f"Cannot open vector store {self.path}: {exc}")
            raise VectorStoreError(f"Cannot open vector store {self.path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            logger.error(f"Vector store error in {self.path}: {exc}")
            raise VectorStoreError(str(exc)) from exc
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create schema if not exists."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.connection() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(SCHEMA)

    def _check_embedding_model(self) -> str:
        current = self.gateway.model_name
        stored = self.get_metadata("embedding_model")
        if stored is None:
            self.set_metadata("embedding_model", current)
            return current
        if stored != current:
            logger.warning(
                f"Index {self.path} was built with {stored}, now using {current}; "
                f"it must be rebuilt before it can be searched"
            )
        return stored

    @property
    def stale_embedding_model(self) -> Optional[str]:
        """Model the stored chunks were embedded with, if it is not the current one."""
        return self._indexed_model if self._indexed_model != self.gateway.model_name else None

    def _require_current_model(self) -> None:
        stale = self.stale_embedding_model
        if stale is not None:
            raise VectorStoreError(
                f"Index was built with {stale}, not {self.gateway.model_name}; run a full reindex"
            )

    @property
    def is_closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Checkpoint the write-ahead log and refuse further operations."""
        if self._closed:
            return
        try:
            with self.connection() as conn:
                conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
        except VectorStoreError as exc:
            logger.warning(f"Could not checkpoint {self.path} on close: {exc}")
        finally:
            self._closed = True

    # Mutations

    async def index_document(self, path: str, text: str, metadata: Document) -> int:
        """Replace every chunk of ``path`` with freshly chunked and embedded text.

        All embeddings are computed before the database is touched; the old
        rows are then deleted and the new ones inserted in one transaction.
        A failure or cancellation before that commit leaves the previous
        state of the document intact.

        Args:
            path: Root-relative document path
            text: Extracted text of the document
            metadata: Document row to store (hash, size, mime type, extractor)

        Returns:
            Number of chunks stored

        Raises:
            VectorStoreError: If the index was built with another embedding model
        """
        self._require_current_model()
        chunks = self.chunker.chunk(text, path)
        for chunk in chunks:
            chunk.embedding = await self.gateway.embed(chunk.text)

        document = replace(
            metadata,
            path=path,
            chunk_count=len(chunks),
            indexed_at=datetime.now(timezone.utc).isoformat(),
        )
        await asyncio.to_thread(self._replace_document, document, chunks)
        logger.debug(f"Stored {len(chunks)} chunks for {path}")
        return len(chunks)

    def _replace_document(self, document: Document, chunks: list[Chunk]) -> None:
        with self.connection() as conn:
            conn.execute("DELETE FROM chunks WHERE document_path = ?", (document.path,))
            conn.execute("DELETE FROM documents WHERE path = ?", (document.path,))
            conn.execute(
                """INSERT INTO documents
                   (path, content_hash, last_modified, size_bytes, mime_type,
                    extractor, chunk_count, indexed_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    document.path,
                    document.content_hash,
                    document.last_modified,
                    document.size_bytes,
                    document.mime_type,
                    document.extractor,
                    document.chunk_count,
                    document.indexed_at,
                ),
            )
            for chunk in chunks:
                embedding = np.asarray(chunk.embedding, dtype=np.float32)
                cursor = conn.execute(
                    """INSERT INTO chunks
                       (document_path, ordinal, text, start_char, end_char, embedding, dimension)
                       VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    (
                        chunk.document_path,
                        chunk.ordinal,
                        chunk.text,
                        chunk.start_char,
                        chunk.end_char,
                        embedding.tobytes(),
                        embedding.shape[0],
                    ),
                )
                chunk.id = cursor.lastrowid

    async def clear_index(self) -> None:
        """Delete every document and chunk; the index now belongs to the current model."""
        await asyncio.to_thread(self._clear)
        self._indexed_model = self.gateway.model_name
        logger.info(f"Cleared vector index {self.path}")

    def _clear(self) -> None:
        with self.connection() as conn:
            conn.execute("DELETE FROM chunks")
            conn.execute("DELETE FROM documents")
            conn.execute(
                "INSERT OR REPLACE INTO metadata (key, value) VALUES ('embedding_model', ?)",
                (self.gateway.model_name,),
            )

    async def remove_document(self, path: str) -> bool:
        """Delete one document and its chunks. Returns False if it was not stored."""
        return await asyncio.to_thread(self._remove, path)

    def _remove(self, path: str) -> bool:
        with self.connection() as conn:
            conn.execute("DELETE FROM chunks WHERE document_path = ?", (path,))
            cursor = conn.execute("DELETE FROM documents WHERE path = ?", (path,))
            return cursor.rowcount > 0

    # Queries

    async def search(self, query: RagQuery) -> list[SearchResult]:
        """Rank stored chunks by cosine similarity to the query text.

        Results are ordered by descending similarity, then document path,
        then ordinal; all satisfy ``min_similarity`` and there are at most
        ``top_k`` of them.

        Raises:
            VectorStoreError: If the index was built with another embedding model
        """
        self._require_current_model()
        query_embedding = await self.gateway.embed(query.query)
        return await asyncio.to_thread(self._search, np.asarray(query_embedding, dtype=np.float32), query)

    def _search(self, query_embedding: np.ndarray, query: RagQuery) -> list[SearchResult]:
        sql = """SELECT id, document_path, ordinal, text, start_char, end_char, embedding
                 FROM chunks WHERE dimension = ?"""
        params: list = [query_embedding.shape[0]]
        if query.file_filters:
            # Case-insensitive substring match
            sql += " AND (" + " OR ".join("instr(lower(document_path), ?) > 0" for _ in query.file_filters) + ")"
            params.extend(f.lower() for f in query.file_filters)

        with self.connection() as conn:
            rows = conn.execute(sql, params).fetchall()

        if not rows:
            return []

        matrix = np.vstack([np.frombuffer(row["embedding"], dtype=np.float32) for row in rows])
        similarities = self._cosine_similarities(query_embedding, matrix)

        results = []
        for row, similarity in zip(rows, similarities):
            if similarity < query.min_similarity:
                continue
            chunk = Chunk(
                text=row["text"],
                document_path=row["document_path"],
                ordinal=row["ordinal"],
                start_char=row["start_char"],
                end_char=row["end_char"],
                embedding=np.frombuffer(row["embedding"], dtype=np.float32),
                id=row["id"],
            )
            results.append(SearchResult(chunk=chunk, similarity=float(similarity)))

        results.sort(key=lambda r: (-r.similarity, r.chunk.document_path, r.chunk.ordinal))
        return results[: query.top_k]

    @staticmethod
    def _cosine_similarities(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
        """Cosine similarity of ``query`` against every row of ``matrix``."""
        query_norm = np.linalg.norm(query)
        row_norms = np.linalg.norm(matrix, axis=1)
        denominators = row_norms * query_norm
        similarities = np.zeros(matrix.shape[0], dtype=np.float64)
        nonzero = denominators > 0
        similarities[nonzero] = (matrix[nonzero] @ query) / denominators[nonzero]
        return np.clip(similarities, -1.0, 1.0)

    async def get_document(self, path: str) -> Optional[Document]:
        return await asyncio.to_thread(self._get_document, path)

    def _get_document(self, path: str) -> Optional[Document]:
        with self.connection() as conn:
            row = conn.execute("SELECT * FROM documents WHERE path = ?", (path,)).fetchone()
        return self._row_to_document(row) if row else None

    async def stored_metadata(self) -> dict[str, FileMetadata]:
        """Change-detection data for every stored document, keyed by path."""
        return await asyncio.to_thread(self._stored_metadata)

    def _stored_metadata(self) -> dict[str, FileMetadata]:
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT path, content_hash, last_modified, size_bytes FROM documents"
            ).fetchall()
        return {
            row["path"]: FileMetadata(
                path=row["path"],
                hash=row["content_hash"],
                last_modified=row["last_modified"],
                size_bytes=row["size_bytes"],
            )
            for row in rows
        }

    async def get_chunk_count(self) -> int:
        return await asyncio.to_thread(self._scalar, "SELECT COUNT(*) FROM chunks")

    async def get_document_count(self) -> int:
        return await asyncio.to_thread(self._scalar, "SELECT COUNT(*) FROM documents")

    def _scalar(self, sql: str) -> int:
        with self.connection() as conn:
            return conn.execute(sql).fetchone()[0]

    async def get_indexed_files(self) -> list[str]:
        """Paths of all stored documents, sorted."""
        return await asyncio.to_thread(self._indexed_files)

    def _indexed_files(self) -> list[str]:
        with self.connection() as conn:
            rows = conn.execute("SELECT path FROM documents ORDER BY path").fetchall()
        return [row["path"] for row in rows]

    def set_metadata(self, key: str, value: str) -> None:
        """Store a metadata key-value pair."""
        with self.connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
                (key, value),
            )

    def get_metadata(self, key: str) -> Optional[str]:
        """Retrieve a metadata value by key."""
        with self.connection() as conn:
            row = conn.execute("SELECT value FROM metadata WHERE key = ?", (key,)).fetchone()
            return row["value"] if row else None

    @staticmethod
    def _row_to_document(row: sqlite3.Row) -> Document:
        return Document(
            path=row["path"],
            content_hash=row["content_hash"],
            last_modified=row["last_modified"],
            size_bytes=row["size_bytes"],
            mime_type=row["mime_type"],
            extractor=row["extractor"],
            chunk_count=row["chunk_count"],
            indexed_at=row["indexed_at"],
        )
