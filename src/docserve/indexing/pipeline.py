"""Incremental indexing of a directory tree into the vector store."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional, Sequence

from docserve.config import IndexingConfig
from docserve.extractors import default_extractors, find_extractor
from docserve.indexing.changes import FileChangeDetector
from docserve.indexing.filters import skip_reason, walk_files
from docserve.indexing.report import log_summary, summarize
from docserve.models import Document, FailedFile, IndexingResult, SkippedFile
from docserve.protocols import FileExtractor
from docserve.storage import VectorStore, VectorStoreError

logger = logging.getLogger(__name__)

NO_TEXT_REASON = "File contains no extractable text content"


class IndexingPipeline:
    """Walks ``root`` and keeps the vector store in step with it.

    Each run goes file by file: skip rules, change check against the stored
    document, extraction, then chunk/embed/store through the vector store.
    A failing file is recorded and the run moves on; a vector store fault
    aborts the run. Stored documents whose file vanished, or is now skipped,
    are removed. An index built with another embedding model is cleared and
    rebuilt in full.

    The pipeline is the only writer of the store.
    """

    def __init__(
        self,
        root: Path | str,
        store: VectorStore,
        detector: FileChangeDetector | None = None,
        extractors: Sequence[FileExtractor] | None = None,
        config: IndexingConfig | None = None,
    ):
        self.root = Path(root).resolve()
        self.store = store
        self.detector = detector or FileChangeDetector()
        self.extractors = list(extractors) if extractors is not None else default_extractors()
        self.config = config or IndexingConfig()
        self.last_result: Optional[IndexingResult] = None

    async def reindex(self) -> IndexingResult:
        """Clear the store, then index every file from scratch."""
        await self.store.clear_index()
        return await self.run(force=True)

    async def run(self, force: bool = False) -> IndexingResult:
        """Index the root directory.

        Args:
            force: Re-extract and re-embed every file, ignoring stored hashes

        Returns:
            What happened to every file found under the root
        """
        started_at = time.time()
        stale_model = self.store.stale_embedding_model
        if stale_model is not None:
            logger.warning(
                f"Embedding model changed from {stale_model} to {self.store.gateway.model_name}, rebuilding the index"
            )
            await self.store.clear_index()
            force = True
        logger.info(f"Indexing {self.root}{' (full)' if force else ''}")

        stored = await self.store.stored_metadata()
        files = await asyncio.to_thread(lambda: list(walk_files(self.root)))

        indexed: list[str] = []
        unchanged: list[str] = []
        skipped: list[SkippedFile] = []
        failed: list[FailedFile] = []

        for path in files:
            relative = path.relative_to(self.root).as_posix()
            try:
                file_stat = path.stat()
            except OSError as exc:
                logger.warning(f"Cannot stat {relative}: {exc}")
                failed.append(FailedFile(relative, str(exc)))
                continue

            extension = path.suffix.lower()
            reason = skip_reason(path, file_stat, self.config.max_file_bytes, self.store.path)
            if reason is not None:
                logger.debug(f"Skipping {relative}: {reason}")
                skipped.append(SkippedFile(relative, reason, extension, file_stat.st_size))
                continue

            known = stored.get(relative)
            if not force and known is not None:
                if not await self.detector.has_changed(path, known.hash, known.last_modified):
                    unchanged.append(relative)
                    continue

            extractor = find_extractor(self.extractors, path)
            if extractor is None:
                reason = f"No extractor available for file type '{extension or path.name}'"
                logger.debug(f"Skipping {relative}: {reason}")
                skipped.append(SkippedFile(relative, reason, extension, file_stat.st_size))
                continue

            try:
                text = await extractor.extract_text(path)
                if not text or not text.strip():
                    logger.debug(f"Skipping {relative}: {NO_TEXT_REASON}")
                    skipped.append(SkippedFile(relative, NO_TEXT_REASON, extension, file_stat.st_size))
                    continue

                document = Document(
                    path=relative,
                    content_hash=await self.detector.hash(path),
                    last_modified=file_stat.st_mtime,
                    size_bytes=file_stat.st_size,
                    mime_type=extractor.mime_type,
                    extractor=extractor.name,
                )
                chunk_count = await self.store.index_document(relative, text, document)
            except VectorStoreError:
                raise
            except Exception as exc:
                logger.warning(f"Failed to index {relative} with {extractor.name}: {exc}")
                failed.append(FailedFile(relative, str(exc) or type(exc).__name__, extractor.name))
                continue

            logger.info(f"  {relative} ({chunk_count} chunks)")
            indexed.append(relative)

        # Failed files keep whatever they had before this run
        present = set(indexed) | set(unchanged) | {f.path for f in failed}
        removed = []
        for stale in sorted(set(stored) - present):
            await self.store.remove_document(stale)
            logger.info(f"  removed {stale}")
            removed.append(stale)

        result = IndexingResult(
            started_at=started_at,
            completed_at=time.time(),
            indexed_files=tuple(indexed),
            skipped_files=tuple(skipped),
            failed_files=tuple(failed),
            unchanged_files=tuple(unchanged),
            removed_files=tuple(removed),
        )
        self.last_result = result
        log_summary(summarize(result, self.config))
        return result
