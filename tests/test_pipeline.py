"""Tests for the incremental indexing pipeline."""

import os
from pathlib import Path

import pytest

from docserve.chunkers import WindowChunker
from docserve.config import IndexingConfig
from docserve.extractors import TextFileExtractor
from docserve.indexing import EmbeddingGateway, IndexingPipeline
from docserve.indexing.pipeline import NO_TEXT_REASON
from docserve.embedders import HashingEmbedder
from docserve.models import RagQuery
from docserve.storage import VectorStore, VectorStoreError


class BrokenExtractor:
    """Claims .bad files and always fails to read them."""

    name = "BrokenExtractor"
    mime_type = "application/x-bad"

    def can_handle(self, path: Path) -> bool:
        return path.suffix == ".bad"

    async def extract_text(self, path: Path) -> str:
        raise OSError("corrupt file")


def reasons(result) -> dict[str, str]:
    return {skipped.path: skipped.reason for skipped in result.skipped_files}


class TestRun:
    @pytest.mark.asyncio
    async def test_text_file_indexed_and_executable_skipped(self, docs_root, pipeline, store):
        (docs_root / "readme.txt").write_text("hello world".ljust(50))
        (docs_root / "app.exe").write_bytes(b"MZ\x90\x00")

        result = await pipeline.run()

        assert result.indexed_files == ("readme.txt",)
        assert reasons(result) == {"app.exe": "Binary executable"}
        assert result.skipped_files[0].extension == ".exe"
        assert result.skipped_files[0].size_bytes == 4
        assert result.failed_files == ()
        assert await store.get_chunk_count() == 1
        assert pipeline.last_result is result

    @pytest.mark.asyncio
    async def test_nested_paths_are_root_relative(self, sample_docs, pipeline, store):
        result = await pipeline.run()

        assert set(result.indexed_files) == {"readme.txt", "guide.md", "sub/notes.txt"}
        assert await store.get_indexed_files() == ["guide.md", "readme.txt", "sub/notes.txt"]

    @pytest.mark.asyncio
    async def test_skip_reasons(self, docs_root, store):
        (docs_root / ".hidden.txt").write_text("secret")
        (docs_root / "data.sqlite").write_bytes(b"SQLite format 3")
        (docs_root / "photo.png").write_bytes(b"\x89PNG")
        (docs_root / "clip.mp4").write_bytes(b"\x00")
        (docs_root / "bundle.zip").write_bytes(b"PK")
        (docs_root / "strange.xyz").write_text("unknown format")
        (docs_root / "empty.txt").write_text("   \n  ")
        (docs_root / "big.txt").write_text("x" * 2048)

        pipeline = IndexingPipeline(docs_root, store, config=IndexingConfig(max_file_bytes=1024))
        result = await pipeline.run()

        assert result.indexed_files == ()
        assert reasons(result) == {
            ".hidden.txt": "Hidden file",
            "big.txt": "File too large (0.0 MB)",
            "bundle.zip": "Archive file (not supported)",
            "clip.mp4": "Media file (not supported)",
            "data.sqlite": "Database file",
            "empty.txt": NO_TEXT_REASON,
            "photo.png": "Image file (not supported)",
            "strange.xyz": "No extractor available for file type '.xyz'",
        }

    @pytest.mark.asyncio
    async def test_own_database_inside_root_is_skipped(self, docs_root, middleware):
        (docs_root / "readme.txt").write_text("hello world")
        gateway = EmbeddingGateway(HashingEmbedder(), middleware)
        store = VectorStore(docs_root / "vectors.db", WindowChunker(50, 10), gateway)
        try:
            result = await IndexingPipeline(docs_root, store).run()
        finally:
            store.close()

        assert result.indexed_files == ("readme.txt",)
        assert reasons(result)["vectors.db"] == "Index database file"

    @pytest.mark.asyncio
    async def test_failing_file_does_not_abort_the_run(self, docs_root, store):
        (docs_root / "a.txt").write_text("good file")
        (docs_root / "b.bad").write_text("bad file")
        (docs_root / "c.txt").write_text("another good file")

        pipeline = IndexingPipeline(docs_root, store, extractors=[TextFileExtractor(), BrokenExtractor()])
        result = await pipeline.run()

        assert result.indexed_files == ("a.txt", "c.txt")
        assert len(result.failed_files) == 1
        failed = result.failed_files[0]
        assert failed.path == "b.bad"
        assert failed.extractor == "BrokenExtractor"
        assert "corrupt file" in failed.error
        assert await store.get_indexed_files() == ["a.txt", "c.txt"]

    @pytest.mark.asyncio
    async def test_hidden_directories_are_not_walked(self, docs_root, pipeline):
        (docs_root / ".git").mkdir()
        (docs_root / ".git" / "config.txt").write_text("git internals")
        (docs_root / "visible.txt").write_text("visible")

        result = await pipeline.run()

        assert result.indexed_files == ("visible.txt",)
        assert result.skipped_files == ()


class TestIncremental:
    @pytest.mark.asyncio
    async def test_second_run_is_idempotent(self, sample_docs, pipeline, store):
        first = await pipeline.run()
        chunks_after_first = await store.get_chunk_count()
        stamp = (await store.get_document("readme.txt")).indexed_at

        second = await pipeline.run()

        assert second.indexed_files == ()
        assert set(second.unchanged_files) == set(first.indexed_files)
        assert await store.get_chunk_count() == chunks_after_first
        assert (await store.get_document("readme.txt")).indexed_at == stamp

    @pytest.mark.asyncio
    async def test_touched_file_is_not_reindexed(self, sample_docs, pipeline):
        await pipeline.run()
        path = sample_docs / "readme.txt"
        mtime = path.stat().st_mtime
        os.utime(path, (mtime + 60, mtime + 60))

        result = await pipeline.run()

        assert "readme.txt" in result.unchanged_files
        assert result.indexed_files == ()

    @pytest.mark.asyncio
    async def test_edited_file_is_reindexed(self, sample_docs, pipeline, store):
        await pipeline.run()
        (sample_docs / "readme.txt").write_text("goodbye moon")

        result = await pipeline.run()

        assert result.indexed_files == ("readme.txt",)
        document = await store.get_document("readme.txt")
        assert document.size_bytes == len("goodbye moon")

    @pytest.mark.asyncio
    async def test_deleted_file_is_removed_from_the_store(self, sample_docs, pipeline, store):
        await pipeline.run()
        (sample_docs / "sub" / "notes.txt").unlink()

        result = await pipeline.run()

        assert result.removed_files == ("sub/notes.txt",)
        assert "sub/notes.txt" not in await store.get_indexed_files()

    @pytest.mark.asyncio
    async def test_force_reprocesses_every_file(self, sample_docs, pipeline):
        await pipeline.run()

        result = await pipeline.run(force=True)

        assert set(result.indexed_files) == {"readme.txt", "guide.md", "sub/notes.txt"}
        assert result.unchanged_files == ()

    @pytest.mark.asyncio
    async def test_reindex_clears_then_rebuilds(self, sample_docs, pipeline, store):
        await pipeline.run()
        chunk_count = await store.get_chunk_count()

        result = await pipeline.reindex()

        assert len(result.indexed_files) == 3
        assert await store.get_chunk_count() == chunk_count

    @pytest.mark.asyncio
    async def test_changed_embedding_model_rebuilds_the_index(self, sample_docs, pipeline, store, db_path, middleware):
        await pipeline.run()
        store.close()

        gateway = EmbeddingGateway(HashingEmbedder(128), middleware)
        reopened = VectorStore(db_path, WindowChunker(50, 10), gateway)
        try:
            with pytest.raises(VectorStoreError):
                await reopened.search(RagQuery("release schedule", min_similarity=0.0))

            result = await IndexingPipeline(sample_docs, reopened).run()

            assert set(result.indexed_files) == {"readme.txt", "guide.md", "sub/notes.txt"}
            assert result.unchanged_files == ()
            assert reopened.get_metadata("embedding_model") == "hashing-128"
            results = await reopened.search(RagQuery("release schedule", min_similarity=0.1))
            assert results[0].chunk.document_path == "sub/notes.txt"
        finally:
            reopened.close()
