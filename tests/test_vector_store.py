"""Tests for the SQLite vector store."""

import asyncio

import numpy as np
import pytest

from docserve.ai import AiOperationError
from docserve.chunkers import WindowChunker
from docserve.embedders import HashingEmbedder
from docserve.indexing import EmbeddingGateway
from docserve.models import Document, RagQuery
from docserve.storage import VectorStore, VectorStoreError


def make_document(path: str, content_hash: str = "abc") -> Document:
    return Document(
        path=path,
        content_hash=content_hash,
        last_modified=1_700_000_000.0,
        size_bytes=100,
        mime_type="text/plain",
        extractor="TextFileExtractor",
    )


class ExplodingEmbedder(HashingEmbedder):
    """Fails on any text containing 'boom'."""

    def embed(self, texts):
        if any("boom" in text for text in texts):
            raise RuntimeError("embedding backend exploded")
        return super().embed(texts)


class TestIndexDocument:
    @pytest.mark.asyncio
    async def test_stores_document_and_chunks(self, store):
        count = await store.index_document("readme.txt", "hello world", make_document("readme.txt"))

        assert count == 1
        assert await store.get_chunk_count() == 1
        assert await store.get_indexed_files() == ["readme.txt"]

        document = await store.get_document("readme.txt")
        assert document.content_hash == "abc"
        assert document.mime_type == "text/plain"
        assert document.extractor == "TextFileExtractor"
        assert document.chunk_count == 1
        assert document.indexed_at is not None

    @pytest.mark.asyncio
    async def test_reindexing_a_path_replaces_its_chunks(self, store):
        long_text = " ".join(f"word{i}" for i in range(200))
        await store.index_document("a.txt", long_text, make_document("a.txt", "v1"))
        first_count = await store.get_chunk_count()
        assert first_count > 1

        await store.index_document("a.txt", "now short", make_document("a.txt", "v2"))

        assert await store.get_chunk_count() == 1
        assert (await store.get_document("a.txt")).content_hash == "v2"
        results = await store.search(RagQuery("word1", min_similarity=0.0, top_k=50))
        assert all(r.chunk.text == "now short" for r in results)

    @pytest.mark.asyncio
    async def test_embedding_failure_leaves_previous_state(self, db_path, middleware):
        gateway = EmbeddingGateway(ExplodingEmbedder(), middleware)
        store = VectorStore(db_path, WindowChunker(50, 10), gateway)
        try:
            await store.index_document("a.txt", "original text", make_document("a.txt", "v1"))

            with pytest.raises(AiOperationError):
                await store.index_document("a.txt", "this will boom", make_document("a.txt", "v2"))

            assert (await store.get_document("a.txt")).content_hash == "v1"
            results = await store.search(RagQuery("original", min_similarity=0.0))
            assert [r.chunk.text for r in results] == ["original text"]
        finally:
            store.close()

    @pytest.mark.asyncio
    async def test_stored_metadata_is_keyed_by_path(self, store):
        await store.index_document("a.txt", "alpha", make_document("a.txt", "h1"))
        await store.index_document("b/c.md", "gamma", make_document("b/c.md", "h2"))

        metadata = await store.stored_metadata()

        assert set(metadata) == {"a.txt", "b/c.md"}
        assert metadata["b/c.md"].hash == "h2"
        assert metadata["a.txt"].size_bytes == 100


class TestSearch:
    @pytest.mark.asyncio
    async def test_results_are_ordered_bounded_and_above_threshold(self, store):
        await store.index_document("a.txt", "python packaging guide", make_document("a.txt"))
        await store.index_document("b.txt", "python testing with pytest", make_document("b.txt"))
        await store.index_document("c.txt", "cooking pasta at home", make_document("c.txt"))

        query = RagQuery("python packaging", top_k=2, min_similarity=0.1)
        results = await store.search(query)

        assert 0 < len(results) <= 2
        similarities = [r.similarity for r in results]
        assert similarities == sorted(similarities, reverse=True)
        assert all(s >= 0.1 for s in similarities)
        assert results[0].chunk.document_path == "a.txt"

    @pytest.mark.asyncio
    async def test_ties_are_broken_by_path(self, store):
        await store.index_document("b.txt", "same words here", make_document("b.txt"))
        await store.index_document("a.txt", "same words here", make_document("a.txt"))

        results = await store.search(RagQuery("same words here", min_similarity=0.5))

        assert [r.chunk.document_path for r in results] == ["a.txt", "b.txt"]
        assert results[0].similarity == pytest.approx(1.0, abs=1e-5)

    @pytest.mark.asyncio
    async def test_min_similarity_matches_scenario(self, store, embedder):
        await store.index_document("readme.txt", "hello world", make_document("readme.txt"))

        document_vector, query_vector = embedder.embed(["hello world", "hello"])
        expected = float(np.dot(document_vector, query_vector))

        results = await store.search(RagQuery("hello", top_k=5, min_similarity=0.9))

        if expected >= 0.9:
            assert [r.chunk.document_path for r in results] == ["readme.txt"]
        else:
            assert results == []

        relaxed = await store.search(RagQuery("hello", top_k=5, min_similarity=0.1))
        assert [r.chunk.document_path for r in relaxed] == ["readme.txt"]
        assert relaxed[0].similarity == pytest.approx(expected, abs=1e-5)

    @pytest.mark.asyncio
    async def test_file_filters_match_path_substrings(self, store):
        await store.index_document("docs/api.md", "api reference", make_document("docs/api.md"))
        await store.index_document("notes/api.txt", "api notes", make_document("notes/api.txt"))

        results = await store.search(RagQuery("api", min_similarity=0.0, file_filters=("docs/",)))

        assert [r.chunk.document_path for r in results] == ["docs/api.md"]

    @pytest.mark.asyncio
    async def test_file_filters_ignore_case(self, store):
        await store.index_document("README.txt", "project overview", make_document("README.txt"))
        await store.index_document("Docs/Guide.md", "project guide", make_document("Docs/Guide.md"))

        lower = await store.search(RagQuery("project", min_similarity=0.0, file_filters=("readme",)))
        upper = await store.search(RagQuery("project", min_similarity=0.0, file_filters=("DOCS/",)))

        assert [r.chunk.document_path for r in lower] == ["README.txt"]
        assert [r.chunk.document_path for r in upper] == ["Docs/Guide.md"]

    @pytest.mark.asyncio
    async def test_search_during_reindex_sees_one_version(self, store):
        old_text = " ".join(f"old{i}" for i in range(120))
        new_text = " ".join(f"new{i}" for i in range(200))
        old_chunks = {c.text for c in store.chunker.chunk(old_text, "a.txt")}
        new_chunks = {c.text for c in store.chunker.chunk(new_text, "a.txt")}
        await store.index_document("a.txt", old_text, make_document("a.txt", "v1"))

        seen = []

        async def searcher():
            for _ in range(20):
                results = await store.search(RagQuery("old1 new1", top_k=100, min_similarity=0.0))
                seen.append({r.chunk.text for r in results if r.chunk.document_path == "a.txt"})
                await asyncio.sleep(0)

        await asyncio.gather(
            store.index_document("a.txt", new_text, make_document("a.txt", "v2")),
            searcher(),
        )

        assert len(old_chunks) == 3 and len(new_chunks) == 5
        assert all(snapshot in (old_chunks, new_chunks) for snapshot in seen)
        final = await store.search(RagQuery("old1 new1", top_k=100, min_similarity=0.0))
        assert {r.chunk.text for r in final} == new_chunks

    @pytest.mark.asyncio
    async def test_empty_store_returns_nothing(self, store):
        assert await store.search(RagQuery("anything", min_similarity=0.0)) == []

    def test_query_validation(self):
        with pytest.raises(ValueError):
            RagQuery("q", top_k=0)
        with pytest.raises(ValueError):
            RagQuery("q", min_similarity=1.5)


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_clear_index_removes_everything(self, store):
        await store.index_document("a.txt", "alpha", make_document("a.txt"))
        await store.index_document("b.txt", "beta", make_document("b.txt"))

        await store.clear_index()

        assert await store.get_chunk_count() == 0
        assert await store.get_indexed_files() == []
        assert await store.search(RagQuery("alpha", min_similarity=0.0)) == []

    @pytest.mark.asyncio
    async def test_remove_document(self, store):
        await store.index_document("a.txt", "alpha", make_document("a.txt"))

        assert await store.remove_document("a.txt") is True
        assert await store.remove_document("a.txt") is False
        assert await store.get_chunk_count() == 0

    def test_metadata_round_trip(self, store):
        assert store.get_metadata("root") is None
        store.set_metadata("root", "/srv/docs")
        assert store.get_metadata("root") == "/srv/docs"

    @pytest.mark.asyncio
    async def test_close_is_idempotent_and_final(self, store):
        store.close()
        store.close()

        assert store.is_closed
        with pytest.raises(VectorStoreError):
            await store.get_chunk_count()

    def test_unopenable_database_raises_store_error(self, tmp_path, middleware):
        directory_in_the_way = tmp_path / "vectors.db"
        directory_in_the_way.mkdir()
        gateway = EmbeddingGateway(HashingEmbedder(), middleware)

        with pytest.raises(VectorStoreError):
            VectorStore(directory_in_the_way, WindowChunker(50, 10), gateway)


class TestEmbeddingModel:
    def test_new_store_records_its_model(self, store):
        assert store.get_metadata("embedding_model") == "hashing-384"
        assert store.stale_embedding_model is None

    @pytest.mark.asyncio
    async def test_store_built_with_another_model_refuses_to_serve(self, store, db_path, middleware):
        await store.index_document("a.txt", "hello world", make_document("a.txt"))
        store.close()

        reopened = VectorStore(db_path, WindowChunker(50, 10), EmbeddingGateway(HashingEmbedder(128), middleware))
        try:
            assert reopened.stale_embedding_model == "hashing-384"
            with pytest.raises(VectorStoreError, match="hashing-384"):
                await reopened.search(RagQuery("hello", min_similarity=0.0))
            with pytest.raises(VectorStoreError):
                await reopened.index_document("b.txt", "beta", make_document("b.txt"))
            assert await reopened.get_indexed_files() == ["a.txt"]
        finally:
            reopened.close()

    @pytest.mark.asyncio
    async def test_clear_index_adopts_the_current_model(self, store, db_path, middleware):
        await store.index_document("a.txt", "hello world", make_document("a.txt"))
        store.close()

        reopened = VectorStore(db_path, WindowChunker(50, 10), EmbeddingGateway(HashingEmbedder(128), middleware))
        try:
            await reopened.clear_index()
            await reopened.index_document("a.txt", "hello world", make_document("a.txt"))

            assert reopened.stale_embedding_model is None
            assert reopened.get_metadata("embedding_model") == "hashing-128"
            results = await reopened.search(RagQuery("hello", min_similarity=0.0))
            assert [r.chunk.document_path for r in results] == ["a.txt"]
        finally:
            reopened.close()
