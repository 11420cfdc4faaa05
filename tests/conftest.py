"""Shared test fixtures for docserve testing."""

from pathlib import Path
from typing import Generator, Optional

import pytest

from docserve.ai import AiOperationMiddleware
from docserve.chunkers import WindowChunker
from docserve.config import IndexingConfig, MiddlewareConfig, OperationMode, ServerConfig
from docserve.embedders import HashingEmbedder
from docserve.indexing import EmbeddingGateway, IndexingPipeline
from docserve.server import DocumentServer, build_server
from docserve.storage import VectorStore


class FakeProvider:
    """In-memory generation provider that records every call."""

    provider_type = "fake"
    provider_name = "Fake"

    def __init__(self, answer: str = "fake answer", available: bool = True):
        self.answer = answer
        self.available = available
        self.base_url = "http://fake.local:1234"
        self.current_model = "fake-model"
        self.calls: list[tuple[str, Optional[str], float]] = []
        self.closed = False

    async def is_available(self) -> bool:
        return self.available

    async def generate(self, prompt: str, context: Optional[str] = None, temperature: float = 0.7) -> str:
        self.calls.append((prompt, context, temperature))
        return self.answer

    async def aclose(self) -> None:
        self.closed = True


async def no_sleep(delay: float) -> None:
    return None


@pytest.fixture
def docs_root(tmp_path: Path) -> Path:
    """An empty document root, separate from the index directory."""
    root = tmp_path / "docs"
    root.mkdir()
    return root


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "index" / "vectors.db"


@pytest.fixture
def middleware() -> AiOperationMiddleware:
    return AiOperationMiddleware(MiddlewareConfig(enable_rate_limiting=False), sleep=no_sleep)


@pytest.fixture
def embedder() -> HashingEmbedder:
    return HashingEmbedder()


@pytest.fixture
def store(db_path: Path, embedder: HashingEmbedder, middleware: AiOperationMiddleware) -> Generator[VectorStore, None, None]:
    gateway = EmbeddingGateway(embedder, middleware)
    vector_store = VectorStore(db_path, WindowChunker(chunk_size=50, chunk_overlap=10), gateway)
    yield vector_store
    vector_store.close()


@pytest.fixture
def pipeline(docs_root: Path, store: VectorStore) -> IndexingPipeline:
    return IndexingPipeline(docs_root, store)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


def make_server(
    docs_root: Path,
    db_path: Path,
    provider: FakeProvider,
    mode: OperationMode = OperationMode.HYBRID,
    indexing: Optional[IndexingConfig] = None,
) -> DocumentServer:
    config = ServerConfig(
        root=docs_root, db_path=db_path, mode=mode, embedder="hashing", indexing=indexing or IndexingConfig()
    )
    return build_server(config, embedder=HashingEmbedder(), provider=provider)


@pytest.fixture
def server(docs_root: Path, db_path: Path, provider: FakeProvider) -> Generator[DocumentServer, None, None]:
    document_server = make_server(docs_root, db_path, provider)
    yield document_server
    document_server.store.close()


@pytest.fixture
def sample_docs(docs_root: Path) -> Path:
    """A small tree: two text documents, one binary, one nested markdown file."""
    (docs_root / "readme.txt").write_text("hello world")
    (docs_root / "app.exe").write_bytes(b"MZ\x90\x00binary")
    (docs_root / "guide.md").write_text(
        "# Installation guide\n\nInstall the package with pip, then configure the server root."
    )
    (docs_root / "sub").mkdir()
    (docs_root / "sub" / "notes.txt").write_text("meeting notes about the release schedule")
    return docs_root
