"""Assembly of every component for one served root."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Optional

from docserve.ai import AiOperationMiddleware, OllamaProvider, ProviderHandle
from docserve.chunkers import WindowChunker
from docserve.config import ServerConfig
from docserve.embedders import create_embedder
from docserve.extractors import default_extractors
from docserve.indexing import EmbeddingGateway, FileChangeDetector, IndexingPipeline
from docserve.protocols import AiProvider, EmbeddingProvider
from docserve.server.dispatcher import Dispatcher
from docserve.storage import VectorStore

# Embedding calls happen once per chunk; the generation default would throttle indexing
EMBEDDING_REQUESTS_PER_WINDOW = 100_000


@dataclass
class DocumentServer:
    """The wired-up components serving one root directory."""

    config: ServerConfig
    store: VectorStore
    pipeline: IndexingPipeline
    dispatcher: Dispatcher
    middleware: AiOperationMiddleware
    providers: ProviderHandle

    async def aclose(self) -> None:
        await self.providers.aclose()
        self.store.close()


def build_server(
    config: ServerConfig,
    embedder: Optional[EmbeddingProvider] = None,
    provider: Optional[AiProvider] = None,
) -> DocumentServer:
    """Create store, pipeline, middleware and dispatcher for ``config.root``.

    Args:
        config: Server settings
        embedder: Embedder to use instead of the one named in the config
        provider: Generation provider to use instead of Ollama

    Returns:
        A ready DocumentServer; nothing is indexed yet
    """
    root = config.root.resolve()
    embedder = embedder or create_embedder(config.embedder, config.embedding_model)

    embedding_key = f"embedding:{embedder.model_name}"
    limits = {embedding_key: EMBEDDING_REQUESTS_PER_WINDOW, **config.middleware.key_request_limits}
    middleware = AiOperationMiddleware(replace(config.middleware, key_request_limits=limits))

    gateway = EmbeddingGateway(embedder, middleware, embedding_key)
    chunker = WindowChunker(config.indexing.chunk_size, config.indexing.chunk_overlap)
    store = VectorStore(config.resolved_db_path, chunker, gateway)
    _record_store_metadata(store, root)

    extractors = default_extractors()
    pipeline = IndexingPipeline(root, store, FileChangeDetector(), extractors, config.indexing)
    providers = ProviderHandle(provider or OllamaProvider(config.ollama_url, config.ai_model))

    dispatcher = Dispatcher(
        root,
        store,
        pipeline,
        middleware,
        providers,
        extractors=extractors,
        mode=config.mode,
        indexing_config=config.indexing,
    )
    return DocumentServer(config, store, pipeline, dispatcher, middleware, providers)


def _record_store_metadata(store: VectorStore, root: Path) -> None:
    if store.get_metadata("created_at") is None:
        store.set_metadata("created_at", datetime.now().isoformat())
    store.set_metadata("root", str(root))
