"""Protocol definitions for extensible components."""

from docserve.protocols.chunker import ChunkingStrategy
from docserve.protocols.embedder import EmbeddingProvider
from docserve.protocols.extractor import FileExtractor
from docserve.protocols.provider import AiProvider

__all__ = ["FileExtractor", "EmbeddingProvider", "ChunkingStrategy", "AiProvider"]
