"""Text chunking strategies."""

from docserve.chunkers.window_chunker import WindowChunker

__all__ = ["WindowChunker"]
