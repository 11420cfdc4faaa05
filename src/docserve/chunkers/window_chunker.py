"""Overlapping fixed-size window chunking strategy."""

import re

from docserve.models import Chunk

WORD_PATTERN = re.compile(r"\S+")


class WindowChunker:
    """Split text into windows of ``chunk_size`` words.

    Consecutive windows share ``chunk_overlap`` words so that a passage cut
    at a boundary still appears whole in one of the two chunks. Each chunk's
    text is the original span of the source (whitespace preserved), not a
    re-joined word list.
    """

    def __init__(self, chunk_size: int, chunk_overlap: int):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be greater than 0")
        if not 0 <= chunk_overlap < chunk_size:
            raise ValueError("chunk_overlap must be >= 0 and smaller than chunk_size")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def chunk(self, text: str, document_path: str) -> list[Chunk]:
        """Split text into ordered chunks with character offsets.

        Args:
            text: The text content to chunk
            document_path: Path of the owning document

        Returns:
            List of Chunk objects, ordinals starting at 0
        """
        if not text or not text.strip():
            return []

        words = [(m.start(), m.end()) for m in WORD_PATTERN.finditer(text)]
        step = self.chunk_size - self.chunk_overlap

        chunks = []
        for first in range(0, len(words), step):
            window = words[first : first + self.chunk_size]
            start_char = window[0][0]
            end_char = window[-1][1]
            chunks.append(
                Chunk(
                    text=text[start_char:end_char],
                    document_path=document_path,
                    ordinal=len(chunks),
                    start_char=start_char,
                    end_char=end_char,
                )
            )
            # Last window reached the end of the text
            if first + self.chunk_size >= len(words):
                break

        return chunks
