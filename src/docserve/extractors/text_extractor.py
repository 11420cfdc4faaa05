"""Extractor for plain-text formats."""

import asyncio
from pathlib import Path


class TextFileExtractor:
    """Reads plain-text files as UTF-8, replacing undecodable bytes."""

    TEXT_EXTENSIONS = frozenset({".txt", ".md", ".log", ".csv", ".json", ".rst"})

    name = "TextFileExtractor"
    mime_type = "text/plain"

    def can_handle(self, path: Path) -> bool:
        """Check the extension against the known text formats."""
        return Path(path).suffix.lower() in self.TEXT_EXTENSIONS

    async def extract_text(self, path: Path) -> str:
        raw_content = await asyncio.to_thread(Path(path).read_bytes)
        return raw_content.decode("utf-8", errors="replace")
