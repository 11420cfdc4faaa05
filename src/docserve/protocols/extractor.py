"""Protocol for per-format text extractors."""

from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class FileExtractor(Protocol):
    """Protocol for text extractors.

    Extractors are tried in order; the first whose ``can_handle`` accepts a
    path is used. Uses structural subtyping - no inheritance required.
    """

    @property
    def name(self) -> str:
        """Return identifier for this extractor (reported on failures)."""
        ...

    @property
    def mime_type(self) -> str:
        """Return the MIME type of the text this extractor produces."""
        ...

    def can_handle(self, path: Path) -> bool:
        """Check if this extractor can process the given file."""
        ...

    async def extract_text(self, path: Path) -> str:
        """Return the file's text.

        An empty string means "no content" and is not an error.
        """
        ...
