"""Text extractors, tried in order for each file."""

from pathlib import Path
from typing import Iterable, Optional

from docserve.extractors.text_extractor import TextFileExtractor
from docserve.protocols import FileExtractor


def default_extractors() -> list[FileExtractor]:
    """Extractors used when the caller does not supply its own list."""
    return [TextFileExtractor()]


def find_extractor(extractors: Iterable[FileExtractor], path: Path | str) -> Optional[FileExtractor]:
    """Find the first extractor that can handle the given file.

    Args:
        extractors: Candidate extractors, in priority order
        path: File to extract

    Returns:
        The first capable extractor, or None
    """
    file_path = Path(path)
    for extractor in extractors:
        if extractor.can_handle(file_path):
            return extractor
    return None


__all__ = ["default_extractors", "find_extractor", "TextFileExtractor"]
