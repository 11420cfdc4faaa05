"""Directory walking and skip rules for indexing."""

from __future__ import annotations

import os
import stat as stat_module
from pathlib import Path
from typing import Iterator

# Directories never descended into
IGNORED_DIRECTORIES = frozenset({"__pycache__", "node_modules"})

DATABASE_EXTENSIONS = frozenset({".db", ".sqlite", ".sqlite3"})

# SQLite files kept next to the index database
INDEX_DB_SIDECARS = ("-wal", "-shm", "-journal")

# Ordered: the first matching class names the skip reason
SKIPPED_EXTENSION_CLASSES: tuple[tuple[frozenset[str], str], ...] = (
    (frozenset({".exe", ".dll", ".bin", ".so", ".dylib", ".msi", ".com"}), "Binary executable"),
    (
        frozenset({".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tiff", ".webp", ".ico"}),
        "Image file (not supported)",
    ),
    (
        frozenset({".mp4", ".avi", ".mov", ".wmv", ".mkv", ".webm", ".mp3", ".wav", ".flac"}),
        "Media file (not supported)",
    ),
    (
        frozenset({".zip", ".rar", ".7z", ".tar", ".gz", ".bz2", ".xz"}),
        "Archive file (not supported)",
    ),
)


def walk_files(root: Path) -> Iterator[Path]:
    """Yield every file under ``root`` recursively, in sorted order.

    Hidden directories and common dependency caches are not descended into.
    """
    for current, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d for d in dirnames if not d.startswith(".") and d not in IGNORED_DIRECTORIES
        )
        for filename in sorted(filenames):
            yield Path(current) / filename


def is_index_database(path: Path, index_db: Path | None) -> bool:
    """True for the store's own database file and its journal/WAL siblings."""
    if index_db is None:
        return False
    if path.parent.resolve() != index_db.parent.resolve():
        return False
    return path.name in {index_db.name, *(f"{index_db.name}{suffix}" for suffix in INDEX_DB_SIDECARS)}


def skip_reason(
    path: Path,
    file_stat: os.stat_result,
    max_file_bytes: int,
    index_db: Path | None = None,
) -> str | None:
    """Return why ``path`` must not be indexed, or None to index it.

    Args:
        path: File to check
        file_stat: Result of ``os.stat`` for the file
        max_file_bytes: Size ceiling
        index_db: The vector store's own database file

    Returns:
        A human-readable reason, or None
    """
    name = path.name
    extension = path.suffix.lower()

    if name.startswith("."):
        return "Hidden file"

    attributes = getattr(file_stat, "st_file_attributes", 0)
    if attributes & stat_module.FILE_ATTRIBUTE_SYSTEM:
        return "System file"

    if file_stat.st_size > max_file_bytes:
        return f"File too large ({file_stat.st_size / (1024 * 1024):.1f} MB)"

    if is_index_database(path, index_db):
        return "Index database file"

    if extension in DATABASE_EXTENSIONS:
        return "Database file"

    for extensions, reason in SKIPPED_EXTENSION_CLASSES:
        if extension in extensions:
            return reason

    return None
