"""Content-hash based file change detection."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import threading
import time
from pathlib import Path
from typing import Iterable, Mapping

from docserve.models import FileMetadata

logger = logging.getLogger(__name__)

HASH_BLOCK_SIZE = 64 * 1024


def _hash_file(path: Path) -> str:
    digest = hashlib.md5(usedforsecurity=False)
    with open(path, "rb") as handle:
        for block in iter(lambda: handle.read(HASH_BLOCK_SIZE), b""):
            digest.update(block)
    return digest.hexdigest()


class FileChangeDetector:
    """Decides whether a previously indexed file needs reprocessing.

    A file counts as changed only when its content hash differs from the
    stored one; a touched file with identical bytes is unchanged. Missing
    files are always changed so that callers purge them.

    MD5 is used for content addressing, not security. The cache records the
    last metadata computed per path; decisions always rehash the file.
    """

    def __init__(self) -> None:
        self._cache: dict[str, FileMetadata] = {}
        self._cache_lock = threading.Lock()

    async def hash(self, path: Path | str) -> str:
        """Stream the file through MD5 and return the hex digest."""
        return await asyncio.to_thread(_hash_file, Path(path))

    def metadata(self, path: Path | str) -> FileMetadata:
        """Size and modification time, without hashing."""
        stat = os.stat(path)
        return FileMetadata(
            path=str(path),
            hash="",
            last_modified=stat.st_mtime,
            size_bytes=stat.st_size,
            last_checked=time.time(),
        )

    async def has_changed(
        self,
        path: Path | str,
        stored_hash: str | None,
        stored_modified: float | None = None,
    ) -> bool:
        key = str(path)
        try:
            current = self.metadata(path)
        except FileNotFoundError:
            logger.debug(f"File not found for change detection: {key}")
            return True
        except OSError as exc:
            logger.error(f"Error checking if file has changed: {key}: {exc}")
            return True

        if not stored_hash:
            logger.debug(f"No known hash for {key}, assuming changed")
            return True

        try:
            current_hash = await self.hash(path)
        except FileNotFoundError:
            return True
        except OSError as exc:
            logger.error(f"Error hashing {key}: {exc}")
            return True

        with self._cache_lock:
            self._cache[key] = FileMetadata(
                path=key,
                hash=current_hash,
                last_modified=current.last_modified,
                size_bytes=current.size_bytes,
                last_checked=time.time(),
            )

        changed = current_hash.lower() != stored_hash.lower()
        if not changed and stored_modified is not None and stored_modified != current.last_modified:
            logger.debug(f"{key} was touched but its content is unchanged")
        return changed

    async def batch_check(
        self, paths: Iterable[Path | str], stored: Mapping[str, FileMetadata] | None = None
    ) -> dict[str, bool]:
        """Check many files concurrently; paths absent from ``stored`` are new."""
        stored = stored or {}
        keys = [str(p) for p in paths]

        async def check(key: str) -> bool:
            known = stored.get(key)
            if known is None:
                return True
            return await self.has_changed(key, known.hash, known.last_modified)

        flags = await asyncio.gather(*(check(key) for key in keys))
        results = dict(zip(keys, flags))

        changed = sum(results.values())
        logger.info(
            f"Batch checked {len(results)} files: {changed} changed, {len(results) - changed} unchanged"
        )
        return results

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()

    def cache_stats(self) -> tuple[int, int]:
        """Return (cached files, total bytes of the cached files)."""
        with self._cache_lock:
            return len(self._cache), sum(m.size_bytes for m in self._cache.values())
