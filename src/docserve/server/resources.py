"""Mapping between file:/// resource URIs and files under the served root."""

from __future__ import annotations

import re
from pathlib import Path

from docserve.server.models import ResourcePathError

FILE_URI_PREFIX = "file:///"

WINDOWS_ABSOLUTE_PATTERN = re.compile(r"^[a-zA-Z]:[\\/]")


def resource_uri(relative_path: str) -> str:
    """URI for a root-relative POSIX path."""
    return f"{FILE_URI_PREFIX}{relative_path}"


def resolve_resource(root: Path, uri: str) -> tuple[Path, str]:
    """Resolve a resource URI to an existing file under ``root``.

    Accepts ``file:///relative/path`` or a bare relative path.

    Returns:
        The absolute file path and its root-relative POSIX form

    Raises:
        ResourcePathError: If the URI is empty, escapes the root or names no file
    """
    root = root.resolve()
    candidate = uri[len(FILE_URI_PREFIX):] if uri.lower().startswith(FILE_URI_PREFIX) else uri
    normalized = candidate.replace("\\", "/")

    if not normalized.strip():
        raise ResourcePathError("Resource path is empty")
    if normalized.startswith("/") or WINDOWS_ABSOLUTE_PATTERN.match(normalized):
        raise ResourcePathError(f"Resource path must be relative to the root: {uri}")

    parts = [part for part in normalized.split("/") if part not in ("", ".")]
    if any(part == ".." for part in parts):
        raise ResourcePathError(f"Path traversal is not allowed: {uri}")

    resolved = (root / Path(*parts)).resolve(strict=False)
    if not resolved.is_relative_to(root):
        raise ResourcePathError(f"Resource path escapes the root: {uri}")
    if not resolved.is_file():
        raise ResourcePathError(f"File not found: {uri}")

    return resolved, "/".join(parts)
