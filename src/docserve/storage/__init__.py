"""Storage layer for indexed documents."""

from docserve.storage.store import VectorStore, VectorStoreError

__all__ = ["VectorStore", "VectorStoreError"]
