"""Embedding providers for vector generation."""

from docserve.embedders.hashing import HashingEmbedder
from docserve.embedders.sentence_transformer import SentenceTransformerEmbedder
from docserve.protocols import EmbeddingProvider

EMBEDDERS = ("sentence-transformers", "hashing")


def create_embedder(kind: str, model_name: str | None = None) -> EmbeddingProvider:
    """Build an embedder by its CLI name."""
    if kind == "sentence-transformers":
        return SentenceTransformerEmbedder(model_name)
    if kind == "hashing":
        return HashingEmbedder()
    raise ValueError(f"Unknown embedder: {kind} (expected one of {', '.join(EMBEDDERS)})")


__all__ = ["SentenceTransformerEmbedder", "HashingEmbedder", "create_embedder", "EMBEDDERS"]
