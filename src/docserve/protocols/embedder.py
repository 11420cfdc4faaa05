"""Protocol for embedding model providers."""

from typing import Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Protocol for embedding models behind the embedding gateway.

    ``embed`` is synchronous and may be slow; the gateway runs it in a
    worker thread under the AI operation middleware.
    """

    @property
    def dimension(self) -> int:
        """Length of every vector this model returns."""
        ...

    @property
    def model_name(self) -> str:
        """Identifier recorded in the index metadata."""
        ...

    def embed(self, texts: list[str]) -> np.ndarray:
        """Embed a batch of texts into an array of shape (len(texts), dimension)."""
        ...
