"""Embedding calls routed through the AI operation middleware."""

from __future__ import annotations

import asyncio

import numpy as np

from docserve.ai import AiOperationContext, AiOperationMiddleware
from docserve.protocols import EmbeddingProvider


class EmbeddingGateway:
    """Turns text into a vector with retry and rate-limit protection.

    The embedder runs in a worker thread; a failed call raises the
    classified ``AiOperationError``.
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        middleware: AiOperationMiddleware,
        provider_key: str | None = None,
        timeout_ms: int = 120_000,
    ):
        self.embedder = embedder
        self.middleware = middleware
        self.provider_key = provider_key or f"embedding:{embedder.model_name}"
        self.timeout_ms = timeout_ms

    @property
    def model_name(self) -> str:
        return self.embedder.model_name

    async def embed(self, text: str) -> np.ndarray:
        async def operation() -> np.ndarray:
            vectors = await asyncio.to_thread(self.embedder.embed, [text])
            return np.asarray(vectors[0], dtype=np.float32)

        result = await self.middleware.execute(
            operation,
            "embedding",
            self.provider_key,
            AiOperationContext(prompt=text, timeout_ms=self.timeout_ms),
        )
        return result.unwrap()
