"""Deterministic offline embedder based on feature hashing."""

import hashlib
import re

import numpy as np

TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)


class HashingEmbedder:
    """Hashed bag-of-words embeddings.

    No model download and no network: every lowercase token is hashed into
    one of ``dimension`` buckets and the counts are L2-normalized. Texts that
    share words get positive cosine similarity, which is enough for offline
    use and for tests.
    """

    DEFAULT_DIMENSION = 384

    def __init__(self, dimension: int = DEFAULT_DIMENSION):
        if dimension <= 0:
            raise ValueError("dimension must be greater than 0")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return f"hashing-{self._dimension}"

    def _bucket(self, token: str) -> int:
        digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
        return int.from_bytes(digest, "little") % self._dimension

    def embed(self, texts: list[str]) -> np.ndarray:
        vectors = np.zeros((len(texts), self._dimension), dtype=np.float32)
        for row, text in enumerate(texts):
            for token in TOKEN_PATTERN.findall(text.lower()):
                vectors[row, self._bucket(token)] += 1.0
            norm = np.linalg.norm(vectors[row])
            if norm > 0:
                vectors[row] /= norm
        return vectors
