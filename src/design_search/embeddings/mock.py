"""
Deterministic hash-derived embeddings for tests and offline use.
"""

from __future__ import annotations

import hashlib
import re
import unicodedata

import numpy as np

from .base import BaseEmbeddingProvider

_DEFAULT_DIM = 384
_KEYWORD_BIAS = 0.3
_KEYWORD_SPLIT_RE = re.compile(r"[\s\-_/\\()（）]+")


def _hash_int32(data: bytes) -> int:
    digest = hashlib.sha256(data).digest()
    return int.from_bytes(digest[:4], "little", signed=True)


class MockEmbeddingProvider(BaseEmbeddingProvider):
    """Pseudo-random vectors seeded from a SHA-256 of the text.

    Identical text (after NFC normalization and lower-casing) always yields
    the same unit vector. Every keyword of two or more characters nudges a
    hash-selected dimension upwards, so texts that share keywords end up
    closer together than unrelated texts.
    """

    name = "mock"

    def __init__(self, dimension: int = _DEFAULT_DIM, *, batch_size: int = 50) -> None:
        super().__init__(dimension=dimension, batch_size=batch_size)

    def _embed_one(self, text: str) -> list[float]:
        normalized = unicodedata.normalize("NFC", text).lower()
        seed = _hash_int32(normalized.encode("utf-8")) & 0xFFFFFFFF
        rng = np.random.default_rng(seed)
        vector = (rng.random(self.dimension) * 2.0 - 1.0).astype(np.float32)
        vector = _unit(vector)

        for keyword in _KEYWORD_SPLIT_RE.split(text.lower()):
            if len(keyword) < 2:
                continue
            dim = abs(_hash_int32(keyword.encode("utf-8"))) % self.dimension
            vector[dim] = np.clip(vector[dim] + _KEYWORD_BIAS, -1.0, 1.0)

        return _unit(vector).tolist()


def _unit(vector: np.ndarray) -> np.ndarray:
    magnitude = float(np.linalg.norm(vector))
    if magnitude > 0:
        return (vector / magnitude).astype(np.float32)
    return vector
