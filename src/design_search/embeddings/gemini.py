"""
Embedding provider backed by the Google GenAI embedding API.

Wraps ``embed_content`` for batch document embedding and single-query
embedding with configurable model, dimensions, and batch size.
"""

from __future__ import annotations

import os
from typing import Any

from google.genai import Client as GenAIClient

from ..errors import ProviderError
from .base import BaseEmbeddingProvider


_DEFAULT_MODEL = "gemini-embedding-001"
_DEFAULT_DIM = 768
_DEFAULT_BATCH_SIZE = 50


class GeminiEmbeddingProvider(BaseEmbeddingProvider):
    """Generate text embeddings via Google GenAI."""

    name = "gemini"
    native_batch = True

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        dim: int | None = None,
        batch_size: int | None = None,
        client: Any | None = None,
    ) -> None:
        super().__init__(
            dimension=dim or _DEFAULT_DIM,
            batch_size=batch_size or _DEFAULT_BATCH_SIZE,
        )
        self.model = model or _DEFAULT_MODEL

        if client is not None:
            self._client = client
        else:
            resolved_key = api_key or os.getenv("GOOGLE_API_KEY")
            if resolved_key is None:
                raise ProviderError(
                    "GOOGLE_API_KEY not found. "
                    "Provide api_key or set the environment variable."
                )
            self._client = GenAIClient(api_key=resolved_key)

    def _embed_one(self, text: str) -> list[float]:
        vectors = self._request([text], task_type="RETRIEVAL_QUERY")
        if not vectors:
            raise ProviderError("Gemini returned no embedding for the query.")
        return vectors[0]

    def _embed_many(self, texts: list[str]) -> list[list[float]]:
        return self._request(texts, task_type="RETRIEVAL_DOCUMENT")

    def _request(self, texts: list[str], *, task_type: str) -> list[list[float]]:
        try:
            result = self._client.models.embed_content(
                model=self.model,
                contents=texts,
                config={
                    "task_type": task_type,
                    "output_dimensionality": self.dimension,
                },
            )
            return [list(emb.values) for emb in result.embeddings]
        except Exception as exc:
            raise ProviderError(f"Gemini embedding request failed: {exc}") from exc
