"""
Embedding provider for the OpenAI embeddings REST API.
"""

from __future__ import annotations

import os
from typing import Any

import httpx

from ..errors import ProviderError
from .base import BaseEmbeddingProvider

_DEFAULT_BASE_URL = "https://api.openai.com/v1"
_DEFAULT_MODEL = "text-embedding-3-small"
_DEFAULT_DIM = 1536


class OpenAIEmbeddingProvider(BaseEmbeddingProvider):
    """Batch texts into a single ``/embeddings`` request."""

    name = "openai"
    native_batch = True

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str = _DEFAULT_MODEL,
        dim: int = _DEFAULT_DIM,
        batch_size: int = 100,
        base_url: str = _DEFAULT_BASE_URL,
        timeout: float = 60.0,
        client: httpx.Client | None = None,
    ) -> None:
        super().__init__(dimension=dim, batch_size=batch_size)
        self.model = model
        if client is not None:
            self._client = client
        else:
            resolved_key = api_key or os.getenv("OPENAI_API_KEY")
            if not resolved_key:
                raise ProviderError(
                    "OPENAI_API_KEY not found. "
                    "Provide api_key or set the environment variable."
                )
            self._client = httpx.Client(
                base_url=base_url.rstrip("/") + "/",
                headers={"Authorization": f"Bearer {resolved_key}"},
                timeout=timeout,
            )

    def close(self) -> None:
        self._client.close()

    def _embed_one(self, text: str) -> list[float]:
        return self._embed_many([text])[0]

    def _embed_many(self, texts: list[str]) -> list[list[float]]:
        payload = self._post(
            {"input": texts, "model": self.model, "dimensions": self.dimension}
        )
        data = payload.get("data")
        if not isinstance(data, list) or len(data) != len(texts):
            raise ProviderError("OpenAI returned a malformed embedding response.")
        try:
            ordered = sorted(data, key=lambda item: int(item.get("index", 0)))
            return [list(item["embedding"]) for item in ordered]
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ProviderError("OpenAI returned a malformed embedding response.") from exc

    def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._client.post("embeddings", json=body)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderError(f"OpenAI embedding request failed: {exc}") from exc
        if not isinstance(payload, dict):
            raise ProviderError("OpenAI returned a malformed embedding response.")
        return payload
