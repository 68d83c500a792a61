"""
Embedding provider for a local Ollama server.
"""

from __future__ import annotations

from typing import Any

import httpx

from ..errors import ProviderError
from .base import BaseEmbeddingProvider

_DEFAULT_HOST = "http://localhost:11434"
_DEFAULT_MODEL = "nomic-embed-text"
_DEFAULT_DIM = 768


class OllamaEmbeddingProvider(BaseEmbeddingProvider):
    """Call ``/api/embeddings`` once per text (Ollama has no batch endpoint)."""

    name = "ollama"

    def __init__(
        self,
        *,
        host: str = _DEFAULT_HOST,
        model: str = _DEFAULT_MODEL,
        dim: int = _DEFAULT_DIM,
        timeout: float = 300.0,
        client: httpx.Client | None = None,
    ) -> None:
        super().__init__(dimension=dim)
        self.model = model
        self._client = client or httpx.Client(
            base_url=host.rstrip("/") + "/",
            timeout=timeout,
        )

    def close(self) -> None:
        self._client.close()

    def _embed_one(self, text: str) -> list[float]:
        payload = self._post({"model": self.model, "prompt": text})
        embedding = payload.get("embedding")
        if not isinstance(embedding, list):
            raise ProviderError("Ollama returned a malformed embedding response.")
        if not embedding:
            raise ProviderError("Ollama returned an empty embedding response.")
        return embedding

    def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._client.post("api/embeddings", json=body)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderError(f"Ollama embedding request failed: {exc}") from exc
        if not isinstance(payload, dict):
            raise ProviderError("Ollama returned a malformed embedding response.")
        return payload
