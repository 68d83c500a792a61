"""
Embedding provider interface shared by the mock and network providers.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Protocol, Sequence

from ..cancellation import CancellationToken, check_cancelled
from ..errors import ProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmbeddingResult:
    """Outcome of embedding one text in a batch: a vector or an error."""

    vector: list[float] | None = None
    error: ProviderError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.vector is not None


class EmbeddingProvider(Protocol):
    """Turns text into fixed-length vectors."""

    name: str
    dimension: int

    def embed(self, text: str) -> list[float]:
        """Embed a single text. Raises ProviderError on failure."""

    def embed_batch(
        self,
        texts: Sequence[str],
        *,
        cancel: CancellationToken | None = None,
    ) -> list[EmbeddingResult]:
        """Embed texts in order; failures are reported per item.

        Raises OperationCancelledError when *cancel* is set before the next
        request goes out.
        """

    def close(self) -> None:
        """Release any client the provider holds."""


class BaseEmbeddingProvider:
    """Common batch handling for providers that implement ``embed``.

    Providers with a real batch endpoint set ``native_batch`` and override
    ``_embed_many``; the rest are called once per text, with the
    cancellation token checked before each request. A batch call that fails
    as a whole is retried item by item so that only the offending texts
    carry errors.
    """

    name = "base"
    native_batch = False

    def __init__(self, *, dimension: int, batch_size: int = 50) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be > 0")
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self.dimension = dimension
        self.batch_size = batch_size

    def embed(self, text: str) -> list[float]:
        if not text.strip():
            return [0.0] * self.dimension
        return self._checked(self._embed_one(text))

    def close(self) -> None:
        pass

    def embed_batch(
        self,
        texts: Sequence[str],
        *,
        cancel: CancellationToken | None = None,
    ) -> list[EmbeddingResult]:
        results: list[EmbeddingResult] = []
        for start in range(0, len(texts), self.batch_size):
            check_cancelled(cancel)
            batch = list(texts[start : start + self.batch_size])
            results.extend(self._embed_chunk(batch, cancel=cancel))
        return results

    def _embed_chunk(
        self,
        batch: list[str],
        *,
        cancel: CancellationToken | None,
    ) -> list[EmbeddingResult]:
        pending = [i for i, text in enumerate(batch) if text.strip()]
        results: list[EmbeddingResult] = [
            EmbeddingResult(vector=[0.0] * self.dimension) for _ in batch
        ]
        if not pending:
            return results

        if not self.native_batch:
            for i in pending:
                check_cancelled(cancel)
                results[i] = self._embed_single_result(batch[i])
            return results

        try:
            vectors = self._embed_many([batch[i] for i in pending])
            if len(vectors) != len(pending):
                raise ProviderError(
                    f"{self.name} returned {len(vectors)} embeddings for {len(pending)} texts."
                )
        except ProviderError as exc:
            if len(pending) == 1:
                results[pending[0]] = EmbeddingResult(error=exc)
                return results
            logger.warning(
                "%s batch of %d failed (%s); retrying item by item",
                self.name,
                len(pending),
                exc,
            )
            for i in pending:
                check_cancelled(cancel)
                results[i] = self._embed_single_result(batch[i])
            return results

        for i, vector in zip(pending, vectors):
            try:
                results[i] = EmbeddingResult(vector=self._checked(vector))
            except ProviderError as exc:
                results[i] = EmbeddingResult(error=exc)
        return results

    def _embed_single_result(self, text: str) -> EmbeddingResult:
        try:
            if not self.native_batch:
                return EmbeddingResult(vector=self._checked(self._embed_one(text)))
            vectors = self._embed_many([text])
            if len(vectors) != 1:
                raise ProviderError(f"{self.name} returned {len(vectors)} embeddings for 1 text.")
            return EmbeddingResult(vector=self._checked(vectors[0]))
        except ProviderError as exc:
            return EmbeddingResult(error=exc)

    def _embed_one(self, text: str) -> list[float]:
        raise NotImplementedError

    def _embed_many(self, texts: list[str]) -> list[list[float]]:
        raise NotImplementedError

    def _checked(self, vector: Sequence[float]) -> list[float]:
        try:
            values = [float(v) for v in vector]
        except (TypeError, ValueError) as exc:
            raise ProviderError(f"{self.name} returned a malformed embedding: {exc}") from exc
        if len(values) != self.dimension:
            raise ProviderError(
                f"{self.name} returned a {len(values)}-dimensional vector; "
                f"expected {self.dimension}."
            )
        if not all(math.isfinite(v) for v in values):
            raise ProviderError(f"{self.name} returned a non-finite vector component.")
        return values
