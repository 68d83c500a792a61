"""
Query orchestration over the ANN index with keyword fallback.

Vector search is attempted when it is enabled and there is something to
search; any embedding or dimension failure degrades the query to keyword
scoring instead of surfacing an error.
"""

from __future__ import annotations

import enum
import logging

from ..config import SearchConfig
from ..embeddings import EmbeddingProvider
from ..errors import DimensionMismatchError, ProviderError
from ..index import IndexManager
from ..storage.base import VectorStore
from .keyword import KeywordFallbackScorer
from .ranker import (
    KEYWORD_MODE,
    VECTOR_MODE,
    SearchResponse,
    SearchResult,
    clamp_score,
    rank_results,
)

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.7
DEFAULT_TOP_K = 10


class EngineState(str, enum.Enum):
    """Readiness of vector search."""

    DISABLED = "Disabled"
    EMPTY = "Empty"
    READY = "Ready"
    STALE = "Stale"


class SearchEngine:
    """Single query interface over vector and keyword search."""

    def __init__(
        self,
        store: VectorStore,
        provider: EmbeddingProvider | None,
        config: SearchConfig,
        *,
        index_manager: IndexManager | None = None,
        scorer: KeywordFallbackScorer | None = None,
    ) -> None:
        self.store = store
        self.provider = provider
        self.config = config
        self.index_manager = index_manager or IndexManager(
            store, config.index_cache_path, params=config.hnsw
        )
        self.scorer = scorer or KeywordFallbackScorer()

    @property
    def vector_enabled(self) -> bool:
        return self.config.enabled and self.provider is not None

    def state(self) -> EngineState:
        if not self.vector_enabled:
            return EngineState.DISABLED
        if self.store.count() == 0:
            return EngineState.EMPTY
        if self.index_manager.is_stale():
            return EngineState.STALE
        return EngineState.READY

    def search(
        self,
        query: str,
        *,
        threshold: float = DEFAULT_THRESHOLD,
        top_k: int = DEFAULT_TOP_K,
        local_only: bool = False,
    ) -> SearchResponse:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {threshold}")
        if top_k < 1:
            raise ValueError(f"top_k must be >= 1, got {top_k}")

        fallback_reason: str | None = None
        provider = self.provider if self.config.enabled else None
        if not local_only and provider is not None:
            try:
                results = self._vector_search(
                    provider, query, threshold=threshold, top_k=top_k
                )
            except (ProviderError, DimensionMismatchError) as exc:
                fallback_reason = str(exc)
                logger.warning("Vector search unavailable, using keyword search: %s", exc)
            else:
                if results is not None:
                    return SearchResponse(
                        query=query,
                        threshold=threshold,
                        mode=VECTOR_MODE,
                        results=results,
                    )

        return SearchResponse(
            query=query,
            threshold=threshold,
            mode=KEYWORD_MODE,
            results=self._keyword_search(query, threshold=threshold, top_k=top_k),
            fallback_reason=fallback_reason,
        )

    def _vector_search(
        self,
        provider: EmbeddingProvider,
        query: str,
        *,
        threshold: float,
        top_k: int,
    ) -> list[SearchResult] | None:
        index = self.index_manager.ensure_index()
        if index is None:
            return None

        query_vector = provider.embed(query)
        if len(query_vector) != index.dimension:
            raise DimensionMismatchError(index.dimension, len(query_vector))

        hits = index.search(query_vector, top_k * self.config.oversample_factor)
        results: list[SearchResult] = []
        for record_id, distance in hits:
            score = clamp_score(1.0 - distance)
            if score < threshold:
                continue
            record = self.store.get(record_id)
            if record is None:
                continue
            results.append(
                SearchResult.from_record(
                    record,
                    score=score,
                    mode=VECTOR_MODE,
                    position=index.position(record_id),
                )
            )
        return rank_results(results, limit=top_k)

    def _keyword_search(
        self,
        query: str,
        *,
        threshold: float,
        top_k: int,
    ) -> list[SearchResult]:
        matches = self.scorer.search(self.store.get_all(), query, threshold=threshold)
        results = [
            SearchResult.from_record(
                match.record,
                score=clamp_score(match.score),
                mode=KEYWORD_MODE,
                position=match.position,
                matched_fields=match.matched_fields,
            )
            for match in matches
        ]
        return rank_results(results, limit=top_k)
