"""Search over stored embeddings."""

from .engine import DEFAULT_THRESHOLD, DEFAULT_TOP_K, EngineState, SearchEngine
from .keyword import KeywordFallbackScorer, KeywordMatch, tokenize, weighted_fields
from .ranker import (
    KEYWORD_MODE,
    VECTOR_MODE,
    SearchResponse,
    SearchResult,
    clamp_score,
    rank_results,
)

__all__ = [
    "DEFAULT_THRESHOLD",
    "DEFAULT_TOP_K",
    "EngineState",
    "SearchEngine",
    "KeywordFallbackScorer",
    "KeywordMatch",
    "tokenize",
    "weighted_fields",
    "KEYWORD_MODE",
    "VECTOR_MODE",
    "SearchResponse",
    "SearchResult",
    "clamp_score",
    "rank_results",
]
