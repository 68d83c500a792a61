"""
design-search - embedded semantic search over past designs.

Vectors live in a DuckDB table, an HNSW graph built from them answers
similarity queries, and a weighted keyword scorer takes over whenever vector
search is disabled or the embedding provider fails.

Example usage:
    >>> from design_search import SearchConfig, DuckDBVectorStore, SearchEngine
    >>> config = SearchConfig()
    >>> store = DuckDBVectorStore(str(config.db_path), dimension=config.dimensions)
    >>> engine = SearchEngine(store, config.provider.create(), config)
    >>> response = engine.search("hydraulic cylinder", threshold=0.5)
"""

from .cancellation import CancellationToken
from .config import SearchConfig, load_config
from .errors import (
    CatalogError,
    ConfigurationError,
    DesignSearchError,
    DimensionMismatchError,
    IndexCorruptError,
    OperationCancelledError,
    ProviderError,
    StoreError,
)
from .index import HNSWIndex, HNSWParams, IndexManager
from .indexing import CatalogItem, SyncPipeline, SyncResult
from .search import KeywordFallbackScorer, SearchEngine, SearchResponse, SearchResult
from .storage import DuckDBVectorStore, EmbeddingRecord, RecordSource

__all__ = [
    # Configuration
    "SearchConfig",
    "load_config",
    "CancellationToken",
    # Errors
    "DesignSearchError",
    "ProviderError",
    "DimensionMismatchError",
    "IndexCorruptError",
    "StoreError",
    "ConfigurationError",
    "OperationCancelledError",
    "CatalogError",
    # Storage
    "DuckDBVectorStore",
    "EmbeddingRecord",
    "RecordSource",
    # Index
    "HNSWIndex",
    "HNSWParams",
    "IndexManager",
    # Search
    "SearchEngine",
    "SearchResponse",
    "SearchResult",
    "KeywordFallbackScorer",
    # Sync
    "CatalogItem",
    "SyncPipeline",
    "SyncResult",
]
