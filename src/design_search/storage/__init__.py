"""Storage backends for embedding persistence."""

from .base import (
    BatchUpsertResult,
    EmbeddingRecord,
    RecordSnapshot,
    RecordSource,
    UpsertFailure,
    UpsertRequest,
    VectorStore,
)
from .codec import decode_vector, encode_vector
from .duckdb import DuckDBVectorStore

__all__ = [
    "BatchUpsertResult",
    "EmbeddingRecord",
    "RecordSnapshot",
    "RecordSource",
    "UpsertFailure",
    "UpsertRequest",
    "VectorStore",
    "decode_vector",
    "encode_vector",
    "DuckDBVectorStore",
]
