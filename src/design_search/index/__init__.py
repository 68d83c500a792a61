"""Approximate nearest-neighbor index and its cache lifecycle."""

from .hnsw import HNSWIndex, HNSWParams, snapshot_digest
from .manager import IndexManager, RebuildResult

__all__ = [
    "HNSWIndex",
    "HNSWParams",
    "snapshot_digest",
    "IndexManager",
    "RebuildResult",
]
