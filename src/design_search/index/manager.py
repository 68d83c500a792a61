"""
Lifecycle of the ANN index over a vector store and its disposable cache file.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import numpy as np

from ..cancellation import CancellationToken
from ..storage.base import EmbeddingRecord, VectorStore
from ..storage.codec import VECTOR_DTYPE
from .hnsw import HNSWIndex, HNSWParams, snapshot_digest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RebuildResult:
    """Summary output for an explicit rebuild."""

    nodes: int
    dimension: int | None
    cache_path: str
    elapsed_seconds: float
    cache_written: bool


class IndexManager:
    """Keep one in-memory index consistent with the store it was built from.

    The store stays the source of truth. The cache file is only reused when
    its snapshot digest matches the records currently stored, and every
    mutation routed through the manager drops both the in-memory graph and
    the cache.
    """

    def __init__(
        self,
        store: VectorStore,
        cache_path: str | Path,
        *,
        params: HNSWParams | None = None,
    ) -> None:
        self.store = store
        self.cache_path = Path(cache_path).expanduser()
        self.params = params or HNSWParams()
        self._index: HNSWIndex | None = None

    @property
    def index(self) -> HNSWIndex | None:
        return self._index

    def cache_exists(self) -> bool:
        return self.cache_path.exists()

    def ensure_index(
        self,
        *,
        cancel: CancellationToken | None = None,
    ) -> HNSWIndex | None:
        """Return a usable index, loading or rebuilding it as needed.

        Returns None when the store is empty.
        """
        if self.store.count() == 0:
            self._index = None
            self._remove_cache()
            return None

        records = list(self.store.get_all())
        if self._index is not None and self._is_current(self._index, records):
            return self._index

        loaded = HNSWIndex.load_from_file(self.cache_path, records, params=self.params)
        if loaded is not None:
            logger.debug("Loaded ANN cache from %s (%d nodes)", self.cache_path, len(loaded))
            self._index = loaded
            return loaded

        if self.cache_path.exists():
            logger.warning("ANN cache at %s is unusable; rebuilding", self.cache_path)
        else:
            logger.info("No ANN cache at %s; building index", self.cache_path)
        self._index = HNSWIndex.build(records, params=self.params, cancel=cancel)
        self._save(self._index)
        return self._index

    def rebuild(self, *, cancel: CancellationToken | None = None) -> RebuildResult:
        """Build from scratch and replace the cache file atomically."""
        started = time.perf_counter()
        if self.store.count() == 0:
            self.invalidate()
            return RebuildResult(
                nodes=0,
                dimension=None,
                cache_path=str(self.cache_path),
                elapsed_seconds=time.perf_counter() - started,
                cache_written=False,
            )

        index = HNSWIndex.build(self.store.get_all(), params=self.params, cancel=cancel)
        self._index = index
        written = self._save(index)
        elapsed = time.perf_counter() - started
        logger.info("Rebuilt ANN index: %d nodes in %.2fs", len(index), elapsed)
        return RebuildResult(
            nodes=len(index),
            dimension=index.dimension,
            cache_path=str(self.cache_path),
            elapsed_seconds=elapsed,
            cache_written=written,
        )

    def invalidate(self) -> None:
        """Drop the in-memory index and delete the cache file."""
        self._index = None
        self._remove_cache()

    def delete(self, ids: Iterable[str]) -> int:
        removed = self.store.delete_many(ids)
        if removed:
            self.invalidate()
        return removed

    def clear(self) -> int:
        removed = self.store.clear()
        self.invalidate()
        return removed

    def is_stale(self) -> bool:
        """True when records exist but no current cache describes them."""
        if self.store.count() == 0:
            return False
        records = list(self.store.get_all())
        if self._index is not None and self._is_current(self._index, records):
            return False
        return HNSWIndex.load_from_file(self.cache_path, records, params=self.params) is None

    @staticmethod
    def _is_current(index: HNSWIndex, records: list[EmbeddingRecord]) -> bool:
        ids = [record.id for record in records]
        if ids != index.ids:
            return False
        vectors = np.asarray([record.vector for record in records], dtype=VECTOR_DTYPE)
        return snapshot_digest(ids, vectors) == index.snapshot

    def _save(self, index: HNSWIndex) -> bool:
        try:
            index.save_to_file(self.cache_path)
        except OSError as exc:
            logger.warning("Could not write ANN cache %s: %s", self.cache_path, exc)
            return False
        return True

    def _remove_cache(self) -> None:
        try:
            self.cache_path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not delete ANN cache %s: %s", self.cache_path, exc)
