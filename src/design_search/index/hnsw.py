"""
Hierarchical navigable small-world graph over cosine distance.

The graph is built from a snapshot of the vector store and never updated in
place: any change to the store is handled by building a new graph. Only the
topology (ids, levels, adjacency) is written to the cache file; vectors are
always rehydrated from the store, and a snapshot digest ties the cache to
the exact records it was built from.
"""

from __future__ import annotations

import hashlib
import heapq
import json
import logging
import math
import os
import tempfile
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Iterable, Sequence

import numpy as np

from ..cancellation import CancellationToken, check_cancelled
from ..errors import DimensionMismatchError, IndexCorruptError
from ..storage.base import EmbeddingRecord
from ..storage.codec import VECTOR_DTYPE

logger = logging.getLogger(__name__)

CACHE_FORMAT = "design-search-hnsw"
CACHE_VERSION = 1


@dataclass(frozen=True)
class HNSWParams:
    """Build and search parameters; fixed defaults keep builds reproducible."""

    m: int = 16
    ef_construction: int = 200
    ef_search: int = 100
    seed: int = 42

    def __post_init__(self) -> None:
        if self.m < 2:
            raise ValueError("m must be >= 2")
        if self.ef_construction < 1 or self.ef_search < 1:
            raise ValueError("ef_construction and ef_search must be >= 1")

    @property
    def level_lambda(self) -> float:
        return 1.0 / math.log(self.m)

    def max_links(self, layer: int) -> int:
        return 2 * self.m if layer == 0 else self.m


def snapshot_digest(ids: Sequence[str], vectors: np.ndarray) -> str:
    """Fingerprint of a store snapshot: record ids and their vector bytes."""
    digest = hashlib.sha256()
    for record_id, row in zip(ids, vectors):
        digest.update(record_id.encode("utf-8"))
        digest.update(b"\x00")
        digest.update(np.asarray(row, dtype=VECTOR_DTYPE).tobytes())
    return digest.hexdigest()


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return (matrix / norms).astype(np.float32)


class HNSWIndex:
    """Multi-layer proximity graph answering top-k cosine queries."""

    def __init__(
        self,
        ids: Sequence[str],
        raw_vectors: np.ndarray,
        *,
        params: HNSWParams | None = None,
    ) -> None:
        self.params = params or HNSWParams()
        self.ids = list(ids)
        self._positions = {record_id: i for i, record_id in enumerate(self.ids)}
        if self.ids:
            self._raw = np.asarray(raw_vectors, dtype=VECTOR_DTYPE).reshape(len(self.ids), -1)
        else:
            self._raw = np.zeros((0, 0), dtype=VECTOR_DTYPE)
        self.dimension = int(self._raw.shape[1])
        self._vectors = _normalize_rows(self._raw) if self.ids else self._raw
        self.snapshot = snapshot_digest(self.ids, self._raw)
        self.levels: list[int] = []
        self.layers: list[dict[int, list[int]]] = []
        self.entry_point: int | None = None
        self.max_level = -1
        self._rng = np.random.default_rng(self.params.seed)

    def __len__(self) -> int:
        return len(self.ids)

    def position(self, record_id: str) -> int:
        """Insertion position of *record_id* in the snapshot."""
        return self._positions[record_id]

    @classmethod
    def build(
        cls,
        records: Iterable[EmbeddingRecord],
        *,
        params: HNSWParams | None = None,
        cancel: CancellationToken | None = None,
    ) -> "HNSWIndex":
        """Build a graph from records, inserting them in iteration order."""
        ids: list[str] = []
        rows: list[list[float]] = []
        dimension: int | None = None
        for record in records:
            check_cancelled(cancel)
            if dimension is None:
                dimension = record.dimension
            elif record.dimension != dimension:
                raise DimensionMismatchError(dimension, record.dimension, record_id=record.id)
            ids.append(record.id)
            rows.append(record.vector)

        matrix = np.asarray(rows, dtype=VECTOR_DTYPE).reshape(len(ids), dimension or 0)
        index = cls(ids, matrix, params=params)
        for node in range(len(ids)):
            check_cancelled(cancel)
            index._insert(node)
        logger.debug(
            "Built HNSW graph: %d nodes, %d layers, dimension %d",
            len(index),
            index.max_level + 1,
            index.dimension,
        )
        return index

    def search(
        self,
        query_vector: Sequence[float],
        k: int,
        *,
        ef: int | None = None,
    ) -> list[tuple[str, float]]:
        """Return up to *k* (id, cosine distance) pairs, nearest first."""
        if self.entry_point is None or k <= 0:
            return []
        query = np.asarray(query_vector, dtype=np.float32)
        if query.shape != (self.dimension,):
            raise DimensionMismatchError(self.dimension, int(query.size))
        norm = float(np.linalg.norm(query))
        if norm > 0:
            query = query / norm

        entry = [self.entry_point]
        for layer in range(self.max_level, 0, -1):
            entry = [self._search_layer(query, entry, 1, layer)[0][1]]
        width = max(ef or self.params.ef_search, k)
        nearest = self._search_layer(query, entry, width, 0)
        return [(self.ids[node], max(distance, 0.0)) for distance, node in nearest[:k]]

    def _random_level(self) -> int:
        uniform = 1.0 - float(self._rng.random())
        return int(-math.log(uniform) * self.params.level_lambda)

    def _distances(self, query: np.ndarray, nodes: Sequence[int]) -> np.ndarray:
        return 1.0 - self._vectors[list(nodes)] @ query

    def _search_layer(
        self,
        query: np.ndarray,
        entry_points: Sequence[int],
        ef: int,
        layer: int,
    ) -> list[tuple[float, int]]:
        adjacency = self.layers[layer]
        visited = set(entry_points)
        start = self._distances(query, entry_points)
        candidates = [(float(d), node) for d, node in zip(start, entry_points)]
        heapq.heapify(candidates)
        results = [(-d, node) for d, node in candidates]
        heapq.heapify(results)
        while len(results) > ef:
            heapq.heappop(results)

        while candidates:
            distance, node = heapq.heappop(candidates)
            if distance > -results[0][0] and len(results) >= ef:
                break
            neighbors = [n for n in adjacency.get(node, ()) if n not in visited]
            if not neighbors:
                continue
            visited.update(neighbors)
            for neighbor, d in zip(neighbors, self._distances(query, neighbors)):
                d = float(d)
                if len(results) < ef or d < -results[0][0]:
                    heapq.heappush(candidates, (d, neighbor))
                    heapq.heappush(results, (-d, neighbor))
                    if len(results) > ef:
                        heapq.heappop(results)

        return sorted((-d, node) for d, node in results)

    def _select_neighbors(
        self,
        candidates: Sequence[tuple[float, int]],
        limit: int,
    ) -> list[int]:
        # Keep a candidate only if it is closer to the base point than to
        # every neighbor already selected.
        selected: list[int] = []
        for distance, node in sorted(candidates):
            if len(selected) >= limit:
                break
            if selected:
                to_selected = self._distances(self._vectors[node], selected)
                if np.any(to_selected < distance):
                    continue
            selected.append(node)
        return selected

    def _insert(self, node: int) -> None:
        level = self._random_level()
        self.levels.append(level)
        while len(self.layers) <= level:
            self.layers.append({})
        for layer in range(level + 1):
            self.layers[layer][node] = []

        if self.entry_point is None:
            self.entry_point = node
            self.max_level = level
            return

        query = self._vectors[node]
        entry = [self.entry_point]
        for layer in range(self.max_level, level, -1):
            entry = [self._search_layer(query, entry, 1, layer)[0][1]]

        for layer in range(min(level, self.max_level), -1, -1):
            found = self._search_layer(query, entry, self.params.ef_construction, layer)
            neighbors = self._select_neighbors(found, self.params.m)
            self.layers[layer][node] = neighbors
            for neighbor in neighbors:
                self._link(neighbor, node, layer)
            entry = [n for _, n in found]

        if level > self.max_level:
            self.entry_point = node
            self.max_level = level

    def _link(self, node: int, new_neighbor: int, layer: int) -> None:
        links = self.layers[layer][node]
        links.append(new_neighbor)
        limit = self.params.max_links(layer)
        if len(links) <= limit:
            return
        distances = self._distances(self._vectors[node], links)
        candidates = [(float(d), n) for d, n in zip(distances, links)]
        self.layers[layer][node] = self._select_neighbors(candidates, limit)

    def to_topology(self) -> dict[str, Any]:
        """Serializable graph description; vectors are deliberately absent."""
        return {
            "format": CACHE_FORMAT,
            "version": CACHE_VERSION,
            "params": asdict(self.params),
            "dimension": self.dimension,
            "ids": self.ids,
            "levels": self.levels,
            "entry_point": self.entry_point,
            "max_level": self.max_level,
            "layers": [
                [[node, links] for node, links in sorted(layer.items())]
                for layer in self.layers
            ],
            "snapshot": self.snapshot,
        }

    @classmethod
    def from_topology(
        cls,
        topology: dict[str, Any],
        records: Iterable[EmbeddingRecord],
        *,
        params: HNSWParams | None = None,
    ) -> "HNSWIndex":
        """Rehydrate a graph against vectors freshly read from the store.

        Raises IndexCorruptError when the topology is malformed or does not
        describe exactly this snapshot.
        """
        try:
            if topology.get("format") != CACHE_FORMAT or topology.get("version") != CACHE_VERSION:
                raise IndexCorruptError("Unrecognized cache format.")
            cached_params = HNSWParams(**topology["params"])
            if params is not None and cached_params != params:
                raise IndexCorruptError("Cache was built with different parameters.")

            records = list(records)
            ids = [record.id for record in records]
            if ids != list(topology["ids"]):
                raise IndexCorruptError("Cache ids do not match the store snapshot.")
            dimension = int(topology["dimension"])
            matrix = np.asarray(
                [record.vector for record in records], dtype=VECTOR_DTYPE
            ).reshape(len(ids), dimension)

            index = cls(ids, matrix, params=cached_params)
            if index.snapshot != topology["snapshot"]:
                raise IndexCorruptError("Cache snapshot digest does not match the store.")

            node_count = len(ids)
            index.levels = [int(level) for level in topology["levels"]]
            index.layers = []
            for layer in topology["layers"]:
                adjacency: dict[int, list[int]] = {}
                for node, links in layer:
                    node = int(node)
                    neighbors = [int(n) for n in links]
                    if not 0 <= node < node_count or any(
                        not 0 <= n < node_count for n in neighbors
                    ):
                        raise IndexCorruptError("Cache references unknown nodes.")
                    adjacency[node] = neighbors
                index.layers.append(adjacency)
            entry_point = topology["entry_point"]
            index.entry_point = None if entry_point is None else int(entry_point)
            index.max_level = int(topology["max_level"])
        except IndexCorruptError:
            raise
        except (KeyError, TypeError, ValueError) as exc:
            raise IndexCorruptError(f"Malformed cache topology: {exc}") from exc

        if len(index.levels) != node_count or len(index.layers) != index.max_level + 1:
            raise IndexCorruptError("Cache layer structure is inconsistent.")
        if not node_count:
            return index
        if index.max_level < 0 or not index.layers:
            raise IndexCorruptError("Cache has nodes but no graph layers.")
        if index.entry_point is None or not 0 <= index.entry_point < node_count:
            raise IndexCorruptError("Cache entry point is invalid.")
        if index.levels[index.entry_point] != index.max_level:
            raise IndexCorruptError("Cache entry point is not on the top layer.")
        if any(not 0 <= level <= index.max_level for level in index.levels):
            raise IndexCorruptError("Cache node levels are out of range.")
        for layer_no, adjacency in enumerate(index.layers):
            if any(index.levels[node] < layer_no for node in adjacency):
                raise IndexCorruptError(f"Cache layer {layer_no} holds nodes below it.")
        return index

    def save_to_file(self, path: str | Path) -> None:
        """Write the topology atomically: temp file in the same directory, then rename."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(self.to_topology(), handle, separators=(",", ":"))
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    @classmethod
    def load_from_file(
        cls,
        path: str | Path,
        records: Iterable[EmbeddingRecord],
        *,
        params: HNSWParams | None = None,
    ) -> "HNSWIndex | None":
        """Load a cached graph, or return None when it is missing, corrupt, or stale."""
        target = Path(path)
        if not target.exists():
            return None
        try:
            return cls.from_topology(_read_topology(target), records, params=params)
        except IndexCorruptError as exc:
            logger.warning("Discarding ANN cache %s: %s", target, exc)
            return None


def _read_topology(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValueError) as exc:
        raise IndexCorruptError(f"Cannot deserialize {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise IndexCorruptError(f"{path} does not hold a graph topology.")
    return data
