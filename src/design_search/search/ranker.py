"""
Result model and ranking helpers shared by vector and keyword search.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from ..storage.base import EmbeddingRecord

VECTOR_MODE = "vector"
KEYWORD_MODE = "keyword"


@dataclass(frozen=True)
class SearchResult:
    """One ranked hit with its provenance."""

    id: str
    score: float
    content: str
    mode: str
    owner_id: str
    owner_label: str
    asset_name: str | None = None
    project_name: str | None = None
    file_path: str | None = None
    matched_fields: tuple[str, ...] = ()
    position: int = 0

    @classmethod
    def from_record(
        cls,
        record: EmbeddingRecord,
        *,
        score: float,
        mode: str,
        position: int,
        matched_fields: tuple[str, ...] = (),
    ) -> "SearchResult":
        return cls(
            id=record.id,
            score=score,
            content=record.content,
            mode=mode,
            owner_id=record.owner_id,
            owner_label=record.owner_label,
            asset_name=record.source.asset_name,
            project_name=record.source.project_name,
            file_path=record.source.file_path,
            matched_fields=matched_fields,
            position=position,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": round(self.score, 6),
            "id": self.id,
            "owner_id": self.owner_id,
            "owner_label": self.owner_label,
            "content": self.content,
            "asset_name": self.asset_name,
            "project_name": self.project_name,
            "file_path": self.file_path,
            "mode": self.mode,
            "matched_fields": list(self.matched_fields),
        }


@dataclass(frozen=True)
class SearchResponse:
    """Results of one query plus the mode that produced them."""

    query: str
    threshold: float
    mode: str
    results: list[SearchResult] = field(default_factory=list)
    fallback_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "threshold": self.threshold,
            "mode": self.mode,
            "results": [result.to_dict() for result in self.results],
        }


def clamp_score(value: float) -> float:
    value = float(value)
    if math.isnan(value):
        return 0.0
    return min(max(value, 0.0), 1.0)


def rank_results(results: list[SearchResult], *, limit: int) -> list[SearchResult]:
    """Sort by score descending, ties by insertion order then id, and apply limit."""
    ordered = sorted(
        results,
        key=lambda result: (-result.score, result.position, result.id),
    )
    return ordered[: max(limit, 0)]
