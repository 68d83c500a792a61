"""
Storage interfaces and data models for vector persistence.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Iterator, Protocol, Sequence


@dataclass(frozen=True)
class RecordSource:
    """Owner metadata stored alongside an embedding."""

    owner_id: str | None = None
    owner_label: str | None = None
    name: str | None = None
    category: str | None = None
    memo: str | None = None
    asset_name: str | None = None
    project_name: str | None = None
    file_path: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EmbeddingRecord:
    """One embedded unit of content."""

    id: str
    content: str
    vector: list[float]
    dimension: int
    source: RecordSource
    created_at: datetime
    updated_at: datetime

    @property
    def owner_id(self) -> str:
        return self.source.owner_id or self.id

    @property
    def owner_label(self) -> str:
        return self.source.owner_label or self.id


@dataclass(frozen=True)
class UpsertRequest:
    """Input item for a batch upsert."""

    id: str
    content: str
    vector: Sequence[float]
    source: RecordSource | None = None


@dataclass(frozen=True)
class UpsertFailure:
    """A batch item that was rejected, with the reason."""

    id: str
    error_code: str
    message: str


@dataclass
class BatchUpsertResult:
    """Per-item outcome of ``upsert_batch``."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[UpsertFailure] = field(default_factory=list)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed and not self.cancelled


class VectorStore(Protocol):
    """Durable source of truth for embeddings."""

    def upsert(
        self,
        id: str,
        content: str,
        vector: Sequence[float],
        source: RecordSource | None = None,
    ) -> EmbeddingRecord:
        """Insert or overwrite a record."""

    def upsert_batch(
        self,
        records: Iterable[UpsertRequest],
        *,
        cancel: Any | None = None,
    ) -> BatchUpsertResult:
        """Apply each upsert independently and report per-item results."""

    def get(self, id: str) -> EmbeddingRecord | None:
        """Fetch one record by id."""

    def delete(self, id: str) -> bool:
        """Delete a record; return True when something was removed."""

    def delete_many(self, ids: Iterable[str]) -> int:
        """Delete several records; return the number removed."""

    def clear(self) -> int:
        """Delete all records; return the number removed."""

    def get_all(self) -> Iterable[EmbeddingRecord]:
        """Return a restartable lazy sequence of every record."""

    def count(self) -> int:
        """Number of stored records."""

    def dimension(self) -> int | None:
        """The dimension every stored vector must share, if established."""


class RecordSnapshot:
    """Restartable lazy view over the records of a store.

    Each iteration runs a fresh query, so the view always reflects the store
    at the time iteration starts.
    """

    def __init__(self, iterate: Any) -> None:
        self._iterate = iterate

    def __iter__(self) -> Iterator[EmbeddingRecord]:
        return self._iterate()
