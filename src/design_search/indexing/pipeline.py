"""
Sync orchestration: catalog items -> embeddings -> vector store -> ANN index.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from .catalog import CatalogItem, build_content, build_searchable_text
from ..cancellation import CancellationToken
from ..embeddings import EmbeddingProvider
from ..errors import OperationCancelledError
from ..index import IndexManager
from ..storage import UpsertRequest, VectorStore

logger = logging.getLogger(__name__)

EMBEDDING_FAILURE = "EMBEDDING_FAILED"


@dataclass(frozen=True)
class SyncFailure:
    """An item skipped during sync, with the reason."""

    id: str
    kind: str
    message: str


@dataclass(frozen=True)
class SyncResult:
    """Summary output for a sync run."""

    upserted: int
    failures: list[SyncFailure] = field(default_factory=list)
    cancelled: bool = False
    index_nodes: int | None = None

    @property
    def failed(self) -> int:
        return len(self.failures)


class SyncPipeline:
    """Push catalog content into the vector store and keep the index current."""

    def __init__(
        self,
        store: VectorStore,
        embedding_provider: EmbeddingProvider,
        index_manager: IndexManager,
        *,
        batch_size: int = 50,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self.store = store
        self.embedding_provider = embedding_provider
        self.index_manager = index_manager
        self._batch_size = batch_size

    def sync(
        self,
        items: Iterable[CatalogItem],
        *,
        rebuild: bool = True,
        cancel: CancellationToken | None = None,
    ) -> SyncResult:
        pending = list(items)
        upserted = 0
        failures: list[SyncFailure] = []
        cancelled = False

        for start in range(0, len(pending), self._batch_size):
            if cancel is not None and cancel.cancelled:
                cancelled = True
                break
            batch = pending[start : start + self._batch_size]
            try:
                embeddings = self.embedding_provider.embed_batch(
                    [build_searchable_text(item) for item in batch], cancel=cancel
                )
            except OperationCancelledError:
                cancelled = True
                break

            requests: list[UpsertRequest] = []
            for item, embedding in zip(batch, embeddings):
                if not embedding.ok:
                    failures.append(
                        SyncFailure(item.id, EMBEDDING_FAILURE, str(embedding.error))
                    )
                    continue
                requests.append(
                    UpsertRequest(
                        id=item.id,
                        content=build_content(item),
                        vector=embedding.vector or [],
                        source=item.source(),
                    )
                )

            outcome = self.store.upsert_batch(requests, cancel=cancel)
            upserted += len(outcome.succeeded)
            failures.extend(
                SyncFailure(failure.id, failure.error_code, failure.message)
                for failure in outcome.failed
            )
            if outcome.cancelled:
                cancelled = True
                break

        if upserted:
            self.index_manager.invalidate()
        if failures:
            logger.warning("Sync skipped %d item(s)", len(failures))

        index_nodes: int | None = None
        if rebuild and upserted and not cancelled:
            try:
                index_nodes = self.index_manager.rebuild(cancel=cancel).nodes
            except OperationCancelledError:
                logger.info("Index rebuild cancelled; the next search will rebuild it")
                cancelled = True

        logger.info(
            "Synced %d of %d item(s)%s",
            upserted,
            len(pending),
            " (cancelled)" if cancelled else "",
        )
        return SyncResult(
            upserted=upserted,
            failures=failures,
            cancelled=cancelled,
            index_nodes=index_nodes,
        )

    def remove(self, owner_ids: Iterable[str]) -> int:
        """Delete records for removed owners; the index rebuilds on next use."""
        removed = self.index_manager.delete(owner_ids)
        logger.info("Removed %d record(s)", removed)
        return removed
