from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Sequence

import pytest

from design_search.config import MockProviderConfig, SearchConfig
from design_search.embeddings import BaseEmbeddingProvider, MockEmbeddingProvider
from design_search.errors import ProviderError
from design_search.storage import DuckDBVectorStore, EmbeddingRecord, RecordSource


class FailingProvider(BaseEmbeddingProvider):
    """Fails every call, or only for texts containing one of ``poison``."""

    name = "failing"

    def __init__(self, dimension: int = 384, *, poison: Sequence[str] = ()) -> None:
        super().__init__(dimension=dimension)
        self.poison = tuple(poison)
        self.mock = MockEmbeddingProvider(dimension)
        self.calls = 0

    def _embed_one(self, text: str) -> list[float]:
        self.calls += 1
        if not self.poison or any(word in text for word in self.poison):
            raise ProviderError(f"provider unreachable for {text!r}")
        return self.mock.embed(text)


@pytest.fixture
def failing_provider() -> Callable[..., FailingProvider]:
    return FailingProvider


@pytest.fixture
def mock_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider(384)


@pytest.fixture
def store(tmp_path: Path):
    backend = DuckDBVectorStore(str(tmp_path / "index.duckdb"), dimension=384)
    yield backend
    backend.close()


@pytest.fixture
def config(tmp_path: Path) -> SearchConfig:
    return SearchConfig(
        provider=MockProviderConfig(dimensions=384),
        db_path=tmp_path / "index.duckdb",
        index_cache_path=tmp_path / "cache" / "hnsw_index.json",
    )


@pytest.fixture
def make_record() -> Callable[..., EmbeddingRecord]:
    def _make(
        record_id: str,
        vector: Sequence[float],
        content: str = "",
        **source_fields,
    ) -> EmbeddingRecord:
        now = datetime.now(timezone.utc)
        return EmbeddingRecord(
            id=record_id,
            content=content or record_id,
            vector=[float(v) for v in vector],
            dimension=len(vector),
            source=RecordSource(**source_fields),
            created_at=now,
            updated_at=now,
        )

    return _make
