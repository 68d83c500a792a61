"""
DuckDB storage backend for embedding persistence.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator, Sequence

import duckdb
import numpy as np

from ..cancellation import CancellationToken
from ..errors import DimensionMismatchError, StoreError
from .base import (
    BatchUpsertResult,
    EmbeddingRecord,
    RecordSnapshot,
    RecordSource,
    UpsertFailure,
    UpsertRequest,
)
from .codec import decode_vector, encode_vector, to_float32

logger = logging.getLogger(__name__)

_FETCH_SIZE = 256
_COLUMNS = (
    "id, owner_id, owner_label, name, category, memo, metadata_json, "
    "asset_name, project_name, file_path, content, vector, dimension, "
    "created_at, updated_at"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except duckdb.Error as exc:
        raise StoreError(f"Failed to {action}: {exc}") from exc


class DuckDBVectorStore:
    """DuckDB-backed persistence for embedding records.

    This is the only authoritative copy of the vectors; the ANN cache is
    rebuilt from it.
    """

    def __init__(
        self,
        db_path: str,
        *,
        dimension: int | None = None,
        read_only: bool = False,
        initialize: bool = True,
    ) -> None:
        if db_path == ":memory:":
            self.db_path = db_path
        else:
            self.db_path = str(Path(db_path).expanduser().resolve())
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.read_only = read_only
        self.configured_dimension = dimension
        with _store_errors(f"open {self.db_path}"):
            self._conn = duckdb.connect(self.db_path, read_only=read_only)
        if initialize and not read_only:
            self.initialize()

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        self._conn.close()

    def __enter__(self) -> "DuckDBVectorStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def initialize(self) -> None:
        with _store_errors("initialize schema"):
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS embeddings (
                    id VARCHAR PRIMARY KEY,
                    owner_id VARCHAR,
                    owner_label VARCHAR,
                    name VARCHAR,
                    category VARCHAR,
                    memo VARCHAR,
                    metadata_json VARCHAR NOT NULL DEFAULT '{}',
                    asset_name VARCHAR,
                    project_name VARCHAR,
                    file_path VARCHAR,
                    content VARCHAR NOT NULL,
                    vector BLOB NOT NULL,
                    dimension INTEGER NOT NULL,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                );
                """
            )

    def dimension(self) -> int | None:
        with _store_errors("read stored dimension"):
            row = self._conn.execute(
                "SELECT dimension FROM embeddings ORDER BY created_at, id LIMIT 1"
            ).fetchone()
        if row is not None:
            return int(row[0])
        return self.configured_dimension

    def upsert(
        self,
        id: str,
        content: str,
        vector: Sequence[float],
        source: RecordSource | None = None,
    ) -> EmbeddingRecord:
        if not id:
            raise ValueError("Record id must be a non-empty string.")
        values = to_float32(vector)
        if not values.size:
            raise ValueError(f"Vector for {id!r} is empty.")
        if not np.isfinite(values).all():
            raise ValueError(f"Vector for {id!r} contains non-finite float32 values.")
        expected = self.dimension()
        if expected is not None and len(values) != expected:
            raise DimensionMismatchError(expected, len(values), record_id=id)

        src = source or RecordSource()
        now = _utcnow()
        with _store_errors(f"upsert {id!r}"):
            self._conn.execute(
                f"""
                INSERT INTO embeddings ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    owner_id = excluded.owner_id,
                    owner_label = excluded.owner_label,
                    name = excluded.name,
                    category = excluded.category,
                    memo = excluded.memo,
                    metadata_json = excluded.metadata_json,
                    asset_name = excluded.asset_name,
                    project_name = excluded.project_name,
                    file_path = excluded.file_path,
                    content = excluded.content,
                    vector = excluded.vector,
                    dimension = excluded.dimension,
                    updated_at = excluded.updated_at
                """,
                [
                    id,
                    src.owner_id,
                    src.owner_label,
                    src.name,
                    src.category,
                    src.memo,
                    json.dumps(src.metadata, sort_keys=True, default=str),
                    src.asset_name,
                    src.project_name,
                    src.file_path,
                    content,
                    encode_vector(values),
                    len(values),
                    now,
                    now,
                ],
            )
        record = self.get(id)
        if record is None:
            raise StoreError(f"Record {id!r} vanished after upsert.")
        return record

    def upsert_batch(
        self,
        records: Iterable[UpsertRequest],
        *,
        cancel: CancellationToken | None = None,
    ) -> BatchUpsertResult:
        result = BatchUpsertResult()
        for request in records:
            if cancel is not None and cancel.cancelled:
                result.cancelled = True
                break
            try:
                self.upsert(request.id, request.content, request.vector, request.source)
            except DimensionMismatchError as exc:
                result.failed.append(UpsertFailure(request.id, exc.error_code, str(exc)))
            except ValueError as exc:
                result.failed.append(UpsertFailure(request.id, "INVALID_RECORD", str(exc)))
            else:
                result.succeeded.append(request.id)
        if result.failed:
            logger.warning(
                "Batch upsert rejected %d of %d records",
                len(result.failed),
                len(result.failed) + len(result.succeeded),
            )
        return result

    def get(self, id: str) -> EmbeddingRecord | None:
        with _store_errors(f"read {id!r}"):
            row = self._conn.execute(
                f"SELECT {_COLUMNS} FROM embeddings WHERE id = ? LIMIT 1",
                [id],
            ).fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def delete(self, id: str) -> bool:
        return self.delete_many([id]) > 0

    def delete_many(self, ids: Iterable[str]) -> int:
        unique_ids = sorted(set(ids))
        if not unique_ids:
            return 0
        placeholders = ", ".join(["?"] * len(unique_ids))
        with _store_errors("delete records"):
            row = self._conn.execute(
                f"SELECT COUNT(*) FROM embeddings WHERE id IN ({placeholders})",
                unique_ids,
            ).fetchone()
            self._conn.execute(
                f"DELETE FROM embeddings WHERE id IN ({placeholders})",
                unique_ids,
            )
        return int(row[0]) if row else 0

    def clear(self) -> int:
        removed = self.count()
        with _store_errors("clear records"):
            self._conn.execute("DELETE FROM embeddings")
        return removed

    def count(self) -> int:
        with _store_errors("count records"):
            row = self._conn.execute("SELECT COUNT(*) FROM embeddings").fetchone()
        return int(row[0]) if row else 0

    def get_all(self) -> RecordSnapshot:
        return RecordSnapshot(self._iter_records)

    def _iter_records(self) -> Iterator[EmbeddingRecord]:
        with _store_errors("open record cursor"):
            cursor = self._conn.cursor()
        try:
            with _store_errors("stream records"):
                cursor.execute(
                    f"SELECT {_COLUMNS} FROM embeddings ORDER BY created_at, id"
                )
            while True:
                with _store_errors("stream records"):
                    rows = cursor.fetchmany(_FETCH_SIZE)
                if not rows:
                    break
                for row in rows:
                    yield self._row_to_record(row)
        finally:
            cursor.close()

    @staticmethod
    def _row_to_record(row: tuple[Any, ...]) -> EmbeddingRecord:
        dimension = int(row[12])
        return EmbeddingRecord(
            id=str(row[0]),
            content=str(row[10]),
            vector=decode_vector(bytes(row[11]), dimension=dimension),
            dimension=dimension,
            source=RecordSource(
                owner_id=row[1],
                owner_label=row[2],
                name=row[3],
                category=row[4],
                memo=row[5],
                metadata=json.loads(str(row[6]) or "{}"),
                asset_name=row[7],
                project_name=row[8],
                file_path=row[9],
            ),
            created_at=_as_utc(row[13]),
            updated_at=_as_utc(row[14]),
        )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
