"""
Binary encoding for stored vectors.

Vectors are persisted as little-endian float32 sequences, four bytes per
component, so decoding reproduces the stored float32 values exactly.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from ..errors import StoreError

VECTOR_DTYPE = np.dtype("<f4")


def to_float32(vector: Sequence[float] | np.ndarray) -> np.ndarray:
    """Cast to the stored precision; values beyond float32 range become inf."""
    with np.errstate(over="ignore"):
        return np.asarray(vector, dtype=np.float64).astype(VECTOR_DTYPE)


def encode_vector(vector: Sequence[float] | np.ndarray) -> bytes:
    return to_float32(vector).tobytes()


def decode_vector(blob: bytes, *, dimension: int | None = None) -> list[float]:
    if len(blob) % VECTOR_DTYPE.itemsize:
        raise StoreError(f"Vector blob of {len(blob)} bytes is not a float32 sequence.")
    values = np.frombuffer(blob, dtype=VECTOR_DTYPE)
    if dimension is not None and values.size != dimension:
        raise StoreError(
            f"Vector blob holds {values.size} values but the record declares {dimension}."
        )
    return values.astype(np.float64).tolist()
