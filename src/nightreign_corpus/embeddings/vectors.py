"""
Vector Utilities

Binary serialization of embedding vectors (little-endian float32) and cosine
similarity.
"""

from __future__ import annotations

from typing import Sequence, Union

import numpy as np

from ..core.errors import DimensionMismatchError

VectorLike = Union[np.ndarray, Sequence[float]]

_FLOAT32_LE = np.dtype("<f4")


def to_bytes(vector: VectorLike) -> bytes:
    """Serialize a vector as packed little-endian float32."""
    return np.asarray(vector, dtype=np.float32).astype(_FLOAT32_LE).tobytes()


def from_bytes(data: bytes) -> np.ndarray:
    """
    Inverse of ``to_bytes``.

    Raises
    ------
    ValueError
        If the buffer length is not a multiple of 4 bytes.
    """
    if len(data) % _FLOAT32_LE.itemsize:
        raise ValueError(f"Buffer length {len(data)} is not a multiple of 4")
    return np.frombuffer(data, dtype=_FLOAT32_LE).astype(np.float32)


def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
    """
    Cosine similarity of two equal-length vectors.

    Returns 0.0 when either vector has zero norm.

    Raises
    ------
    DimensionMismatchError
        If the vectors differ in length.
    """
    va = np.asarray(a, dtype=np.float64).ravel()
    vb = np.asarray(b, dtype=np.float64).ravel()
    if va.shape[0] != vb.shape[0]:
        raise DimensionMismatchError(va.shape[0], vb.shape[0])

    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)
