"""Shared helpers — ids, timestamps, vector (de)serialization."""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Sequence

# Little-endian float64 so Python floats round-trip bit-identically.
_VECTOR_DTYPE = np.dtype("<f8")

DISTANCE_KEY = "_distance"
"""Key under which nearest-neighbour rows report their distance."""


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_id(prefix: str) -> str:
    """Return a new prefixed identifier, e.g. ``memo_3f2a...``."""
    return f"{prefix}_{uuid.uuid4().hex}"


def pack_vector(vector: Sequence[float]) -> bytes:
    """Serialize *vector* to the blob format stored in vector columns."""
    return np.asarray(vector, dtype=_VECTOR_DTYPE).tobytes()


def unpack_vector(blob: bytes | None) -> list[float] | None:
    """Inverse of :func:`pack_vector`.  ``None`` stays ``None``."""
    if blob is None:
        return None
    return np.frombuffer(blob, dtype=_VECTOR_DTYPE).tolist()


def cosine_distance(a: bytes | None, b: bytes | None) -> float | None:
    """Cosine distance between two packed vectors, in ``[0, 2]``.

    Registered as the ``vector_distance`` SQL function on every store
    connection.  Returns NULL for NULL inputs or mismatched dimensions, and
    ``1.0`` when either vector has zero norm.
    """
    if a is None or b is None:
        return None
    va = np.frombuffer(a, dtype=_VECTOR_DTYPE)
    vb = np.frombuffer(b, dtype=_VECTOR_DTYPE)
    if va.shape != vb.shape:
        return None
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 1.0
    similarity = float(np.dot(va, vb)) / denom
    # Clamp floating-point drift so distances stay inside [0, 2].
    return min(2.0, max(0.0, 1.0 - similarity))
