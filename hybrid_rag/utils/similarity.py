"""
Vector Similarity

Client-side cosine similarity. Storage-side ranking uses DuckDB's
list_cosine_similarity; this is used where vectors are already in memory
and as the reference for the zero-norm convention.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity between two vectors.

    A zero-norm operand yields 0.0 rather than NaN.

    Raises:
        ValueError: If the vectors have different lengths
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"dimension mismatch: {va.shape[0]} != {vb.shape[0]}")

    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def vector_norm(v: Sequence[float]) -> float:
    return float(np.linalg.norm(np.asarray(v, dtype=np.float64)))
