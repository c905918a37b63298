"""Vector similarity helpers shared by the in-process storage backends.

All functions accept plain Python sequences and convert to ``numpy``
float64 arrays internally.  Scores returned here are the package-wide
convention: higher means more similar.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from stack_rag.utils.errors import DimensionMismatchError


def _as_pair(a: Sequence[float], b: Sequence[float]) -> tuple[np.ndarray, np.ndarray]:
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatchError(
            message=f"Vectors must have the same dimensions ({va.shape[0]} != {vb.shape[0]})",
            expected=int(va.shape[0]),
            actual=int(vb.shape[0]),
        )
    return va, vb


def raw_cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return the cosine of the angle between *a* and *b*, in [-1, 1].

    A zero-magnitude vector has no direction; its similarity to anything
    is defined as 0.0.
    """
    va, vb = _as_pair(a, b)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity mapped from [-1, 1] onto [0, 1] as ``(cos + 1) / 2``."""
    score = (raw_cosine_similarity(a, b) + 1.0) / 2.0
    return min(1.0, max(0.0, score))


def dot_product(a: Sequence[float], b: Sequence[float]) -> float:
    va, vb = _as_pair(a, b)
    return float(np.dot(va, vb))


def l2_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Euclidean distance between *a* and *b*."""
    va, vb = _as_pair(a, b)
    return float(np.linalg.norm(va - vb))


def l2_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Map L2 distance onto (0, 1] as ``1 / (1 + d)``."""
    return 1.0 / (1.0 + l2_distance(a, b))


def normalize_vector(vector: Sequence[float]) -> list[float]:
    """Scale *vector* to unit length.  Zero vectors are returned unchanged."""
    v = np.asarray(vector, dtype=np.float64)
    norm = float(np.linalg.norm(v))
    if norm == 0.0:
        return v.tolist()
    return (v / norm).tolist()


def cosine_scores(query: Sequence[float], matrix: Sequence[Sequence[float]]) -> np.ndarray:
    """Score every row of *matrix* against *query* on the ``(cos + 1) / 2`` scale.

    Rows and query must share one dimensionality; zero-magnitude rows
    score 0.5 (cosine 0).
    """
    q = np.asarray(query, dtype=np.float64)
    m = np.asarray(matrix, dtype=np.float64).reshape(-1, q.shape[0])
    norms = np.linalg.norm(m, axis=1) * np.linalg.norm(q)
    dots = m @ q
    cos = np.divide(dots, norms, out=np.zeros_like(dots), where=norms != 0)
    return np.clip((cos + 1.0) / 2.0, 0.0, 1.0)


def l2_distances(query: Sequence[float], matrix: Sequence[Sequence[float]]) -> np.ndarray:
    """Euclidean distance from *query* to every row of *matrix*."""
    q = np.asarray(query, dtype=np.float64)
    m = np.asarray(matrix, dtype=np.float64).reshape(-1, q.shape[0])
    return np.linalg.norm(m - q, axis=1)
