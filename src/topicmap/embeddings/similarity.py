"""Vector helpers for embedding comparison (numpy)."""

import logging
from collections.abc import Sequence

import numpy as np

logger = logging.getLogger(__name__)


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors.

    Zero-length vectors have similarity 0.0 with everything.
    """
    a = np.asarray(vec1, dtype=np.float64)
    b = np.asarray(vec2, dtype=np.float64)
    if a.shape != b.shape:
        raise ValueError(f"Vector dimensions differ: {a.shape} vs {b.shape}")
    denom = np.linalg.norm(a) * np.linalg.norm(b)
    if denom == 0:
        return 0.0
    return float(np.dot(a, b) / denom)


def cosine_similarity_batch(
    query: Sequence[float],
    vectors: Sequence[Sequence[float]] | np.ndarray,
) -> list[float]:
    """Compute cosine similarity between query and multiple vectors."""
    if len(vectors) == 0:
        return []
    q = np.asarray(query, dtype=np.float64)
    v = np.asarray(vectors, dtype=np.float64)
    q_norm = np.linalg.norm(q)
    if q_norm == 0:
        return [0.0] * len(v)
    v_norms = np.linalg.norm(v, axis=1)
    v_norms[v_norms == 0] = np.inf
    similarities = (v @ q) / (v_norms * q_norm)
    return similarities.tolist()


def normalize(vec: Sequence[float]) -> list[float]:
    """Normalize a vector to unit length. Zero vectors are returned unchanged."""
    v = np.asarray(vec, dtype=np.float64)
    norm = np.linalg.norm(v)
    if norm == 0:
        return v.tolist()
    return (v / norm).tolist()


def compute_centroid(embeddings: Sequence[Sequence[float]]) -> list[float]:
    """
    Compute the normalized mean of a set of embeddings.

    The result is a cluster's semantic fingerprint: comparing centroids by
    cosine similarity tolerates small membership changes.

    Args:
        embeddings: Non-empty list of equal-length vectors

    Returns:
        Unit-length centroid vector
    """
    if len(embeddings) == 0:
        raise ValueError("Cannot compute centroid of empty embedding list")
    matrix = np.asarray(embeddings, dtype=np.float64)
    if matrix.ndim != 2:
        raise ValueError("Embeddings must all have the same dimension")
    return normalize(matrix.mean(axis=0))
