"""Embedding vector utilities."""

from topicmap.embeddings.similarity import (
    compute_centroid,
    cosine_similarity,
    cosine_similarity_batch,
    normalize,
)

__all__ = [
    "cosine_similarity",
    "cosine_similarity_batch",
    "normalize",
    "compute_centroid",
]
