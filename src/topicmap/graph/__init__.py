"""Similarity graph construction and community detection.

Provides:
- Graph validation (self-loops, duplicate pairs, dangling edges)
- Position carry-over across rebuilds
- Adjacency and embedding indexes
- Louvain community detection with hub selection
"""

from topicmap.graph.builder import (
    PositionCache,
    build_adjacency_map,
    build_embedding_map,
    build_graph,
    compute_degrees,
    convert_pairs_to_graph,
)
from topicmap.graph.community import CommunityDetector, accept_precomputed, select_hub

__all__ = [
    # Builder
    "build_graph",
    "convert_pairs_to_graph",
    "build_adjacency_map",
    "build_embedding_map",
    "compute_degrees",
    "PositionCache",
    # Community detection
    "CommunityDetector",
    "accept_precomputed",
    "select_hub",
]
