"""Graph construction, validation and per-build indexes.

The graph source is eventually consistent, so malformed input is dropped
with a count-level warning instead of failing the build.
"""

import logging
import math
import random
from collections import Counter, defaultdict
from collections.abc import Iterable, Mapping

import numpy as np

from topicmap.models import Edge, GraphData, Node

logger = logging.getLogger(__name__)


def build_graph(nodes: Iterable[Node], edges: Iterable[Edge]) -> GraphData:
    """
    Validate raw nodes and edges into a clean undirected graph.

    Drops:
    - nodes with an id already seen (first one wins)
    - self-loops
    - edges referencing unknown node ids
    - duplicate unordered pairs (highest similarity wins, k-NN flags are OR-ed)

    Args:
        nodes: Nodes from the graph source
        edges: Similarity edges from the graph source

    Returns:
        GraphData with the surviving nodes and edges
    """
    kept_nodes: list[Node] = []
    seen_ids: set[str] = set()
    duplicate_nodes = 0
    for node in nodes:
        if node.id in seen_ids:
            duplicate_nodes += 1
            continue
        seen_ids.add(node.id)
        kept_nodes.append(node)

    by_pair: dict[tuple[str, str], Edge] = {}
    self_loops = 0
    dangling = 0
    duplicates = 0

    for edge in edges:
        if edge.source == edge.target:
            self_loops += 1
            continue
        if edge.source not in seen_ids or edge.target not in seen_ids:
            dangling += 1
            continue

        similarity = min(1.0, max(0.0, edge.similarity))
        if similarity != edge.similarity:
            edge = Edge(edge.source, edge.target, similarity, edge.is_mutual_neighbor)

        existing = by_pair.get(edge.key)
        if existing is None:
            by_pair[edge.key] = edge
            continue

        duplicates += 1
        best = edge if edge.similarity > existing.similarity else existing
        by_pair[edge.key] = Edge(
            source=best.source,
            target=best.target,
            similarity=best.similarity,
            is_mutual_neighbor=existing.is_mutual_neighbor or edge.is_mutual_neighbor,
        )

    dropped = self_loops + dangling + duplicates
    if duplicate_nodes:
        logger.warning(f"Dropped {duplicate_nodes} nodes with duplicate ids")
    if dangling:
        logger.warning(f"Dropped {dangling} edges referencing unknown node ids")
    if self_loops or duplicates:
        logger.debug(f"Dropped {self_loops} self-loops and {duplicates} duplicate edges")

    graph = GraphData(nodes=kept_nodes, edges=list(by_pair.values()), dropped_edges=dropped)
    logger.info(f"Built graph: {len(graph.nodes)} nodes, {len(graph.edges)} edges")
    return graph


def convert_pairs_to_graph(pairs: Iterable[Mapping]) -> GraphData:
    """
    Convert keyword similarity rows into a graph.

    Each row holds ``keyword_text``, ``similar_keyword_text`` and
    ``similarity``. Node ids are ``kw:<keyword>``; pairs are treated as
    unordered and the highest similarity wins.
    """
    keywords: dict[str, None] = {}
    raw_edges: list[Edge] = []
    for row in pairs:
        kw1 = row["keyword_text"]
        kw2 = row["similar_keyword_text"]
        keywords.setdefault(kw1)
        keywords.setdefault(kw2)
        raw_edges.append(
            Edge(
                source=f"kw:{kw1}",
                target=f"kw:{kw2}",
                similarity=float(row["similarity"]),
                is_mutual_neighbor=bool(row.get("is_mutual_neighbor", False)),
            )
        )

    nodes = [Node(id=f"kw:{kw}", label=kw) for kw in keywords]
    return build_graph(nodes, raw_edges)


def build_adjacency_map(edges: Iterable[Edge]) -> dict[str, set[str]]:
    """Build an undirected adjacency lookup from edges."""
    adjacency: dict[str, set[str]] = defaultdict(set)
    for edge in edges:
        adjacency[edge.source].add(edge.target)
        adjacency[edge.target].add(edge.source)
    return dict(adjacency)


def build_embedding_map(nodes: Iterable[Node]) -> dict[str, np.ndarray]:
    """
    Build a lookup of unit-length embeddings by node id.

    Vectors are normalized once per build so hover matching is a dot product.
    Nodes without an embedding (or with a zero vector) are left out, as are
    embeddings whose length differs from the most common one.
    """
    embeddings: dict[str, np.ndarray] = {}
    for node in nodes:
        if not node.embedding:
            continue
        vec = np.asarray(node.embedding, dtype=np.float64).ravel()
        norm = np.linalg.norm(vec)
        if norm == 0:
            continue
        embeddings[node.id] = vec / norm

    if not embeddings:
        return embeddings
    dims = Counter(len(vec) for vec in embeddings.values())
    dim = dims.most_common(1)[0][0]
    mismatched = [nid for nid, vec in embeddings.items() if len(vec) != dim]
    if mismatched:
        logger.warning(f"Dropped {len(mismatched)} embeddings that are not {dim}-dimensional")
        for nid in mismatched:
            del embeddings[nid]
    return embeddings


def compute_degrees(edges: Iterable[Edge]) -> dict[str, int]:
    """Count edges per node id (full graph, unweighted)."""
    degrees: dict[str, int] = defaultdict(int)
    for edge in edges:
        degrees[edge.source] += 1
        degrees[edge.target] += 1
    return dict(degrees)


class PositionCache:
    """
    Carries node positions across graph rebuilds, keyed by node id.

    Created once per session and passed to whoever rebuilds the graph. A
    position is only reused while its id survives; ids missing from a new
    build are forgotten.
    """

    def __init__(self, spread: float = 1000.0, seed: int | None = None) -> None:
        self.spread = spread
        self._positions: dict[str, tuple[float, float]] = {}
        self._rng = random.Random(seed)

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._positions

    def get(self, node_id: str) -> tuple[float, float] | None:
        return self._positions.get(node_id)

    def remember(self, nodes: Iterable[Node]) -> None:
        """Record the current position of every node."""
        for node in nodes:
            if math.isfinite(node.x) and math.isfinite(node.y):
                self._positions[node.id] = (node.x, node.y)

    def restore(
        self,
        nodes: list[Node],
        adjacency: Mapping[str, set[str]] | None = None,
    ) -> int:
        """
        Place nodes of a fresh build.

        Surviving ids get their cached position. New nodes start next to the
        mean of their already-placed neighbors, or at a random point in the
        initial spread. Ids that did not survive are dropped from the cache.

        Returns:
            Number of nodes that reused a cached position
        """
        current_ids = {n.id for n in nodes}
        for stale_id in [nid for nid in self._positions if nid not in current_ids]:
            del self._positions[stale_id]

        reused = 0
        pending: list[Node] = []
        for node in nodes:
            if node.fixed:
                # Pinned nodes are placed externally
                node.pin(
                    node.fx if node.fx is not None else node.x,
                    node.fy if node.fy is not None else node.y,
                )
                continue
            cached = self._positions.get(node.id)
            if cached is not None:
                node.x, node.y = cached
                node.vx = node.vy = 0.0
                reused += 1
            else:
                pending.append(node)

        half = self.spread / 2
        for node in pending:
            anchor = self._neighbor_mean(node.id, adjacency) if adjacency else None
            if anchor is not None:
                node.x = anchor[0] + self._rng.uniform(-10.0, 10.0)
                node.y = anchor[1] + self._rng.uniform(-10.0, 10.0)
            else:
                node.x = self._rng.uniform(-half, half)
                node.y = self._rng.uniform(-half, half)
            node.vx = node.vy = 0.0

        logger.debug(f"Restored {reused}/{len(nodes)} node positions from cache")
        return reused

    def _neighbor_mean(
        self,
        node_id: str,
        adjacency: Mapping[str, set[str]],
    ) -> tuple[float, float] | None:
        placed = [self._positions[n] for n in adjacency.get(node_id, ()) if n in self._positions]
        if not placed:
            return None
        return (
            sum(p[0] for p in placed) / len(placed),
            sum(p[1] for p in placed) / len(placed),
        )

    def clear(self) -> None:
        self._positions.clear()
