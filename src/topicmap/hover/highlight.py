"""Spatial-semantic hover highlighting.

Two stages:
1. Screen-space prefilter: nodes within a screen radius of the cursor
2. Expansion of that small set through graph neighbors and embedding similarity

The cost per pointer move is proportional to the local neighborhood, not the
whole graph (apart from the radius scan).
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

import numpy as np

from topicmap.config import settings
from topicmap.graph import build_adjacency_map, build_embedding_map
from topicmap.hover.spatial import find_nodes_in_radius, nearest_node, screen_to_world_distance
from topicmap.models import Camera, Edge, Node, Point

logger = logging.getLogger(__name__)


@dataclass
class HoverResult:
    """
    Highlight set for one pointer position.

    ``highlighted_ids`` is None when the cursor is over empty space, meaning
    dim every node uniformly. An empty set means no highlight: show all nodes
    at full opacity.
    """

    highlighted_ids: set[str] | None
    spatial_ids: set[str] = field(default_factory=set)

    @property
    def is_empty_space(self) -> bool:
        return self.highlighted_ids is None


def semantic_pairs(
    node_ids: Sequence[str],
    embeddings: Mapping[str, np.ndarray],
    threshold: float,
) -> set[str]:
    """Ids that have cosine similarity above ``threshold`` with another id of the set."""
    ids = [nid for nid in node_ids if nid in embeddings]
    if len(ids) < 2:
        return set()

    matrix = np.stack([np.asarray(embeddings[nid], dtype=np.float64) for nid in ids])
    norms = np.linalg.norm(matrix, axis=1)
    norms[norms == 0] = np.inf
    matrix = matrix / norms[:, None]

    sims = matrix @ matrix.T
    np.fill_diagonal(sims, -np.inf)
    matched = (sims > threshold).any(axis=1)
    return {nid for nid, hit in zip(ids, matched) if hit}


def compute_highlight(
    nodes: Sequence[Node],
    cursor: Point,
    screen_radius: float,
    camera: Camera,
    similarity_threshold: float,
    adjacency: Mapping[str, set[str]],
    embeddings: Mapping[str, np.ndarray],
    node_index: Mapping[str, Node] | None = None,
) -> HoverResult:
    """
    Compute the nodes to highlight for a cursor position.

    The result holds the spatially nearest keyword, every graph neighbor of a
    node under the cursor, and every node under the cursor that is
    semantically similar to another node under the cursor. Anchors are never
    highlighted.

    Args:
        nodes: Current nodes with positions
        cursor: Cursor position in screen coordinates
        screen_radius: Query radius in screen pixels
        camera: Current zoom/pan transform
        similarity_threshold: Cosine similarity needed for a semantic match
        adjacency: Node id -> neighbor ids
        embeddings: Node id -> embedding (ideally unit length)
        node_index: Node id -> node, built from ``nodes`` when omitted

    Returns:
        HoverResult; ``highlighted_ids`` is None over empty space
    """
    center = camera.screen_to_world(cursor)
    radius = screen_to_world_distance(screen_radius, camera)

    spatial = find_nodes_in_radius(nodes, center, radius)
    if not spatial:
        return HoverResult(highlighted_ids=None, spatial_ids=set())

    spatial_ids = {n.id for n in spatial}
    highlighted: set[str] = set()

    nearest = nearest_node([n for n in spatial if n.is_keyword], center)
    if nearest is not None:
        highlighted.add(nearest.id)

    for node in spatial:
        highlighted.update(adjacency.get(node.id, ()))

    highlighted |= semantic_pairs([n.id for n in spatial], embeddings, similarity_threshold)

    if node_index is None:
        node_index = {n.id: n for n in nodes}
    keyword_ids = {nid for nid in highlighted if nid in node_index and node_index[nid].is_keyword}
    return HoverResult(highlighted_ids=keyword_ids, spatial_ids=spatial_ids)


class HoverFilter:
    """
    Pointer-event entry points over per-graph adjacency and embedding indexes.

    The indexes are rebuilt only when the graph changes; pointer moves only
    read node positions.
    """

    def __init__(
        self,
        similarity_threshold: float | None = None,
        screen_radius_fraction: float | None = None,
    ) -> None:
        self.similarity_threshold = (
            similarity_threshold
            if similarity_threshold is not None
            else settings.hover_similarity_threshold
        )
        self.screen_radius_fraction = (
            screen_radius_fraction or settings.hover_screen_radius_fraction
        )
        self.adjacency: dict[str, set[str]] = {}
        self.embeddings: dict[str, np.ndarray] = {}
        self.node_index: dict[str, Node] = {}
        self.current: HoverResult | None = None

    def set_graph(self, nodes: Sequence[Node], edges: Sequence[Edge]) -> None:
        """Rebuild the adjacency, embedding and node indexes."""
        self.adjacency = build_adjacency_map(edges)
        self.embeddings = build_embedding_map(nodes)
        self.node_index = {n.id: n for n in nodes}
        self.current = None
        logger.debug(
            f"Hover indexes: {len(self.adjacency)} connected nodes, "
            f"{len(self.embeddings)} embeddings"
        )

    def screen_radius(self, width: float, height: float) -> float:
        """Query radius as a fraction of the smaller viewport side."""
        return self.screen_radius_fraction * min(width, height)

    def on_pointer_move(
        self,
        nodes: Sequence[Node],
        cursor: Point,
        camera: Camera,
        screen_radius: float,
    ) -> HoverResult:
        self.current = compute_highlight(
            nodes,
            cursor,
            screen_radius,
            camera,
            self.similarity_threshold,
            self.adjacency,
            self.embeddings,
            self.node_index,
        )
        return self.current

    def on_pointer_leave(self) -> HoverResult:
        """Pointer left the map: drop the highlight, everything at full opacity."""
        self.current = None
        return HoverResult(highlighted_ids=set(), spatial_ids=set())
