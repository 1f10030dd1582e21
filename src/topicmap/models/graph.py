"""Similarity graph model - keyword nodes and weighted similarity edges."""

from dataclasses import dataclass, field
from enum import Enum


class NodeKind(str, Enum):
    """Kind of node on the map."""

    KEYWORD = "keyword"  # Regular keyword, clustered and highlightable
    ANCHOR = "anchor"  # Pinned anchor (e.g. a project), positioned externally


@dataclass
class Node:
    """
    A keyword on the map plus its simulation state.

    Positions and velocities are mutated in place by the layout simulation.
    Cluster fields are rendering hints written by the community detector.
    """

    id: str
    label: str

    # Optional embedding; nodes without one are laid out but never matched semantically
    embedding: list[float] | None = None
    kind: NodeKind = NodeKind.KEYWORD

    # Simulation state
    x: float = 0.0
    y: float = 0.0
    vx: float = 0.0
    vy: float = 0.0
    fixed: bool = False
    fx: float | None = None
    fy: float | None = None

    # Rendering hints from the last detection run
    cluster_id: int | None = None
    is_hub: bool = False

    @property
    def is_keyword(self) -> bool:
        return self.kind == NodeKind.KEYWORD

    def pin(self, x: float, y: float) -> None:
        """Pin the node at a position (drag or external anchor placement)."""
        self.fixed = True
        self.fx = x
        self.fy = y
        self.x = x
        self.y = y
        self.vx = 0.0
        self.vy = 0.0

    def unpin(self) -> None:
        """Release a drag pin. Anchors stay fixed."""
        if self.kind == NodeKind.ANCHOR:
            return
        self.fixed = False
        self.fx = None
        self.fy = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "label": self.label,
            "embedding": self.embedding,
            "kind": self.kind.value,
            "x": self.x,
            "y": self.y,
            "vx": self.vx,
            "vy": self.vy,
            "fixed": self.fixed,
            "cluster_id": self.cluster_id,
            "is_hub": self.is_hub,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Node":
        """Create from dictionary (graph source record)."""
        node = cls(
            id=data["id"],
            label=data.get("label") or data["id"],
            embedding=data.get("embedding"),
            kind=NodeKind(data.get("kind", NodeKind.KEYWORD.value)),
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
        )
        if data.get("fixed"):
            node.pin(node.x, node.y)
        return node


@dataclass(frozen=True)
class Edge:
    """
    Undirected similarity edge between two keywords.

    Example: "neural network" -- "deep learning" (similarity: 0.82)
    """

    source: str
    target: str
    similarity: float  # 0.0 - 1.0
    is_mutual_neighbor: bool = False  # k-NN edge, boosted in the link force

    @property
    def key(self) -> tuple[str, str]:
        """Unordered pair key used for deduplication."""
        if self.source <= self.target:
            return (self.source, self.target)
        return (self.target, self.source)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "source": self.source,
            "target": self.target,
            "similarity": self.similarity,
            "is_mutual_neighbor": self.is_mutual_neighbor,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Edge":
        """Create from dictionary (graph source record)."""
        return cls(
            source=data["source"],
            target=data["target"],
            similarity=float(data.get("similarity", 0.5)),
            is_mutual_neighbor=bool(
                data.get("is_mutual_neighbor", data.get("isKNN", False))
            ),
        )


@dataclass
class GraphData:
    """A validated graph build: nodes keyed by id plus clean edges."""

    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    dropped_edges: int = 0

    def node_ids(self) -> set[str]:
        return {n.id for n in self.nodes}

    def by_id(self) -> dict[str, Node]:
        return {n.id: n for n in self.nodes}
