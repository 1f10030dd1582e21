"""Per-frame data handed to the rendering collaborator.

The engine owns positions, cluster assignments, labels and highlight sets;
drawing them is somebody else's job. ``FrameSnapshot`` is a read-only copy
taken once per frame.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from topicmap.models import Camera, Cluster, Node


@dataclass(frozen=True)
class NodeView:
    id: str
    label: str
    x: float
    y: float
    vx: float
    vy: float
    cluster_id: int | None
    is_hub: bool
    is_keyword: bool


@dataclass(frozen=True)
class ClusterLabelView:
    """
    A cluster label to draw.

    ``visibility_ratio`` is visible members over total members, for fading a
    label as filtering removes its members from view.
    """

    cluster_id: int
    label: str
    x: float
    y: float
    visibility_ratio: float
    is_peripheral: bool = False


@dataclass
class FrameSnapshot:
    nodes: list[NodeView] = field(default_factory=list)
    cluster_labels: list[ClusterLabelView] = field(default_factory=list)
    highlighted_ids: set[str] | None = None
    dim_all: bool = False
    phase: str = "hot"
    camera: Camera = field(default_factory=Camera)
    label_fade: float = 0.0


def smoothstep(t: float) -> float:
    t = min(1.0, max(0.0, t))
    return t * t * (3.0 - 2.0 * t)


def compute_label_fade(zoom: float, start: float = 1.0, full: float = 2.5) -> float:
    """
    Cross-fade between cluster labels and keyword labels.

    Returns 0 when zoomed out (cluster labels only) up to 1 when zoomed in
    past ``full`` (keyword labels only), with smoothstep easing in between.
    """
    low, high = min(start, full), max(start, full)
    span = high - low
    if span <= 0:
        return 1.0 if zoom >= high else 0.0
    return smoothstep((zoom - low) / span)


def compute_cluster_labels(
    nodes: Sequence[Node],
    clusters: Mapping[int, Cluster],
    labels: Mapping[int, str],
    visible_ids: Iterable[str] | None = None,
) -> list[ClusterLabelView]:
    """
    Place one label per cluster at the mean position of its visible members.

    Clusters with no members among ``nodes`` are skipped. Clusters whose
    members are all filtered out are placed over all their members with a
    visibility ratio of 0.

    Args:
        nodes: Current nodes with positions
        clusters: Clusters of the current detection run
        labels: Displayed label per cluster id (falls back to the hub label)
        visible_ids: Ids currently shown; None means every node is visible
    """
    by_id = {n.id: n for n in nodes}
    visible = set(visible_ids) if visible_ids is not None else None

    views: list[ClusterLabelView] = []
    for cid, cluster in sorted(clusters.items()):
        present = [by_id[m] for m in sorted(cluster.members) if m in by_id]
        if not present:
            continue
        shown = present if visible is None else [n for n in present if n.id in visible]
        anchor = shown or present

        views.append(
            ClusterLabelView(
                cluster_id=cid,
                label=labels.get(cid) or cluster.hub_label,
                x=sum(n.x for n in anchor) / len(anchor),
                y=sum(n.y for n in anchor) / len(anchor),
                visibility_ratio=len(shown) / cluster.size,
                is_peripheral=cluster.is_peripheral,
            )
        )
    return views


def node_views(nodes: Iterable[Node]) -> list[NodeView]:
    return [
        NodeView(
            id=n.id,
            label=n.label,
            x=n.x,
            y=n.y,
            vx=n.vx,
            vy=n.vy,
            cluster_id=n.cluster_id,
            is_hub=n.is_hub,
            is_keyword=n.is_keyword,
        )
        for n in nodes
    ]
