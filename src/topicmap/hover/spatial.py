"""Screen/world conversions and radius queries for pointer interaction."""

from collections.abc import Sequence

import numpy as np

from topicmap.models import Camera, Node, Point


def screen_to_world(point: Point, camera: Camera) -> Point:
    """Convert screen coordinates to world coordinates."""
    return camera.screen_to_world(point)


def screen_to_world_distance(distance: float, camera: Camera) -> float:
    """Convert a screen-space distance to world space."""
    return distance / camera.k


def find_nodes_in_radius(
    nodes: Sequence[Node],
    center: Point,
    radius: float,
) -> list[Node]:
    """Nodes whose position lies within ``radius`` of ``center`` (inclusive)."""
    if not nodes or radius < 0:
        return []
    xy = np.array([(n.x, n.y) for n in nodes], dtype=np.float64)
    dist2 = (xy[:, 0] - center.x) ** 2 + (xy[:, 1] - center.y) ** 2
    inside = np.flatnonzero(dist2 <= radius * radius)
    return [nodes[i] for i in inside]


def nearest_node(nodes: Sequence[Node], center: Point) -> Node | None:
    """Closest node to ``center``; ties go to the earlier node."""
    if not nodes:
        return None
    xy = np.array([(n.x, n.y) for n in nodes], dtype=np.float64)
    dist2 = (xy[:, 0] - center.x) ** 2 + (xy[:, 1] - center.y) ** 2
    return nodes[int(np.argmin(dist2))]
