"""Pointer hover: spatial prefilter plus semantic and graph expansion."""

from topicmap.hover.highlight import HoverFilter, HoverResult, compute_highlight, semantic_pairs
from topicmap.hover.spatial import (
    find_nodes_in_radius,
    nearest_node,
    screen_to_world,
    screen_to_world_distance,
)

__all__ = [
    "compute_highlight",
    "semantic_pairs",
    "HoverFilter",
    "HoverResult",
    "find_nodes_in_radius",
    "nearest_node",
    "screen_to_world",
    "screen_to_world_distance",
]
