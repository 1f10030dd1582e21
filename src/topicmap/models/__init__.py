"""Topicmap data models."""

from topicmap.models.camera import Camera, Point
from topicmap.models.cluster import Cluster, ClusterResult
from topicmap.models.graph import Edge, GraphData, Node, NodeKind

__all__ = [
    "Node",
    "NodeKind",
    "Edge",
    "GraphData",
    "Cluster",
    "ClusterResult",
    "Camera",
    "Point",
]
