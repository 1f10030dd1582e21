"""Community detection over the keyword similarity graph.

Louvain modularity optimization (networkx) with similarity as edge weight and
a tunable resolution. Each community gets a hub: the member with the highest
degree in the full graph, ties broken by shorter label, then label order.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

import networkx as nx
import numpy as np

from topicmap.config import settings
from topicmap.models import Cluster, ClusterResult, Edge, Node

logger = logging.getLogger(__name__)

# Louvain divides by total edge weight; zero-similarity edges still count as links
MIN_EDGE_WEIGHT = 1e-6


def build_nx_graph(nodes: Iterable[Node], edges: Iterable[Edge]) -> nx.Graph:
    """Build an undirected weighted networkx graph without touching the inputs."""
    graph = nx.Graph()
    for node in nodes:
        graph.add_node(node.id)
    for edge in edges:
        if edge.source == edge.target:
            continue
        if not graph.has_node(edge.source) or not graph.has_node(edge.target):
            continue
        if graph.has_edge(edge.source, edge.target):
            continue
        graph.add_edge(
            edge.source,
            edge.target,
            weight=max(edge.similarity, MIN_EDGE_WEIGHT),
        )
    return graph


def select_hub(
    members: Iterable[str],
    degrees: dict[str, int],
    labels: dict[str, str],
) -> str:
    """Pick the highest-degree member; ties go to the shorter, then smaller label."""

    def rank(node_id: str) -> tuple[int, int, str, str]:
        label = labels.get(node_id, node_id)
        return (-degrees.get(node_id, 0), len(label), label, node_id)

    return min(members, key=rank)


def accept_precomputed(
    precomputed: ClusterResult | None,
    node_ids: set[str],
    min_coverage: float | None = None,
) -> bool:
    """Check whether a precomputed clustering covers enough of the current nodes."""
    if precomputed is None:
        return False
    min_coverage = settings.precomputed_min_coverage if min_coverage is None else min_coverage
    coverage = precomputed.coverage(node_ids)
    if coverage < min_coverage:
        logger.info(
            f"Precomputed clusters cover {coverage:.0%} of nodes "
            f"(< {min_coverage:.0%}), detecting locally"
        )
        return False
    return True


class CommunityDetector:
    """
    Resolution-parameterized community detection.

    Pure with respect to its inputs: nodes and edges are read, never mutated,
    so a detection pass can run on a copy in a worker thread.
    """

    def __init__(
        self,
        resolution: float | None = None,
        seed: int | None = None,
        detect_periphery: bool | None = None,
        periphery_percentile: float | None = None,
        periphery_sample_size: int | None = None,
    ) -> None:
        self.resolution = resolution if resolution is not None else settings.cluster_resolution
        self.seed = seed if seed is not None else settings.cluster_seed
        self.detect_periphery = (
            detect_periphery if detect_periphery is not None else settings.detect_periphery
        )
        self.periphery_percentile = periphery_percentile or settings.periphery_percentile
        self.periphery_sample_size = periphery_sample_size or settings.periphery_sample_size

    def detect(
        self,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
        resolution: float | None = None,
    ) -> ClusterResult:
        """
        Partition the graph into topical communities.

        Args:
            nodes: Graph nodes
            edges: Similarity edges (deduplicated, undirected)
            resolution: Modularity resolution, higher = more clusters

        Returns:
            ClusterResult; nodes without edges are left unassigned
        """
        resolution = self.resolution if resolution is None else resolution
        if resolution <= 0:
            raise ValueError(f"Resolution must be positive, got {resolution}")

        if not nodes:
            return ClusterResult(resolution=resolution)

        graph = build_nx_graph(nodes, edges)
        connected = [n for n, degree in graph.degree() if degree > 0]
        if not connected:
            logger.info(f"No edges among {len(nodes)} nodes, nothing to cluster")
            return ClusterResult(resolution=resolution)

        subgraph = graph.subgraph(connected)
        communities = nx.community.louvain_communities(
            subgraph,
            weight="weight",
            resolution=resolution,
            seed=self.seed,
        )
        # Stable ids: largest first, then by smallest member id
        communities = sorted(communities, key=lambda c: (-len(c), min(c)))

        labels = {n.id: n.label for n in nodes}
        degrees = dict(graph.degree())
        centrality = self._centrality(subgraph) if self.detect_periphery else {}

        node_to_cluster: dict[str, int] = {}
        clusters: dict[int, Cluster] = {}
        avg_centrality: dict[int, float] = {}

        for cluster_id, members in enumerate(communities):
            for node_id in members:
                node_to_cluster[node_id] = cluster_id
            hub = select_hub(members, degrees, labels)
            ordered = sorted(members)
            clusters[cluster_id] = Cluster(
                id=cluster_id,
                members=frozenset(members),
                hub=hub,
                hub_label=labels.get(hub, hub),
                member_labels=tuple(labels.get(m, m) for m in ordered),
            )
            if centrality:
                avg_centrality[cluster_id] = float(
                    np.mean([centrality.get(m, 0.0) for m in members])
                )

        if avg_centrality:
            clusters = self._flag_periphery(clusters, avg_centrality)

        logger.info(
            f"Detected {len(clusters)} clusters over {len(node_to_cluster)} nodes "
            f"(resolution={resolution})"
        )
        return ClusterResult(
            node_to_cluster=node_to_cluster,
            clusters=clusters,
            resolution=resolution,
        )

    def _centrality(self, graph: nx.Graph) -> dict[str, float]:
        """Betweenness centrality, sampled on large graphs."""
        k = min(graph.number_of_nodes(), self.periphery_sample_size)
        return nx.betweenness_centrality(graph, k=k, seed=self.seed)

    def _flag_periphery(
        self,
        clusters: dict[int, Cluster],
        avg_centrality: dict[int, float],
    ) -> dict[int, Cluster]:
        """Mark clusters whose mean centrality sits in the bottom percentile."""
        ordered = sorted(avg_centrality.values())
        threshold = ordered[int(len(ordered) * self.periphery_percentile)]
        flagged = {}
        for cluster_id, cluster in clusters.items():
            is_peripheral = avg_centrality[cluster_id] <= threshold
            flagged[cluster_id] = Cluster(
                id=cluster.id,
                members=cluster.members,
                hub=cluster.hub,
                hub_label=cluster.hub_label,
                member_labels=cluster.member_labels,
                is_peripheral=is_peripheral,
            )
        return flagged
