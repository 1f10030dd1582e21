"""Pytest configuration and fixtures."""

import itertools
from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest

from topicmap.config import Settings, get_test_settings
from topicmap.labels import LabelCache, LabelServiceClient, MemoryStorage
from topicmap.models import Cluster, ClusterResult, Edge, Node, NodeKind


@pytest.fixture
def test_settings() -> Settings:
    """Test settings preset."""
    return get_test_settings()


def _topic_embedding(topic: int, member: int, dims: int) -> list[float]:
    """Unit-ish vector near the topic's basis axis, slightly offset per member."""
    vec = np.zeros(dims)
    vec[topic % dims] = 1.0
    vec[(topic + 1) % dims] += 0.05 * (member + 1)
    return (vec / np.linalg.norm(vec)).tolist()


@pytest.fixture
def graph_factory() -> Callable[..., tuple[list[Node], list[Edge]]]:
    """
    Build clique graphs: each group is a fully connected topic, consecutive
    groups are joined by one weak bridge between their first members.
    """

    def make(
        groups: list[list[str]],
        intra: float = 0.9,
        bridge: float = 0.1,
        ring: bool = False,
        with_embeddings: bool = True,
    ) -> tuple[list[Node], list[Edge]]:
        dims = max(len(groups), 2) + 1
        nodes: list[Node] = []
        edges: list[Edge] = []
        for g, group in enumerate(groups):
            for m, label in enumerate(group):
                nodes.append(
                    Node(
                        id=f"kw:{label}",
                        label=label,
                        embedding=_topic_embedding(g, m, dims) if with_embeddings else None,
                    )
                )
            for a, b in itertools.combinations(group, 2):
                edges.append(Edge(f"kw:{a}", f"kw:{b}", intra))

        links = range(len(groups)) if ring else range(len(groups) - 1)
        for g in links:
            nxt = (g + 1) % len(groups)
            if nxt == g:
                continue
            edges.append(Edge(f"kw:{groups[g][0]}", f"kw:{groups[nxt][0]}", bridge))
        return nodes, edges

    return make


@pytest.fixture
def topic_groups() -> list[list[str]]:
    """Three small keyword topics."""
    return [
        ["neural network", "deep learning", "backpropagation", "gradient descent"],
        ["python", "rust", "compiler", "type system"],
        ["sourdough", "fermentation", "yeast", "baking"],
    ]


@pytest.fixture
def sample_graph(graph_factory, topic_groups) -> tuple[list[Node], list[Edge]]:
    return graph_factory(topic_groups)


@pytest.fixture
def anchor_node() -> Node:
    """A pinned project anchor at the origin."""
    node = Node(id="proj:map", label="map", kind=NodeKind.ANCHOR)
    node.pin(0.0, 0.0)
    return node


@pytest.fixture
def fake_clock() -> Callable[[], float]:
    """Monotonic integer clock for deterministic LRU tests."""
    counter = itertools.count(1)
    return lambda: float(next(counter))


@pytest.fixture
def label_cache(fake_clock) -> LabelCache:
    return LabelCache(
        capacity=10,
        match_threshold=0.85,
        exact_threshold=0.95,
        version=1,
        clock=fake_clock,
    )


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def simple_clusters() -> tuple[ClusterResult, dict[str, np.ndarray]]:
    """Two clusters over orthogonal embedding directions."""
    embeddings = {
        "kw:a": np.array([1.0, 0.0, 0.0]),
        "kw:b": np.array([0.98, 0.2, 0.0]),
        "kw:c": np.array([0.0, 0.0, 1.0]),
        "kw:d": np.array([0.0, 0.2, 0.98]),
    }
    embeddings = {k: v / np.linalg.norm(v) for k, v in embeddings.items()}
    result = ClusterResult(
        node_to_cluster={"kw:a": 0, "kw:b": 0, "kw:c": 1, "kw:d": 1},
        clusters={
            0: Cluster(
                id=0,
                members=frozenset({"kw:a", "kw:b"}),
                hub="kw:a",
                hub_label="a",
                member_labels=("a", "b"),
            ),
            1: Cluster(
                id=1,
                members=frozenset({"kw:c", "kw:d"}),
                hub="kw:c",
                hub_label="c",
                member_labels=("c", "d"),
            ),
        },
        resolution=1.0,
    )
    return result, embeddings


@pytest.fixture
def mock_label_service() -> MagicMock:
    """Mock label service: 'topic <hub>' for new labels, refinements keep the old label."""
    service = MagicMock(spec=LabelServiceClient)

    async def fake_generate(requests):
        return {r.cluster_id: f"topic {r.keywords[0]}" for r in requests}

    async def fake_refine(requests):
        return {r.cluster_id: r.old_label for r in requests}

    service.generate_labels = AsyncMock(side_effect=fake_generate)
    service.refine_labels = AsyncMock(side_effect=fake_refine)
    service.close = AsyncMock()
    return service
