"""Unit tests for data models."""

import pytest

from topicmap.models import Camera, Cluster, ClusterResult, Edge, Node, NodeKind, Point


class TestNode:
    """Tests for Node model."""

    def test_node_defaults(self) -> None:
        """Test node defaults to an unpinned keyword at the origin."""
        node = Node(id="kw:python", label="python")
        assert node.kind == NodeKind.KEYWORD
        assert node.is_keyword
        assert node.fixed is False
        assert node.cluster_id is None
        assert (node.x, node.y, node.vx, node.vy) == (0.0, 0.0, 0.0, 0.0)

    def test_pin_and_unpin(self) -> None:
        """Test pinning holds position and zeroes velocity."""
        node = Node(id="kw:a", label="a", vx=3.0, vy=-2.0)
        node.pin(10.0, 20.0)

        assert node.fixed
        assert (node.fx, node.fy) == (10.0, 20.0)
        assert (node.x, node.y) == (10.0, 20.0)
        assert (node.vx, node.vy) == (0.0, 0.0)

        node.unpin()
        assert not node.fixed
        assert node.fx is None and node.fy is None

    def test_anchor_stays_fixed(self, anchor_node) -> None:
        """Test anchors ignore unpin."""
        anchor_node.unpin()
        assert anchor_node.fixed
        assert not anchor_node.is_keyword

    def test_from_dict(self) -> None:
        """Test creation from a graph source record."""
        node = Node.from_dict({"id": "kw:rust", "embedding": [0.1, 0.2]})
        assert node.label == "kw:rust"
        assert node.embedding == [0.1, 0.2]
        assert node.kind == NodeKind.KEYWORD

        anchor = Node.from_dict({"id": "proj:x", "label": "x", "kind": "anchor", "fixed": True})
        assert anchor.kind == NodeKind.ANCHOR
        assert anchor.fixed

    def test_from_dict_fixed_is_pinned(self) -> None:
        anchor = Node.from_dict(
            {"id": "proj:x", "kind": "anchor", "x": 500, "y": 500, "fixed": True}
        )
        assert (anchor.fx, anchor.fy) == (500.0, 500.0)
        assert (anchor.x, anchor.y) == (500.0, 500.0)

        assert Node.from_dict({"id": "kw:a", "x": 3}).fx is None

    def test_to_dict(self) -> None:
        node = Node(id="kw:a", label="a", cluster_id=3, is_hub=True)
        data = node.to_dict()
        assert data["kind"] == "keyword"
        assert data["cluster_id"] == 3
        assert data["is_hub"] is True


class TestEdge:
    """Tests for Edge model."""

    def test_key_is_unordered(self) -> None:
        """Test both directions share one key."""
        assert Edge("kw:a", "kw:b", 0.5).key == Edge("kw:b", "kw:a", 0.7).key

    def test_from_dict_knn_alias(self) -> None:
        """Test the isKNN flag is read as mutual neighbor."""
        edge = Edge.from_dict({"source": "kw:a", "target": "kw:b", "similarity": 0.8, "isKNN": True})
        assert edge.is_mutual_neighbor
        assert edge.similarity == 0.8

    def test_from_dict_defaults(self) -> None:
        edge = Edge.from_dict({"source": "kw:a", "target": "kw:b"})
        assert edge.similarity == 0.5
        assert not edge.is_mutual_neighbor


class TestCluster:
    """Tests for Cluster and ClusterResult."""

    def test_cluster_size_and_keywords(self) -> None:
        cluster = Cluster(
            id=0,
            members=frozenset({"kw:b", "kw:a"}),
            hub="kw:a",
            hub_label="a",
            member_labels=("b", "a"),
        )
        assert cluster.size == 2
        assert cluster.sorted_keywords() == ["a", "b"]

    def test_coverage(self) -> None:
        """Test coverage counts assigned ids."""
        result = ClusterResult(node_to_cluster={"a": 0, "b": 0, "c": 1})
        assert result.coverage({"a", "b", "c", "d"}) == 0.75
        assert result.coverage(set()) == 1.0

    def test_from_dict_string_ids(self) -> None:
        """Test cluster ids from JSON-like maps become integers."""
        result = ClusterResult.from_dict(
            {
                "resolution": 1.5,
                "node_to_cluster": {"kw:a": "0", "kw:b": 0},
                "clusters": {"0": {"members": ["kw:a", "kw:b"], "hub": "kw:a"}},
            }
        )
        assert result.node_to_cluster == {"kw:a": 0, "kw:b": 0}
        assert result.clusters[0].members == frozenset({"kw:a", "kw:b"})
        assert result.clusters[0].hub_label == "kw:a"
        assert result.resolution == 1.5

    def test_to_dict_is_plain(self, simple_clusters) -> None:
        result, _ = simple_clusters
        data = result.to_dict()
        assert data["clusters"][0]["members"] == ["kw:a", "kw:b"]
        assert ClusterResult.from_dict(data).clusters[1].hub == "kw:c"


class TestCamera:
    """Tests for the camera transform."""

    def test_non_positive_scale_rejected(self) -> None:
        with pytest.raises(ValueError):
            Camera(k=0.0)

    def test_transform(self) -> None:
        """Test screen = world * k + offset."""
        camera = Camera(k=2.0, x=100.0, y=50.0)
        assert camera.world_to_screen(Point(10.0, 5.0)) == Point(120.0, 60.0)
        assert camera.screen_to_world(Point(120.0, 60.0)) == Point(10.0, 5.0)
