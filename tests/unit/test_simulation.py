"""Unit tests for the layout simulation."""

import math

import pytest

from topicmap.graph import PositionCache
from topicmap.layout import ConvergenceDetector, LayoutSimulation, Phase, ZoomSettling
from topicmap.models import Edge, Node


@pytest.fixture
def placed_graph(sample_graph):
    nodes, edges = sample_graph
    PositionCache(spread=1000.0, seed=7).restore(nodes)
    return nodes, edges


class TestConvergence:
    """Tests for the Hot -> Cooling -> Settled run."""

    def test_settles(self, placed_graph) -> None:
        nodes, edges = placed_graph
        sim = LayoutSimulation(nodes, edges, detector=ConvergenceDetector(max_hot_ticks=400), seed=1)

        phases = set()
        for _ in range(3000):
            phases.add(sim.step())
            if sim.phase == Phase.SETTLED:
                break

        assert sim.phase == Phase.SETTLED
        assert Phase.COOLING in phases
        assert sim.mean_speed() < 0.5
        assert all(math.isfinite(n.x) and math.isfinite(n.y) for n in nodes)

    def test_settles_with_default_settings(self, placed_graph) -> None:
        nodes, edges = placed_graph
        sim = LayoutSimulation(nodes, edges, seed=1)

        for _ in range(6000):
            sim.step()
            if sim.phase == Phase.SETTLED:
                break

        assert sim.phase == Phase.SETTLED
        assert sim.mean_speed() < 0.5

    def test_cooling_enables_collision(self, placed_graph) -> None:
        sim = LayoutSimulation(*placed_graph)

        sim.start_cooling()

        assert sim.phase == Phase.COOLING
        assert sim.collision_enabled
        assert sim.alpha_target == 0.0
        assert sim.alpha == pytest.approx(sim.alpha_hot_target)


class TestEdgeCases:
    """Tests for degenerate graphs."""

    def test_empty(self) -> None:
        sim = LayoutSimulation()
        assert sim.step() == Phase.HOT
        assert sim.mean_speed() == 0.0

    def test_single_node_unchanged(self) -> None:
        node = Node(id="kw:solo", label="solo", x=5.0, y=5.0)
        sim = LayoutSimulation([node], [])

        sim.step()

        assert (node.x, node.y) == (5.0, 5.0)

    def test_zero_edges(self) -> None:
        nodes = [Node(id=f"kw:{i}", label=str(i), x=float(i * 10), y=0.0) for i in range(3)]
        sim = LayoutSimulation(nodes, [])

        for _ in range(10):
            sim.step()

        assert sim.phase == Phase.HOT
        assert all(math.isfinite(n.x) for n in nodes)
        # Repulsion only: the outer nodes drift apart
        assert nodes[2].x - nodes[0].x > 20.0

    def test_explicit_zero_overrides_default(self) -> None:
        sim = LayoutSimulation(velocity_decay=0.0, alpha_min=0.0)

        assert sim.velocity_decay == 0.0
        assert sim.alpha_min == 0.0

    def test_unknown_edge_endpoints_ignored(self, sample_graph) -> None:
        nodes, edges = sample_graph
        sim = LayoutSimulation(nodes, edges + [Edge("kw:python", "kw:ghost", 0.5)])
        assert len(sim.edges) == len(edges)


class TestDrag:
    """Tests for drag pinning and reheating."""

    def test_drag_reheats_settled_layout(self, placed_graph) -> None:
        sim = LayoutSimulation(*placed_graph)
        sim.start_cooling()
        sim.detector.state.phase = Phase.SETTLED
        sim.alpha = 0.0005

        assert sim.start_drag("kw:python", 10.0, 10.0)

        assert sim.phase == Phase.HOT
        assert sim.tick_count == 0
        assert sim.alpha_target == sim.alpha_hot_target
        assert not sim.collision_enabled

        sim.step()
        node = sim.node("kw:python")
        assert sim.alpha > 0.0005
        assert (node.x, node.y) == (10.0, 10.0)

    def test_drag_moves_pin(self, placed_graph) -> None:
        sim = LayoutSimulation(*placed_graph)
        sim.start_drag("kw:rust", 0.0, 0.0)
        sim.drag("kw:rust", 50.0, -20.0)
        sim.step()

        node = sim.node("kw:rust")
        assert (node.x, node.y) == (50.0, -20.0)

        assert sim.end_drag("kw:rust")
        assert not node.fixed

    def test_unknown_node(self, placed_graph) -> None:
        sim = LayoutSimulation(*placed_graph)
        assert not sim.start_drag("kw:ghost", 0.0, 0.0)
        assert not sim.drag("kw:ghost", 0.0, 0.0)
        assert not sim.end_drag("kw:ghost")

    def test_anchor_stays_pinned(self, placed_graph, anchor_node) -> None:
        nodes, edges = placed_graph
        sim = LayoutSimulation(
            nodes + [anchor_node], edges + [Edge("proj:map", "kw:python", 0.8)]
        )

        for _ in range(20):
            sim.step()
        sim.end_drag("proj:map")

        assert (anchor_node.x, anchor_node.y) == (0.0, 0.0)
        assert anchor_node.fixed


class TestZoomCap:
    """Tests for zoom-dependent settling inside the simulation."""

    def test_cap_limits_effective_alpha(self, placed_graph) -> None:
        sim = LayoutSimulation(*placed_graph)

        sim.apply_zoom(ZoomSettling(alpha_cap=0.01, velocity_decay=0.9))
        assert sim.effective_alpha == 0.01

        sim.apply_zoom(None)
        assert sim.effective_alpha == sim.alpha

    def test_capped_layout_moves_less(self, sample_graph) -> None:
        def displacement(zoom):
            nodes, edges = sample_graph
            fresh = [Node(id=n.id, label=n.label) for n in nodes]
            PositionCache(spread=1000.0, seed=7).restore(fresh)
            start = [(n.x, n.y) for n in fresh]
            sim = LayoutSimulation(fresh, edges, seed=1)
            sim.apply_zoom(zoom)
            for _ in range(5):
                sim.step()
            return sum(math.hypot(n.x - x, n.y - y) for n, (x, y) in zip(fresh, start))

        free = displacement(None)
        capped = displacement(ZoomSettling(alpha_cap=0.01, velocity_decay=0.9))

        assert capped < free
