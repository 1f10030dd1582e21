"""Force-directed layout simulation with a Hot -> Cooling -> Settled state machine.

Each ``step`` integrates one tick:

1. alpha moves toward its target (held while hot, zero once cooling)
2. forces add to velocities (links, repulsion, boundary, collision once cooling)
3. velocities are damped and clamped, pinned nodes are held in place
4. positions advance and are written back to the live ``Node`` objects

Node objects are mutated in place, so a new clustering (or the renderer) can
read and annotate the same nodes without restarting the integration.
"""

import logging
from collections.abc import Sequence

import numpy as np

from topicmap.config import settings
from topicmap.layout.convergence import ConvergenceDetector, Phase, clamp_velocities
from topicmap.layout.forces import BoundaryForce, CollisionForce, LinkForce, ManyBodyForce
from topicmap.layout.zoom import ZoomSettling
from topicmap.models import Edge, Node

logger = logging.getLogger(__name__)

INITIAL_ALPHA = 1.0


class LayoutSimulation:
    """
    Keyword map layout.

    Usage:
        sim = LayoutSimulation(nodes, edges)
        while sim.phase != Phase.SETTLED:
            sim.step()
    """

    def __init__(
        self,
        nodes: Sequence[Node] | None = None,
        edges: Sequence[Edge] | None = None,
        alpha_hot_target: float | None = None,
        alpha_decay: float | None = None,
        alpha_min: float | None = None,
        velocity_decay: float | None = None,
        max_velocity: float | None = None,
        contrast_exponent: float | None = None,
        knn_strength: float | None = None,
        detector: ConvergenceDetector | None = None,
        seed: int | None = None,
    ) -> None:
        self.alpha_hot_target = (
            alpha_hot_target if alpha_hot_target is not None else settings.alpha_hot_target
        )
        self.alpha_decay = alpha_decay if alpha_decay is not None else settings.alpha_decay
        self.alpha_min = alpha_min if alpha_min is not None else settings.alpha_min
        self.velocity_decay = (
            velocity_decay if velocity_decay is not None else settings.velocity_decay
        )
        self.max_velocity = max_velocity if max_velocity is not None else settings.max_velocity
        self.contrast_exponent = (
            contrast_exponent if contrast_exponent is not None else settings.contrast_exponent
        )
        self.knn_strength = knn_strength if knn_strength is not None else settings.knn_strength
        self.seed = seed

        self.detector = detector or ConvergenceDetector()
        self.alpha = INITIAL_ALPHA
        self.alpha_target = self.alpha_hot_target
        self.collision_enabled = False
        self.zoom: ZoomSettling | None = None

        self.nodes: list[Node] = []
        self.edges: list[Edge] = []
        self._index: dict[str, int] = {}

        self.links = LinkForce([], [], [], [], 0, seed=seed)
        self.charge = ManyBodyForce(seed=seed)
        self.boundary = BoundaryForce()
        self.collision = CollisionForce(seed=seed)

        if nodes is not None:
            self.set_graph(nodes, edges or [])

    @property
    def phase(self) -> Phase:
        return self.detector.phase

    @property
    def tick_count(self) -> int:
        return self.detector.state.tick_count

    @property
    def effective_alpha(self) -> float:
        """Alpha after the zoom cap."""
        if self.zoom is None:
            return self.alpha
        return min(self.alpha, self.zoom.alpha_cap)

    def set_graph(self, nodes: Sequence[Node], edges: Sequence[Edge]) -> None:
        """
        Replace the simulated graph and reheat.

        Positions are taken from the nodes as given (carry-over from a
        position cache happens before this call).
        """
        self.nodes = list(nodes)
        self._index = {node.id: i for i, node in enumerate(self.nodes)}

        kept = [e for e in edges if e.source in self._index and e.target in self._index]
        if len(kept) < len(edges):
            logger.warning(f"Simulation ignored {len(edges) - len(kept)} edges with unknown nodes")
        self.edges = kept

        self.links = LinkForce(
            sources=np.array([self._index[e.source] for e in kept], dtype=np.intp),
            targets=np.array([self._index[e.target] for e in kept], dtype=np.intp),
            similarities=np.array([e.similarity for e in kept], dtype=np.float64),
            mutual=np.array([e.is_mutual_neighbor for e in kept], dtype=bool),
            node_count=len(self.nodes),
            contrast_exponent=self.contrast_exponent,
            knn_strength=self.knn_strength,
            seed=self.seed,
        )
        self.reheat()
        self.alpha = max(self.alpha, self.alpha_hot_target)
        logger.info(f"Simulating {len(self.nodes)} nodes, {len(kept)} links")

    def node(self, node_id: str) -> Node | None:
        index = self._index.get(node_id)
        return self.nodes[index] if index is not None else None

    def positions(self) -> np.ndarray:
        """Current positions as an ``(n, 2)`` array in node order."""
        return np.array([[n.x, n.y] for n in self.nodes], dtype=np.float64).reshape(-1, 2)

    def velocities(self) -> np.ndarray:
        return np.array([[n.vx, n.vy] for n in self.nodes], dtype=np.float64).reshape(-1, 2)

    def mean_speed(self) -> float:
        free = [n for n in self.nodes if not n.fixed]
        if not free:
            return 0.0
        return float(np.mean([np.hypot(n.vx, n.vy) for n in free]))

    def reheat(self) -> None:
        """Back to Hot: hot alpha target, no collision, fresh convergence counters."""
        if self.phase != Phase.HOT:
            logger.debug(f"Reheating layout from {self.phase.value}")
        self.detector.state.reheat()
        self.alpha_target = self.alpha_hot_target
        self.collision_enabled = False

    def start_cooling(self) -> None:
        """Hot -> Cooling: enable collision and let alpha decay to zero."""
        self.detector.state.phase = Phase.COOLING
        self.collision_enabled = True
        self.alpha_target = 0.0
        self.alpha = self.alpha_hot_target
        logger.info(
            f"Layout cooling after {self.tick_count} ticks "
            f"(p95 speed {self.detector.state.last_speed:.2f})"
        )

    def apply_zoom(self, zoom: ZoomSettling | None) -> None:
        """Cap energy and damping for the current zoom (None lifts the cap)."""
        self.zoom = zoom

    def start_drag(self, node_id: str, x: float, y: float) -> bool:
        """Pin a node under the pointer and reheat the layout."""
        node = self.node(node_id)
        if node is None:
            return False
        node.pin(x, y)
        self.reheat()
        return True

    def drag(self, node_id: str, x: float, y: float) -> bool:
        node = self.node(node_id)
        if node is None:
            return False
        node.fx = x
        node.fy = y
        node.fixed = True
        return True

    def end_drag(self, node_id: str) -> bool:
        """Release a dragged node; the layout stays hot and cools down on its own."""
        node = self.node(node_id)
        if node is None:
            return False
        node.unpin()
        return True

    def step(self, dt: float = 1.0) -> Phase:
        """
        Advance the layout by one tick.

        Args:
            dt: Integration step in ticks

        Returns:
            Phase after the tick
        """
        if not self.nodes:
            return self.phase

        pos = self.positions()
        vel = self.velocities()
        fixed = np.array([n.fixed for n in self.nodes], dtype=bool)
        pinned = np.array(
            [
                (n.fx if n.fx is not None else n.x, n.fy if n.fy is not None else n.y)
                for n in self.nodes
            ],
            dtype=np.float64,
        ).reshape(-1, 2)

        self.alpha += (self.alpha_target - self.alpha) * self.alpha_decay
        alpha = self.effective_alpha

        self.links.apply(pos, vel, alpha)
        self.charge.apply(pos, vel, alpha)
        self.boundary.apply(pos, vel, alpha)
        if self.collision_enabled:
            self.collision.apply(pos, vel, alpha)

        decay = self.zoom.velocity_decay if self.zoom is not None else self.velocity_decay
        vel *= 1.0 - decay
        clamp_velocities(vel, self.max_velocity)

        vel[fixed] = 0.0
        pos += vel * dt
        pos[fixed] = pinned[fixed]

        for i, node in enumerate(self.nodes):
            node.x = float(pos[i, 0])
            node.y = float(pos[i, 1])
            node.vx = float(vel[i, 0])
            node.vy = float(vel[i, 1])

        if self.detector.observe(vel[~fixed]):
            self.start_cooling()
        elif self.phase == Phase.COOLING and self.alpha < self.alpha_min:
            self.detector.state.phase = Phase.SETTLED
            logger.info(f"Layout settled after {self.tick_count} ticks")

        return self.phase
