"""Map engine: wires graph build, clustering, labels, layout, auto-fit and hover.

Hosts drive it through explicit entry points:

- ``tick(dt)`` once per animation frame
- ``on_pointer_move(pos)`` / ``on_pointer_leave()`` for hover
- ``start_drag`` / ``drag`` / ``end_drag`` for node dragging (queued, applied
  at the start of the next tick)
- ``on_user_pan_zoom(camera)`` when the user moves the view
- ``refresh_labels()`` (async) after a detection run

Nothing here blocks on I/O: label requests and cache writes happen inside
``refresh_labels`` and detection can be offloaded with ``detect_async``.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from topicmap.config import settings
from topicmap.graph import (
    CommunityDetector,
    PositionCache,
    accept_precomputed,
    build_adjacency_map,
    build_graph,
)
from topicmap.hover import HoverFilter, HoverResult
from topicmap.labels import (
    CacheStorage,
    ClusterLabeler,
    LabelCache,
    LabelService,
    load_cache,
)
from topicmap.layout import (
    AutoFitController,
    FitState,
    LayoutSimulation,
    Phase,
    fit_camera,
    settling_for_zoom,
)
from topicmap.models import Camera, ClusterResult, Edge, GraphData, Node, Point
from topicmap.render import FrameSnapshot, compute_cluster_labels, compute_label_fade, node_views

logger = logging.getLogger(__name__)


@dataclass
class DragEvent:
    kind: str  # "start", "move" or "end"
    node_id: str
    x: float = 0.0
    y: float = 0.0


class MapEngine:
    """
    Keyword map engine for one session.

    Collaborators (label service, cache storage) and session state (label
    cache, position cache) are injected; defaults are created from settings.
    """

    def __init__(
        self,
        label_service: LabelService | None = None,
        storage: CacheStorage | None = None,
        label_cache: LabelCache | None = None,
        detector: CommunityDetector | None = None,
        simulation: LayoutSimulation | None = None,
        autofit: AutoFitController | None = None,
        hover: HoverFilter | None = None,
        position_cache: PositionCache | None = None,
        viewport: tuple[float, float] = (1280.0, 800.0),
        resolution: float | None = None,
        zoom_settling: bool | None = None,
    ) -> None:
        if label_cache is None:
            label_cache = load_cache(storage) if storage is not None else LabelCache()

        self.detector = detector or CommunityDetector()
        self.labeler = ClusterLabeler(label_cache, service=label_service, storage=storage)
        self.simulation = simulation or LayoutSimulation()
        self.autofit = autofit or AutoFitController()
        self.hover = hover or HoverFilter()
        self.position_cache = position_cache or PositionCache(spread=settings.initial_spread)

        self.viewport = viewport
        self.resolution = resolution if resolution is not None else settings.cluster_resolution
        self.zoom_settling = (
            zoom_settling if zoom_settling is not None else settings.zoom_settling_enabled
        )

        self.camera = Camera()
        self.graph = GraphData()
        self.clusters = ClusterResult()
        self.highlight: HoverResult | None = None
        self.elapsed = 0.0

        self._drags: deque[DragEvent] = deque()
        self._detecting = False

    @property
    def nodes(self) -> list[Node]:
        return self.graph.nodes

    @property
    def phase(self) -> Phase:
        return self.simulation.phase

    @property
    def labels(self) -> dict[int, str]:
        return self.labeler.board.labels()

    @property
    def is_detecting(self) -> bool:
        return self._detecting

    # =========================================================================
    # Graph and clusters
    # =========================================================================

    def load_graph(
        self,
        nodes: Iterable[Node],
        edges: Iterable[Edge],
        precomputed: ClusterResult | None = None,
        reset_view: bool = True,
    ) -> GraphData:
        """
        (Re)build the graph, carrying positions over for surviving node ids.

        Args:
            nodes: Nodes from the graph source
            edges: Edges from the graph source
            precomputed: Cluster assignment for the current resolution, used
                only if it covers enough of the nodes
            reset_view: Treat as a new graph (re-enables auto-fit)

        Returns:
            The validated graph
        """
        self.position_cache.remember(self.graph.nodes)
        graph = build_graph(nodes, edges)
        self.position_cache.restore(graph.nodes, build_adjacency_map(graph.edges))

        self.graph = graph
        self.simulation.set_graph(graph.nodes, graph.edges)
        self.hover.set_graph(graph.nodes, graph.edges)
        self.highlight = None

        if reset_view:
            self.autofit.reset()
            self.elapsed = 0.0

        if accept_precomputed(precomputed, graph.node_ids()):
            result = precomputed
            logger.info(f"Using precomputed clusters ({len(result.clusters)} clusters)")
        else:
            result = self.detector.detect(graph.nodes, graph.edges, self.resolution)
        self._apply_clusters(result)
        return graph

    def set_resolution(self, resolution: float) -> ClusterResult:
        """Re-detect clusters at a new resolution, keeping the live layout."""
        if resolution <= 0:
            raise ValueError(f"Resolution must be positive, got {resolution}")
        self.resolution = resolution
        result = self.detector.detect(self.graph.nodes, self.graph.edges, resolution)
        self._apply_clusters(result)
        return result

    async def detect_async(self, resolution: float | None = None) -> ClusterResult | None:
        """
        Run detection in a worker thread on a copy of the graph.

        The result is applied only if the graph was not rebuilt meanwhile.

        Returns:
            The applied result, or None if it was discarded
        """
        resolution = self.resolution if resolution is None else resolution
        if resolution <= 0:
            raise ValueError(f"Resolution must be positive, got {resolution}")

        graph = self.graph
        nodes_copy = [Node(id=n.id, label=n.label, kind=n.kind) for n in graph.nodes]
        edges_copy = list(graph.edges)

        self._detecting = True
        try:
            result = await asyncio.to_thread(
                self.detector.detect, nodes_copy, edges_copy, resolution
            )
        finally:
            self._detecting = False

        if self.graph is not graph:
            logger.info("Graph changed during detection, discarding result")
            return None

        self.resolution = resolution
        self._apply_clusters(result)
        return result

    def _apply_clusters(self, result: ClusterResult) -> None:
        """Annotate the live nodes and start a new label generation."""
        self.clusters = result
        hubs = {c.hub for c in result.clusters.values()}
        for node in self.graph.nodes:
            node.cluster_id = result.node_to_cluster.get(node.id)
            node.is_hub = node.id in hubs
        self.labeler.set_clusters(result, self.hover.embeddings)

    async def refresh_labels(self) -> dict[int, str]:
        """Resolve queued cluster labels (cache refinement and generation)."""
        return await self.labeler.refresh()

    # =========================================================================
    # Frame loop
    # =========================================================================

    def tick(self, dt: float = 1.0 / 60.0) -> Phase:
        """
        Advance one animation frame.

        Args:
            dt: Seconds since the previous frame

        Returns:
            Simulation phase after the tick
        """
        self.elapsed += dt
        self._apply_drags()

        if self.zoom_settling:
            self.simulation.apply_zoom(settling_for_zoom(self.camera.k))
        else:
            self.simulation.apply_zoom(None)

        phase = self.simulation.step()

        state = FitState(
            phase=phase,
            node_count=len(self.graph.nodes),
            elapsed=self.elapsed,
            tick_count=self.simulation.tick_count,
        )
        if self.autofit.should_fit(state):
            self.fit_view()
        return phase

    def fit_view(self) -> Camera:
        """Frame all nodes in the viewport."""
        width, height = self.viewport
        self.camera = fit_camera(self.simulation.positions(), width, height)
        return self.camera

    def set_viewport(self, width: float, height: float) -> None:
        self.viewport = (width, height)

    # =========================================================================
    # Input
    # =========================================================================

    def start_drag(self, node_id: str, x: float, y: float) -> None:
        """Queue a drag start at world position (x, y)."""
        self._drags.append(DragEvent("start", node_id, x, y))

    def drag(self, node_id: str, x: float, y: float) -> None:
        self._drags.append(DragEvent("move", node_id, x, y))

    def end_drag(self, node_id: str) -> None:
        self._drags.append(DragEvent("end", node_id))

    def _apply_drags(self) -> None:
        while self._drags:
            event = self._drags.popleft()
            if event.kind == "start":
                applied = self.simulation.start_drag(event.node_id, event.x, event.y)
            elif event.kind == "move":
                applied = self.simulation.drag(event.node_id, event.x, event.y)
            else:
                applied = self.simulation.end_drag(event.node_id)
            if not applied:
                logger.debug(f"Ignoring drag {event.kind} for unknown node {event.node_id}")

    def on_pointer_move(self, cursor: Point) -> HoverResult:
        """Recompute the highlight set for a cursor position in screen coordinates."""
        radius = self.hover.screen_radius(*self.viewport)
        self.highlight = self.hover.on_pointer_move(self.graph.nodes, cursor, self.camera, radius)
        return self.highlight

    def on_pointer_leave(self) -> HoverResult:
        self.highlight = None
        return self.hover.on_pointer_leave()

    def on_user_pan_zoom(self, camera: Camera) -> None:
        """Manual pan or zoom: adopt the camera and stop auto-fitting."""
        self.camera = camera
        self.autofit.mark_user_interaction()

    # =========================================================================
    # Output
    # =========================================================================

    def snapshot(self, visible_ids: Sequence[str] | None = None) -> FrameSnapshot:
        """Read-only copy of everything the renderer needs for this frame."""
        highlight = self.highlight
        return FrameSnapshot(
            nodes=node_views(self.graph.nodes),
            cluster_labels=compute_cluster_labels(
                self.graph.nodes, self.clusters.clusters, self.labels, visible_ids
            ),
            highlighted_ids=set(highlight.highlighted_ids)
            if highlight is not None and highlight.highlighted_ids is not None
            else None,
            dim_all=highlight is not None and highlight.is_empty_space,
            phase=self.phase.value,
            camera=self.camera,
            label_fade=compute_label_fade(self.camera.k),
        )

    async def close(self) -> None:
        """Release the label service connection, if it holds one."""
        close = getattr(self.labeler.service, "close", None)
        if close is not None:
            await close()
