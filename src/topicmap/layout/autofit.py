"""Auto-fit: when to reframe the camera around all nodes.

One fit shortly after load, a few refits while the node count changes during
an active layout, and nothing at all once the user has panned or zoomed by hand.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from topicmap.config import settings
from topicmap.layout.convergence import Phase
from topicmap.models import Camera

logger = logging.getLogger(__name__)

# Keeps a tiny graph (or a single node) from being blown up to fill the view
MAX_FIT_SCALE = 4.0


@dataclass
class FitState:
    """What the controller looks at after a tick."""

    phase: Phase
    node_count: int
    elapsed: float  # Seconds since the graph was loaded
    tick_count: int = 0


class AutoFitController:
    """Decides when the view should be fit to the graph."""

    def __init__(
        self,
        initial_delay: float | None = None,
        initial_ticks: int | None = None,
        max_refits: int | None = None,
        node_change_ratio: float | None = None,
    ) -> None:
        self.initial_delay = (
            initial_delay if initial_delay is not None else settings.autofit_initial_delay
        )
        self.initial_ticks = initial_ticks or settings.autofit_initial_ticks
        self.max_refits = max_refits if max_refits is not None else settings.autofit_max_refits
        self.node_change_ratio = node_change_ratio or settings.autofit_node_change_ratio

        self.user_has_interacted = False
        self.has_fitted_initially = False
        self.refits = 0
        self.fitted_node_count = 0

    def mark_user_interaction(self) -> None:
        """Manual pan or zoom: stop fitting until the next reset."""
        if not self.user_has_interacted:
            logger.debug("User moved the camera, auto-fit disabled")
        self.user_has_interacted = True

    def reset(self) -> None:
        """Forget interaction history (e.g. a new graph was loaded)."""
        self.user_has_interacted = False
        self.has_fitted_initially = False
        self.refits = 0
        self.fitted_node_count = 0

    def should_fit(self, state: FitState) -> bool:
        """
        Check whether to fit now. A True answer is recorded as a fit.

        Args:
            state: Simulation phase, node count and time since load

        Returns:
            True if the caller should fit the camera
        """
        if self.user_has_interacted:
            return False

        if not self.has_fitted_initially:
            if state.elapsed >= self.initial_delay or state.tick_count >= self.initial_ticks:
                self.has_fitted_initially = True
                self.fitted_node_count = state.node_count
                return True
            return False

        if state.phase == Phase.SETTLED or self.refits >= self.max_refits:
            return False

        change = abs(state.node_count - self.fitted_node_count) / max(self.fitted_node_count, 1)
        if change < self.node_change_ratio:
            return False

        self.refits += 1
        logger.debug(
            f"Refitting view: {self.fitted_node_count} -> {state.node_count} nodes "
            f"(refit {self.refits}/{self.max_refits})"
        )
        self.fitted_node_count = state.node_count
        return True


def fit_camera(
    positions: Sequence[Sequence[float]] | np.ndarray,
    width: float,
    height: float,
    padding: float | None = None,
    max_scale: float = MAX_FIT_SCALE,
) -> Camera:
    """
    Camera transform that frames every position within the viewport.

    Args:
        positions: World positions, shape (n, 2)
        width: Viewport width in screen pixels
        height: Viewport height in screen pixels
        padding: Screen margin on each side

    Returns:
        Camera centered on the bounding box, identity if there is nothing to fit
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Viewport must have positive size, got {width}x{height}")
    padding = padding if padding is not None else settings.autofit_padding

    points = np.asarray(positions, dtype=np.float64).reshape(-1, 2)
    points = points[np.isfinite(points).all(axis=1)]
    if len(points) == 0:
        return Camera()

    min_xy = points.min(axis=0)
    max_xy = points.max(axis=0)
    span = np.maximum(max_xy - min_xy, 1.0)
    center = (min_xy + max_xy) / 2.0

    usable_w = width - 2 * padding if width > 2 * padding else width
    usable_h = height - 2 * padding if height > 2 * padding else height
    k = min(usable_w / span[0], usable_h / span[1], max_scale)

    return Camera(
        k=float(k),
        x=float(width / 2 - center[0] * k),
        y=float(height / 2 - center[1] * k),
    )
