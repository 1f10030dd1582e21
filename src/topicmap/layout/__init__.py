"""Force-directed layout of the keyword map.

Provides:
- Link / many-body / boundary / collision forces with a similarity contrast curve
- Hot -> Cooling -> Settled convergence state machine
- Zoom-dependent settling
- Auto-fit policy and camera framing
"""

from topicmap.layout.autofit import AutoFitController, FitState, fit_camera
from topicmap.layout.convergence import (
    ConvergenceDetector,
    ConvergenceState,
    Phase,
    clamp_velocities,
    p95_speed,
    should_start_cooling,
)
from topicmap.layout.forces import (
    BoundaryForce,
    CollisionForce,
    LinkForce,
    ManyBodyForce,
    contrast_curve,
)
from topicmap.layout.simulation import LayoutSimulation
from topicmap.layout.zoom import ZoomSettling, settling_for_zoom, zoom_progress

__all__ = [
    # Forces
    "contrast_curve",
    "LinkForce",
    "ManyBodyForce",
    "BoundaryForce",
    "CollisionForce",
    # Convergence
    "Phase",
    "ConvergenceState",
    "ConvergenceDetector",
    "clamp_velocities",
    "p95_speed",
    "should_start_cooling",
    # Simulation
    "LayoutSimulation",
    # Zoom
    "ZoomSettling",
    "settling_for_zoom",
    "zoom_progress",
    # Auto-fit
    "AutoFitController",
    "FitState",
    "fit_camera",
]
