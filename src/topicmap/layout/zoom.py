"""Zoom-dependent settling.

When the user zooms in on a region, the layout should stop shuffling what
they are looking at. The camera zoom scale maps to a cap on simulation
energy and a higher velocity damping: full energy when zoomed out, nearly
halted when zoomed in.
"""

import math
from dataclasses import dataclass

from topicmap.config import settings

# Eases the transition so damping ramps up early in the zoom range
ZOOM_CURVE_EXPONENT = 0.65


@dataclass(frozen=True)
class ZoomSettling:
    alpha_cap: float
    velocity_decay: float


def zoom_progress(
    k: float,
    full_energy_scale: float | None = None,
    halt_scale: float | None = None,
) -> float:
    """Position of zoom scale ``k`` between full energy (0) and halt (1), log scale."""
    full_energy_scale = (
        full_energy_scale if full_energy_scale is not None else settings.zoom_scale_full_energy
    )
    halt_scale = halt_scale if halt_scale is not None else settings.zoom_scale_halt
    if k <= 0:
        raise ValueError(f"Zoom scale must be positive, got {k}")
    if halt_scale <= full_energy_scale:
        return 0.0 if k < halt_scale else 1.0

    t = math.log(k / full_energy_scale) / math.log(halt_scale / full_energy_scale)
    t = min(1.0, max(0.0, t))
    return t**ZOOM_CURVE_EXPONENT


def settling_for_zoom(
    k: float,
    full_energy_scale: float | None = None,
    halt_scale: float | None = None,
    min_alpha: float | None = None,
    max_alpha: float | None = None,
    min_velocity_decay: float | None = None,
    max_velocity_decay: float | None = None,
) -> ZoomSettling:
    """
    Simulation limits for a zoom scale.

    Returns:
        Alpha cap (``max_alpha`` zoomed out to ``min_alpha`` zoomed in) and
        velocity decay (``min_velocity_decay`` to ``max_velocity_decay``)
    """
    min_alpha = min_alpha if min_alpha is not None else settings.zoom_min_alpha
    max_alpha = max_alpha if max_alpha is not None else settings.zoom_max_alpha
    min_velocity_decay = (
        min_velocity_decay if min_velocity_decay is not None else settings.zoom_min_velocity_decay
    )
    max_velocity_decay = (
        max_velocity_decay if max_velocity_decay is not None else settings.zoom_max_velocity_decay
    )

    curve = zoom_progress(k, full_energy_scale, halt_scale)
    return ZoomSettling(
        alpha_cap=max_alpha - curve * (max_alpha - min_alpha),
        velocity_decay=min_velocity_decay + curve * (max_velocity_decay - min_velocity_decay),
    )
