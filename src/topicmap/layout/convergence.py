"""Convergence tracking for the layout simulation.

The simulation runs hot (constant alpha target) until node speeds calm down,
then cools (alpha decays to zero, collision enabled) and finally settles.
"""

import logging
from dataclasses import dataclass
from enum import Enum

import numpy as np

from topicmap.config import settings

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    """Layout state machine phase."""

    HOT = "hot"  # Alpha held at the hot target, no collision
    COOLING = "cooling"  # Alpha decaying toward zero, collision on
    SETTLED = "settled"  # Alpha below the floor, negligible movement


def node_speeds(vel: np.ndarray) -> np.ndarray:
    return np.sqrt(np.einsum("ij,ij->i", vel, vel))


def clamp_velocities(vel: np.ndarray, max_velocity: float) -> int:
    """
    Scale down velocities longer than ``max_velocity``, in place.

    Returns:
        Number of clamped nodes
    """
    if len(vel) == 0:
        return 0
    speeds = node_speeds(vel)
    fast = speeds > max_velocity
    if fast.any():
        vel[fast] *= (max_velocity / speeds[fast])[:, None]
    return int(fast.sum())


def p95_speed(vel: np.ndarray) -> float:
    """95th percentile node speed (nearest rank on the sorted speeds)."""
    if len(vel) == 0:
        return 0.0
    speeds = np.sort(node_speeds(vel))
    index = min(int(len(speeds) * 0.95), len(speeds) - 1)
    return float(speeds[index])


def should_start_cooling(
    tick_count: int,
    calm_ticks: int,
    min_ticks_before_check: int,
    settle_consecutive_ticks: int,
    max_hot_ticks: int,
) -> bool:
    """Hot -> Cooling once speeds stayed calm long enough, or the hot phase ran too long."""
    if tick_count >= max_hot_ticks:
        return True
    return tick_count > min_ticks_before_check and calm_ticks >= settle_consecutive_ticks


@dataclass
class ConvergenceState:
    """Per-phase tick counters. Reset by drags and new graphs."""

    phase: Phase = Phase.HOT
    tick_count: int = 0  # Ticks since the last reheat
    calm_ticks: int = 0  # Consecutive hot ticks under the speed threshold
    last_speed: float = 0.0

    def reheat(self) -> None:
        self.phase = Phase.HOT
        self.tick_count = 0
        self.calm_ticks = 0


class ConvergenceDetector:
    """Velocity-based settling heuristic driving the phase transitions."""

    def __init__(
        self,
        velocity_threshold: float | None = None,
        min_ticks_before_check: int | None = None,
        settle_consecutive_ticks: int | None = None,
        max_hot_ticks: int | None = None,
    ) -> None:
        self.velocity_threshold = velocity_threshold or settings.velocity_threshold
        self.min_ticks_before_check = (
            min_ticks_before_check
            if min_ticks_before_check is not None
            else settings.min_ticks_before_check
        )
        self.settle_consecutive_ticks = (
            settle_consecutive_ticks or settings.settle_consecutive_ticks
        )
        self.max_hot_ticks = max_hot_ticks or settings.max_hot_ticks
        self.state = ConvergenceState()

    @property
    def phase(self) -> Phase:
        return self.state.phase

    def observe(self, vel: np.ndarray) -> bool:
        """
        Record one hot tick.

        Args:
            vel: Velocities of the free (unpinned) nodes after integration

        Returns:
            True if the simulation should start cooling now
        """
        state = self.state
        state.tick_count += 1
        if state.phase != Phase.HOT:
            return False

        state.last_speed = p95_speed(vel)
        if state.tick_count > self.min_ticks_before_check:
            if state.last_speed < self.velocity_threshold:
                state.calm_ticks += 1
            else:
                state.calm_ticks = 0

        cooling = should_start_cooling(
            state.tick_count,
            state.calm_ticks,
            self.min_ticks_before_check,
            self.settle_consecutive_ticks,
            self.max_hot_ticks,
        )
        if cooling and state.tick_count >= self.max_hot_ticks and state.calm_ticks == 0:
            logger.info(
                f"Layout still moving after {state.tick_count} ticks "
                f"(p95 speed {state.last_speed:.2f}), forcing cooldown"
            )
        return cooling
