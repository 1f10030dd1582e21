"""Forces for the keyword map layout (vectorized with numpy).

Every force works on the simulation's flat arrays: ``pos`` and ``vel`` are
``(n, 2)`` float arrays indexed like the simulation's node list. Forces only
add to ``vel``; integration and pinning happen in the simulation.
"""

import logging

import numpy as np

from topicmap.config import settings

logger = logging.getLogger(__name__)

# Rows per block for the all-pairs forces, bounds the (block, n, 2) temporaries
PAIR_BLOCK_SIZE = 512

MIN_BOUNDARY_RADIUS = 100.0


def contrast_curve(value, exponent: float = 1.0):
    """
    Symmetric S-curve around 0.5.

    Values below 0.5 are pushed lower and values above pushed higher; the
    exponent sets the steepness (1.0 is the identity). Works on scalars and
    arrays.
    """
    if exponent <= 0:
        raise ValueError(f"Contrast exponent must be positive, got {exponent}")
    v = np.clip(np.asarray(value, dtype=np.float64), 0.0, 1.0)
    if exponent == 1.0:
        result = v
    else:
        low = 0.5 * np.power(2.0 * v, exponent)
        high = 1.0 - 0.5 * np.power(2.0 * (1.0 - v), exponent)
        result = np.where(v <= 0.5, low, high)
    if np.ndim(result) == 0:
        return float(result)
    return result


def _jiggle(rng: np.random.Generator, shape) -> np.ndarray:
    return (rng.random(shape) - 0.5) * 1e-6


class LinkForce:
    """
    Attraction along similarity edges.

    Similar keywords get a shorter rest length and a stiffer spring:
    distance = base + (1 - adjusted) * range, strength = base + adjusted * range,
    with mutual-neighbor edges boosted by ``knn_strength``.
    """

    def __init__(
        self,
        sources: np.ndarray,
        targets: np.ndarray,
        similarities: np.ndarray,
        mutual: np.ndarray,
        node_count: int,
        contrast_exponent: float | None = None,
        knn_strength: float | None = None,
        base_distance: float | None = None,
        distance_range: float | None = None,
        base_strength: float | None = None,
        strength_range: float | None = None,
        seed: int | None = None,
    ) -> None:
        self.contrast_exponent = (
            contrast_exponent if contrast_exponent is not None else settings.contrast_exponent
        )
        self.knn_strength = knn_strength if knn_strength is not None else settings.knn_strength
        self.base_distance = (
            base_distance if base_distance is not None else settings.link_base_distance
        )
        self.distance_range = (
            distance_range if distance_range is not None else settings.link_distance_range
        )
        self.base_strength = (
            base_strength if base_strength is not None else settings.link_base_strength
        )
        self.strength_range = (
            strength_range if strength_range is not None else settings.link_strength_range
        )

        self.sources = np.asarray(sources, dtype=np.intp)
        self.targets = np.asarray(targets, dtype=np.intp)
        self._rng = np.random.default_rng(seed)

        adjusted = contrast_curve(np.asarray(similarities, dtype=np.float64), self.contrast_exponent)
        adjusted = np.atleast_1d(adjusted)
        self.distances = self.base_distance + (1.0 - adjusted) * self.distance_range
        self.strengths = self.base_strength + adjusted * self.strength_range
        self.strengths = np.where(
            np.asarray(mutual, dtype=bool), self.strengths * self.knn_strength, self.strengths
        )

        # Share each correction by degree so hubs move less than leaves
        counts = np.bincount(
            np.concatenate([self.sources, self.targets]), minlength=node_count
        ).astype(np.float64)
        if len(self.sources):
            self.bias = counts[self.sources] / (counts[self.sources] + counts[self.targets])
        else:
            self.bias = np.zeros(0)

    def __len__(self) -> int:
        return len(self.sources)

    def apply(self, pos: np.ndarray, vel: np.ndarray, alpha: float) -> None:
        if not len(self.sources):
            return
        s, t = self.sources, self.targets
        delta = (pos[t] + vel[t]) - (pos[s] + vel[s])
        zero = (delta[:, 0] == 0) & (delta[:, 1] == 0)
        if zero.any():
            delta[zero] = _jiggle(self._rng, (int(zero.sum()), 2))

        length = np.linalg.norm(delta, axis=1)
        scale = (length - self.distances) / length * alpha * self.strengths
        delta *= scale[:, None]

        np.add.at(vel, t, -delta * self.bias[:, None])
        np.add.at(vel, s, delta * (1.0 - self.bias)[:, None])


class ManyBodyForce:
    """Inverse-distance repulsion between all node pairs."""

    def __init__(
        self,
        strength: float | None = None,
        distance_min: float | None = None,
        seed: int | None = None,
    ) -> None:
        self.strength = strength if strength is not None else settings.charge_strength
        distance_min = distance_min if distance_min is not None else settings.charge_distance_min
        self.distance_min2 = distance_min * distance_min
        self._rng = np.random.default_rng(seed)

    def apply(self, pos: np.ndarray, vel: np.ndarray, alpha: float) -> None:
        n = len(pos)
        if n < 2:
            return
        for start in range(0, n, PAIR_BLOCK_SIZE):
            stop = min(start + PAIR_BLOCK_SIZE, n)
            # Vector from each node in the block to every other node
            delta = pos[None, :, :] - pos[start:stop, None, :]
            dist2 = np.einsum("ijk,ijk->ij", delta, delta)

            rows = np.arange(stop - start)
            cols = rows + start
            coincident = dist2 == 0
            coincident[rows, cols] = False
            if coincident.any():
                count = int(coincident.sum())
                delta[coincident] = _jiggle(self._rng, (count, 2))
                dist2[coincident] = np.einsum("ij,ij->i", delta[coincident], delta[coincident])

            dist2 = np.maximum(dist2, self.distance_min2)
            weight = self.strength * alpha / dist2
            weight[rows, cols] = 0.0
            vel[start:stop] += np.einsum("ij,ijk->ik", weight, delta)


class BoundaryForce:
    """
    Pulls stray nodes back toward the graph.

    The boundary is a circle around the centroid whose radius is
    ``radius_factor`` times the current extent (a percentile of node distances
    from the centroid). Nodes outside it are pulled in proportionally to the
    overshoot. Not scaled by alpha, so it still holds once the layout cools.
    """

    def __init__(
        self,
        radius_factor: float | None = None,
        strength: float | None = None,
        extent_percentile: float | None = None,
        min_radius: float = MIN_BOUNDARY_RADIUS,
    ) -> None:
        self.radius_factor = (
            radius_factor if radius_factor is not None else settings.boundary_radius_factor
        )
        self.strength = strength if strength is not None else settings.boundary_strength
        self.extent_percentile = (
            extent_percentile if extent_percentile is not None else settings.boundary_extent_percentile
        )
        self.min_radius = min_radius
        self.radius: float | None = None

    def compute_radius(self, pos: np.ndarray, center: np.ndarray) -> float:
        dist = np.linalg.norm(pos - center, axis=1)
        extent = float(np.percentile(dist, self.extent_percentile * 100.0))
        return max(extent * self.radius_factor, self.min_radius)

    def apply(self, pos: np.ndarray, vel: np.ndarray, alpha: float) -> None:
        if len(pos) < 2 or self.strength == 0:
            return
        center = pos.mean(axis=0)
        self.radius = self.compute_radius(pos, center)

        offset = pos - center
        dist = np.linalg.norm(offset, axis=1)
        outside = dist > self.radius
        if not outside.any():
            return
        overshoot = dist[outside] - self.radius
        vel[outside] -= offset[outside] * (self.strength * overshoot / dist[outside])[:, None]


class CollisionForce:
    """Minimum separation between node centers; enabled once the layout cools."""

    def __init__(
        self,
        radius: float | None = None,
        strength: float | None = None,
        seed: int | None = None,
    ) -> None:
        self.radius = radius if radius is not None else settings.collision_radius
        self.strength = strength if strength is not None else settings.collision_strength
        self._rng = np.random.default_rng(seed)

    def apply(self, pos: np.ndarray, vel: np.ndarray, alpha: float) -> None:
        n = len(pos)
        if n < 2 or self.strength == 0:
            return
        min_dist = 2.0 * self.radius
        predicted = pos + vel
        push = np.zeros_like(vel)
        for start in range(0, n, PAIR_BLOCK_SIZE):
            stop = min(start + PAIR_BLOCK_SIZE, n)
            # Vector from every other node to each node in the block
            delta = predicted[start:stop, None, :] - predicted[None, :, :]
            dist = np.sqrt(np.einsum("ijk,ijk->ij", delta, delta))

            rows = np.arange(stop - start)
            cols = rows + start
            overlap = dist < min_dist
            overlap[rows, cols] = False
            if not overlap.any():
                continue

            coincident = overlap & (dist == 0)
            if coincident.any():
                count = int(coincident.sum())
                delta[coincident] = _jiggle(self._rng, (count, 2))
                dist[coincident] = np.linalg.norm(delta[coincident], axis=1)

            safe = np.where(overlap, dist, 1.0)
            # Each node of an overlapping pair takes half the correction
            weight = np.where(overlap, (min_dist - safe) / safe * self.strength * 0.5, 0.0)
            push[start:stop] += np.einsum("ij,ijk->ik", weight, delta)
        vel += push
