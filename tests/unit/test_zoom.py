"""Unit tests for zoom-dependent settling."""

import math

import pytest

from topicmap.layout import settling_for_zoom, zoom_progress
from topicmap.layout.zoom import ZOOM_CURVE_EXPONENT


def _settling(k: float):
    return settling_for_zoom(
        k,
        full_energy_scale=1.0,
        halt_scale=8.0,
        min_alpha=0.01,
        max_alpha=0.3,
        min_velocity_decay=0.5,
        max_velocity_decay=0.9,
    )


class TestZoomProgress:
    """Tests for the eased log-scale zoom position."""

    def test_endpoints(self) -> None:
        assert zoom_progress(1.0, 1.0, 8.0) == 0.0
        assert zoom_progress(8.0, 1.0, 8.0) == 1.0

    def test_clamped(self) -> None:
        assert zoom_progress(0.25, 1.0, 8.0) == 0.0
        assert zoom_progress(100.0, 1.0, 8.0) == 1.0

    def test_eased_midpoint(self) -> None:
        progress = zoom_progress(math.sqrt(8.0), 1.0, 8.0)
        assert progress == pytest.approx(0.5**ZOOM_CURVE_EXPONENT)
        assert progress > 0.5

    def test_invalid_scale(self) -> None:
        with pytest.raises(ValueError):
            zoom_progress(0.0, 1.0, 8.0)


class TestSettlingForZoom:
    """Tests for alpha caps and damping."""

    def test_zoomed_out_full_energy(self) -> None:
        settling = _settling(1.0)
        assert settling.alpha_cap == pytest.approx(0.3)
        assert settling.velocity_decay == pytest.approx(0.5)

    def test_zoomed_in_halted(self) -> None:
        settling = _settling(8.0)
        assert settling.alpha_cap == pytest.approx(0.01)
        assert settling.velocity_decay == pytest.approx(0.9)

    def test_monotonic_in_zoom(self) -> None:
        steps = [_settling(k) for k in (0.5, 1.0, 1.5, 2.0, 4.0, 6.0, 8.0, 12.0)]

        caps = [s.alpha_cap for s in steps]
        decays = [s.velocity_decay for s in steps]

        assert caps == sorted(caps, reverse=True)
        assert decays == sorted(decays)
