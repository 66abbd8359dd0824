from __future__ import annotations

import numpy as np
import pytest

from qvector_analyzer.analysis.accumulate import accumulate, equalize_amplitudes, sum_qvector
from qvector_analyzer.conditions.geometry import ring_geometry
from qvector_analyzer.models.qvector import QStatus, SENTINEL_UNAVAILABLE
from qvector_analyzer.models.subsystems import DetectorFamily


class _Geometry:
    """GeometryProvider over aligned ring geometries (zero offsets)."""

    def __init__(self) -> None:
        ft0 = ring_geometry(DetectorFamily.FT0, [("A", 96), ("C", 112)])
        fv0 = ring_geometry(DetectorFamily.FV0, [("left", 24), ("right", 24)])
        self._g = {
            DetectorFamily.FT0: ft0.with_offsets(np.zeros((2, 2))),
            DetectorFamily.FV0: fv0.with_offsets(np.zeros((2, 2))),
        }

    def angles(self, family, channels):
        return self._g[DetectorFamily(family)].angles(channels)

    def angle_of(self, family, channel):
        return self._g[DetectorFamily(family)].angle_of(channel)


def test_single_channel_at_zero_angle() -> None:
    q = sum_qvector(DetectorFamily.FT0, [0], [100.0], 2, geometry=_Geometry(), gains=np.ones(208))
    assert q.status is QStatus.DEFINED
    assert q.re == pytest.approx(1.0, abs=1e-12)
    assert q.im == pytest.approx(0.0, abs=1e-12)
    assert q.weight == pytest.approx(100.0)


def test_modulus_bounded_by_one_for_positive_weights() -> None:
    rng = np.random.default_rng(1234)
    for _ in range(50):
        k = int(rng.integers(1, 40))
        phi = rng.uniform(-np.pi, np.pi, size=k)
        w = rng.uniform(0.0, 500.0, size=k)
        for n in (1, 2, 3, 4):
            q = accumulate(phi, w, n)
            if q.is_defined:
                assert abs(q.value) <= 1.0 + 1e-12


def test_zero_weight_gives_unavailable_not_nan() -> None:
    q = accumulate(np.array([0.3, 1.2]), np.array([0.0, 0.0]), 2)
    assert q.status is QStatus.UNAVAILABLE
    assert q.as_pair() == (SENTINEL_UNAVAILABLE, SENTINEL_UNAVAILABLE)
    assert not np.isnan(q.re) and not np.isnan(q.im)


def test_weight_at_epsilon_is_unavailable() -> None:
    q = accumulate(np.array([0.0]), np.array([1e-8]), 2, eps=1e-8)
    assert q.status is QStatus.UNAVAILABLE
    q = accumulate(np.array([0.0]), np.array([2e-8]), 2, eps=1e-8)
    assert q.status is QStatus.DEFINED


def test_empty_input_is_unavailable() -> None:
    q = sum_qvector(DetectorFamily.FV0, [], [], 2, geometry=_Geometry())
    assert q.status is QStatus.UNAVAILABLE
    assert q.weight == 0.0


def test_two_opposite_channels_cancel_for_odd_harmonic() -> None:
    # Channels 0 and 48 of the 96-channel A ring are opposite in azimuth.
    g = _Geometry()
    q3 = sum_qvector(DetectorFamily.FT0, [0, 48], [10.0, 10.0], 3, geometry=g)
    q2 = sum_qvector(DetectorFamily.FT0, [0, 48], [10.0, 10.0], 2, geometry=g)
    assert abs(q3.value) == pytest.approx(0.0, abs=1e-12)
    assert q2.re == pytest.approx(1.0, abs=1e-12)
    assert q2.im == pytest.approx(0.0, abs=1e-12)


def test_gain_equalization_divides_amplitudes() -> None:
    gains = np.array([2.0, 0.5, 1.0])
    out = equalize_amplitudes([0, 1, 2], [10.0, 10.0, 10.0], gains)
    np.testing.assert_allclose(out, [5.0, 20.0, 10.0])


def test_gain_defaults_to_one_outside_table_or_without_table() -> None:
    out = equalize_amplitudes([0, 7], [4.0, 4.0], np.array([2.0]))
    np.testing.assert_allclose(out, [2.0, 4.0])
    out = equalize_amplitudes([0, 7], [4.0, 4.0], None)
    np.testing.assert_allclose(out, [4.0, 4.0])


def test_gain_changes_weighting() -> None:
    g = _Geometry()
    # Channel 0 at phi=0, channel 24 at phi=pi/2 (A ring, 96 channels), harmonic 1.
    gains = np.ones(208)
    gains[24] = 3.0
    q = sum_qvector(DetectorFamily.FT0, [0, 24], [30.0, 30.0], 1, geometry=g, gains=gains)
    assert q.weight == pytest.approx(40.0)
    assert q.re == pytest.approx(30.0 / 40.0)
    assert q.im == pytest.approx(10.0 / 40.0)


def test_channels_without_geometry_are_skipped() -> None:
    q = accumulate(np.array([0.0, np.nan]), np.array([5.0, 100.0]), 2)
    assert q.weight == pytest.approx(5.0)
    assert q.re == pytest.approx(1.0)
    assert q.im == pytest.approx(0.0, abs=1e-12)


def test_mismatched_lengths_raise() -> None:
    with pytest.raises(ValueError):
        accumulate(np.zeros(2), np.zeros(3), 2)
    with pytest.raises(ValueError):
        equalize_amplitudes([0, 1], [1.0], None)
