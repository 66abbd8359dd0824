"""Channel-based sub-event accumulation.

For one detector sub-system and harmonic order ``n``::

    Q = sum_i a_i * exp(i * n * phi_i)
    W = sum_i a_i

with ``a_i`` the gain-equalized amplitude of channel ``i`` and ``phi_i`` its
azimuth. The output is ``Q / W`` when ``W > eps`` and an UNAVAILABLE vector
otherwise. Since the result is a weighted mean of unit vectors its modulus is
at most 1 for non-negative amplitudes.

All functions here are pure.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from qvector_analyzer.models.qvector import QVector
from qvector_analyzer.models.subsystems import DetectorFamily


DEFAULT_AMPLITUDE_EPS = 1e-8


def equalize_amplitudes(
    channels: np.ndarray,
    amplitudes: np.ndarray,
    gains: Optional[np.ndarray],
) -> np.ndarray:
    """Divide each amplitude by the relative gain of its channel.

    Channels outside the gain table (or all channels when ``gains`` is None)
    use a gain of 1.
    """
    ch = np.asarray(channels, dtype=int).reshape(-1)
    amp = np.asarray(amplitudes, dtype=float).reshape(-1)
    if ch.shape != amp.shape:
        raise ValueError(f"channels and amplitudes must have the same length, got {ch.size} and {amp.size}")
    if gains is None:
        return amp.copy()
    g = np.asarray(gains, dtype=float).reshape(-1)
    factor = np.ones(amp.shape, dtype=float)
    ok = (ch >= 0) & (ch < g.size)
    factor[ok] = g[ch[ok]]
    return amp / factor


def accumulate(
    phi: np.ndarray,
    weights: np.ndarray,
    harmonic: int,
    *,
    eps: float = DEFAULT_AMPLITUDE_EPS,
) -> QVector:
    """Weighted mean of ``exp(i*n*phi)``.

    Entries with a non-finite azimuth (channels without geometry) are skipped
    and do not contribute to the weight.
    """
    p = np.asarray(phi, dtype=float).reshape(-1)
    w = np.asarray(weights, dtype=float).reshape(-1)
    if p.shape != w.shape:
        raise ValueError(f"phi and weights must have the same length, got {p.size} and {w.size}")
    ok = np.isfinite(p) & np.isfinite(w)
    p = p[ok]
    w = w[ok]

    W = float(np.sum(w))
    if not W > float(eps):
        return QVector.unavailable(W)
    Q = np.sum(w * np.exp(1j * float(harmonic) * p))
    Q = Q / W
    return QVector.defined(Q.real, Q.imag, W)


def sum_qvector(
    family: DetectorFamily,
    channels: np.ndarray,
    amplitudes: np.ndarray,
    harmonic: int,
    *,
    geometry,
    gains: Optional[np.ndarray] = None,
    eps: float = DEFAULT_AMPLITUDE_EPS,
) -> QVector:
    """Raw Q-vector of one channel-based sub-event.

    Parameters
    ----------
    family:
        Detector family the channel ids refer to.
    channels, amplitudes:
        Family-wide channel ids and raw amplitudes.
    harmonic:
        Harmonic order n.
    geometry:
        Object with ``angles(family, channels) -> np.ndarray`` (a
        :class:`~qvector_analyzer.conditions.providers.GeometryProvider`).
    gains:
        Relative gain table of the family, or None for unit gains.
    eps:
        Minimum amplitude sum for a defined vector.
    """
    ch = np.asarray(channels, dtype=int).reshape(-1)
    corrected = equalize_amplitudes(ch, amplitudes, gains)
    phi = geometry.angles(family, ch) if ch.size else np.zeros(0, dtype=float)
    return accumulate(phi, corrected, harmonic, eps=eps)
