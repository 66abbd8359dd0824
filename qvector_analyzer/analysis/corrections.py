"""Q-vector calibration chain: recentering, twist and rescaling.

Correction levels
-----------------
For every sub-system and harmonic four levels are kept, each computed from
the raw vector with the constants of the current centrality bin:

0) raw
1) recenter(raw)
2) twist(recenter(raw))
3) rescale(twist(recenter(raw)))

Recentering therefore enters each level exactly once. Level 3 is the final
corrected vector.

Formulas
--------
With ``(mx, my)`` the mean, ``(lp, lm)`` the twist and ``(ap, am)`` the
rescale coefficients::

    recenter:  x' = x - mx                     y' = y - my
    twist:     x' = (x - lm*y) / (1 - lm*lp)   y' = (y - lp*x) / (1 - lm*lp)
    rescale:   x' = x / ap                     y' = y / am

The element-wise functions accept scalars or numpy arrays.
"""

from __future__ import annotations

import math
from typing import Optional, Tuple

from qvector_analyzer.conditions.calibration import N_CENTRALITY_BINS, CorrectionConstants
from qvector_analyzer.models.qvector import N_LEVELS, QVector


def recenter(x, y, mean_x, mean_y):
    return x - mean_x, y - mean_y


def twist(x, y, lp, lm):
    denom = 1.0 - lm * lp
    return (x - lm * y) / denom, (y - lp * x) / denom


def rescale(x, y, ap, am):
    return x / ap, y / am


def centrality_bin(centrality: float, *, max_centrality: float = float(N_CENTRALITY_BINS)) -> Optional[int]:
    """1-based calibration bin, or None outside ``[0, max_centrality)``.

    The bin is ``int(centrality) + 1``.
    """
    c = float(centrality)
    if not math.isfinite(c) or c < 0.0 or c >= float(max_centrality):
        return None
    return int(c) + 1


def correction_levels(raw: QVector, constants: Optional[CorrectionConstants]) -> Tuple[QVector, ...]:
    """All correction levels of one vector.

    Without constants, or for a vector that is not DEFINED, every level is
    the raw vector itself.
    """
    if constants is None or not raw.is_defined:
        return (raw,) * N_LEVELS

    c = constants
    x1, y1 = recenter(raw.re, raw.im, c.mean_x, c.mean_y)
    x2, y2 = twist(x1, y1, c.twist_a, c.twist_b)
    x3, y3 = rescale(x2, y2, c.rescale_x, c.rescale_y)
    return (
        raw,
        raw.with_components(x1, y1),
        raw.with_components(x2, y2),
        raw.with_components(x3, y3),
    )
