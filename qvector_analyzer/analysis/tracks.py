"""Track selection and track-based sub-events.

Selected tracks are split by pseudorapidity into a positive and a negative
sub-event. Tracks with ``|eta| < eta_gap`` or ``|eta| > eta_max`` join
neither. Each sub-event vector is the arithmetic mean over its members::

    Q = (1/N) * sum_j pT_j * exp(i * n * phi_j)

with the member count ``N`` as weight. Unlike the channel-based vectors this
is not normalized by the pT sum, so its modulus is not bounded by 1.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np
import pandas as pd

from qvector_analyzer.models.event import TRACK_COLUMNS, TRACK_QUALITY_COLUMNS
from qvector_analyzer.models.qvector import QVector


@dataclass(frozen=True)
class TrackSubEvents:
    """Both track sub-events of one harmonic.

    ``labels_pos`` / ``labels_neg`` are the global track indices of the
    members in traversal order.
    """

    pos: QVector
    neg: QVector
    labels_pos: Tuple[int, ...]
    labels_neg: Tuple[int, ...]

    @property
    def n_pos(self) -> int:
        return len(self.labels_pos)

    @property
    def n_neg(self) -> int:
        return len(self.labels_neg)


def track_selection_mask(tracks: pd.DataFrame, *, min_pt: float, max_pt: float) -> np.ndarray:
    """Boolean mask of tracks passing the pT window and every quality flag.

    The pT window is inclusive on both edges. A missing quality column counts
    as failed for every track.
    """
    missing = [c for c in TRACK_COLUMNS if c not in tracks.columns]
    if missing:
        raise KeyError(f"Missing required track columns: {missing}")

    pt = tracks["pt"].to_numpy(dtype=float)
    mask = (pt >= float(min_pt)) & (pt <= float(max_pt))
    for col in TRACK_QUALITY_COLUMNS:
        if col not in tracks.columns:
            return np.zeros(len(tracks), dtype=bool)
        mask &= tracks[col].to_numpy(dtype=bool)
    return mask


def select_tracks(tracks: pd.DataFrame, *, min_pt: float, max_pt: float) -> pd.DataFrame:
    """Rows of ``tracks`` passing :func:`track_selection_mask`, order preserved."""
    return tracks.loc[track_selection_mask(tracks, min_pt=min_pt, max_pt=max_pt)]


def partition_by_eta(eta: np.ndarray, *, eta_gap: float, eta_max: float) -> Tuple[np.ndarray, np.ndarray]:
    """Masks of the positive and negative sub-events (disjoint)."""
    e = np.asarray(eta, dtype=float)
    inside = (np.abs(e) >= float(eta_gap)) & (np.abs(e) <= float(eta_max))
    return inside & (e > 0.0), inside & (e < 0.0)


def _mean_qvector(pt: np.ndarray, phi: np.ndarray, harmonic: int) -> QVector:
    n = int(pt.size)
    if n == 0:
        return QVector.unavailable(0.0)
    q = np.sum(pt * np.exp(1j * float(harmonic) * phi)) / float(n)
    return QVector.defined(q.real, q.imag, float(n))


def build_track_subevents(
    selected: pd.DataFrame,
    harmonic: int,
    *,
    eta_gap: float,
    eta_max: float,
    enable_pos: bool = True,
    enable_neg: bool = True,
) -> TrackSubEvents:
    """Build both sub-event vectors from already selected tracks.

    A disabled sub-event yields a NOT_REQUESTED vector with no members. An
    enabled sub-event without members yields an UNAVAILABLE vector.
    """
    eta = selected["eta"].to_numpy(dtype=float)
    pt = selected["pt"].to_numpy(dtype=float)
    phi = selected["phi"].to_numpy(dtype=float)
    gidx = selected["global_index"].to_numpy(dtype=np.int64)

    pos, neg = partition_by_eta(eta, eta_gap=eta_gap, eta_max=eta_max)

    if enable_pos:
        q_pos = _mean_qvector(pt[pos], phi[pos], harmonic)
        labels_pos = tuple(int(i) for i in gidx[pos])
    else:
        q_pos, labels_pos = QVector.not_requested(), ()

    if enable_neg:
        q_neg = _mean_qvector(pt[neg], phi[neg], harmonic)
        labels_neg = tuple(int(i) for i in gidx[neg])
    else:
        q_neg, labels_neg = QVector.not_requested(), ()

    return TrackSubEvents(pos=q_pos, neg=q_neg, labels_pos=labels_pos, labels_neg=labels_neg)
