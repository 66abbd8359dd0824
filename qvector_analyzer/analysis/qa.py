"""Quality-assurance histograms filled while producing Q-vectors.

- amplitude vs channel, before and after gain equalization, per detector family
- selected tracks in (pT, eta, phi, centrality)

Histograms are plain numpy count arrays. One instance is not thread-safe;
parallel workers keep their own and combine them with :meth:`QaHistograms.merge`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple

import numpy as np

from qvector_analyzer.models.subsystems import DetectorFamily


@dataclass(frozen=True)
class Axis:
    n_bins: int
    lo: float
    hi: float

    @property
    def edges(self) -> np.ndarray:
        return np.linspace(self.lo, self.hi, self.n_bins + 1)


AMPLITUDE_AXIS = Axis(1000, 0.0, 5000.0)
CHANNEL_AXIS = Axis(220, 0.0, 220.0)
PT_AXIS = Axis(40, 0.0, 4.0)
ETA_AXIS = Axis(32, -0.8, 0.8)
PHI_AXIS = Axis(32, 0.0, 2.0 * np.pi)
CENT_AXIS = Axis(20, 0.0, 100.0)


def _zeros(*axes: Axis) -> np.ndarray:
    return np.zeros(tuple(a.n_bins for a in axes), dtype=np.int64)


@dataclass
class QaHistograms:
    amplitude: Dict[DetectorFamily, np.ndarray] = field(
        default_factory=lambda: {f: _zeros(AMPLITUDE_AXIS, CHANNEL_AXIS) for f in DetectorFamily}
    )
    amplitude_corrected: Dict[DetectorFamily, np.ndarray] = field(
        default_factory=lambda: {f: _zeros(AMPLITUDE_AXIS, CHANNEL_AXIS) for f in DetectorFamily}
    )
    tracks: np.ndarray = field(default_factory=lambda: _zeros(PT_AXIS, ETA_AXIS, PHI_AXIS, CENT_AXIS))

    def fill_amplitudes(
        self,
        family: DetectorFamily,
        channels: np.ndarray,
        raw: np.ndarray,
        corrected: np.ndarray,
    ) -> None:
        fam = DetectorFamily(family)
        edges = (AMPLITUDE_AXIS.edges, CHANNEL_AXIS.edges)
        ch = np.asarray(channels, dtype=float)
        h, _, _ = np.histogram2d(np.asarray(raw, dtype=float), ch, bins=edges)
        self.amplitude[fam] += h.astype(np.int64)
        h, _, _ = np.histogram2d(np.asarray(corrected, dtype=float), ch, bins=edges)
        self.amplitude_corrected[fam] += h.astype(np.int64)

    def fill_tracks(self, pt: np.ndarray, eta: np.ndarray, phi: np.ndarray, centrality: float) -> None:
        pt = np.asarray(pt, dtype=float)
        if pt.size == 0:
            return
        sample = np.column_stack(
            [pt, np.asarray(eta, dtype=float), np.asarray(phi, dtype=float), np.full(pt.size, float(centrality))]
        )
        edges = [a.edges for a in (PT_AXIS, ETA_AXIS, PHI_AXIS, CENT_AXIS)]
        h, _ = np.histogramdd(sample, bins=edges)
        self.tracks += h.astype(np.int64)

    def merge(self, other: "QaHistograms") -> None:
        for fam in DetectorFamily:
            self.amplitude[fam] += other.amplitude[fam]
            self.amplitude_corrected[fam] += other.amplitude_corrected[fam]
        self.tracks += other.tracks

    def edges(self, name: str) -> Tuple[np.ndarray, ...]:
        if name == "tracks":
            return tuple(a.edges for a in (PT_AXIS, ETA_AXIS, PHI_AXIS, CENT_AXIS))
        return AMPLITUDE_AXIS.edges, CHANNEL_AXIS.edges
