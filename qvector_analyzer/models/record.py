"""Per-collision output record.

An :class:`EventRecord` is created fresh per collision, fully computed by the
assembler and then handed to the output boundary. Q-vectors inside it are
tagged values (:class:`~qvector_analyzer.models.qvector.QVector`); the flat
layout with numeric sentinels is produced by :meth:`EventRecord.to_flat_dict`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .qvector import CorrectionLevel, QVector
from .subsystems import SubSystem


NO_CALIBRATION_HARMONIC = -1


@dataclass(frozen=True)
class HarmonicResult:
    """All sub-system vectors of one harmonic.

    Attributes
    ----------
    harmonic:
        Harmonic order n.
    vectors:
        ``vectors[subsystem][level]`` for every :class:`SubSystem` and
        :class:`CorrectionLevel`.
    calibrated:
        Whether corrections were applied for this harmonic. Cells the
        calibration table marks unusable still leave their sub-system raw.
    calibration_harmonic:
        Harmonic whose calibration table was used (differs from ``harmonic``
        after a fallback), or None when uncalibrated.
    """

    harmonic: int
    vectors: Tuple[Tuple[QVector, ...], ...]
    calibrated: bool
    calibration_harmonic: Optional[int] = None

    @property
    def exported_calibration_harmonic(self) -> int:
        """``calibration_harmonic`` with None mapped to ``NO_CALIBRATION_HARMONIC``."""
        if self.calibration_harmonic is None:
            return NO_CALIBRATION_HARMONIC
        return int(self.calibration_harmonic)

    def vector(self, sub: SubSystem, level: CorrectionLevel = CorrectionLevel.RESCALED) -> QVector:
        return self.vectors[int(sub)][int(level)]

    def final(self, sub: SubSystem) -> QVector:
        return self.vector(sub, CorrectionLevel.RESCALED)

    def raw(self, sub: SubSystem) -> QVector:
        return self.vector(sub, CorrectionLevel.RAW)


@dataclass(frozen=True)
class EventRecord:
    """Output of the assembler for one collision.

    Notes
    - ``centrality`` is the value used for binning, or the uncalibrated
      sentinel (110) when the estimator fell outside the calibrated window.
    - ``amplitude_sums`` and the track counts do not depend on the harmonic.
    - track labels are in sub-event traversal order.
    """

    collision_id: int
    run_number: int
    centrality: float
    is_calibrated: bool
    harmonics: Tuple[HarmonicResult, ...]
    enabled: Tuple[str, ...]

    amplitude_sums: Dict[str, float]
    n_trk_pos: int
    n_trk_neg: int
    labels_pos: Tuple[int, ...] = ()
    labels_neg: Tuple[int, ...] = ()

    def result(self, harmonic: int) -> HarmonicResult:
        for h in self.harmonics:
            if h.harmonic == int(harmonic):
                return h
        raise KeyError(f"Harmonic {harmonic} was not computed for collision {self.collision_id}")

    def is_enabled(self, sub: SubSystem) -> bool:
        return sub.name in self.enabled

    def weight_of(self, sub: SubSystem) -> float:
        """Amplitude sum (channel-based) or member count (track-based)."""
        if sub is SubSystem.BPOS:
            return float(self.n_trk_pos)
        if sub is SubSystem.BNEG:
            return float(self.n_trk_neg)
        return float(self.amplitude_sums.get(sub.name, 0.0))

    def to_flat_dict(self) -> Dict[str, Any]:
        """Export as a flat dict of scalars and lists with legacy sentinels.

        Layout
        ------
        - ``qvec_re`` / ``qvec_im``: harmonic-major, then sub-system, then
          correction level (``len = n_harmonics * 6 * 4``).
        - ``qvec_amp``: per harmonic, the four channel amplitude sums followed
          by the two track counts.
        - ``<sub>_re`` / ``<sub>_im``: final corrected components, one entry
          per harmonic.
        - ``calibrated`` / ``calibration_harmonic``: per harmonic, whether
          corrections were applied and which harmonic's table was used
          (``NO_CALIBRATION_HARMONIC`` when none). ``is_calibrated`` is the
          event-wide flag.
        """
        qre: List[float] = []
        qim: List[float] = []
        qamp: List[float] = []
        per_sub: Dict[str, List[float]] = {}
        for sub in SubSystem:
            per_sub[f"{sub.name.lower()}_re"] = []
            per_sub[f"{sub.name.lower()}_im"] = []

        for h in self.harmonics:
            for sub in SubSystem:
                for level in CorrectionLevel:
                    re, im = h.vector(sub, level).as_pair()
                    qre.append(re)
                    qim.append(im)
                re, im = h.final(sub).as_pair()
                per_sub[f"{sub.name.lower()}_re"].append(re)
                per_sub[f"{sub.name.lower()}_im"].append(im)
            qamp.extend(self.weight_of(sub) for sub in SubSystem)

        d: Dict[str, Any] = {
            "collision_id": self.collision_id,
            "run_number": self.run_number,
            "cent": self.centrality,
            "is_calibrated": self.is_calibrated,
            "harmonics": [h.harmonic for h in self.harmonics],
            "calibrated": [h.calibrated for h in self.harmonics],
            "calibration_harmonic": [h.exported_calibration_harmonic for h in self.harmonics],
            "qvec_re": qre,
            "qvec_im": qim,
            "qvec_amp": qamp,
        }
        d.update(per_sub)
        for sub in (SubSystem.FT0C, SubSystem.FT0A, SubSystem.FT0M, SubSystem.FV0A):
            d[f"sum_ampl_{sub.name.lower()}"] = self.weight_of(sub)
        d["n_trk_bpos"] = self.n_trk_pos
        d["n_trk_bneg"] = self.n_trk_neg
        d["labels_bpos"] = list(self.labels_pos)
        d["labels_bneg"] = list(self.labels_neg)
        return d
