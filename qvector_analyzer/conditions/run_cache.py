"""Run-scoped conditions cache.

:class:`RunCache` owns everything that changes only between runs: relative
gain tables, per-harmonic calibration tables and aligned detector geometry.
The assembler calls :meth:`RunCache.ensure` once per event; a reload happens
exactly when the run number differs from the cached one.

A reload produces an immutable :class:`RunConditions` snapshot. Readers keep
using the snapshot they obtained, so concurrent workers never see a half
populated state; transitions are serialized by a lock (single writer).

Failure policy
--------------
- Missing alignment (or geometry) for a required family: fatal,
  :class:`~qvector_analyzer.conditions.geometry.MissingAlignmentError`.
- Any other failure while loading: fatal, :class:`RunCacheError`.
- Missing gain table: all-ones default, recorded as a warning.
- Missing calibration table for a harmonic: fallback to the fallback
  harmonic's table, else that harmonic stays uncalibrated; recorded as a
  warning.
- Calibration table with unusable cells: those (bin, sub-system) cells stay
  uncalibrated; recorded as a warning.

Warnings are logged once per reload and kept on the snapshot.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np

from qvector_analyzer.models.profile import AnalysisProfile
from qvector_analyzer.models.subsystems import SUBSYSTEM_SPECS, DetectorFamily, InputKind

from .calibration import CalibrationTable
from .geometry import DetectorGeometry, MissingAlignmentError, RunCacheError
from .providers import AlignmentProvider, CalibrationProvider, GainProvider


_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class HarmonicCalibration:
    """Calibration resolved for one harmonic.

    ``source_harmonic`` is the harmonic whose table is used (the fallback
    harmonic after a fallback), or None when no table is available.
    """

    harmonic: int
    table: Optional[CalibrationTable]
    source_harmonic: Optional[int]

    @property
    def available(self) -> bool:
        return self.table is not None


@dataclass(frozen=True)
class RunConditions:
    """Immutable conditions snapshot for one run."""

    run_number: int
    gains: Dict[DetectorFamily, np.ndarray]
    geometries: Dict[DetectorFamily, DetectorGeometry]
    calibrations: Dict[int, HarmonicCalibration]
    warnings: Tuple[str, ...] = ()

    @property
    def has_calibration(self) -> bool:
        return any(c.available for c in self.calibrations.values())

    def calibration_for(self, harmonic: int) -> HarmonicCalibration:
        c = self.calibrations.get(int(harmonic))
        if c is None:
            return HarmonicCalibration(int(harmonic), None, None)
        return c

    def gain(self, family: DetectorFamily) -> Optional[np.ndarray]:
        return self.gains.get(DetectorFamily(family))

    def angles(self, family: DetectorFamily, channels: np.ndarray) -> np.ndarray:
        fam = DetectorFamily(family)
        if fam not in self.geometries:
            raise MissingAlignmentError(fam, self.run_number)
        return self.geometries[fam].angles(channels)

    def angle_of(self, family: DetectorFamily, channel: int) -> float:
        return float(self.angles(family, np.array([channel]))[0])


def required_families(profile: AnalysisProfile) -> Tuple[DetectorFamily, ...]:
    """Detector families needed by the enabled channel-based sub-systems."""
    mask = profile.mask
    fams: List[DetectorFamily] = []
    for spec in SUBSYSTEM_SPECS:
        if spec.kind is InputKind.CHANNEL and spec.subsystem in mask and spec.family not in fams:
            fams.append(spec.family)
    return tuple(fams)


class RunCache:
    """Conditions cache keyed by run number with an explicit :meth:`refresh`."""

    def __init__(
        self,
        profile: AnalysisProfile,
        *,
        geometries: Mapping[DetectorFamily, DetectorGeometry],
        gains: Optional[GainProvider] = None,
        calibrations: Optional[CalibrationProvider] = None,
        alignment: Optional[AlignmentProvider] = None,
    ) -> None:
        self.profile = profile
        self._geometries = {DetectorFamily(k): v for k, v in geometries.items()}
        self._gains = gains
        self._calibrations = calibrations
        self._alignment = alignment
        self._lock = threading.Lock()
        self._current: Optional[RunConditions] = None
        self.n_refreshes = 0

    @property
    def current(self) -> Optional[RunConditions]:
        return self._current

    @property
    def run_number(self) -> Optional[int]:
        cur = self._current
        return None if cur is None else cur.run_number

    def invalidate(self) -> None:
        with self._lock:
            self._current = None

    def ensure(self, run_number: int) -> RunConditions:
        """Return conditions for ``run_number``, reloading only on a run change."""
        cur = self._current
        if cur is not None and cur.run_number == int(run_number):
            return cur
        with self._lock:
            cur = self._current
            if cur is not None and cur.run_number == int(run_number):
                return cur
            return self._refresh_locked(int(run_number))

    def refresh(self, run_number: int) -> RunConditions:
        """Unconditionally reload all conditions for ``run_number``."""
        with self._lock:
            return self._refresh_locked(int(run_number))

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _refresh_locked(self, run_number: int) -> RunConditions:
        _log.info("Loading conditions for run %d", run_number)
        try:
            warnings: List[str] = []
            geometries = self._load_geometries(run_number)
            gains = self._load_gains(run_number, warnings)
            calibrations = self._load_calibrations(run_number, warnings)
        except RunCacheError:
            self._current = None
            raise
        except Exception as e:
            self._current = None
            raise RunCacheError(f"Failed to load conditions for run {run_number}: {e}") from e

        cond = RunConditions(
            run_number=run_number,
            gains=gains,
            geometries=geometries,
            calibrations=calibrations,
            warnings=tuple(warnings),
        )
        for w in cond.warnings:
            _log.warning(w)
        self._current = cond
        self.n_refreshes += 1
        return cond

    def _load_geometries(self, run_number: int) -> Dict[DetectorFamily, DetectorGeometry]:
        out: Dict[DetectorFamily, DetectorGeometry] = {}
        for fam in required_families(self.profile):
            geom = self._geometries.get(fam)
            if geom is None:
                raise MissingAlignmentError(fam, run_number)
            if self._alignment is not None:
                off = self._alignment.offsets(fam, run_number)
                if off is None:
                    raise MissingAlignmentError(fam, run_number)
                geom = geom.with_offsets(off)
            out[fam] = geom.require_alignment(run_number)
        return out

    def _load_gains(self, run_number: int, warnings: List[str]) -> Dict[DetectorFamily, np.ndarray]:
        out: Dict[DetectorFamily, np.ndarray] = {}
        for fam in DetectorFamily:
            n = self.profile.channel_count(fam)
            g = None if self._gains is None else self._gains.relative_gain(fam, run_number)
            if g is None:
                warnings.append(f"Run {run_number}: no relative gain table for {fam.value}; using unit gains.")
                g = np.ones(n, dtype=float)
            g = np.asarray(g, dtype=float).reshape(-1)
            if g.size != n:
                raise ValueError(f"Gain table for {fam.value} has {g.size} entries, expected {n}")
            if not np.all(np.isfinite(g)) or np.any(g <= 0.0):
                raise ValueError(f"Gain table for {fam.value} must be finite and > 0")
            g.setflags(write=False)
            out[fam] = g
        return out

    def _lookup_table(self, harmonic: int, run_number: int) -> Optional[CalibrationTable]:
        if self._calibrations is None:
            return None
        return self._calibrations.constants(harmonic, run_number)

    def _load_calibrations(self, run_number: int, warnings: List[str]) -> Dict[int, HarmonicCalibration]:
        fallback = int(self.profile.fallback_harmonic)
        out: Dict[int, HarmonicCalibration] = {}
        for n in self.profile.harmonics:
            table = self._lookup_table(n, run_number)
            source: Optional[int] = n
            if table is None and n != fallback:
                table = self._lookup_table(fallback, run_number)
                source = fallback
                if table is not None:
                    warnings.append(
                        f"Run {run_number}: no calibration for harmonic {n}; using harmonic {fallback} constants."
                    )
            if table is None:
                source = None
                warnings.append(f"Run {run_number}: no calibration for harmonic {n}; harmonic left uncalibrated.")
            elif table.n_unusable:
                warnings.append(
                    f"Run {run_number}: calibration for harmonic {n} has {table.n_unusable} unusable "
                    f"(bin, sub-system) cells; those stay uncalibrated."
                )
            out[n] = HarmonicCalibration(harmonic=n, table=table, source_harmonic=source)

        if not any(c.available for c in out.values()):
            warnings.append(f"Run {run_number}: no calibration tables found; all events uncalibrated.")
        return out
