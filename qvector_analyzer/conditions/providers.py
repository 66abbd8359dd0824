"""Interfaces to the conditions store and simple implementations.

The producer only needs four lookups, all keyed by run number:

- relative gains per detector family
- calibration tables per harmonic
- alignment offsets per detector family
- channel azimuth per detector family (answered by the run cache once the
  offsets are known)

Every lookup returns None for "not found"; deciding whether that is fatal,
degraded or harmless is left to :class:`~qvector_analyzer.conditions.run_cache.RunCache`.

Directory layout used by the file-backed providers::

    <root>/<run>/FT0.txt          relative gains
    <root>/<run>/FV0.txt
    <root>/<run>/v2.txt           calibration table of harmonic 2
    <root>/<run>/v3.txt
    <root>/<run>/align_FT0.txt    one "dx dy" row per side
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol, Tuple, runtime_checkable

import numpy as np

from qvector_analyzer.models.subsystems import DetectorFamily

from .calibration import CalibrationTable, load_calibration_txt, load_gain_txt


@runtime_checkable
class GeometryProvider(Protocol):
    def angle_of(self, family: DetectorFamily, channel: int) -> float: ...

    def angles(self, family: DetectorFamily, channels: np.ndarray) -> np.ndarray: ...


@runtime_checkable
class GainProvider(Protocol):
    def relative_gain(self, family: DetectorFamily, run_number: int) -> Optional[np.ndarray]: ...


@runtime_checkable
class CalibrationProvider(Protocol):
    def constants(self, harmonic: int, run_number: int) -> Optional[CalibrationTable]: ...


@runtime_checkable
class AlignmentProvider(Protocol):
    def offsets(self, family: DetectorFamily, run_number: int) -> Optional[np.ndarray]: ...


class StaticGainProvider:
    """In-memory gains. A run of ``None`` in the key matches every run."""

    def __init__(self, tables: Optional[Mapping[Tuple[DetectorFamily, Optional[int]], np.ndarray]] = None):
        self._tables: Dict[Tuple[DetectorFamily, Optional[int]], np.ndarray] = {
            (DetectorFamily(fam), run): np.asarray(g, dtype=float) for (fam, run), g in (tables or {}).items()
        }

    def relative_gain(self, family: DetectorFamily, run_number: int) -> Optional[np.ndarray]:
        fam = DetectorFamily(family)
        g = self._tables.get((fam, int(run_number)))
        if g is None:
            g = self._tables.get((fam, None))
        return None if g is None else np.array(g, copy=True)


class StaticCalibrationProvider:
    """In-memory calibration tables keyed by ``(harmonic, run)``; run ``None`` matches every run."""

    def __init__(self, tables: Optional[Mapping[Tuple[int, Optional[int]], CalibrationTable]] = None):
        self._tables: Dict[Tuple[int, Optional[int]], CalibrationTable] = dict(tables or {})

    def constants(self, harmonic: int, run_number: int) -> Optional[CalibrationTable]:
        t = self._tables.get((int(harmonic), int(run_number)))
        if t is None:
            t = self._tables.get((int(harmonic), None))
        return t


class StaticAlignmentProvider:
    """In-memory alignment offsets keyed by ``(family, run)``; run ``None`` matches every run."""

    def __init__(self, offsets: Optional[Mapping[Tuple[DetectorFamily, Optional[int]], np.ndarray]] = None):
        self._offsets = {
            (DetectorFamily(fam), run): np.asarray(o, dtype=float) for (fam, run), o in (offsets or {}).items()
        }

    def offsets(self, family: DetectorFamily, run_number: int) -> Optional[np.ndarray]:
        fam = DetectorFamily(family)
        o = self._offsets.get((fam, int(run_number)))
        if o is None:
            o = self._offsets.get((fam, None))
        return o


class DirectoryConditions:
    """File-backed gains, calibration tables and alignment offsets.

    Implements :class:`GainProvider`, :class:`CalibrationProvider` and
    :class:`AlignmentProvider`. A missing file means "not found"; a present
    but malformed file raises ``ValueError``.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser().resolve()

    def _file(self, run_number: int, name: str) -> Optional[Path]:
        p = self.root / str(int(run_number)) / name
        return p if p.is_file() else None

    def relative_gain(self, family: DetectorFamily, run_number: int) -> Optional[np.ndarray]:
        p = self._file(run_number, f"{DetectorFamily(family).value}.txt")
        return None if p is None else load_gain_txt(p)

    def constants(self, harmonic: int, run_number: int) -> Optional[CalibrationTable]:
        p = self._file(run_number, f"v{int(harmonic)}.txt")
        return None if p is None else load_calibration_txt(p, harmonic=int(harmonic))

    def offsets(self, family: DetectorFamily, run_number: int) -> Optional[np.ndarray]:
        p = self._file(run_number, f"align_{DetectorFamily(family).value}.txt")
        if p is None:
            return None
        rows = []
        for line in p.read_text(encoding="utf-8").splitlines():
            s = line.strip()
            if not s or s.startswith("#"):
                continue
            parts = s.split()
            if len(parts) != 2:
                raise ValueError(f"Expected 'dx dy' rows in alignment file {str(p)!r}, got {s!r}")
            try:
                rows.append([float(parts[0]), float(parts[1])])
            except ValueError as e:
                raise ValueError(f"Invalid numeric row in alignment file {str(p)!r}: {s!r}") from e
        if not rows:
            raise ValueError(f"Empty alignment file: {str(p)!r}")
        return np.asarray(rows, dtype=float)
