"""Centrality-binned Q-vector calibration constants and relative gains.

Calibration table
-----------------
One table per harmonic and run. For every centrality bin ``1..80`` and every
sub-system it holds six constants::

    mean_x  mean_y  twist_a  twist_b  rescale_x  rescale_y

Bins are 1-based: bin ``b`` covers centrality ``[b-1, b)``.

Text formats
------------
Calibration files have one row per (bin, sub-system)::

    <bin> <subsystem> <mean_x> <mean_y> <twist_a> <twist_b> <rescale_x> <rescale_y>

where ``<subsystem>`` is a name (``FT0C``) or an index (``0``). Rows that are
absent keep identity constants (no shift, no twist, unit scale).

A cell whose constants cannot be applied (non-finite value, zero rescale
coefficient, or twist with ``twist_a * twist_b == 1``) is kept but marked
unusable; that (bin, sub-system) stays uncalibrated.

Gain files list one positive factor per channel, whitespace separated, in
channel-id order. Lines starting with ``#`` are comments in both formats.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np

from qvector_analyzer.models.subsystems import N_SUBSYSTEMS, SubSystem


N_CENTRALITY_BINS = 80
CONSTANT_NAMES: Tuple[str, ...] = ("mean_x", "mean_y", "twist_a", "twist_b", "rescale_x", "rescale_y")
N_CONSTANTS = len(CONSTANT_NAMES)

_IDENTITY = np.array([0.0, 0.0, 0.0, 0.0, 1.0, 1.0])


def _usable_cells(v: np.ndarray) -> np.ndarray:
    with np.errstate(invalid="ignore", over="ignore"):
        ok = np.all(np.isfinite(v), axis=-1)
        ok &= (v[..., 4] != 0.0) & (v[..., 5] != 0.0)
        ok &= (1.0 - v[..., 2] * v[..., 3]) != 0.0
    ok.setflags(write=False)
    return ok


@dataclass(frozen=True)
class CorrectionConstants:
    """The six constants of one (harmonic, sub-system, centrality bin)."""

    mean_x: float = 0.0
    mean_y: float = 0.0
    twist_a: float = 0.0
    twist_b: float = 0.0
    rescale_x: float = 1.0
    rescale_y: float = 1.0


@dataclass(frozen=True)
class CalibrationTable:
    """Calibration constants of one harmonic.

    ``values`` has shape ``(N_CENTRALITY_BINS, N_SUBSYSTEMS, N_CONSTANTS)``;
    row ``b-1`` holds bin ``b``. ``usable`` has shape
    ``(N_CENTRALITY_BINS, N_SUBSYSTEMS)`` and is False for cells whose
    constants cannot be applied; :meth:`constants` returns None for those.
    """

    harmonic: int
    values: np.ndarray
    source: str = ""
    usable: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        v = np.asarray(self.values, dtype=float)
        shape = (N_CENTRALITY_BINS, N_SUBSYSTEMS, N_CONSTANTS)
        if v.shape != shape:
            raise ValueError(f"Calibration table must have shape {shape}, got {v.shape}")
        v = v.copy()
        v.setflags(write=False)
        object.__setattr__(self, "values", v)
        object.__setattr__(self, "harmonic", int(self.harmonic))
        object.__setattr__(self, "usable", _usable_cells(v))

    @property
    def n_unusable(self) -> int:
        return int(np.count_nonzero(~self.usable))

    def unusable_cells(self) -> List[Tuple[int, SubSystem]]:
        """(bin, sub-system) pairs whose constants are not applied."""
        bins, subs = np.nonzero(~self.usable)
        return [(int(b) + 1, SubSystem(int(s))) for b, s in zip(bins, subs)]

    @classmethod
    def identity(cls, harmonic: int, source: str = "identity") -> "CalibrationTable":
        v = np.broadcast_to(_IDENTITY, (N_CENTRALITY_BINS, N_SUBSYSTEMS, N_CONSTANTS))
        return cls(harmonic=harmonic, values=np.array(v), source=source)

    def constants(self, centrality_bin: int, sub: SubSystem | int) -> Optional[CorrectionConstants]:
        b = int(centrality_bin)
        if not (1 <= b <= N_CENTRALITY_BINS):
            raise ValueError(f"Centrality bin must be in [1, {N_CENTRALITY_BINS}], got {centrality_bin}")
        if not self.usable[b - 1, int(sub)]:
            return None
        row = self.values[b - 1, int(sub)]
        return CorrectionConstants(*(float(x) for x in row))

    def for_subsystem(self, sub: SubSystem | int) -> np.ndarray:
        """Constants of one sub-system over all bins, shape ``(80, 6)``."""
        return self.values[:, int(sub), :]


def _numeric_rows(path: Path) -> List[List[str]]:
    rows: List[List[str]] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            s = line.strip()
            if not s or s.startswith("#"):
                continue
            rows.append(s.split())
    return rows


def _parse_subsystem(token: str, path: Path) -> int:
    try:
        idx = int(token)
    except ValueError:
        try:
            return int(SubSystem.parse(token))
        except ValueError as e:
            raise ValueError(f"Unknown sub-system {token!r} in calibration file {str(path)!r}") from e
    if not (0 <= idx < N_SUBSYSTEMS):
        raise ValueError(f"Sub-system index {idx} out of range in calibration file {str(path)!r}")
    return idx


def load_calibration_txt(path: str | Path, harmonic: int) -> CalibrationTable:
    """Load a calibration text file for one harmonic."""
    p = Path(path)
    values = np.array(np.broadcast_to(_IDENTITY, (N_CENTRALITY_BINS, N_SUBSYSTEMS, N_CONSTANTS)))
    rows = _numeric_rows(p)
    if not rows:
        raise ValueError(f"Empty calibration file: {str(p)!r}")

    for parts in rows:
        if len(parts) != 2 + N_CONSTANTS:
            raise ValueError(
                f"Unsupported calibration row with {len(parts)} columns in {str(p)!r}. "
                f"Expected {2 + N_CONSTANTS} columns."
            )
        try:
            b = int(parts[0])
            consts = [float(x) for x in parts[2:]]
        except ValueError as e:
            raise ValueError(f"Invalid numeric row in calibration file {str(p)!r}: {' '.join(parts)!r}") from e
        if not (1 <= b <= N_CENTRALITY_BINS):
            raise ValueError(f"Centrality bin {b} out of range in calibration file {str(p)!r}")
        values[b - 1, _parse_subsystem(parts[1], p)] = consts

    return CalibrationTable(harmonic=harmonic, values=values, source=str(p))


def write_calibration_txt(table: CalibrationTable, path: str | Path) -> None:
    """Write a calibration file compatible with :func:`load_calibration_txt`."""
    with open(path, "w", encoding="utf-8") as f:
        f.write(f"# harmonic {table.harmonic}\n")
        f.write("# bin subsystem " + " ".join(CONSTANT_NAMES) + "\n")
        for b in range(1, N_CENTRALITY_BINS + 1):
            for sub in SubSystem:
                row = table.values[b - 1, int(sub)]
                f.write(f"{b} {sub.name} " + " ".join(f"{x:.17g}" for x in row) + "\n")


def load_gain_txt(path: str | Path, n_channels: int | None = None) -> np.ndarray:
    """Load relative gain factors (one per channel)."""
    p = Path(path)
    tokens = [t for row in _numeric_rows(p) for t in row]
    if not tokens:
        raise ValueError(f"Empty gain file: {str(p)!r}")
    try:
        gains = np.asarray([float(t) for t in tokens], dtype=float)
    except ValueError as e:
        raise ValueError(f"Invalid numeric value in gain file {str(p)!r}") from e
    if n_channels is not None and gains.size != int(n_channels):
        raise ValueError(f"Gain file {str(p)!r} has {gains.size} channels, expected {n_channels}")
    if not np.all(np.isfinite(gains)) or np.any(gains <= 0.0):
        raise ValueError(f"Gain factors must be finite and > 0 in {str(p)!r}")
    return gains


def write_gain_txt(gains: np.ndarray, path: str | Path) -> None:
    with open(path, "w", encoding="utf-8") as f:
        for g in np.asarray(gains, dtype=float):
            f.write(f"{g:.17g}\n")
