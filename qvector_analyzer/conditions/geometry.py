"""Channel geometry of the forward detectors.

Each family stores nominal channel centre positions ``(x, y)`` in the
transverse plane, a side index per channel (FT0: A/C, FV0: left/right
halves), and per-side alignment offsets valid for one run. The azimuth of a
channel is ``atan2(y + dy_side, x + dx_side)``.

Alignment offsets come from the conditions store per run. Geometry without
offsets cannot produce any meaningful angle and is rejected by
:meth:`DetectorGeometry.require_alignment`.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Sequence, Tuple

import numpy as np

from qvector_analyzer.models.subsystems import DetectorFamily


class RunCacheError(RuntimeError):
    """A run-scoped conditions reload failed; processing cannot continue."""


class MissingAlignmentError(RunCacheError):
    """Alignment constants of a detector family are absent for a run."""

    def __init__(self, family: DetectorFamily | str, run_number: Optional[int] = None):
        self.family = DetectorFamily(family)
        self.run_number = run_number
        where = f" for run {run_number}" if run_number is not None else ""
        super().__init__(f"Could not get the alignment parameters for {self.family.value}{where}.")


@dataclass(frozen=True)
class DetectorGeometry:
    """Nominal channel positions plus per-side alignment offsets.

    Attributes
    ----------
    family:
        Detector family the table belongs to.
    x, y:
        Channel centre positions, shape ``(n_channels,)``, indexed by the
        family-wide channel id.
    side:
        Side index per channel, shape ``(n_channels,)``, into ``side_names``.
    side_names:
        Labels of the sides (e.g. ``("A", "C")``).
    offsets:
        Alignment offsets ``(n_sides, 2)`` as ``(dx, dy)``, or None when not
        (yet) known for the current run.
    """

    family: DetectorFamily
    x: np.ndarray
    y: np.ndarray
    side: np.ndarray
    side_names: Tuple[str, ...]
    offsets: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        x = np.asarray(self.x, dtype=float).reshape(-1)
        y = np.asarray(self.y, dtype=float).reshape(-1)
        side = np.asarray(self.side, dtype=int).reshape(-1)
        if not (x.shape == y.shape == side.shape):
            raise ValueError("x, y and side must have the same length")
        if side.size and (side.min() < 0 or side.max() >= len(self.side_names)):
            raise ValueError(f"side index out of range for side_names={self.side_names}")
        object.__setattr__(self, "family", DetectorFamily(self.family))
        object.__setattr__(self, "x", x)
        object.__setattr__(self, "y", y)
        object.__setattr__(self, "side", side)
        object.__setattr__(self, "side_names", tuple(self.side_names))
        if self.offsets is not None:
            off = np.asarray(self.offsets, dtype=float)
            if off.shape != (len(self.side_names), 2):
                raise ValueError(
                    f"offsets must have shape ({len(self.side_names)}, 2), got {off.shape}"
                )
            if not np.all(np.isfinite(off)):
                raise ValueError(f"Non-finite alignment offsets for {self.family.value}")
            object.__setattr__(self, "offsets", off)

    @property
    def n_channels(self) -> int:
        return int(self.x.size)

    @property
    def is_aligned(self) -> bool:
        return self.offsets is not None

    def with_offsets(self, offsets: Optional[np.ndarray]) -> "DetectorGeometry":
        return replace(self, offsets=None if offsets is None else np.asarray(offsets, dtype=float))

    def require_alignment(self, run_number: Optional[int] = None) -> "DetectorGeometry":
        if self.offsets is None:
            raise MissingAlignmentError(self.family, run_number)
        return self

    def angles(self, channels: np.ndarray) -> np.ndarray:
        """Azimuth of each channel id; NaN for ids outside the table."""
        self.require_alignment()
        ch = np.asarray(channels, dtype=int).reshape(-1)
        out = np.full(ch.shape, np.nan, dtype=float)
        ok = (ch >= 0) & (ch < self.n_channels)
        if np.any(ok):
            c = ch[ok]
            s = self.side[c]
            out[ok] = np.arctan2(self.y[c] + self.offsets[s, 1], self.x[c] + self.offsets[s, 0])
        return out

    def angle_of(self, channel: int) -> float:
        return float(self.angles(np.array([channel]))[0])


def ring_geometry(
    family: DetectorFamily | str,
    sides: Sequence[Tuple[str, int]],
    *,
    radius: float = 1.0,
    phase: float = 0.0,
) -> DetectorGeometry:
    """Build a geometry with each side's channels evenly spaced on a ring.

    ``sides`` lists ``(name, n_channels)`` in channel-id order: the first side
    owns ids ``0..n0-1``, the next ``n0..n0+n1-1``, and so on. Channel ``k`` of
    a side sits at azimuth ``phase + 2*pi*k/n``. Offsets are left unset.
    """
    xs, ys, ss = [], [], []
    for i, (_, n) in enumerate(sides):
        n = int(n)
        if n <= 0:
            raise ValueError("Each side needs at least one channel")
        phi = phase + 2.0 * np.pi * np.arange(n) / float(n)
        xs.append(radius * np.cos(phi))
        ys.append(radius * np.sin(phi))
        ss.append(np.full(n, i, dtype=int))
    return DetectorGeometry(
        family=DetectorFamily(family),
        x=np.concatenate(xs),
        y=np.concatenate(ys),
        side=np.concatenate(ss),
        side_names=tuple(name for name, _ in sides),
    )
