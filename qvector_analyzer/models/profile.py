"""Analysis profile -- bundles all configuration of the Q-vector producer.

An AnalysisProfile groups every parameter that affects the produced vectors
into one frozen dataclass.  It can be:

- Constructed with defaults matching the standard producer settings
- Overridden field-by-field via ``dataclasses.replace()``
- Serialized to/from a dict (and JSON) for provenance
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Tuple

from .event import CENTRALITY_ESTIMATORS
from .subsystems import DetectorFamily, SubSystem, SubSystemMask


@dataclass(frozen=True)
class AnalysisProfile:
    """Frozen configuration for the per-event Q-vector pipeline.

    Fields
    ------
    harmonics : tuple of int
        Harmonic orders n to compute, in output order.
    centrality_estimator : str
        One of ``FT0M``, ``FT0A``, ``FT0C``, ``FV0A``.
    min_pt, max_pt : float
        Transverse-momentum window [GeV/c] of tracks entering the track sub-events.
    eta_gap, eta_max : float
        Tracks with ``|eta| < eta_gap`` or ``|eta| > eta_max`` join no sub-event.
    enabled_subsystems : tuple of str
        Sub-systems to compute; the rest report NOT_REQUESTED.
    amplitude_eps : float
        Minimum amplitude sum for a channel-based vector to be defined.
    max_calibrated_centrality : float
        Upper (exclusive) edge of the calibrated centrality window.
    uncalibrated_centrality : float
        Reported centrality for events outside the calibrated window.
    fallback_harmonic : int
        Harmonic whose calibration table is used when a harmonic has none.
    ft0_channels, fv0_channels : int
        Fixed channel counts of the FT0 and FV0 gain/geometry tables.
    ft0c_channel_offset : int
        Offset added to FT0 C-side channel ids to address the family table.
    fill_qa : bool
        Fill QA histograms while processing.
    """

    harmonics: Tuple[int, ...] = (2, 3)
    centrality_estimator: str = "FT0C"

    min_pt: float = 0.15
    max_pt: float = 5.0
    eta_gap: float = 0.1
    eta_max: float = 0.8

    enabled_subsystems: Tuple[str, ...] = tuple(s.name for s in SubSystem)

    amplitude_eps: float = 1e-8
    max_calibrated_centrality: float = 80.0
    uncalibrated_centrality: float = 110.0
    fallback_harmonic: int = 2

    ft0_channels: int = 208
    fv0_channels: int = 48
    ft0c_channel_offset: int = 96

    fill_qa: bool = True

    def __post_init__(self) -> None:
        # Callers may pass lists
        object.__setattr__(self, "harmonics", tuple(int(n) for n in self.harmonics))
        object.__setattr__(
            self, "enabled_subsystems", tuple(SubSystem.parse(s).name for s in self.enabled_subsystems)
        )
        object.__setattr__(self, "centrality_estimator", str(self.centrality_estimator).upper())

        if not self.harmonics:
            raise ValueError("At least one harmonic is required")
        if any(n <= 0 for n in self.harmonics):
            raise ValueError(f"Harmonic orders must be > 0, got {self.harmonics}")
        if self.centrality_estimator not in CENTRALITY_ESTIMATORS:
            raise ValueError(
                f"Unknown centrality estimator {self.centrality_estimator!r}; "
                f"expected one of {CENTRALITY_ESTIMATORS}"
            )
        if not (self.min_pt < self.max_pt):
            raise ValueError(f"min_pt must be < max_pt, got [{self.min_pt}, {self.max_pt}]")
        if not (0.0 <= self.eta_gap < self.eta_max):
            raise ValueError(f"Need 0 <= eta_gap < eta_max, got eta_gap={self.eta_gap}, eta_max={self.eta_max}")
        if self.amplitude_eps <= 0.0:
            raise ValueError("amplitude_eps must be > 0")
        if self.ft0c_channel_offset >= self.ft0_channels:
            raise ValueError("ft0c_channel_offset must be smaller than ft0_channels")

    @property
    def mask(self) -> SubSystemMask:
        return SubSystemMask.from_names(self.enabled_subsystems)

    def channel_count(self, family: DetectorFamily | str) -> int:
        if DetectorFamily(family) is DetectorFamily.FT0:
            return self.ft0_channels
        return self.fv0_channels

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-friendly dict (tuples become lists)."""
        d = asdict(self)
        d["harmonics"] = list(d["harmonics"])
        d["enabled_subsystems"] = list(d["enabled_subsystems"])
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> AnalysisProfile:
        """Reconstruct from a dict (e.g. loaded from JSON)."""
        d = dict(d)  # shallow copy
        for key in ("harmonics", "enabled_subsystems"):
            if key in d and not isinstance(d[key], tuple):
                d[key] = tuple(d[key])
        return cls(**d)

    def save_json(self, path: str | Path) -> None:
        Path(path).write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")

    @classmethod
    def load_json(cls, path: str | Path) -> AnalysisProfile:
        return cls.from_dict(json.loads(Path(path).read_text(encoding="utf-8")))
