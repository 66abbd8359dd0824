"""Input event model.

One :class:`CollisionEvent` carries everything the assembler reads for one
collision: centrality estimates, forward-detector amplitudes and the track
table.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd


CENTRALITY_ESTIMATORS: Tuple[str, ...] = ("FT0M", "FT0A", "FT0C", "FV0A")

TRACK_COLUMNS: Tuple[str, ...] = ("global_index", "pt", "eta", "phi")

TRACK_QUALITY_COLUMNS: Tuple[str, ...] = (
    "passed_its_ncls",
    "passed_its_chi2ndf",
    "passed_its_hits",
    "passed_tpc_crossed_rows_over_ncls",
    "passed_tpc_chi2ndf",
    "passed_dca_xy",
    "passed_dca_z",
)


@dataclass(frozen=True)
class ChannelSignals:
    """
    Raw amplitudes of the fired channels of one detector (or detector side).

    Notes
    - channels are the detector-local channel ids as stored in the event;
      any side offset into the family table is applied by the consumer.
    - amplitudes are raw, i.e. before relative-gain equalization.
    """
    channels: np.ndarray  # (n,) int
    amplitudes: np.ndarray  # (n,) float

    def __post_init__(self) -> None:
        ch = np.asarray(self.channels, dtype=int).reshape(-1)
        amp = np.asarray(self.amplitudes, dtype=float).reshape(-1)
        if ch.shape != amp.shape:
            raise ValueError(
                f"channels and amplitudes must have the same length, got {ch.size} and {amp.size}"
            )
        object.__setattr__(self, "channels", ch)
        object.__setattr__(self, "amplitudes", amp)

    @classmethod
    def empty(cls) -> "ChannelSignals":
        return cls(np.zeros(0, dtype=int), np.zeros(0, dtype=float))

    def __len__(self) -> int:
        return int(self.channels.size)


@dataclass(frozen=True)
class FT0Signals:
    """FT0 amplitudes split by side. C-side channel ids start at 0 in the event."""
    a: ChannelSignals
    c: ChannelSignals


def empty_tracks() -> pd.DataFrame:
    cols = {c: pd.Series(dtype=float) for c in TRACK_COLUMNS}
    cols["global_index"] = pd.Series(dtype=np.int64)
    for c in TRACK_QUALITY_COLUMNS:
        cols[c] = pd.Series(dtype=bool)
    return pd.DataFrame(cols)


@dataclass(frozen=True)
class CollisionEvent:
    """
    In-memory representation of one collision as consumed by the assembler.

    ft0 / fv0 are None when no matching detector readout was found for the
    collision; the corresponding sub-systems then report NOT_REQUESTED.
    tracks holds one row per reconstructed track with TRACK_COLUMNS and the
    boolean TRACK_QUALITY_COLUMNS.
    """
    collision_id: int
    run_number: int
    centralities: Dict[str, float]
    ft0: Optional[FT0Signals] = None
    fv0: Optional[ChannelSignals] = None
    tracks: pd.DataFrame = field(default_factory=empty_tracks)

    def centrality(self, estimator: str) -> float:
        key = str(estimator).upper()
        if key not in CENTRALITY_ESTIMATORS:
            raise ValueError(f"Unknown centrality estimator {estimator!r}; expected one of {CENTRALITY_ESTIMATORS}")
        if key not in self.centralities:
            raise KeyError(f"Collision {self.collision_id} has no centrality for estimator {key}")
        return float(self.centralities[key])
