"""Tabular export of event records.

- :func:`records_to_dataframe`: one row per collision with the full flat
  layout (list-valued cells for vector columns).
- :func:`subsystem_table`: one row per (collision, harmonic) for a single
  sub-system. Collisions where the sub-system was not enabled contribute no
  rows, so consumers can subscribe to any subset of sub-systems.

Undefined vectors carry the legacy sentinels (``999`` unavailable, ``-999``
not requested). Consumers must exclude both.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from qvector_analyzer.models.qvector import CorrectionLevel, is_sentinel
from qvector_analyzer.models.record import EventRecord
from qvector_analyzer.models.subsystems import SubSystem


def records_to_dataframe(records: Iterable[EventRecord]) -> pd.DataFrame:
    rows = [r.to_flat_dict() for r in records]
    return pd.DataFrame(rows)


_SUBSYSTEM_COLUMNS = (
    "collision_id",
    "run_number",
    "harmonic",
    "is_calibrated",
    "calibration_harmonic",
    "re",
    "im",
    "weight",
)


def subsystem_table(
    records: Iterable[EventRecord],
    sub: SubSystem | str,
    *,
    level: CorrectionLevel = CorrectionLevel.RESCALED,
    harmonic: Optional[int] = None,
) -> pd.DataFrame:
    """Per-sub-system table.

    ``is_calibrated`` tells whether corrections were applied to this row's
    harmonic; ``calibration_harmonic`` is the harmonic whose table was used,
    or ``NO_CALIBRATION_HARMONIC`` (-1) when uncalibrated. ``weight`` is
    the amplitude sum (channel-based) or track count (track-based).
    Track-based tables also carry a ``labels`` column.
    """
    s = SubSystem.parse(sub)
    track_based = s in (SubSystem.BPOS, SubSystem.BNEG)
    rows: List[Dict[str, Any]] = []
    for rec in records:
        if not rec.is_enabled(s):
            continue
        for h in rec.harmonics:
            if harmonic is not None and h.harmonic != int(harmonic):
                continue
            re, im = h.vector(s, level).as_pair()
            row: Dict[str, Any] = {
                "collision_id": rec.collision_id,
                "run_number": rec.run_number,
                "harmonic": h.harmonic,
                "is_calibrated": h.calibrated,
                "calibration_harmonic": h.exported_calibration_harmonic,
                "re": re,
                "im": im,
                "weight": rec.weight_of(s),
            }
            if track_based:
                row["labels"] = list(rec.labels_pos if s is SubSystem.BPOS else rec.labels_neg)
            rows.append(row)

    columns = list(_SUBSYSTEM_COLUMNS) + (["labels"] if track_based else [])
    return pd.DataFrame(rows, columns=columns)


def drop_sentinels(table: pd.DataFrame) -> pd.DataFrame:
    """Rows of a :func:`subsystem_table` whose vector is a measured value."""
    if table.empty:
        return table
    keep = ~(table["re"].map(is_sentinel) | table["im"].map(is_sentinel))
    return table.loc[keep]
