"""Tests for tabular export of event records."""

from __future__ import annotations

from typing import Tuple

import pandas as pd
import pytest

from qvector_analyzer.analysis.export import drop_sentinels, records_to_dataframe, subsystem_table
from qvector_analyzer.models.qvector import (
    N_LEVELS,
    SENTINEL_NOT_REQUESTED,
    SENTINEL_UNAVAILABLE,
    CorrectionLevel,
    QVector,
)
from qvector_analyzer.models.record import NO_CALIBRATION_HARMONIC, EventRecord, HarmonicResult
from qvector_analyzer.models.subsystems import SubSystem


def _make_result(harmonic: int, vectors: dict, calibrated: bool = False, source=None) -> HarmonicResult:
    """``vectors`` maps SubSystem -> QVector used at every level."""
    rows: Tuple[Tuple[QVector, ...], ...] = tuple(
        (vectors.get(s, QVector.not_requested()),) * N_LEVELS for s in SubSystem
    )
    return HarmonicResult(harmonic=harmonic, vectors=rows, calibrated=calibrated, calibration_harmonic=source)


def _make_record(cid: int, *, enabled=("FT0C", "BPOS"), ft0c=None, bpos=None) -> EventRecord:
    ft0c = ft0c if ft0c is not None else QVector.defined(0.1 * cid, -0.1, 50.0)
    bpos = bpos if bpos is not None else QVector.defined(0.5, 0.5, 2.0)
    vec = {}
    if "FT0C" in enabled:
        vec[SubSystem.FT0C] = ft0c
    if "BPOS" in enabled:
        vec[SubSystem.BPOS] = bpos
    return EventRecord(
        collision_id=cid,
        run_number=300,
        centrality=12.0,
        is_calibrated=True,
        harmonics=(_make_result(2, vec), _make_result(3, vec)),
        enabled=tuple(enabled),
        amplitude_sums={"FT0C": 50.0} if "FT0C" in enabled else {},
        n_trk_pos=2 if "BPOS" in enabled else 0,
        n_trk_neg=0,
        labels_pos=(7, 9) if "BPOS" in enabled else (),
    )


def test_records_to_dataframe_one_row_per_collision() -> None:
    df = records_to_dataframe([_make_record(1), _make_record(2)])
    assert list(df["collision_id"]) == [1, 2]
    assert len(df.loc[0, "qvec_re"]) == 2 * 6 * 4
    assert df.loc[0, "fv0a_re"] == [SENTINEL_NOT_REQUESTED, SENTINEL_NOT_REQUESTED]
    assert df.loc[1, "ft0c_re"] == pytest.approx([0.2, 0.2])
    assert df.loc[0, "sum_ampl_ft0c"] == 50.0
    assert df.loc[0, "labels_bpos"] == [7, 9]


def test_records_to_dataframe_empty() -> None:
    assert records_to_dataframe([]).empty


def test_subsystem_table_channel_based() -> None:
    t = subsystem_table([_make_record(1), _make_record(2)], "FT0C")
    assert list(t.columns) == [
        "collision_id",
        "run_number",
        "harmonic",
        "is_calibrated",
        "calibration_harmonic",
        "re",
        "im",
        "weight",
    ]
    assert len(t) == 4
    assert list(t["harmonic"]) == [2, 3, 2, 3]
    assert t["weight"].tolist() == [50.0] * 4


def test_subsystem_table_calibration_is_per_harmonic() -> None:
    vec = {SubSystem.FT0C: QVector.defined(0.2, 0.1, 40.0)}
    rec = EventRecord(
        collision_id=8,
        run_number=300,
        centrality=41.5,
        is_calibrated=True,
        harmonics=(_make_result(2, vec), _make_result(3, vec, calibrated=True, source=2)),
        enabled=("FT0C",),
        amplitude_sums={"FT0C": 40.0},
        n_trk_pos=0,
        n_trk_neg=0,
    )
    t = subsystem_table([rec], "FT0C")
    assert t["is_calibrated"].tolist() == [False, True]
    assert t["calibration_harmonic"].tolist() == [NO_CALIBRATION_HARMONIC, 2]
    assert not subsystem_table([rec], "FT0C", harmonic=2)["is_calibrated"].iloc[0]


def test_subsystem_table_track_based_has_labels() -> None:
    t = subsystem_table([_make_record(1)], SubSystem.BPOS, harmonic=3)
    assert len(t) == 1
    row = t.iloc[0]
    assert row["harmonic"] == 3
    assert row["weight"] == 2.0
    assert row["labels"] == [7, 9]


def test_subsystem_table_skips_disabled_collisions() -> None:
    recs = [_make_record(1), _make_record(2, enabled=("BPOS",))]
    t = subsystem_table(recs, "FT0C")
    assert set(t["collision_id"]) == {1}
    empty = subsystem_table(recs, "FV0A")
    assert empty.empty
    assert "re" in empty.columns


def test_subsystem_table_level_selection() -> None:
    raw = QVector.defined(0.4, 0.0, 10.0)
    final = QVector.defined(0.3, 0.1, 10.0)
    levels = (raw, raw.with_components(0.35, 0.0), raw.with_components(0.32, 0.1), final)
    vectors = tuple(levels if s is SubSystem.FT0C else (QVector.not_requested(),) * N_LEVELS for s in SubSystem)
    rec = EventRecord(
        collision_id=5,
        run_number=1,
        centrality=3.0,
        is_calibrated=True,
        harmonics=(HarmonicResult(2, vectors, True, 2),),
        enabled=("FT0C",),
        amplitude_sums={"FT0C": 10.0},
        n_trk_pos=0,
        n_trk_neg=0,
    )
    assert subsystem_table([rec], "FT0C")["re"].iloc[0] == pytest.approx(0.3)
    assert subsystem_table([rec], "FT0C", level=CorrectionLevel.RAW)["re"].iloc[0] == pytest.approx(0.4)


def test_drop_sentinels() -> None:
    recs = [_make_record(1), _make_record(2, ft0c=QVector.unavailable(1e-10))]
    t = subsystem_table(recs, "FT0C")
    assert (t["re"] == SENTINEL_UNAVAILABLE).sum() == 2
    clean = drop_sentinels(t)
    assert set(clean["collision_id"]) == {1}
    assert drop_sentinels(pd.DataFrame(columns=t.columns)).empty


def test_unknown_subsystem_raises() -> None:
    with pytest.raises(ValueError):
        subsystem_table([_make_record(1)], "ZDC")
