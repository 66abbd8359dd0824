"""Tests for conditions text files, geometry and the directory-backed provider."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from qvector_analyzer.conditions.calibration import (
    CalibrationTable,
    CorrectionConstants,
    load_calibration_txt,
    load_gain_txt,
    write_calibration_txt,
    write_gain_txt,
)
from qvector_analyzer.conditions.geometry import (
    DetectorGeometry,
    MissingAlignmentError,
    ring_geometry,
)
from qvector_analyzer.conditions.providers import (
    AlignmentProvider,
    CalibrationProvider,
    DirectoryConditions,
    GainProvider,
)
from qvector_analyzer.conditions.run_cache import RunCache
from qvector_analyzer.models.profile import AnalysisProfile
from qvector_analyzer.models.subsystems import DetectorFamily, SubSystem


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


# -----------------------------------------------------------------------
# Calibration files
# -----------------------------------------------------------------------


def test_load_calibration_rows(tmp_path: Path) -> None:
    p = _write(
        tmp_path / "v2.txt",
        "# bin subsystem mx my a b ap am\n"
        "42 FT0C 0.01 -0.02 0 0 1 1\n"
        "\n"
        "1 4 0.1 0.2 0.01 0.02 1.1 0.9\n",
    )
    t = load_calibration_txt(p, harmonic=2)
    assert t.harmonic == 2
    assert t.source == str(p)
    assert t.constants(42, SubSystem.FT0C) == CorrectionConstants(0.01, -0.02, 0.0, 0.0, 1.0, 1.0)
    assert t.constants(1, SubSystem.BPOS).rescale_x == pytest.approx(1.1)
    assert t.constants(2, SubSystem.BPOS) == CorrectionConstants()


def test_load_calibration_accepts_lowercase_names(tmp_path: Path) -> None:
    p = _write(tmp_path / "v3.txt", "5 fv0a 0.5 0 0 0 1 1\n")
    assert load_calibration_txt(p, 3).constants(5, SubSystem.FV0A).mean_x == 0.5


@pytest.mark.parametrize(
    "text, match",
    [
        ("", "Empty"),
        ("# only a comment\n", "Empty"),
        ("1 FT0C 0 0 0 0 1\n", "columns"),
        ("81 FT0C 0 0 0 0 1 1\n", "out of range"),
        ("1 ZDC 0 0 0 0 1 1\n", "Unknown sub-system"),
        ("1 9 0 0 0 0 1 1\n", "out of range"),
        ("1 FT0C x 0 0 0 1 1\n", "Invalid numeric"),
    ],
)
def test_load_calibration_rejects_malformed(tmp_path: Path, text: str, match: str) -> None:
    p = _write(tmp_path / "bad.txt", text)
    with pytest.raises(ValueError, match=match):
        load_calibration_txt(p, 2)


def test_load_calibration_keeps_unusable_rows(tmp_path: Path) -> None:
    p = _write(tmp_path / "partial.txt", "1 FT0C 0 0 0 0 0 1\n2 FT0C 0.1 0 0 0 1 1\n")
    t = load_calibration_txt(p, 2)
    assert t.unusable_cells() == [(1, SubSystem.FT0C)]
    assert t.constants(1, SubSystem.FT0C) is None
    assert t.constants(2, SubSystem.FT0C).mean_x == pytest.approx(0.1)


def test_calibration_write_then_load(tmp_path: Path) -> None:
    rng = np.random.default_rng(3)
    v = np.array(CalibrationTable.identity(2).values)
    v[..., 0:2] = rng.normal(0.0, 0.05, size=v[..., 0:2].shape)
    v[..., 4:6] = rng.uniform(0.8, 1.2, size=v[..., 4:6].shape)
    table = CalibrationTable(2, v)
    p = tmp_path / "v2.txt"
    write_calibration_txt(table, p)
    np.testing.assert_array_equal(load_calibration_txt(p, 2).values, table.values)


# -----------------------------------------------------------------------
# Gain files
# -----------------------------------------------------------------------


def test_load_gains_any_layout(tmp_path: Path) -> None:
    p = _write(tmp_path / "FV0.txt", "# gains\n1.0 1.1\n0.9\n  1.2 \n")
    np.testing.assert_allclose(load_gain_txt(p), [1.0, 1.1, 0.9, 1.2])


def test_gain_write_then_load(tmp_path: Path) -> None:
    g = np.linspace(0.5, 1.5, 48)
    p = tmp_path / "FV0.txt"
    write_gain_txt(g, p)
    np.testing.assert_array_equal(load_gain_txt(p, n_channels=48), g)


@pytest.mark.parametrize(
    "text, n, match",
    [
        ("", None, "Empty"),
        ("1 2 3\n", 4, "expected 4"),
        ("1 0 3\n", None, "> 0"),
        ("1 -2\n", None, "> 0"),
        ("1 nan\n", None, "finite"),
        ("1 abc\n", None, "Invalid numeric"),
    ],
)
def test_load_gains_rejects_malformed(tmp_path: Path, text: str, n, match: str) -> None:
    p = _write(tmp_path / "FT0.txt", text)
    with pytest.raises(ValueError, match=match):
        load_gain_txt(p, n_channels=n)


# -----------------------------------------------------------------------
# Geometry
# -----------------------------------------------------------------------


def test_ring_geometry_layout() -> None:
    g = ring_geometry(DetectorFamily.FT0, [("A", 96), ("C", 112)], radius=2.0)
    assert g.n_channels == 208
    assert g.side_names == ("A", "C")
    assert g.side[95] == 0 and g.side[96] == 1
    assert not g.is_aligned
    np.testing.assert_allclose(np.hypot(g.x, g.y), 2.0)


def test_unaligned_geometry_refuses_angles() -> None:
    g = ring_geometry(DetectorFamily.FV0, [("left", 24), ("right", 24)])
    with pytest.raises(MissingAlignmentError, match="FV0"):
        g.angles(np.array([0]))


def test_angles_with_offsets_and_out_of_range() -> None:
    g = ring_geometry(DetectorFamily.FV0, [("left", 24), ("right", 24)]).with_offsets(
        np.array([[0.0, 0.0], [0.0, 1.0]])
    )
    phi = g.angles(np.array([6, 24, 48, -1]))
    assert phi[0] == pytest.approx(np.pi / 2)
    # right ring channel 0 sits at (1, 0) and is shifted by dy=1
    assert phi[1] == pytest.approx(np.pi / 4)
    assert np.isnan(phi[2]) and np.isnan(phi[3])


def test_geometry_validation() -> None:
    with pytest.raises(ValueError, match="same length"):
        DetectorGeometry(DetectorFamily.FT0, np.zeros(3), np.zeros(2), np.zeros(3), ("A",))
    with pytest.raises(ValueError, match="side index"):
        DetectorGeometry(DetectorFamily.FT0, np.zeros(2), np.zeros(2), np.array([0, 1]), ("A",))
    with pytest.raises(ValueError, match="offsets must have shape"):
        DetectorGeometry(DetectorFamily.FT0, np.zeros(2), np.zeros(2), np.zeros(2), ("A",), offsets=np.zeros((2, 2)))


# -----------------------------------------------------------------------
# DirectoryConditions
# -----------------------------------------------------------------------


def _make_conditions_dir(root: Path, run: int) -> None:
    d = root / str(run)
    d.mkdir(parents=True)
    write_gain_txt(np.full(208, 2.0), d / "FT0.txt")
    write_gain_txt(np.ones(48), d / "FV0.txt")
    _write(d / "v2.txt", "42 FT0C 0.01 -0.02 0 0 1 1\n")
    _write(d / "align_FT0.txt", "# dx dy\n0 0\n0 0\n")
    _write(d / "align_FV0.txt", "0 0\n0 0\n")


def test_directory_conditions_lookups(tmp_path: Path) -> None:
    _make_conditions_dir(tmp_path, 500)
    dc = DirectoryConditions(tmp_path)
    assert isinstance(dc, GainProvider)
    assert isinstance(dc, CalibrationProvider)
    assert isinstance(dc, AlignmentProvider)

    np.testing.assert_allclose(dc.relative_gain(DetectorFamily.FT0, 500), 2.0)
    assert dc.constants(2, 500).constants(42, SubSystem.FT0C).mean_x == pytest.approx(0.01)
    assert dc.constants(3, 500) is None
    assert dc.offsets(DetectorFamily.FT0, 500).shape == (2, 2)
    assert dc.relative_gain(DetectorFamily.FT0, 501) is None
    assert dc.offsets(DetectorFamily.FV0, 501) is None


def test_directory_alignment_malformed(tmp_path: Path) -> None:
    _write(tmp_path / "7" / "align_FT0.txt", "0 0 0\n")
    with pytest.raises(ValueError, match="dx dy"):
        DirectoryConditions(tmp_path).offsets(DetectorFamily.FT0, 7)
    _write(tmp_path / "8" / "align_FT0.txt", "# nothing\n")
    with pytest.raises(ValueError, match="Empty"):
        DirectoryConditions(tmp_path).offsets(DetectorFamily.FT0, 8)


def test_run_cache_from_directory(tmp_path: Path) -> None:
    _make_conditions_dir(tmp_path, 500)
    dc = DirectoryConditions(tmp_path)
    profile = AnalysisProfile()
    cache = RunCache(
        profile,
        geometries={
            DetectorFamily.FT0: ring_geometry(DetectorFamily.FT0, [("A", 96), ("C", 112)]),
            DetectorFamily.FV0: ring_geometry(DetectorFamily.FV0, [("left", 24), ("right", 24)]),
        },
        gains=dc,
        calibrations=dc,
        alignment=dc,
    )
    cond = cache.ensure(500)
    assert cond.calibration_for(3).source_harmonic == 2
    np.testing.assert_allclose(cond.gain(DetectorFamily.FT0), 2.0)
    with pytest.raises(MissingAlignmentError):
        cache.ensure(501)
