"""Conditions package - run-scoped constants consumed by the producer.

This package handles:
- Detector geometry with per-run alignment offsets (channel -> azimuth)
- Relative gain tables per detector family
- Centrality-binned calibration tables per harmonic
- The run cache that reloads all of the above on a run change

Design principle:
- Providers only answer "found" or "not found"
- The run cache decides what is fatal and what degrades gracefully
"""

from .calibration import (
    CONSTANT_NAMES,
    N_CENTRALITY_BINS,
    CalibrationTable,
    CorrectionConstants,
    load_calibration_txt,
    load_gain_txt,
    write_calibration_txt,
    write_gain_txt,
)
from .geometry import DetectorGeometry, MissingAlignmentError, RunCacheError, ring_geometry
from .providers import (
    AlignmentProvider,
    CalibrationProvider,
    DirectoryConditions,
    GainProvider,
    GeometryProvider,
    StaticAlignmentProvider,
    StaticCalibrationProvider,
    StaticGainProvider,
)
from .run_cache import HarmonicCalibration, RunCache, RunConditions

__all__ = [
    "CONSTANT_NAMES",
    "N_CENTRALITY_BINS",
    "AlignmentProvider",
    "CalibrationProvider",
    "CalibrationTable",
    "CorrectionConstants",
    "DetectorGeometry",
    "DirectoryConditions",
    "GainProvider",
    "GeometryProvider",
    "HarmonicCalibration",
    "MissingAlignmentError",
    "RunCache",
    "RunCacheError",
    "RunConditions",
    "StaticAlignmentProvider",
    "StaticCalibrationProvider",
    "StaticGainProvider",
    "load_calibration_txt",
    "load_gain_txt",
    "ring_geometry",
    "write_calibration_txt",
    "write_gain_txt",
]
