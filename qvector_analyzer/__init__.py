"""Q-vector analyzer -- per-collision flow vectors with run-wise calibration.

This package provides tools for:
- Accumulating gain-equalized Q-vectors from forward-detector channel amplitudes
- Building pT-weighted Q-vectors from two pseudorapidity-separated track sub-events
- Applying centrality-binned recentering, twist and rescaling corrections
- Caching gains, calibration tables and aligned geometry per run
- Exporting per-collision records as pandas tables

Key principles:
- Undefined vectors are tagged internally; numeric sentinels (999 / -999)
  only appear at the export boundary
- A missing calibration degrades one harmonic; missing alignment aborts the run
- No per-event state survives an event except the run cache

Main subpackages:
- analysis: Accumulation, track sub-events, correction chain, assembler, export
- conditions: Geometry, gain and calibration providers, run cache
- models: Data models (CollisionEvent, QVector, EventRecord, AnalysisProfile)
"""

__all__ = []
