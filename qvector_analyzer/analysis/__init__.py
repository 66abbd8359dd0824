"""Q-vector analysis package.

Design principle:
  - Conditions (gains, calibration tables, aligned geometry) are resolved once
    per run by :class:`~qvector_analyzer.conditions.run_cache.RunCache`.
  - Analysis consumes one :class:`~qvector_analyzer.models.event.CollisionEvent`
    at a time and produces one :class:`~qvector_analyzer.models.record.EventRecord`.

Nothing here keeps state across events except the run cache and the optional
QA histograms.
"""

from .accumulate import accumulate, equalize_amplitudes, sum_qvector
from .assembler import AssemblerState, QVectorAssembler
from .corrections import centrality_bin, correction_levels, recenter, rescale, twist
from .export import drop_sentinels, records_to_dataframe, subsystem_table
from .qa import QaHistograms
from .tracks import TrackSubEvents, build_track_subevents, partition_by_eta, select_tracks, track_selection_mask

__all__ = [
    "AssemblerState",
    "QVectorAssembler",
    "QaHistograms",
    "TrackSubEvents",
    "accumulate",
    "build_track_subevents",
    "centrality_bin",
    "correction_levels",
    "drop_sentinels",
    "equalize_amplitudes",
    "partition_by_eta",
    "recenter",
    "records_to_dataframe",
    "rescale",
    "select_tracks",
    "subsystem_table",
    "sum_qvector",
    "track_selection_mask",
    "twist",
]
