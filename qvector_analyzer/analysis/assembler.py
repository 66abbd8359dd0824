"""Per-event Q-vector assembly.

Ordering (per event)
--------------------
1) Make sure the run cache holds the event's run (reload on a run change).
2) Read the configured centrality estimator. Outside ``[0, 80)`` the event is
   uncalibrated and reports the uncalibrated sentinel (110).
3) Gain-equalize the forward-detector amplitudes once per event and select
   tracks once per event.
4) For every harmonic:
   a) raw vectors of the enabled channel-based sub-systems,
   b) raw vectors of the two track sub-events,
   c) correction levels with the constants of the centrality bin, when the
      event is calibrated and the harmonic has a table (own or fallback).
5) Assemble the :class:`~qvector_analyzer.models.record.EventRecord`.

State
-----
``IDLE`` until the first event, then ``RUN_CACHE_VALID`` -> ``EVENT_COMPUTED``
-> ``EMITTED`` per event. A new run passes through the cache reload before
``RUN_CACHE_VALID``.

A calibration problem of one harmonic never affects another harmonic; a
failed cache reload raises and aborts processing.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd

from qvector_analyzer.conditions.run_cache import RunCache, RunConditions
from qvector_analyzer.models.event import ChannelSignals, CollisionEvent
from qvector_analyzer.models.profile import AnalysisProfile
from qvector_analyzer.models.qvector import QVector
from qvector_analyzer.models.record import EventRecord, HarmonicResult
from qvector_analyzer.models.subsystems import (
    SUBSYSTEM_SPECS,
    DetectorFamily,
    InputKind,
    SubSystem,
    SubSystemSpec,
)

from .accumulate import accumulate, equalize_amplitudes
from .corrections import centrality_bin, correction_levels
from .qa import QaHistograms
from .tracks import TrackSubEvents, build_track_subevents, select_tracks


class AssemblerState(str, Enum):
    IDLE = "idle"
    RUN_CACHE_VALID = "run_cache_valid"
    EVENT_COMPUTED = "event_computed"
    EMITTED = "emitted"


@dataclass(frozen=True)
class _ChannelInput:
    """Gain-equalized input of one channel-based sub-system for one event."""

    family: DetectorFamily
    channels: np.ndarray
    amplitudes: np.ndarray
    phi: np.ndarray


def _concat(parts: List[ChannelSignals], offsets: List[int]) -> Tuple[np.ndarray, np.ndarray]:
    if not parts:
        return np.zeros(0, dtype=int), np.zeros(0, dtype=float)
    ch = np.concatenate([p.channels + off for p, off in zip(parts, offsets)])
    amp = np.concatenate([p.amplitudes for p in parts])
    return ch, amp


class QVectorAssembler:
    """Compute calibrated Q-vectors for a stream of collisions.

    Parameters
    ----------
    profile:
        Configuration (harmonics, estimator, track cuts, enabled sub-systems).
    cache:
        Run-scoped conditions. May be shared between assemblers running in
        different threads.
    qa:
        Optional QA histograms. Filled only if ``profile.fill_qa`` is set.
    """

    def __init__(self, profile: AnalysisProfile, cache: RunCache, qa: Optional[QaHistograms] = None) -> None:
        self.profile = profile
        self.cache = cache
        self.mask = profile.mask
        self.qa = (qa if qa is not None else QaHistograms()) if profile.fill_qa else None
        self.state = AssemblerState.IDLE

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def _signals_for(self, spec: SubSystemSpec, event: CollisionEvent) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """Family-wide channel ids and raw amplitudes, or None if the detector is absent."""
        if spec.family is DetectorFamily.FT0:
            if event.ft0 is None:
                return None
            parts, offsets = [], []
            if "A" in spec.sides:
                parts.append(event.ft0.a)
                offsets.append(0)
            if "C" in spec.sides:
                parts.append(event.ft0.c)
                offsets.append(int(self.profile.ft0c_channel_offset))
            return _concat(parts, offsets)
        if event.fv0 is None:
            return None
        return _concat([event.fv0], [0])

    def _channel_inputs(self, event: CollisionEvent, cond: RunConditions) -> Dict[SubSystem, _ChannelInput]:
        out: Dict[SubSystem, _ChannelInput] = {}
        for spec in SUBSYSTEM_SPECS:
            if spec.kind is not InputKind.CHANNEL or spec.subsystem not in self.mask:
                continue
            sig = self._signals_for(spec, event)
            if sig is None:
                continue
            ch, raw = sig
            amp = equalize_amplitudes(ch, raw, cond.gain(spec.family))
            phi = cond.angles(spec.family, ch) if ch.size else np.zeros(0, dtype=float)
            out[spec.subsystem] = _ChannelInput(spec.family, ch, amp, phi)
        return out

    def _fill_amplitude_qa(self, event: CollisionEvent, cond: RunConditions) -> None:
        if self.qa is None:
            return
        if event.ft0 is not None:
            ch, raw = _concat([event.ft0.a, event.ft0.c], [0, int(self.profile.ft0c_channel_offset)])
            self.qa.fill_amplitudes(
                DetectorFamily.FT0, ch, raw, equalize_amplitudes(ch, raw, cond.gain(DetectorFamily.FT0))
            )
        if event.fv0 is not None:
            ch, raw = event.fv0.channels, event.fv0.amplitudes
            self.qa.fill_amplitudes(
                DetectorFamily.FV0, ch, raw, equalize_amplitudes(ch, raw, cond.gain(DetectorFamily.FV0))
            )

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process(self, event: CollisionEvent) -> EventRecord:
        p = self.profile
        cond = self.cache.ensure(event.run_number)
        self.state = AssemblerState.RUN_CACHE_VALID

        cent = event.centrality(p.centrality_estimator)
        cbin = centrality_bin(cent, max_centrality=p.max_calibrated_centrality)
        in_window = cbin is not None
        reported_cent = cent if in_window else float(p.uncalibrated_centrality)
        is_calibrated = in_window and cond.has_calibration

        channel_inputs = self._channel_inputs(event, cond)
        selected = select_tracks(event.tracks, min_pt=p.min_pt, max_pt=p.max_pt)
        if self.qa is not None:
            self._fill_amplitude_qa(event, cond)
            self.qa.fill_tracks(
                selected["pt"].to_numpy(dtype=float),
                selected["eta"].to_numpy(dtype=float),
                selected["phi"].to_numpy(dtype=float),
                reported_cent,
            )

        results: List[HarmonicResult] = []
        labels_pos: Tuple[int, ...] = ()
        labels_neg: Tuple[int, ...] = ()
        for n in p.harmonics:
            raw, trk = self._raw_vectors(n, channel_inputs, selected)
            labels_pos, labels_neg = trk.labels_pos, trk.labels_neg

            calib = cond.calibration_for(n)
            apply = in_window and calib.available
            vectors = []
            for sub in SubSystem:
                constants = calib.table.constants(cbin, sub) if apply else None
                vectors.append(correction_levels(raw[sub], constants))
            results.append(
                HarmonicResult(
                    harmonic=n,
                    vectors=tuple(vectors),
                    calibrated=apply,
                    calibration_harmonic=calib.source_harmonic if apply else None,
                )
            )
        self.state = AssemblerState.EVENT_COMPUTED

        amplitude_sums = {
            sub.name: float(np.sum(inp.amplitudes[np.isfinite(inp.phi)]))
            for sub, inp in channel_inputs.items()
        }
        record = EventRecord(
            collision_id=event.collision_id,
            run_number=event.run_number,
            centrality=float(reported_cent),
            is_calibrated=bool(is_calibrated),
            harmonics=tuple(results),
            enabled=self.mask.names(),
            amplitude_sums=amplitude_sums,
            n_trk_pos=len(labels_pos),
            n_trk_neg=len(labels_neg),
            labels_pos=labels_pos,
            labels_neg=labels_neg,
        )
        self.state = AssemblerState.EMITTED
        return record

    def _raw_vectors(
        self,
        harmonic: int,
        channel_inputs: Dict[SubSystem, _ChannelInput],
        selected: pd.DataFrame,
    ) -> Tuple[Dict[SubSystem, QVector], TrackSubEvents]:
        out: Dict[SubSystem, QVector] = {}
        for spec in SUBSYSTEM_SPECS:
            if spec.kind is not InputKind.CHANNEL:
                continue
            inp = channel_inputs.get(spec.subsystem)
            if inp is None:
                out[spec.subsystem] = QVector.not_requested()
            else:
                out[spec.subsystem] = accumulate(inp.phi, inp.amplitudes, harmonic, eps=self.profile.amplitude_eps)

        trk = build_track_subevents(
            selected,
            harmonic,
            eta_gap=self.profile.eta_gap,
            eta_max=self.profile.eta_max,
            enable_pos=SubSystem.BPOS in self.mask,
            enable_neg=SubSystem.BNEG in self.mask,
        )
        out[SubSystem.BPOS] = trk.pos
        out[SubSystem.BNEG] = trk.neg
        return out, trk

    def process_many(self, events: Iterable[CollisionEvent]) -> Iterator[EventRecord]:
        for ev in events:
            yield self.process(ev)
