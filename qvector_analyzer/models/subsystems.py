"""Fixed detector sub-systems and the enable mask.

Six sub-systems produce one Q-vector each per event and harmonic. Four are
built from forward-detector channel amplitudes, two from mid-rapidity tracks.
The order of :class:`SubSystem` members is the output order and also the
sub-system axis of every calibration table.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Iterable, Tuple

import numpy as np


class DetectorFamily(str, Enum):
    """Forward detector families with their own gain and geometry tables."""

    FT0 = "FT0"
    FV0 = "FV0"


class InputKind(str, Enum):
    CHANNEL = "channel"
    TRACK = "track"


class SubSystem(IntEnum):
    FT0C = 0
    FT0A = 1
    FT0M = 2
    FV0A = 3
    BPOS = 4
    BNEG = 5

    @classmethod
    def parse(cls, name: str | "SubSystem") -> "SubSystem":
        if isinstance(name, SubSystem):
            return name
        key = str(name).strip().upper()
        try:
            return cls[key]
        except KeyError:
            raise ValueError(f"Unknown sub-system: {name!r}") from None


N_SUBSYSTEMS = len(SubSystem)


@dataclass(frozen=True)
class SubSystemSpec:
    """Descriptor processed uniformly by the assembler.

    ``sides`` lists the channel groups of ``family`` that feed the sub-system
    (``"A"``/``"C"`` for FT0). FV0 is read whole and has none. Track-based
    sub-systems have no family.
    """

    subsystem: SubSystem
    kind: InputKind
    family: DetectorFamily | None = None
    sides: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.subsystem.name


SUBSYSTEM_SPECS: Tuple[SubSystemSpec, ...] = (
    SubSystemSpec(SubSystem.FT0C, InputKind.CHANNEL, DetectorFamily.FT0, ("C",)),
    SubSystemSpec(SubSystem.FT0A, InputKind.CHANNEL, DetectorFamily.FT0, ("A",)),
    SubSystemSpec(SubSystem.FT0M, InputKind.CHANNEL, DetectorFamily.FT0, ("A", "C")),
    SubSystemSpec(SubSystem.FV0A, InputKind.CHANNEL, DetectorFamily.FV0),
    SubSystemSpec(SubSystem.BPOS, InputKind.TRACK),
    SubSystemSpec(SubSystem.BNEG, InputKind.TRACK),
)


@dataclass(frozen=True)
class SubSystemMask:
    """Enum-indexed boolean array fixed at configuration time."""

    enabled: np.ndarray  # (N_SUBSYSTEMS,) bool

    def __post_init__(self) -> None:
        arr = np.asarray(self.enabled, dtype=bool)
        if arr.shape != (N_SUBSYSTEMS,):
            raise ValueError(f"SubSystemMask needs shape ({N_SUBSYSTEMS},), got {arr.shape}")
        arr = arr.copy()
        arr.setflags(write=False)
        object.__setattr__(self, "enabled", arr)

    @classmethod
    def all(cls) -> "SubSystemMask":
        return cls(np.ones(N_SUBSYSTEMS, dtype=bool))

    @classmethod
    def from_names(cls, names: Iterable[str | SubSystem]) -> "SubSystemMask":
        arr = np.zeros(N_SUBSYSTEMS, dtype=bool)
        for n in names:
            arr[int(SubSystem.parse(n))] = True
        return cls(arr)

    def __contains__(self, sub: SubSystem) -> bool:
        return bool(self.enabled[int(sub)])

    def names(self) -> Tuple[str, ...]:
        return tuple(s.name for s in SubSystem if self.enabled[int(s)])
