"""Tagged Q-vector values.

Internally a Q-vector is one of three states:

- ``DEFINED``: a finite ``(re, im)`` pair with its amplitude-sum weight.
- ``UNAVAILABLE``: the sub-system was requested but nothing measurable was
  collected (amplitude sum below epsilon, empty track sub-event).
- ``NOT_REQUESTED``: the sub-system is disabled or the detector is absent
  from the event.

The legacy numeric sentinels (``+999`` / ``-999``) are only produced at the
serialization boundary through :meth:`QVector.as_pair`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Tuple


SENTINEL_UNAVAILABLE = 999.0
SENTINEL_NOT_REQUESTED = -999.0


class QStatus(str, Enum):
    DEFINED = "defined"
    UNAVAILABLE = "unavailable"
    NOT_REQUESTED = "not_requested"


class CorrectionLevel(IntEnum):
    """Correction stages kept per sub-system and harmonic."""

    RAW = 0
    RECENTERED = 1
    TWISTED = 2
    RESCALED = 3


N_LEVELS = len(CorrectionLevel)


@dataclass(frozen=True)
class QVector:
    """One Q-vector for one (event, sub-system, harmonic).

    ``weight`` is the amplitude sum for channel-based sub-systems and the
    member count for track-based ones. It is kept for every status, so an
    ``UNAVAILABLE`` vector still reports the (sub-threshold) amplitude sum.
    """

    status: QStatus
    re: float = 0.0
    im: float = 0.0
    weight: float = 0.0

    @classmethod
    def defined(cls, re: float, im: float, weight: float) -> "QVector":
        return cls(QStatus.DEFINED, float(re), float(im), float(weight))

    @classmethod
    def unavailable(cls, weight: float = 0.0) -> "QVector":
        return cls(QStatus.UNAVAILABLE, weight=float(weight))

    @classmethod
    def not_requested(cls) -> "QVector":
        return cls(QStatus.NOT_REQUESTED)

    @property
    def is_defined(self) -> bool:
        return self.status is QStatus.DEFINED

    @property
    def value(self) -> complex:
        if not self.is_defined:
            raise ValueError(f"Q-vector has no value (status={self.status.value})")
        return complex(self.re, self.im)

    def with_components(self, re: float, im: float) -> "QVector":
        """Return a copy carrying new components (DEFINED vectors only)."""
        if not self.is_defined:
            return self
        return QVector(self.status, float(re), float(im), self.weight)

    def as_pair(self) -> Tuple[float, float]:
        """Components with the legacy sentinels substituted."""
        if self.status is QStatus.DEFINED:
            return self.re, self.im
        if self.status is QStatus.UNAVAILABLE:
            return SENTINEL_UNAVAILABLE, SENTINEL_UNAVAILABLE
        return SENTINEL_NOT_REQUESTED, SENTINEL_NOT_REQUESTED


def is_sentinel(x: float) -> bool:
    """True for either reserved magnitude. Consumers must exclude such values."""
    return float(x) in (SENTINEL_UNAVAILABLE, SENTINEL_NOT_REQUESTED)
