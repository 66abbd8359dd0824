from .event import ChannelSignals, CollisionEvent, FT0Signals
from .profile import AnalysisProfile
from .qvector import CorrectionLevel, QStatus, QVector
from .record import EventRecord, HarmonicResult
from .subsystems import DetectorFamily, InputKind, SubSystem, SubSystemMask, SubSystemSpec

__all__ = [
    "AnalysisProfile",
    "ChannelSignals",
    "CollisionEvent",
    "CorrectionLevel",
    "DetectorFamily",
    "EventRecord",
    "FT0Signals",
    "HarmonicResult",
    "InputKind",
    "QStatus",
    "QVector",
    "SubSystem",
    "SubSystemMask",
    "SubSystemSpec",
]
