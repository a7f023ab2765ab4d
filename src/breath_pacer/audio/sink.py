"""
Audio Sink - What the session core may ask of audio output
===========================================================

The core only issues calls; it never inspects device state. Every call is
fire-and-forget and must not raise into the caller's tick.
"""

from enum import Enum
from typing import Optional, Protocol, runtime_checkable


class CueKind(Enum):
    """Discrete cues. Phase cues share their value with the phase they announce."""
    INHALE = "inhale"
    HOLD = "hold"
    EXHALE = "exhale"
    HOLD_AFTER_EXHALE = "holdAfterExhale"
    CYCLE_COMPLETE = "cycleComplete"

    @classmethod
    def for_phase(cls, phase) -> 'CueKind':
        """Cue announcing ``phase`` (a BreathingPhase other than IDLE)"""
        return cls(phase.value)


@runtime_checkable
class AudioSink(Protocol):
    """Audio output capability used by BreathingSession."""

    def play_cue(self, kind: CueKind, duration: float,
                 style: str = "beep", volume: float = 100.0):
        ...

    def start_ambient(self, ambient_type: str, volume: float,
                      source: Optional[str] = None):
        ...

    def stop_ambient(self):
        ...

    def set_ambient_volume(self, volume: float):
        ...

    def stop_all(self):
        ...


class NullAudioSink:
    """Silent sink: accepts every call and does nothing."""

    def play_cue(self, kind: CueKind, duration: float,
                 style: str = "beep", volume: float = 100.0):
        pass

    def start_ambient(self, ambient_type: str, volume: float,
                      source: Optional[str] = None):
        pass

    def stop_ambient(self):
        pass

    def set_ambient_volume(self, volume: float):
        pass

    def stop_all(self):
        pass
