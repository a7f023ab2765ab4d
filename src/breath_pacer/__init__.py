"""
Breath Pacer - guided breathing sessions with synthesized audio cues.

Main entry points:
    BreathingSession         - phase state machine + tick loop
    ResonanceTestController  - resonance frequency discovery test
    AudioManager             - audio sink mixing phase cues and ambient bed
"""

__version__ = "0.1.0"

from .core import (
    BreathingPhase,
    BreathingSettings,
    BreathingSession,
    ConfigurationError,
    InMemorySettingsStore,
    ResonanceTestController,
    SessionEvent,
    SessionState,
)
from .audio import AudioManager

__all__ = [
    'AudioManager',
    'BreathingPhase',
    'BreathingSettings',
    'BreathingSession',
    'ConfigurationError',
    'InMemorySettingsStore',
    'ResonanceTestController',
    'SessionEvent',
    'SessionState',
    '__version__',
]
