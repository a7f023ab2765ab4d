"""
Core module - Settings, phase sequencing, session tick loop, resonance test
"""
from .errors import BreathPacerError, ConfigurationError, AudioUnavailableError
from .patterns import BreathingPattern, BUILT_IN_PATTERNS, PatternCatalog, get_pattern
from .settings import (
    BreathingSettings, SoundType, BackgroundMusicType,
    SettingsStore, InMemorySettingsStore, validate_settings,
)
from .phases import BreathingPhase, PhaseTransition, first_phase, next_phase
from .scheduler import TickScheduler, ThreadingTickScheduler, ManualTickScheduler
from .session import BreathingSession, SessionEvent, SessionState, DEFAULT_TICK_SECONDS
from .resonance import (
    ResonanceTestController, ResonanceTestState, ResonanceStage,
    ResonanceFrequency, RESONANCE_TEST_FREQUENCIES, find_resonant_index,
)

__all__ = [
    'BreathPacerError', 'ConfigurationError', 'AudioUnavailableError',
    'BreathingPattern', 'BUILT_IN_PATTERNS', 'PatternCatalog', 'get_pattern',
    'BreathingSettings', 'SoundType', 'BackgroundMusicType',
    'SettingsStore', 'InMemorySettingsStore', 'validate_settings',
    'BreathingPhase', 'PhaseTransition', 'first_phase', 'next_phase',
    'TickScheduler', 'ThreadingTickScheduler', 'ManualTickScheduler',
    'BreathingSession', 'SessionEvent', 'SessionState', 'DEFAULT_TICK_SECONDS',
    'ResonanceTestController', 'ResonanceTestState', 'ResonanceStage',
    'ResonanceFrequency', 'RESONANCE_TEST_FREQUENCIES', 'find_resonant_index',
]
