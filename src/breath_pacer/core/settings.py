"""
╔══════════════════════════════════════════════════════════════════════════════╗
║                   BREATHING SETTINGS - Session Configuration                 ║
║                                                                              ║
║   Single source of truth for:                                                ║
║   • Phase durations (inhale / hold / exhale / hold after exhale)             ║
║   • Session limits (total minutes, legacy cycle count)                       ║
║   • Audio preferences (cue style, ambient bed type, volumes)                 ║
║                                                                              ║
║   DESIGN PRINCIPLES:                                                         ║
║   • Frozen dataclass: the session reads one snapshot per tick                ║
║   • Protocol-based store (PEP-544): the core reads and merges, never saves   ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Tuple, runtime_checkable

from .errors import ConfigurationError
from .patterns import DEFAULT_PATTERN_ID, BreathingPattern


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════════════════════

class SoundType(Enum):
    """Style of the per-phase audio cue."""
    BEEP = "beep"       # Pure tone sweep
    NOISE = "noise"     # Band-passed noise, airflow-like


class BackgroundMusicType(Enum):
    """Ambient bed flavours. All but CUSTOM are synthesized."""
    WHITE_NOISE = "whiteNoise"
    OCEAN = "ocean"
    WIND = "wind"
    RAIN = "rain"
    FIRE = "fire"
    WIND_LIGHT = "windLight"
    SEA = "sea"
    CUSTOM = "custom"


# ══════════════════════════════════════════════════════════════════════════════
# SETTINGS RECORD
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class BreathingSettings:
    """
    Configuration for a breathing session.

    A duration of 0 skips the phase. ``total_minutes == 0`` and
    ``total_cycles == 0`` both mean "no limit".
    """
    # Phase durations (seconds)
    inhale_seconds: float = 4.0
    hold_seconds: float = 7.0
    exhale_seconds: float = 8.0
    hold_after_exhale_seconds: float = 0.0

    # Limits
    total_minutes: float = 5.0
    total_cycles: int = 0

    # Phase cues
    sound_enabled: bool = True
    sound_type: SoundType = SoundType.BEEP
    sound_volume: float = 50.0              # 0-100
    cycle_chime_enabled: bool = False

    # Ambient bed
    background_music_enabled: bool = False
    background_music_type: BackgroundMusicType = BackgroundMusicType.OCEAN
    background_music_volume: float = 50.0   # 0-100
    custom_music_source: Optional[str] = None

    # Pattern bookkeeping
    current_pattern_id: str = DEFAULT_PATTERN_ID
    custom_patterns: Tuple[BreathingPattern, ...] = field(default_factory=tuple)

    @property
    def phase_durations(self) -> Tuple[float, float, float, float]:
        return (self.inhale_seconds, self.hold_seconds,
                self.exhale_seconds, self.hold_after_exhale_seconds)

    @property
    def total_seconds(self) -> float:
        """Session cap in seconds, 0 when unlimited"""
        return self.total_minutes * 60.0 if self.total_minutes > 0 else 0.0

    @property
    def cycle_seconds(self) -> float:
        return sum(self.phase_durations)

    def merged(self, **changes) -> 'BreathingSettings':
        """Return a copy with ``changes`` applied and value ranges checked."""
        unknown = set(changes) - {f.name for f in fields(self)}
        if unknown:
            raise ConfigurationError(f"Unknown settings: {', '.join(sorted(unknown))}")
        if 'sound_type' in changes:
            changes['sound_type'] = SoundType(changes['sound_type'])
        if 'background_music_type' in changes:
            changes['background_music_type'] = BackgroundMusicType(changes['background_music_type'])
        if 'custom_patterns' in changes:
            changes['custom_patterns'] = tuple(changes['custom_patterns'])
        updated = replace(self, **changes)
        check_ranges(updated)
        return updated

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with camelCase keys (the persisted settings schema)."""
        return {
            'inhaleSeconds': self.inhale_seconds,
            'holdSeconds': self.hold_seconds,
            'exhaleSeconds': self.exhale_seconds,
            'holdAfterExhaleSeconds': self.hold_after_exhale_seconds,
            'totalMinutes': self.total_minutes,
            'totalCycles': self.total_cycles,
            'soundEnabled': self.sound_enabled,
            'soundType': self.sound_type.value,
            'soundVolume': self.sound_volume,
            'cycleChimeEnabled': self.cycle_chime_enabled,
            'backgroundMusicEnabled': self.background_music_enabled,
            'backgroundMusicType': self.background_music_type.value,
            'backgroundMusicVolume': self.background_music_volume,
            'customMusicUrl': self.custom_music_source,
            'currentPatternId': self.current_pattern_id,
            'customPatterns': [p.to_dict() for p in self.custom_patterns],
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'BreathingSettings':
        """Deserialize; missing keys fall back to defaults."""
        defaults = cls()
        settings = cls(
            inhale_seconds=float(data.get('inhaleSeconds', defaults.inhale_seconds)),
            hold_seconds=float(data.get('holdSeconds', defaults.hold_seconds)),
            exhale_seconds=float(data.get('exhaleSeconds', defaults.exhale_seconds)),
            hold_after_exhale_seconds=float(
                data.get('holdAfterExhaleSeconds', defaults.hold_after_exhale_seconds)),
            total_minutes=float(data.get('totalMinutes', defaults.total_minutes)),
            total_cycles=int(data.get('totalCycles', defaults.total_cycles)),
            sound_enabled=bool(data.get('soundEnabled', defaults.sound_enabled)),
            sound_type=SoundType(data.get('soundType', defaults.sound_type.value)),
            sound_volume=float(data.get('soundVolume', defaults.sound_volume)),
            cycle_chime_enabled=bool(data.get('cycleChimeEnabled', defaults.cycle_chime_enabled)),
            background_music_enabled=bool(
                data.get('backgroundMusicEnabled', defaults.background_music_enabled)),
            background_music_type=BackgroundMusicType(
                data.get('backgroundMusicType', defaults.background_music_type.value)),
            background_music_volume=float(
                data.get('backgroundMusicVolume', defaults.background_music_volume)),
            custom_music_source=data.get('customMusicUrl'),
            current_pattern_id=data.get('currentPatternId', defaults.current_pattern_id),
            custom_patterns=tuple(
                BreathingPattern.from_dict(p) for p in data.get('customPatterns', [])),
        )
        check_ranges(settings)
        return settings


# ══════════════════════════════════════════════════════════════════════════════
# VALIDATION
# ══════════════════════════════════════════════════════════════════════════════

def check_ranges(settings: BreathingSettings):
    """Per-field range checks, applied on every write."""
    for name, value in (('inhale_seconds', settings.inhale_seconds),
                        ('hold_seconds', settings.hold_seconds),
                        ('exhale_seconds', settings.exhale_seconds),
                        ('hold_after_exhale_seconds', settings.hold_after_exhale_seconds),
                        ('total_minutes', settings.total_minutes)):
        if value < 0:
            raise ConfigurationError(f"{name} must be >= 0, got {value}")
    if settings.total_cycles < 0:
        raise ConfigurationError(f"total_cycles must be >= 0, got {settings.total_cycles}")
    for name, value in (('sound_volume', settings.sound_volume),
                        ('background_music_volume', settings.background_music_volume)):
        if not 0 <= value <= 100:
            raise ConfigurationError(f"{name} must be within 0-100, got {value}")


def validate_settings(settings: BreathingSettings):
    """
    Full validation before a session starts.

    Raises:
        ConfigurationError: on out-of-range values or when every phase
            duration is zero (no phase could ever be entered).
    """
    check_ranges(settings)
    if settings.cycle_seconds <= 0:
        raise ConfigurationError("At least one phase duration must be greater than zero")


# ══════════════════════════════════════════════════════════════════════════════
# SETTINGS STORE
# ══════════════════════════════════════════════════════════════════════════════

@runtime_checkable
class SettingsStore(Protocol):
    """Read / merge-write access to the settings record."""

    def read(self) -> BreathingSettings:
        ...

    def write(self, **changes) -> BreathingSettings:
        ...


class InMemorySettingsStore:
    """
    Default settings store: holds the record in memory.

    Writes are partial and validated; readers always get a complete,
    immutable snapshot.
    """

    def __init__(self, settings: Optional[BreathingSettings] = None):
        self._settings = settings or BreathingSettings()
        check_ranges(self._settings)
        self._lock = threading.Lock()

    def read(self) -> BreathingSettings:
        with self._lock:
            return self._settings

    def write(self, **changes) -> BreathingSettings:
        with self._lock:
            self._settings = self._settings.merged(**changes)
            return self._settings
