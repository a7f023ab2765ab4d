"""
Breathing Patterns - Named duration presets
============================================

A pattern is a named set of the four phase durations. Selecting one is a
bulk settings update (the four durations plus ``current_pattern_id``).
Built-in patterns are fixed; custom patterns live in the settings record.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .errors import ConfigurationError


@dataclass(frozen=True)
class BreathingPattern:
    """
    Named breathing rhythm.

    Example: Box breathing
        BreathingPattern("4-4-4-4", "4-4-4-4 Box", 4, 4, 4, 4, is_built_in=True)
    """
    id: str
    name: str
    inhale_seconds: float
    hold_seconds: float
    exhale_seconds: float
    hold_after_exhale_seconds: float
    is_built_in: bool = False

    @property
    def cycle_seconds(self) -> float:
        """Length of one full cycle in seconds"""
        return (self.inhale_seconds + self.hold_seconds +
                self.exhale_seconds + self.hold_after_exhale_seconds)

    @property
    def breaths_per_minute(self) -> float:
        cycle = self.cycle_seconds
        return 60.0 / cycle if cycle > 0 else 0.0

    def durations(self) -> Dict[str, float]:
        """Settings fields written when the pattern is applied"""
        return {
            'inhale_seconds': self.inhale_seconds,
            'hold_seconds': self.hold_seconds,
            'exhale_seconds': self.exhale_seconds,
            'hold_after_exhale_seconds': self.hold_after_exhale_seconds,
        }

    def to_dict(self) -> dict:
        """Serialize using the settings schema keys"""
        return {
            'id': self.id,
            'name': self.name,
            'inhaleSeconds': self.inhale_seconds,
            'holdSeconds': self.hold_seconds,
            'exhaleSeconds': self.exhale_seconds,
            'holdAfterExhaleSeconds': self.hold_after_exhale_seconds,
            'isBuiltIn': self.is_built_in,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'BreathingPattern':
        return cls(
            id=data['id'],
            name=data.get('name', data['id']),
            inhale_seconds=float(data.get('inhaleSeconds', 0)),
            hold_seconds=float(data.get('holdSeconds', 0)),
            exhale_seconds=float(data.get('exhaleSeconds', 0)),
            hold_after_exhale_seconds=float(data.get('holdAfterExhaleSeconds', 0)),
            is_built_in=bool(data.get('isBuiltIn', False)),
        )


# ══════════════════════════════════════════════════════════════════════════════
# BUILT-IN PATTERNS
# ══════════════════════════════════════════════════════════════════════════════

BUILT_IN_PATTERNS: Tuple[BreathingPattern, ...] = (
    BreathingPattern('4-7-8', '4-7-8 Relaxing', 4, 7, 8, 0, is_built_in=True),
    BreathingPattern('4-0-4-0', '4-0-4-0 Simple', 4, 0, 4, 0, is_built_in=True),
    BreathingPattern('4-4-4-4', '4-4-4-4 Box', 4, 4, 4, 4, is_built_in=True),
    BreathingPattern('4-0-8-0', '4-0-8-0 Calming', 4, 0, 8, 0, is_built_in=True),
    BreathingPattern('5-5-5-5', '5-5-5-5 Balanced', 5, 5, 5, 5, is_built_in=True),
    BreathingPattern('6-0-6-0', '6-0-6-0 Easy', 6, 0, 6, 0, is_built_in=True),
)

DEFAULT_PATTERN_ID = '4-7-8'


def all_patterns(custom: Tuple[BreathingPattern, ...] = ()) -> List[BreathingPattern]:
    """Built-in patterns followed by custom ones"""
    return list(BUILT_IN_PATTERNS) + list(custom)


def find_pattern(pattern_id: str,
                 custom: Tuple[BreathingPattern, ...] = ()) -> Optional[BreathingPattern]:
    for pattern in all_patterns(custom):
        if pattern.id == pattern_id:
            return pattern
    return None


def get_pattern(pattern_id: str,
                custom: Tuple[BreathingPattern, ...] = ()) -> BreathingPattern:
    """Like find_pattern, but unknown ids are a configuration error."""
    pattern = find_pattern(pattern_id, custom)
    if pattern is None:
        raise ConfigurationError(f"Unknown breathing pattern: {pattern_id!r}")
    return pattern


class PatternCatalog:
    """
    Built-in + user patterns backed by a settings store.

    Usage:
        catalog = PatternCatalog(store)
        catalog.apply('4-4-4-4')
        catalog.add(BreathingPattern('my', 'Mine', 3, 0, 6, 0))
    """

    def __init__(self, store):
        self.store = store

    def patterns(self) -> List[BreathingPattern]:
        return all_patterns(self.store.read().custom_patterns)

    def get(self, pattern_id: str) -> BreathingPattern:
        return get_pattern(pattern_id, self.store.read().custom_patterns)

    def apply(self, pattern) -> BreathingPattern:
        """Apply a pattern (object or id) as a bulk duration update."""
        if isinstance(pattern, str):
            pattern = self.get(pattern)
        self.store.write(current_pattern_id=pattern.id, **pattern.durations())
        return pattern

    def add(self, pattern: BreathingPattern):
        custom = self.store.read().custom_patterns
        if find_pattern(pattern.id, custom) is not None:
            raise ConfigurationError(f"Pattern id already in use: {pattern.id!r}")
        if pattern.cycle_seconds <= 0:
            raise ConfigurationError("Pattern needs at least one non-zero phase")
        self.store.write(custom_patterns=custom + (pattern,))

    def remove(self, pattern_id: str):
        if any(p.id == pattern_id for p in BUILT_IN_PATTERNS):
            raise ConfigurationError(f"Built-in pattern cannot be removed: {pattern_id!r}")
        custom = self.store.read().custom_patterns
        self.store.write(custom_patterns=tuple(p for p in custom if p.id != pattern_id))
