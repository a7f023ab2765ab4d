"""
Phase Sequencer - Breathing cycle transition policy
====================================================

Pure functions: given the phase that just expired and the settings,
decide which phase comes next and for how long. Zero-duration phases are
never entered. Crossing from the end of the cycle back into INHALE marks a
completed cycle.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .settings import BreathingSettings


class BreathingPhase(Enum):
    """Named segment of the breathing cycle. IDLE is initial and terminal."""
    IDLE = "idle"
    INHALE = "inhale"
    HOLD = "hold"
    EXHALE = "exhale"
    HOLD_AFTER_EXHALE = "holdAfterExhale"

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    BreathingPhase.IDLE: "Ready",
    BreathingPhase.INHALE: "Breathe In",
    BreathingPhase.HOLD: "Hold",
    BreathingPhase.EXHALE: "Breathe Out",
    BreathingPhase.HOLD_AFTER_EXHALE: "Hold",
}

# Order of one full cycle; the wrap from the last entry to the first is the
# cycle boundary.
CYCLE_ORDER = (
    BreathingPhase.INHALE,
    BreathingPhase.HOLD,
    BreathingPhase.EXHALE,
    BreathingPhase.HOLD_AFTER_EXHALE,
)


@dataclass(frozen=True)
class PhaseTransition:
    """Result of a sequencer step."""
    phase: BreathingPhase
    duration: float
    completes_cycle: bool = False


def phase_duration(phase: BreathingPhase, settings: BreathingSettings) -> float:
    """Configured duration of ``phase`` in seconds (IDLE is 0)."""
    if phase == BreathingPhase.IDLE:
        return 0.0
    return settings.phase_durations[CYCLE_ORDER.index(phase)]


def first_phase(settings: BreathingSettings) -> Optional[PhaseTransition]:
    """
    Phase entered when a session starts.

    INHALE for any usual configuration; when inhale is zero the first
    non-zero phase in cycle order. None if every duration is zero.
    """
    for phase in CYCLE_ORDER:
        duration = phase_duration(phase, settings)
        if duration > 0:
            return PhaseTransition(phase, duration)
    return None


def next_phase(current: BreathingPhase,
               settings: BreathingSettings,
               current_cycle: int = 0,
               time_expired: bool = False) -> Optional[PhaseTransition]:
    """
    Next (phase, duration) after ``current`` expires, or None to end the session.

    Args:
        current: Phase whose countdown just reached zero.
        settings: Snapshot read for this tick.
        current_cycle: Cycles counted so far (for the legacy cycle cap).
        time_expired: True when the session time cap has been reached.

    Returns:
        PhaseTransition, or None as the terminal signal.
    """
    if time_expired or current == BreathingPhase.IDLE:
        return None

    index = CYCLE_ORDER.index(current)
    wrapped = False
    for step in range(1, len(CYCLE_ORDER) + 1):
        position = index + step
        if position >= len(CYCLE_ORDER):
            wrapped = True
        candidate = CYCLE_ORDER[position % len(CYCLE_ORDER)]
        duration = phase_duration(candidate, settings)
        if duration <= 0:
            continue

        if wrapped and settings.total_cycles > 0 and current_cycle >= settings.total_cycles:
            return None
        return PhaseTransition(candidate, duration, completes_cycle=wrapped)

    # Every duration is zero; rejected by validate_settings before start.
    return None
