"""
╔══════════════════════════════════════════════════════════════════════════════╗
║               RESONANCE TEST - Breathing rate discovery (Lehrer method)      ║
║                                                                              ║
║   Runs the breathing session through six preset rates, 7.0 → 4.5 breaths    ║
║   per minute, for a fixed time each. After each rate the user rates the      ║
║   comfort 1-5; the best rated rate is the resonance frequency.               ║
║                                                                              ║
║   FLOW:                                                                      ║
║   intro → testing → rating → testing → ... → completed                      ║
║   (rating is passed straight through when skip_rating is set)                ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import copy
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .errors import ConfigurationError
from .patterns import BreathingPattern
from .session import BreathingSession, SessionEvent, SessionState

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════════
# PRESET RATES
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ResonanceFrequency:
    """One tested breathing rate. Holds are always zero during the test."""
    breaths_per_minute: float
    inhale_seconds: float
    exhale_seconds: float

    @classmethod
    def from_rate(cls, breaths_per_minute: float) -> 'ResonanceFrequency':
        half_cycle = round(30.0 / breaths_per_minute, 1)
        return cls(breaths_per_minute, half_cycle, half_cycle)

    def as_pattern(self) -> BreathingPattern:
        return BreathingPattern(
            id='resonance',
            name=f"{self.breaths_per_minute:g} BPM Resonance",
            inhale_seconds=self.inhale_seconds,
            hold_seconds=0,
            exhale_seconds=self.exhale_seconds,
            hold_after_exhale_seconds=0,
        )


RESONANCE_TEST_FREQUENCIES: Tuple[ResonanceFrequency, ...] = tuple(
    ResonanceFrequency.from_rate(bpm) for bpm in (7.0, 6.5, 6.0, 5.5, 5.0, 4.5)
)

DEFAULT_TEST_MINUTES = 2.0
MIN_TEST_MINUTES = 0.5
MAX_TEST_MINUTES = 10.0
TEST_MINUTES_STEP = 0.5

MIN_RATING = 1
MAX_RATING = 5


def find_resonant_index(ratings) -> Optional[int]:
    """
    Index of the strictly-highest rating; first occurrence wins ties.

    Returns None when no slot has been rated.
    """
    best_index = None
    best_rating = None
    for index, rating in enumerate(ratings):
        if rating is None:
            continue
        if best_rating is None or rating > best_rating:
            best_index, best_rating = index, rating
    return best_index


# ══════════════════════════════════════════════════════════════════════════════
# STATE
# ══════════════════════════════════════════════════════════════════════════════

class ResonanceStage(Enum):
    """Resonance test dialog stage."""
    INTRO = "intro"
    TESTING = "testing"
    RATING = "rating"
    COMPLETED = "completed"


def _empty_ratings() -> List[Optional[int]]:
    return [None] * len(RESONANCE_TEST_FREQUENCIES)


@dataclass
class ResonanceTestState:
    """Resonance test progress. Reset to this initial shape on cancel/exit/apply."""
    is_active: bool = False
    is_completed: bool = False
    stage: ResonanceStage = ResonanceStage.INTRO
    current_frequency_index: int = 0
    ratings: List[Optional[int]] = field(default_factory=_empty_ratings)
    resonant_frequency: Optional[ResonanceFrequency] = None
    duration_minutes: float = DEFAULT_TEST_MINUTES
    skip_rating: bool = True

    @property
    def current_frequency(self) -> ResonanceFrequency:
        return RESONANCE_TEST_FREQUENCIES[self.current_frequency_index]

    @property
    def total_test_minutes(self) -> float:
        return self.duration_minutes * len(RESONANCE_TEST_FREQUENCIES)


ResonanceObserver = Callable[[ResonanceTestState], None]


# ══════════════════════════════════════════════════════════════════════════════
# CONTROLLER
# ══════════════════════════════════════════════════════════════════════════════

class ResonanceTestController:
    """
    Drives a BreathingSession through the preset rates.

    The session's time cap is set to the per-rate duration and
    ``hold_on_time_limit`` makes it pause (not reset) when the cap is hit,
    which is where the rating step happens.

    Usage:
        controller = ResonanceTestController(session)
        controller.start(duration_minutes=1.0, skip_rating=False)
        ...                    # on ResonanceStage.RATING:
        controller.rate(4)
        controller.next()
    """

    def __init__(self, session: BreathingSession):
        self.session = session
        self._state = ResonanceTestState()
        self._lock = threading.RLock()
        self._observers: List[ResonanceObserver] = []
        self._saved_settings = None
        session.add_observer(self._on_session_event)

    # ─────────────────────────────────────────────────────────────────────────
    # Observer Pattern
    # ─────────────────────────────────────────────────────────────────────────

    def add_observer(self, callback: ResonanceObserver):
        with self._lock:
            self._observers.append(callback)

    def remove_observer(self, callback: ResonanceObserver):
        with self._lock:
            if callback in self._observers:
                self._observers.remove(callback)

    def _notify(self):
        with self._lock:
            state_copy = copy.deepcopy(self._state)
            observers = self._observers.copy()
        for obs in observers:
            try:
                obs(state_copy)
            except Exception:
                logger.exception("Resonance observer failed")

    @property
    def state(self) -> ResonanceTestState:
        with self._lock:
            return copy.deepcopy(self._state)

    # ─────────────────────────────────────────────────────────────────────────
    # Operations
    # ─────────────────────────────────────────────────────────────────────────

    def start(self, duration_minutes: Optional[float] = None,
              skip_rating: Optional[bool] = None):
        """
        Begin the test at the first preset.

        Args:
            duration_minutes: Time spent on each rate (0.5-10, 0.5 steps).
            skip_rating: Advance automatically when a rate's time is up.
        """
        with self._lock:
            duration = self._state.duration_minutes if duration_minutes is None else duration_minutes
            _check_duration(duration)
            skip = self._state.skip_rating if skip_rating is None else skip_rating

            if self._saved_settings is None:
                self._saved_settings = self.session.settings

            self._state = ResonanceTestState(
                is_active=True,
                stage=ResonanceStage.TESTING,
                duration_minutes=duration,
                skip_rating=skip,
            )
            self.session.hold_on_time_limit = True
            self._configure_preset(0)
            logger.info("Resonance test started: %d rates x %g min",
                        len(RESONANCE_TEST_FREQUENCIES), duration)
            self.session.start()

        self._notify()

    def toggle_pause(self):
        """Pause or resume the rate being tested."""
        with self._lock:
            if self._state.stage != ResonanceStage.TESTING:
                return
        state = self.session.state
        if state.is_running:
            self.session.pause()
        else:
            self.session.resume()

    def rate(self, rating: int):
        """
        Record the comfort rating for the current rate.

        Raises:
            ConfigurationError: rating not an integer 1-5, or no active test.
        """
        if isinstance(rating, bool) or not isinstance(rating, int) \
                or not MIN_RATING <= rating <= MAX_RATING:
            raise ConfigurationError(
                f"Rating must be an integer {MIN_RATING}-{MAX_RATING}, got {rating!r}")
        with self._lock:
            if not self._state.is_active:
                raise ConfigurationError("No resonance test in progress")
            self._state.ratings[self._state.current_frequency_index] = rating
            logger.debug("Rated %g BPM: %d",
                         self._state.current_frequency.breaths_per_minute, rating)
        self._notify()

    def next(self):
        """Move on to the next rate, or finalize after the last one."""
        with self._lock:
            if not self._state.is_active:
                return
            next_index = self._state.current_frequency_index + 1
            finished = next_index >= len(RESONANCE_TEST_FREQUENCIES)
            if finished:
                self._finalize()
            else:
                self._configure_preset(next_index)
                self._state.current_frequency_index = next_index
                self._state.stage = ResonanceStage.TESTING
                logger.info("Resonance test rate %d/%d", next_index + 1,
                            len(RESONANCE_TEST_FREQUENCIES))
                # Started under the lock so a concurrent cancel() cannot be
                # followed by a late restart.
                self.session.start()

        if finished:
            self.session.reset()
        self._notify()

    def cancel(self):
        """Stop immediately and discard all progress."""
        with self._lock:
            self._reset_test()
        self.session.reset()
        logger.info("Resonance test cancelled")
        self._notify()

    def apply(self) -> Optional[BreathingPattern]:
        """
        Use the resonance frequency as the breathing pattern and close the test.

        Returns:
            The applied pattern, or None when no rate was rated.
        """
        with self._lock:
            frequency = self._state.resonant_frequency
            was_active = self._state.is_active
            self._reset_test()

        if was_active:
            self.session.reset()
        pattern = None
        if frequency is not None:
            pattern = frequency.as_pattern()
            self.session.store.write(current_pattern_id=pattern.id, **pattern.durations())
            logger.info("Applied resonance pattern: %s", pattern.name)
        self._notify()
        return pattern

    def close(self):
        """Leave the test dialog: cancels an active test."""
        with self._lock:
            active = self._state.is_active
        if active:
            self.cancel()
            return
        with self._lock:
            self._reset_test()
        self._notify()

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    def _configure_preset(self, index: int):
        frequency = RESONANCE_TEST_FREQUENCIES[index]
        self.session.store.write(
            inhale_seconds=frequency.inhale_seconds,
            hold_seconds=0,
            exhale_seconds=frequency.exhale_seconds,
            hold_after_exhale_seconds=0,
            total_minutes=self._state.duration_minutes,
            total_cycles=0,
        )

    def _finalize(self):
        state = self._state
        index = find_resonant_index(state.ratings)
        state.resonant_frequency = (RESONANCE_TEST_FREQUENCIES[index]
                                    if index is not None else None)
        state.is_active = False
        state.is_completed = True
        state.stage = ResonanceStage.COMPLETED
        self.session.hold_on_time_limit = False
        if state.resonant_frequency is None:
            logger.info("Resonance test complete: no resonant frequency found")
        else:
            logger.info("Resonance test complete: %g BPM",
                        state.resonant_frequency.breaths_per_minute)

    def _reset_test(self):
        """Back to the initial shape, restoring the user's own settings."""
        keep = (self._state.duration_minutes, self._state.skip_rating)
        self._state = ResonanceTestState(duration_minutes=keep[0], skip_rating=keep[1])
        self.session.hold_on_time_limit = False
        if self._saved_settings is not None:
            saved = self._saved_settings
            self._saved_settings = None
            self.session.store.write(
                inhale_seconds=saved.inhale_seconds,
                hold_seconds=saved.hold_seconds,
                exhale_seconds=saved.exhale_seconds,
                hold_after_exhale_seconds=saved.hold_after_exhale_seconds,
                total_minutes=saved.total_minutes,
                total_cycles=saved.total_cycles,
            )

    def _on_session_event(self, event: SessionEvent, session_state: SessionState):
        if event != SessionEvent.TIME_LIMIT_REACHED:
            return
        with self._lock:
            if not self._state.is_active:
                return
            self._state.stage = ResonanceStage.RATING
            skip = self._state.skip_rating
        self._notify()
        if skip:
            self.next()


def _check_duration(minutes: float):
    if not MIN_TEST_MINUTES <= minutes <= MAX_TEST_MINUTES:
        raise ConfigurationError(
            f"Test duration must be within {MIN_TEST_MINUTES}-{MAX_TEST_MINUTES} min, got {minutes}")
    steps = minutes / TEST_MINUTES_STEP
    if abs(steps - round(steps)) > 1e-9:
        raise ConfigurationError(
            f"Test duration must be a multiple of {TEST_MINUTES_STEP} min, got {minutes}")
