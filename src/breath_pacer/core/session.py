"""
╔══════════════════════════════════════════════════════════════════════════════╗
║                  BREATHING SESSION - Phase State Machine + Tick Loop         ║
║                                                                              ║
║   Fixed-size ticks decrement the phase countdown and the session countdown.  ║
║   When a phase expires the Phase Sequencer picks the next one, the cycle     ║
║   counter advances at the cycle boundary and the matching audio cue fires.   ║
║                                                                              ║
║   Observable state pattern: UI layers register callbacks and receive         ║
║   (event, state copy) after each tick boundary.                              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import copy
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from ..audio.sink import AudioSink, CueKind, NullAudioSink
from .phases import BreathingPhase, first_phase, next_phase
from .scheduler import ThreadingTickScheduler, TickHandle, TickScheduler
from .settings import BreathingSettings, InMemorySettingsStore, validate_settings

logger = logging.getLogger(__name__)

# 100 ms ticks: smooth countdown, cue timing within a tenth of a second
DEFAULT_TICK_SECONDS = 0.1

# Timer arithmetic precision (seconds); keeps 0.1 s steps from drifting
_PRECISION = 6


def _r(value: float) -> float:
    return round(value, _PRECISION)


class SessionEvent(Enum):
    """Notifications delivered to session observers."""
    STARTED = "started"
    TICK = "tick"
    PHASE_CHANGED = "phase_changed"
    CYCLE_COMPLETED = "cycle_completed"
    PAUSED = "paused"
    RESUMED = "resumed"
    TIME_LIMIT_REACHED = "time_limit_reached"
    COMPLETED = "completed"
    RESET = "reset"


@dataclass
class SessionState:
    """
    Complete session state.

    All rendering is driven by copies of this record.
    """
    phase: BreathingPhase = BreathingPhase.IDLE
    is_running: bool = False
    seconds_remaining: float = 0.0
    total_seconds_remaining: float = 0.0
    current_cycle: int = 0
    elapsed_seconds: float = 0.0

    @property
    def is_idle(self) -> bool:
        return self.phase == BreathingPhase.IDLE

    @property
    def is_paused(self) -> bool:
        return not self.is_running and not self.is_idle


SessionObserver = Callable[[SessionEvent, SessionState], None]


class BreathingSession:
    """
    Breathing exercise driver.

    Mutation surface: start(), toggle(), pause(), resume(), reset(),
    set_background_volume(). Everything else is read-only.

    Usage:
        session = BreathingSession(InMemorySettingsStore(), audio=AudioManager())
        session.add_observer(lambda event, s: render(s.phase, s.seconds_remaining))
        session.start()
    """

    def __init__(self, store=None, audio: Optional[AudioSink] = None,
                 scheduler: Optional[TickScheduler] = None,
                 tick_seconds: float = DEFAULT_TICK_SECONDS):
        if tick_seconds <= 0:
            raise ValueError(f"tick_seconds must be > 0, got {tick_seconds}")

        self.store = store if store is not None else InMemorySettingsStore()
        self.audio = audio if audio is not None else NullAudioSink()
        self.scheduler = scheduler if scheduler is not None else ThreadingTickScheduler()
        self.tick_seconds = tick_seconds

        # When set, reaching the time cap pauses instead of ending the
        # session (resonance test rating step).
        self.hold_on_time_limit = False

        self._state = SessionState()
        self._lock = threading.RLock()
        self._observers: List[SessionObserver] = []

        # Cancellation token: a scheduled tick only runs if the generation
        # it was armed with is still current.
        self._generation = 0
        self._pending: Optional[TickHandle] = None
        self._deadline = 0.0

    # ─────────────────────────────────────────────────────────────────────────
    # Observer Pattern
    # ─────────────────────────────────────────────────────────────────────────

    def add_observer(self, callback: SessionObserver):
        """Add state change observer."""
        with self._lock:
            self._observers.append(callback)

    def remove_observer(self, callback: SessionObserver):
        with self._lock:
            if callback in self._observers:
                self._observers.remove(callback)

    def _notify(self, events: List[SessionEvent]):
        with self._lock:
            state_copy = copy.copy(self._state)
            observers = self._observers.copy()

        for event in events:
            for obs in observers:
                try:
                    obs(event, state_copy)
                except Exception:
                    logger.exception("Session observer failed on %s", event.value)

    @property
    def state(self) -> SessionState:
        """Get current state (copy)."""
        with self._lock:
            return copy.copy(self._state)

    @property
    def settings(self) -> BreathingSettings:
        return self.store.read()

    # ─────────────────────────────────────────────────────────────────────────
    # Controls
    # ─────────────────────────────────────────────────────────────────────────

    def start(self):
        """
        Start a session from the first phase.

        Raises:
            ConfigurationError: settings rejected (e.g. every duration zero).
        """
        settings = self.settings
        validate_settings(settings)
        entry = first_phase(settings)

        with self._lock:
            state = self._state
            state.phase = entry.phase
            state.seconds_remaining = entry.duration
            state.total_seconds_remaining = settings.total_seconds
            state.is_running = True
            state.current_cycle = max(state.current_cycle, 1)
            state.elapsed_seconds = 0.0

            if settings.sound_enabled:
                self._play_cue(CueKind.for_phase(entry.phase), entry.duration, settings)
            if settings.background_music_enabled:
                self._start_ambient(settings)
            self._rearm()

        logger.info("Session started: %s (%.1f-%.1f-%.1f-%.1f s, limit %s min)",
                    settings.current_pattern_id, *settings.phase_durations,
                    settings.total_minutes or "none")
        self._notify([SessionEvent.STARTED, SessionEvent.PHASE_CHANGED])

    def pause(self):
        """Stop ticking; phase and both countdowns are kept as they are."""
        with self._lock:
            if not self._state.is_running:
                return
            self._state.is_running = False
            self._audio_call(self.audio.stop_ambient)
            self._rearm()
        logger.debug("Session paused")
        self._notify([SessionEvent.PAUSED])

    def resume(self):
        """Continue a paused session exactly where it stopped."""
        with self._lock:
            if self._state.is_running or self._state.is_idle:
                return
            settings = self.settings
            self._state.is_running = True
            if settings.background_music_enabled:
                self._start_ambient(settings)
            self._rearm()
        logger.debug("Session resumed")
        self._notify([SessionEvent.RESUMED])

    def toggle(self):
        """Idle -> start, running -> pause, paused -> resume."""
        with self._lock:
            state = self._state
            if state.is_running:
                action = self.pause
            elif state.is_idle:
                action = self.start
            else:
                action = self.resume
        action()

    def reset(self):
        """Return to idle, cancel the pending tick and silence all audio."""
        with self._lock:
            self._reset_state()
            self._rearm()
        logger.info("Session reset")
        self._notify([SessionEvent.RESET])

    def set_background_volume(self, volume: float):
        """Live ambient volume change (no restart)."""
        self.store.write(background_music_volume=volume)
        self._audio_call(self.audio.set_ambient_volume, volume)

    def tick(self):
        """
        Apply one tick immediately.

        The pending scheduled tick is re-armed afterwards so the fixed
        interval restarts from now.
        """
        with self._lock:
            if not self._should_tick():
                return
            events = self._advance()
            self._rearm()
        self._notify(events)

    def shutdown(self):
        """Reset and release the scheduler."""
        self.reset()
        self.scheduler.shutdown()

    # ─────────────────────────────────────────────────────────────────────────
    # Tick Loop
    # ─────────────────────────────────────────────────────────────────────────

    def _should_tick(self) -> bool:
        return self._state.is_running and not self._state.is_idle

    def _rearm(self):
        """Cancel any pending tick and schedule a fresh one if ticking is needed."""
        self._generation += 1
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        if self._should_tick():
            self._deadline = _r(self.scheduler.clock() + self.tick_seconds)
            self._schedule(self._generation)

    def _schedule(self, generation: int):
        delay = max(0.0, _r(self._deadline - self.scheduler.clock()))
        self._pending = self.scheduler.call_later(
            delay, lambda: self._on_timer(generation))

    def _on_timer(self, generation: int):
        with self._lock:
            if generation != self._generation:
                return
            self._pending = None
            events = self._advance()
            if self._should_tick():
                # Next deadline is one tick after the previous one, not after
                # this callback finished.
                self._deadline = _r(self._deadline + self.tick_seconds)
                self._schedule(generation)
            else:
                self._generation += 1
        self._notify(events)

    def _advance(self) -> List[SessionEvent]:
        """One tick of state transition. Lock held by caller."""
        settings = self.settings
        state = self._state
        step = self.tick_seconds
        state.elapsed_seconds = _r(state.elapsed_seconds + step)

        # 1. Session time cap
        if settings.total_minutes > 0:
            state.total_seconds_remaining = max(0.0, _r(state.total_seconds_remaining - step))
            if state.total_seconds_remaining <= 0:
                if self.hold_on_time_limit:
                    state.is_running = False
                    self._audio_call(self.audio.stop_ambient)
                    logger.info("Time limit reached, session held in %s", state.phase.value)
                    return [SessionEvent.TIME_LIMIT_REACHED]
                self._finish("time limit reached")
                return [SessionEvent.COMPLETED]

        # 2. Phase countdown
        remaining = _r(state.seconds_remaining - step)
        if remaining > 0:
            state.seconds_remaining = remaining
            return [SessionEvent.TICK]

        transition = next_phase(state.phase, settings, state.current_cycle)
        if transition is None:
            self._finish("cycle limit reached")
            return [SessionEvent.COMPLETED]

        events = [SessionEvent.PHASE_CHANGED]
        if transition.completes_cycle:
            state.current_cycle += 1
            events.insert(0, SessionEvent.CYCLE_COMPLETED)
            if settings.sound_enabled and settings.cycle_chime_enabled:
                self._play_cue(CueKind.CYCLE_COMPLETE, 0.0, settings)

        logger.debug("Phase %s -> %s (%.2fs, cycle %d)", state.phase.value,
                     transition.phase.value, transition.duration, state.current_cycle)
        state.phase = transition.phase
        state.seconds_remaining = transition.duration
        if settings.sound_enabled:
            self._play_cue(CueKind.for_phase(transition.phase), transition.duration, settings)
        return events

    def _finish(self, reason: str):
        logger.info("Session complete (%s) after %d cycles", reason, self._state.current_cycle)
        self._reset_state()

    def _reset_state(self):
        self._state = SessionState()
        self._audio_call(self.audio.stop_all)

    # ─────────────────────────────────────────────────────────────────────────
    # Audio side effects (never raise into the tick)
    # ─────────────────────────────────────────────────────────────────────────

    def _play_cue(self, kind: CueKind, duration: float, settings: BreathingSettings):
        self._audio_call(self.audio.play_cue, kind, duration,
                         settings.sound_type.value, settings.sound_volume)

    def _start_ambient(self, settings: BreathingSettings):
        self._audio_call(self.audio.start_ambient,
                         settings.background_music_type.value,
                         settings.background_music_volume,
                         settings.custom_music_source)

    def _audio_call(self, fn, *args):
        try:
            fn(*args)
        except Exception:
            logger.exception("Audio call %s failed", getattr(fn, '__name__', fn))
