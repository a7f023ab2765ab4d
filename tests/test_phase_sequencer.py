"""
Tests for the phase sequencer: skipping zero phases and cycle boundaries.
"""

import itertools

import pytest

from breath_pacer.core.phases import (
    BreathingPhase, CYCLE_ORDER, first_phase, next_phase,
)
from breath_pacer.core.settings import BreathingSettings


def make_settings(inhale=4, hold=7, exhale=8, hold_after=0, cycles=0):
    return BreathingSettings(
        inhale_seconds=inhale,
        hold_seconds=hold,
        exhale_seconds=exhale,
        hold_after_exhale_seconds=hold_after,
        total_minutes=0,
        total_cycles=cycles,
    )


def walk(settings, steps):
    """Phases visited and cycles completed over ``steps`` transitions."""
    phase = first_phase(settings).phase
    visited = [phase]
    cycles = 0
    for _ in range(steps):
        transition = next_phase(phase, settings)
        cycles += transition.completes_cycle
        phase = transition.phase
        visited.append(phase)
    return visited, cycles


class TestFirstPhase:
    """Entry phase of a session."""

    def test_inhale_first(self):
        entry = first_phase(make_settings())
        assert entry.phase == BreathingPhase.INHALE
        assert entry.duration == 4

    def test_zero_inhale_starts_at_next_nonzero(self):
        entry = first_phase(make_settings(inhale=0, hold=0))
        assert entry.phase == BreathingPhase.EXHALE

    def test_all_zero_has_no_entry(self):
        assert first_phase(make_settings(0, 0, 0, 0)) is None


class TestNextPhase:
    """Transition policy."""

    def test_full_box_order(self):
        visited, cycles = walk(make_settings(4, 4, 4, 4), 4)
        assert visited == list(CYCLE_ORDER) + [BreathingPhase.INHALE]
        assert cycles == 1

    def test_four_seven_eight_skips_hold_after_exhale(self):
        settings = make_settings(4, 7, 8, 0)
        transition = next_phase(BreathingPhase.EXHALE, settings)
        assert transition.phase == BreathingPhase.INHALE
        assert transition.completes_cycle

    def test_no_holds_alternates_inhale_exhale(self):
        visited, _ = walk(make_settings(4, 0, 4, 0), 10)
        assert set(visited) == {BreathingPhase.INHALE, BreathingPhase.EXHALE}

    @pytest.mark.parametrize("hold,hold_after", list(itertools.product([0, 3], [0, 2])))
    def test_one_cycle_per_loop(self, hold, hold_after):
        """Each full loop counts exactly one cycle whichever holds are skipped."""
        settings = make_settings(4, hold, 6, hold_after)
        active = sum(1 for d in settings.phase_durations if d > 0)
        _, cycles = walk(settings, active * 5)
        assert cycles == 5

    def test_single_phase_wraps_onto_itself(self):
        transition = next_phase(BreathingPhase.INHALE, make_settings(4, 0, 0, 0))
        assert transition.phase == BreathingPhase.INHALE
        assert transition.completes_cycle

    def test_durations_come_from_settings(self):
        transition = next_phase(BreathingPhase.INHALE, make_settings(4, 7, 8, 0))
        assert transition.duration == 7

    def test_idle_is_terminal(self):
        assert next_phase(BreathingPhase.IDLE, make_settings()) is None

    def test_time_expired_is_terminal(self):
        assert next_phase(BreathingPhase.INHALE, make_settings(), time_expired=True) is None


class TestCycleCap:
    """Optional total_cycles limit, checked at the cycle boundary."""

    def test_cap_ends_at_boundary(self):
        settings = make_settings(cycles=2)
        assert next_phase(BreathingPhase.EXHALE, settings, current_cycle=2) is None

    def test_cap_does_not_cut_mid_cycle(self):
        settings = make_settings(cycles=2)
        transition = next_phase(BreathingPhase.INHALE, settings, current_cycle=2)
        assert transition.phase == BreathingPhase.HOLD

    def test_below_cap_continues(self):
        settings = make_settings(cycles=2)
        transition = next_phase(BreathingPhase.EXHALE, settings, current_cycle=1)
        assert transition.phase == BreathingPhase.INHALE
