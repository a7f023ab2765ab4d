"""
Shared fixtures: in-memory settings, a manual clock and a recording audio sink.
"""

import sys
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from breath_pacer.core.scheduler import ManualTickScheduler
from breath_pacer.core.session import BreathingSession
from breath_pacer.core.settings import InMemorySettingsStore


class RecordingAudioSink:
    """AudioSink that remembers every call instead of making sound."""

    def __init__(self):
        self.calls = []
        self.ambient_active = 0

    def play_cue(self, kind, duration, style="beep", volume=100.0):
        self.calls.append(('cue', kind, duration, style, volume))

    def start_ambient(self, ambient_type, volume, source=None):
        self.calls.append(('start_ambient', ambient_type, volume, source))
        self.ambient_active = 1

    def stop_ambient(self):
        self.calls.append(('stop_ambient',))
        self.ambient_active = 0

    def set_ambient_volume(self, volume):
        self.calls.append(('set_ambient_volume', volume))

    def stop_all(self):
        self.calls.append(('stop_all',))
        self.ambient_active = 0

    @property
    def cues(self):
        return [(c[1], c[2]) for c in self.calls if c[0] == 'cue']

    def clear(self):
        self.calls.clear()


@pytest.fixture
def store():
    """4-7-8 pattern, no time limit."""
    settings_store = InMemorySettingsStore()
    settings_store.write(total_minutes=0)
    return settings_store


@pytest.fixture
def audio():
    return RecordingAudioSink()


@pytest.fixture
def scheduler():
    return ManualTickScheduler()


@pytest.fixture
def session(store, audio, scheduler):
    """Session with 1 s ticks on a manual clock."""
    return BreathingSession(store, audio=audio, scheduler=scheduler, tick_seconds=1.0)
