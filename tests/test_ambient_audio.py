"""
Tests for the ambient bed pipeline, output backends and AudioManager mixing.
"""

import time
import types

import numpy as np
import pytest
from scipy.io import wavfile

from breath_pacer.audio.ambient import (
    AMBIENT_PROFILES, CustomAudioBed, LoopReader, NoiseColor, SynthesizedAmbientBed,
    colored_noise, create_ambient_bed, load_audio_file, seamless_loop,
)
from breath_pacer.audio import backend as backend_module
from breath_pacer.audio.backend import (
    AudioBackend, DummyBackend, PyAudioBackend, create_audio_backend,
)
from breath_pacer.audio.manager import AudioManager
from breath_pacer.audio.sink import AudioSink, CueKind
from breath_pacer.core.errors import AudioUnavailableError
from breath_pacer.core.session import BreathingSession
from breath_pacer.core.settings import BackgroundMusicType


@pytest.fixture
def backend():
    return DummyBackend(realtime=False)


@pytest.fixture
def manager(backend):
    return AudioManager(backend=backend, seed=3)


@pytest.fixture
def wav_file(tmp_path):
    """1 s stereo int16 sine at 22050 Hz."""
    rate = 22050
    t = np.arange(rate) / rate
    tone = (np.sin(2 * np.pi * 220 * t) * 16000).astype(np.int16)
    path = tmp_path / "loop.wav"
    wavfile.write(str(path), rate, np.column_stack([tone, tone]))
    return str(path)


class FailingBackend(AudioBackend):
    """Backend whose device never opens."""

    def start(self, callback):
        return False

    def stop(self):
        pass


class SlowSynth:
    """Cue renderer that takes as long as a heavy noise sweep."""

    def __init__(self, seconds):
        self.seconds = seconds

    def render_cue(self, kind, duration, style="beep", volume=100.0):
        time.sleep(self.seconds)
        return np.full(4410, 0.1, dtype=np.float32)


class TestNoise:
    """Noise colours and looping."""

    @pytest.mark.parametrize("color", list(NoiseColor))
    def test_normalised(self, color):
        noise = colored_noise(color, 44100, np.random.default_rng(0))
        assert np.max(np.abs(noise)) == pytest.approx(1.0)
        assert abs(np.mean(noise)) < 0.05

    def test_brown_darker_than_white(self):
        rng = np.random.default_rng(0)
        white = colored_noise(NoiseColor.WHITE, 44100, rng)
        brown = colored_noise(NoiseColor.BROWN, 44100, rng)
        # Sample-to-sample change is small for low-frequency noise
        assert np.mean(np.abs(np.diff(brown))) < 0.2 * np.mean(np.abs(np.diff(white)))

    def test_seamless_loop_length(self):
        buffer = np.arange(100, dtype=float)
        assert len(seamless_loop(buffer, 10)) == 90

    def test_loop_reader_wraps(self):
        reader = LoopReader(np.array([1.0, 2.0, 3.0]))
        np.testing.assert_array_equal(reader.read(5), [1, 2, 3, 1, 2])
        np.testing.assert_array_equal(reader.read(2), [3, 1])

    def test_loop_reader_rejects_empty(self):
        with pytest.raises(AudioUnavailableError):
            LoopReader(np.zeros(0))


class TestAmbientBeds:
    """Synthesized and custom beds."""

    def test_every_synthesized_type_has_a_profile(self):
        synthesized = [t for t in BackgroundMusicType if t != BackgroundMusicType.CUSTOM]
        assert set(AMBIENT_PROFILES) == set(synthesized)

    @pytest.mark.parametrize("ambient_type", sorted(AMBIENT_PROFILES, key=lambda t: t.value))
    def test_renders_bounded_audio(self, ambient_type):
        bed = create_ambient_bed(ambient_type, 100, rng=np.random.default_rng(1))
        assert isinstance(bed, SynthesizedAmbientBed)
        chunks = [bed.render(n) for n in (512, 1000, 4096)]
        out = np.concatenate(chunks)
        assert out.dtype == np.float32
        assert np.all(np.isfinite(out))
        assert np.max(np.abs(out)) <= 1.0
        assert np.any(out != 0)

    def test_volume_scales_gain(self):
        quiet = create_ambient_bed("whiteNoise", 25, rng=np.random.default_rng(5))
        loud = create_ambient_bed("whiteNoise", 100, rng=np.random.default_rng(5))
        np.testing.assert_allclose(quiet.render(256) * 4, loud.render(256), atol=1e-6)

    def test_live_volume_ramps(self):
        bed = create_ambient_bed("rain", 0, rng=np.random.default_rng(2))
        assert not np.any(bed.render(256))
        bed.set_volume(100)
        ramped = bed.render(1024)
        assert ramped[0] == 0
        assert np.max(np.abs(ramped[-256:])) > np.max(np.abs(ramped[:256]))
        assert bed.volume == 100

    def test_sweep_center_moves(self):
        bed = create_ambient_bed("wind", 50, rng=np.random.default_rng(0))
        period = 1.0 / bed.profile.lfo_rate_hz
        assert bed.sweep_center(0.0) == pytest.approx(bed.profile.cutoff_hz)
        assert bed.sweep_center(period / 4) > bed.profile.cutoff_hz
        assert bed.sweep_center(3 * period / 4) < bed.profile.cutoff_hz

    def test_custom_bed_plays_file(self, wav_file):
        bed = create_ambient_bed("custom", 100, source=wav_file)
        assert isinstance(bed, CustomAudioBed)
        out = bed.render(2048)
        assert np.max(np.abs(out)) > 0.1
        assert np.max(np.abs(out)) <= 0.5 + 1e-6

    def test_custom_without_source(self):
        with pytest.raises(AudioUnavailableError):
            create_ambient_bed("custom", 50)

    def test_custom_missing_file(self, tmp_path):
        with pytest.raises(AudioUnavailableError):
            create_ambient_bed("custom", 50, source=str(tmp_path / "missing.wav"))

    def test_load_resamples_and_mixes_down(self, wav_file):
        samples = load_audio_file(wav_file, 44100)
        assert samples.ndim == 1
        assert len(samples) == 44100
        assert np.max(np.abs(samples)) <= 1.0


class TestBackends:
    """Backend factory and the dummy device."""

    def test_dummy_by_name(self):
        assert isinstance(create_audio_backend("dummy", realtime=False), DummyBackend)

    def test_env_selects_backend(self, monkeypatch):
        monkeypatch.setenv("AUDIO_BACKEND", "dummy")
        assert isinstance(create_audio_backend(realtime=False), DummyBackend)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_audio_backend("cassette")

    def test_pull_clips_and_shapes(self, backend):
        backend.start(lambda n: np.full((n, 2), 3.0))
        out = backend.pull(64)
        assert out.shape == (64, 2)
        assert np.max(out) == 1.0

    def test_failing_callback_gives_silence(self, backend):
        def broken(n):
            raise RuntimeError("render bug")
        backend.start(broken)
        assert not np.any(backend.pull(32))


class TestAudioManager:
    """Mixing and ambient lifecycle."""

    def test_is_an_audio_sink(self, manager):
        assert isinstance(manager, AudioSink)

    def test_single_ambient_bed(self, manager):
        manager.start_ambient("ocean", 50)
        manager.flush()
        manager.start_ambient("rain", 60)
        manager.flush()
        assert manager.active_ambient_count == 1
        assert manager.ambient_starts == 2
        assert manager.ambient_releases == 1
        manager.stop_ambient()
        assert manager.active_ambient_count == 0
        assert manager.ambient_releases == 2

    def test_live_ambient_volume(self, manager):
        manager.start_ambient("sea", 50)
        manager.set_ambient_volume(80)
        manager.flush()
        assert manager.ambient_volume == 80
        assert manager.ambient_starts == 1

    def test_cue_mixed_into_output(self, manager, backend):
        manager.play_cue(CueKind.INHALE, 1.0, "beep", 100)
        manager.flush()
        assert manager.active_voice_count == 1
        out = backend.pull(44100 // 2)
        assert out.shape == (22050, 2)
        assert np.max(np.abs(out)) > 0.05
        np.testing.assert_array_equal(out[:, 0], out[:, 1])

    def test_finished_voices_dropped(self, manager, backend):
        manager.play_cue(CueKind.HOLD, 4.0)
        manager.flush()
        backend.pull(10000)
        assert manager.active_voice_count == 0

    def test_stop_all_is_immediate(self, manager, backend):
        manager.start_ambient("wind", 100)
        manager.play_cue(CueKind.EXHALE, 4.0)
        manager.flush()
        manager.stop_all()
        assert manager.active_voice_count == 0
        assert manager.active_ambient_count == 0
        assert not np.any(backend.pull(512))

    def test_custom_without_source_is_logged_not_raised(self, manager):
        manager.start_ambient("custom", 50)
        manager.flush()
        assert manager.active_ambient_count == 0

    def test_init_failure_degrades_silently(self):
        manager = AudioManager(backend=FailingBackend())
        manager.play_cue(CueKind.INHALE, 4.0)
        manager.start_ambient("ocean", 50)
        assert not manager.available
        assert manager.active_voice_count == 0
        assert manager.active_ambient_count == 0

    def test_init_failure_leaves_timing_intact(self, store, scheduler):
        store.write(background_music_enabled=True)
        session = BreathingSession(store, audio=AudioManager(backend=FailingBackend()),
                                   scheduler=scheduler, tick_seconds=1.0)
        session.start()
        scheduler.advance(19)
        assert session.state.current_cycle == 2

    def test_session_restart_keeps_one_bed(self, store, scheduler, manager):
        store.write(background_music_enabled=True, background_music_type="fire")
        session = BreathingSession(store, audio=manager, scheduler=scheduler, tick_seconds=1.0)
        session.start()
        session.start()
        manager.flush()
        assert manager.active_ambient_count == 1
        session.reset()
        assert manager.active_ambient_count == 0

    def test_close_stops_backend(self, manager, backend):
        manager.init()
        assert backend.playing
        manager.close()
        assert not backend.playing

    def test_close_releases_backend_library(self, manager):
        closed = []
        manager.backend.close = lambda: closed.append(True)
        manager.init()
        manager.close()
        assert closed == [True]

    def test_play_cue_does_not_wait_for_synthesis(self, manager):
        manager.synth = SlowSynth(0.5)
        started = time.monotonic()
        manager.play_cue(CueKind.INHALE, 6.7, "noise", 100)
        assert time.monotonic() - started < 0.2
        assert manager.flush(2.0)
        assert manager.active_voice_count == 1

    def test_queued_cue_dropped_after_stop_all(self, manager):
        manager.synth = SlowSynth(0.2)
        manager.play_cue(CueKind.INHALE, 4.0)
        manager.play_cue(CueKind.EXHALE, 4.0)
        manager.stop_all()
        assert manager.flush(2.0)
        assert manager.active_voice_count == 0

    def test_failed_switch_releases_previous_bed(self, manager):
        manager.start_ambient("ocean", 50)
        manager.flush()
        manager.start_ambient("custom", 50, None)
        manager.flush()
        assert manager.active_ambient_count == 0
        assert manager.ambient_starts == 1
        assert manager.ambient_releases == 1

    def test_replaced_bed_stops_before_new_one_loads(self, manager):
        manager.start_ambient("rain", 100)
        manager.flush()
        manager.synth = SlowSynth(0.3)
        manager.play_cue(CueKind.INHALE, 4.0)     # keeps the worker busy
        manager.start_ambient("sea", 100)
        assert manager.active_ambient_count == 0
        manager.flush()
        assert manager.active_ambient_count == 1


def test_pyaudio_close_terminates_instance(monkeypatch):
    terminated = []

    class FakePyAudio:
        def terminate(self):
            terminated.append(True)

    monkeypatch.setattr(backend_module, "HAS_PYAUDIO", True)
    monkeypatch.setattr(backend_module, "pyaudio",
                        types.SimpleNamespace(PyAudio=FakePyAudio), raising=False)
    pa_backend = PyAudioBackend()
    pa_backend.close()
    pa_backend.close()
    assert terminated == [True]
