"""
╔══════════════════════════════════════════════════════════════════════════════╗
║                    AMBIENT BED - Continuous background sound                 ║
║                                                                              ║
║   One generic pipeline driven by a profile table:                            ║
║     coloured noise loop (white / pink / brown)                               ║
║       → filter (none / low-pass / band-pass with Q / LFO-swept band-pass)    ║
║       → gain (user volume, ramped per chunk)                                 ║
║                                                                              ║
║   Or a user-supplied WAV file, looped.                                       ║
║   Streaming: any chunk size, filter state carried across chunks.             ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from math import gcd
from typing import Dict, Optional

import numpy as np
from scipy import signal
from scipy.io import wavfile

from ..core.errors import AudioUnavailableError
from ..core.settings import BackgroundMusicType
from .synth import SAMPLE_RATE, bandpass_sos

logger = logging.getLogger(__name__)

LOOP_SECONDS = 2.0              # Length of the looping noise buffer
LOOP_CROSSFADE_SECONDS = 0.05   # Seam smoothing at the loop point
SYNTH_VOLUME_SCALE = 0.3        # volume 100 → gain 0.3
CUSTOM_VOLUME_SCALE = 0.5       # volume 100 → gain 0.5 for user audio
SWEEP_BLOCK = 256               # Samples per LFO filter update


class NoiseColor(Enum):
    """Spectral tilt of the noise source."""
    WHITE = "white"
    PINK = "pink"       # -3 dB/octave
    BROWN = "brown"     # -6 dB/octave


class FilterKind(Enum):
    """Filter stage applied to the noise loop."""
    NONE = "none"
    LOWPASS = "lowpass"
    BANDPASS = "bandpass"
    SWEEP = "sweep"     # band-pass whose centre is moved by a slow LFO


@dataclass(frozen=True)
class AmbientProfile:
    """
    Recipe for one synthesized ambient type.

    For SWEEP filters the centre moves as
        cutoff_hz * 2 ** (lfo_depth * sin(2π * lfo_rate_hz * t))
    i.e. ``lfo_depth`` is in octaves.
    """
    ambient_type: BackgroundMusicType
    color: NoiseColor
    filter_kind: FilterKind
    cutoff_hz: float = 0.0
    q: float = 0.707
    lfo_rate_hz: float = 0.0
    lfo_depth: float = 0.0
    gain: float = 1.0


AMBIENT_PROFILES: Dict[BackgroundMusicType, AmbientProfile] = {
    profile.ambient_type: profile for profile in (
        AmbientProfile(BackgroundMusicType.WHITE_NOISE, NoiseColor.WHITE, FilterKind.NONE,
                       gain=0.4),
        AmbientProfile(BackgroundMusicType.OCEAN, NoiseColor.BROWN, FilterKind.SWEEP,
                       cutoff_hz=500.0, q=0.8, lfo_rate_hz=0.08, lfo_depth=0.8),
        AmbientProfile(BackgroundMusicType.WIND, NoiseColor.PINK, FilterKind.SWEEP,
                       cutoff_hz=700.0, q=2.0, lfo_rate_hz=0.05, lfo_depth=0.6),
        AmbientProfile(BackgroundMusicType.RAIN, NoiseColor.PINK, FilterKind.BANDPASS,
                       cutoff_hz=2500.0, q=0.6, gain=0.8),
        AmbientProfile(BackgroundMusicType.FIRE, NoiseColor.BROWN, FilterKind.LOWPASS,
                       cutoff_hz=900.0),
        AmbientProfile(BackgroundMusicType.WIND_LIGHT, NoiseColor.PINK, FilterKind.SWEEP,
                       cutoff_hz=1100.0, q=3.0, lfo_rate_hz=0.1, lfo_depth=0.4, gain=0.7),
        AmbientProfile(BackgroundMusicType.SEA, NoiseColor.BROWN, FilterKind.LOWPASS,
                       cutoff_hz=400.0),
    )
}

# Pink noise approximation (Julius O. Smith's 4-pole/4-zero fit)
_PINK_B = [0.049922035, -0.095993537, 0.050612699, -0.004408786]
_PINK_A = [1.0, -2.494956002, 2.017265875, -0.522189400]


# ══════════════════════════════════════════════════════════════════════════════
# NOISE SOURCE
# ══════════════════════════════════════════════════════════════════════════════

def colored_noise(color: NoiseColor, num_samples: int,
                  rng: np.random.Generator) -> np.ndarray:
    """Peak-normalised noise of the given colour."""
    white = rng.uniform(-1.0, 1.0, num_samples)
    if color == NoiseColor.WHITE:
        noise = white
    elif color == NoiseColor.PINK:
        noise = signal.lfilter(_PINK_B, _PINK_A, white)
    else:
        # Leaky integrator: y[n] = (y[n-1] + 0.02 * x[n]) / 1.02
        noise = signal.lfilter([0.02 / 1.02], [1.0, -1.0 / 1.02], white) * 3.5
    noise = noise - np.mean(noise)
    peak = np.max(np.abs(noise)) if num_samples else 0.0
    return noise / peak if peak > 0 else noise


def seamless_loop(buffer: np.ndarray, crossfade: int) -> np.ndarray:
    """Blend the tail into the head so the buffer loops without a seam."""
    crossfade = min(crossfade, len(buffer) // 2)
    if crossfade <= 0:
        return buffer
    fade = np.linspace(0.0, 1.0, crossfade, endpoint=False)
    looped = buffer[:-crossfade].copy()
    looped[:crossfade] = buffer[:crossfade] * fade + buffer[-crossfade:] * (1.0 - fade)
    return looped


class LoopReader:
    """Reads a buffer cyclically in arbitrary chunk sizes."""

    def __init__(self, buffer: np.ndarray):
        if len(buffer) == 0:
            raise AudioUnavailableError("Cannot loop an empty buffer")
        self.buffer = buffer
        self.position = 0

    def read(self, frames: int) -> np.ndarray:
        n = len(self.buffer)
        idx = (self.position + np.arange(frames)) % n
        self.position = (self.position + frames) % n
        return self.buffer[idx]


# ══════════════════════════════════════════════════════════════════════════════
# BEDS
# ══════════════════════════════════════════════════════════════════════════════

class AmbientBed(ABC):
    """Continuous mono source with a live volume."""

    volume_scale = SYNTH_VOLUME_SCALE

    def __init__(self, volume: float, sample_rate: int = SAMPLE_RATE):
        self.sample_rate = sample_rate
        self.volume = _clamp_volume(volume)
        self._gain = self._target_gain = self._volume_to_gain(self.volume)

    def _volume_to_gain(self, volume: float) -> float:
        return volume / 100.0 * self.volume_scale

    def set_volume(self, volume: float):
        """Live change; ramps over the next rendered chunk."""
        self.volume = _clamp_volume(volume)
        self._target_gain = self._volume_to_gain(self.volume)

    def render(self, frames: int) -> np.ndarray:
        """Next ``frames`` samples, float32 mono."""
        if frames <= 0:
            return np.zeros(0, dtype=np.float32)
        source = self._render_source(frames)
        if self._gain == self._target_gain:
            gains = self._gain
        else:
            gains = np.linspace(self._gain, self._target_gain, frames)
            self._gain = self._target_gain
        return (source * gains).astype(np.float32)

    @abstractmethod
    def _render_source(self, frames: int) -> np.ndarray:
        pass


class SynthesizedAmbientBed(AmbientBed):
    """Noise loop + profile filter."""

    def __init__(self, profile: AmbientProfile, volume: float,
                 sample_rate: int = SAMPLE_RATE, rng: Optional[np.random.Generator] = None):
        self.profile = profile
        super().__init__(volume, sample_rate)
        rng = rng if rng is not None else np.random.default_rng()

        loop = colored_noise(profile.color, int(LOOP_SECONDS * sample_rate), rng)
        self._reader = LoopReader(seamless_loop(loop, int(LOOP_CROSSFADE_SECONDS * sample_rate)))
        self._elapsed = 0       # samples, drives the LFO
        self._sos = self._static_sos()
        self._zi = None if self._sos is None else np.zeros((self._sos.shape[0], 2))

    def _volume_to_gain(self, volume: float) -> float:
        return super()._volume_to_gain(volume) * self.profile.gain

    def _static_sos(self) -> Optional[np.ndarray]:
        profile = self.profile
        if profile.filter_kind == FilterKind.LOWPASS:
            return signal.butter(2, profile.cutoff_hz, btype='lowpass',
                                 fs=self.sample_rate, output='sos')
        if profile.filter_kind == FilterKind.BANDPASS:
            return bandpass_sos(profile.cutoff_hz, profile.q, self.sample_rate)
        if profile.filter_kind == FilterKind.SWEEP:
            return bandpass_sos(self.sweep_center(0.0), profile.q, self.sample_rate)
        return None

    def sweep_center(self, t: float) -> float:
        """LFO-driven band centre at time ``t`` seconds."""
        p = self.profile
        return p.cutoff_hz * 2.0 ** (p.lfo_depth * np.sin(2 * np.pi * p.lfo_rate_hz * t))

    def _render_source(self, frames: int) -> np.ndarray:
        noise = self._reader.read(frames)
        kind = self.profile.filter_kind
        if kind == FilterKind.NONE:
            out = noise
        elif kind == FilterKind.SWEEP:
            out = np.empty(frames)
            for begin in range(0, frames, SWEEP_BLOCK):
                end = min(begin + SWEEP_BLOCK, frames)
                t = (self._elapsed + (begin + end) / 2) / self.sample_rate
                sos = bandpass_sos(self.sweep_center(t), self.profile.q, self.sample_rate)
                out[begin:end], self._zi = signal.sosfilt(sos, noise[begin:end], zi=self._zi)
        else:
            out, self._zi = signal.sosfilt(self._sos, noise, zi=self._zi)
        self._elapsed += frames
        return out


class CustomAudioBed(AmbientBed):
    """User-supplied WAV file, looped."""

    volume_scale = CUSTOM_VOLUME_SCALE

    def __init__(self, source: str, volume: float, sample_rate: int = SAMPLE_RATE):
        super().__init__(volume, sample_rate)
        self.source = source
        self._reader = LoopReader(load_audio_file(source, sample_rate))

    def _render_source(self, frames: int) -> np.ndarray:
        return self._reader.read(frames)


# ══════════════════════════════════════════════════════════════════════════════
# HELPERS
# ══════════════════════════════════════════════════════════════════════════════

def load_audio_file(path: str, sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    """
    Load a WAV file as mono float64 in [-1, 1] at ``sample_rate``.

    Raises:
        AudioUnavailableError: file missing, unreadable or empty.
    """
    try:
        rate, data = wavfile.read(path)
    except (OSError, ValueError) as e:
        raise AudioUnavailableError(f"Cannot read audio file {path}: {e}") from e

    if data.dtype == np.uint8:
        samples = (data.astype(np.float64) - 128.0) / 128.0
    elif np.issubdtype(data.dtype, np.integer):
        samples = data.astype(np.float64) / float(np.iinfo(data.dtype).max + 1)
    else:
        samples = data.astype(np.float64)

    if samples.ndim > 1:
        samples = samples.mean(axis=1)
    if samples.size == 0:
        raise AudioUnavailableError(f"Audio file is empty: {path}")

    if rate != sample_rate:
        common = gcd(int(rate), int(sample_rate))
        samples = signal.resample_poly(samples, sample_rate // common, rate // common)

    peak = np.max(np.abs(samples))
    if peak > 1.0:
        samples = samples / peak
    logger.info("Loaded custom ambient audio %s (%.1fs)", path, samples.size / sample_rate)
    return samples


def create_ambient_bed(ambient_type, volume: float, source: Optional[str] = None,
                       sample_rate: int = SAMPLE_RATE,
                       rng: Optional[np.random.Generator] = None) -> AmbientBed:
    """
    Build the bed for a background music type.

    CUSTOM plays ``source``; every other type is synthesized and ignores it.

    Raises:
        AudioUnavailableError: CUSTOM without a usable source.
    """
    ambient_type = BackgroundMusicType(ambient_type)
    if ambient_type == BackgroundMusicType.CUSTOM:
        if not source:
            raise AudioUnavailableError("Custom ambient selected but no audio source given")
        return CustomAudioBed(source, volume, sample_rate)
    return SynthesizedAmbientBed(AMBIENT_PROFILES[ambient_type], volume, sample_rate, rng)


def _clamp_volume(volume: float) -> float:
    return max(0.0, min(100.0, float(volume)))
