"""
Tone Synthesizer - Phase cue generation
========================================

Renders the short audio cue played when a phase begins:

- INHALE: rising sweep 220 → 440 Hz across the whole phase
- EXHALE: falling sweep 440 → 220 Hz across the whole phase
- HOLD / HOLD_AFTER_EXHALE: brief quieter steady tone (440 / 330 Hz, 0.2 s)
- CYCLE_COMPLETE: C5-E5-G5 arpeggio

Two timbres: "beep" (sine oscillator) and "noise" (white noise through a
band-pass whose centre follows the same trajectory, like airflow).
Every envelope starts and ends at zero so clip boundaries never click.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from scipy import signal

from .sink import CueKind

logger = logging.getLogger(__name__)

# Audio constants
SAMPLE_RATE: int = 44100
PHI_CONJUGATE = 0.6180339887498949

CLICK_RAMP_SECONDS = 0.01       # Fast attack/release edge
SWEEP_FADE_FRACTION = 0.25      # Share of a sweep spent fading in (and out)
HOLD_DECAY_FLOOR = 0.05         # Hold tones decay to 5% of their peak
MAX_CUE_SECONDS = 60.0
NOISE_BLOCK = 512               # Samples per band-pass coefficient update
NOISE_BAND_Q = 1.4


@dataclass(frozen=True)
class CueSpec:
    """Pitch trajectory and loudness of one cue kind."""
    start_hz: float
    end_hz: float
    gain: float
    fixed_seconds: Optional[float]          # None: lasts the whole phase
    noise_band_hz: Tuple[float, float]      # Band-pass centre start/end (noise style)

    @property
    def is_sweep(self) -> bool:
        return self.fixed_seconds is None


CUE_SPECS = {
    CueKind.INHALE: CueSpec(220.0, 440.0, 0.30, None, (300.0, 1200.0)),
    CueKind.EXHALE: CueSpec(440.0, 220.0, 0.30, None, (1200.0, 300.0)),
    CueKind.HOLD: CueSpec(440.0, 440.0, 0.20, 0.2, (800.0, 800.0)),
    CueKind.HOLD_AFTER_EXHALE: CueSpec(330.0, 330.0, 0.15, 0.2, (500.0, 500.0)),
}

# C5, E5, G5
CHIME_NOTES_HZ = (523.25, 659.25, 783.99)
CHIME_STAGGER_SECONDS = 0.1
CHIME_NOTE_SECONDS = 0.3
CHIME_ATTACK_SECONDS = 0.05
CHIME_GAIN = 0.2


# ══════════════════════════════════════════════════════════════════════════════
# ENVELOPES
# ══════════════════════════════════════════════════════════════════════════════

def golden_fade_in(t: np.ndarray) -> np.ndarray:
    """Raised-cosine fade 0 → 1 with a φ-conjugate exponent (soft start)."""
    t = np.clip(t, 0.0, 1.0)
    base = (1 - np.cos(t * np.pi)) / 2.0
    return base ** PHI_CONJUGATE


def edge_ramps(num_samples: int, ramp_samples: int) -> np.ndarray:
    """Envelope that is 1 in the middle and ramps to 0 at both ends."""
    if num_samples == 0:
        return np.zeros(0)
    ramp = max(1, min(ramp_samples, num_samples // 2))
    idx = np.arange(num_samples)
    rise = golden_fade_in(idx / ramp)
    fall = golden_fade_in((num_samples - 1 - idx) / ramp)
    return rise * fall


def sweep_envelope(num_samples: int, sample_rate: int = SAMPLE_RATE,
                   fast_edges: bool = False) -> np.ndarray:
    """Fade in then out smoothly across the whole clip."""
    env = edge_ramps(num_samples, int(num_samples * SWEEP_FADE_FRACTION))
    if fast_edges:
        env = env * edge_ramps(num_samples, int(CLICK_RAMP_SECONDS * sample_rate))
    return env


def decay_envelope(num_samples: int, sample_rate: int = SAMPLE_RATE,
                   floor: float = HOLD_DECAY_FLOOR) -> np.ndarray:
    """Fast attack, exponential decay to ``floor``, fast release."""
    if num_samples == 0:
        return np.zeros(0)
    t = np.arange(num_samples) / num_samples
    decay = np.exp(np.log(floor) * t)
    return decay * edge_ramps(num_samples, int(CLICK_RAMP_SECONDS * sample_rate))


# ══════════════════════════════════════════════════════════════════════════════
# OSCILLATORS
# ══════════════════════════════════════════════════════════════════════════════

def frequency_trajectory(start_hz: float, end_hz: float, num_samples: int) -> np.ndarray:
    """Exponential glide from start_hz to end_hz (constant for equal ends)."""
    if num_samples == 0:
        return np.zeros(0)
    if start_hz == end_hz:
        return np.full(num_samples, start_hz, dtype=np.float64)
    t = np.arange(num_samples) / max(1, num_samples - 1)
    return start_hz * (end_hz / start_hz) ** t


def sine_sweep(start_hz: float, end_hz: float, num_samples: int,
               sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    """Phase-continuous sine following the exponential trajectory."""
    freqs = frequency_trajectory(start_hz, end_hz, num_samples)
    phase = 2 * np.pi * np.cumsum(freqs) / sample_rate
    return np.sin(phase - phase[0]) if num_samples else phase


def bandpass_sos(center_hz: float, q: float, sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    """Second-order Butterworth band-pass around ``center_hz`` with quality ``q``."""
    nyquist = sample_rate / 2.0
    bandwidth = center_hz / q
    low = max(20.0, center_hz - bandwidth / 2)
    high = min(nyquist * 0.95, center_hz + bandwidth / 2)
    if high <= low:
        high = min(nyquist * 0.95, low * 1.5)
    return signal.butter(2, [low, high], btype='bandpass', fs=sample_rate, output='sos')


def swept_bandpass_noise(start_hz: float, end_hz: float, num_samples: int,
                         rng: np.random.Generator, sample_rate: int = SAMPLE_RATE,
                         q: float = NOISE_BAND_Q, block: int = NOISE_BLOCK) -> np.ndarray:
    """
    White noise through a band-pass whose centre glides start → end.

    Coefficients are recomputed per block with the filter state carried
    over, so the sweep has no seams. Output peak-normalised to 1.
    """
    if num_samples == 0:
        return np.zeros(0)
    white = rng.uniform(-1.0, 1.0, num_samples)
    centers = frequency_trajectory(start_hz, end_hz, num_samples)
    out = np.empty(num_samples)
    zi = None
    for begin in range(0, num_samples, block):
        end = min(begin + block, num_samples)
        sos = bandpass_sos(float(centers[(begin + end) // 2]), q, sample_rate)
        if zi is None:
            zi = np.zeros((sos.shape[0], 2))
        out[begin:end], zi = signal.sosfilt(sos, white[begin:end], zi=zi)
    peak = np.max(np.abs(out))
    return out / peak if peak > 0 else out


# ══════════════════════════════════════════════════════════════════════════════
# SYNTHESIZER
# ══════════════════════════════════════════════════════════════════════════════

class ToneSynthesizer:
    """
    Renders phase cues as mono float32 buffers.

    Usage:
        synth = ToneSynthesizer()
        buf = synth.render_cue(CueKind.INHALE, 4.0, style="noise", volume=60)
    """

    def __init__(self, sample_rate: int = SAMPLE_RATE, seed: Optional[int] = None):
        self.sample_rate = sample_rate
        self.rng = np.random.default_rng(seed)

    def cue_length(self, kind: CueKind, duration: float) -> float:
        """Seconds of audio rendered for ``kind`` announcing a phase of ``duration``"""
        if kind == CueKind.CYCLE_COMPLETE:
            return CHIME_STAGGER_SECONDS * (len(CHIME_NOTES_HZ) - 1) + CHIME_NOTE_SECONDS
        spec = CUE_SPECS[kind]
        seconds = spec.fixed_seconds if spec.fixed_seconds is not None else duration
        return max(0.0, min(seconds, MAX_CUE_SECONDS))

    def render_cue(self, kind: CueKind, duration: float,
                   style: str = "beep", volume: float = 100.0) -> np.ndarray:
        """
        Render the cue for a phase entry.

        Args:
            kind: Which cue.
            duration: Phase length in seconds (used by sweeps only).
            style: "beep" or "noise".
            volume: 0-100, scales the cue's peak gain linearly.
        """
        kind = CueKind(kind)
        level = max(0.0, min(100.0, volume)) / 100.0
        if kind == CueKind.CYCLE_COMPLETE:
            return (self.render_chime() * level).astype(np.float32)

        spec = CUE_SPECS[kind]
        num_samples = int(round(self.cue_length(kind, duration) * self.sample_rate))
        if num_samples == 0:
            return np.zeros(0, dtype=np.float32)

        if style == "noise":
            wave = swept_bandpass_noise(*spec.noise_band_hz, num_samples, self.rng,
                                        self.sample_rate)
        elif style == "beep":
            wave = sine_sweep(spec.start_hz, spec.end_hz, num_samples, self.sample_rate)
        else:
            raise ValueError(f"Unknown cue style: {style!r}")

        if spec.is_sweep:
            env = sweep_envelope(num_samples, self.sample_rate, fast_edges=(style == "beep"))
        else:
            env = decay_envelope(num_samples, self.sample_rate)

        logger.debug("Rendered %s cue (%s, %.2fs)", kind.value, style,
                     num_samples / self.sample_rate)
        return (wave * env * spec.gain * level).astype(np.float32)

    def render_chime(self) -> np.ndarray:
        """Cycle-complete arpeggio at full volume."""
        total = self.cue_length(CueKind.CYCLE_COMPLETE, 0.0)
        out = np.zeros(int(round(total * self.sample_rate)))
        note_len = int(round(CHIME_NOTE_SECONDS * self.sample_rate))
        attack = int(round(CHIME_ATTACK_SECONDS * self.sample_rate))

        for i, freq in enumerate(CHIME_NOTES_HZ):
            start = int(round(i * CHIME_STAGGER_SECONDS * self.sample_rate))
            tone = sine_sweep(freq, freq, note_len, self.sample_rate)
            env = np.ones(note_len)
            env[:attack] = np.linspace(0.0, 1.0, attack, endpoint=False)
            tail = note_len - attack
            env[attack:] = np.exp(np.log(HOLD_DECAY_FLOOR) * np.arange(tail) / tail)
            env *= edge_ramps(note_len, int(CLICK_RAMP_SECONDS * self.sample_rate))
            out[start:start + note_len] += tone * env * CHIME_GAIN
        return out.astype(np.float32)
