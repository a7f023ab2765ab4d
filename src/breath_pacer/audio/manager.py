"""
Audio Manager - Real-time mixer behind the session's audio sink.

Cue voices and at most one ambient bed are mixed inside the backend
callback. Sink calls from the session only queue a request or swap mixer
state under the lock: synthesis (cue buffers, noise loops, file decoding)
runs on a separate render worker, so the tick thread never waits for it.
"""

import logging
import queue
import threading
from typing import List, Optional

import numpy as np

from ..core.errors import AudioUnavailableError
from .ambient import AmbientBed, create_ambient_bed
from .backend import AudioBackend, create_audio_backend
from .sink import CueKind
from .synth import SAMPLE_RATE, ToneSynthesizer

logger = logging.getLogger(__name__)

_STOP = object()


class _Voice:
    """One cue buffer being played out."""
    __slots__ = ('buffer', 'position')

    def __init__(self, buffer: np.ndarray):
        self.buffer = buffer
        self.position = 0

    def read(self, frames: int) -> np.ndarray:
        chunk = self.buffer[self.position:self.position + frames]
        self.position += len(chunk)
        return chunk

    @property
    def finished(self) -> bool:
        return self.position >= len(self.buffer)


class AudioManager:
    """
    AudioSink backed by a real output device.

    The backend is opened lazily on first use. If that fails the manager
    logs once and turns every later call into a no-op.

    Requests are rendered in order on one worker thread. Each request
    carries the cue or ambient generation it was issued under; ``stop_all``
    and ``stop_ambient`` bump the generation so work still in the queue is
    dropped instead of starting late.

    Usage:
        audio = AudioManager()                        # auto-detect backend
        audio = AudioManager(backend_type="dummy")    # silent
        session = BreathingSession(store, audio=audio)
    """

    def __init__(self, backend: Optional[AudioBackend] = None,
                 backend_type: Optional[str] = None,
                 sample_rate: int = SAMPLE_RATE, seed: Optional[int] = None):
        self.sample_rate = sample_rate
        self.backend = backend
        self.backend_type = backend_type
        self.synth = ToneSynthesizer(sample_rate, seed)
        self._rng = np.random.default_rng(seed)

        self.lock = threading.Lock()
        self._voices: List[_Voice] = []
        self._bed: Optional[AmbientBed] = None
        self._ambient_volume: Optional[float] = None

        self._cue_generation = 0
        self._ambient_generation = 0
        self._requests: "queue.Queue" = queue.Queue()
        self._worker: Optional[threading.Thread] = None

        self._initialized = False
        self.available = False

        # Ambient lifecycle accounting
        self.ambient_starts = 0
        self.ambient_releases = 0

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def init(self) -> bool:
        """Open the backend and start streaming. Returns availability."""
        if self._initialized:
            return self.available
        self._initialized = True
        try:
            if self.backend is None:
                self.backend = create_audio_backend(self.backend_type,
                                                    sample_rate=self.sample_rate)
            if not self.backend.start(self.render):
                raise AudioUnavailableError(
                    f"{type(self.backend).__name__} failed to start")
            self.available = True
            self._start_worker()
            logger.info("Audio output ready (%s)", type(self.backend).__name__)
        except AudioUnavailableError as e:
            self.available = False
            logger.warning("Audio unavailable, continuing silently: %s", e)
        return self.available

    def close(self):
        """Silence everything, stop the render worker and release the device."""
        self.stop_all()
        self._stop_worker()
        if self.backend is not None:
            self.backend.close()
        self.available = False
        self._initialized = False

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every queued cue and ambient request has been handled.

        Returns False if ``timeout`` expired first.
        """
        if self._worker is None:
            return True
        done = threading.Event()
        self._requests.put(done.set)
        return done.wait(timeout)

    def _start_worker(self):
        if self._worker is not None:
            return
        self._worker = threading.Thread(target=self._worker_loop,
                                        name="audio-render", daemon=True)
        self._worker.start()

    def _stop_worker(self):
        if self._worker is None:
            return
        self._requests.put(_STOP)
        self._worker.join(timeout=2.0)
        self._worker = None

    def _worker_loop(self):
        while True:
            job = self._requests.get()
            if job is _STOP:
                return
            try:
                job()
            except Exception:
                logger.exception("Audio render job failed")

    # ─────────────────────────────────────────────────────────────────────────
    # AudioSink
    # ─────────────────────────────────────────────────────────────────────────

    def play_cue(self, kind: CueKind, duration: float,
                 style: str = "beep", volume: float = 100.0):
        if not self.init():
            return
        with self.lock:
            generation = self._cue_generation
        self._requests.put(lambda: self._render_cue(generation, kind, duration,
                                                    style, volume))

    def start_ambient(self, ambient_type: str, volume: float,
                      source: Optional[str] = None):
        """
        Start (or replace) the ambient bed. Never more than one plays.

        The current bed is released right away, before the new one is
        built, so a replacement that fails to load leaves silence.
        """
        if not self.init():
            return
        self.stop_ambient()
        with self.lock:
            self._ambient_volume = volume
            generation = self._ambient_generation
        self._requests.put(lambda: self._load_ambient(generation, ambient_type,
                                                      volume, source))

    def stop_ambient(self):
        with self.lock:
            self._ambient_generation += 1
            self._ambient_volume = None
            if self._bed is None:
                return
            self._bed = None
            self.ambient_releases += 1
        logger.debug("Ambient stopped")

    def set_ambient_volume(self, volume: float):
        with self.lock:
            if self._ambient_volume is None:
                return
            self._ambient_volume = volume
            if self._bed is not None:
                self._bed.set_volume(volume)

    def stop_all(self):
        with self.lock:
            self._cue_generation += 1
            self._voices.clear()
        self.stop_ambient()

    # ─────────────────────────────────────────────────────────────────────────
    # Render jobs (worker thread)
    # ─────────────────────────────────────────────────────────────────────────

    def _render_cue(self, generation: int, kind: CueKind, duration: float,
                    style: str, volume: float):
        with self.lock:
            if generation != self._cue_generation:
                return
        buffer = self.synth.render_cue(kind, duration, style, volume)
        if len(buffer) == 0:
            return
        with self.lock:
            if generation == self._cue_generation:
                self._voices.append(_Voice(buffer))

    def _load_ambient(self, generation: int, ambient_type: str, volume: float,
                      source: Optional[str]):
        with self.lock:
            if generation != self._ambient_generation:
                return
        try:
            bed = create_ambient_bed(ambient_type, volume, source,
                                     self.sample_rate, self._rng)
        except AudioUnavailableError as e:
            logger.warning("Ambient %s not started: %s", ambient_type, e)
            return
        with self.lock:
            if generation != self._ambient_generation:
                return
            if self._ambient_volume is not None and self._ambient_volume != bed.volume:
                bed.set_volume(self._ambient_volume)
            self._bed = bed
            self.ambient_starts += 1
        logger.debug("Ambient %s started at volume %.0f", ambient_type, volume)

    # ─────────────────────────────────────────────────────────────────────────
    # Mixer
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def active_ambient_count(self) -> int:
        with self.lock:
            return 0 if self._bed is None else 1

    @property
    def active_voice_count(self) -> int:
        with self.lock:
            return len(self._voices)

    @property
    def ambient_volume(self) -> Optional[float]:
        with self.lock:
            return None if self._bed is None else self._bed.volume

    def render(self, frames: int) -> np.ndarray:
        """Backend callback: next ``frames`` stereo frames, float32 in [-1, 1]."""
        mono = np.zeros(frames, dtype=np.float32)
        with self.lock:
            if self._bed is not None:
                mono += self._bed.render(frames)
            for voice in self._voices:
                chunk = voice.read(frames)
                mono[:len(chunk)] += chunk
            self._voices = [v for v in self._voices if not v.finished]
        mono = np.clip(mono, -1.0, 1.0)
        return np.column_stack([mono, mono])
