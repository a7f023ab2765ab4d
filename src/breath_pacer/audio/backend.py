"""
Backend-agnostic Audio Output
==============================

Supports multiple audio backends:
- PyAudio (desktop)
- sounddevice (PortAudio via numpy-native streams)
- Dummy (testing without hardware)

Choose backend automatically or explicitly via environment:
    AUDIO_BACKEND=sounddevice breath-pacer run
    AUDIO_BACKEND=dummy breath-pacer run
"""

import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional

import numpy as np

from ..core.errors import AudioUnavailableError
from .synth import SAMPLE_RATE

try:
    import pyaudio
    HAS_PYAUDIO = True
except ImportError:
    HAS_PYAUDIO = False

try:
    import sounddevice as sd
    HAS_SOUNDDEVICE = True
except ImportError:
    HAS_SOUNDDEVICE = False

logger = logging.getLogger(__name__)

# (num_frames) -> float32 array of shape (num_frames, channels)
RenderCallback = Callable[[int], np.ndarray]


class AudioBackendType(Enum):
    """Supported audio backends"""
    PYAUDIO = "pyaudio"
    SOUNDDEVICE = "sounddevice"
    DUMMY = "dummy"


class AudioBackend(ABC):
    """Abstract base for audio backends"""

    def __init__(self, sample_rate: int = SAMPLE_RATE, channels: int = 2,
                 buffer_size: int = 1024):
        self.sample_rate = sample_rate
        self.channels = channels
        self.buffer_size = buffer_size
        self.playing = False
        self.callback_fn: Optional[RenderCallback] = None

    @abstractmethod
    def start(self, callback: RenderCallback) -> bool:
        """
        Start audio playback with callback

        Args:
            callback: Function that generates audio frames (num_frames) -> np.ndarray[float32]
                     Returns shape: (num_frames, channels)

        Returns:
            True if started successfully
        """
        pass

    @abstractmethod
    def stop(self):
        """Stop audio playback"""
        pass

    def close(self):
        """Stop playback and release the device library"""
        self.stop()

    def _safe_render(self, frame_count: int) -> np.ndarray:
        """Callback output clipped to [-1, 1]; silence if the callback fails."""
        if self.callback_fn is None:
            return np.zeros((frame_count, self.channels), dtype=np.float32)
        try:
            audio_data = self.callback_fn(frame_count)
            return np.clip(audio_data, -1.0, 1.0).astype(np.float32)
        except Exception:
            logger.exception("Audio callback error")
            return np.zeros((frame_count, self.channels), dtype=np.float32)


class PyAudioBackend(AudioBackend):
    """PyAudio backend for desktop"""

    def __init__(self, sample_rate: int = SAMPLE_RATE, channels: int = 2,
                 buffer_size: int = 1024, device_index: Optional[int] = None):
        super().__init__(sample_rate, channels, buffer_size)
        if not HAS_PYAUDIO:
            raise AudioUnavailableError("PyAudio not available. Install with: pip install pyaudio")
        self.pyaudio = pyaudio.PyAudio()
        self.stream = None
        self.device_index = device_index
        logger.debug("PyAudio backend initialized")

    def _pyaudio_callback(self, in_data, frame_count, time_info, status):
        return (self._safe_render(frame_count).tobytes(), pyaudio.paContinue)

    def start(self, callback: RenderCallback) -> bool:
        """Start PyAudio stream"""
        if self.playing:
            return True
        try:
            self.callback_fn = callback
            self.stream = self.pyaudio.open(
                format=pyaudio.paFloat32,
                channels=self.channels,
                rate=self.sample_rate,
                output=True,
                output_device_index=self.device_index,
                frames_per_buffer=self.buffer_size,
                stream_callback=self._pyaudio_callback
            )
            self.playing = True
            logger.info("PyAudio stream started")
            return True
        except Exception as e:
            logger.error("Failed to start PyAudio: %s", e)
            return False

    def stop(self):
        """Stop PyAudio stream"""
        if self.stream is None:
            return
        try:
            self.stream.stop_stream()
            self.stream.close()
        except Exception as e:
            logger.warning("Error stopping PyAudio: %s", e)
        self.stream = None
        self.playing = False
        logger.info("PyAudio stream stopped")

    def close(self):
        """Stop the stream and terminate the PyAudio instance"""
        self.stop()
        if self.pyaudio is not None:
            self.pyaudio.terminate()
            self.pyaudio = None


class SoundDeviceBackend(AudioBackend):
    """sounddevice (PortAudio) backend"""

    def __init__(self, sample_rate: int = SAMPLE_RATE, channels: int = 2,
                 buffer_size: int = 1024, device_index: Optional[int] = None):
        super().__init__(sample_rate, channels, buffer_size)
        if not HAS_SOUNDDEVICE:
            raise AudioUnavailableError(
                "sounddevice not available. Install with: pip install sounddevice")
        self.stream = None
        self.device_index = device_index
        logger.debug("sounddevice backend initialized")

    def _sd_callback(self, outdata, frames, time_info, status):
        if status:
            logger.debug("sounddevice status: %s", status)
        outdata[:] = self._safe_render(frames)

    def start(self, callback: RenderCallback) -> bool:
        """Start sounddevice output stream"""
        if self.playing:
            return True
        try:
            self.callback_fn = callback
            self.stream = sd.OutputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                blocksize=self.buffer_size,
                dtype='float32',
                device=self.device_index,
                callback=self._sd_callback
            )
            self.stream.start()
            self.playing = True
            logger.info("sounddevice stream started")
            return True
        except Exception as e:
            logger.error("Failed to start sounddevice: %s", e)
            self.stream = None
            return False

    def stop(self):
        """Stop sounddevice stream"""
        if self.stream is None:
            return
        try:
            self.stream.stop()
            self.stream.close()
        except Exception as e:
            logger.warning("Error stopping sounddevice: %s", e)
        self.stream = None
        self.playing = False
        logger.info("sounddevice stream stopped")


class DummyBackend(AudioBackend):
    """
    Dummy backend for testing without hardware.

    With ``realtime=False`` nothing runs in the background: tests call
    ``pull(frames)`` to drive the render callback by hand.
    """

    def __init__(self, sample_rate: int = SAMPLE_RATE, channels: int = 2,
                 buffer_size: int = 1024, realtime: bool = True):
        super().__init__(sample_rate, channels, buffer_size)
        self.realtime = realtime
        self.thread = None
        self._stop_flag = threading.Event()
        logger.debug("Dummy backend initialized (silent)")

    def _dummy_thread(self):
        """Simulate audio callback timing"""
        interval = self.buffer_size / self.sample_rate
        while not self._stop_flag.is_set():
            self._safe_render(self.buffer_size)
            time.sleep(interval)

    def start(self, callback: RenderCallback) -> bool:
        """Start dummy playback"""
        if self.playing:
            return True
        self.callback_fn = callback
        if self.realtime:
            self._stop_flag.clear()
            self.thread = threading.Thread(target=self._dummy_thread, daemon=True)
            self.thread.start()
        self.playing = True
        return True

    def stop(self):
        """Stop dummy playback"""
        if not self.playing:
            return
        self._stop_flag.set()
        if self.thread:
            self.thread.join(timeout=1.0)
            self.thread = None
        self.playing = False

    def pull(self, frames: int) -> np.ndarray:
        """Render ``frames`` frames as the device would."""
        return self._safe_render(frames)


def create_audio_backend(backend_type: Optional[str] = None, **kwargs) -> AudioBackend:
    """
    Factory function to create audio backend

    Args:
        backend_type: "pyaudio", "sounddevice", "dummy", or None for auto-detect
        **kwargs: Backend-specific parameters (sample_rate, channels, buffer_size)

    Returns:
        AudioBackend instance

    Auto-detection priority:
        1. AUDIO_BACKEND environment variable
        2. sounddevice
        3. PyAudio

    Raises:
        AudioUnavailableError: no usable backend, or the requested one is missing.
        ValueError: unknown backend name.
    """
    if backend_type is None:
        backend_type = os.environ.get('AUDIO_BACKEND') or None

    if backend_type is None:
        if HAS_SOUNDDEVICE:
            backend_type = AudioBackendType.SOUNDDEVICE.value
        elif HAS_PYAUDIO:
            backend_type = AudioBackendType.PYAUDIO.value
        else:
            raise AudioUnavailableError(
                "No audio backend available. Install with: pip install 'breath-pacer[audio]'")
        logger.info("Using %s backend", backend_type)

    try:
        kind = AudioBackendType(backend_type.lower())
    except ValueError:
        raise ValueError(f"Unknown backend: {backend_type}") from None

    if kind == AudioBackendType.PYAUDIO:
        return PyAudioBackend(**kwargs)
    if kind == AudioBackendType.SOUNDDEVICE:
        return SoundDeviceBackend(**kwargs)
    return DummyBackend(**kwargs)
