"""
Audio module - Phase cues, ambient beds, output backends
"""
from .sink import AudioSink, CueKind, NullAudioSink
from .synth import SAMPLE_RATE, ToneSynthesizer
from .ambient import AMBIENT_PROFILES, AmbientProfile, create_ambient_bed, load_audio_file
from .backend import AudioBackend, DummyBackend, create_audio_backend
from .manager import AudioManager

__all__ = [
    'AudioSink', 'CueKind', 'NullAudioSink',
    'SAMPLE_RATE', 'ToneSynthesizer',
    'AMBIENT_PROFILES', 'AmbientProfile', 'create_ambient_bed', 'load_audio_file',
    'AudioBackend', 'DummyBackend', 'create_audio_backend',
    'AudioManager',
]
