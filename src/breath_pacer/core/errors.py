"""Exception hierarchy shared by the session core and the audio layer."""


class BreathPacerError(Exception):
    """Base class for all breath pacer errors."""


class ConfigurationError(BreathPacerError, ValueError):
    """Settings or user input rejected before entering the state machine."""


class AudioUnavailableError(BreathPacerError):
    """Audio output could not be initialized or opened."""
