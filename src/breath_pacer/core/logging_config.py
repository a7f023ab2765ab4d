"""
Logging Configuration for Breath Pacer.

Provides centralized logging control with easily toggleable levels:
- DEBUG: Full diagnostic output (every phase transition, every cue)
- INFO: Key events only (session start/stop, resonance test progress)
- WARNING+: Errors and warnings only (audio degradation)

Usage:
    from breath_pacer.core.logging_config import setup_logging, set_logging_level

    # In main app:
    setup_logging(debug=False, log_file="session.log")

    # Only problems:
    set_logging_level(logging.WARNING)

    # Session events but no audio chatter:
    quiet_audio_logging()
"""

import logging
import os

_handlers = []

# Named loggers for different components
LOGGER_NAMES = [
    # Core
    'breath_pacer.core.session',
    'breath_pacer.core.scheduler',
    'breath_pacer.core.resonance',

    # Audio
    'breath_pacer.audio.backend',
    'breath_pacer.audio.manager',
    'breath_pacer.audio.ambient',
    'breath_pacer.audio.synth',
]


def setup_logging(debug: bool = False, log_file: str = None):
    """
    Setup logging configuration for Breath Pacer.

    Args:
        debug: If True, set DEBUG level. Otherwise INFO level.
        log_file: Optional file path to write logs to.
    """
    level = logging.DEBUG if debug else logging.INFO

    formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Repeated calls replace the handlers added last time
    for handler in _handlers:
        root_logger.removeHandler(handler)
        handler.close()
    _handlers.clear()

    root_logger.addHandler(console_handler)
    _handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        _handlers.append(file_handler)

    set_logging_level(level)


def set_logging_level(level: int):
    """
    Set logging level for all Breath Pacer components.

    Args:
        level: logging.DEBUG, logging.INFO, logging.WARNING, etc.
    """
    for name in LOGGER_NAMES:
        logging.getLogger(name).setLevel(level)


def quiet_audio_logging():
    """Audio loggers to WARNING: keeps the console clean during a session."""
    for name in LOGGER_NAMES:
        if '.audio.' in name:
            logging.getLogger(name).setLevel(logging.WARNING)


# Environment variable control
if os.environ.get('BREATH_DEBUG', '').lower() in ('1', 'true', 'yes'):
    setup_logging(debug=True)
elif os.environ.get('BREATH_QUIET', '').lower() in ('1', 'true', 'yes'):
    setup_logging(debug=False)
    set_logging_level(logging.WARNING)
