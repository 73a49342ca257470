"""
Exception types raised by the spectrogram processor.

Only input validation fails loudly. Per-window numeric problems are
recovered inside the analyzer and never surface as exceptions.
"""


class SpectrogramError(Exception):
    """Base class for all spectrogram processor errors."""


class ConfigError(SpectrogramError, ValueError):
    """Invalid configuration value (non-positive sizes, hop >= fft size, ...)."""


class WavFormatError(SpectrogramError, ValueError):
    """Malformed or truncated WAV container."""
