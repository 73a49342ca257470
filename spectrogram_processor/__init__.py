"""
Spectrogram Processor
Real-time and batch band spectrograms from PCM audio.
"""

from .analyzer import SpectralAnalyzer
from .batch import BatchDriver, SpectrogramResult, generate_spectrogram
from .config import SpectrogramConfig, TimingConfig, get_preset
from .errors import ConfigError, SpectrogramError, WavFormatError
from .stream import SampleChannel, StreamingSpectrogram, run_session
from .timing import TimingCompensator

__all__ = [
    'SpectralAnalyzer',
    'BatchDriver',
    'SpectrogramResult',
    'generate_spectrogram',
    'SpectrogramConfig',
    'TimingConfig',
    'get_preset',
    'ConfigError',
    'SpectrogramError',
    'WavFormatError',
    'SampleChannel',
    'StreamingSpectrogram',
    'run_session',
    'TimingCompensator',
]
