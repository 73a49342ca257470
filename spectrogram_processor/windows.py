"""
Window functions for spectral analysis.

Weights are symmetric (denominator N-1) and cached per (length, kind):
only a handful of FFT sizes are ever used in one process.
"""

from functools import lru_cache

import numpy as np
from scipy.signal import get_window

from .config import WINDOW_KINDS
from .errors import ConfigError


@lru_cache(maxsize=16)
def _cached_weights(length: int, kind: str) -> np.ndarray:
    # fftbins=False gives the symmetric form: 0.54 - 0.46*cos(2*pi*i/(N-1)) for Hamming
    weights = get_window(kind, length, fftbins=False).astype(np.float64)
    weights.setflags(write=False)
    return weights


def window_weights(length: int, kind: str = "hamming") -> np.ndarray:
    """
    Get multiplicative window weights.

    Args:
        length: Window length in samples
        kind: 'hamming' or 'hann'

    Returns:
        Read-only float64 array of ``length`` weights
    """
    if length <= 0:
        raise ConfigError(f"Window length must be positive, got: {length}")
    kind = kind.lower()
    if kind not in WINDOW_KINDS:
        raise ConfigError(f"Unknown window {kind!r}. Supported: {list(WINDOW_KINDS)}")
    return _cached_weights(int(length), kind)


def hamming(length: int) -> np.ndarray:
    return window_weights(length, "hamming")


def hann(length: int) -> np.ndarray:
    return window_weights(length, "hann")
