"""
Mel filter bank construction.

Builds triangular filters centred on mel-spaced frequencies. Filter areas
are not normalized: every filter peaks at 1.0 at its centre so that band
magnitudes stay on the same scale as the uniform-band mode.
"""

from typing import Tuple, Union

import numpy as np

from .errors import ConfigError

ArrayLike = Union[float, np.ndarray]


def hz_to_mel(hz: ArrayLike) -> ArrayLike:
    """Convert frequency in Hz to mels (O'Shaughnessy formula)."""
    return 2595.0 * np.log10(1.0 + np.asarray(hz, dtype=np.float64) / 700.0)


def mel_to_hz(mel: ArrayLike) -> ArrayLike:
    """Convert mels back to Hz."""
    return 700.0 * (10.0 ** (np.asarray(mel, dtype=np.float64) / 2595.0) - 1.0)


def mel_band_edges(
    band_count: int, min_freq: float, max_freq: float
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Compute left/centre/right edges (Hz) for each mel band.

    ``band_count + 2`` equally spaced mel points are generated between
    ``min_freq`` and ``max_freq``; band m uses points m, m+1, m+2.

    Returns:
        Tuple of (left, center, right) arrays, each of length band_count
    """
    if band_count <= 0:
        raise ConfigError(f"band_count must be positive, got: {band_count}")
    if min_freq < 0 or max_freq <= min_freq:
        raise ConfigError(f"Invalid frequency range: {min_freq}Hz - {max_freq}Hz")

    mel_points = np.linspace(hz_to_mel(min_freq), hz_to_mel(max_freq), band_count + 2)
    hz_points = mel_to_hz(mel_points)
    return hz_points[:-2], hz_points[1:-1], hz_points[2:]


def build_mel_filter_bank(
    sample_rate: int,
    fft_size: int,
    band_count: int,
    min_freq: float = 0.0,
    max_freq: float = 8000.0,
) -> np.ndarray:
    """
    Build a (band_count x fft_size//2 + 1) matrix of triangular weights.

    Bin k sits at k * sample_rate / fft_size Hz. Each row rises linearly
    from 0 at the left edge to 1 at the centre and falls back to 0 at the
    right edge; weights outside [left, right] are zero.

    Args:
        sample_rate: Audio sample rate in Hz
        fft_size: FFT window size in samples
        band_count: Number of mel bands (rows)
        min_freq: Lower edge of the first filter (Hz)
        max_freq: Upper edge of the last filter (Hz)

    Returns:
        Read-only float64 weight matrix
    """
    if sample_rate <= 0 or fft_size <= 0:
        raise ConfigError(
            f"sample_rate and fft_size must be positive, got: {sample_rate}, {fft_size}"
        )

    left, center, right = mel_band_edges(band_count, min_freq, max_freq)
    freqs = np.arange(fft_size // 2 + 1, dtype=np.float64) * sample_rate / fft_size

    # Broadcast (bands, 1) against (1, bins)
    rising = (freqs[np.newaxis, :] - left[:, np.newaxis]) / (center - left)[:, np.newaxis]
    falling = (right[:, np.newaxis] - freqs[np.newaxis, :]) / (right - center)[:, np.newaxis]
    weights = np.maximum(0.0, np.minimum(rising, falling))

    weights.setflags(write=False)
    return weights
