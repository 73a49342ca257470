"""
Spectral analyzer: one time-domain window in, one normalized band column out.

Pipeline per window:
1. Multiply by the window function (Hamming by default)
2. Real FFT (scipy.fft.rfft) -> magnitude per bin
3. Aggregate bins into bands (uniform ranges or mel filters)
4. Adaptive dynamic range from a rolling history of column peaks
5. Gamma correction for perceptual contrast

The rolling magnitude history is per-analyzer state. Create one analyzer
per session and call reset() when a new session starts.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

import numpy as np
from scipy.fft import rfft

from .config import SpectrogramConfig
from .errors import ConfigError
from .mel import build_mel_filter_bank
from .windows import window_weights

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MelFilterAggregation:
    """Weighted sum of bin magnitudes through a mel filter bank."""

    matrix: np.ndarray  # (band_count, spectrum_size)

    @property
    def band_count(self) -> int:
        return int(self.matrix.shape[0])

    def apply(self, magnitudes: np.ndarray) -> np.ndarray:
        return self.matrix @ magnitudes


@dataclass(frozen=True)
class UniformRangeAggregation:
    """Average magnitude over equal-width contiguous bin ranges below max_freq."""

    max_freq: float
    starts: np.ndarray  # First bin of each band (inclusive)
    ends: np.ndarray  # Last bin of each band (exclusive)

    @property
    def band_count(self) -> int:
        return int(self.starts.shape[0])

    @classmethod
    def build(
        cls, sample_rate: int, fft_size: int, band_count: int, max_freq: float
    ) -> "UniformRangeAggregation":
        spectrum_size = fft_size // 2 + 1
        bin_size = sample_rate / fft_size
        max_bin = min(max(0, math.ceil(max_freq / bin_size)), spectrum_size)
        bins_per_band = max_bin / band_count

        starts = np.empty(band_count, dtype=np.int64)
        ends = np.empty(band_count, dtype=np.int64)
        for band in range(band_count):
            starts[band] = math.floor(band * bins_per_band)
            ends[band] = min(math.ceil((band + 1) * bins_per_band), spectrum_size)

        starts.setflags(write=False)
        ends.setflags(write=False)
        return cls(max_freq=max_freq, starts=starts, ends=ends)

    def apply(self, magnitudes: np.ndarray) -> np.ndarray:
        # Ranges may overlap by one bin, so use a prefix sum instead of reduceat
        cumulative = np.concatenate(([0.0], np.cumsum(magnitudes)))
        counts = self.ends - self.starts
        sums = cumulative[self.ends] - cumulative[self.starts]
        return np.divide(sums, counts, out=np.zeros(len(counts)), where=counts > 0)


BandAggregation = Union[MelFilterAggregation, UniformRangeAggregation]


def build_aggregation(config: SpectrogramConfig) -> BandAggregation:
    """Resolve the configured aggregation strategy once per session."""
    if config.aggregation == "mel":
        matrix = build_mel_filter_bank(
            config.sample_rate,
            config.fft_size,
            config.band_count,
            config.min_freq,
            config.max_freq,
        )
        return MelFilterAggregation(matrix=matrix)
    return UniformRangeAggregation.build(
        config.sample_rate, config.fft_size, config.band_count, config.max_freq
    )


class SpectralAnalyzer:
    """
    Converts audio windows into normalized band columns.

    Usage:
        analyzer = SpectralAnalyzer(SpectrogramConfig())
        column = analyzer.analyze(window)  # np.ndarray, values in [0, 1]
    """

    def __init__(
        self,
        config: Optional[SpectrogramConfig] = None,
        aggregation: Optional[BandAggregation] = None,
    ):
        """
        Initialize the analyzer.

        Args:
            config: Spectrogram configuration (validated here)
            aggregation: Pre-built band aggregation; built from config if None
        """
        self.config = (config or SpectrogramConfig()).validate()
        self.aggregation = aggregation if aggregation is not None else build_aggregation(
            self.config
        )
        if self.aggregation.band_count != self.config.band_count:
            raise ConfigError(
                f"Aggregation produces {self.aggregation.band_count} bands, "
                f"config expects {self.config.band_count}"
            )

        self.fft_size = self.config.fft_size
        self.band_count = self.config.band_count
        self.window = window_weights(self.fft_size, self.config.window)

        # Rolling history of per-column peak band magnitude
        self._magnitude_history: deque = deque(maxlen=self.config.magnitude_history_size)
        self._global_max_magnitude = 0.0
        self._dynamic_min = 0.0
        self._dynamic_max = 1.0

        self._windows_analyzed = 0
        self._failed_windows = 0

        logger.debug(
            f"SpectralAnalyzer initialized: fft={self.fft_size}, bands={self.band_count}, "
            f"aggregation={type(self.aggregation).__name__}, window={self.config.window}"
        )

    def analyze(self, window: np.ndarray) -> np.ndarray:
        """
        Analyze one window of samples.

        Never raises for per-window numeric problems: an empty window or a
        non-finite spectrum yields a zero column and a warning log entry.

        Args:
            window: fft_size samples in [-1, 1]. Shorter windows are
                zero-padded, longer ones truncated.

        Returns:
            float64 array of band_count values in [0, 1]
        """
        self._windows_analyzed += 1
        try:
            samples = self._prepare_window(window)
            if samples is None:
                return self._failed_column("empty window")

            magnitudes = np.abs(rfft(samples * self.window))
            bands = self.aggregation.apply(magnitudes)
            if not np.all(np.isfinite(bands)):
                return self._failed_column("non-finite band magnitudes")

            return self._normalize(bands)
        except (ValueError, TypeError, FloatingPointError) as e:
            return self._failed_column(f"{type(e).__name__}: {e}")

    def _prepare_window(self, window) -> Optional[np.ndarray]:
        samples = np.asarray(window, dtype=np.float64).ravel()
        if samples.size == 0:
            return None
        if samples.size < self.fft_size:
            logger.debug(f"Padding window from {samples.size} to {self.fft_size} samples")
            samples = np.pad(samples, (0, self.fft_size - samples.size))
        elif samples.size > self.fft_size:
            logger.debug(f"Truncating window from {samples.size} to {self.fft_size} samples")
            samples = samples[: self.fft_size]
        return samples

    def _normalize(self, bands: np.ndarray) -> np.ndarray:
        peak = float(np.max(bands))
        self._magnitude_history.append(peak)
        self._global_max_magnitude = max(self._global_max_magnitude, peak)

        dynamic_min = min(self._magnitude_history) * self.config.floor_scale
        dynamic_max = max(self._magnitude_history) * self.config.ceiling_scale
        if dynamic_max <= dynamic_min:
            dynamic_max = dynamic_min + self.config.min_dynamic_spread
        self._dynamic_min = dynamic_min
        self._dynamic_max = dynamic_max

        scaled = np.clip((bands - dynamic_min) / (dynamic_max - dynamic_min), 0.0, 1.0)
        column = np.where(bands <= dynamic_min, 0.0, scaled ** self.config.gamma)
        column.setflags(write=False)

        if self._windows_analyzed % 1000 == 0:
            logger.debug(
                f"Dynamic range after {self._windows_analyzed} windows - "
                f"min: {dynamic_min:.4f}, max: {dynamic_max:.4f}"
            )
        return column

    def _failed_column(self, reason: str) -> np.ndarray:
        self._failed_windows += 1
        logger.warning(
            f"Window analysis failed ({reason}); emitting blank column",
            extra={"window_index": self._windows_analyzed - 1},
        )
        column = np.zeros(self.band_count, dtype=np.float64)
        column.setflags(write=False)
        return column

    def reset(self):
        """Reset magnitude tracking for a new session."""
        self._magnitude_history.clear()
        self._global_max_magnitude = 0.0
        self._dynamic_min = 0.0
        self._dynamic_max = 1.0
        self._windows_analyzed = 0
        self._failed_windows = 0

    @property
    def magnitude_history(self) -> List[float]:
        """Snapshot of the rolling peak-magnitude history (oldest first)."""
        return list(self._magnitude_history)

    @property
    def global_max_magnitude(self) -> float:
        """Largest column peak seen since the last reset."""
        return self._global_max_magnitude

    @property
    def dynamic_range(self) -> Tuple[float, float]:
        """(floor, ceiling) used for the most recent column."""
        return self._dynamic_min, self._dynamic_max

    @property
    def windows_analyzed(self) -> int:
        return self._windows_analyzed

    @property
    def failed_windows(self) -> int:
        return self._failed_windows
