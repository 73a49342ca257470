"""
Batch driver: whole sample array in, complete spectrogram out.

Runs the same windowing and analysis as a streaming session, but with a
fresh analyzer per call and no timing compensation, so repeated runs over
the same input produce identical columns.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

import numpy as np

from .config import SpectrogramConfig
from .stream import StreamingSpectrogram
from .wav import read_wav

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, int], None]

# Windows fed per ingest call; bounds the working buffer to a few hops
CHUNK_WINDOWS = 64


@dataclass
class SpectrogramResult:
    """Complete batch spectrogram."""

    columns: np.ndarray  # (column_count, band_count), oldest first
    duration: float  # Input duration in seconds
    sample_count: int
    sample_rate: int = 44100
    hop_size: int = 256

    @property
    def column_count(self) -> int:
        return int(self.columns.shape[0])

    @property
    def band_count(self) -> int:
        return int(self.columns.shape[1])

    def column_time(self, index: int) -> float:
        """Start time (seconds) of the window behind a column."""
        return index * self.hop_size / self.sample_rate

    def column_times(self) -> np.ndarray:
        return np.arange(self.column_count) * (self.hop_size / self.sample_rate)


def expected_column_count(sample_count: int, fft_size: int, hop_size: int) -> int:
    """Number of full windows in sample_count samples: floor((L - N) / hop) + 1."""
    if sample_count < fft_size:
        return 0
    return (sample_count - fft_size) // hop_size + 1


class BatchDriver:
    """
    Turns a complete sample array into a spectrogram.

    Usage:
        driver = BatchDriver(get_preset("balanced"))
        result = driver.process(samples)
        print(result.column_count, result.duration)
    """

    def __init__(self, config: Optional[SpectrogramConfig] = None):
        self.config = (config or SpectrogramConfig()).validate()

    def process(
        self, samples, on_progress: Optional[ProgressCallback] = None
    ) -> SpectrogramResult:
        """
        Analyze every full window of the input.

        Args:
            samples: Float samples in [-1, 1]
            on_progress: Called with (percent, column_count) every
                progress_interval windows, then once more for the final
                count if it was not just reported

        Returns:
            SpectrogramResult with one column per full window
        """
        data = np.asarray(samples, dtype=np.float64).ravel()
        sample_count = int(data.size)
        duration = sample_count / self.config.sample_rate
        expected = expected_column_count(sample_count, self.config.fft_size, self.config.hop_size)

        if expected == 0:
            logger.info(
                f"Input too short for a single window ({sample_count} < {self.config.fft_size})"
            )
            return SpectrogramResult(
                columns=np.zeros((0, self.config.band_count), dtype=np.float64),
                duration=duration,
                sample_count=sample_count,
                sample_rate=self.config.sample_rate,
                hop_size=self.config.hop_size,
            )

        # History sized so nothing is evicted
        session_config = SpectrogramConfig.from_dict(self.config.to_dict())
        session_config.history_capacity = expected
        session = StreamingSpectrogram(session_config, real_time=False)

        start = time.perf_counter()
        fft_size, hop_size = self.config.fft_size, self.config.hop_size
        interval = self.config.progress_interval
        next_report = interval
        reported = 0
        fed = 0

        while fed < sample_count:
            target = session.windows_processed + CHUNK_WINDOWS
            if on_progress is not None:
                target = min(target, next_report)
            # Feed exactly up to the last sample of window number `target`
            end = min(fft_size + (target - 1) * hop_size, sample_count)
            session.ingest(data[fed:end])
            fed = end

            if on_progress is not None and session.windows_processed >= next_report:
                reported = session.windows_processed
                self._report(on_progress, reported, expected)
                next_report += interval

        if on_progress is not None and reported != session.windows_processed:
            self._report(on_progress, session.windows_processed, expected)

        elapsed = time.perf_counter() - start
        logger.info(
            f"Generated {session.windows_processed} columns from {duration:.2f}s of audio "
            f"in {elapsed * 1000:.0f}ms",
            extra={"column_count": session.windows_processed, "duration_ms": elapsed * 1000},
        )
        if session.analyzer.failed_windows:
            logger.warning(f"{session.analyzer.failed_windows} windows produced blank columns")

        return SpectrogramResult(
            columns=session.history.view(),
            duration=duration,
            sample_count=sample_count,
            sample_rate=self.config.sample_rate,
            hop_size=self.config.hop_size,
        )

    @staticmethod
    def _report(on_progress: ProgressCallback, processed: int, expected: int):
        percent = min(processed / expected * 100.0, 100.0)
        logger.debug(f"Spectrogram progress: {percent:.1f}% ({processed} columns)")
        try:
            on_progress(percent, processed)
        except Exception as e:
            logger.error(f"Progress callback error: {e}")


def generate_spectrogram(
    path: Optional[Union[str, Path]] = None,
    samples=None,
    config: Optional[SpectrogramConfig] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> SpectrogramResult:
    """
    Generate a spectrogram from a WAV file or a sample array.

    Exactly one of ``path`` and ``samples`` must be given. When reading a
    file, the file's sample rate replaces the configured one.

    Raises:
        ValueError: Neither or both inputs given
        FileNotFoundError: path does not exist
        WavFormatError: path is not a 16-bit PCM WAV file
    """
    if (path is None) == (samples is None):
        raise ValueError("Provide exactly one of path or samples")

    config = SpectrogramConfig.from_dict((config or SpectrogramConfig()).to_dict())
    if path is not None:
        wav = read_wav(path, default_sample_rate=config.sample_rate)
        if wav.sample_rate != config.sample_rate:
            logger.info(f"Using file sample rate {wav.sample_rate}Hz")
            config.sample_rate = wav.sample_rate
            if config.max_freq > config.nyquist:
                logger.info(f"Limiting max_freq to Nyquist ({config.nyquist:.0f}Hz)")
                config.max_freq = config.nyquist
        samples = wav.samples

    return BatchDriver(config).process(samples, on_progress=on_progress)
