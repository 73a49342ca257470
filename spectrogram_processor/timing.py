"""
Processing-delay compensation for real-time spectrogram columns.

Real-time analysis adds a variable compute latency between the moment a
window's audio arrives and the moment its column exists. Without
correction a playback cursor drawn over the spectrogram would drift from
the audio. The compensator records when each column was generated, keeps
a moving average of per-window processing time, and maps column indices
to compensated stream times (and back).

All times are float seconds from the compensator's clock.
"""

import logging
import time
from collections import deque
from typing import Callable, Optional

from .config import TimingConfig

logger = logging.getLogger(__name__)


class TimingCompensator:
    """
    Column timestamp record plus processing-delay estimate.

    The timestamp record is bounded to the same capacity as the column
    history and evicts oldest-first, so index i always refers to the same
    column in both structures.
    """

    def __init__(
        self,
        sample_rate: int,
        hop_size: int,
        capacity: int,
        config: Optional[TimingConfig] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """
        Initialize the compensator.

        Args:
            sample_rate: Audio sample rate in Hz
            hop_size: Samples between consecutive columns
            capacity: Maximum timestamps kept (match the column history)
            config: Delay-estimation settings
            clock: Monotonic time source in seconds
        """
        self.config = config or TimingConfig()
        self.config.validate()
        self.sample_rate = sample_rate
        self.hop_size = hop_size
        self.capacity = capacity
        self.clock = clock

        self._timestamps: deque = deque(maxlen=capacity)
        self._processing_times: deque = deque(maxlen=self.config.timing_history_size)
        self._stream_start: Optional[float] = None
        self._average_processing_time = 0.0
        self._processing_delay = 0.0

    @property
    def time_per_column(self) -> float:
        return self.hop_size / self.sample_rate

    def start(self, now: Optional[float] = None):
        """Mark the stream start instant and clear all timing data."""
        self.reset()
        self._stream_start = self.clock() if now is None else now
        logger.debug(f"Timing compensation started at {self._stream_start:.6f}")

    def reset(self):
        """Clear timestamps, processing history and the stream start."""
        self._timestamps.clear()
        self._processing_times.clear()
        self._stream_start = None
        self._average_processing_time = 0.0
        self._processing_delay = 0.0

    def record_column(self, generated_at: Optional[float] = None) -> float:
        """
        Record the generation instant of the next column.

        Returns:
            The recorded timestamp
        """
        ts = self.clock() if generated_at is None else generated_at
        if self._stream_start is None:
            self._stream_start = ts
        self._timestamps.append(ts)
        return ts

    def record_processing_time(self, duration: float):
        """
        Add one window's processing duration and refresh the delay estimate.

        The estimate is the moving average scaled by the safety factor and
        clamped to [0, max_processing_delay].
        """
        self._processing_times.append(max(0.0, float(duration)))
        self._average_processing_time = sum(self._processing_times) / len(
            self._processing_times
        )
        delay = self._average_processing_time * self.config.safety_factor
        if delay > self.config.max_processing_delay:
            logger.debug(
                f"Processing delay {delay * 1000:.1f}ms clamped to "
                f"{self.config.max_processing_delay * 1000:.1f}ms"
            )
        self._processing_delay = min(max(delay, 0.0), self.config.max_processing_delay)

        if len(self._processing_times) % 20 == 0:
            logger.debug(
                f"Processing delay updated - delay: {self._processing_delay * 1000:.2f}ms, "
                f"average: {self._average_processing_time * 1000:.2f}ms"
            )

    def uncompensated_time(self, column_index: int) -> float:
        """Nominal stream time of a column from hop size alone."""
        return column_index * self.time_per_column

    def has_timing_for(self, column_index: int) -> bool:
        return self._stream_start is not None and 0 <= column_index < len(self._timestamps)

    def compensated_time(self, column_index: int) -> float:
        """
        Estimated stream time (seconds) of the audio behind a column.

        Falls back to column_index * hop / sample_rate when no timestamp
        is available for the index.
        """
        if not self.has_timing_for(column_index):
            return self.uncompensated_time(column_index)

        actual = self._timestamps[column_index] - self._stream_start
        return max(0.0, actual - self._processing_delay)

    def nearest_column_index(
        self, target_time: float, column_count: Optional[int] = None
    ) -> int:
        """
        Find the column whose compensated time is closest to target_time.

        Compensated times can be locally non-monotonic, so this is a linear
        scan; ties resolve to the lowest index.

        Args:
            target_time: Stream time in seconds
            column_count: Number of columns to clamp against when no timing
                data exists (defaults to the timestamp record length)

        Returns:
            Column index, or 0 if there are no columns
        """
        if not self._timestamps or self._stream_start is None:
            count = len(self._timestamps) if column_count is None else column_count
            estimate = int(round(target_time / self.time_per_column))
            return min(max(estimate, 0), max(count - 1, 0))

        best_index = 0
        best_difference = float("inf")
        for i, ts in enumerate(self._timestamps):
            compensated = max(0.0, (ts - self._stream_start) - self._processing_delay)
            difference = abs(compensated - target_time)
            if difference < best_difference:
                best_difference = difference
                best_index = i
        return best_index

    @property
    def stream_start(self) -> Optional[float]:
        return self._stream_start

    @property
    def processing_delay(self) -> float:
        """Current delay estimate in seconds."""
        return self._processing_delay

    @property
    def average_processing_time(self) -> float:
        return self._average_processing_time

    @property
    def timestamp_count(self) -> int:
        return len(self._timestamps)

    @property
    def timing_stats(self) -> dict:
        """Get detailed timing statistics (milliseconds)."""
        samples = list(self._processing_times)
        if not samples:
            return {
                "avg": 0.0,
                "min": 0.0,
                "max": 0.0,
                "samples": 0,
                "delay_ms": 0.0,
                "hop_interval_ms": self.time_per_column * 1000,
            }
        return {
            "avg": self._average_processing_time * 1000,
            "min": min(samples) * 1000,
            "max": max(samples) * 1000,
            "samples": len(samples),
            "delay_ms": self._processing_delay * 1000,
            "hop_interval_ms": self.time_per_column * 1000,
        }
