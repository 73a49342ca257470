"""
Streaming spectrogram session.

Accumulates sample chunks of any size, cuts overlapping windows at a fixed
hop, analyzes each window and keeps a bounded history of columns together
with their compensated timestamps.

Designed for a single ordered producer (audio capture):
- ingest() calls must happen in arrival order, never concurrently
- SampleChannel + run_session() carry chunks from a capture task to the
  session; the queue is the only place where anything waits
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional, Union

import numpy as np

from .analyzer import SpectralAnalyzer
from .config import SpectrogramConfig
from .errors import ConfigError
from .history import ColumnHistory
from .timing import TimingCompensator
from .wav import decode_pcm16

logger = logging.getLogger(__name__)

Chunk = Union[np.ndarray, List[float], bytes]


class StreamingSpectrogram:
    """
    Sliding-window spectrogram over an unbounded sample stream.

    Produces one column per hop_size samples consumed, with
    fft_size - hop_size samples of overlap reused between windows. Output
    does not depend on how the input is split into chunks.

    Usage:
        session = StreamingSpectrogram(SpectrogramConfig())
        for chunk in capture():
            for column in session.ingest(chunk):
                draw(column)
        t = session.compensated_time(len(session) - 1)
    """

    def __init__(
        self,
        config: Optional[SpectrogramConfig] = None,
        analyzer: Optional[SpectralAnalyzer] = None,
        real_time: bool = True,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """
        Initialize a session.

        Args:
            config: Spectrogram configuration (validated here)
            analyzer: Analyzer owned by this session; created from config if None
            real_time: If True, timestamp columns and track processing delay
            clock: Monotonic time source in seconds (used for timing only)
        """
        self.config = (config or SpectrogramConfig()).validate()
        self.fft_size = self.config.fft_size
        self.hop_size = self.config.hop_size

        self.analyzer = analyzer or SpectralAnalyzer(self.config)
        if (
            self.analyzer.fft_size != self.fft_size
            or self.analyzer.band_count != self.config.band_count
        ):
            raise ConfigError(
                f"Analyzer expects fft={self.analyzer.fft_size}, "
                f"bands={self.analyzer.band_count}; session uses "
                f"fft={self.fft_size}, bands={self.config.band_count}"
            )
        self.history = ColumnHistory(self.config.history_capacity, self.config.band_count)
        self.clock = clock

        self.timing: Optional[TimingCompensator] = None
        if real_time:
            self.timing = TimingCompensator(
                sample_rate=self.config.sample_rate,
                hop_size=self.hop_size,
                capacity=self.config.history_capacity,
                config=self.config.timing,
                clock=clock,
            )

        self._buffer = np.zeros(0, dtype=np.float64)
        self._pending_byte = b""
        self._windows_processed = 0
        self._samples_received = 0
        self._current_amplitude = 0.0

        self.reset()

    def reset(self, stream_start: Optional[float] = None):
        """
        Start a new session: clear buffer, history, timestamps and the
        analyzer's magnitude tracking.

        Args:
            stream_start: Stream start instant on the session clock
                (defaults to now)
        """
        self._buffer = np.zeros(0, dtype=np.float64)
        self._pending_byte = b""
        self._windows_processed = 0
        self._samples_received = 0
        self._current_amplitude = 0.0
        self.history.clear()
        self.history.reset_stats()
        self.analyzer.reset()
        if self.timing is not None:
            self.timing.start(stream_start)
        logger.debug("Streaming session reset")

    def ingest(self, samples) -> List[np.ndarray]:
        """
        Append samples and analyze every complete window.

        Args:
            samples: Float samples in [-1, 1] (any length, including zero)

        Returns:
            Columns produced by this call, oldest first (possibly empty)
        """
        chunk = np.asarray(samples, dtype=np.float64).ravel()
        self._samples_received += chunk.size
        if chunk.size:
            self._buffer = np.concatenate((self._buffer, chunk))

        columns: List[np.ndarray] = []
        offset = 0
        while self._buffer.size - offset >= self.fft_size:
            window = self._buffer[offset : offset + self.fft_size]
            columns.append(self._process_window(window))
            offset += self.hop_size

        if offset:
            # Keep only the overlap tail for the next window
            self._buffer = self._buffer[offset:].copy()

        return columns

    def ingest_pcm16(self, data: bytes) -> List[np.ndarray]:
        """
        Ingest raw little-endian 16-bit PCM bytes.

        An odd trailing byte is held back and joined with the next call.
        """
        data = self._pending_byte + bytes(data)
        if len(data) % 2:
            self._pending_byte = data[-1:]
            data = data[:-1]
        else:
            self._pending_byte = b""
        return self.ingest(decode_pcm16(data))

    def _process_window(self, window: np.ndarray) -> np.ndarray:
        started = self.clock() if self.timing is not None else 0.0

        column = self.analyzer.analyze(window)
        self._current_amplitude = float(np.sqrt(np.mean(window * window)))

        if self.timing is not None:
            generated = self.timing.record_column(self.clock())
            self.timing.record_processing_time(generated - started)

        self.history.append(column)
        self._windows_processed += 1

        if self._windows_processed % 100 == 0:
            self._log_progress(column)

        return column

    def _log_progress(self, column: np.ndarray):
        active = int(np.count_nonzero(column > 0.3))
        delay_ms = self.timing.processing_delay * 1000 if self.timing is not None else 0.0
        logger.debug(
            f"Column {self._windows_processed} - max: {float(np.max(column)):.3f}, "
            f"avg: {float(np.mean(column)):.3f}, active: {active}/{len(column)}, "
            f"delay: {delay_ms:.1f}ms",
            extra={"column_index": len(self.history) - 1},
        )

    # === Pull-based snapshots for renderers ===

    def columns(self) -> np.ndarray:
        """All retained columns, shape (len, band_count), oldest first."""
        return self.history.snapshot()

    def __len__(self) -> int:
        return len(self.history)

    @property
    def column_count(self) -> int:
        return len(self.history)

    def compensated_time(self, column_index: int) -> float:
        """Compensated stream time (seconds) of a retained column."""
        if self.timing is None:
            return column_index * self.config.time_per_column
        return self.timing.compensated_time(column_index)

    def uncompensated_time(self, column_index: int) -> float:
        return column_index * self.config.time_per_column

    def nearest_column_index(self, target_time: float) -> int:
        """Index of the retained column closest to target_time (seconds)."""
        if self.timing is None:
            estimate = int(round(target_time / self.config.time_per_column))
            return min(max(estimate, 0), max(len(self.history) - 1, 0))
        return self.timing.nearest_column_index(target_time, len(self.history))

    @property
    def pending_samples(self) -> int:
        """Samples buffered but not yet consumed by a full window."""
        return int(self._buffer.size)

    @property
    def windows_processed(self) -> int:
        return self._windows_processed

    @property
    def current_amplitude(self) -> float:
        """RMS of the most recently analyzed window."""
        return self._current_amplitude

    @property
    def processing_delay(self) -> float:
        return self.timing.processing_delay if self.timing is not None else 0.0

    def stats(self) -> dict:
        """Session statistics for diagnostics."""
        history_stats = self.history.stats
        return {
            "windows_processed": self._windows_processed,
            "samples_received": self._samples_received,
            "pending_samples": self.pending_samples,
            "columns": len(self.history),
            "evictions": history_stats.evictions,
            "failed_windows": self.analyzer.failed_windows,
            "processing_delay_ms": self.processing_delay * 1000,
            "current_amplitude": self._current_amplitude,
        }


class ChannelClosed(Exception):
    """Raised when putting into a closed SampleChannel."""


_CLOSED = object()


class SampleChannel:
    """
    Single-consumer ordered channel from a capture task to a session.

    Chunks are delivered exactly in put() order. Unlike a frame queue,
    nothing is ever dropped: a full channel makes the producer wait.
    """

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    async def put(self, chunk: Chunk):
        """Enqueue a chunk of float samples or raw PCM16 bytes."""
        if self._closed:
            raise ChannelClosed("Cannot put into a closed channel")
        await self._queue.put(chunk)

    def put_nowait(self, chunk: Chunk):
        """Enqueue without waiting; raises asyncio.QueueFull if full."""
        if self._closed:
            raise ChannelClosed("Cannot put into a closed channel")
        self._queue.put_nowait(chunk)

    async def close(self):
        """Signal end of stream; the consumer finishes queued chunks first."""
        if not self._closed:
            self._closed = True
            await self._queue.put(_CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self):
        return self

    async def __anext__(self) -> Chunk:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


async def run_session(
    channel: SampleChannel,
    session: StreamingSpectrogram,
    on_columns: Optional[Callable[[List[np.ndarray]], None]] = None,
) -> int:
    """
    Consume a channel until it is closed, feeding the session in order.

    Args:
        channel: Source of sample chunks (float arrays or PCM16 bytes)
        session: Streaming session owned by this consumer
        on_columns: Called with the columns produced by each chunk

    Returns:
        Total number of columns produced
    """
    produced = 0
    async for chunk in channel:
        if isinstance(chunk, (bytes, bytearray, memoryview)):
            columns = session.ingest_pcm16(bytes(chunk))
        else:
            columns = session.ingest(chunk)

        produced += len(columns)
        if columns and on_columns is not None:
            try:
                on_columns(columns)
            except Exception as e:
                logger.error(f"Column callback error: {e}")

    logger.info(
        f"Streaming session finished: {produced} columns, "
        f"delay {session.processing_delay * 1000:.1f}ms",
        extra={"column_count": produced},
    )
    return produced
