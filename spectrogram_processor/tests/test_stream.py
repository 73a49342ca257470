"""
Tests for the streaming session and the ordered sample channel.
"""

import asyncio

import numpy as np
import pytest

from spectrogram_processor.analyzer import SpectralAnalyzer
from spectrogram_processor.config import SpectrogramConfig
from spectrogram_processor.errors import ConfigError
from spectrogram_processor.stream import (
    ChannelClosed,
    SampleChannel,
    StreamingSpectrogram,
    run_session,
)
from spectrogram_processor.wav import decode_pcm16, encode_pcm16

from .conftest import FakeClock, make_sine


def mixed_signal(sample_rate: int = 8000) -> np.ndarray:
    rng = np.random.default_rng(42)
    sine = make_sine(440.0, 1.0, sample_rate=sample_rate) + make_sine(
        1500.0, 1.0, sample_rate=sample_rate, amplitude=0.2
    )
    return sine + rng.normal(0.0, 0.01, sine.size)


class TestStreamingSpectrogram:
    """Tests for sliding-window ingestion."""

    def test_hop_not_smaller_than_fft_rejected(self):
        with pytest.raises(ConfigError):
            StreamingSpectrogram(SpectrogramConfig(fft_size=512, hop_size=512))

    def test_short_input_produces_nothing(self, small_config):
        session = StreamingSpectrogram(small_config, real_time=False)
        assert session.ingest(np.zeros(255)) == []
        assert session.pending_samples == 255
        assert len(session) == 0

    def test_empty_chunk(self, small_config):
        session = StreamingSpectrogram(small_config, real_time=False)
        assert session.ingest([]) == []
        assert session.pending_samples == 0

    def test_one_column_per_hop(self, small_config):
        session = StreamingSpectrogram(small_config, real_time=False)
        columns = session.ingest(np.zeros(256))
        assert len(columns) == 1
        # Overlap tail kept for the next window
        assert session.pending_samples == 256 - 64

        assert len(session.ingest(np.zeros(63))) == 0
        assert len(session.ingest(np.zeros(1))) == 1

    def test_column_count_formula(self, small_config):
        session = StreamingSpectrogram(small_config, real_time=False)
        columns = session.ingest(mixed_signal())
        assert len(columns) == (8000 - 256) // 64 + 1
        assert len(session) == len(columns)

    def test_columns_in_unit_range(self, small_config):
        session = StreamingSpectrogram(small_config, real_time=False)
        for column in session.ingest(mixed_signal()):
            assert column.shape == (16,)
            assert np.all((column >= 0.0) & (column <= 1.0))

    def test_chunking_does_not_change_output(self, small_config):
        signal = mixed_signal()

        whole = StreamingSpectrogram(small_config, real_time=False)
        expected = np.array(whole.ingest(signal))

        chunked = StreamingSpectrogram(small_config, real_time=False)
        rng = np.random.default_rng(7)
        produced = []
        offset = 0
        while offset < signal.size:
            size = int(rng.integers(0, 300))
            produced.extend(chunked.ingest(signal[offset : offset + size]))
            offset += size

        np.testing.assert_array_equal(np.array(produced), expected)
        np.testing.assert_array_equal(chunked.columns(), whole.columns())

    def test_single_sample_chunks(self, small_config):
        signal = mixed_signal()[:1000]
        whole = StreamingSpectrogram(small_config, real_time=False)
        expected = np.array(whole.ingest(signal))

        session = StreamingSpectrogram(small_config, real_time=False)
        produced = []
        for sample in signal:
            produced.extend(session.ingest([sample]))
        np.testing.assert_array_equal(np.array(produced), expected)

    def test_history_eviction(self, small_config):
        signal = mixed_signal()
        reference = StreamingSpectrogram(small_config, real_time=False)
        all_columns = np.array(reference.ingest(signal))

        small_config.history_capacity = 10
        session = StreamingSpectrogram(small_config, clock=FakeClock())
        session.ingest(signal)

        assert len(session) == 10
        np.testing.assert_array_equal(session.columns(), all_columns[-10:])
        assert session.timing.timestamp_count == 10
        assert session.stats()["evictions"] == len(all_columns) - 10

    def test_pcm16_ingest_matches_float_ingest(self, small_config):
        data = encode_pcm16(mixed_signal())
        expected = StreamingSpectrogram(small_config, real_time=False).ingest(
            decode_pcm16(data)
        )

        session = StreamingSpectrogram(small_config, real_time=False)
        produced = []
        for start, end in ((0, 3), (3, 1001), (1001, 1002), (1002, len(data))):
            produced.extend(session.ingest_pcm16(data[start:end]))

        np.testing.assert_array_equal(np.array(produced), np.array(expected))

    def test_reset(self, small_config):
        session = StreamingSpectrogram(small_config, clock=FakeClock())
        session.ingest(mixed_signal()[:1000])
        session.reset()
        assert len(session) == 0
        assert session.pending_samples == 0
        assert session.windows_processed == 0
        assert session.analyzer.magnitude_history == []
        assert session.timing.timestamp_count == 0

    def test_reset_gives_fresh_results(self, small_config):
        signal = mixed_signal()[:2000]
        session = StreamingSpectrogram(small_config, real_time=False)
        first = np.array(session.ingest(signal))
        session.reset()
        second = np.array(session.ingest(signal))
        np.testing.assert_array_equal(first, second)

    def test_compensated_times_with_clock(self, small_config):
        clock = FakeClock(start=50.0, step=0.001)
        session = StreamingSpectrogram(small_config, clock=clock)
        session.ingest(mixed_signal()[:2000])

        # Each window takes exactly one clock step
        assert session.processing_delay == pytest.approx(0.0012)
        for i in range(len(session)):
            assert session.compensated_time(i) >= 0.0
            assert session.nearest_column_index(session.compensated_time(i)) == i

    def test_times_without_real_time(self, small_config):
        session = StreamingSpectrogram(small_config, real_time=False)
        session.ingest(mixed_signal()[:2000])
        per_column = 64 / 8000
        assert session.timing is None
        assert session.compensated_time(5) == pytest.approx(5 * per_column)
        assert session.nearest_column_index(5 * per_column) == 5
        assert session.nearest_column_index(100.0) == len(session) - 1

    def test_current_amplitude(self, small_config):
        session = StreamingSpectrogram(small_config, real_time=False)
        session.ingest(np.full(256, 0.5))
        assert session.current_amplitude == pytest.approx(0.5)

    def test_sessions_are_independent(self, small_config):
        signal = mixed_signal()[:2000]
        a = StreamingSpectrogram(small_config, real_time=False)
        b = StreamingSpectrogram(small_config, real_time=False)
        a.ingest(np.ones(4000) * 0.9)
        np.testing.assert_array_equal(
            np.array(b.ingest(signal)),
            np.array(StreamingSpectrogram(small_config, real_time=False).ingest(signal)),
        )

    def test_analyzer_band_count_must_match(self, small_config, fake_clock):
        other = SpectrogramConfig.from_dict(small_config.to_dict())
        other.band_count = 8
        with pytest.raises(ConfigError, match="bands"):
            StreamingSpectrogram(small_config, analyzer=SpectralAnalyzer(other), clock=fake_clock)

    def test_analyzer_fft_size_must_match(self, small_config):
        other = SpectrogramConfig.from_dict(small_config.to_dict())
        other.fft_size = 512
        with pytest.raises(ConfigError, match="fft"):
            StreamingSpectrogram(small_config, analyzer=SpectralAnalyzer(other))

    def test_matching_analyzer_keeps_history_and_timestamps_aligned(
        self, small_config, fake_clock
    ):
        analyzer = SpectralAnalyzer(SpectrogramConfig.from_dict(small_config.to_dict()))
        session = StreamingSpectrogram(small_config, analyzer=analyzer, clock=fake_clock)
        session.ingest(mixed_signal()[:2000])

        assert session.analyzer is analyzer
        assert len(session.history) == session.timing.timestamp_count > 0


# ---------------------------------------------------------------------------
# SampleChannel / run_session
# ---------------------------------------------------------------------------


class TestSampleChannel:
    @pytest.mark.asyncio
    async def test_preserves_order(self, small_config):
        signal = mixed_signal()
        expected = np.array(StreamingSpectrogram(small_config, real_time=False).ingest(signal))

        channel = SampleChannel(maxsize=2)
        session = StreamingSpectrogram(small_config, real_time=False)
        received = []

        async def produce():
            for start in range(0, signal.size, 333):
                await channel.put(signal[start : start + 333])
            await channel.close()

        producer = asyncio.create_task(produce())
        produced = await run_session(channel, session, on_columns=received.extend)
        await producer

        assert produced == len(expected)
        np.testing.assert_array_equal(np.array(received), expected)

    @pytest.mark.asyncio
    async def test_accepts_pcm16_bytes(self, small_config):
        data = encode_pcm16(mixed_signal())
        expected = StreamingSpectrogram(small_config, real_time=False).ingest(decode_pcm16(data))

        channel = SampleChannel()
        for start in range(0, len(data), 777):
            channel.put_nowait(data[start : start + 777])
        await channel.close()

        session = StreamingSpectrogram(small_config, real_time=False)
        produced = await run_session(channel, session)
        assert produced == len(expected)
        np.testing.assert_array_equal(session.columns(), np.array(expected))

    @pytest.mark.asyncio
    async def test_put_after_close_rejected(self):
        channel = SampleChannel()
        await channel.close()
        assert channel.closed
        with pytest.raises(ChannelClosed):
            await channel.put(np.zeros(10))
        with pytest.raises(ChannelClosed):
            channel.put_nowait(np.zeros(10))

    @pytest.mark.asyncio
    async def test_put_nowait_full(self):
        channel = SampleChannel(maxsize=1)
        channel.put_nowait(np.zeros(10))
        with pytest.raises(asyncio.QueueFull):
            channel.put_nowait(np.zeros(10))

    @pytest.mark.asyncio
    async def test_callback_error_does_not_stop_session(self, small_config):
        def broken(columns):
            raise RuntimeError("renderer gone")

        channel = SampleChannel()
        await channel.put(np.zeros(1000))
        await channel.put(np.zeros(1000))
        await channel.close()

        session = StreamingSpectrogram(small_config, real_time=False)
        produced = await run_session(channel, session, on_columns=broken)
        assert produced == (2000 - 256) // 64 + 1
