"""
Tests for the spectral analyzer and band aggregation strategies.
"""

import numpy as np
import pytest

from spectrogram_processor.analyzer import (
    MelFilterAggregation,
    SpectralAnalyzer,
    UniformRangeAggregation,
    build_aggregation,
)
from spectrogram_processor.config import SpectrogramConfig
from spectrogram_processor.errors import ConfigError
from spectrogram_processor.mel import mel_band_edges

from .conftest import make_sine


class TestUniformRangeAggregation:
    """Tests for equal-width bin range averaging."""

    def test_balanced_ranges(self):
        agg = UniformRangeAggregation.build(44100, 2048, 128, 8000.0)
        assert agg.band_count == 128
        # 8000Hz / 21.53Hz per bin -> 372 bins, 2.906 bins per band
        assert agg.starts[0] == 0
        assert agg.ends[-1] == 372
        assert (agg.starts[7], agg.ends[7]) == (20, 24)

    def test_ranges_cover_every_bin_below_max(self):
        agg = UniformRangeAggregation.build(44100, 2048, 128, 8000.0)
        covered = np.zeros(372, dtype=bool)
        for start, end in zip(agg.starts, agg.ends):
            covered[start:end] = True
        assert covered.all()

    def test_apply_averages(self):
        agg = UniformRangeAggregation(
            max_freq=0.0, starts=np.array([0, 2]), ends=np.array([2, 5])
        )
        result = agg.apply(np.array([1.0, 3.0, 2.0, 4.0, 6.0]))
        np.testing.assert_allclose(result, [2.0, 4.0])

    def test_empty_range_gives_zero(self):
        agg = UniformRangeAggregation(max_freq=0.0, starts=np.array([1]), ends=np.array([1]))
        np.testing.assert_array_equal(agg.apply(np.ones(4)), [0.0])


class TestBuildAggregation:
    def test_uniform_selected(self):
        assert isinstance(build_aggregation(SpectrogramConfig()), UniformRangeAggregation)

    def test_mel_selected(self):
        agg = build_aggregation(SpectrogramConfig(aggregation="mel", band_count=64))
        assert isinstance(agg, MelFilterAggregation)
        assert agg.matrix.shape == (64, 1025)


class TestSpectralAnalyzer:
    """Tests for per-window analysis and adaptive normalization."""

    def test_column_shape_and_range(self):
        analyzer = SpectralAnalyzer()
        rng = np.random.default_rng(0)
        for _ in range(20):
            column = analyzer.analyze(rng.uniform(-1.0, 1.0, 2048))
            assert column.shape == (128,)
            assert np.all(column >= 0.0)
            assert np.all(column <= 1.0)

    def test_sine_peak_band(self):
        """440Hz lands in band 7 with 128 bands up to 8kHz."""
        analyzer = SpectralAnalyzer()
        column = analyzer.analyze(make_sine(440.0, 2048 / 44100))
        peak = int(np.argmax(column))
        assert abs(peak - 7) <= 1
        assert column[peak] > 0.0

    def test_silence_yields_zero_column(self):
        analyzer = SpectralAnalyzer()
        for _ in range(5):
            column = analyzer.analyze(np.zeros(2048))
            assert not np.any(column)
        assert analyzer.dynamic_range == (0.0, pytest.approx(0.1))
        assert analyzer.failed_windows == 0

    def test_nan_window_yields_blank_column(self):
        analyzer = SpectralAnalyzer()
        window = np.zeros(2048)
        window[10] = np.nan
        column = analyzer.analyze(window)
        assert column.shape == (128,)
        assert not np.any(column)
        assert analyzer.failed_windows == 1

    def test_empty_window_yields_blank_column(self):
        analyzer = SpectralAnalyzer()
        column = analyzer.analyze(np.array([]))
        assert column.shape == (128,)
        assert not np.any(column)
        assert analyzer.failed_windows == 1

    def test_short_window_is_padded(self):
        analyzer = SpectralAnalyzer()
        column = analyzer.analyze(make_sine(440.0, 1000 / 44100))
        assert column.shape == (128,)
        assert analyzer.failed_windows == 0

    def test_long_window_is_truncated(self):
        sine = make_sine(440.0, 4096 / 44100)
        first = SpectralAnalyzer().analyze(sine)
        second = SpectralAnalyzer().analyze(sine[:2048])
        np.testing.assert_array_equal(first, second)

    def test_column_is_read_only(self):
        column = SpectralAnalyzer().analyze(make_sine(440.0, 2048 / 44100))
        with pytest.raises(ValueError):
            column[0] = 0.5

    def test_magnitude_history_bounded(self):
        analyzer = SpectralAnalyzer(SpectrogramConfig(magnitude_history_size=5))
        for _ in range(8):
            analyzer.analyze(make_sine(440.0, 2048 / 44100))
        assert len(analyzer.magnitude_history) == 5

    def test_global_max_is_running_max(self):
        analyzer = SpectralAnalyzer()
        analyzer.analyze(make_sine(440.0, 2048 / 44100, amplitude=0.8))
        loud = analyzer.global_max_magnitude
        analyzer.analyze(make_sine(440.0, 2048 / 44100, amplitude=0.1))
        assert analyzer.global_max_magnitude == loud

    def test_reset_clears_tracking(self):
        analyzer = SpectralAnalyzer()
        analyzer.analyze(make_sine(440.0, 2048 / 44100))
        analyzer.reset()
        assert analyzer.magnitude_history == []
        assert analyzer.global_max_magnitude == 0.0
        assert analyzer.windows_analyzed == 0

    def test_independent_analyzers_do_not_share_state(self):
        loud = SpectralAnalyzer()
        quiet = SpectralAnalyzer()
        loud.analyze(make_sine(440.0, 2048 / 44100, amplitude=0.9))
        assert quiet.magnitude_history == []

    def test_mel_aggregation_peak_near_440(self):
        config = SpectrogramConfig(aggregation="mel", band_count=64)
        analyzer = SpectralAnalyzer(config)
        column = analyzer.analyze(make_sine(440.0, 2048 / 44100))
        _, center, _ = mel_band_edges(64, 0.0, 8000.0)
        assert abs(center[int(np.argmax(column))] - 440.0) < 60.0

    def test_band_count_mismatch_rejected(self):
        agg = UniformRangeAggregation.build(44100, 2048, 64, 8000.0)
        with pytest.raises(ConfigError, match="bands"):
            SpectralAnalyzer(SpectrogramConfig(band_count=128), aggregation=agg)
