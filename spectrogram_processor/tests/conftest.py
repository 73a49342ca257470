"""Shared fixtures for spectrogram processor tests."""

import numpy as np
import pytest

from spectrogram_processor.config import SpectrogramConfig


def make_sine(freq: float, seconds: float, sample_rate: int = 44100, amplitude: float = 0.5):
    t = np.arange(int(round(sample_rate * seconds))) / sample_rate
    return amplitude * np.sin(2 * np.pi * freq * t)


class FakeClock:
    """Deterministic clock advancing a fixed step per call."""

    def __init__(self, start: float = 100.0, step: float = 0.001):
        self.now = start
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


@pytest.fixture
def balanced_config():
    return SpectrogramConfig()


@pytest.fixture
def small_config():
    """Small windows so tests produce many columns from little audio."""
    return SpectrogramConfig(
        sample_rate=8000,
        fft_size=256,
        hop_size=64,
        band_count=16,
        max_freq=4000.0,
        history_capacity=1000,
    )


@pytest.fixture
def sine_440():
    return make_sine(440.0, 1.0)


@pytest.fixture
def fake_clock():
    return FakeClock()
