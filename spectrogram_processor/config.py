"""
Spectrogram Configuration - Centralized configuration management.

Provides:
- Quality presets (performance / balanced / high_quality)
- Type-safe configuration dataclasses with validation
- Loading/saving from JSON/environment
"""

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .errors import ConfigError

AGGREGATION_MODES = ("uniform", "mel")
WINDOW_KINDS = ("hamming", "hann")


@dataclass
class TimingConfig:
    """Processing-delay compensation settings for real-time sessions."""

    # Rolling window of per-window processing durations
    timing_history_size: int = 50

    # Safety margin applied to the average processing time
    safety_factor: float = 1.2

    # Upper bound for the delay estimate (seconds)
    max_processing_delay: float = 0.2

    def validate(self) -> None:
        """Raise ConfigError if any value is out of range."""
        if self.timing_history_size <= 0:
            raise ConfigError(
                f"timing_history_size must be positive, got: {self.timing_history_size}"
            )
        if self.safety_factor <= 0:
            raise ConfigError(f"safety_factor must be positive, got: {self.safety_factor}")
        if self.max_processing_delay < 0:
            raise ConfigError(
                f"max_processing_delay must not be negative, got: {self.max_processing_delay}"
            )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TimingConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class SpectrogramConfig:
    """Spectrogram analysis configuration."""

    # Input stream
    sample_rate: int = 44100

    # Windowing
    fft_size: int = 2048
    hop_size: int = 256  # Must be < fft_size (overlap + forward progress)
    window: str = "hamming"

    # Band mapping
    band_count: int = 128
    min_freq: float = 0.0  # Only used by mel aggregation
    max_freq: float = 8000.0
    aggregation: str = "uniform"

    # Output history
    history_capacity: int = 10320

    # Adaptive dynamic range
    magnitude_history_size: int = 300
    floor_scale: float = 0.05
    ceiling_scale: float = 0.85
    min_dynamic_spread: float = 0.1
    gamma: float = 0.6

    # Batch progress reporting (windows between callbacks)
    progress_interval: int = 100

    timing: TimingConfig = field(default_factory=TimingConfig)

    def validate(self) -> "SpectrogramConfig":
        """
        Check the configuration for invalid values.

        Returns:
            self, so construction sites can chain the call

        Raises:
            ConfigError: describing the first invalid value found
        """
        for name in (
            "sample_rate",
            "fft_size",
            "hop_size",
            "band_count",
            "history_capacity",
            "magnitude_history_size",
            "progress_interval",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ConfigError(f"{name} must be a positive integer, got: {value!r}")

        if self.hop_size >= self.fft_size:
            raise ConfigError(
                f"hop_size ({self.hop_size}) must be smaller than fft_size ({self.fft_size})"
            )
        if self.min_freq < 0:
            raise ConfigError(f"min_freq must not be negative, got: {self.min_freq}")
        if self.max_freq <= self.min_freq:
            raise ConfigError(
                f"max_freq ({self.max_freq}) must be greater than min_freq ({self.min_freq})"
            )
        if self.max_freq > self.nyquist:
            raise ConfigError(
                f"max_freq ({self.max_freq}) exceeds Nyquist frequency ({self.nyquist})"
            )
        if self.aggregation not in AGGREGATION_MODES:
            raise ConfigError(
                f"Unknown aggregation {self.aggregation!r}. Supported: {list(AGGREGATION_MODES)}"
            )
        if self.window not in WINDOW_KINDS:
            raise ConfigError(f"Unknown window {self.window!r}. Supported: {list(WINDOW_KINDS)}")
        if self.gamma <= 0:
            raise ConfigError(f"gamma must be positive, got: {self.gamma}")
        if self.floor_scale < 0 or self.ceiling_scale <= 0:
            raise ConfigError(
                f"floor_scale/ceiling_scale out of range: {self.floor_scale}/{self.ceiling_scale}"
            )
        if self.min_dynamic_spread <= 0:
            raise ConfigError(
                f"min_dynamic_spread must be positive, got: {self.min_dynamic_spread}"
            )

        self.timing.validate()
        return self

    # === Calculated properties ===

    @property
    def nyquist(self) -> float:
        return self.sample_rate / 2.0

    @property
    def spectrum_size(self) -> int:
        """Number of bins produced by a real FFT of fft_size samples."""
        return self.fft_size // 2 + 1

    @property
    def time_per_column(self) -> float:
        """Seconds of audio between consecutive columns."""
        return self.hop_size / self.sample_rate

    @property
    def overlap_percentage(self) -> float:
        return (self.fft_size - self.hop_size) / self.fft_size * 100

    @property
    def update_rate_ms(self) -> float:
        return self.hop_size / self.sample_rate * 1000

    @property
    def frequency_resolution(self) -> float:
        return self.sample_rate / self.fft_size

    def summary(self) -> dict:
        """Human-readable summary of the current settings."""
        return {
            "sample_rate": self.sample_rate,
            "fft_size": self.fft_size,
            "hop_size": self.hop_size,
            "band_count": self.band_count,
            "max_freq": self.max_freq,
            "aggregation": self.aggregation,
            "window": self.window,
            "overlap_percentage": f"{self.overlap_percentage:.1f}%",
            "update_rate_ms": f"{self.update_rate_ms:.1f}ms",
            "frequency_resolution": f"{self.frequency_resolution:.1f}Hz",
            "time_per_column": f"{self.time_per_column * 1000:.2f}ms",
        }

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SpectrogramConfig":
        """Create from dictionary, ignoring unknown keys."""
        values = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        if isinstance(values.get("timing"), dict):
            values["timing"] = TimingConfig.from_dict(values["timing"])
        return cls(**values)

    @classmethod
    def from_env(cls) -> "SpectrogramConfig":
        """Build a configuration from a preset plus environment overrides."""
        config = get_preset(os.environ.get("SPECTRO_PRESET", DEFAULT_PRESET))
        if "SPECTRO_SAMPLE_RATE" in os.environ:
            try:
                config.sample_rate = int(os.environ["SPECTRO_SAMPLE_RATE"])
            except ValueError:
                raise ConfigError(
                    f"Invalid SPECTRO_SAMPLE_RATE: {os.environ['SPECTRO_SAMPLE_RATE']!r}"
                )
        if "SPECTRO_AGGREGATION" in os.environ:
            config.aggregation = os.environ["SPECTRO_AGGREGATION"].lower()
        return config


# Quality presets: FFT size / hop size / band count trade-offs
PRESET_DESCRIPTIONS: Dict[str, str] = {
    "performance": "Fast processing with good detail",
    "balanced": "Optimal quality/performance balance",
    "high_quality": "Superior quality for detailed analysis",
}

PRESETS: Dict[str, SpectrogramConfig] = {
    "performance": SpectrogramConfig(fft_size=1536, hop_size=256, band_count=96),
    "balanced": SpectrogramConfig(fft_size=2048, hop_size=256, band_count=128),
    "high_quality": SpectrogramConfig(
        fft_size=2048,
        hop_size=128,  # Better time resolution
        band_count=160,  # More frequency detail
    ),
}

DEFAULT_PRESET = "balanced"


def get_preset(name: str) -> SpectrogramConfig:
    """Get a copy of a preset by name, returns 'balanced' if not found."""
    preset = PRESETS.get(name.lower(), PRESETS[DEFAULT_PRESET])
    return SpectrogramConfig.from_dict(preset.to_dict())


def list_presets() -> List[str]:
    """List available preset names."""
    return list(PRESETS.keys())


# Default config file location
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "spectrogram_processor" / "config.json"


def load_config(path: Optional[Path] = None) -> SpectrogramConfig:
    """Load configuration from file or return defaults."""
    if path is None:
        path = DEFAULT_CONFIG_PATH
    path = Path(path)
    if not path.exists():
        return SpectrogramConfig()

    with open(path) as f:
        data = json.load(f)

    if "preset" in data:
        base = get_preset(data["preset"]).to_dict()
        base.update({k: v for k, v in data.items() if k != "preset"})
        data = base

    return SpectrogramConfig.from_dict(data)


def save_config(config: SpectrogramConfig, path: Optional[Path] = None) -> None:
    """Save configuration to file."""
    if path is None:
        path = DEFAULT_CONFIG_PATH
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(config.to_dict(), f, indent=2)
