"""
Spectrum Visualizer Configuration - Centralized configuration management.

Provides:
- Analysis presets for different viewing styles
- Type-safe configuration dataclasses
- Loading/saving from JSON/environment
"""

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Optional


class ConfigError(ValueError):
    """Raised when the pipeline cannot start with the given parameters."""


@dataclass
class SpectrumConfig:
    """Spectral analysis configuration."""

    # Transform
    fft_size: int = 4096  # Power of two
    hop_size: Optional[int] = None  # None = fft_size // 2

    # Banding
    num_bands: int = 32
    min_freq: float = 20.0  # Hz
    max_freq: Optional[float] = None  # None = Nyquist

    # Display range (also the smoothing seed)
    min_db: float = -100.0
    max_db: float = 0.0
    epsilon: float = 1e-10

    # Temporal smoothing (0-1, higher = steadier bars)
    smooth_factor: float = 0.8

    # Seconds to sleep per iteration while paused
    pause_poll_interval: float = 0.01

    def resolved_hop_size(self) -> int:
        """Hop size in samples, defaulting to half the transform."""
        if self.hop_size is None:
            return self.fft_size // 2
        return self.hop_size

    def resolved_max_freq(self, sample_rate: int) -> float:
        """Upper analysis bound, never above Nyquist."""
        nyquist = sample_rate / 2.0
        if self.max_freq is None:
            return nyquist
        return min(float(self.max_freq), nyquist)

    def validate(self, sample_rate: int, channels: int = 1) -> None:
        """
        Check every construction-time precondition.

        Raises:
            ConfigError: if the pipeline would produce garbage output
        """
        if not isinstance(sample_rate, int) or sample_rate <= 0:
            raise ConfigError(f"Sample rate must be a positive integer, got: {sample_rate}")
        if not isinstance(channels, int) or channels <= 0:
            raise ConfigError(f"Channel count must be a positive integer, got: {channels}")
        if self.fft_size < 16 or self.fft_size & (self.fft_size - 1):
            raise ConfigError(f"FFT size must be a power of two >= 16, got: {self.fft_size}")

        hop = self.resolved_hop_size()
        if not 0 < hop <= self.fft_size:
            raise ConfigError(f"Hop size must be in (0, {self.fft_size}], got: {hop}")
        if self.num_bands < 1:
            raise ConfigError(f"Band count must be positive, got: {self.num_bands}")
        if self.min_db >= self.max_db:
            raise ConfigError(f"min_db ({self.min_db}) must be below max_db ({self.max_db})")
        if not 0.0 <= self.smooth_factor < 1.0:
            raise ConfigError(f"Smoothing factor must be in [0, 1), got: {self.smooth_factor}")
        if self.epsilon <= 0:
            raise ConfigError(f"Epsilon must be positive, got: {self.epsilon}")
        if self.pause_poll_interval < 0:
            raise ConfigError("Pause poll interval cannot be negative")
        if self.min_freq <= 0:
            raise ConfigError(f"Minimum frequency must be positive, got: {self.min_freq}")

        max_freq = self.resolved_max_freq(sample_rate)
        if self.min_freq >= max_freq:
            raise ConfigError(
                f"Minimum frequency ({self.min_freq} Hz) must be below "
                f"maximum frequency ({max_freq} Hz)"
            )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SpectrumConfig":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


# Pre-tuned presets for different viewing styles
PRESETS: Dict[str, SpectrumConfig] = {
    "default": SpectrumConfig(),
    "smooth": SpectrumConfig(
        smooth_factor=0.92,  # Slow, steady bars
        hop_size=1024,  # More frequent updates to compensate
    ),
    "responsive": SpectrumConfig(
        fft_size=2048,  # 46ms window at 44.1kHz
        smooth_factor=0.5,  # Track transients
        num_bands=24,
    ),
    "detailed": SpectrumConfig(
        fft_size=8192,  # Better bass resolution
        num_bands=48,
        min_db=-120.0,
    ),
}


def get_preset(name: str) -> SpectrumConfig:
    """Get a copy of a preset by name, returns 'default' if not found."""
    preset = PRESETS.get(name.lower(), PRESETS["default"])
    return SpectrumConfig.from_dict(preset.to_dict())


def list_presets() -> List[str]:
    """List available preset names."""
    return list(PRESETS.keys())


@dataclass
class DisplayConfig:
    """Terminal display configuration."""

    bar_width: int = 50  # Characters for a full-scale bar
    color: bool = True
    compact: bool = False  # Single-line spectrograph
    show_header: bool = True  # Elapsed time / state line

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "DisplayConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class PlaybackConfig:
    """Audio output and pre-processing configuration."""

    enabled: bool = True
    device: Optional[str] = None  # sounddevice output device name or index
    lowpass_hz: Optional[float] = None  # None disables the pre-filter

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PlaybackConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class AppConfig:
    """Complete application configuration."""

    spectrum: SpectrumConfig = field(default_factory=SpectrumConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)

    def save(self, path: Path) -> None:
        """Save configuration to JSON file."""
        data = {
            "spectrum": self.spectrum.to_dict(),
            "display": self.display.to_dict(),
            "playback": self.playback.to_dict(),
        }
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def load(cls, path: Path) -> "AppConfig":
        """Load configuration from JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()

        if "spectrum" in data:
            config.spectrum = SpectrumConfig.from_dict(data["spectrum"])

        if "display" in data:
            config.display = DisplayConfig.from_dict(data["display"])

        if "playback" in data:
            config.playback = PlaybackConfig.from_dict(data["playback"])

        return config

    @classmethod
    def from_env(cls, base: Optional["AppConfig"] = None) -> "AppConfig":
        """Apply environment variable overrides on top of a base config."""
        config = base if base is not None else cls()

        if "SPECTRUM_VIZ_FFT_SIZE" in os.environ:
            config.spectrum.fft_size = int(os.environ["SPECTRUM_VIZ_FFT_SIZE"])
        if "SPECTRUM_VIZ_BANDS" in os.environ:
            config.spectrum.num_bands = int(os.environ["SPECTRUM_VIZ_BANDS"])
        if "SPECTRUM_VIZ_SMOOTHING" in os.environ:
            config.spectrum.smooth_factor = float(os.environ["SPECTRUM_VIZ_SMOOTHING"])
        if "SPECTRUM_VIZ_DEVICE" in os.environ:
            config.playback.device = os.environ["SPECTRUM_VIZ_DEVICE"]

        return config


# Default config file location
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "spectrum-viz" / "config.json"


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Load configuration from file or return defaults."""
    if path is None:
        path = DEFAULT_CONFIG_PATH
    return AppConfig.load(path)


def save_config(config: AppConfig, path: Optional[Path] = None) -> None:
    """Save configuration to file."""
    if path is None:
        path = DEFAULT_CONFIG_PATH
    config.save(path)
