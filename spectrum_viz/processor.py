"""
Spectral analysis for the terminal visualizer.

Turns mono analysis frames into per-band decibel levels:
Hann window -> forward FFT -> log-spaced band averages -> dB -> smoothing.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import numpy as np
from scipy.fft import fft

from spectrum_viz.config import SpectrumConfig

logger = logging.getLogger(__name__)


@dataclass
class SpectrumFrame:
    """Analysis result for one hop."""

    timestamp: float

    # Per-band levels in dB before and after temporal smoothing
    raw_db: np.ndarray
    smoothed_db: np.ndarray

    # Normalized magnitude spectrum (fft_size bins)
    spectrum: Optional[np.ndarray] = None


class SpectralTransformer:
    """Hann-windowed forward FFT producing a normalized magnitude spectrum."""

    def __init__(self, fft_size: int = 4096):
        self.fft_size = fft_size
        # Symmetric: 0.5 * (1 - cos(2*pi*i / (fft_size - 1)))
        self._window = np.hanning(fft_size)

    def transform(self, frame: np.ndarray) -> np.ndarray:
        """
        Compute the magnitude spectrum of one frame.

        Args:
            frame: Mono samples, exactly fft_size long

        Returns:
            Array of fft_size magnitudes, each divided by fft_size so levels
            do not depend on the transform size.
        """
        samples = np.asarray(frame, dtype=np.float64)
        if samples.shape != (self.fft_size,):
            raise ValueError(
                f"Frame length {samples.size} does not match fft_size {self.fft_size}"
            )

        # Complex transform of a real signal (imaginary part zero)
        spectrum = fft(samples * self._window)
        return np.abs(spectrum) / self.fft_size

    @property
    def window(self) -> np.ndarray:
        return self._window.copy()


class BandMapper:
    """
    Groups a linear-frequency spectrum into log-spaced bands.

    Band b spans exp(log_min + (log_max - log_min) * b / N) to
    exp(log_min + (log_max - log_min) * (b + 1) / N). Bin indices use floor
    for the low edge and ceil for the high edge, so neighbouring bands can
    share a boundary bin.
    """

    def __init__(
        self,
        sample_rate: int,
        fft_size: int = 4096,
        num_bands: int = 32,
        min_freq: float = 20.0,
        max_freq: Optional[float] = None,
        epsilon: float = 1e-10,
    ):
        """
        Initialize the band layout.

        Args:
            sample_rate: Audio sample rate in Hz
            fft_size: Spectrum length
            num_bands: Number of bands
            min_freq: Lowest band edge in Hz
            max_freq: Highest band edge in Hz (default: Nyquist)
            epsilon: Added to the average before log10
        """
        self.sample_rate = sample_rate
        self.fft_size = fft_size
        self.num_bands = num_bands
        self.min_freq = min_freq
        self.max_freq = sample_rate / 2.0 if max_freq is None else max_freq
        self.epsilon = epsilon

        self._setup_band_bins()

    @classmethod
    def from_config(cls, config: SpectrumConfig, sample_rate: int) -> "BandMapper":
        return cls(
            sample_rate=sample_rate,
            fft_size=config.fft_size,
            num_bands=config.num_bands,
            min_freq=config.min_freq,
            max_freq=config.resolved_max_freq(sample_rate),
            epsilon=config.epsilon,
        )

    def _setup_band_bins(self):
        """Pre-compute band edges and the FFT bins each band averages."""
        log_min = math.log(self.min_freq)
        log_max = math.log(self.max_freq)
        n = self.num_bands

        self._edges = np.array(
            [math.exp(log_min + (log_max - log_min) * b / n) for b in range(n + 1)]
        )

        low_bins = []
        high_bins = []
        for b in range(n):
            low = self._edges[b] / self.sample_rate * self.fft_size
            high = self._edges[b + 1] / self.sample_rate * self.fft_size
            low_bins.append(min(max(math.floor(low), 0), self.fft_size - 1))
            # Exclusive upper bound, so it may equal fft_size
            high_bins.append(min(max(math.ceil(high), 0), self.fft_size))

        self._low_bins = np.array(low_bins, dtype=np.int64)
        self._high_bins = np.array(high_bins, dtype=np.int64)
        self._counts = np.maximum(self._high_bins - self._low_bins, 0)

        empty = int(np.count_nonzero(self._counts == 0))
        if empty:
            logger.debug(f"{empty} band(s) cover no FFT bins at fft_size={self.fft_size}")

    def map(self, spectrum: np.ndarray) -> np.ndarray:
        """
        Reduce a magnitude spectrum to one dB value per band.

        Empty bin ranges average to 0, which yields 20*log10(epsilon).
        """
        mags = np.asarray(spectrum, dtype=np.float64)
        if mags.shape != (self.fft_size,):
            raise ValueError(
                f"Spectrum length {mags.size} does not match fft_size {self.fft_size}"
            )

        # Prefix sums give every band average in one pass
        csum = np.concatenate(([0.0], np.cumsum(mags)))
        high = np.maximum(self._high_bins, self._low_bins)
        sums = csum[high] - csum[self._low_bins]
        avg = np.where(self._counts > 0, sums / np.maximum(self._counts, 1), 0.0)

        return 20.0 * np.log10(avg + self.epsilon)

    @property
    def edges(self) -> np.ndarray:
        """The num_bands + 1 band edges in Hz."""
        return self._edges.copy()

    @property
    def band_ranges(self) -> List[Tuple[float, float]]:
        """(low_hz, high_hz) for each band."""
        return [(float(self._edges[b]), float(self._edges[b + 1])) for b in range(self.num_bands)]

    @property
    def band_bins(self) -> List[Tuple[int, int]]:
        """[low_bin, high_bin) for each band."""
        return [(int(lo), int(hi)) for lo, hi in zip(self._low_bins, self._high_bins)]


class TemporalSmoother:
    """Per-band exponential smoothing seeded from the dB floor."""

    def __init__(self, num_bands: int, min_db: float = -100.0, smooth_factor: float = 0.8):
        """
        Args:
            num_bands: Number of bands
            min_db: Initial value of every band
            smooth_factor: Weight of the previous value (0-1, higher = smoother)
        """
        self.num_bands = num_bands
        self.min_db = min_db
        self.smooth_factor = smooth_factor
        self._state = np.full(num_bands, min_db, dtype=np.float64)

    def smooth(self, band_index: int, new_db: float) -> float:
        """Fold one observation into a band and return its smoothed value."""
        alpha = self.smooth_factor
        value = alpha * self._state[band_index] + (1.0 - alpha) * new_db
        self._state[band_index] = value
        return float(value)

    def smooth_all(self, new_db: np.ndarray) -> np.ndarray:
        """Vectorised smooth() over every band."""
        values = np.asarray(new_db, dtype=np.float64)
        if values.shape != (self.num_bands,):
            raise ValueError(f"Expected {self.num_bands} band values, got {values.size}")

        alpha = self.smooth_factor
        self._state = alpha * self._state + (1.0 - alpha) * values
        return self._state.copy()

    @property
    def values(self) -> np.ndarray:
        return self._state.copy()

    def reset(self):
        self._state = np.full(self.num_bands, self.min_db, dtype=np.float64)


class SpectrumProcessor:
    """
    Runs one analysis frame through transform, banding and smoothing.

    All state (smoothed levels) lives here; the transformer and mapper are
    pure after construction.
    """

    def __init__(self, config: SpectrumConfig, sample_rate: int):
        """
        Initialize the processor.

        Args:
            config: Validated spectrum configuration
            sample_rate: Audio sample rate in Hz
        """
        self.config = config
        self.sample_rate = sample_rate

        self.transformer = SpectralTransformer(config.fft_size)
        self.mapper = BandMapper.from_config(config, sample_rate)
        self.smoother = TemporalSmoother(config.num_bands, config.min_db, config.smooth_factor)

        self._callbacks: List[Callable[[SpectrumFrame], None]] = []

        logger.debug(
            f"SpectrumProcessor: fft_size={config.fft_size}, bands={config.num_bands}, "
            f"range={config.min_freq:.0f}-{self.mapper.max_freq:.0f}Hz"
        )

    def add_callback(self, callback: Callable[[SpectrumFrame], None]):
        """Add a callback to be called for each processed frame."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[SpectrumFrame], None]):
        """Remove a callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def process(self, frame: np.ndarray) -> SpectrumFrame:
        """Analyze one mono frame of fft_size samples."""
        spectrum = self.transformer.transform(frame)
        raw_db = self.mapper.map(spectrum)
        smoothed_db = self.smoother.smooth_all(raw_db)

        result = SpectrumFrame(
            timestamp=time.time(),
            raw_db=raw_db,
            smoothed_db=smoothed_db,
            spectrum=spectrum,
        )

        for callback in self._callbacks:
            try:
                callback(result)
            except Exception as e:
                logger.warning(f"Callback error: {e}")

        return result

    @property
    def band_ranges(self) -> List[Tuple[float, float]]:
        return self.mapper.band_ranges

    def reset(self):
        """Reset smoothing state."""
        self.smoother.reset()
