"""
Spectrum Visualizer
Real-time terminal spectrum analysis synchronized to audio playback.
"""

from .config import ConfigError, SpectrumConfig
from .pacing import ControlSignal, PacingLoop, PlaybackState
from .processor import BandMapper, SpectralTransformer, SpectrumFrame, SpectrumProcessor, TemporalSmoother
from .ringbuffer import SlidingWindow
from .spectrograph import CompactSpectrograph, TerminalSpectrograph

__version__ = "0.1.0"

__all__ = [
    'BandMapper',
    'CompactSpectrograph',
    'ConfigError',
    'ControlSignal',
    'PacingLoop',
    'PlaybackState',
    'SlidingWindow',
    'SpectralTransformer',
    'SpectrumConfig',
    'SpectrumFrame',
    'SpectrumProcessor',
    'TemporalSmoother',
    'TerminalSpectrograph',
]
