"""
Optional pre-processing applied to the decoded buffer before playback.

A stage takes a block of interleaved samples plus its own explicit state
and returns a block of the same shape. The known stage set is closed:

- LowPassStage: single-pole IIR low-pass, one state value per channel
- CustomStage: caller-supplied fn(block, state) -> block

Usage:
    state = LowPassFilterState(cutoff_hz=8000.0, sample_rate=44100, channels=2)
    filtered = apply_stages(samples, [LowPassStage(state)])
"""

from dataclasses import dataclass, field
from typing import Any, Callable, List, Sequence, Union

import numpy as np
from scipy.signal import lfilter


@dataclass
class LowPassFilterState:
    """Carried state for the single-pole low-pass filter."""

    cutoff_hz: float
    sample_rate: int
    channels: int = 1
    prev: np.ndarray = field(default=None)  # Last output per channel

    def __post_init__(self):
        if self.sample_rate <= 0:
            raise ValueError(f"Sample rate must be positive, got: {self.sample_rate}")
        if self.channels <= 0:
            raise ValueError(f"Channel count must be positive, got: {self.channels}")
        if not 0 < self.cutoff_hz < self.sample_rate / 2:
            raise ValueError(
                f"Cutoff must be between 0 and Nyquist ({self.sample_rate / 2} Hz), "
                f"got: {self.cutoff_hz}"
            )
        if self.prev is None:
            self.prev = np.zeros(self.channels, dtype=np.float64)

    @property
    def alpha(self) -> float:
        """Smoothing coefficient: dt / (rc + dt)."""
        rc = 1.0 / (2.0 * np.pi * self.cutoff_hz)
        dt = 1.0 / self.sample_rate
        return dt / (rc + dt)

    def reset(self):
        self.prev = np.zeros(self.channels, dtype=np.float64)


def low_pass_filter(block: np.ndarray, state: LowPassFilterState) -> np.ndarray:
    """
    Filter interleaved samples: y[n] = alpha * x[n] + (1 - alpha) * y[n-1].

    Each channel runs its own recursion; the last output of every channel
    is written back to state.prev so consecutive blocks join seamlessly.
    """
    data = np.asarray(block, dtype=np.float64).ravel()
    if len(data) == 0:
        return data.astype(np.float32)
    if len(data) % state.channels:
        raise ValueError(
            f"Block of {len(data)} samples is not aligned to {state.channels} channels"
        )

    frames = data.reshape(-1, state.channels)

    # Transfer function form: b = [alpha], a = [1, -(1-alpha)]
    alpha = state.alpha
    b_coef = np.array([alpha], dtype=np.float64)
    a_coef = np.array([1.0, -(1.0 - alpha)], dtype=np.float64)
    zi = (state.prev * (1.0 - alpha)).reshape(1, state.channels)

    out, _ = lfilter(b_coef, a_coef, frames, axis=0, zi=zi)
    state.prev = out[-1].copy()

    return out.ravel().astype(np.float32)


@dataclass
class LowPassStage:
    state: LowPassFilterState

    def process(self, block: np.ndarray) -> np.ndarray:
        return low_pass_filter(block, self.state)


@dataclass
class CustomStage:
    fn: Callable[[np.ndarray, Any], np.ndarray]
    state: Any = None

    def process(self, block: np.ndarray) -> np.ndarray:
        out = np.asarray(self.fn(block, self.state), dtype=np.float32)
        if out.shape != np.shape(block):
            raise ValueError(f"Custom stage changed block shape {np.shape(block)} -> {out.shape}")
        return out


Stage = Union[LowPassStage, CustomStage]


def apply_stages(samples: Sequence[float], stages: List[Stage]) -> np.ndarray:
    """Run every stage over the whole buffer, in order."""
    out = np.asarray(samples, dtype=np.float32).ravel()
    for stage in stages:
        out = stage.process(out)
    return out
