"""
Sliding-window ring buffer for analysis frames.

Holds the most recent ``fft_size`` interleaved multi-channel frames in a
pre-allocated numpy array and hands out mono analysis frames once full.
Oldest samples are evicted first, so consecutive frames overlap (sliding,
not tumbling).

Usage:
    window = SlidingWindow(fft_size=4096, channels=2)

    window.push(block)          # interleaved floats
    frame = window.try_frame()  # None until the window is full
    if frame is not None:
        spectrum = transformer.transform(frame)
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass
class WindowStats:
    """Statistics for sliding window operations."""

    pushes: int = 0
    samples_pushed: int = 0
    samples_evicted: int = 0
    frames_emitted: int = 0

    def reset(self):
        """Reset all counters."""
        self.pushes = 0
        self.samples_pushed = 0
        self.samples_evicted = 0
        self.frames_emitted = 0


class SlidingWindow:
    """
    Fixed-capacity FIFO window over interleaved samples.

    Capacity is ``fft_size * channels`` samples. Writes wrap around a
    pre-allocated array so a push costs O(len(block)); reads copy the
    window out in chronological order.

    Attributes:
        fft_size: Mono frame length produced by try_frame()
        channels: Interleaved channel count of pushed blocks
        capacity: Interleaved samples held when full
    """

    def __init__(self, fft_size: int = 4096, channels: int = 1):
        """
        Initialize the window.

        Args:
            fft_size: Frame length in samples per channel
            channels: Number of interleaved channels
        """
        if fft_size <= 0:
            raise ValueError(f"fft_size must be positive, got: {fft_size}")
        if channels <= 0:
            raise ValueError(f"channels must be positive, got: {channels}")

        self.fft_size = fft_size
        self.channels = channels
        self.capacity = fft_size * channels

        self._data = np.zeros(self.capacity, dtype=np.float32)
        self._write_idx = 0  # Next slot to write (also the oldest sample once full)
        self._fill = 0

        self._stats = WindowStats()

    def push(self, block) -> None:
        """
        Append interleaved samples, evicting the oldest once full.

        Args:
            block: Sequence or array of interleaved floats. Length must be
                a multiple of the channel count.
        """
        data = np.asarray(block, dtype=np.float32).ravel()
        n = len(data)
        if n % self.channels:
            raise ValueError(
                f"Block of {n} samples is not aligned to {self.channels} channels"
            )

        self._stats.pushes += 1
        self._stats.samples_pushed += n
        if n == 0:
            return

        # Only the newest `capacity` samples can survive
        if n > self.capacity:
            data = data[-self.capacity :]

        evicted = max(0, self._fill + n - self.capacity)
        self._stats.samples_evicted += evicted

        count = len(data)
        first = min(count, self.capacity - self._write_idx)
        self._data[self._write_idx : self._write_idx + first] = data[:first]
        if first < count:
            self._data[: count - first] = data[first:]

        self._write_idx = (self._write_idx + count) % self.capacity
        self._fill = min(self.capacity, self._fill + n)

    def snapshot(self) -> np.ndarray:
        """Copy of the held interleaved samples, oldest first."""
        if self._fill < self.capacity:
            return self._data[: self._fill].copy()
        return np.concatenate((self._data[self._write_idx :], self._data[: self._write_idx]))

    def try_frame(self) -> Optional[np.ndarray]:
        """
        Downmix the window into a mono analysis frame.

        Returns:
            Array of length fft_size (mean over channels at each time
            index), or None if the window is not full yet.
        """
        if self._fill < self.capacity:
            return None

        ordered = self.snapshot()
        if self.channels == 1:
            frame = ordered
        else:
            frame = ordered.reshape(self.fft_size, self.channels).mean(axis=1, dtype=np.float32)

        self._stats.frames_emitted += 1
        return frame

    def clear(self):
        """Drop all held samples."""
        self._data.fill(0.0)
        self._write_idx = 0
        self._fill = 0

    @property
    def fill(self) -> int:
        """Number of interleaved samples currently held."""
        return self._fill

    @property
    def is_full(self) -> bool:
        """True once a frame can be produced."""
        return self._fill == self.capacity

    @property
    def is_empty(self) -> bool:
        return self._fill == 0

    @property
    def stats(self) -> WindowStats:
        """Get window statistics."""
        return self._stats

    def reset_stats(self):
        """Reset statistics counters."""
        self._stats.reset()
