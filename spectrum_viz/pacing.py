"""
Real-time pacing loop.

Walks the decoded sample buffer one hop at a time, feeding the sliding
window and rendering each analysis frame, then sleeps hop_size /
sample_rate seconds so the chart keeps step with audio playback.

States:
    RUNNING --pause--> PAUSED --resume--> RUNNING
    RUNNING/PAUSED --quit--> STOPPED (terminal)

Control signals are drained only at the top of each hop, so a frame that
has started rendering always finishes.
"""

import logging
import time
from enum import Enum
from typing import Callable, List, Optional

import numpy as np

from spectrum_viz.config import ConfigError, SpectrumConfig
from spectrum_viz.processor import SpectrumFrame, SpectrumProcessor
from spectrum_viz.ringbuffer import SlidingWindow

logger = logging.getLogger(__name__)


class PlaybackState(Enum):
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


class ControlSignal(Enum):
    PAUSE = "pause"
    RESUME = "resume"
    QUIT = "quit"


_TRANSITIONS = {
    (PlaybackState.RUNNING, ControlSignal.PAUSE): PlaybackState.PAUSED,
    (PlaybackState.PAUSED, ControlSignal.RESUME): PlaybackState.RUNNING,
    (PlaybackState.RUNNING, ControlSignal.QUIT): PlaybackState.STOPPED,
    (PlaybackState.PAUSED, ControlSignal.QUIT): PlaybackState.STOPPED,
}

# Bound on signals drained per hop so a flooding source cannot starve rendering
_MAX_SIGNALS_PER_HOP = 32


class PacingLoop:
    """
    Single-threaded driver for window -> transform -> bands -> smoothing -> render.

    The loop owns the sliding window, the smoothing state (through its
    processor) and the renderer; nothing else may touch them while run()
    is executing.
    """

    def __init__(
        self,
        samples,
        sample_rate: int,
        channels: int,
        config: SpectrumConfig,
        renderer,
        poll_signal: Optional[Callable[[], Optional[ControlSignal]]] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Callable[[float], None] = time.sleep,
        processor: Optional[SpectrumProcessor] = None,
    ):
        """
        Initialize the loop. Refuses to start on invalid input.

        Args:
            samples: Decoded interleaved float samples (read-only snapshot)
            sample_rate: Sample rate in Hz
            channels: Interleaved channel count
            config: Spectrum configuration
            renderer: Object with render(smoothed_db, elapsed=..., paused=..., raw_db=...)
            poll_signal: Returns the next pending control signal or None
            clock: Playback position in seconds for the time readout
                (default: position of the read cursor)
            sleep: Sleep function, replaceable in tests
            processor: Pre-built processor (default: built from config)

        Raises:
            ConfigError: on empty samples, misaligned samples or bad config
        """
        config.validate(sample_rate, channels)

        data = np.array(samples, dtype=np.float32).ravel()
        if data.size == 0:
            raise ConfigError("Sample sequence is empty")
        if data.size % channels:
            raise ConfigError(
                f"Sample count {data.size} is not a multiple of {channels} channels"
            )

        self._samples = data
        self._samples.setflags(write=False)
        self.sample_rate = sample_rate
        self.channels = channels
        self.config = config
        self.hop_size = config.resolved_hop_size()

        self.renderer = renderer
        self.processor = processor or SpectrumProcessor(config, sample_rate)
        self.window = SlidingWindow(config.fft_size, channels)

        self._poll_signal = poll_signal
        self._clock = clock
        self._sleep = sleep

        self._state = PlaybackState.RUNNING
        self._cursor = 0
        self._frames_rendered = 0
        self._last_frame: Optional[SpectrumFrame] = None
        self._pause_drawn = False
        self._state_callbacks: List[Callable[[PlaybackState], None]] = []

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def cursor(self) -> int:
        """Index of the next unread interleaved sample."""
        return self._cursor

    @property
    def frames_rendered(self) -> int:
        return self._frames_rendered

    @property
    def last_frame(self) -> Optional[SpectrumFrame]:
        return self._last_frame

    @property
    def hop_seconds(self) -> float:
        return self.hop_size / self.sample_rate

    @property
    def elapsed(self) -> float:
        """Playback position in seconds for display."""
        if self._clock is not None:
            return self._clock()
        return self._cursor / self.channels / self.sample_rate

    @property
    def finished(self) -> bool:
        return self._cursor >= len(self._samples)

    def add_state_callback(self, callback: Callable[[PlaybackState], None]):
        """Called with the new state on every transition."""
        self._state_callbacks.append(callback)

    def send(self, signal: ControlSignal) -> PlaybackState:
        """
        Apply a control signal. Signals with no transition from the
        current state (e.g. resume while running) are ignored.
        """
        new_state = _TRANSITIONS.get((self._state, signal))
        if new_state is None:
            logger.debug(f"Ignoring {signal.value} while {self._state.value}")
            return self._state
        self._set_state(new_state)
        return new_state

    def _set_state(self, new_state: PlaybackState):
        if new_state == self._state:
            return
        logger.info(f"Pacing loop {self._state.value} -> {new_state.value}")
        self._state = new_state
        if new_state == PlaybackState.PAUSED:
            self._pause_drawn = False
        for callback in self._state_callbacks:
            callback(new_state)

    def _drain_signals(self):
        if self._poll_signal is None:
            return
        for _ in range(_MAX_SIGNALS_PER_HOP):
            signal = self._poll_signal()
            if signal is None:
                return
            self.send(signal)

    def _draw(self, frame: SpectrumFrame, paused: bool = False):
        """Render one frame, retrying a failed write once."""
        try:
            self.renderer.render(
                frame.smoothed_db, elapsed=self.elapsed, paused=paused, raw_db=frame.raw_db
            )
        except OSError as e:
            logger.warning(f"Render failed ({e}), retrying once")
            try:
                self.renderer.render(
                    frame.smoothed_db, elapsed=self.elapsed, paused=paused, raw_db=frame.raw_db
                )
            except OSError:
                logger.error("Render failed twice, stopping")
                self._set_state(PlaybackState.STOPPED)
                raise

    def step(self) -> bool:
        """
        Run one iteration of the loop.

        Returns:
            False once the loop has stopped, True otherwise
        """
        self._drain_signals()

        if self._state == PlaybackState.STOPPED:
            return False

        if self._state == PlaybackState.PAUSED:
            # Redraw the last frame once so the display shows the pause
            if not self._pause_drawn:
                self._pause_drawn = True
                if self._last_frame is not None:
                    self._draw(self._last_frame, paused=True)
            self._sleep(self.config.pause_poll_interval)
            return True

        if self.finished:
            self._set_state(PlaybackState.STOPPED)
            return False

        step = self.hop_size * self.channels
        block = self._samples[self._cursor : self._cursor + step]
        self._cursor += len(block)
        self.window.push(block)

        # A trailing partial hop only fills the window
        if len(block) == step:
            frame = self.window.try_frame()
            if frame is not None:
                result = self.processor.process(frame)
                self._last_frame = result
                self._draw(result)
                self._frames_rendered += 1

        self._sleep(self.hop_seconds)
        return True

    def run(self) -> PlaybackState:
        """Drive the pipeline until the buffer ends or a quit arrives."""
        logger.info(
            f"Pacing loop started: {len(self._samples) // self.channels} frames, "
            f"hop={self.hop_size} ({self.hop_seconds * 1000:.1f}ms)"
        )
        while self.step():
            pass
        logger.info(
            f"Pacing loop finished: {self._frames_rendered} frames rendered, "
            f"cursor={self._cursor}/{len(self._samples)}"
        )
        return self._state
