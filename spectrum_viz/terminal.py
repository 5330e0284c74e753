"""
Raw-mode terminal handling and keyboard controls.

RawTerminal puts stdin into cbreak mode (keys arrive unbuffered, no echo)
and hides the cursor; leaving the context always restores both, whether
the loop finished, the user quit, or an exception escaped.
"""

import logging
import os
import select
import sys
from typing import Callable, Optional, TextIO

from spectrum_viz.pacing import ControlSignal

try:
    import termios
    import tty
except ImportError:  # Windows
    termios = None
    tty = None

logger = logging.getLogger(__name__)

HIDE_CURSOR = "\033[?25l"
SHOW_CURSOR = "\033[?25h"
ESC = "\x1b"


class RawTerminal:
    """Context manager for cbreak mode with guaranteed restore."""

    def __init__(self, stream_in: Optional[TextIO] = None, stream_out: Optional[TextIO] = None):
        self._in = stream_in if stream_in is not None else sys.stdin
        self._out = stream_out if stream_out is not None else sys.stdout
        self._saved = None
        self._active = False

    @property
    def active(self) -> bool:
        """True while raw mode is in effect."""
        return self._active

    def _is_tty(self) -> bool:
        try:
            return termios is not None and self._in.isatty()
        except (AttributeError, ValueError):
            return False

    def __enter__(self) -> "RawTerminal":
        if self._is_tty():
            fd = self._in.fileno()
            self._saved = termios.tcgetattr(fd)
            tty.setcbreak(fd)
            self._active = True
            logger.debug("Terminal switched to cbreak mode")
        self._out.write(HIDE_CURSOR)
        self._out.flush()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.restore()
        return False

    def restore(self):
        """Restore saved terminal attributes and show the cursor."""
        try:
            if self._active and self._saved is not None:
                termios.tcsetattr(self._in.fileno(), termios.TCSADRAIN, self._saved)
                logger.debug("Terminal mode restored")
        finally:
            self._active = False
            self._saved = None
            self._out.write(SHOW_CURSOR)
            self._out.flush()

    def read_key(self, timeout: float = 0.0) -> Optional[str]:
        """Return one pending key, or None if nothing arrives within timeout."""
        if not self._active:
            return None
        fd = self._in.fileno()
        ready, _, _ = select.select([fd], [], [], timeout)
        if ready:
            # Unbuffered, so keys arriving together stay visible to select
            return os.read(fd, 1).decode(errors="ignore")
        return None


class KeyboardControls:
    """
    Maps key presses to control signals.

    p pauses, r resumes, space toggles, q or ESC quits. Ctrl-C still
    raises KeyboardInterrupt because cbreak mode keeps ISIG enabled.
    """

    def __init__(
        self,
        read_key: Callable[[], Optional[str]],
        is_paused: Optional[Callable[[], bool]] = None,
    ):
        """
        Args:
            read_key: Returns one pending key or None
            is_paused: Current pause state for the space toggle
                (default: track the signals emitted here)
        """
        self._read_key = read_key
        self._is_paused = is_paused
        self._paused = False

    def poll(self) -> Optional[ControlSignal]:
        """Next control signal, or None when no mapped key is pending."""
        while True:
            key = self._read_key()
            if key is None or key == "":
                return None
            signal = self._translate(key)
            if signal is not None:
                return signal

    def _translate(self, key: str) -> Optional[ControlSignal]:
        key = key.lower()
        if key in ("q", ESC):
            return ControlSignal.QUIT
        if key == "p":
            self._paused = True
            return ControlSignal.PAUSE
        if key == "r":
            self._paused = False
            return ControlSignal.RESUME
        if key == " ":
            if self._is_paused is not None:
                self._paused = self._is_paused()
            self._paused = not self._paused
            return ControlSignal.PAUSE if self._paused else ControlSignal.RESUME
        return None
