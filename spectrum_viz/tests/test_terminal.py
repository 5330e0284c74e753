"""
Tests for keyboard controls and terminal restore.
"""

import io
import os

import numpy as np
import pytest

from spectrum_viz.config import SpectrumConfig
from spectrum_viz.pacing import ControlSignal, PacingLoop, PlaybackState
from spectrum_viz.terminal import ESC, HIDE_CURSOR, SHOW_CURSOR, KeyboardControls, RawTerminal

try:
    import termios
except ImportError:  # Windows
    termios = None


def key_source(keys):
    pending = list(keys)
    return lambda: pending.pop(0) if pending else None


class TestKeyboardControls:
    """Tests for key to signal mapping."""

    @pytest.mark.parametrize(
        "key,signal",
        [
            ("q", ControlSignal.QUIT),
            ("Q", ControlSignal.QUIT),
            (ESC, ControlSignal.QUIT),
            ("p", ControlSignal.PAUSE),
            ("r", ControlSignal.RESUME),
        ],
    )
    def test_mapping(self, key, signal):
        assert KeyboardControls(key_source([key])).poll() == signal

    def test_no_key(self):
        assert KeyboardControls(key_source([])).poll() is None

    def test_unmapped_keys_skipped(self):
        controls = KeyboardControls(key_source(["x", "1", "p"]))
        assert controls.poll() == ControlSignal.PAUSE
        assert controls.poll() is None

    def test_space_toggles(self):
        controls = KeyboardControls(key_source([" ", " ", " "]))
        assert controls.poll() == ControlSignal.PAUSE
        assert controls.poll() == ControlSignal.RESUME
        assert controls.poll() == ControlSignal.PAUSE

    def test_space_uses_loop_state(self):
        """The toggle follows the loop state, not just this object's history."""
        paused = {"value": True}
        controls = KeyboardControls(key_source([" "]), is_paused=lambda: paused["value"])
        assert controls.poll() == ControlSignal.RESUME


class TestRawTerminal:
    def test_non_tty_only_toggles_cursor(self):
        out = io.StringIO()
        with RawTerminal(stream_in=io.StringIO(), stream_out=out) as terminal:
            assert not terminal.active
            assert terminal.read_key() is None
        assert out.getvalue() == HIDE_CURSOR + SHOW_CURSOR

    def test_restores_on_exception(self):
        out = io.StringIO()
        with pytest.raises(RuntimeError):
            with RawTerminal(stream_in=io.StringIO(), stream_out=out):
                raise RuntimeError("boom")
        assert out.getvalue().endswith(SHOW_CURSOR)

    def test_restores_on_keyboard_interrupt(self):
        out = io.StringIO()
        with pytest.raises(KeyboardInterrupt):
            with RawTerminal(stream_in=io.StringIO(), stream_out=out):
                raise KeyboardInterrupt
        assert out.getvalue().endswith(SHOW_CURSOR)


needs_pty = pytest.mark.skipif(
    termios is None or not hasattr(os, "openpty"), reason="needs a POSIX pseudo-terminal"
)


@pytest.fixture
def pty_pair():
    """(master fd, slave stream) of a fresh pseudo-terminal."""
    master, slave = os.openpty()
    stream = os.fdopen(slave, "r")
    yield master, stream
    stream.close()
    os.close(master)


def in_cbreak(stream) -> bool:
    lflag = termios.tcgetattr(stream.fileno())[3]
    return not lflag & termios.ICANON and not lflag & termios.ECHO


@needs_pty
class TestRawTerminalOnPty:
    """Raw mode on a real terminal device, and its restore on every exit path."""

    def test_cbreak_inside_and_restored_after(self, pty_pair):
        _, stream = pty_pair
        saved = termios.tcgetattr(stream.fileno())

        with RawTerminal(stream_in=stream, stream_out=io.StringIO()) as terminal:
            assert terminal.active
            assert in_cbreak(stream)

        assert not terminal.active
        assert termios.tcgetattr(stream.fileno()) == saved

    def test_restored_after_exception(self, pty_pair):
        _, stream = pty_pair
        saved = termios.tcgetattr(stream.fileno())

        with pytest.raises(RuntimeError):
            with RawTerminal(stream_in=stream, stream_out=io.StringIO()):
                assert in_cbreak(stream)
                raise RuntimeError("boom")

        assert termios.tcgetattr(stream.fileno()) == saved

    def test_restored_after_quit_key(self, pty_pair, recording_renderer, sleeps):
        """Pressing q mid-run stops the loop and leaves the terminal as found."""
        master, stream = pty_pair
        saved = termios.tcgetattr(stream.fileno())
        config = SpectrumConfig(fft_size=256, num_bands=8)

        with RawTerminal(stream_in=stream, stream_out=io.StringIO()) as terminal:
            os.write(master, b"q")
            controls = KeyboardControls(lambda: terminal.read_key(0.5))
            loop = PacingLoop(
                np.zeros(8000), 8000, 1, config, recording_renderer,
                poll_signal=controls.poll, sleep=sleeps,
            )
            assert loop.run() == PlaybackState.STOPPED
            assert loop.cursor == 0

        assert termios.tcgetattr(stream.fileno()) == saved

    def test_keys_arriving_together_are_all_read(self, pty_pair):
        master, stream = pty_pair

        with RawTerminal(stream_in=stream, stream_out=io.StringIO()) as terminal:
            os.write(master, b"p ")
            first = terminal.read_key(0.5)
            second = terminal.read_key(0.5)
            third = terminal.read_key(0.0)

        assert (first, second, third) == ("p", " ", None)

    def test_quick_pause_then_quit(self, pty_pair):
        master, stream = pty_pair

        with RawTerminal(stream_in=stream, stream_out=io.StringIO()) as terminal:
            os.write(master, b"pq")
            controls = KeyboardControls(lambda: terminal.read_key(0.5))
            assert controls.poll() == ControlSignal.PAUSE
            assert controls.poll() == ControlSignal.QUIT


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
