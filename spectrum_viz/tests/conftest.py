"""Shared pytest fixtures for the spectrum visualizer test suite."""

from __future__ import annotations

import io

import numpy as np
import pytest


def make_sine(freq: float, sample_rate: int = 44100, seconds: float = 1.0, amplitude: float = 0.5):
    """Mono sine wave as float32."""
    t = np.arange(int(sample_rate * seconds)) / sample_rate
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)


class RecordingRenderer:
    """Renderer stand-in that keeps every call."""

    def __init__(self, fail_times: int = 0):
        self.calls = []
        self.fail_times = fail_times
        self.attempts = 0
        self.raw = []

    def render(self, smoothed_db, elapsed=None, paused=False, raw_db=None):
        self.attempts += 1
        if self.attempts <= self.fail_times:
            raise OSError("write failed")
        self.calls.append((np.array(smoothed_db, dtype=float), elapsed, paused))
        self.raw.append(None if raw_db is None else np.array(raw_db, dtype=float))


class ScriptedSignals:
    """Signal source returning scripted signals on given poll counts."""

    def __init__(self, script=None):
        self.script = dict(script or {})
        self.polls = 0

    def __call__(self):
        signal = self.script.pop(self.polls, None)
        self.polls += 1
        return signal


@pytest.fixture
def sine():
    return make_sine


@pytest.fixture
def recording_renderer():
    return RecordingRenderer()


@pytest.fixture
def failing_renderer():
    """Factory for renderers whose first N writes fail."""
    return lambda fail_times: RecordingRenderer(fail_times=fail_times)


@pytest.fixture
def scripted_signals():
    """Factory for signal sources: {poll_index: ControlSignal}."""
    return ScriptedSignals


@pytest.fixture
def sleeps():
    """Fake sleep that records requested durations."""
    calls = []

    def _sleep(seconds):
        calls.append(seconds)

    _sleep.calls = calls
    return _sleep


@pytest.fixture
def output():
    return io.StringIO()
