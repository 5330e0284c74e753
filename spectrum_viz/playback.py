"""
Audio decoding and playback collaborators.

Decoding produces a fully materialized, interleaved float32 buffer that is
handed to the pacing loop as a read-only snapshot. Playback runs on the
sounddevice callback thread; it only shares its position counter with the
display, never the analysis state.
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np
import soundfile as sf

from spectrum_viz.pacing import PlaybackState

logger = logging.getLogger(__name__)


@dataclass
class DecodedAudio:
    """Interleaved float samples in [-1, 1] plus their format."""

    samples: np.ndarray
    sample_rate: int
    channels: int

    @property
    def frames(self) -> int:
        """Samples per channel."""
        return len(self.samples) // self.channels

    @property
    def duration(self) -> float:
        """Length in seconds."""
        return self.frames / self.sample_rate

    def as_frames(self) -> np.ndarray:
        """View shaped (frames, channels)."""
        return self.samples.reshape(-1, self.channels)


def load_audio(path: Union[str, Path]) -> DecodedAudio:
    """
    Decode an audio file (WAV, FLAC, OGG, MP3, ...) into interleaved float samples.

    Raises:
        FileNotFoundError: if the file does not exist
        ValueError: if the file is empty or cannot be decoded
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"No such file: {path}")

    try:
        data, sample_rate = sf.read(str(path), dtype="float32", always_2d=True)
    except RuntimeError as e:
        # soundfile's LibsndfileError derives from RuntimeError
        raise ValueError(f"Cannot decode {path.name}: {e}") from e

    frames, channels = data.shape
    if frames == 0 or channels == 0:
        raise ValueError(f"No audio samples in {path}")

    samples = np.ascontiguousarray(data).ravel()
    audio = DecodedAudio(samples=samples, sample_rate=int(sample_rate), channels=int(channels))
    logger.info(
        f"Loaded {path.name}: {audio.sample_rate} Hz, {audio.channels} channel(s), "
        f"{audio.duration:.1f}s"
    )
    return audio


class AudioPlayer:
    """
    Plays a decoded buffer through a sounddevice output stream.

    The stream keeps running while paused and writes silence, so the
    position freezes and resuming continues from the same frame.

    Example:
        with AudioPlayer(audio) as player:
            player.start()
            ...
            print(player.position)
    """

    def __init__(self, audio: DecodedAudio, device: Optional[Union[int, str]] = None):
        self.audio = audio
        self.device = device
        self._frames = audio.as_frames()
        self._pos = 0  # Next frame to play
        self._paused = False
        self._lock = threading.Lock()
        self._stream = None
        self._finished = threading.Event()

    def _callback(self, outdata, frames, time_info, status):
        if status:
            logger.debug(f"Audio status: {status}")

        with self._lock:
            if self._paused:
                outdata.fill(0)
                return

            start = self._pos
            chunk = self._frames[start : start + frames]
            n = len(chunk)
            outdata[:n] = chunk
            if n < frames:
                outdata[n:] = 0
                self._finished.set()
            self._pos = start + n

    def start(self) -> None:
        """Open the output stream and begin playback."""
        import sounddevice as sd

        if self._stream is not None:
            return

        self._stream = sd.OutputStream(
            device=self.device,
            channels=self.audio.channels,
            samplerate=self.audio.sample_rate,
            dtype=np.float32,
            callback=self._callback,
        )
        self._stream.start()
        logger.info(f"Playback started (device: {self.device})")

    def pause(self) -> None:
        with self._lock:
            self._paused = True

    def resume(self) -> None:
        with self._lock:
            self._paused = False

    def stop(self) -> None:
        """Stop and close the output stream."""
        if self._stream is None:
            return
        try:
            self._stream.stop()
            self._stream.close()
        finally:
            self._stream = None
            logger.info("Playback stopped")

    def on_state_change(self, state: PlaybackState) -> None:
        """Follow the pacing loop's state machine."""
        if state == PlaybackState.PAUSED:
            self.pause()
        elif state == PlaybackState.RUNNING:
            self.resume()
        elif state == PlaybackState.STOPPED:
            self.stop()

    @property
    def position(self) -> float:
        """Elapsed playback in seconds."""
        with self._lock:
            return self._pos / self.audio.sample_rate

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    def __enter__(self) -> "AudioPlayer":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False


def list_output_devices():
    """Print available audio output devices."""
    import sounddevice as sd

    print("\n" + "=" * 60)
    print("AUDIO OUTPUT DEVICES")
    print("=" * 60)

    default_out = sd.default.device[1]
    for i, dev in enumerate(sd.query_devices()):
        if dev["max_output_channels"] <= 0:
            continue
        marker = " (default)" if i == default_out else ""
        print(
            f"  {i}: {dev['name'][:45]} "
            f"[{dev['max_output_channels']} ch, {int(dev['default_samplerate'])} Hz]{marker}"
        )

    print("=" * 60 + "\n")
