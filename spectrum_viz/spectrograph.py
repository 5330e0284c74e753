"""
Terminal bar-chart display for the spectrum visualizer.
Redraws one line per band in place every frame.
"""

import logging
import os
import shutil
import sys
from typing import List, Optional, Sequence, TextIO, Tuple

logger = logging.getLogger(__name__)


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    # Foreground colors
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"

    # Bright foreground
    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_BLUE = "\033[94m"
    BRIGHT_MAGENTA = "\033[95m"

    # Cursor control
    HIDE_CURSOR = "\033[?25l"
    SHOW_CURSOR = "\033[?25h"
    CLEAR_LINE = "\033[2K"
    MOVE_UP = "\033[{}A"


# Low bands warm, high bands cool
BAND_COLORS = [
    Colors.YELLOW,
    Colors.BRIGHT_YELLOW,
    Colors.BRIGHT_GREEN,
    Colors.BRIGHT_BLUE,
    Colors.BRIGHT_MAGENTA,
]

BAR_CHAR = "█"

# Widest dB readout: silence reads 20*log10(1e-10)
_DB_TEXT_WIDTH = len("-200.0")


def format_time(seconds: float) -> str:
    """Format elapsed seconds as m:ss."""
    seconds = max(0.0, seconds)
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"


class TerminalSpectrograph:
    """Per-band dB bar chart, overwritten in place on every render."""

    def __init__(
        self,
        band_ranges: Sequence[Tuple[float, float]],
        min_db: float = -100.0,
        max_db: float = 0.0,
        bar_width: int = 50,
        color: bool = True,
        show_header: bool = True,
        stream: Optional[TextIO] = None,
    ):
        """
        Args:
            band_ranges: (low_hz, high_hz) per band, fixed for the run
            min_db: Level drawn as an empty bar
            max_db: Level drawn as a full bar
            bar_width: Characters for a full bar (shrunk to fit the terminal)
            color: Use ANSI colors for the bars
            show_header: Draw an elapsed-time / state line above the bars
            stream: Output sink (default: sys.stdout, fitted to the terminal)
        """
        if min_db >= max_db:
            raise ValueError(f"min_db ({min_db}) must be below max_db ({max_db})")

        self.band_ranges = list(band_ranges)
        self.min_db = min_db
        self.max_db = max_db
        self.color = color
        self.show_header = show_header
        self.bar_width = bar_width
        self._stream = stream if stream is not None else sys.stdout

        self._initialized = False
        self._lines_used = 0
        self._frame = 0

        if stream is None:
            self.fit_to_terminal(shutil.get_terminal_size())

        # Enable ANSI on Windows
        if sys.platform == "win32" and stream is None:
            os.system("")

    @property
    def num_bands(self) -> int:
        return len(self.band_ranges)

    @property
    def label_width(self) -> int:
        """Columns taken by the widest "low Hz - high Hz | dB | " prefix."""
        widest = max(
            (len(f"{low:4.0f} Hz - {high:4.0f} Hz | ") for low, high in self.band_ranges),
            default=0,
        )
        return widest + _DB_TEXT_WIDTH + len(" dB | ")

    def fit_to_terminal(self, size: os.terminal_size) -> None:
        """
        Shrink the bar so no line wraps, and drop the header if the chart
        would otherwise be taller than the terminal.
        """
        # Leave the last column free so a full bar never triggers autowrap
        self.bar_width = max(1, min(self.bar_width, size.columns - self.label_width - 1))

        # Every line ends in a newline, so the chart needs rows + 1 lines
        if self.show_header and self.num_bands + 1 >= size.lines:
            self.show_header = False
            logger.info("Header hidden to fit the terminal height")
        if self.num_bands >= size.lines:
            logger.warning(
                f"{self.num_bands} bands need {self.num_bands + 1} terminal rows, "
                f"only {size.lines} available; the chart will scroll"
            )

    def bar_length(self, db: float) -> int:
        """Bar length proportional to db's position in [min_db, max_db]."""
        fraction = (db - self.min_db) / (self.max_db - self.min_db)
        if fraction != fraction:  # NaN
            fraction = 0.0
        fraction = max(0.0, min(1.0, fraction))
        return int(fraction * self.bar_width)

    def format_line(self, band_index: int, db: float, readout_db: Optional[float] = None) -> str:
        """
        One band line without color codes.

        The bar follows db; the text shows readout_db when given.
        """
        low, high = self.band_ranges[band_index]
        shown = db if readout_db is None else readout_db
        bar = BAR_CHAR * self.bar_length(db)
        return f"{low:4.0f} Hz - {high:4.0f} Hz | {shown:>4.1f} dB | {bar}"

    def _colored_line(self, band_index: int, db: float, readout_db: Optional[float] = None) -> str:
        low, high = self.band_ranges[band_index]
        shown = db if readout_db is None else readout_db
        bar = BAR_CHAR * self.bar_length(db)
        color = BAND_COLORS[band_index * len(BAND_COLORS) // max(1, self.num_bands)]
        return f"{low:4.0f} Hz - {high:4.0f} Hz | {shown:>4.1f} dB | {color}{bar}{Colors.RESET}"

    def _header(self, elapsed: Optional[float], paused: bool) -> str:
        state = "PAUSED" if paused else "PLAYING"
        time_str = format_time(elapsed) if elapsed is not None else "-:--"
        if self.color:
            state_color = Colors.YELLOW if paused else Colors.GREEN
            return (
                f"{Colors.CYAN}{Colors.BOLD}Spectrum{Colors.RESET} "
                f"{state_color}[{state}]{Colors.RESET} {time_str} "
                f"{Colors.DIM}(space: pause/resume, q: quit){Colors.RESET}"
            )
        return f"Spectrum [{state}] {time_str} (space: pause/resume, q: quit)"

    def render(
        self,
        smoothed_db: Sequence[float],
        elapsed: Optional[float] = None,
        paused: bool = False,
        raw_db: Optional[Sequence[float]] = None,
    ) -> None:
        """
        Draw the chart, replacing the previous frame.

        Bars are sized from smoothed_db. The dB column shows raw_db (this
        frame's unsmoothed levels) when given, otherwise smoothed_db.

        Raises:
            ValueError: if the number of levels does not match the bands
            OSError: if writing to the output fails
        """
        if len(smoothed_db) != self.num_bands:
            raise ValueError(f"Expected {self.num_bands} band levels, got {len(smoothed_db)}")
        if raw_db is not None and len(raw_db) != self.num_bands:
            raise ValueError(f"Expected {self.num_bands} raw levels, got {len(raw_db)}")

        self._frame += 1
        lines: List[str] = []

        if self.show_header:
            lines.append(self._header(elapsed, paused))

        for i, db in enumerate(smoothed_db):
            readout = float(raw_db[i]) if raw_db is not None else None
            if self.color:
                lines.append(self._colored_line(i, float(db), readout))
            else:
                lines.append(self.format_line(i, float(db), readout))

        out = []
        if self._initialized:
            # Move cursor back to the top of the previous frame
            out.append(Colors.MOVE_UP.format(self._lines_used))
        else:
            out.append(Colors.HIDE_CURSOR)

        for line in lines:
            out.append(f"{Colors.CLEAR_LINE}{line}\n")

        self._stream.write("".join(out))
        self._stream.flush()
        self._lines_used = len(lines)
        self._initialized = True

    def clear(self):
        """Erase the drawn lines and restore the cursor."""
        if self._initialized:
            self._stream.write(Colors.MOVE_UP.format(self._lines_used))
            for _ in range(self._lines_used):
                self._stream.write(f"{Colors.CLEAR_LINE}\n")
            self._stream.write(Colors.MOVE_UP.format(self._lines_used))

        self._stream.write(Colors.SHOW_CURSOR)
        self._stream.flush()
        self._initialized = False
        self._lines_used = 0

    def close(self):
        """Leave the last frame on screen and show the cursor."""
        self._stream.write(Colors.SHOW_CURSOR)
        self._stream.flush()

    @property
    def frames_drawn(self) -> int:
        return self._frame


class CompactSpectrograph:
    """Minimal single-line spectrograph for narrow terminals."""

    LEVELS = " ▁▂▃▄▅▆▇█"

    def __init__(
        self,
        num_bands: int,
        min_db: float = -100.0,
        max_db: float = 0.0,
        stream: Optional[TextIO] = None,
    ):
        if min_db >= max_db:
            raise ValueError(f"min_db ({min_db}) must be below max_db ({max_db})")
        self.num_bands = num_bands
        self.min_db = min_db
        self.max_db = max_db
        self._stream = stream if stream is not None else sys.stdout

    def _level(self, db: float) -> str:
        fraction = (db - self.min_db) / (self.max_db - self.min_db)
        if fraction != fraction:
            fraction = 0.0
        fraction = max(0.0, min(1.0, fraction))
        return self.LEVELS[int(fraction * (len(self.LEVELS) - 1))]

    def render(
        self,
        smoothed_db: Sequence[float],
        elapsed: Optional[float] = None,
        paused: bool = False,
        raw_db: Optional[Sequence[float]] = None,
    ) -> None:
        """Draw all bands on one line. No dB text, so raw_db is unused."""
        if len(smoothed_db) != self.num_bands:
            raise ValueError(f"Expected {self.num_bands} band levels, got {len(smoothed_db)}")

        band_str = "".join(self._level(float(db)) for db in smoothed_db)
        time_str = format_time(elapsed) if elapsed is not None else "-:--"
        state = " PAUSED" if paused else ""
        self._stream.write(f"\r[{band_str}] {time_str}{state}    ")
        self._stream.flush()

    def clear(self):
        self._stream.write("\n")
        self._stream.flush()

    close = clear
