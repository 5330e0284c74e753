"""
Spectrum Visualizer CLI - Command-line interface.

Entry point:
    spectrum-viz  - Play an audio file with a live terminal spectrum chart
"""

import argparse
import logging
import sys
from pathlib import Path

# Fix Windows console encoding for unicode characters
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")

logger = logging.getLogger(__name__)


def validate_positive_int(value: str) -> int:
    """Validate positive integer."""
    try:
        num = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid integer: {value}")

    if num <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got: {num}")
    return num


def validate_power_of_two(value: str) -> int:
    """Validate FFT size: a power of two, at least 16."""
    num = validate_positive_int(value)
    if num < 16 or num & (num - 1):
        raise argparse.ArgumentTypeError(f"FFT size must be a power of two >= 16, got: {num}")
    return num


def validate_positive_float(value: str) -> float:
    """Validate positive number (e.g. frequency in Hz)."""
    try:
        num = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number: {value}")

    if not num > 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got: {num}")
    return num


def validate_smoothing(value: str) -> float:
    """Validate smoothing factor in [0, 1)."""
    try:
        num = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number: {value}")

    if not 0.0 <= num < 1.0:
        raise argparse.ArgumentTypeError(f"Smoothing must be in [0, 1), got: {num}")
    return num


def parse_device(value: str):
    """Device index if numeric, otherwise a device name substring."""
    return int(value) if value.isdigit() else value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spectrum-viz",
        description="Spectrum Visualizer - Real-time terminal spectrum analyzer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  spectrum-viz song.mp3                   # Play with a 32-band chart
  spectrum-viz song.flac --bands 48       # More bands
  spectrum-viz song.wav --preset smooth   # Slower, steadier bars
  spectrum-viz song.wav --no-audio        # Visualize only, no playback
  spectrum-viz song.wav --lowpass 8000    # Low-pass the audio first
  spectrum-viz --list-devices             # Show audio output devices

Controls:
  space  pause/resume     p  pause     r  resume     q/ESC  quit
        """,
    )

    parser.add_argument("file", nargs="?", help="Audio file to play (WAV, FLAC, OGG, MP3)")

    # Analysis
    analysis_group = parser.add_argument_group("Analysis")
    analysis_group.add_argument(
        "--preset",
        type=str,
        default=None,
        help="Analysis preset (default, smooth, responsive, detailed)",
    )
    analysis_group.add_argument(
        "--fft-size", type=validate_power_of_two, default=None, help="FFT size (default: 4096)"
    )
    analysis_group.add_argument(
        "--hop-size",
        type=validate_positive_int,
        default=None,
        help="Samples between frames (default: fft-size / 2)",
    )
    analysis_group.add_argument(
        "--bands", "-b", type=validate_positive_int, default=None, help="Number of bands (default: 32)"
    )
    analysis_group.add_argument(
        "--min-db", type=float, default=None, help="Bottom of the dB scale (default: -100)"
    )
    analysis_group.add_argument(
        "--max-db", type=float, default=None, help="Top of the dB scale (default: 0)"
    )
    analysis_group.add_argument(
        "--smoothing",
        "-s",
        type=validate_smoothing,
        default=None,
        help="Temporal smoothing 0-1, higher = steadier (default: 0.8)",
    )
    analysis_group.add_argument(
        "--min-freq", type=validate_positive_float, default=None, help="Lowest band edge in Hz (default: 20)"
    )
    analysis_group.add_argument(
        "--max-freq",
        type=validate_positive_float,
        default=None,
        help="Highest band edge in Hz (default: Nyquist)",
    )
    analysis_group.add_argument(
        "--lowpass",
        type=validate_positive_float,
        default=None,
        metavar="HZ",
        help="Apply a one-pole low-pass filter before playback and analysis",
    )
    analysis_group.add_argument(
        "--list-presets", action="store_true", help="List analysis presets and exit"
    )

    # Display options
    display_group = parser.add_argument_group("Display Options")
    display_group.add_argument(
        "--bar-width", type=validate_positive_int, default=None, help="Full-scale bar width (default: 50)"
    )
    display_group.add_argument(
        "--compact", action="store_true", help="Use compact single-line spectrograph"
    )
    display_group.add_argument("--no-color", action="store_true", help="Disable ANSI colors")
    display_group.add_argument(
        "--no-header", action="store_true", help="Hide the elapsed time / state line"
    )

    # Playback
    playback_group = parser.add_argument_group("Playback")
    playback_group.add_argument(
        "--no-audio", action="store_true", help="Visualize without playing audio"
    )
    playback_group.add_argument(
        "--device", "-d", type=parse_device, default=None, help="Output device index or name"
    )
    playback_group.add_argument(
        "--list-devices", action="store_true", help="List audio output devices and exit"
    )

    # Configuration
    config_group = parser.add_argument_group("Configuration")
    config_group.add_argument(
        "--config", type=str, default=None, metavar="PATH", help="Load settings from a JSON file"
    )
    config_group.add_argument(
        "--save-config",
        type=str,
        default=None,
        metavar="PATH",
        help="Write the effective settings to a JSON file and exit",
    )
    config_group.add_argument(
        "--verbose", "-v", action="store_true", help="Debug logging"
    )
    config_group.add_argument(
        "--log-file", type=str, default=None, help="Write logs to a file instead of stderr"
    )

    return parser


def build_config(args):
    """Merge file, environment, preset and command-line settings."""
    from spectrum_viz.config import AppConfig, get_preset, load_config

    config = load_config(Path(args.config)) if args.config else AppConfig()
    config = AppConfig.from_env(config)

    if args.preset:
        config.spectrum = get_preset(args.preset)

    spectrum = config.spectrum
    if args.fft_size is not None:
        spectrum.fft_size = args.fft_size
        if args.hop_size is None and spectrum.hop_size is not None and spectrum.hop_size > args.fft_size:
            spectrum.hop_size = None
    if args.hop_size is not None:
        spectrum.hop_size = args.hop_size
    if args.bands is not None:
        spectrum.num_bands = args.bands
    if args.min_db is not None:
        spectrum.min_db = args.min_db
    if args.max_db is not None:
        spectrum.max_db = args.max_db
    if args.smoothing is not None:
        spectrum.smooth_factor = args.smoothing
    if args.min_freq is not None:
        spectrum.min_freq = args.min_freq
    if args.max_freq is not None:
        spectrum.max_freq = args.max_freq

    display = config.display
    if args.bar_width is not None:
        display.bar_width = args.bar_width
    if args.compact:
        display.compact = True
    if args.no_color:
        display.color = False
    if args.no_header:
        display.show_header = False

    playback = config.playback
    if args.no_audio:
        playback.enabled = False
    if args.device is not None:
        playback.device = args.device
    if args.lowpass is not None:
        playback.lowpass_hz = args.lowpass

    return config


def main(argv=None):
    """
    Main entry point.

    Decodes the file, starts playback and drives the spectrum chart until
    the file ends or the user quits.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    from spectrum_viz.logging_config import configure_logging

    if args.verbose:
        level = "DEBUG"
    elif args.log_file:
        level = "INFO"
    else:
        level = "WARNING"
    configure_logging(level, args.log_file)

    # Handle list commands first
    if args.list_presets:
        _list_presets()
        return 0

    if args.list_devices:
        _list_devices()
        return 0

    try:
        config = build_config(args)
    except (OSError, ValueError) as e:
        # Unreadable or malformed config file, or a non-numeric env override
        print(f"Error: Invalid settings: {e}", file=sys.stderr)
        return 1

    if args.save_config:
        from spectrum_viz.config import save_config

        save_config(config, Path(args.save_config))
        print(f"Saved settings to {args.save_config}")
        return 0

    if not args.file:
        parser.error("an audio file is required")

    return _run(args.file, config)


def _run(path, config):
    """Load, filter, play and visualize one file."""
    # Import here to avoid slow startup for --help
    from spectrum_viz.config import ConfigError
    from spectrum_viz.filters import LowPassFilterState, LowPassStage, apply_stages
    from spectrum_viz.pacing import PacingLoop, PlaybackState
    from spectrum_viz.playback import AudioPlayer, load_audio
    from spectrum_viz.spectrograph import CompactSpectrograph, TerminalSpectrograph
    from spectrum_viz.terminal import KeyboardControls, RawTerminal

    try:
        audio = load_audio(path)
    except (OSError, ValueError) as e:
        print(f"Error: Could not load {path}: {e}", file=sys.stderr)
        return 1

    try:
        config.spectrum.validate(audio.sample_rate, audio.channels)

        if config.playback.lowpass_hz is not None:
            state = LowPassFilterState(
                cutoff_hz=config.playback.lowpass_hz,
                sample_rate=audio.sample_rate,
                channels=audio.channels,
            )
            audio.samples = apply_stages(audio.samples, [LowPassStage(state)])
            logger.info(f"Low-pass pre-filter applied at {config.playback.lowpass_hz:.0f} Hz")
    except (ValueError, TypeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    spectrum = config.spectrum
    player = AudioPlayer(audio, device=config.playback.device) if config.playback.enabled else None

    with RawTerminal() as terminal:
        controls = KeyboardControls(
            terminal.read_key, is_paused=lambda: loop.state == PlaybackState.PAUSED
        )
        try:
            from spectrum_viz.processor import SpectrumProcessor

            processor = SpectrumProcessor(spectrum, audio.sample_rate)
            if config.display.compact:
                renderer = CompactSpectrograph(spectrum.num_bands, spectrum.min_db, spectrum.max_db)
            else:
                renderer = TerminalSpectrograph(
                    processor.band_ranges,
                    min_db=spectrum.min_db,
                    max_db=spectrum.max_db,
                    bar_width=config.display.bar_width,
                    color=config.display.color,
                    show_header=config.display.show_header,
                )

            loop = PacingLoop(
                audio.samples,
                audio.sample_rate,
                audio.channels,
                spectrum,
                renderer,
                poll_signal=controls.poll,
                clock=(lambda: player.position) if player is not None else None,
                processor=processor,
            )
        except ConfigError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        if player is not None:
            loop.add_state_callback(player.on_state_change)

        try:
            if player is not None:
                player.start()
            loop.run()
        except KeyboardInterrupt:
            return 130
        except OSError as e:
            logger.error(f"Aborting: {e}")
            print(f"\nError: {e}", file=sys.stderr)
            return 1
        finally:
            if player is not None:
                player.stop()
            renderer.close()

    return 0


def _list_presets():
    """List analysis presets."""
    from spectrum_viz.config import PRESETS

    print("\nAnalysis presets:")
    print("-" * 50)
    for name, preset in PRESETS.items():
        print(
            f"  {name:12} fft={preset.fft_size:5d} hop={preset.resolved_hop_size():5d} "
            f"bands={preset.num_bands:3d} smoothing={preset.smooth_factor:.2f}"
        )
    print("-" * 50)


def _list_devices():
    """List available audio output devices."""
    try:
        from spectrum_viz.playback import list_output_devices

        list_output_devices()
    except (ImportError, OSError) as e:
        print(f"Error: sounddevice not available ({e})")
        print("Install with: pip install sounddevice")
        sys.exit(1)


if __name__ == "__main__":
    sys.exit(main())
