"""
Spectrogram Processor CLI - generate a spectrogram from a WAV file.

Entry point:
    spectrogram-processor   - Batch analysis of a 16-bit PCM WAV file
"""

import argparse
import logging
import sys
from pathlib import Path

from .config import (
    AGGREGATION_MODES,
    DEFAULT_PRESET,
    PRESET_DESCRIPTIONS,
    WINDOW_KINDS,
    get_preset,
    list_presets,
)
from .errors import SpectrogramError
from .logging_config import configure_logging

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


def validate_frequency(value: str) -> float:
    """Validate a positive frequency in Hz."""
    try:
        freq = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid frequency: {value}")

    if freq <= 0:
        raise argparse.ArgumentTypeError(f"Frequency must be positive, got: {freq}")
    return freq


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spectrogram-processor",
        description="Spectrogram Processor - Band spectrogram analysis of WAV recordings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  spectrogram-processor take1.wav                       # Balanced preset
  spectrogram-processor take1.wav --preset high_quality
  spectrogram-processor take1.wav --aggregation mel --bands 64
  spectrogram-processor take1.wav --csv take1_spectrogram.csv
  spectrogram-processor --list-presets
        """,
    )

    parser.add_argument("input", nargs="?", type=Path, help="16-bit PCM WAV file")
    parser.add_argument(
        "--list-presets", action="store_true", help="List quality presets and exit"
    )

    analysis_group = parser.add_argument_group("Analysis")
    analysis_group.add_argument(
        "--preset",
        "-p",
        choices=list_presets(),
        default=DEFAULT_PRESET,
        help=f"Quality preset (default: {DEFAULT_PRESET})",
    )
    analysis_group.add_argument(
        "--aggregation",
        "-a",
        choices=AGGREGATION_MODES,
        default=None,
        help="Band aggregation (default: preset value)",
    )
    analysis_group.add_argument(
        "--window", "-w", choices=WINDOW_KINDS, default=None, help="Window function"
    )
    analysis_group.add_argument(
        "--bands",
        "-b",
        type=validate_positive_int,
        default=None,
        help="Number of frequency bands (default: preset value)",
    )
    analysis_group.add_argument(
        "--max-freq",
        type=validate_frequency,
        default=None,
        help="Highest analyzed frequency in Hz (default: 8000)",
    )

    output_group = parser.add_argument_group("Output")
    output_group.add_argument(
        "--csv", type=Path, metavar="PATH", help="Export columns as CSV to PATH"
    )
    output_group.add_argument(
        "--verbose", "-v", action="store_true", help="Debug logging (progress every 100 windows)"
    )
    output_group.add_argument(
        "--quiet", "-q", action="store_true", help="Minimal output (errors only)"
    )
    return parser


def main(argv=None) -> int:
    """
    Main entry point.

    Returns:
        Process exit code (0 on success)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list_presets:
        _list_presets()
        return 0

    if args.input is None:
        parser.error("input WAV file is required")

    configure_logging("DEBUG" if args.verbose else "WARNING" if args.quiet else "INFO")

    config = get_preset(args.preset)
    if args.aggregation is not None:
        config.aggregation = args.aggregation
    if args.window is not None:
        config.window = args.window
    if args.bands is not None:
        config.band_count = args.bands
    if args.max_freq is not None:
        config.max_freq = args.max_freq

    # Import here to avoid slow startup for --help
    from .batch import generate_spectrogram
    from .export import export_csv

    def on_progress(percent: float, columns: int):
        logger.info(f"Progress: {percent:.1f}% ({columns} columns)")

    try:
        result = generate_spectrogram(path=args.input, config=config, on_progress=on_progress)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except SpectrogramError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.csv is not None:
        export_csv(args.csv, result.columns, result.hop_size / result.sample_rate)

    if not args.quiet:
        _print_summary(args, result)
    return 0


def _print_summary(args, result):
    print(f"\nSpectrogram of {args.input}")
    print("-" * 50)
    print(f"  Duration:     {result.duration:.2f}s ({result.sample_count} samples)")
    print(f"  Sample rate:  {result.sample_rate} Hz")
    print(f"  Columns:      {result.column_count}")
    print(f"  Bands:        {result.band_count}")
    if result.column_count:
        print(f"  Peak value:   {float(result.columns.max()):.3f}")
        print(f"  Mean value:   {float(result.columns.mean()):.3f}")
    if args.csv is not None:
        print(f"  CSV:          {args.csv}")
    print("-" * 50)


def _list_presets():
    print("\nQuality presets:")
    print("-" * 60)
    for name in list_presets():
        preset = get_preset(name)
        marker = " (default)" if name == DEFAULT_PRESET else ""
        print(f"  {name}{marker}: {PRESET_DESCRIPTIONS[name]}")
        print(
            f"    fft={preset.fft_size}, hop={preset.hop_size}, bands={preset.band_count}, "
            f"overlap={preset.overlap_percentage:.1f}%, update={preset.update_rate_ms:.1f}ms"
        )
    print("-" * 60)


if __name__ == "__main__":
    sys.exit(main())
