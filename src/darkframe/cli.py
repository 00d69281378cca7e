"""
Dark-Frame TRNG - command line interface

Commands:
    generate   Capture a batch of dark frames and print the SHA-256 digest,
               or save the raw Von Neumann corrected bitstream (--raw)
    analyze    Statistics and plots for a saved raw bitstream
    monitor    Live cover and temperature indicator

Usage:
    darkframe generate -n 10
    darkframe generate -n 50 --raw --output bits.txt
    darkframe generate -n 3 --images dark1.png dark2.png dark3.png
    darkframe analyze TRNG_TestData_20250101_120000.txt
    darkframe monitor --duration 30
"""

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Optional

from .analysis import (
    bitstream_statistics,
    create_bitmap_plot,
    create_histogram_plot,
    monte_carlo_pi,
)
from .capture import WebcamSource
from .conditioning import bits_from_text, export_filename
from .config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_COVER_THRESHOLD,
    DEFAULT_DARK_THRESHOLD,
    DEFAULT_TEMPERATURE_WARN_C,
    BatchConfiguration,
    OutputMode,
)
from .engine import create_engine
from .errors import DarkFrameError
from .thermal import DEFAULT_SYSFS_PATH, ThermalSensor
from .validation import watch_cover

logger = logging.getLogger(__name__)

HISTOGRAM_OUTPUT = 'validation_histogram.png'
BITMAP_OUTPUT = 'validation_bitmap.png'


def _load_thermal(path: Optional[str], warn_c: float) -> Optional[ThermalSensor]:
    if not path:
        return None
    sensor = ThermalSensor(warn_threshold=warn_c)
    try:
        sensor.read_sysfs(path)
    except (OSError, ValueError) as e:
        logger.warning("Temperature unavailable from %s: %s", path, e)
        return None
    return sensor


def _print_progress(index: int, total: int) -> None:
    percent = index / total * 100
    print(f"   Progress: {percent:.1f}% (image {index} of {total})")


def save_bitstream(text: str, filepath: str) -> None:
    """Save a raw bitstream as plain ASCII, no header or delimiter."""
    with open(filepath, 'w', encoding='ascii') as f:
        f.write(text)
    print(f"Saved bitstream to: {filepath}")


def cmd_generate(args) -> int:
    mode = OutputMode.RAW if args.raw else OutputMode.WHITENED
    config = BatchConfiguration(
        sample_count=args.samples,
        dark_threshold=args.threshold,
        mode=mode,
        temperature_warn_c=args.temp_warn,
    )
    thermal = _load_thermal(args.temperature_path, args.temp_warn)
    if thermal is not None:
        print(thermal.describe())

    print(f"Capturing {args.samples} dark frame(s) ({mode.value} mode)...")
    try:
        with create_engine(device=args.camera, images=args.images, thermal=thermal) as engine:
            result = asyncio.run(engine.generate(config, on_progress=_print_progress))
    except DarkFrameError as e:
        print(f"ERROR: {e}")
        return 1

    if not result.ok:
        print(f"\nERROR: {result.reason}")
        print("Batch failed.")
        return 1

    if result.temperature_warning:
        print("Warning: device temperature was high during capture.")

    print()
    print(result.summary())
    if mode is OutputMode.RAW:
        output = args.output or export_filename()
        save_bitstream(result.bitstream, output)
    else:
        print(result.digest)
        if args.output:
            save_bitstream(result.digest + "\n", args.output)
    return 0


def cmd_analyze(args) -> int:
    path = Path(args.file)
    if not path.exists():
        print(f"[-] Error: File '{path}' not found.")
        return 1
    try:
        bits = bits_from_text(path.read_bytes())
    except ValueError as e:
        print(f"[-] Error: {e}")
        return 1

    print(f"[*] Analyzing file: {path}")
    stats = bitstream_statistics(bits)

    print("\n=== Randomness Validation ===")
    print(f"Bits: {stats['bit_count']:,}")
    print(f"Ones ratio: {stats['ones_ratio']:.4f} (expected: 0.5)")
    print(f"Mean byte value: {stats['byte_mean']:.2f} (expected: 127.5)")
    print(f"Shannon entropy: {stats['shannon_entropy']:.4f} bits/byte (max: 8.0)")
    print(f"Chi-squared: {stats['chi_squared']:.1f} (expected ~255 for uniform)")

    try:
        pi = monte_carlo_pi(bits)
    except ValueError as e:
        print(f"[-] Skipping Monte Carlo Pi: {e}")
    else:
        print(f"Estimated Pi: {pi['estimate']:.5f} "
              f"({pi['points']:,} points, error {pi['error_percent']:.4f}%)")

    if not args.no_plots and stats['bit_count'] > 0:
        create_histogram_plot(bits, args.histogram)
        print(f"Histogram saved to: {args.histogram}")
        create_bitmap_plot(bits, args.bitmap)
        print(f"Bitmap saved to: {args.bitmap}")
    return 0


async def _monitor(source: WebcamSource, thermal: Optional[ThermalSensor],
                   threshold: float, duration: float, temperature_path: Optional[str]) -> None:
    deadline = time.monotonic() + duration
    async for covered in watch_cover(source.luminance_feed(), threshold):
        line = "Camera covered" if covered else "Camera not covered - cover the lens"
        if thermal is not None:
            try:
                thermal.read_sysfs(temperature_path)
            except (OSError, ValueError) as e:
                logger.debug("Temperature read failed: %s", e)
            line += f" | {thermal.describe()}"
        print(f"\r{line:<80}", end="", flush=True)
        if time.monotonic() >= deadline:
            break
    print()


def cmd_monitor(args) -> int:
    thermal = _load_thermal(args.temperature_path, args.temp_warn)
    try:
        with WebcamSource(args.camera) as source:
            asyncio.run(_monitor(source, thermal, args.cover_threshold,
                                 args.duration, args.temperature_path))
    except DarkFrameError as e:
        print(f"ERROR: {e}")
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='darkframe',
        description='True Random Number Generator using covered camera sensor noise',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
ECE Physics Notes:
  With the lens covered, pixel LSBs are dominated by dark current and
  read noise. One bit per pixel is taken as lsb(R) ^ lsb(G) ^ lsb(B),
  debiased with Von Neumann correction, and whitened with SHA-256.
        """
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    sub = parser.add_subparsers(dest='command', required=True)

    gen = sub.add_parser('generate', help='Capture a batch and produce random output')
    gen.add_argument('-n', '--samples', type=int, default=DEFAULT_BATCH_SIZE,
                     help=f'Number of frames in the batch (default: {DEFAULT_BATCH_SIZE})')
    gen.add_argument('-t', '--threshold', type=float, default=DEFAULT_DARK_THRESHOLD,
                     help=f'Darkness threshold, mean luminance 0-255 (default: {DEFAULT_DARK_THRESHOLD})')
    gen.add_argument('--raw', action='store_true',
                     help='Save the corrected bitstream for external testing instead of hashing it')
    gen.add_argument('-o', '--output', type=str, default=None,
                     help='Output file (default for --raw: TRNG_TestData_<timestamp>.txt)')
    gen.add_argument('-c', '--camera', type=int, default=0,
                     help='OpenCV camera index (default: 0)')
    gen.add_argument('--images', nargs='+', default=None, metavar='IMAGE',
                     help='Replay captured image files instead of using the camera')
    gen.add_argument('--temperature-path', type=str, default=None,
                     help=f'Thermal zone file to read, e.g. {DEFAULT_SYSFS_PATH}')
    gen.add_argument('--temp-warn', type=float, default=DEFAULT_TEMPERATURE_WARN_C,
                     help=f'Temperature warning threshold in C (default: {DEFAULT_TEMPERATURE_WARN_C})')
    gen.set_defaults(func=cmd_generate)

    ana = sub.add_parser('analyze', help='Analyze a raw bitstream file')
    ana.add_argument('file', help='Path to a raw export (0/1 text)')
    ana.add_argument('--histogram', type=str, default=HISTOGRAM_OUTPUT,
                     help=f'Histogram output path (default: {HISTOGRAM_OUTPUT})')
    ana.add_argument('--bitmap', type=str, default=BITMAP_OUTPUT,
                     help=f'Bitmap output path (default: {BITMAP_OUTPUT})')
    ana.add_argument('--no-plots', action='store_true', help='Skip the plots')
    ana.set_defaults(func=cmd_analyze)

    mon = sub.add_parser('monitor', help='Show live cover and temperature status')
    mon.add_argument('-c', '--camera', type=int, default=0,
                     help='OpenCV camera index (default: 0)')
    mon.add_argument('--cover-threshold', type=float, default=DEFAULT_COVER_THRESHOLD,
                     help=f'Cover threshold, mean Y 0-255 (default: {DEFAULT_COVER_THRESHOLD})')
    mon.add_argument('--duration', type=float, default=10.0,
                     help='Seconds to monitor (default: 10)')
    mon.add_argument('--temperature-path', type=str, default=None,
                     help=f'Thermal zone file to read, e.g. {DEFAULT_SYSFS_PATH}')
    mon.add_argument('--temp-warn', type=float, default=DEFAULT_TEMPERATURE_WARN_C,
                     help=f'Temperature warning threshold in C (default: {DEFAULT_TEMPERATURE_WARN_C})')
    mon.set_defaults(func=cmd_monitor)

    return parser


def main(argv=None) -> int:
    """
    Main entry point for the dark-frame TRNG.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    print("=" * 60)
    print("Dark-Frame True Random Number Generator")
    print("Using Covered-Sensor Dark Current Noise")
    print("=" * 60)

    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
