"""Configuration and command-line argument parsing for the serial-to-SSE relay."""

import argparse
from pathlib import Path

from serial2sse.bridge import DEFAULT_BAUD, DEFAULT_SETTLE_DELAY
from serial2sse.pipeline import DEFAULT_BATCH_SIZE

DEFAULT_HOST = "0.0.0.0"
DEFAULT_HTTP_PORT = 3000


def parse_args(argv=None):
    """Parse command-line arguments and return a validated namespace."""
    parser = argparse.ArgumentParser(
        description="Relay pulse-width samples from a serial device to browsers over Server-Sent Events."
    )
    parser.add_argument(
        "--host",
        default=DEFAULT_HOST,
        help=f"HTTP listen address (default: {DEFAULT_HOST})",
    )
    parser.add_argument(
        "--http-port",
        type=int,
        default=DEFAULT_HTTP_PORT,
        help=f"HTTP listen port (default: {DEFAULT_HTTP_PORT})",
    )
    parser.add_argument(
        "--baud",
        type=int,
        default=DEFAULT_BAUD,
        help=f"Serial baud rate (default: {DEFAULT_BAUD})",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=DEFAULT_BATCH_SIZE,
        help=f"Samples per pushed batch (default: {DEFAULT_BATCH_SIZE})",
    )
    parser.add_argument(
        "--settle-delay",
        type=float,
        default=DEFAULT_SETTLE_DELAY,
        help=f"Seconds to wait after closing a port before opening the next (default: {DEFAULT_SETTLE_DELAY})",
    )
    parser.add_argument(
        "--static-dir",
        type=Path,
        default=None,
        help="Directory of static viewer files (default: bundled viewer)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (connection events, subscribers)",
    )
    args = parser.parse_args(argv)
    _validate(args)
    return args


def _validate(args):
    """Validate parsed arguments; raise ValueError on invalid values."""
    if args.baud <= 0:
        raise ValueError("Baud rate (--baud) must be positive")
    if not (1 <= args.http_port <= 65535):
        raise ValueError("HTTP port (--http-port) must be between 1 and 65535")
    if args.batch_size <= 0:
        raise ValueError("Batch size (--batch-size) must be positive")
    if args.settle_delay < 0:
        raise ValueError("Settle delay (--settle-delay) must not be negative")
    if args.static_dir is not None and not args.static_dir.is_dir():
        raise ValueError(f"Static directory (--static-dir) not found: {args.static_dir}")
