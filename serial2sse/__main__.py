"""Entry point: parse config and serve the relay until interrupted."""

import sys

from serial2sse.config import parse_args
from serial2sse.app import run_server


def main():
    try:
        args = parse_args()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    try:
        run_server(
            host=args.host,
            http_port=args.http_port,
            baud=args.baud,
            batch_size=args.batch_size,
            settle_delay=args.settle_delay,
            static_dir=args.static_dir,
            verbose=args.verbose,
        )
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
