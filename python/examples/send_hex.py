#!/usr/bin/env python3
"""Send one hex-encoded request and print the hex-encoded response.

The request must already carry its 2-byte length prefix, e.g. ``0002AB01``.

Usage
-----
``python python/examples/send_hex.py --host 127.0.0.1 --port 9900 0002AB01``
"""

from __future__ import annotations

import argparse
import logging
import sys

from tcp_exchange import TcpClient, decode, encode


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Send a hex request to a TCP peer.")
    parser.add_argument("request", help="Request bytes as hex, length prefix included")
    parser.add_argument("--host", default="127.0.0.1", help="Peer address")
    parser.add_argument("--port", type=int, default=9900, help="Peer port")
    parser.add_argument("--attempts", type=int, default=5, help="Max send attempts")
    parser.add_argument("--timeout", type=int, default=5000, help="Read timeout (ms)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log diagnostics")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    request = decode(args.request)
    if not request:
        print(f"Invalid hex request: {args.request!r}", file=sys.stderr)
        sys.exit(2)

    client = (
        TcpClient.builder((args.host, args.port))
        .max_send_attempts(args.attempts)
        .time_out(args.timeout)
        .build()
    )
    with client:
        response = client.send(request)

    if not response:
        print("No response (transport gave up).", file=sys.stderr)
        sys.exit(1)
    print(encode(response))


if __name__ == "__main__":
    main()
