#!/usr/bin/env python3
"""Length-prefixed echo peer for trying out ``TcpClient`` locally.

Every request read from a connection is answered with a frame whose body
is the request body: a 2-byte big-endian length followed by the bytes.

Usage
-----
1. Start the peer:      ``python python/examples/mock_peer.py --port 9900``
2. Send a request:      ``python python/examples/send_hex.py --port 9900 0002AB01``
"""

from __future__ import annotations

import argparse
import socketserver
import struct


class EchoHandler(socketserver.BaseRequestHandler):
    """Answer each framed request with the same body, re-framed."""

    def handle(self) -> None:
        while True:
            header = self._recv_exact(2)
            if len(header) < 2:
                return
            (length,) = struct.unpack(">H", header)
            body = self._recv_exact(length)
            if len(body) < length:
                return
            print(f"  {self.client_address[0]}:{self.client_address[1]} -> {body.hex().upper()}")
            self.request.sendall(struct.pack(">H", len(body)) + body)

    def _recv_exact(self, n: int) -> bytes:
        data = bytearray()
        while len(data) < n:
            chunk = self.request.recv(n - len(data))
            if not chunk:
                break
            data.extend(chunk)
        return bytes(data)


class EchoServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Run a length-prefixed echo peer.")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    parser.add_argument("--port", type=int, default=9900, help="Bind port")
    args = parser.parse_args()

    with EchoServer((args.host, args.port), EchoHandler) as server:
        print(f"Echo peer listening on {args.host}:{args.port}")
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            print("Stopped.")


if __name__ == "__main__":
    main()
