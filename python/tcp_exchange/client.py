"""Request/response exchange over a persistent TCP connection.

Handles the wire rule for responses: a 2-byte big-endian unsigned length
followed by that many body bytes. Requests are written as given; the caller
is expected to have framed them the same way.

Transport failures never escape :meth:`TcpClient.send`. The only failure
signal is an empty response.
"""

from __future__ import annotations

import io
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from tcp_exchange import hexbin
from tcp_exchange.config import ClientConfig, PeerAddress
from tcp_exchange.connection import AttemptCounter, ConnectionHolder, ConnectionState
from tcp_exchange.reconnect import Reconnector

logger = logging.getLogger(__name__)

HEADER_SIZE = 2
RESPONSE_BUFFER_SIZE = 1024
MAX_READ_ITERATIONS = 5


class ProtocolError(ConnectionError):
    """Raised when the peer closes the connection before a complete frame."""


def frame_size(header: bytes | bytearray) -> int:
    """Body length announced by a 2-byte big-endian header."""
    return (header[0] << 8) | header[1]


def _as_text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


class TcpClient:
    """Synchronous request/response client for one peer.

    Each calling thread gets its own connection, opened on first use (the
    constructing thread's is opened immediately). Failed opens schedule a
    delayed reconnect in the background; failed exchanges are retried up to
    ``config.max_send_attempts`` times.

    Parameters
    ----------
    address : tuple[str, int]
        Peer ``(host, port)``.
    config : ClientConfig | None
        Retry and timeout settings. Defaults to ``ClientConfig()``.
    """

    def __init__(
        self,
        address: tuple[str, int],
        config: ClientConfig | None = None,
    ) -> None:
        self.address = PeerAddress(*address)
        self.config = config or ClientConfig()
        self.send_attempts = AttemptCounter(1)
        self._shutdown = threading.Event()
        self._executor = ThreadPoolExecutor(thread_name_prefix="tcp-exchange")
        self._holder = ConnectionHolder(
            self.address, self.config, on_open_failure=self._schedule_reconnect
        )
        self._reconnector = Reconnector(
            self._holder, self._executor, self.config.reconnect_interval, self._shutdown
        )
        self._holder.open()

    @staticmethod
    def builder(address: tuple[str, int]) -> Builder:
        return Builder(address)

    @property
    def host(self) -> str:
        return self.address.host

    @property
    def port(self) -> int:
        return self.address.port

    @property
    def connect_attempts(self) -> AttemptCounter:
        return self._holder.connect_attempts

    def send(self, request: bytes) -> bytes:
        """Send ``request`` and return the framed response.

        Returns ``b""`` when the request is empty, the connection cannot be
        established or every attempt failed.
        """
        if not request:
            logger.warning("Empty request to %s not sent", self.address)
            return b""
        request = bytes(request)
        state = self._holder.state

        while True:
            if not self._holder.check_socket(state):
                self.send_attempts.set(1)
                return b""
            try:
                answer = self._exchange(state, request)
            except OSError as exc:
                self._holder.close(state)
                if self.send_attempts.get() < self.config.max_send_attempts:
                    logger.warning(
                        "ATTEMPT: %d (%s). Error sending request to/processing response from: [%s]",
                        self.send_attempts.get_and_increment(),
                        self.address,
                        exc,
                    )
                    continue
                logger.warning(
                    "Giving up on request to %s after %d attempts: [%s]",
                    self.address,
                    self.config.max_send_attempts,
                    exc,
                )
                self.send_attempts.set(1)
                return b""
            self.send_attempts.set(1)
            return answer

    def send_future(self, request: bytes) -> Future[bytes]:
        """Run :meth:`send` on the background executor.

        Cancelling the future does not interrupt socket I/O already in progress.
        After :meth:`close` the returned future is already resolved to ``b""``.
        """
        try:
            return self._executor.submit(self.send, request)
        except RuntimeError as exc:
            # executor already shut down
            logger.warning("Request to %s not sent: [%s]", self.address, exc)
            future: Future[bytes] = Future()
            future.set_result(b"")
            return future

    def _exchange(self, state: ConnectionState, request: bytes) -> bytes:
        with state.lock:
            sock = state.sock
            if sock is None:
                raise ConnectionError("Connection is not open")
            with sock.makefile("wb") as writer, sock.makefile("rb", buffering=0) as reader:
                if logger.isEnabledFor(logging.INFO):
                    logger.info("Request[String]: %s", _as_text(request))
                    logger.info("Request[HEX]: %s", hexbin.encode(request))
                writer.write(request)
                writer.flush()
                answer = self._read_frame(reader)

        if logger.isEnabledFor(logging.INFO):
            logger.info("Response[String]: %s", _as_text(answer))
            logger.info("Response[HEX]: %s", hexbin.encode(answer))
        return answer

    def _read_frame(self, reader: io.RawIOBase) -> bytes:
        """Read one response frame, bounded by buffer size and read count."""
        buffer = bytearray(RESPONSE_BUFFER_SIZE)
        view = memoryview(buffer)
        position = 0
        msgsize = 0
        iteration = 0
        complete = False

        while iteration < MAX_READ_ITERATIONS and position < RESPONSE_BUFFER_SIZE:
            n = reader.readinto(view[position:])
            iteration += 1
            if not n:
                msg = f"Connection closed during read ({position} bytes received)"
                raise ProtocolError(msg)
            position += n
            if position >= HEADER_SIZE:
                msgsize = frame_size(buffer)
                if position >= msgsize + HEADER_SIZE:
                    complete = True
                    break

        if not complete:
            logger.warning(
                "Incomplete response frame from %s: %d bytes read, %d expected",
                self.address,
                position,
                msgsize + HEADER_SIZE,
            )
        return bytes(buffer[:position])

    def check_socket(self) -> bool:
        return self._holder.check_socket()

    def is_enable(self) -> bool:
        return self._holder.is_enable()

    def is_closed(self) -> bool:
        return self._holder.is_closed()

    def _schedule_reconnect(self, state: ConnectionState) -> None:
        self._reconnector.schedule(state)

    def close(self) -> None:
        """Tear down: stop reconnects, close every connection, stop the executor."""
        self._holder.connect_attempts.set(self.config.max_connect_attempts + 1)
        self._shutdown.set()
        self._holder.close_all()
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> TcpClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def __del__(self) -> None:
        shutdown = getattr(self, "_shutdown", None)
        if shutdown is not None and not shutdown.is_set():
            self.close()

    def __repr__(self) -> str:
        return f"TcpClient(host={self.host!r}, port={self.port})"


class Builder:
    """Collects :class:`ClientConfig` options, then constructs the client."""

    def __init__(self, address: tuple[str, int]) -> None:
        self._address = address
        self._options: dict[str, Any] = {}

    def max_send_attempts(self, count: int) -> Builder:
        self._options["max_send_attempts"] = count
        return self

    def max_connect_attempts(self, count: int) -> Builder:
        self._options["max_connect_attempts"] = count
        return self

    def reconnect_interval(self, sec: float) -> Builder:
        self._options["reconnect_interval"] = sec
        return self

    def time_out(self, ms: int) -> Builder:
        self._options["timeout"] = ms
        return self

    def build(self) -> TcpClient:
        return TcpClient(self._address, ClientConfig(**self._options))
