"""Per-caller TCP connection management.

``ConnectionHolder`` keeps at most one live socket per calling thread, all
pointed at the same peer. Failed opens are counted in a counter shared by
every thread; once it passes ``max_connect_attempts`` further opens are
skipped until something resets it.
"""

from __future__ import annotations

import logging
import socket
import threading
import weakref
from typing import Callable

from tcp_exchange.config import ClientConfig, PeerAddress

logger = logging.getLogger(__name__)


class AttemptCounter:
    """Thread-safe integer counter."""

    def __init__(self, initial: int = 1) -> None:
        self._value = initial
        self._lock = threading.Lock()

    def get(self) -> int:
        with self._lock:
            return self._value

    def set(self, value: int) -> None:
        with self._lock:
            self._value = value

    def get_and_increment(self) -> int:
        with self._lock:
            value = self._value
            self._value += 1
            return value

    def increment_and_get(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    def __repr__(self) -> str:
        return f"AttemptCounter({self.get()})"


class ConnectionState:
    """Connection slot owned by a single caller.

    ``active`` is ``None`` until the first open, then records whether the
    most recent open succeeded. ``lock`` serialises an exchange on this slot
    against a background reconnect of the same slot. A slot whose thread
    exits is dropped with that thread's locals, closing its socket.
    """

    def __init__(self) -> None:
        self.sock: socket.socket | None = None
        self.active: bool | None = None
        self.lock = threading.RLock()

    def __del__(self) -> None:
        # the owning thread exited without closing its connection
        sock = getattr(self, "sock", None)
        if sock is not None:
            try:
                sock.close()
            except OSError:
                pass


class ConnectionHolder:
    """Opens, checks and closes the per-thread connections to one peer.

    Parameters
    ----------
    address : PeerAddress
        Peer to connect to.
    config : ClientConfig
        Attempt limits and socket timeout.
    on_open_failure : callable | None
        Called with the failing :class:`ConnectionState` after every failed
        open. The client uses it to schedule a reconnect.
    """

    def __init__(
        self,
        address: PeerAddress,
        config: ClientConfig,
        on_open_failure: Callable[[ConnectionState], None] | None = None,
    ) -> None:
        self.address = address
        self.config = config
        self.connect_attempts = AttemptCounter(1)
        self._on_open_failure = on_open_failure
        self._local = threading.local()
        self._states: weakref.WeakSet[ConnectionState] = weakref.WeakSet()
        self._lock = threading.Lock()

    @property
    def state(self) -> ConnectionState:
        """The calling thread's connection slot, created on first access."""
        state: ConnectionState | None = getattr(self._local, "state", None)
        if state is None:
            state = ConnectionState()
            self._local.state = state
            with self._lock:
                self._states.add(state)
        return state

    def open(self, state: ConnectionState | None = None) -> None:
        """Best-effort connect; failures are logged and handed to ``on_open_failure``."""
        if state is None:
            state = self.state
        if self.connect_attempts.get() > self.config.max_connect_attempts:
            return

        with state.lock:
            try:
                sock = self._connect()
            except ConnectionError as exc:
                state.active = False
                self.connect_attempts.increment_and_get()
                logger.warning("Connection to [%s] lost: [%s]", self.address, exc)
            except OSError as exc:
                state.active = False
                self.connect_attempts.increment_and_get()
                logger.warning("Error opening connection to: [%s], [%s]", self.address, exc)
            else:
                previous, state.sock = state.sock, sock
                if previous is not None:
                    previous.close()
                self.connect_attempts.set(1)
                state.active = True
                return

        if self._on_open_failure is not None:
            self._on_open_failure(state)

    def _connect(self) -> socket.socket:
        sock = socket.create_connection(
            (self.address.host, self.address.port),
            timeout=self.config.timeout_seconds,
        )
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 0)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.settimeout(self.config.timeout_seconds)
        except OSError:
            sock.close()
            raise
        return sock

    def is_closed(self, state: ConnectionState | None = None) -> bool:
        if state is None:
            state = self.state
        sock = state.sock
        return sock is None or sock.fileno() == -1

    def is_enable(self, state: ConnectionState | None = None) -> bool:
        if state is None:
            state = self.state
        return bool(state.active)

    def check_socket(self, state: ConnectionState | None = None) -> bool:
        """Re-open a closed connection, then report whether it is usable."""
        if state is None:
            state = self.state
        if self.is_closed(state):
            self.open(state)
        return self.is_enable(state)

    def close(self, state: ConnectionState | None = None) -> None:
        """Close and forget the slot's socket. I/O errors are logged, never raised.

        The slot returns to the never-opened state, so ``is_enable`` reports
        ``False`` until the next successful open.
        """
        if state is None:
            state = self.state
        with state.lock:
            sock = state.sock
            if sock is not None and sock.fileno() != -1:
                try:
                    sock.shutdown(socket.SHUT_RDWR)
                except OSError as exc:
                    logger.warning("Error closing connection to: [%s], [%s]", self.address, exc)
                finally:
                    sock.close()
            state.sock = None
            state.active = None

    def close_all(self) -> None:
        """Close the connections held by every live slot."""
        with self._lock:
            states = list(self._states)
        for state in states:
            self.close(state)
