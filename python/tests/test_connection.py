"""Tests for ConnectionHolder (unit tests with a mocked socket module)."""

from __future__ import annotations

import gc
import logging
import socket
import threading
import time
from unittest.mock import MagicMock

import pytest

from tcp_exchange.config import ClientConfig, PeerAddress
from tcp_exchange.connection import AttemptCounter, ConnectionHolder

ADDRESS = PeerAddress("peer.example", 9000)


def _mock_socket(fileno: int = 5) -> MagicMock:
    sock = MagicMock(spec=socket.socket)
    sock.fileno.return_value = fileno
    return sock


@pytest.fixture
def create_connection(monkeypatch):
    mock = MagicMock(side_effect=lambda *args, **kwargs: _mock_socket())
    monkeypatch.setattr(socket, "create_connection", mock)
    return mock


class TestAttemptCounter:
    def test_operations(self):
        counter = AttemptCounter(1)
        assert counter.get_and_increment() == 1
        assert counter.get() == 2
        assert counter.increment_and_get() == 3
        counter.set(1)
        assert counter.get() == 1

    def test_concurrent_increments(self):
        counter = AttemptCounter(0)

        def work():
            for _ in range(1000):
                counter.get_and_increment()

        threads = [threading.Thread(target=work) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert counter.get() == 4000


class TestOpen:
    def test_success_configures_socket(self, create_connection):
        holder = ConnectionHolder(ADDRESS, ClientConfig(timeout=1500))
        holder.connect_attempts.set(3)

        holder.open()

        create_connection.assert_called_once_with(("peer.example", 9000), timeout=1.5)
        sock = holder.state.sock
        sock.setsockopt.assert_any_call(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 0)
        sock.setsockopt.assert_any_call(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.settimeout.assert_called_with(1.5)
        assert holder.is_enable()
        assert not holder.is_closed()
        assert holder.connect_attempts.get() == 1

    def test_failure_marks_inactive_and_hands_off(self, create_connection, caplog):
        create_connection.side_effect = ConnectionRefusedError("refused")
        on_failure = MagicMock()
        holder = ConnectionHolder(ADDRESS, ClientConfig(), on_open_failure=on_failure)

        with caplog.at_level(logging.WARNING, logger="tcp_exchange.connection"):
            holder.open()

        assert holder.state.active is False
        assert not holder.is_enable()
        assert holder.connect_attempts.get() == 2
        on_failure.assert_called_once_with(holder.state)
        assert "peer.example:9000" in caplog.text
        assert "refused" in caplog.text

    def test_non_connection_oserror_is_handled(self, create_connection, caplog):
        create_connection.side_effect = socket.gaierror("Name or service not known")
        holder = ConnectionHolder(ADDRESS, ClientConfig())

        with caplog.at_level(logging.WARNING, logger="tcp_exchange.connection"):
            holder.open()

        assert holder.state.active is False
        assert "Error opening connection to: [peer.example:9000]" in caplog.text

    def test_setsockopt_failure_closes_socket(self, create_connection):
        sock = _mock_socket()
        sock.setsockopt.side_effect = OSError("bad option")
        create_connection.side_effect = None
        create_connection.return_value = sock
        holder = ConnectionHolder(ADDRESS, ClientConfig())

        holder.open()

        sock.close.assert_called_once()
        assert holder.state.active is False
        assert holder.state.sock is None

    def test_short_circuits_past_max_attempts(self, create_connection):
        holder = ConnectionHolder(ADDRESS, ClientConfig(max_connect_attempts=2))
        holder.connect_attempts.set(3)

        holder.open()

        create_connection.assert_not_called()
        assert holder.state.active is None

    def test_open_attempts_are_bounded(self, create_connection):
        create_connection.side_effect = ConnectionRefusedError("refused")
        cfg = ClientConfig(max_connect_attempts=4)
        holder = ConnectionHolder(ADDRESS, cfg)
        # Each failure immediately retries, like a reconnect with no delay.
        holder._on_open_failure = holder.open

        holder.open()

        assert create_connection.call_count == 4
        assert holder.connect_attempts.get() == cfg.max_connect_attempts + 1

    def test_reopen_closes_replaced_socket(self, create_connection):
        holder = ConnectionHolder(ADDRESS, ClientConfig())
        holder.open()
        first = holder.state.sock

        holder.open()

        first.close.assert_called_once()
        assert holder.state.sock is not first
        assert create_connection.call_count == 2


class TestCheckSocket:
    def test_never_opened_is_not_enabled(self):
        holder = ConnectionHolder(ADDRESS, ClientConfig())
        assert holder.is_closed()
        assert not holder.is_enable()

    def test_opens_when_closed(self, create_connection):
        holder = ConnectionHolder(ADDRESS, ClientConfig())
        assert holder.check_socket()
        create_connection.assert_called_once()

    def test_keeps_open_connection(self, create_connection):
        holder = ConnectionHolder(ADDRESS, ClientConfig())
        holder.open()
        sock = holder.state.sock

        assert holder.check_socket()
        assert holder.state.sock is sock
        create_connection.assert_called_once()

    def test_reopens_after_socket_closed(self, create_connection):
        holder = ConnectionHolder(ADDRESS, ClientConfig())
        holder.open()
        holder.state.sock.fileno.return_value = -1

        assert holder.check_socket()
        assert create_connection.call_count == 2


class TestClose:
    def test_close_shuts_down_and_forgets(self, create_connection):
        holder = ConnectionHolder(ADDRESS, ClientConfig())
        holder.open()
        sock = holder.state.sock

        holder.close()

        sock.shutdown.assert_called_once_with(socket.SHUT_RDWR)
        sock.close.assert_called_once()
        assert holder.state.sock is None
        assert holder.is_closed()
        assert not holder.is_enable()

    def test_close_swallows_errors(self, create_connection, caplog):
        holder = ConnectionHolder(ADDRESS, ClientConfig())
        holder.open()
        sock = holder.state.sock
        sock.shutdown.side_effect = OSError("not connected")

        with caplog.at_level(logging.WARNING, logger="tcp_exchange.connection"):
            holder.close()

        sock.close.assert_called_once()
        assert holder.state.sock is None
        assert "not connected" in caplog.text

    def test_close_skips_already_closed_socket(self, create_connection):
        holder = ConnectionHolder(ADDRESS, ClientConfig())
        holder.open()
        sock = holder.state.sock
        sock.fileno.return_value = -1

        holder.close()

        sock.shutdown.assert_not_called()
        sock.close.assert_not_called()
        assert holder.state.sock is None

    def test_close_without_socket(self):
        holder = ConnectionHolder(ADDRESS, ClientConfig())
        holder.close()
        assert holder.is_closed()


class TestPerThreadState:
    def test_threads_get_separate_connections(self, create_connection):
        holder = ConnectionHolder(ADDRESS, ClientConfig())
        holder.open()
        main_state = holder.state
        seen = {}

        def worker():
            seen["before"] = holder.is_enable()
            holder.open()
            seen["state"] = holder.state

        t = threading.Thread(target=worker)
        t.start()
        t.join()

        assert seen["before"] is False
        assert seen["state"] is not main_state
        assert seen["state"].sock is not main_state.sock
        assert create_connection.call_count == 2

    def test_close_all_closes_every_thread(self, create_connection):
        holder = ConnectionHolder(ADDRESS, ClientConfig())
        holder.open()
        states = [holder.state]

        def worker():
            holder.open()
            states.append(holder.state)

        t = threading.Thread(target=worker)
        t.start()
        t.join()
        socks = [s.sock for s in states]

        holder.close_all()

        for state, sock in zip(states, socks):
            assert state.sock is None
            sock.close.assert_called_once()

    def test_exited_thread_releases_its_socket(self, create_connection):
        holder = ConnectionHolder(ADDRESS, ClientConfig())
        holder.open()
        socks = []

        def worker():
            holder.open()
            socks.append(holder.state.sock)

        threads = [threading.Thread(target=worker) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        # thread-local slots are dropped as each thread state is torn down
        deadline = time.monotonic() + 5
        while len(holder._states) > 1 and time.monotonic() < deadline:
            gc.collect()
            time.sleep(0.01)

        for sock in socks:
            sock.close.assert_called_once()
        assert list(holder._states) == [holder.state]
        holder.state.sock.close.assert_not_called()
