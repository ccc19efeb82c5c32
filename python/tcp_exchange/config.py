"""Client configuration and peer address types."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, NamedTuple

DEFAULT_MAX_SEND_ATTEMPTS = 5
DEFAULT_MAX_CONNECT_ATTEMPTS = 5
DEFAULT_RECONNECT_INTERVAL = 5  # seconds
DEFAULT_TIMEOUT = 5000  # milliseconds

_CAMEL_CASE_KEYS = {
    "maxSendAttempts": "max_send_attempts",
    "maxConnectAttempts": "max_connect_attempts",
    "reconnectInterval": "reconnect_interval",
    "timeOut": "timeout",
}


class PeerAddress(NamedTuple):
    """Immutable ``(host, port)`` pair of the remote peer."""

    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class ClientConfig:
    """Retry, reconnect and timeout settings for :class:`TcpClient`.

    Parameters
    ----------
    max_send_attempts : int
        Attempts allowed for one logical request before ``send`` gives up.
    max_connect_attempts : int
        Consecutive failed opens allowed before opening short-circuits.
    reconnect_interval : float
        Seconds to wait between closing and re-opening after a failed open.
    timeout : int
        Socket read timeout in milliseconds.
    """

    max_send_attempts: int = DEFAULT_MAX_SEND_ATTEMPTS
    max_connect_attempts: int = DEFAULT_MAX_CONNECT_ATTEMPTS
    reconnect_interval: float = DEFAULT_RECONNECT_INTERVAL
    timeout: int = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if self.max_send_attempts < 1:
            msg = f"max_send_attempts must be >= 1, got {self.max_send_attempts}"
            raise ValueError(msg)
        if self.max_connect_attempts < 1:
            msg = f"max_connect_attempts must be >= 1, got {self.max_connect_attempts}"
            raise ValueError(msg)
        if self.reconnect_interval < 0:
            msg = f"reconnect_interval must be >= 0, got {self.reconnect_interval}"
            raise ValueError(msg)
        if self.timeout <= 0:
            msg = f"timeout must be > 0, got {self.timeout}"
            raise ValueError(msg)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClientConfig:
        """Build a config from snake_case or camelCase keys.

        Missing keys keep their defaults; unknown keys raise ``ValueError``.
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _CAMEL_CASE_KEYS.get(key, key)
            if name not in known:
                msg = f"Unknown config key: {key!r}"
                raise ValueError(msg)
            kwargs[name] = value
        return cls(**kwargs)
