"""tcp-exchange: request/response client over a persistent TCP connection."""

from tcp_exchange.client import Builder, ProtocolError, TcpClient, frame_size
from tcp_exchange.config import ClientConfig, PeerAddress
from tcp_exchange.connection import AttemptCounter, ConnectionHolder, ConnectionState
from tcp_exchange.hexbin import decode, encode, to_byte_array, xor
from tcp_exchange.reconnect import Reconnector

__all__ = [
    "TcpClient",
    "Builder",
    "ClientConfig",
    "PeerAddress",
    "ProtocolError",
    "frame_size",
    # Connection management
    "AttemptCounter",
    "ConnectionHolder",
    "ConnectionState",
    "Reconnector",
    # Hex codec
    "encode",
    "decode",
    "to_byte_array",
    "xor",
]

__version__ = "0.1.0"
