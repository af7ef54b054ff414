"""Package that holds the outbound connections that the forwarder dials:
TCP sockets, TLS over TCP, Unix domain sockets and Windows named pipes.

Each connection class provided by this package has a common notion of a
*state*, which may be one of: disconnected, connecting, connected or
disconnecting. Connection instances send signals when their state changes.
"""

from .base import ConnectionBase, ConnectionState
from .factory import ConnectionFactory, create_connection, dial
from .pipe import NamedPipeConnection
from .socket import (
    TCPStreamConnection,
    TLSStreamConnection,
    UnixSocketConnection,
    format_socket_address,
)
from .stream import StreamConnection, StreamConnectionBase

__all__ = (
    "ConnectionBase",
    "ConnectionFactory",
    "ConnectionState",
    "NamedPipeConnection",
    "StreamConnection",
    "StreamConnectionBase",
    "TCPStreamConnection",
    "TLSStreamConnection",
    "UnixSocketConnection",
    "create_connection",
    "dial",
    "format_socket_address",
)
