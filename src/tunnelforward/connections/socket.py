"""Outbound connections via TCP sockets, TLS over TCP and Unix domain
sockets.
"""

import sys

from trio import SSLStream, aclose_forcefully, open_tcp_stream, open_unix_socket
from trio.abc import Stream
from typing import Callable, Optional

from tunnelforward.destinations import DestinationKind
from tunnelforward.errors import DialFailure
from tunnelforward.tls import get_tls_client_context

from .factory import create_connection
from .stream import StreamConnectionBase

__all__ = (
    "TCPStreamConnection",
    "TLSStreamConnection",
    "UnixSocketConnection",
    "format_socket_address",
)


def format_socket_address(address) -> str:
    """Formats a socket address returned by ``getpeername()`` or
    ``getsockname()`` in a human-readable way.
    """
    if isinstance(address, tuple) and len(address) >= 2:
        host, port = address[0], address[1]
        if ":" in host:
            return f"[{host}]:{port}"
        return f"{host}:{port}"
    return str(address) if address else ""


@create_connection.register(DestinationKind.HTTP)
@create_connection.register(DestinationKind.TCP)
class TCPStreamConnection(StreamConnectionBase):
    """Connection object that wraps a Trio TCP stream."""

    def __init__(self, host: str = "localhost", port: int = 0, **kwds):
        """Constructor.

        Parameters:
            host: the IP address or hostname to connect to
            port: the port number to connect to
        """
        super().__init__()
        self._address = (host or "localhost", port)
        self._peer = None

    @property
    def address(self):
        """The hostname and port that the connection dials, as a tuple."""
        return self._address

    @property
    def peer_address(self) -> Optional[str]:
        return self._peer

    async def _create_stream(self) -> Stream:
        return await self._open_tcp_stream()

    async def _open_tcp_stream(self):
        host, port = self._address
        stream = await open_tcp_stream(host, port)
        try:
            self._peer = format_socket_address(stream.socket.getpeername())
        except OSError:
            self._peer = None
        return stream


@create_connection.register(DestinationKind.HTTPS)
class TLSStreamConnection(TCPStreamConnection):
    """Connection object that opens a TCP stream and performs a TLS client
    handshake on it, verifying the certificate of the server against the
    trust store of the operating system.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 443,
        server_name: Optional[str] = None,
        context_factory: Callable = get_tls_client_context,
        **kwds,
    ):
        """Constructor.

        Parameters:
            host: the IP address or hostname to connect to
            port: the port number to connect to
            server_name: the hostname to send in the SNI extension and to
                verify the certificate of the server against; defaults to
                the host
            context_factory: function that returns the TLS client context to
                use
        """
        super().__init__(host=host, port=port)
        self._server_name = server_name or self._address[0]
        self._context_factory = context_factory

    @property
    def server_name(self) -> str:
        return self._server_name

    async def _create_stream(self) -> Stream:
        context = self._context_factory()

        tcp_stream = await self._open_tcp_stream()

        # TODO: prefix tcp_stream with a PROXY protocol header here, before
        # terminating TLS, once tunnels can ask for it
        try:
            stream = SSLStream(
                tcp_stream,
                context,
                server_hostname=self._server_name,
                https_compatible=True,
            )
            await stream.do_handshake()
        except ValueError as ex:
            await aclose_forcefully(tcp_stream)
            raise DialFailure(
                f"invalid TLS server name {self._server_name!r}: {ex}"
            ) from ex
        except BaseException:
            await aclose_forcefully(tcp_stream)
            raise

        return stream


class UnixSocketConnection(StreamConnectionBase):
    """Connection object that connects to a Unix domain socket."""

    def __init__(self, address: str = "", **kwds):
        """Constructor.

        Parameters:
            address: path of the socket; relative paths are resolved from the
                current working directory
        """
        super().__init__()
        self._address = address

    @property
    def address(self) -> str:
        return self._address

    @property
    def peer_address(self) -> Optional[str]:
        return self._address

    async def _create_stream(self) -> Stream:
        return await open_unix_socket(self._address)


if sys.platform != "win32":
    create_connection.register(DestinationKind.UNIX, UnixSocketConnection)
