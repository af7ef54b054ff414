"""Inbound connections and the tunnel sources that supply them."""

from abc import ABCMeta, abstractmethod
from attr import attrib, attrs
from itertools import count
from trio import ClosedResourceError
from trio.abc import Listener, Stream
from typing import Optional

from .connections import format_socket_address

__all__ = ("InboundConnection", "ListenerSource", "TunnelSource")


@attrs
class InboundConnection:
    """A connection received over the tunnel that is to be forwarded to the
    local destination.
    """

    stream: Stream = attrib()
    """Bidirectional byte stream of the connection."""

    remote_address: str = attrib(default="")
    """Address of the client on the other end of the tunnel."""

    protocol: str = attrib(default="tcp")
    """Application protocol of the tunnel, e.g. ``http``, ``https`` or
    ``tcp``.
    """

    id: str = attrib(default="")
    """Identifier of the connection, used to correlate log records."""


class TunnelSource(metaclass=ABCMeta):
    """Interface specification for objects that supply inbound connections
    one by one, in the order they arrived.

    Sources can also be iterated over with ``async for``.
    """

    @property
    @abstractmethod
    def id(self) -> str:
        """Identifier of the tunnel."""
        raise NotImplementedError

    @abstractmethod
    async def next_connection(self) -> Optional[InboundConnection]:
        """Waits for the next inbound connection.

        Returns:
            the next connection, or `None` if the source is exhausted

        Raises:
            Exception: if the tunnel failed
        """
        raise NotImplementedError

    def __aiter__(self):
        return self

    async def __anext__(self) -> InboundConnection:
        conn = await self.next_connection()
        if conn is None:
            raise StopAsyncIteration
        return conn


class ListenerSource(TunnelSource):
    """Tunnel source that accepts connections on a Trio listener, e.g. a
    local TCP port, and tags each of them with the same protocol.

    Closing the source closes the listener and ends the sequence of
    connections.
    """

    def __init__(self, listener: Listener, protocol: str = "tcp", id: str = "local"):
        """Constructor.

        Parameters:
            listener: the listener to accept connections from
            protocol: protocol tag to attach to the accepted connections
            id: identifier of the source
        """
        self._listener = listener
        self._protocol = protocol
        self._id = id
        self._counter = count(1)

    @property
    def id(self) -> str:
        return self._id

    @property
    def protocol(self) -> str:
        return self._protocol

    async def aclose(self) -> None:
        await self._listener.aclose()

    async def next_connection(self) -> Optional[InboundConnection]:
        try:
            stream = await self._listener.accept()
        except ClosedResourceError:
            return None

        socket = getattr(stream, "socket", None)
        try:
            remote_address = format_socket_address(socket.getpeername()) if socket else ""
        except OSError:
            remote_address = ""

        return InboundConnection(
            stream=stream,
            remote_address=remote_address,
            protocol=self._protocol,
            id=f"{self._id}-{next(self._counter)}",
        )
