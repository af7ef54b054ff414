"""Connection classes that wrap a Trio bidirectional byte stream."""

from abc import abstractmethod
from trio import BrokenResourceError
from trio.abc import Stream
from typing import Awaitable, Callable, Optional

from tunnelforward.errors import DialFailure, ForwardingError

from .base import ConnectionBase, ConnectionState

__all__ = ("StreamConnection", "StreamConnectionBase")


class StreamConnectionBase(ConnectionBase):
    """Outbound connection that wraps a Trio bidirectional byte stream.

    Errors raised by the operating system while the stream is being created
    are reported as `DialFailure`.
    """

    def __init__(self):
        super().__init__()
        self._stream = None

    @abstractmethod
    async def _create_stream(self) -> Stream:
        """Creates the stream that the connection should operate on.

        Each invocation of this method should return a new Trio stream
        instance.
        """
        raise NotImplementedError

    @property
    def stream(self) -> Optional[Stream]:
        """The stream wrapped by the connection; ``None`` if the connection
        is not open.
        """
        return self._stream

    @property
    def peer_address(self) -> Optional[str]:
        """Human-readable address of the remote end of the stream, if the
        stream has one.
        """
        return None

    def detach(self) -> Stream:
        """Hands over the ownership of the underlying stream to the caller.

        The connection enters the disconnected state without closing the
        stream; it is the responsibility of the caller to close it.
        """
        if self._stream is None:
            raise RuntimeError("connection is not open")

        stream, self._stream = self._stream, None
        self._set_state(ConnectionState.DISCONNECTED)
        return stream

    async def _open(self):
        try:
            self._stream = await self._create_stream()
        except ForwardingError:
            raise
        except (OSError, BrokenResourceError) as ex:
            raise DialFailure(str(ex.__cause__ or ex) or repr(ex)) from ex

    async def _close(self):
        if self._stream is not None:
            await self._stream.aclose()
            self._stream = None


class StreamConnection(StreamConnectionBase):
    """Connection class that wraps a Trio bidirectional byte stream that is
    constructed on-demand from a factory function.
    """

    def __init__(self, factory: Callable[[], Awaitable[Stream]]):
        """Constructor.

        Parameters:
            factory: async callable that must be called with no arguments
                and that will construct a new Trio bidirectional byte
                stream that the connection will wrap.
        """
        super().__init__()
        self._factory = factory

    async def _create_stream(self) -> Stream:
        return await self._factory()
