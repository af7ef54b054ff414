"""Outbound connections to Windows named pipes.

The client end of the pipe is opened for overlapped I/O and registered with
the I/O completion port of Trio, so a read that is waiting for the pipe
server does not hold up a write in the other direction. When all instances
of the pipe are busy, opening the pipe is retried at a fixed interval until
it succeeds or fails with a different error.
"""

import logging
import sys

from trio import BrokenResourceError, ClosedResourceError, lowlevel, sleep, to_thread
from trio.abc import Stream
from typing import Callable, Optional

from tunnelforward.destinations import DestinationKind

from .factory import create_connection
from .stream import StreamConnectionBase

if sys.platform == "win32":
    import _winapi

__all__ = ("ERROR_PIPE_BUSY", "NamedPipeConnection", "PipeStream", "is_pipe_busy")


ERROR_PIPE_BUSY = 231
"""Windows error code signalling that all instances of a pipe are busy."""

PIPE_BUSY_RETRY_DELAY = 0.05
"""Number of seconds to wait between attempts to open a busy pipe."""

log = logging.getLogger(__name__.rpartition(".")[0])


def is_pipe_busy(ex: OSError) -> bool:
    """Returns whether the given error means that the pipe exists but all
    its instances are busy.
    """
    return getattr(ex, "winerror", None) == ERROR_PIPE_BUSY


def open_pipe_handle(address: str) -> int:
    """Opens the client end of the named pipe with the given address for
    overlapped I/O and returns its handle. Blocking; call it from a worker
    thread.
    """
    return _winapi.CreateFile(
        address,
        _winapi.GENERIC_READ | _winapi.GENERIC_WRITE,
        0,
        _winapi.NULL,
        _winapi.OPEN_EXISTING,
        _winapi.FILE_FLAG_OVERLAPPED,
        _winapi.NULL,
    )


def close_pipe_handle(handle: int) -> None:
    _winapi.CloseHandle(handle)


class PipeStream(Stream):
    """Trio stream over a pipe handle that was opened for overlapped I/O.

    One task may receive while another one is sending; concurrent receives
    or concurrent sends are not supported.
    """

    def __init__(
        self,
        handle: int,
        *,
        chunk_size: int = 65536,
        closer: Callable[[int], None] = close_pipe_handle,
    ):
        """Constructor.

        Parameters:
            handle: the pipe handle; it is registered with the I/O completion
                port of Trio here
            chunk_size: default number of bytes to read at once
            closer: function that closes the handle
        """
        try:
            lowlevel.register_with_iocp(handle)
        except BaseException:
            closer(handle)
            raise

        self._handle = handle
        self._chunk_size = chunk_size
        self._closer = closer

    @property
    def closed(self) -> bool:
        return self._handle is None

    async def aclose(self) -> None:
        # Closing the handle aborts the pending operations of other tasks;
        # Trio reports them as ClosedResourceError
        if self._handle is not None:
            handle, self._handle = self._handle, None
            self._closer(handle)
        await lowlevel.checkpoint()

    async def receive_some(self, max_bytes: Optional[int] = None) -> bytes:
        if self._handle is None:
            raise ClosedResourceError("stream was closed")

        buffer = bytearray(max_bytes or self._chunk_size)
        try:
            size = await lowlevel.readinto_overlapped(self._handle, buffer)
        except BrokenPipeError:
            if self._handle is None:
                raise ClosedResourceError("stream was closed") from None
            # The server closed its end of the pipe
            return b""
        return bytes(buffer[:size])

    async def send_all(self, data) -> None:
        if self._handle is None:
            raise ClosedResourceError("stream was closed")
        if not data:
            await lowlevel.checkpoint()
            return

        try:
            await lowlevel.write_overlapped(self._handle, data)
        except BrokenPipeError as ex:
            raise BrokenResourceError("pipe was closed by the server") from ex

    async def wait_send_all_might_not_block(self) -> None:
        await lowlevel.checkpoint()


class NamedPipeConnection(StreamConnectionBase):
    """Connection object that connects to a Windows named pipe."""

    def __init__(
        self,
        address: str = "",
        *,
        retry_delay: float = PIPE_BUSY_RETRY_DELAY,
        opener: Callable[[str], int] = open_pipe_handle,
        stream_factory: Callable[[int], Stream] = PipeStream,
        **kwds,
    ):
        """Constructor.

        Parameters:
            address: full address of the pipe, e.g. ``\\\\.\\pipe\\name``
            retry_delay: number of seconds to wait before trying to open the
                pipe again when all its instances are busy
            opener: blocking function that opens the pipe and returns its
                handle
            stream_factory: function that wraps the handle returned by the
                opener in a Trio stream
        """
        super().__init__()
        self._address = address
        self._opener = opener
        self._retry_delay = retry_delay
        self._stream_factory = stream_factory
        self._attempts = 0

    @property
    def address(self) -> str:
        return self._address

    @property
    def attempts(self) -> int:
        """Number of attempts that were needed to open the pipe the last
        time the connection was opened.
        """
        return self._attempts

    @property
    def peer_address(self) -> Optional[str]:
        return self._address

    async def _create_stream(self) -> Stream:
        self._attempts = 0
        while True:
            self._attempts += 1
            try:
                handle = await to_thread.run_sync(self._opener, self._address)
            except OSError as ex:
                if not is_pipe_busy(ex):
                    raise
                log.debug(f"Pipe {self._address} is busy, retrying")
            else:
                return self._stream_factory(handle)

            await sleep(self._retry_delay)


if sys.platform == "win32":
    create_connection.register(DestinationKind.PIPE, NamedPipeConnection)
