"""Forwarding of inbound tunnel connections to a local destination.

The forwarder takes the inbound connections from a tunnel source one by
one. Each connection is handled in its own task: the destination is dialed,
then bytes are relayed between the two legs until either side closes. When
the destination cannot be dialed, HTTP connections get a ``502 Bad Gateway``
response and all other connections are closed. The loop itself never stops
because of a single connection.
"""

import logging

from blinker import Signal
from trio import CancelScope, aclose_forcefully, open_nursery

from .connections import StreamConnectionBase, dial
from .degradation import HTTP_PROTOCOLS, serve_gateway_error
from .errors import ForwardingError, SourceUnavailable
from .relay import join_streams
from .sources import InboundConnection, TunnelSource

__all__ = ("Forwarder", "forward")


log = logging.getLogger(__name__)


class Forwarder:
    """Object that forwards the inbound connections of a tunnel to the
    destination given by a URL.
    """

    accepted = Signal(
        doc="""\
        Signal sent when an inbound connection was taken from the tunnel.

        Parameters:
            connection (InboundConnection): the connection
        """
    )
    dial_failed = Signal(
        doc="""\
        Signal sent when the destination of an inbound connection could not
        be dialed.

        Parameters:
            connection (InboundConnection): the connection
            error (Exception): the error that happened while dialing
        """
    )
    relay_closed = Signal(
        doc="""\
        Signal sent when the relay between the legs of a forwarded connection
        has terminated.

        Parameters:
            connection (InboundConnection): the connection
            outcome (RelayOutcome): the number of bytes moved in each
                direction and the error that terminated the relay, if any
        """
    )

    def __init__(self, url: str):
        """Constructor.

        Parameters:
            url: the URL of the destination to forward connections to
        """
        self.url = url

    async def connect(self, conn: InboundConnection) -> StreamConnectionBase:
        """Establishes the outbound leg for the given inbound connection.

        The destination URL is resolved anew for every connection and dialed
        exactly once.
        """
        return await dial(self.url)

    async def forward(self, source: TunnelSource) -> None:
        """Forwards the connections of the given tunnel source until the source
        is exhausted.

        Connections are taken from the source in the order the source yields
        them. Connections that are still being handled when the source is
        exhausted are waited for; when the source fails, they are cancelled.

        Raises:
            SourceUnavailable: if the source failed while waiting for the
                next connection
        """
        extra = {"id": source.id}
        failure = None

        log.info(f"Forwarding tunnel connections to {self.url}", extra=extra)

        async with open_nursery() as nursery:
            while True:
                try:
                    conn = await source.next_connection()
                except Exception as ex:
                    failure = ex
                    nursery.cancel_scope.cancel()
                    break

                if conn is None:
                    break

                log.debug(
                    f"Accepted tunnel connection from {conn.remote_address}",
                    extra={"id": conn.id, "semantics": "request"},
                )
                self.accepted.send(self, connection=conn)
                nursery.start_soon(self.handle_connection, conn, name=conn.id)

        if failure is not None:
            log.error(f"Tunnel source failed: {failure}", extra=extra)
            raise SourceUnavailable(f"tunnel source failed: {failure}") from failure

        log.info("Tunnel source exhausted", extra=extra)

    async def handle_connection(self, conn: InboundConnection) -> None:
        """Dials the destination for a single inbound connection and relays
        bytes between the two legs, or degrades gracefully if the destination
        cannot be dialed. Never raises an exception (apart from cancellation).
        """
        try:
            await self._handle_connection(conn)
        except Exception:
            log.exception(
                "Unexpected error while forwarding connection", extra={"id": conn.id}
            )
        finally:
            # The inbound leg is closed on every path, including cancellation
            with CancelScope(shield=True):
                await aclose_forcefully(conn.stream)

    async def _handle_connection(self, conn: InboundConnection) -> None:
        extra = {"id": conn.id}

        try:
            outbound = await self.connect(conn)
        except (ForwardingError, OSError) as ex:
            log.warning(
                f"Error establishing local connection: {ex}",
                extra={"id": conn.id, "semantics": "failure"},
            )
            self.dial_failed.send(self, connection=conn, error=ex)
            await self._on_dial_error(conn, ex)
            return
        except Exception as ex:
            log.exception(
                "Unexpected error while establishing local connection", extra=extra
            )
            self.dial_failed.send(self, connection=conn, error=ex)
            return

        peer = outbound.peer_address
        log.debug(
            "Established local connection"
            + (f" to {peer}" if peer else "")
            + ", joining streams",
            extra={"id": conn.id, "semantics": "success"},
        )

        outcome = await join_streams(conn.stream, outbound.detach(), extra=extra)
        self.relay_closed.send(self, connection=conn, outcome=outcome)

    async def _on_dial_error(self, conn: InboundConnection, error: Exception) -> None:
        """Responds on the inbound leg of a connection whose destination could
        not be dialed. Only HTTP connections get a response; the others are
        closed without one.
        """
        if conn.protocol in HTTP_PROTOCOLS:
            await serve_gateway_error(error, conn.stream, extra={"id": conn.id})


async def forward(source: TunnelSource, url: str) -> None:
    """Forwards the connections of the given tunnel source to the destination
    given by a URL, until the source is exhausted.

    Raises:
        SourceUnavailable: if the source failed while waiting for the next
            connection
    """
    await Forwarder(url).forward(source)
