"""Bad gateway responses for HTTP tunnel connections whose destination could
not be dialed.

Instead of dropping such connections silently, the forwarder acts as a tiny
HTTP/1.1 server on the inbound leg: it waits for the request head, answers
with a single ``502 Bad Gateway`` response that describes the dial failure
and closes the connection.
"""

import h11
import logging

from trio import BrokenResourceError, ClosedResourceError, aclose_forcefully
from trio.abc import Stream
from typing import Any, Dict, Optional

__all__ = ("HTTP_PROTOCOLS", "create_gateway_error_response", "serve_gateway_error")


HTTP_PROTOCOLS = frozenset(("http", "https"))
"""Protocol tags of inbound connections that receive an error response when
the destination cannot be dialed.
"""

MAX_REQUEST_HEAD_SIZE = 65536

log = logging.getLogger(__name__)


def create_gateway_error_response(error: Any) -> bytes:
    """Returns the body of the response that is sent to HTTP clients when the
    destination cannot be dialed.
    """
    return f"failed to dial backend: {error}".encode("utf-8")


async def _receive_request(conn: h11.Connection, stream: Stream) -> Optional[h11.Request]:
    """Reads the stream until the head of the next request has been parsed.

    Returns:
        the request, or `None` if the client closed the connection first
    """
    while True:
        event = conn.next_event()
        if event is h11.NEED_DATA:
            data = await stream.receive_some(MAX_REQUEST_HEAD_SIZE)
            conn.receive_data(data)
        elif isinstance(event, h11.Request):
            return event
        elif isinstance(event, h11.ConnectionClosed):
            return None


async def serve_gateway_error(
    error: Any, stream: Stream, *, extra: Optional[Dict[str, Any]] = None
) -> bool:
    """Serves a ``502 Bad Gateway`` response on the given stream, then closes
    the stream. Keep-alive is disabled; at most one response is written.

    Parameters:
        error: the error that prevented the forwarder from dialing the
            destination
        stream: the inbound leg of the tunnel connection
        extra: extra attributes to add to the log records

    Returns:
        whether the response was written
    """
    conn = h11.Connection(h11.SERVER, max_incomplete_event_size=MAX_REQUEST_HEAD_SIZE)
    body = create_gateway_error_response(error)

    try:
        request = await _receive_request(conn, stream)
        if request is None:
            log.debug("Connection closed before request", extra=extra)
            return False

        log.debug("Serving bad gateway error", extra=extra)
        response = h11.Response(
            status_code=502,
            reason=b"Bad Gateway",
            headers=[
                ("Content-Type", "text/plain; charset=utf-8"),
                ("Content-Length", str(len(body))),
                ("Connection", "close"),
            ],
        )
        data = conn.send(response)
        if request.method != b"HEAD":
            data += conn.send(h11.Data(data=body))
        data += conn.send(h11.EndOfMessage())
        await stream.send_all(data)
        return True
    except h11.RemoteProtocolError as ex:
        log.debug(f"Invalid HTTP request: {ex}", extra=extra)
    except h11.LocalProtocolError as ex:
        log.warning(f"Cannot respond to HTTP request: {ex}", extra=extra)
    except (BrokenResourceError, ClosedResourceError, OSError) as ex:
        log.debug(f"Connection error while serving bad gateway error: {ex}", extra=extra)
    finally:
        await aclose_forcefully(stream)

    return False
