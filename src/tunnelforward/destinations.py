"""Destination URLs that tell the forwarder where to send the inbound
connections arriving over a tunnel.

A destination is written as a URL whose scheme selects the outbound
transport::

    tcp://host:port
    http://host[:80]
    https://host[:443]  or  tls://host[:443]
    unix://host/path  |  unix:relative/path  |  unix:///abs/path  |  unix:/abs/path
    pipe:name  |  pipe://host/name

Unix domain sockets are available on every platform except Windows; named
pipes are available on Windows only. Schemes that are not available on the
current platform are rejected in the same way as unknown schemes.
"""

import sys

from attr import attrib, attrs
from enum import Enum
from typing import Callable, Dict, Optional
from urllib.parse import SplitResult, urlsplit

from .errors import InvalidDestination

__all__ = (
    "Destination",
    "DestinationKind",
    "SUPPORTED_SCHEMES",
    "parse_destination",
    "parse_pipe_destination",
    "parse_unix_destination",
)


class DestinationKind(Enum):
    """Enum holding the outbound transports that the forwarder knows."""

    TCP = "tcp"
    HTTP = "http"
    HTTPS = "https"
    UNIX = "unix"
    PIPE = "pipe"


@attrs(frozen=True)
class Destination:
    """Parsed representation of a destination URL.

    ``host`` and ``port`` are filled for socket-based destinations;
    ``address`` holds the socket path for Unix domain sockets and the full
    pipe address for named pipes.
    """

    kind: DestinationKind = attrib()
    url: str = attrib()
    host: Optional[str] = attrib(default=None)
    port: Optional[int] = attrib(default=None)
    address: Optional[str] = attrib(default=None)

    @property
    def server_name(self) -> Optional[str]:
        """The name to send in the SNI extension of the TLS handshake; only
        meaningful for HTTPS destinations.
        """
        return self.host if self.kind is DestinationKind.HTTPS else None


def _get_port(parts: SplitResult, url: str) -> Optional[int]:
    try:
        return parts.port
    except ValueError:
        raise InvalidDestination(f"invalid port in forwarding url {url}", url=url)


def _parse_tcp(parts: SplitResult, url: str) -> Destination:
    port = _get_port(parts, url)
    if port is None:
        raise InvalidDestination(f"missing port for tcp forwarding url {url}", url=url)
    return Destination(
        DestinationKind.TCP, url, host=parts.hostname or "localhost", port=port
    )


def _parse_http(parts: SplitResult, url: str) -> Destination:
    port = _get_port(parts, url)
    return Destination(
        DestinationKind.HTTP,
        url,
        host=parts.hostname or "localhost",
        port=80 if port is None else port,
    )


def _parse_https(parts: SplitResult, url: str) -> Destination:
    port = _get_port(parts, url)
    return Destination(
        DestinationKind.HTTPS,
        url,
        host=parts.hostname or "localhost",
        port=443 if port is None else port,
    )


def parse_unix_destination(parts: SplitResult, url: str) -> Destination:
    """Resolves the socket path of a ``unix`` destination URL.

    When the URL has a host component, the host and the path are
    concatenated into a relative path (``unix://run/app.sock`` points to
    ``run/app.sock``). Without a host, the path is used as-is, so
    ``unix:///run/app.sock`` and ``unix:/run/app.sock`` are absolute while
    ``unix:app.sock`` is relative.
    """
    path = parts.path
    if parts.netloc:
        path = parts.netloc + path
    if not path:
        raise InvalidDestination(f"missing socket path in forwarding url {url}", url=url)
    return Destination(DestinationKind.UNIX, url, address=path)


def parse_pipe_destination(parts: SplitResult, url: str) -> Destination:
    """Assembles the full address of a Windows named pipe from a ``pipe``
    destination URL.

    ``localhost`` or a missing host both refer to the local machine (``.``).
    When no host is given, the leading slash of the path is preserved in
    the pipe name.
    """
    name = parts.path
    host = parts.netloc
    if host:
        name = name[1:] if name.startswith("/") else name
    if not name:
        raise InvalidDestination(f"missing pipe name in forwarding url {url}", url=url)

    if not host or host == "localhost":
        host = "."

    return Destination(
        DestinationKind.PIPE, url, host=host, address=f"\\\\{host}\\pipe\\{name}"
    )


Parser = Callable[[SplitResult, str], Destination]

SUPPORTED_SCHEMES: Dict[str, Parser] = {
    "tcp": _parse_tcp,
    "http": _parse_http,
    "https": _parse_https,
    "tls": _parse_https,
}

if sys.platform == "win32":
    SUPPORTED_SCHEMES["pipe"] = parse_pipe_destination
else:
    SUPPORTED_SCHEMES["unix"] = parse_unix_destination


def parse_destination(url: str) -> Destination:
    """Parses a destination URL.

    Parameters:
        url: the URL to parse

    Returns:
        the parsed destination

    Raises:
        InvalidDestination: if the URL is malformed, misses a mandatory part
            or uses a scheme that is not supported on this platform
    """
    try:
        parts = urlsplit(url, allow_fragments=False)
    except ValueError as ex:
        raise InvalidDestination(f"malformed forwarding url {url}: {ex}", url=url)

    parser = SUPPORTED_SCHEMES.get(parts.scheme)
    if parser is None:
        raise InvalidDestination(
            f"unrecognized scheme in forwarding url: {url}", url=url
        )

    return parser(parts, url)
