"""Forwarder that takes the inbound connections of a tunnel and relays them
to a local destination given by a URL: a TCP port, an HTTP or HTTPS server,
a TLS endpoint, a Unix domain socket or a Windows named pipe.

When the destination of an HTTP connection cannot be reached, the client
receives a ``502 Bad Gateway`` response instead of a dropped connection.
"""

from .errors import (
    DialFailure,
    ForwardingError,
    InvalidDestination,
    RelayFailure,
    SourceUnavailable,
)
from .forwarder import Forwarder, forward
from .sources import InboundConnection, ListenerSource, TunnelSource
from .version import __version__, __version_info__

__all__ = (
    "DialFailure",
    "Forwarder",
    "ForwardingError",
    "InboundConnection",
    "InvalidDestination",
    "ListenerSource",
    "RelayFailure",
    "SourceUnavailable",
    "TunnelSource",
    "forward",
    "__version__",
    "__version_info__",
)
