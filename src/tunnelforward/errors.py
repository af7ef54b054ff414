"""Exception classes used throughout the forwarder."""

__all__ = (
    "DialFailure",
    "ForwardingError",
    "InvalidDestination",
    "RelayFailure",
    "SourceUnavailable",
)


class ForwardingError(RuntimeError):
    """Base class for all forwarding-related errors."""

    pass


class InvalidDestination(ForwardingError):
    """Exception thrown when a destination URL is malformed, misses a
    mandatory part or uses a scheme that is not supported on the current
    platform.
    """

    def __init__(self, message=None, url=None):
        """Constructor.

        Parameters:
            message (Optional[str]): the error message
            url (Optional[str]): the offending URL
        """
        message = message or "Invalid destination URL"
        super().__init__(message)
        self.url = url


class SourceUnavailable(ForwardingError):
    """Exception thrown when the tunnel that supplies inbound connections
    fails while we are waiting for the next connection.
    """

    def __init__(self, message=None):
        message = message or "Tunnel source is unavailable"
        super().__init__(message)


class DialFailure(ForwardingError):
    """Exception thrown when the outbound leg of a forwarded connection
    could not be established (connection refused, unreachable host, failed
    TLS handshake and so on).
    """

    pass


class RelayFailure(ForwardingError):
    """Exception thrown when an I/O error happens while bytes are being
    relayed between the two legs of a forwarded connection.

    The exception carries the number of bytes that were moved in each
    direction before the error happened.
    """

    def __init__(self, message=None, from_inbound=0, from_outbound=0):
        message = message or "Relay failed"
        super().__init__(message)
        self.from_inbound = from_inbound
        self.from_outbound = from_outbound
