"""Connection factory that maps destinations to outbound connection classes
and dials them.
"""

from functools import partial
from typing import Union

from tunnelforward.destinations import Destination, parse_destination
from tunnelforward.errors import InvalidDestination

from .stream import StreamConnectionBase

__all__ = ("ConnectionFactory", "create_connection", "dial")


class ConnectionFactory:
    """Connection factory object that creates outbound connections from
    parsed destinations.

    Connection classes are registered for the kinds of destinations they can
    reach. Only the transports that work on the current platform register
    themselves, so asking for an unsupported one fails with
    `InvalidDestination` instead of falling back to some default.
    """

    def __init__(self):
        """Constructor."""
        self._registry = dict()

    def create(self, destination: Destination) -> StreamConnectionBase:
        """Creates an outbound connection for the given destination. The
        connection is not opened yet.

        The registered class (or callable) is called with the ``host``,
        ``port``, ``address`` and ``server_name`` attributes of the
        destination as keyword arguments, omitting the ones that are not set.

        Raises:
            InvalidDestination: if no connection class is registered for the
                kind of the destination
        """
        func = self._registry.get(destination.kind)
        if func is None:
            raise InvalidDestination(
                f"unsupported transport in forwarding url: {destination.url}",
                url=destination.url,
            )

        parameters = {}
        for name in ("host", "port", "address", "server_name"):
            value = getattr(destination, name)
            if value is not None:
                parameters[name] = value
        return func(**parameters)

    def register(self, kind, klass=None):
        """Registers the given class for this connection factory for the
        given kind of destination, or returns a decorator that will register
        an arbitrary class if no class is specified.

        Parameters:
            kind (DestinationKind): the kind of destination that the class
                is able to connect to
            klass (Optional[class]): a connection class or a callable that
                returns a new connection instance when called with keyword
                arguments

        Returns:
            the class itself when ``klass`` is not ``None``, a decorator
            otherwise
        """
        if klass is None:
            return partial(self.register, kind)
        else:
            self._registry[kind] = klass
            return klass

    @property
    def supported_kinds(self):
        """The kinds of destinations that the factory can create connections
        for.
        """
        return frozenset(self._registry)

    def __call__(self, *args, **kwds):
        """Forwards the invocation to the `create()`_ method."""
        return self.create(*args, **kwds)


create_connection = ConnectionFactory()  #: Singleton connection factory


async def dial(destination: Union[str, Destination]) -> StreamConnectionBase:
    """Dials the given destination and returns the open outbound connection.

    Exactly one attempt is made; errors are not retried (apart from the
    busy-waiting that named pipes do while the pipe server is busy).

    Raises:
        InvalidDestination: if the destination URL is invalid or unsupported
        DialFailure: if the destination could not be reached
    """
    if isinstance(destination, str):
        destination = parse_destination(destination)

    connection = create_connection(destination)
    await connection.open()
    return connection
