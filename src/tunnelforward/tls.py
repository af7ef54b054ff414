"""Process-wide TLS client context used when the forwarder terminates TLS
towards an HTTPS or TLS destination.

The context is built from the root certificates in the trust store of the
operating system the first time it is needed. The outcome of this first
attempt is cached for the lifetime of the process, so a failure to load
the certificates is reported to every caller without trying again.
"""

import ssl

from threading import Lock
from typing import Callable, Optional, Tuple

from .errors import DialFailure

__all__ = (
    "TLSClientContextCache",
    "create_tls_client_context",
    "default_cache",
    "get_tls_client_context",
)


def create_tls_client_context() -> ssl.SSLContext:
    """Creates a client-only TLS context that trusts the root certificates of
    the operating system, verifies the certificate and hostname of the server
    and does not present a client certificate.

    Raises:
        OSError: if the native certificate store cannot be loaded
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.verify_mode = ssl.CERT_REQUIRED
    context.check_hostname = True
    context.load_default_certs(ssl.Purpose.SERVER_AUTH)
    return context


class TLSClientContextCache:
    """Compute-once holder of a TLS client context.

    The factory is invoked at most once, even when multiple threads ask for
    the context at the same time. Both the context and the error raised by
    the factory are remembered.
    """

    def __init__(self, factory: Callable[[], ssl.SSLContext] = create_tls_client_context):
        """Constructor.

        Parameters:
            factory: function that creates the TLS context when called with
                no arguments
        """
        self._factory = factory
        self._lock = Lock()
        self._outcome: Optional[Tuple[Optional[ssl.SSLContext], Optional[Exception]]] = None

    @property
    def initialized(self) -> bool:
        """Returns whether the context was already computed (successfully or
        not).
        """
        return self._outcome is not None

    def get(self) -> ssl.SSLContext:
        """Returns the shared TLS client context, creating it first if needed.

        Raises:
            DialFailure: if the context could not be created, now or at the
                time of the first invocation. The original error is available
                as the cause of the exception.
        """
        if self._outcome is None:
            with self._lock:
                if self._outcome is None:
                    try:
                        self._outcome = (self._factory(), None)
                    except (OSError, ValueError) as ex:
                        self._outcome = (None, ex)

        context, error = self._outcome
        if error is not None:
            raise DialFailure(f"failed to load native root certificates: {error}") from error

        return context


default_cache = TLSClientContextCache()  #: Process-wide cache instance


def get_tls_client_context() -> ssl.SSLContext:
    """Returns the process-wide TLS client context."""
    return default_cache.get()
