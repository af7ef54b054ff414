"""Base class for the outbound connections that the forwarder dials."""

from abc import ABCMeta, abstractmethod
from blinker import Signal
from enum import Enum


__all__ = ("ConnectionBase", "ConnectionState")


class ConnectionState(Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    DISCONNECTING = "DISCONNECTING"


class ConnectionBase(metaclass=ABCMeta):
    """Base class for outbound connections that lead from the forwarder to
    the local destination.

    An outbound connection is dialed at most once at a time. Subclasses
    implement `_open()` and `_close()` and *MUST* change the state through
    `_set_state()` so that the signal is dispatched.
    """

    state_changed = Signal(
        doc="""\
        Signal sent whenever the state of the connection changes.

        Parameters:
            new_state (ConnectionState): the new state
            old_state (ConnectionState): the old state
        """
    )

    def __init__(self):
        self._state = ConnectionState.DISCONNECTED

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def is_disconnected(self) -> bool:
        return self._state is ConnectionState.DISCONNECTED

    def _set_state(self, new_state: ConnectionState) -> None:
        old_state = self._state
        if new_state is not old_state:
            self._state = new_state
            self.state_changed.send(self, old_state=old_state, new_state=new_state)

    async def open(self) -> None:
        """Dials the destination of the connection. No-op if the connection
        is open already.

        There is exactly one dial attempt per invocation; errors are not
        retried here.

        Raises:
            RuntimeError: if the connection is being opened or closed by
                another task
        """
        if self._state is ConnectionState.CONNECTED:
            return
        if self._state is not ConnectionState.DISCONNECTED:
            raise RuntimeError(f"cannot open connection in state {self._state.name}")

        self._set_state(ConnectionState.CONNECTING)
        success = False
        try:
            await self._open()
            success = True
        finally:
            self._set_state(
                ConnectionState.CONNECTED if success else ConnectionState.DISCONNECTED
            )

    async def close(self) -> None:
        """Closes the connection. No-op unless the connection is open."""
        if self._state is not ConnectionState.CONNECTED:
            return

        self._set_state(ConnectionState.DISCONNECTING)
        try:
            await self._close()
        finally:
            self._set_state(ConnectionState.DISCONNECTED)

    @abstractmethod
    async def _open(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def _close(self) -> None:
        raise NotImplementedError
