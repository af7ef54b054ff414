"""Bidirectional byte relay between the inbound and the outbound leg of a
forwarded connection.
"""

import logging

from attr import attrib, attrs
from functools import partial
from trio import (
    BrokenResourceError,
    CancelScope,
    ClosedResourceError,
    aclose_forcefully,
)
from trio.abc import Stream
from trio_util import wait_any
from typing import Any, Dict, List, Optional

from .errors import RelayFailure

__all__ = ("RelayOutcome", "copy_bidirectional", "join_streams")


CHUNK_SIZE = 65536

log = logging.getLogger(__name__)


@attrs
class RelayOutcome:
    """Number of bytes moved in each direction by the relay, and the error
    that terminated the relay, if any.
    """

    from_inbound: int = attrib(default=0)
    from_outbound: int = attrib(default=0)
    error: Optional[BaseException] = attrib(default=None)

    @property
    def failed(self) -> bool:
        return self.error is not None


async def copy_bidirectional(inbound: Stream, outbound: Stream) -> RelayOutcome:
    """Copies bytes between the two streams in both directions until one of
    them signals end-of-stream or an I/O error happens on either side. Both
    streams are closed when the function returns.

    Returns:
        the number of bytes moved in each direction

    Raises:
        RelayFailure: if an I/O error happened on either stream. The exception
            carries the number of bytes moved before the error.
    """
    outcome = RelayOutcome()
    errors: List[Exception] = []

    async def pump(source: Stream, target: Stream, counter: str) -> None:
        try:
            while True:
                data = await source.receive_some(CHUNK_SIZE)
                if not data:
                    break
                await target.send_all(data)
                setattr(outcome, counter, getattr(outcome, counter) + len(data))
        except (BrokenResourceError, ClosedResourceError, OSError) as ex:
            errors.append(ex)

    try:
        await wait_any(
            partial(pump, inbound, outbound, "from_inbound"),
            partial(pump, outbound, inbound, "from_outbound"),
        )
    finally:
        # Both legs must be closed even if the relay itself was cancelled
        with CancelScope(shield=True):
            await aclose_forcefully(inbound)
            await aclose_forcefully(outbound)

    if errors:
        error = errors[0]
        raise RelayFailure(
            str(error.__cause__ or error) or repr(error),
            from_inbound=outcome.from_inbound,
            from_outbound=outcome.from_outbound,
        ) from error

    return outcome


async def join_streams(
    inbound: Stream, outbound: Stream, *, extra: Optional[Dict[str, Any]] = None
) -> RelayOutcome:
    """Relays bytes between the two streams until either of them closes.

    I/O errors are logged and discarded; they are reported only in the
    ``error`` attribute of the returned outcome.
    """
    try:
        outcome = await copy_bidirectional(inbound, outbound)
    except RelayFailure as ex:
        log.debug(f"Joined streams error: {ex}", extra=extra)
        return RelayOutcome(ex.from_inbound, ex.from_outbound, ex)

    log.debug(
        f"Joined streams closed, bytes from tunnel: {outcome.from_inbound}, "
        f"bytes from local: {outcome.from_outbound}",
        extra=extra,
    )
    return outcome
