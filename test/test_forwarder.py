from functools import partial
from pytest import raises
from trio import (
    BrokenResourceError,
    open_nursery,
    open_tcp_listeners,
    open_tcp_stream,
    serve_tcp,
)
from trio.abc import Stream
from trio.lowlevel import checkpoint
from trio.testing import memory_stream_pair

from tunnelforward.connections import StreamConnection
from tunnelforward.errors import DialFailure, InvalidDestination, SourceUnavailable
from tunnelforward.forwarder import Forwarder
from tunnelforward.sources import InboundConnection, ListenerSource, TunnelSource


class ListSource(TunnelSource):
    """Tunnel source that yields a fixed list of connections, then either
    ends or fails.
    """

    def __init__(self, connections, error=None):
        self._connections = list(connections)
        self._error = error

    @property
    def id(self):
        return "test"

    async def next_connection(self):
        await checkpoint()
        if self._connections:
            return self._connections.pop(0)
        if self._error is not None:
            raise self._error
        return None


class EchoForwarder(Forwarder):
    """Forwarder whose destination is an in-memory echo server, except for
    the connections whose dial is scripted to fail and the ones whose
    outbound stream breaks after sending some data.
    """

    def __init__(self, nursery, failing=(), broken=None):
        super().__init__("http://localhost:8080")
        self._nursery = nursery
        self._failing = set(failing)
        self._broken = dict(broken or {})

    async def connect(self, conn):
        if conn.id in self._failing:
            raise DialFailure("connection refused")

        if conn.id in self._broken:
            local = BrokenStream(self._broken[conn.id])
        else:
            local, remote = memory_stream_pair()
            self._nursery.start_soon(echo, remote)

        connection = StreamConnection(partial(return_value, local))
        await connection.open()
        return connection


class BrokenStream(Stream):
    """Outbound stream that sends some data, then fails with an I/O error."""

    def __init__(self, data):
        self.data = data

    async def receive_some(self, max_bytes=None):
        await checkpoint()
        if self.data:
            data, self.data = self.data, b""
            return data
        raise BrokenResourceError("connection reset by peer")

    async def send_all(self, data):
        await checkpoint()

    async def wait_send_all_might_not_block(self):
        pass

    async def aclose(self):
        await checkpoint()


async def echo(stream):
    async with stream:
        while True:
            data = await stream.receive_some()
            if not data:
                break
            await stream.send_all(data)


async def return_value(value):
    return value


async def receive_all(stream):
    chunks = []
    while True:
        data = await stream.receive_some()
        if not data:
            break
        chunks.append(data)
    return b"".join(chunks)


def create_connections(count, protocol="http"):
    clients, connections = [], []
    for index in range(1, count + 1):
        client, server = memory_stream_pair()
        clients.append(client)
        connections.append(
            InboundConnection(
                stream=server,
                remote_address=f"198.51.100.{index}:40000",
                protocol=protocol,
                id=str(index),
            )
        )
    return clients, connections


class EventRecorder:
    def __init__(self, forwarder):
        self.accepted = []
        self.dial_failed = []
        self.relay_closed = {}
        forwarder.accepted.connect(self.on_accepted, sender=forwarder)
        forwarder.dial_failed.connect(self.on_dial_failed, sender=forwarder)
        forwarder.relay_closed.connect(self.on_relay_closed, sender=forwarder)

    def on_accepted(self, sender, connection):
        self.accepted.append(connection.id)

    def on_dial_failed(self, sender, connection, error):
        self.dial_failed.append((connection.id, error))

    def on_relay_closed(self, sender, connection, outcome):
        self.relay_closed[connection.id] = outcome


class TestForwarder:
    async def test_returns_when_source_is_empty(self, nursery):
        forwarder = EchoForwarder(nursery)
        events = EventRecorder(forwarder)

        await forwarder.forward(ListSource([]))

        assert events.accepted == []

    async def test_failed_dial_does_not_stop_other_connections(self, nursery):
        clients, connections = create_connections(3)
        forwarder = EchoForwarder(nursery, failing={"2"})
        events = EventRecorder(forwarder)

        async with open_nursery() as inner:
            inner.start_soon(forwarder.forward, ListSource(connections))

            await clients[0].send_all(b"first")
            assert await clients[0].receive_some() == b"first"

            await clients[1].send_all(b"GET / HTTP/1.1\r\nHost: example.com\r\n\r\n")
            response = await receive_all(clients[1])

            await clients[2].send_all(b"third!")
            assert await clients[2].receive_some() == b"third!"

            await clients[0].aclose()
            await clients[2].aclose()

        assert response.startswith(b"HTTP/1.1 502 Bad Gateway\r\n")
        assert response.endswith(b"failed to dial backend: connection refused")

        assert sorted(events.accepted) == ["1", "2", "3"]
        assert [conn_id for conn_id, _ in events.dial_failed] == ["2"]
        assert sorted(events.relay_closed) == ["1", "3"]
        assert events.relay_closed["1"].from_inbound == 5
        assert events.relay_closed["1"].from_outbound == 5
        assert events.relay_closed["3"].from_inbound == 6
        assert not events.relay_closed["3"].failed

    async def test_failed_dial_closes_non_http_connection(self, nursery):
        clients, connections = create_connections(1, protocol="tcp")
        forwarder = EchoForwarder(nursery, failing={"1"})

        async with open_nursery() as inner:
            inner.start_soon(forwarder.forward, ListSource(connections))
            assert await receive_all(clients[0]) == b""

    async def test_head_request_to_failed_dial(self, nursery):
        clients, connections = create_connections(2)
        forwarder = EchoForwarder(nursery, failing={"1", "2"})
        events = EventRecorder(forwarder)

        async with open_nursery() as inner:
            inner.start_soon(forwarder.forward, ListSource(connections))

            await clients[0].send_all(b"HEAD / HTTP/1.1\r\nHost: example.com\r\n\r\n")
            head_response = await receive_all(clients[0])

            await clients[1].send_all(b"GET / HTTP/1.1\r\nHost: example.com\r\n\r\n")
            get_response = await receive_all(clients[1])

        assert head_response.startswith(b"HTTP/1.1 502 Bad Gateway\r\n")
        assert head_response.endswith(b"\r\n\r\n")
        assert b"failed to dial backend" not in head_response
        assert get_response.endswith(b"failed to dial backend: connection refused")
        assert sorted(conn_id for conn_id, _ in events.dial_failed) == ["1", "2"]

    async def test_relay_failure_does_not_stop_forwarding(self, nursery):
        clients, connections = create_connections(2, protocol="tcp")
        forwarder = EchoForwarder(nursery, broken={"1": b"partial response"})
        events = EventRecorder(forwarder)

        async with open_nursery() as inner:
            inner.start_soon(forwarder.forward, ListSource(connections))

            assert await receive_all(clients[0]) == b"partial response"

            await clients[1].send_all(b"still served")
            assert await clients[1].receive_some() == b"still served"
            await clients[1].aclose()

        outcome = events.relay_closed["1"]
        assert outcome.failed
        assert isinstance(outcome.error.__cause__, BrokenResourceError)
        assert outcome.from_outbound == len(b"partial response")
        assert not events.relay_closed["2"].failed

    async def test_unexpected_error_is_contained(self, nursery):
        clients, connections = create_connections(2, protocol="tcp")
        forwarder = EchoForwarder(nursery)

        def fail_once(sender, connection, outcome):
            if connection.id == "1":
                raise KeyError("bug in receiver")

        forwarder.relay_closed.connect(fail_once, sender=forwarder)

        async with open_nursery() as inner:
            inner.start_soon(forwarder.forward, ListSource(connections))

            await clients[0].aclose()

            await clients[1].send_all(b"second")
            assert await clients[1].receive_some() == b"second"
            await clients[1].aclose()

    async def test_invalid_destination_is_contained(self):
        clients, connections = create_connections(3, protocol="tcp")
        forwarder = Forwarder("ftp://host")
        events = EventRecorder(forwarder)

        await forwarder.forward(ListSource(connections))

        assert sorted(events.accepted) == ["1", "2", "3"]
        assert len(events.dial_failed) == 3
        for _, error in events.dial_failed:
            assert isinstance(error, InvalidDestination)
            assert "ftp://host" in str(error)

        for client in clients:
            assert await client.receive_some() == b""

    async def test_source_failure(self, nursery):
        _, connections = create_connections(1)
        error = ConnectionResetError("tunnel session closed")
        forwarder = EchoForwarder(nursery)

        with raises(SourceUnavailable, match="tunnel session closed") as info:
            await forwarder.forward(ListSource(connections, error=error))

        assert info.value.__cause__ is error

    async def test_source_failure_cancels_outstanding_relays(self, nursery):
        clients, connections = create_connections(1)
        forwarder = EchoForwarder(nursery)

        with raises(SourceUnavailable):
            await forwarder.forward(ListSource(connections, error=EOFError()))

        # The relay of the only connection was torn down with the tunnel
        assert await receive_all(clients[0]) == b""


class TestForwardingOverTCP:
    async def test_forwards_to_local_tcp_server(self, nursery):
        listeners = await nursery.start(partial(serve_tcp, echo, 0, host="127.0.0.1"))
        local_port = listeners[0].socket.getsockname()[1]

        tunnel_listener = (await open_tcp_listeners(0, host="127.0.0.1"))[0]
        tunnel_port = tunnel_listener.socket.getsockname()[1]
        source = ListenerSource(tunnel_listener, protocol="tcp")

        forwarder = Forwarder(f"tcp://127.0.0.1:{local_port}")
        events = EventRecorder(forwarder)

        async with open_nursery() as inner:
            inner.start_soon(forwarder.forward, source)

            client = await open_tcp_stream("127.0.0.1", tunnel_port)
            await client.send_all(b"over the tunnel")
            received = b""
            while len(received) < 15:
                received += await client.receive_some()
            assert received == b"over the tunnel"

            await client.aclose()
            await source.aclose()

        assert events.accepted == ["local-1"]
        (outcome,) = events.relay_closed.values()
        assert outcome.from_inbound == 15
        assert outcome.from_outbound == 15

    async def test_bad_gateway_for_unreachable_http_server(self):
        tunnel_listener = (await open_tcp_listeners(0, host="127.0.0.1"))[0]
        tunnel_port = tunnel_listener.socket.getsockname()[1]

        listeners = await open_tcp_listeners(0, host="127.0.0.1")
        unused_port = listeners[0].socket.getsockname()[1]
        await listeners[0].aclose()
        source = ListenerSource(tunnel_listener, protocol="http")

        forwarder = Forwarder(f"http://127.0.0.1:{unused_port}")

        async with open_nursery() as inner:
            inner.start_soon(forwarder.forward, source)

            client = await open_tcp_stream("127.0.0.1", tunnel_port)
            await client.send_all(b"GET / HTTP/1.1\r\nHost: localhost\r\n\r\n")
            response = await receive_all(client)
            await client.aclose()
            await source.aclose()

        assert response.startswith(b"HTTP/1.1 502 Bad Gateway")
        assert b"failed to dial backend" in response
