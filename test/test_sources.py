from trio import open_tcp_listeners, open_tcp_stream
from trio.testing import memory_stream_pair

from tunnelforward.sources import InboundConnection, ListenerSource, TunnelSource


class CountdownSource(TunnelSource):
    def __init__(self, count):
        self.count = count

    @property
    def id(self):
        return "countdown"

    async def next_connection(self):
        if not self.count:
            return None
        self.count -= 1
        _, stream = memory_stream_pair()
        return InboundConnection(stream=stream, id=str(self.count))


class TestTunnelSource:
    async def test_async_iteration_ends_with_source(self):
        ids = [conn.id async for conn in CountdownSource(3)]
        assert ids == ["2", "1", "0"]


class TestListenerSource:
    async def test_accepts_connections_until_closed(self):
        listener = (await open_tcp_listeners(0, host="127.0.0.1"))[0]
        port = listener.socket.getsockname()[1]
        source = ListenerSource(listener, protocol="http", id="tunnel")

        clients = [await open_tcp_stream("127.0.0.1", port) for _ in range(2)]

        accepted = []
        async for conn in source:
            accepted.append(conn)
            if len(accepted) == 2:
                await source.aclose()

        assert [conn.id for conn in accepted] == ["tunnel-1", "tunnel-2"]
        for conn, client in zip(accepted, clients):
            local_port = client.socket.getsockname()[1]
            assert conn.protocol == "http"
            assert conn.remote_address == f"127.0.0.1:{local_port}"
            await conn.stream.aclose()
            await client.aclose()

        assert await source.next_connection() is None
