import asyncio
import logging

from observability.metrics import MetricsSink
from service.graphite import GraphiteSink, MemorySink


def test_graphite_sink_delivers_payload():
    async def run():
        received = []
        done = asyncio.Event()

        async def handle(reader, writer):
            received.append(await reader.read())
            writer.close()
            done.set()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        metrics = MetricsSink()
        sink = GraphiteSink(f"127.0.0.1:{port}", metrics=metrics)

        assert await sink.send("gorets 1 100\n")
        await asyncio.wait_for(done.wait(), 2)
        server.close()
        await server.wait_closed()

        assert received == [b"gorets 1 100\n"]
        assert metrics.snapshot()["graphite_bytes_sent"] == len("gorets 1 100\n")

    asyncio.run(run())


def test_graphite_sink_connection_failure_is_counted():
    async def run():
        # grab a free port, then close it so the connection is refused
        server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        server.close()
        await server.wait_closed()

        metrics = MetricsSink()
        sink = GraphiteSink(f"127.0.0.1:{port}", timeout=1.0, metrics=metrics)
        assert await sink.send("x 1 1\n") is False
        assert metrics.snapshot()["graphite_errors"] == 1

    asyncio.run(run())


def test_disabled_sink_only_logs(caplog):
    sink = GraphiteSink("-", debug=True)
    caplog.set_level(logging.DEBUG, logger="tallyd.graphite")
    assert asyncio.run(sink.send("a 1 1\nb 2 1\n")) is True
    assert "[graphite] a 1 1" in caplog.text
    assert "[graphite] b 2 1" in caplog.text


def test_memory_sink_collects_lines():
    sink = MemorySink()
    asyncio.run(sink.send("a 1 1\n"))
    asyncio.run(sink.send("b 2 2\n"))
    assert sink.lines() == ["a 1 1", "b 2 2"]
