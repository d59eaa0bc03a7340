"""Quick ingest->flush smoke script printing the emitted lines and phase timings."""
from __future__ import annotations

import asyncio
import random
import time

from service.config import DaemonConfig
from service.daemon import StatsDaemon
from service.graphite import MemorySink


async def run_smoke(packets: int = 10000):
    config = DaemonConfig(graphite="-", percentile_thresholds=["90", "-10"])
    sink = MemorySink()
    daemon = StatsDaemon(config, sink=sink)

    rng = random.Random(438)
    start = time.time()
    for i in range(packets):
        payload = (
            f"smoke.requests:1|c|@0.5\n"
            f"smoke.queue_depth:{rng.randint(0, 50)}|g\n"
            f"smoke.response_time.{i % 10}:{rng.randint(0, 999)}|ms"
        )
        daemon.handle_datagram(payload.encode())
    ingest_ms = (time.time() - start) * 1000.0

    result = await daemon.flush_once()

    print("Ingested %d datagrams in %.2f ms" % (packets, ingest_ms))
    print("Flush emitted %d lines for %d buckets" % (result.lines, result.buckets))
    print("Trace spans:")
    for span in daemon.tracer.export():
        print(f" - {span['name']}: {span['duration_ms']:.2f} ms")
    for line in sink.lines()[:12]:
        print("  ", line)


def main():
    asyncio.run(run_smoke())


if __name__ == "__main__":
    main()
