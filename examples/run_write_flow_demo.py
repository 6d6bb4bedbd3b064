"""
Demo script for WriteFlow.

Writes documents into the in-memory store through a flaky wrapper so that
retries, version conflicts and exhaustion all show up in the output.
"""

import asyncio
import random
from typing import Sequence

from loguru import logger

from search_client import BulkAction, BulkItemResponse, InMemoryDocumentStore
from stream_connectors import FlowSettings, WriteFlow, WriteRequest


class FlakyStore:
    """Answers 503 for a random share of items, otherwise delegates."""

    def __init__(self, inner: InMemoryDocumentStore, failure_rate: float = 0.2):
        self._inner = inner
        self._rate = failure_rate

    async def bulk(self, actions: Sequence[BulkAction]) -> list[BulkItemResponse]:
        await asyncio.sleep(0.01)  # Simulate I/O latency
        out = []
        for action in actions:
            if random.random() < self._rate:
                out.append(BulkItemResponse(id=action.id, status=503, error_type="unavailable"))
            else:
                (resp,) = await self._inner.bulk([action])
                out.append(resp)
        return out


async def main():
    inner = InMemoryDocumentStore()
    inner.seed("book-7", {"title": "Solaris"}, version=3)
    store = FlakyStore(inner)

    requests = [
        WriteRequest(id=f"book-{i}", payload={"title": f"Book {i}"}, pass_through=i)
        for i in range(20)
    ]
    # stale version -> terminal conflict
    requests[7] = WriteRequest(id="book-7", payload={"title": "x"}, expected_version=1, pass_through=7)

    settings = FlowSettings(batch_size=5, max_retry=3, retry_interval=0.05)
    async with WriteFlow(store, settings, flow_id="demo") as flow:
        logger.info("🚀 Writing 20 documents in batches of 5")
        async for batch in flow.batches(requests):
            logger.info(
                "Batch done: "
                + ", ".join(
                    f"{r.pass_through}:{'ok' if r.success else r.outcome.reason.value}" for r in batch
                )
            )
        health = flow.health()
        logger.info(
            f"Final health: calls={health.bulk_calls} retries={health.retries_scheduled} "
            f"ok={health.succeeded} failed={health.failed}"
        )

    logger.info(f"✅ Demo complete, store holds {len(inner)} documents")


if __name__ == "__main__":
    asyncio.run(main())
