"""
Commit upstream offsets only after the write was accepted.

Pretend the messages came from a queue: each WriteRequest carries its offset
as pass-through, and the committer only sees offsets of successful writes.
"""

import asyncio
from dataclasses import dataclass

from loguru import logger
from pydantic import BaseModel

from search_client import InMemoryDocumentStore
from stream_connectors import FlowSettings, WriteFlow, WriteRequest


class Book(BaseModel):
    title: str


@dataclass(frozen=True)
class Offset:
    partition: int
    offset: int


class OffsetCommitter:
    def __init__(self):
        self.committed: list[Offset] = []

    async def commit(self, offset: Offset) -> None:
        self.committed.append(offset)


async def main():
    messages = [
        (Book(title="Book 1"), Offset(0, 0)),
        (Book(title="Book 2"), Offset(0, 1)),
        (Book(title="Book 3"), Offset(0, 2)),
    ]
    committer = OffsetCommitter()
    store = InMemoryDocumentStore()

    requests = (WriteRequest(id=book.title, payload=book, pass_through=off) for book, off in messages)
    async with WriteFlow(store, FlowSettings(batch_size=5)) as flow:
        summary = await flow.write_all(requests, commit=committer.commit)

    logger.info(f"written={summary.succeeded} failed={summary.failed}")
    logger.info(f"committed offsets: {[o.offset for o in committer.committed]}")


if __name__ == "__main__":
    asyncio.run(main())
