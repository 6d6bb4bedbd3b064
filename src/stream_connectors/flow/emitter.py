from __future__ import annotations

import asyncio
from contextlib import aclosing
from typing import AsyncIterator, Generic, Optional

from loguru import logger

from .accumulator import BatchAccumulator
from .dlq import DeadLetterQueue
from .retry import RetryCoordinator
from .types import P, Result, WriteRequest

_BATCH_END = object()


class ResultEmitter(Generic[P]):
    """Pulls batches from the accumulator and yields their Results lazily.

    Results of one batch come out in the batch's request order. Batches are
    emitted in completion order. Terminal failures of a batch are written to
    the DLQ (if any) once the batch is done.
    """

    def __init__(
        self,
        accumulator: BatchAccumulator[P],
        coordinator: RetryCoordinator[P],
        *,
        stopping: asyncio.Event,
        dlq: Optional[DeadLetterQueue[WriteRequest]] = None,
        flow_id: str = "flow",
    ):
        self.accumulator = accumulator
        self._coordinator = coordinator
        self._stopping = stopping
        self._dlq = dlq
        self._flow_id = flow_id
        self.batches_dispatched = 0

    async def results(self) -> AsyncIterator[Result[P]]:
        """Yield Results one at a time, as soon as they are released."""
        async with aclosing(self._stream()) as stream:
            async for item in stream:
                if item is not _BATCH_END:
                    yield item

    async def batches(self) -> AsyncIterator[list[Result[P]]]:
        """Yield one list of Results per completed batch."""
        batch: list[Result[P]] = []
        async with aclosing(self._stream()) as stream:
            async for item in stream:
                if item is _BATCH_END:
                    if batch:
                        yield batch
                    batch = []
                else:
                    batch.append(item)

    async def _stream(self) -> AsyncIterator[object]:
        try:
            while not self._stopping.is_set():
                batch = await self.accumulator.next_batch()
                if batch is None or self._stopping.is_set():
                    break

                self.batches_dispatched += 1
                failures: list[Result[P]] = []
                async with aclosing(self._coordinator.resolve(batch)) as resolved:
                    async for result in resolved:
                        if not result.success:
                            failures.append(result)
                        yield result

                await self._dead_letter(failures)
                yield _BATCH_END
        finally:
            await self.accumulator.aclose()

    async def _dead_letter(self, failures: list[Result[P]]) -> None:
        if not failures or self._dlq is None:
            return
        try:
            await self._dlq.save(
                [r.request for r in failures],
                "; ".join(f"{r.request.id}: {r.error}" for r in failures),
                {
                    "flow": self._flow_id,
                    "reasons": [r.outcome.reason.value for r in failures],
                    "retry_counts": [r.outcome.retry_count for r in failures],
                },
            )
        except Exception as exc:
            # later batches keep flowing
            logger.error(
                f"[{self._flow_id}] DLQ write of {len(failures)} item(s) failed: "
                f"{type(exc).__name__}: {exc}"
            )
            return
        logger.info(f"[{self._flow_id}] {len(failures)} failed item(s) written to DLQ")
