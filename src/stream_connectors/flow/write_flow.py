from __future__ import annotations

import asyncio
import inspect
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Generic, Optional, Union

from loguru import logger

from .accumulator import BatchAccumulator, Source
from .dispatcher import BulkDispatcher
from .dlq import DeadLetterQueue
from .emitter import ResultEmitter
from .policy import default_item_classifier
from .retry import RetryCoordinator
from .settings import FlowSettings
from .types import BulkStore, FlowClosedError, ItemClassifier, P, Result, WriteRequest

Commit = Callable[[Any], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class FlowHealth:
    """Point-in-time view of a WriteFlow."""

    flow_id: str
    batches_dispatched: int
    bulk_calls: int
    results_emitted: int
    succeeded: int
    failed: int
    retries_scheduled: int
    dispatch_in_flight: bool
    closed: bool


@dataclass
class WriteSummary(Generic[P]):
    """Outcome of draining a source through ``WriteFlow.write_all``."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failures: list[Result[P]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0


class WriteFlow(Generic[P]):
    """Batched, retrying write pipeline with pass-through results.

    accumulator -> dispatcher -> retry coordinator -> emitter, at most one
    bulk call in flight per flow.

    Example:
        store = InMemoryDocumentStore()
        async with WriteFlow(store, FlowSettings(batch_size=5)) as flow:
            async for result in flow.results(requests):
                if result.success:
                    commit(result.pass_through)
    """

    def __init__(
        self,
        store: BulkStore,
        settings: Optional[FlowSettings] = None,
        *,
        classifier: ItemClassifier = default_item_classifier,
        dlq: Optional[DeadLetterQueue[WriteRequest]] = None,
        flow_id: str = "flow",
    ):
        self.settings = settings or FlowSettings()
        self.flow_id = flow_id
        self._stopping = asyncio.Event()
        self._dispatcher = BulkDispatcher(store, classifier, flow_id=flow_id)
        self._coordinator: RetryCoordinator[P] = RetryCoordinator(
            self._dispatcher, self.settings, flow_id=flow_id, stopping=self._stopping
        )
        self._dlq = dlq
        self._emitters: set[ResultEmitter[P]] = set()
        self._accumulators: set[BatchAccumulator[P]] = set()

        self._batches_dispatched = 0
        self._results_emitted = 0
        self._succeeded = 0
        self._failed = 0

    # --------------- lifecycle

    async def __aenter__(self) -> "WriteFlow[P]":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    @property
    def closed(self) -> bool:
        return self._stopping.is_set()

    async def aclose(self) -> None:
        """Stop forming batches, cancel retry timers and let an in-flight call finish."""
        if self.closed:
            return
        self._stopping.set()
        for acc in list(self._accumulators):
            await acc.aclose()
        if not await self._dispatcher.wait_idle(self.settings.drain_timeout):
            logger.warning(
                f"[{self.flow_id}] in-flight bulk call still running after "
                f"{self.settings.drain_timeout}s"
            )
        logger.info(f"[{self.flow_id}] write flow closed")

    # --------------- runs

    async def results(self, source: Source) -> AsyncIterator[Result[P]]:
        """Write ``source`` and yield one Result per request."""
        emitter = self._open(source)
        try:
            async with aclosing(emitter.results()) as stream:
                async for result in stream:
                    self._account(result)
                    yield result
        finally:
            self._release(emitter)

    async def batches(self, source: Source) -> AsyncIterator[list[Result[P]]]:
        """Write ``source`` and yield the Results of each batch as one list."""
        emitter = self._open(source)
        try:
            async with aclosing(emitter.batches()) as stream:
                async for batch in stream:
                    for result in batch:
                        self._account(result)
                    yield batch
        finally:
            self._release(emitter)

    async def write_all(self, source: Source, *, commit: Optional[Commit] = None) -> WriteSummary[P]:
        """Drain ``source`` through the flow.

        ``commit`` (sync or async) is called with the pass-through of every
        successful result, in emission order, and never for failures.
        """
        summary: WriteSummary[P] = WriteSummary()
        async with aclosing(self.results(source)) as stream:
            async for result in stream:
                summary.total += 1
                if result.success:
                    summary.succeeded += 1
                    if commit is not None:
                        ret = commit(result.pass_through)
                        if inspect.isawaitable(ret):
                            await ret
                else:
                    summary.failed += 1
                    summary.failures.append(result)
        if summary.failed:
            logger.warning(
                f"[{self.flow_id}] {summary.failed}/{summary.total} write(s) failed"
            )
        return summary

    def health(self) -> FlowHealth:
        return FlowHealth(
            flow_id=self.flow_id,
            batches_dispatched=self._batches_dispatched
            + sum(e.batches_dispatched for e in self._emitters),
            bulk_calls=self._dispatcher.calls,
            results_emitted=self._results_emitted,
            succeeded=self._succeeded,
            failed=self._failed,
            retries_scheduled=self._coordinator.retries_scheduled,
            dispatch_in_flight=self._dispatcher.busy,
            closed=self.closed,
        )

    # --------------- internals

    def _open(self, source: Source) -> ResultEmitter[P]:
        if self.closed:
            raise FlowClosedError(f"write flow {self.flow_id!r} is closed")
        accumulator: BatchAccumulator[P] = BatchAccumulator(
            source,
            self.settings.batch_size,
            flush_interval=self.settings.flush_interval,
        )
        emitter = ResultEmitter(
            accumulator,
            self._coordinator,
            stopping=self._stopping,
            dlq=self._dlq,
            flow_id=self.flow_id,
        )
        self._accumulators.add(accumulator)
        self._emitters.add(emitter)
        return emitter

    def _release(self, emitter: ResultEmitter[P]) -> None:
        self._emitters.discard(emitter)
        self._accumulators.discard(emitter.accumulator)
        self._batches_dispatched += emitter.batches_dispatched

    def _account(self, result: Result[P]) -> None:
        self._results_emitted += 1
        if result.success:
            self._succeeded += 1
        else:
            self._failed += 1
