from __future__ import annotations

import asyncio
from typing import AsyncIterable, AsyncIterator, Generic, Iterable, Optional, Union

from loguru import logger

from .types import P, WriteRequest

Source = Union[Iterable[WriteRequest[P]], AsyncIterable[WriteRequest[P]]]

_END = object()


class _UpstreamFailed:
    __slots__ = ("error",)

    def __init__(self, error: BaseException):
        self.error = error


async def _aiter(source: Source) -> AsyncIterator[WriteRequest]:
    if hasattr(source, "__aiter__"):
        async for item in source:  # type: ignore[union-attr]
            yield item
    else:
        for item in source:  # type: ignore[union-attr]
            yield item


class BatchAccumulator(Generic[P]):
    """Groups upstream write requests into bounded batches.

    A pump task pulls from ``source`` into a queue of ``batch_size`` slots, so
    upstream is only drained while there is room. ``next_batch()`` returns when
    the batch is full, when upstream ends (partial batch), or when
    ``flush_interval`` has elapsed since the first buffered request.
    """

    def __init__(
        self,
        source: Source,
        batch_size: int,
        *,
        flush_interval: Optional[float] = None,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self._source = source
        self._batch_size = batch_size
        self._flush_interval = flush_interval
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=batch_size)
        self._task: Optional[asyncio.Task] = None
        self._exhausted = False
        self._error: Optional[BaseException] = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._pump())

    async def aclose(self) -> None:
        """Stop pulling from upstream and wake a consumer blocked in ``next_batch``.

        Requests still buffered are dropped; they were never dispatched.
        """
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_END)

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    async def next_batch(self) -> Optional[list[WriteRequest[P]]]:
        """Next batch, or None once upstream is exhausted.

        An upstream exception is raised after any buffered requests have been
        returned as a final batch.
        """
        if self._exhausted:
            return self._raise_or_none()
        self.start()

        loop = asyncio.get_running_loop()
        batch: list[WriteRequest[P]] = []
        deadline: Optional[float] = None

        while len(batch) < self._batch_size:
            if deadline is None:
                item = await self._queue.get()
            else:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                try:
                    item = await asyncio.wait_for(self._queue.get(), timeout=remaining)
                except asyncio.TimeoutError:
                    break

            if item is _END:
                self._exhausted = True
                break
            if isinstance(item, _UpstreamFailed):
                self._exhausted = True
                self._error = item.error
                break

            batch.append(item)
            if deadline is None and self._flush_interval is not None:
                deadline = loop.time() + self._flush_interval

        if batch:
            return batch
        return self._raise_or_none()

    # --------------- internals

    def _raise_or_none(self) -> None:
        if self._error is not None:
            error, self._error = self._error, None
            raise error
        return None

    async def _pump(self) -> None:
        try:
            async for request in _aiter(self._source):
                await self._queue.put(request)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(f"Upstream failed: {type(exc).__name__}: {exc}")
            await self._queue.put(_UpstreamFailed(exc))
            return
        await self._queue.put(_END)
