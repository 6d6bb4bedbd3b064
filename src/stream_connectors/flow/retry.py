from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Generic, Optional, Sequence

from loguru import logger

from ..metrics.registry import FLOW_ITEMS_TOTAL, FLOW_RETRIES_TOTAL
from .dispatcher import BulkDispatcher
from .settings import FlowSettings
from .types import BatchItemOutcome, FailureReason, P, Result, WriteRequest


class ItemState(str, Enum):
    PENDING = "pending"
    DISPATCHED = "dispatched"
    RETRYING = "retrying"
    DONE = "done"


@dataclass
class _Slot(Generic[P]):
    request: WriteRequest[P]
    state: ItemState = ItemState.PENDING
    retry_count: int = 0
    outcome: Optional[BatchItemOutcome] = None


class RetryCoordinator(Generic[P]):
    """Drives one batch to completion through the dispatcher.

    Every round dispatches all items still unresolved, regrouped into one bulk
    call. Retryable outcomes wait ``retry_interval`` and go again until
    ``max_retry`` re-dispatches are spent, then become RETRIES_EXHAUSTED.
    Results are yielded in batch order as soon as the leading items are done.

    ``stopping`` interrupts the retry wait; once set no further round is
    dispatched and unresolved items produce no Result.
    """

    def __init__(
        self,
        dispatcher: BulkDispatcher,
        settings: FlowSettings,
        *,
        flow_id: str = "flow",
        stopping: Optional[asyncio.Event] = None,
    ):
        self._dispatcher = dispatcher
        self._settings = settings
        self._flow_id = flow_id
        self._stopping = stopping or asyncio.Event()
        self.retries_scheduled = 0

    async def resolve(self, batch: Sequence[WriteRequest[P]]) -> AsyncIterator[Result[P]]:
        slots = [_Slot(request) for request in batch]
        released = 0
        pending = slots

        while pending:
            for slot in pending:
                slot.state = ItemState.DISPATCHED
            outcomes = await self._dispatcher.dispatch([slot.request for slot in pending])

            retrying = [slot for slot, outcome in zip(pending, outcomes) if self._settle(slot, outcome)]

            while released < len(slots) and slots[released].state is ItemState.DONE:
                slot = slots[released]
                yield Result(slot.request, slot.outcome)
                released += 1

            if not retrying:
                break

            FLOW_RETRIES_TOTAL.labels(self._flow_id).inc(len(retrying))
            self.retries_scheduled += len(retrying)
            logger.debug(
                f"[{self._flow_id}] {len(retrying)} item(s) retrying in "
                f"{self._settings.retry_interval}s"
            )
            if await self._wait_retry_interval():
                logger.info(
                    f"[{self._flow_id}] stopping; {len(slots) - released} unresolved item(s) dropped"
                )
                return
            for slot in retrying:
                slot.retry_count += 1
            pending = retrying

    # --------------- internals

    def _settle(self, slot: _Slot, outcome: BatchItemOutcome) -> bool:
        """Apply an outcome to a slot. Returns True if the slot goes round again."""
        if not outcome.is_retryable:
            self._finish(slot, outcome)
            return False

        retry_allowed = (
            outcome.reason is FailureReason.TRANSPORT_FAILURE
            or self._settings.retry_on_partial_failure
        )
        if not retry_allowed:
            self._finish(slot, BatchItemOutcome.terminal(outcome.reason, outcome.message))
            return False

        if slot.retry_count >= self._settings.max_retry:
            logger.warning(
                f"[{self._flow_id}] giving up on {slot.request.id} after "
                f"{slot.retry_count + 1} attempt(s): {outcome.message}"
            )
            self._finish(
                slot,
                BatchItemOutcome.terminal(
                    FailureReason.RETRIES_EXHAUSTED,
                    f"retries exhausted after {slot.retry_count + 1} attempt(s): {outcome.message}",
                ),
            )
            return False

        slot.state = ItemState.RETRYING
        return True

    def _finish(self, slot: _Slot, outcome: BatchItemOutcome) -> None:
        slot.outcome = outcome.with_retry_count(slot.retry_count)
        slot.state = ItemState.DONE
        reason = outcome.reason.value if outcome.reason else ""
        FLOW_ITEMS_TOTAL.labels(self._flow_id, outcome.status.value, reason).inc()

    async def _wait_retry_interval(self) -> bool:
        """Sleep for the retry interval. Returns True if stopping was signalled."""
        if self._stopping.is_set():
            return True
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=self._settings.retry_interval)
        except asyncio.TimeoutError:
            return False
        return True
