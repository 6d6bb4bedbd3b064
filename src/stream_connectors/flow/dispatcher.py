from __future__ import annotations

import asyncio
import dataclasses
import json
import time
from typing import Any, Optional, Sequence

from loguru import logger
from pydantic import BaseModel

from search_client.models import BulkAction

from ..metrics.registry import FLOW_DISPATCH_LATENCY, FLOW_DISPATCH_TOTAL
from .policy import default_item_classifier
from .types import BatchItemOutcome, BulkStore, FailureReason, ItemClassifier, WriteRequest


def encode_payload(payload: Any) -> Optional[dict[str, Any]]:
    """Turn a request payload into a JSON-compatible mapping (None stays None).

    Serialized bodies (``str``/``bytes``) must decode to a JSON object.
    Raises TypeError or ValueError for anything that cannot be encoded.
    """
    if payload is None:
        return None
    if isinstance(payload, (str, bytes, bytearray)):
        decoded = json.loads(payload)
        if not isinstance(decoded, dict):
            raise TypeError(f"serialized payload must be a JSON object, got {type(decoded).__name__}")
        return decoded
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json")
    if dataclasses.is_dataclass(payload) and not isinstance(payload, type):
        return dataclasses.asdict(payload)
    return dict(payload)


def to_action(request: WriteRequest) -> BulkAction:
    return BulkAction(
        id=request.id,
        payload=encode_payload(request.payload),
        version=request.expected_version,
    )


class BulkDispatcher:
    """Sends one batch as one bulk call and classifies every response entry.

    Outcomes come back in batch order. A call that raises (or returns a
    response that does not line up with the batch) makes every item a
    retryable TRANSPORT_FAILURE. An item whose payload cannot be encoded is a
    terminal PERMANENT_ITEM_ERROR and is left out of the call. Only one call is
    in flight at a time.
    """

    def __init__(
        self,
        store: BulkStore,
        classifier: ItemClassifier = default_item_classifier,
        *,
        flow_id: str = "flow",
    ):
        self._store = store
        self._classify = classifier
        self._flow_id = flow_id
        self._slot = asyncio.Semaphore(1)
        self.calls = 0

    @property
    def busy(self) -> bool:
        return self._slot.locked()

    async def wait_idle(self, timeout: float) -> bool:
        """Wait until no call is in flight. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._slot.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        self._slot.release()
        return True

    async def dispatch(self, requests: Sequence[WriteRequest]) -> list[BatchItemOutcome]:
        if not requests:
            return []

        outcomes: list[Optional[BatchItemOutcome]] = [None] * len(requests)
        positions: list[int] = []
        actions: list[BulkAction] = []
        for i, request in enumerate(requests):
            try:
                action = to_action(request)
            except (TypeError, ValueError) as exc:
                logger.warning(f"[{self._flow_id}] cannot encode {request.id}: {exc}")
                outcomes[i] = BatchItemOutcome.terminal(
                    FailureReason.PERMANENT_ITEM_ERROR, f"payload not encodable: {exc}"
                )
                continue
            positions.append(i)
            actions.append(action)

        if actions:
            for i, outcome in zip(positions, await self._send(actions)):
                outcomes[i] = outcome
        return outcomes  # type: ignore[return-value]

    async def _send(self, actions: list[BulkAction]) -> list[BatchItemOutcome]:
        async with self._slot:
            self.calls += 1
            t0 = time.perf_counter()
            try:
                responses = await self._store.bulk(actions)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                FLOW_DISPATCH_TOTAL.labels(self._flow_id, "transport_failure").inc()
                logger.warning(
                    f"[{self._flow_id}] bulk call of {len(actions)} items failed: "
                    f"{type(exc).__name__}: {exc}"
                )
                return self._all_failed(len(actions), f"{type(exc).__name__}: {exc}")
            finally:
                FLOW_DISPATCH_LATENCY.labels(self._flow_id).observe(time.perf_counter() - t0)

        if len(responses) != len(actions):
            FLOW_DISPATCH_TOTAL.labels(self._flow_id, "transport_failure").inc()
            msg = f"store returned {len(responses)} entries for {len(actions)} items"
            logger.warning(f"[{self._flow_id}] {msg}")
            return self._all_failed(len(actions), msg)

        outcomes = [self._classify(resp) for resp in responses]
        failed = sum(1 for o in outcomes if o.reason is not None)
        FLOW_DISPATCH_TOTAL.labels(self._flow_id, "partial_failure" if failed else "ok").inc()
        logger.debug(
            f"[{self._flow_id}] bulk call of {len(actions)} items done ({failed} not successful)"
        )
        return outcomes

    @staticmethod
    def _all_failed(n: int, message: str) -> list[BatchItemOutcome]:
        outcome = BatchItemOutcome.retryable(FailureReason.TRANSPORT_FAILURE, message)
        return [outcome] * n
