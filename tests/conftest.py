"""
Pytest configuration and fixtures for stream-connectors.

Provides cross-platform event loop configuration and fake bulk stores.
"""

import asyncio
import sys
from typing import Sequence

import pytest

from search_client import BulkAction, BulkItemResponse

# Set policy *before* pytest-asyncio creates any loops
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


class ScriptedStore:
    """Bulk store answering each item from a per-id list of statuses.

    Each dispatch of an id consumes the next status; the last one sticks.
    Ids without a script get ``default``. Every call is recorded.
    """

    def __init__(self, script: dict[str, list[int]] | None = None, default: int = 201):
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.default = default
        self.calls: list[list[BulkAction]] = []

    async def bulk(self, actions: Sequence[BulkAction]) -> list[BulkItemResponse]:
        await asyncio.sleep(0)  # simulate I/O
        self.calls.append(list(actions))
        return [self._answer(a) for a in actions]

    def _answer(self, action: BulkAction) -> BulkItemResponse:
        statuses = self.script.get(action.id)
        if statuses:
            status = statuses.pop(0) if len(statuses) > 1 else statuses[0]
        else:
            status = self.default
        error_type = None if status < 300 else f"status_{status}"
        return BulkItemResponse(id=action.id, status=status, error_type=error_type, version=1)

    def dispatch_count(self, doc_id: str) -> int:
        return sum(1 for call in self.calls for a in call if a.id == doc_id)

    @property
    def batch_sizes(self) -> list[int]:
        return [len(call) for call in self.calls]


class FailingStore(ScriptedStore):
    """Raises ConnectionError for the first ``fail_calls`` bulk calls."""

    def __init__(self, fail_calls: int = 1, **kwargs):
        super().__init__(**kwargs)
        self.fail_calls = fail_calls
        self.attempts = 0

    async def bulk(self, actions: Sequence[BulkAction]) -> list[BulkItemResponse]:
        self.attempts += 1
        if self.attempts <= self.fail_calls:
            await asyncio.sleep(0)
            raise ConnectionError("connection refused")
        return await super().bulk(actions)


@pytest.fixture
def scripted_store():
    """Factory for ScriptedStore."""
    return ScriptedStore


@pytest.fixture
def failing_store():
    """Factory for FailingStore."""
    return FailingStore
