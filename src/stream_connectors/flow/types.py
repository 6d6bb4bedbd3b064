from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Optional, Protocol, Sequence, TypeVar

from search_client.models import BulkAction, BulkItemResponse

P = TypeVar("P")


class FlowClosedError(RuntimeError):
    """Raised when a run is started on a WriteFlow that has been closed."""


@dataclass(frozen=True)
class WriteRequest(Generic[P]):
    """One logical write.

    Attributes:
        id: Document key in the target store
        payload: Document body (mapping, pydantic model or dataclass); None deletes
        expected_version: Optional optimistic-concurrency version
        pass_through: Caller value carried untouched into the Result
    """

    id: str
    payload: Any = None
    expected_version: Optional[int] = None
    pass_through: P = None  # type: ignore[assignment]

    @classmethod
    def delete(
        cls, id: str, *, expected_version: Optional[int] = None, pass_through: Any = None
    ) -> "WriteRequest":
        return cls(id=id, payload=None, expected_version=expected_version, pass_through=pass_through)

    @property
    def is_delete(self) -> bool:
        return self.payload is None


class ItemStatus(str, Enum):
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    TERMINAL_FAILURE = "terminal_failure"


class FailureReason(str, Enum):
    TRANSPORT_FAILURE = "transport_failure"  # whole bulk call failed, retryable
    VERSION_CONFLICT = "version_conflict"  # deterministic, never retried
    TRANSIENT_SERVER_ERROR = "transient_server_error"  # retryable, bounded by max_retry
    PERMANENT_ITEM_ERROR = "permanent_item_error"
    RETRIES_EXHAUSTED = "retries_exhausted"  # synthetic, produced by the coordinator


@dataclass(frozen=True)
class BatchItemOutcome:
    """Outcome of one item after one or more dispatches."""

    status: ItemStatus
    reason: Optional[FailureReason] = None
    message: Optional[str] = None
    retry_count: int = 0
    version: Optional[int] = None

    @classmethod
    def success(cls, version: Optional[int] = None) -> "BatchItemOutcome":
        return cls(ItemStatus.SUCCESS, version=version)

    @classmethod
    def retryable(cls, reason: FailureReason, message: Optional[str] = None) -> "BatchItemOutcome":
        return cls(ItemStatus.RETRYABLE_FAILURE, reason=reason, message=message)

    @classmethod
    def terminal(cls, reason: FailureReason, message: Optional[str] = None) -> "BatchItemOutcome":
        return cls(ItemStatus.TERMINAL_FAILURE, reason=reason, message=message)

    @property
    def is_retryable(self) -> bool:
        return self.status is ItemStatus.RETRYABLE_FAILURE

    def with_retry_count(self, retry_count: int) -> "BatchItemOutcome":
        return dataclasses.replace(self, retry_count=retry_count)


@dataclass(frozen=True)
class Result(Generic[P]):
    """Final, immutable result for one WriteRequest."""

    request: WriteRequest[P]
    outcome: BatchItemOutcome

    def __post_init__(self) -> None:
        if self.outcome.is_retryable:
            raise ValueError("Result requires a terminal outcome")

    @property
    def pass_through(self) -> P:
        return self.request.pass_through

    @property
    def success(self) -> bool:
        return self.outcome.status is ItemStatus.SUCCESS

    @property
    def error(self) -> Optional[str]:
        if self.success:
            return None
        return self.outcome.message or (self.outcome.reason and self.outcome.reason.value)

    @property
    def attempts(self) -> int:
        return self.outcome.retry_count + 1

    @property
    def version(self) -> Optional[int]:
        return self.outcome.version


class BulkStore(Protocol):
    """External store accepting one bulk call per batch."""

    async def bulk(self, actions: Sequence[BulkAction]) -> Sequence[BulkItemResponse]: ...


# Maps one per-item bulk response onto an outcome; backend-specific policy.
ItemClassifier = Callable[[BulkItemResponse], BatchItemOutcome]
