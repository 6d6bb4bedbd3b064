"""Write Flow

Batched bulk-write pipeline with selective retries and pass-through results:
- BatchAccumulator (size / end-of-stream / optional linger flushing)
- BulkDispatcher with injectable per-item classification
- RetryCoordinator (fixed interval, bounded per-item budget)
- ResultEmitter (per-item Results in batch order)
- WriteFlow orchestration, health and teardown
- Dead Letter Queue (file-based NDJSON)
- Environment-based settings
"""

from .types import (
    WriteRequest,
    ItemStatus,
    FailureReason,
    BatchItemOutcome,
    Result,
    BulkStore,
    ItemClassifier,
    FlowClosedError,
)
from .policy import default_item_classifier, elasticsearch_item_classifier
from .settings import FlowSettings, FlowRuntimeSettings
from .accumulator import BatchAccumulator
from .dispatcher import BulkDispatcher
from .retry import RetryCoordinator, ItemState
from .emitter import ResultEmitter
from .write_flow import WriteFlow, FlowHealth, WriteSummary
from .dlq import DeadLetterQueue, DLQRecord

__all__ = [
    # types
    "WriteRequest",
    "ItemStatus",
    "FailureReason",
    "BatchItemOutcome",
    "Result",
    "BulkStore",
    "ItemClassifier",
    "FlowClosedError",
    "FlowHealth",
    "WriteSummary",
    "DLQRecord",
    "ItemState",
    # policies
    "default_item_classifier",
    "elasticsearch_item_classifier",
    # settings
    "FlowSettings",
    "FlowRuntimeSettings",
    # runtime
    "BatchAccumulator",
    "BulkDispatcher",
    "RetryCoordinator",
    "ResultEmitter",
    "WriteFlow",
    # tooling
    "DeadLetterQueue",
]
