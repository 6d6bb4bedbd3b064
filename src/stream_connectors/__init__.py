"""
Stream Connectors

Moves data from async pipelines into external stores with batched bulk writes,
bounded retries and per-item results that carry caller metadata for
acknowledging the original source.

Usage:
    from stream_connectors import WriteFlow, FlowSettings, WriteRequest
    from search_client import ElasticsearchBulkStore

    store = ElasticsearchBulkStore.from_url("http://localhost:9200", "books")
    async with WriteFlow(store, FlowSettings(batch_size=5)) as flow:
        summary = await flow.write_all(requests, commit=consumer.commit)
"""

from .flow import (
    WriteRequest,
    Result,
    BatchItemOutcome,
    ItemStatus,
    FailureReason,
    FlowSettings,
    FlowRuntimeSettings,
    WriteFlow,
    WriteSummary,
    FlowHealth,
    DeadLetterQueue,
    default_item_classifier,
    elasticsearch_item_classifier,
)

__version__ = "0.1.0"
__all__ = [
    "WriteRequest",
    "Result",
    "BatchItemOutcome",
    "ItemStatus",
    "FailureReason",
    "FlowSettings",
    "FlowRuntimeSettings",
    "WriteFlow",
    "WriteSummary",
    "FlowHealth",
    "DeadLetterQueue",
    "default_item_classifier",
    "elasticsearch_item_classifier",
]
