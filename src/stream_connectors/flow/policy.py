"""
Classification of per-item bulk responses into outcomes.

Which statuses are retryable is backend policy, not flow logic: a WriteFlow
takes any ``ItemClassifier`` and the coordinator only looks at the resulting
``ItemStatus``.
"""

from __future__ import annotations

from search_client.models import BulkItemResponse

from .types import BatchItemOutcome, FailureReason

CONFLICT_STATUS = 409
RETRYABLE_STATUSES = frozenset({408, 429})

CONFLICT_ERROR_TYPES = frozenset({"version_conflict_engine_exception"})

# Elasticsearch error types that clear up on their own
TRANSIENT_ERROR_TYPES = frozenset(
    {
        "es_rejected_execution_exception",
        "circuit_breaking_exception",
        "unavailable_shards_exception",
        "node_not_connected_exception",
        "no_shard_available_action_exception",
        "process_cluster_event_timeout_exception",
    }
)


def _detail(resp: BulkItemResponse) -> str:
    parts = [str(resp.status)]
    if resp.error_type:
        parts.append(resp.error_type)
    if resp.reason:
        parts.append(resp.reason)
    return ": ".join(parts)


def default_item_classifier(resp: BulkItemResponse) -> BatchItemOutcome:
    """Classify by HTTP-style status only.

    2xx -> success, 409 -> version conflict, 408/429/5xx -> transient,
    anything else is a permanent item error. A 404 without an error body is
    a delete of a missing document and counts as success.
    """
    if resp.ok:
        return BatchItemOutcome.success(version=resp.version)
    if resp.status == 404 and resp.error_type is None and resp.reason is None:
        return BatchItemOutcome.success(version=resp.version)
    if resp.status == CONFLICT_STATUS:
        return BatchItemOutcome.terminal(FailureReason.VERSION_CONFLICT, _detail(resp))
    if resp.status in RETRYABLE_STATUSES or resp.status >= 500:
        return BatchItemOutcome.retryable(FailureReason.TRANSIENT_SERVER_ERROR, _detail(resp))
    return BatchItemOutcome.terminal(FailureReason.PERMANENT_ITEM_ERROR, _detail(resp))


def elasticsearch_item_classifier(resp: BulkItemResponse) -> BatchItemOutcome:
    """Status-based classification refined with Elasticsearch error types."""
    if resp.error_type in CONFLICT_ERROR_TYPES:
        return BatchItemOutcome.terminal(FailureReason.VERSION_CONFLICT, _detail(resp))
    if resp.error_type in TRANSIENT_ERROR_TYPES:
        return BatchItemOutcome.retryable(FailureReason.TRANSIENT_SERVER_ERROR, _detail(resp))
    return default_item_classifier(resp)
