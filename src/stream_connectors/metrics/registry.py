"""
Write flow metrics, registered once in the Prometheus global REGISTRY.
"""

from prometheus_client import Counter, Histogram


# --- Dispatch Metrics ---

FLOW_DISPATCH_TOTAL = Counter(
    "flow_dispatch_total",
    "Total number of bulk calls dispatched",
    ["flow", "outcome"],
)

FLOW_DISPATCH_LATENCY = Histogram(
    "flow_dispatch_latency_seconds",
    "Bulk call latency in seconds",
    ["flow"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10],
)

# --- Item Metrics ---

FLOW_ITEMS_TOTAL = Counter(
    "flow_items_total",
    "Items that reached a terminal state",
    ["flow", "status", "reason"],
)

FLOW_RETRIES_TOTAL = Counter(
    "flow_retries_total",
    "Items scheduled for re-dispatch",
    ["flow"],
)


class MetricsRegistry:
    """Centralized access to write flow metrics."""

    dispatch_total = FLOW_DISPATCH_TOTAL
    dispatch_latency = FLOW_DISPATCH_LATENCY
    items_total = FLOW_ITEMS_TOTAL
    retries_total = FLOW_RETRIES_TOTAL


# Singleton instance
metrics_registry = MetricsRegistry()
