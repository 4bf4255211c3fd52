from .metrics_sink import (
    CLUSTER_OPERATIONS as CLUSTER_OPERATIONS,
    LATENCY_BUCKETS_MS as LATENCY_BUCKETS_MS,
    MetricsSink as MetricsSink,
)
