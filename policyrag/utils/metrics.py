"""Prometheus metrics for the clause retrieval pipeline."""

from prometheus_client import Counter, Histogram

# Pipeline stage metrics
pipeline_stage_latency_ms = Histogram(
    "pipeline_stage_latency_ms",
    "Pipeline stage latency in milliseconds",
    ["operation", "stage"],
    buckets=[10, 50, 100, 200, 500, 1000, 2000, 4000, 8000, 16000],
)

pipeline_errors_total = Counter(
    "pipeline_errors_total",
    "Total pipeline operation errors",
    ["operation", "code"],
)

chunks_indexed_total = Counter(
    "chunks_indexed_total",
    "Total chunks upserted into the vector index",
    ["operation"],
)

query_fallbacks_total = Counter(
    "query_fallbacks_total",
    "Total query answers degraded to the fallback shape",
    ["reason"],
)


class PrometheusPipelineMetrics:
    """Prometheus-based pipeline metrics implementation."""

    def record_latency(self, operation: str, stage: str, latency_ms: float) -> None:
        """Record stage latency."""
        pipeline_stage_latency_ms.labels(operation=operation, stage=stage).observe(latency_ms)

    def inc_error(self, operation: str, code: str) -> None:
        """Increment error counter."""
        pipeline_errors_total.labels(operation=operation, code=code).inc()

    def inc_chunks(self, operation: str, count: int) -> None:
        """Count upserted chunks."""
        chunks_indexed_total.labels(operation=operation).inc(count)

    def inc_fallback(self, reason: str) -> None:
        """Count degraded query answers."""
        query_fallbacks_total.labels(reason=reason).inc()
