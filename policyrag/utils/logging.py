"""Structured logging for pipeline operations."""

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from uuid import UUID

from policyrag.errors import PipelineError
from policyrag.utils.metrics import PrometheusPipelineMetrics

logger = logging.getLogger(__name__)


class StructuredPipelineLogger:
    """Structured logger for one coordinator invocation.

    Each stage is logged with latency and recorded in the stage histogram.
    """

    def __init__(
        self,
        operation: str,
        user_id: UUID,
        document_id: UUID | None = None,
        metrics: PrometheusPipelineMetrics | None = None,
    ) -> None:
        self.operation = operation
        self.user_id = user_id
        self.document_id = document_id
        self.metrics = metrics or PrometheusPipelineMetrics()

    def _base(self) -> dict[str, Any]:
        data: dict[str, Any] = {"operation": self.operation, "user_id": str(self.user_id)}
        if self.document_id is not None:
            data["document_id"] = str(self.document_id)
        return data

    def log_stage(
        self,
        stage: str,
        outcome: str,
        latency_ms: float,
        error_code: str | None = None,
        **fields: Any,
    ) -> None:
        """Log a pipeline stage with structured data."""
        log_data = self._base()
        log_data.update(
            {"stage": stage, "outcome": outcome, "latency_ms": round(latency_ms, 2), **fields}
        )
        if error_code:
            log_data["error_code"] = error_code

        self.metrics.record_latency(self.operation, stage, latency_ms)

        log_msg = f"Pipeline {self.operation}.{stage} - {outcome}"
        if outcome == "success":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})

    @contextmanager
    def stage(self, stage: str, **fields: Any) -> Iterator[None]:
        """Time a stage; failures are logged with their error code and re-raised."""
        start = time.perf_counter()
        try:
            yield
        except Exception as e:
            code = e.code if isinstance(e, PipelineError) else type(e).__name__
            self.log_stage(
                stage, "error", (time.perf_counter() - start) * 1000, error_code=code, **fields
            )
            raise
        self.log_stage(stage, "success", (time.perf_counter() - start) * 1000, **fields)

    def failed(self, error: Exception) -> None:
        """Count an operation failure."""
        code = error.code if isinstance(error, PipelineError) else "Server"
        self.metrics.inc_error(self.operation, code)
