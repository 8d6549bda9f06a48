"""Backend call metrics.

Counters live on a registry owned by the sink, so several controllers (or
tests) in one process never collide on the global registry. Prometheus
counters are safe to increment from concurrent reconciles.
"""

from __future__ import annotations

import logging

from prometheus_client import CollectorRegistry, Counter

logger = logging.getLogger(__name__)

METRIC_NAMESPACE = "api_operator"


class MetricsSink:
    """Records one sample per backend call.

    Recording is fire-and-forget: a failure here is logged and dropped,
    never raised into the reconcile.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.backend_calls_total = Counter(
            "backend_calls",
            "Backend API calls made by the controller",
            ["op_type", "op_id", "success"],
            namespace=METRIC_NAMESPACE,
            registry=self.registry,
        )

    def record_api_call(self, op_type: str, op_id: str, error: BaseException | None) -> None:
        """Count a backend call.

        Args:
            op_type: Operation class (CREATE, READ_ONE, UPDATE, DELETE).
            op_id: Backend verb name (e.g. ImportApi).
            error: The call's error, or None on success.
        """
        try:
            self.backend_calls_total.labels(
                op_type=op_type,
                op_id=op_id,
                success="false" if error is not None else "true",
            ).inc()
        except Exception as e:
            logger.warning(
                "Failed to record backend call metric",
                extra={"op_type": op_type, "op_id": op_id, "error": str(e)},
            )

    def call_count(self, op_type: str, op_id: str, success: bool = True) -> float:
        """Current counter value for one label set."""
        value = self.registry.get_sample_value(
            f"{METRIC_NAMESPACE}_backend_calls_total",
            {"op_type": op_type, "op_id": op_id, "success": "true" if success else "false"},
        )
        return value or 0.0
