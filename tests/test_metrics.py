"""Tests for backend call metrics."""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

from prometheus_client import CollectorRegistry

from api_operator.metrics import MetricsSink


class TestMetricsSink:
    """Tests for MetricsSink."""

    def test_records_success_and_failure(self) -> None:
        sink = MetricsSink()
        sink.record_api_call("CREATE", "ImportApi", None)
        sink.record_api_call("CREATE", "ImportApi", RuntimeError("x"))
        sink.record_api_call("CREATE", "ImportApi", None)

        assert sink.call_count("CREATE", "ImportApi") == 2
        assert sink.call_count("CREATE", "ImportApi", success=False) == 1
        assert sink.call_count("UPDATE", "ImportApi") == 0

    def test_sinks_do_not_share_registries(self) -> None:
        first = MetricsSink()
        second = MetricsSink()
        first.record_api_call("READ_ONE", "GetApi", None)

        assert second.call_count("READ_ONE", "GetApi") == 0

    def test_custom_registry(self) -> None:
        registry = CollectorRegistry()
        sink = MetricsSink(registry)
        sink.record_api_call("DELETE", "DeleteApi", None)

        value = registry.get_sample_value(
            "api_operator_backend_calls_total",
            {"op_type": "DELETE", "op_id": "DeleteApi", "success": "true"},
        )
        assert value == 1.0

    def test_concurrent_increments(self) -> None:
        sink = MetricsSink()
        with ThreadPoolExecutor(max_workers=8) as pool:
            for _ in range(200):
                pool.submit(sink.record_api_call, "UPDATE", "UpdateApi", None)

        assert sink.call_count("UPDATE", "UpdateApi") == 200

    def test_failure_never_raises(self) -> None:
        sink = MetricsSink()
        with patch.object(sink.backend_calls_total, "labels", side_effect=RuntimeError("broken")):
            sink.record_api_call("CREATE", "CreateApi", None)
