"""Tests for the CloudWatch metrics client."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from dental_pms.services.metrics import (
    ERROR_COUNT,
    LATENCY,
    MAX_BATCH_SIZE,
    NAMESPACE,
    REQUEST_COUNT,
    MetricsClient,
)


def _make_client(*, enabled: bool = False) -> MetricsClient:
    with patch("threading.Thread"), patch("atexit.register"):
        return MetricsClient(enabled=enabled)


def _dims(point) -> dict[str, str]:
    return {d["Name"]: d["Value"] for d in point["Dimensions"]}


def _point(client: MetricsClient, name: str):
    return next(m for m in client._buffer if m["MetricName"] == name)


class TestMetricsRecording:
    """record_success / record_failure buffer the right data points."""

    def test_record_success_appends_count_and_latency(self):
        client = _make_client()
        client.record_success("carestack", "GET /api/v1.0/locations", 84.2)
        assert {m["MetricName"] for m in client._buffer} == {REQUEST_COUNT, LATENCY}

    def test_request_count_carries_tenant(self):
        client = _make_client()
        client.record_success("carestack", "GET /api/v1.0/locations", 84.2, tenant="office-1")
        assert _dims(_point(client, REQUEST_COUNT)) == {
            "Service": "carestack", "Tenant": "office-1", "Status": "success",
        }

    def test_tenant_omitted_when_unknown(self):
        client = _make_client()
        client.record_success("carestack", "GET /api/v1.0/locations", 1.0)
        assert "Tenant" not in _dims(_point(client, REQUEST_COUNT))

    def test_latency_dimensioned_by_operation(self):
        client = _make_client()
        client.record_success("carestack", "GET /api/v1.0/patients/{id}", 12.0, tenant="office-1")
        assert _dims(_point(client, LATENCY)) == {
            "Service": "carestack", "Operation": "GET /api/v1.0/patients/{id}",
        }

    def test_record_failure_without_latency_skips_latency_point(self):
        client = _make_client()
        client.record_failure("carestack", "GET /api/v1.0/providers", error_type="NetworkError")
        assert sorted(m["MetricName"] for m in client._buffer) == [ERROR_COUNT, REQUEST_COUNT]

    def test_record_failure_with_latency_appends_three_points(self):
        client = _make_client()
        client.record_failure(
            "carestack", "POST /api/v1.0/appointments",
            error_type="ServerError", latency_ms=500.0,
        )
        assert len(client._buffer) == 3

    def test_error_count_carries_type_and_status(self):
        client = _make_client()
        client.record_failure(
            "carestack", "GET /api/v1.0/locations",
            error_type="RateLimitError", status_code=429, tenant="office-1",
        )
        assert _dims(_point(client, ERROR_COUNT)) == {
            "Service": "carestack", "ErrorType": "RateLimitError", "StatusCode": "429",
        }
        assert _dims(_point(client, REQUEST_COUNT))["Status"] == "failure"

    def test_error_without_status_code(self):
        client = _make_client()
        client.record_failure("carestack", "GET /x", error_type="RequestTimeoutError")
        assert "StatusCode" not in _dims(_point(client, ERROR_COUNT))


class TestMetricsFlush:
    """Flush behaviour with and without CloudWatch enabled."""

    def test_flush_when_disabled_sends_nothing_and_clears(self):
        client = _make_client(enabled=False)
        client.record_success("carestack", "GET /api/v1.0/locations", 100.0)
        assert client.flush() == 0
        assert client._buffer == []

    def test_disabled_by_default_in_tests(self):
        with patch.dict("os.environ", {"METRICS_ENABLED": "false"}):
            assert MetricsClient().enabled is False

    def test_enabled_client_starts_flush_thread(self):
        with patch("threading.Thread") as thread, patch("atexit.register") as register:
            client = MetricsClient(enabled=True)
        thread.return_value.start.assert_called_once()
        register.assert_called_once_with(client.flush)

    def test_flush_when_enabled_calls_put_metric_data(self):
        client = _make_client(enabled=True)
        client._cw_client = MagicMock()

        client.record_success("carestack", "GET /api/v1.0/locations", 100.0)
        assert client.flush() == 2

        kwargs = client._cw_client.put_metric_data.call_args.kwargs
        assert kwargs["Namespace"] == NAMESPACE == "DentalPMS"
        assert len(kwargs["MetricData"]) == 2

    def test_large_buffer_is_sent_in_chunks(self):
        client = _make_client(enabled=True)
        client._cw_client = MagicMock()
        for _ in range(MAX_BATCH_SIZE):
            client.record_success("carestack", "GET /x", 1.0)

        assert client.flush() == 2 * MAX_BATCH_SIZE
        assert client._cw_client.put_metric_data.call_count == 2

    def test_flush_empty_buffer_returns_zero(self):
        assert _make_client(enabled=False).flush() == 0

    def test_flush_error_is_logged_not_raised(self):
        client = _make_client(enabled=True)
        client._cw_client = MagicMock()
        client._cw_client.put_metric_data.side_effect = RuntimeError("throttled")
        client.record_success("carestack", "GET /x", 1.0)
        assert client.flush() == 0
