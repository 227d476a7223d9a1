"""Tests for the PMS transport: live error classification and mock mode."""

from __future__ import annotations

import asyncio
import dataclasses
from unittest.mock import MagicMock

import httpx
import pytest
import respx

from dental_pms.errors import (
    AuthenticationError,
    MissingTokenError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    ServerError,
)
from dental_pms.services.mock_pms import MockBehavior, MockPMSStore, MockRouter
from dental_pms.services.transport import PMSTransport

BASE = "https://pms.test"
LOCATIONS = "/api/v1.0/locations"


def _transport(cfg, **kwargs) -> PMSTransport:
    return PMSTransport(cfg, metrics_client=kwargs.pop("metrics_client", MagicMock()), **kwargs)


# ── Live mode ────────────────────────────────────────────────────────


class TestLiveClassification:
    @pytest.mark.asyncio
    async def test_success_returns_json_and_sends_auth_headers(self, live_config):
        with respx.mock(base_url=BASE) as m:
            route = m.get(LOCATIONS).respond(200, json={"locations": []})
            async with _transport(live_config) as transport:
                assert await transport.get(LOCATIONS) == {"locations": []}
        sent = route.calls.last.request
        assert sent.headers["AccountId"] == "acct_789"
        assert sent.headers["Accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_none_params_are_dropped(self, live_config):
        with respx.mock(base_url=BASE) as m:
            route = m.get(LOCATIONS).respond(200, json={})
            async with _transport(live_config) as transport:
                await transport.get(LOCATIONS, params={"a": 1, "b": None})
        assert dict(route.calls.last.request.url.params) == {"a": "1"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "error"),
        [
            (401, AuthenticationError),
            (429, RateLimitError),
            (404, NotFoundError),
            (500, ServerError),
            (503, ServerError),
            (400, ServerError),
        ],
    )
    async def test_status_classification(self, live_config, status, error):
        with respx.mock(base_url=BASE) as m:
            m.get(LOCATIONS).respond(status, text="nope")
            async with _transport(live_config) as transport:
                with pytest.raises(error) as exc_info:
                    await transport.get(LOCATIONS)
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_connect_error_becomes_network_error(self, live_config):
        with respx.mock(base_url=BASE) as m:
            m.get(LOCATIONS).mock(side_effect=httpx.ConnectError("refused"))
            async with _transport(live_config) as transport:
                with pytest.raises(NetworkError):
                    await transport.get(LOCATIONS)

    @pytest.mark.asyncio
    async def test_httpx_timeout_becomes_request_timeout(self, live_config):
        with respx.mock(base_url=BASE) as m:
            m.get(LOCATIONS).mock(side_effect=httpx.ReadTimeout("slow"))
            async with _transport(live_config) as transport:
                with pytest.raises(RequestTimeoutError, match="timed out after 2000 ms"):
                    await transport.get(LOCATIONS)

    @pytest.mark.asyncio
    async def test_deadline_aborts_slow_response(self, live_config):
        cfg = dataclasses.replace(live_config, timeout_ms=50)

        async def slow(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json={})

        with respx.mock(base_url=BASE, assert_all_called=False) as m:
            m.get(LOCATIONS).mock(side_effect=slow)
            async with _transport(cfg) as transport:
                with pytest.raises(RequestTimeoutError):
                    await transport.get(LOCATIONS)

    @pytest.mark.asyncio
    async def test_empty_body_returns_none(self, live_config):
        with respx.mock(base_url=BASE) as m:
            m.put("/api/v1.0/appointments/1/cancel").respond(204)
            async with _transport(live_config) as transport:
                assert await transport.put("/api/v1.0/appointments/1/cancel", {}) is None

    @pytest.mark.asyncio
    async def test_invalid_json_is_server_error(self, live_config):
        with respx.mock(base_url=BASE) as m:
            m.get(LOCATIONS).respond(200, text="<html>")
            async with _transport(live_config) as transport:
                with pytest.raises(ServerError, match="invalid JSON"):
                    await transport.get(LOCATIONS)

    @pytest.mark.asyncio
    async def test_no_retry_on_failure(self, live_config):
        with respx.mock(base_url=BASE) as m:
            route = m.get(LOCATIONS).respond(503)
            async with _transport(live_config) as transport:
                with pytest.raises(ServerError):
                    await transport.get(LOCATIONS)
        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_oauth_without_token_fails_before_network(self, live_config):
        cfg = dataclasses.replace(live_config, auth_method="oauth2")
        with respx.mock(base_url=BASE, assert_all_called=False) as m:
            route = m.get(LOCATIONS).respond(200, json={})
            async with _transport(cfg) as transport:
                with pytest.raises(MissingTokenError):
                    await transport.get(LOCATIONS)
        assert route.call_count == 0


class TestMetricsReporting:
    @pytest.mark.asyncio
    async def test_success_recorded_with_templated_operation(self, live_config):
        metrics = MagicMock()
        with respx.mock(base_url=BASE) as m:
            m.get("/api/v1.0/patients/42").respond(200, json={"id": 42})
            async with _transport(live_config, metrics_client=metrics) as transport:
                await transport.get("/api/v1.0/patients/42")
        service, operation, _latency = metrics.record_success.call_args.args
        assert (service, operation) == ("carestack", "GET /api/v1.0/patients/{id}")
        assert metrics.record_success.call_args.kwargs["tenant"] == "tenant-live"

    @pytest.mark.asyncio
    async def test_failure_recorded_with_error_type(self, live_config):
        metrics = MagicMock()
        with respx.mock(base_url=BASE) as m:
            m.get(LOCATIONS).respond(429)
            async with _transport(live_config, metrics_client=metrics) as transport:
                with pytest.raises(RateLimitError):
                    await transport.get(LOCATIONS)
        kwargs = metrics.record_failure.call_args.kwargs
        assert kwargs["error_type"] == "RateLimitError"
        assert kwargs["status_code"] == 429
        assert kwargs["tenant"] == "tenant-live"


# ── Mock mode ────────────────────────────────────────────────────────


class TestMockMode:
    @pytest.mark.asyncio
    async def test_dispatches_to_router_without_network(self, mock_config, behavior):
        with respx.mock(assert_all_called=False) as m:
            transport = _transport(mock_config, behavior=behavior)
            result = await transport.get(LOCATIONS)
            assert m.calls.call_count == 0
        assert len(result["locations"]) == 2
        assert transport.request_count == 1

    @pytest.mark.asyncio
    async def test_failure_rate_one_always_fails(self, mock_config):
        transport = _transport(mock_config, behavior=MockBehavior.instant(failure_rate=1.0))
        with pytest.raises(NetworkError, match="Simulated"):
            await transport.get(LOCATIONS)

    @pytest.mark.asyncio
    async def test_seeded_failures_are_reproducible(self, mock_config):
        async def outcomes(seed: int) -> list[bool]:
            transport = _transport(
                mock_config, behavior=MockBehavior.instant(seed=seed, failure_rate=0.5),
            )
            results = []
            for _ in range(10):
                try:
                    await transport.get(LOCATIONS)
                    results.append(True)
                except NetworkError:
                    results.append(False)
            return results

        assert await outcomes(7) == await outcomes(7)

    @pytest.mark.asyncio
    async def test_mock_latency_respects_deadline(self, mock_config):
        cfg = dataclasses.replace(mock_config, timeout_ms=20)
        transport = _transport(cfg, behavior=MockBehavior(latency_ms=(200, 200), failure_rate=0))
        with pytest.raises(RequestTimeoutError):
            await transport.get(LOCATIONS)

    @pytest.mark.asyncio
    async def test_unknown_mock_route_is_not_found(self, mock_config, behavior):
        transport = _transport(mock_config, behavior=behavior)
        with pytest.raises(NotFoundError):
            await transport.get("/api/v1.0/unknown")

    @pytest.mark.asyncio
    async def test_injected_router_is_used(self, mock_config, behavior):
        store = MockPMSStore()
        store.locations.clear()
        transport = _transport(mock_config, behavior=behavior, router=MockRouter(store))
        assert await transport.get(LOCATIONS) == {"locations": []}
