"""HTTP transport for vendor PMS APIs, live or simulated.

Live mode issues the call through ``httpx.AsyncClient`` under a per-request
deadline (``TenantPMSConfig.timeout_ms``) and classifies failures:

======================  ==========================
Condition               Raised
======================  ==========================
HTTP 401                ``AuthenticationError``
HTTP 429                ``RateLimitError``
HTTP 404                ``NotFoundError``
any other non-2xx       ``ServerError``
deadline exceeded       ``RequestTimeoutError``
connect/read failure    ``NetworkError``
======================  ==========================

Mock mode never leaves the process: it sleeps a randomised latency, fails
with ``NetworkError`` at the configured rate, and otherwise answers from a
``MockRouter``.

The transport does **not** retry.  ``max_retries`` in the config is read by
callers (see ``services/retry.py``); rate-limit and server errors surface
as typed exceptions so the caller decides how to back off.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Any

import httpx

from dental_pms.errors import (
    AuthenticationError,
    NetworkError,
    NotFoundError,
    PMSError,
    RateLimitError,
    RequestTimeoutError,
    ServerError,
)
from dental_pms.services.auth import headers_for
from dental_pms.services.metrics import MetricsClient, metrics
from dental_pms.services.mock_pms import MockBehavior, MockPMSStore, MockRouter
from dental_pms.services.resolver import TenantPMSConfig

logger = logging.getLogger(__name__)

_ID_SEGMENT = re.compile(r"/\d+(?=/|$)")


def _operation(method: str, endpoint: str) -> str:
    """Metric-friendly operation name: ``GET /api/v1.0/patients/{id}``."""
    return f"{method} {_ID_SEGMENT.sub('/{id}', endpoint.split('?', 1)[0])}"


class PMSTransport:
    """Single-shot request execution for one adapter instance."""

    def __init__(
        self,
        cfg: TenantPMSConfig,
        *,
        access_token: str | None = None,
        router: MockRouter | None = None,
        behavior: MockBehavior | None = None,
        client: httpx.AsyncClient | None = None,
        metrics_client: MetricsClient | None = None,
    ) -> None:
        self._cfg = cfg
        self._access_token = access_token
        self._headers: dict[str, str] | None = None
        self._client = client
        self._owns_client = client is None
        self._metrics = metrics_client or metrics
        self._behavior = behavior or MockBehavior()
        self._router = router
        if cfg.mock and self._router is None:
            self._router = MockRouter(MockPMSStore(), environment=cfg.environment.value)
        self.request_count = 0

    @property
    def config(self) -> TenantPMSConfig:
        return self._cfg

    @property
    def router(self) -> MockRouter | None:
        return self._router

    # ── Public API ───────────────────────────────────────────────────

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
    ) -> Any:
        """Execute one request and return the decoded JSON body.

        Raises one of the ``dental_pms.errors`` transport errors on failure.
        """
        method = method.upper()
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        operation = _operation(method, endpoint)
        self.request_count += 1
        started = time.perf_counter()

        try:
            async with asyncio.timeout(self._cfg.timeout_seconds):
                if self._cfg.mock:
                    result = await self._mock_request(method, endpoint, params, json_body)
                else:
                    result = await self._live_request(method, endpoint, params, json_body)
        except PMSError as exc:
            self._record_failure(operation, exc, started)
            raise
        except TimeoutError as exc:
            error = self._timeout_error(method, endpoint)
            self._record_failure(operation, error, started)
            raise error from exc

        self._metrics.record_success(
            self._cfg.pms_type, operation, self._elapsed_ms(started), tenant=self._cfg.tenant_id,
        )
        return result

    async def get(self, endpoint: str, *, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", endpoint, params=params)

    async def post(self, endpoint: str, json_body: Any = None) -> Any:
        return await self.request("POST", endpoint, json_body=json_body)

    async def put(self, endpoint: str, json_body: Any = None) -> Any:
        return await self.request("PUT", endpoint, json_body=json_body)

    async def delete(self, endpoint: str) -> Any:
        return await self.request("DELETE", endpoint)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> PMSTransport:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ── Live mode ────────────────────────────────────────────────────

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._cfg.base_url,
                timeout=self._cfg.timeout_seconds,
            )
        return self._client

    async def _live_request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None,
        json_body: Any,
    ) -> Any:
        if self._headers is None:
            self._headers = headers_for(self._cfg, self._access_token)

        logger.debug("%s request: %s %s", self._cfg.pms_type, method, endpoint)
        try:
            response = await self._get_client().request(
                method,
                endpoint,
                params=params,
                json=json_body,
                headers=self._headers,
            )
        except httpx.TimeoutException as exc:
            raise self._timeout_error(method, endpoint) from exc
        except httpx.TransportError as exc:
            raise NetworkError(
                f"{self._cfg.pms_type} network error on {method} {endpoint}: {exc}"
            ) from exc

        status = response.status_code
        if status == 429:
            raise RateLimitError(
                f"{self._cfg.pms_type} rate limit hit on {method} {endpoint}", status_code=429,
            )
        if status == 401:
            raise AuthenticationError(
                f"{self._cfg.pms_type} rejected the credentials on {method} {endpoint}",
                status_code=401,
            )
        if status == 404:
            raise NotFoundError(f"{method} {endpoint} returned 404", status_code=404)
        if not response.is_success:
            raise ServerError(
                f"{self._cfg.pms_type} error {status} on {method} {endpoint}: {response.text}",
                status_code=status,
            )

        if status == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ServerError(
                f"{self._cfg.pms_type} returned invalid JSON on {method} {endpoint}",
                status_code=status,
            ) from exc

    # ── Mock mode ────────────────────────────────────────────────────

    async def _mock_request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None,
        json_body: Any,
    ) -> Any:
        await asyncio.sleep(self._behavior.latency_seconds())
        if self._behavior.should_fail():
            raise NetworkError(f"Simulated network failure (mock mode) on {method} {endpoint}")
        return self._router.dispatch(method, endpoint, params, json_body)

    # ── Helpers ──────────────────────────────────────────────────────

    def _timeout_error(self, method: str, endpoint: str) -> RequestTimeoutError:
        return RequestTimeoutError(
            f"{self._cfg.pms_type} request {method} {endpoint} timed out after "
            f"{self._cfg.timeout_ms} ms"
        )

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return (time.perf_counter() - started) * 1000

    def _record_failure(self, operation: str, exc: PMSError, started: float) -> None:
        logger.warning("%s %s failed: %s", self._cfg.pms_type, operation, exc)
        self._metrics.record_failure(
            self._cfg.pms_type,
            operation,
            error_type=type(exc).__name__,
            latency_ms=self._elapsed_ms(started),
            tenant=self._cfg.tenant_id,
            status_code=exc.status_code,
        )
