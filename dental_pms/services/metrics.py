"""CloudWatch custom metrics for vendor PMS calls.

The transport reports every request here.  Each report becomes a handful of
``ExternalAPI/*`` data points under the ``DentalPMS`` namespace:

* ``ExternalAPI/RequestCount``: Service, Tenant, Status (success or failure)
* ``ExternalAPI/Latency``: Service, Operation
* ``ExternalAPI/ErrorCount``: Service, ErrorType, StatusCode (when known)

``Tenant`` is omitted when the caller does not pass one.  Points are
buffered and pushed by a daemon thread every ``FLUSH_INTERVAL_SECONDS``
only when ``METRICS_ENABLED=true``; otherwise they are logged at DEBUG
and dropped on flush.

Usage
-----
>>> from dental_pms.services.metrics import metrics
>>> metrics.record_success("carestack", "GET /api/v1.0/locations", 84.2, tenant="office-1")
>>> metrics.record_failure(
...     "carestack", "POST /api/v1.0/patients/search",
...     error_type="RateLimitError", status_code=429,
... )
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from collections.abc import Iterator
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "DentalPMS"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # PutMetricData limit

REQUEST_COUNT = "ExternalAPI/RequestCount"
LATENCY = "ExternalAPI/Latency"
ERROR_COUNT = "ExternalAPI/ErrorCount"


def _datum(
    name: str, value: float, unit: str, when: datetime, **dimensions: Any,
) -> dict[str, Any]:
    """One PutMetricData entry; ``None`` dimensions are left out."""
    return {
        "MetricName": name,
        "Dimensions": [
            {"Name": key, "Value": str(val)} for key, val in dimensions.items() if val is not None
        ],
        "Timestamp": when,
        "Value": value,
        "Unit": unit,
    }


def _chunks(batch: list[dict[str, Any]]) -> Iterator[list[dict[str, Any]]]:
    for start in range(0, len(batch), MAX_BATCH_SIZE):
        yield batch[start : start + MAX_BATCH_SIZE]


class MetricsClient:
    """Buffers PMS call metrics and ships them to CloudWatch in batches."""

    def __init__(self, *, enabled: bool | None = None) -> None:
        if enabled is None:
            enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._enabled = enabled
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Recording ────────────────────────────────────────────────────

    def record_success(
        self,
        service: str,
        operation: str,
        latency_ms: float,
        *,
        tenant: str | None = None,
    ) -> None:
        """A vendor request that returned a usable response."""
        now = datetime.now(UTC)
        self._extend(
            _datum(REQUEST_COUNT, 1, "Count", now, Service=service, Tenant=tenant, Status="success"),
            _datum(LATENCY, latency_ms, "Milliseconds", now, Service=service, Operation=operation),
        )
        logger.debug("Metric: %s %s ok in %.1fms", service, operation, latency_ms)

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
        *,
        tenant: str | None = None,
        status_code: int | None = None,
    ) -> None:
        """A vendor request that ended in a typed adapter error.

        Latency is only published when it was measured (``latency_ms > 0``).
        """
        now = datetime.now(UTC)
        points = [
            _datum(REQUEST_COUNT, 1, "Count", now, Service=service, Tenant=tenant, Status="failure"),
            _datum(
                ERROR_COUNT, 1, "Count", now,
                Service=service, ErrorType=error_type, StatusCode=status_code,
            ),
        ]
        if latency_ms > 0:
            points.append(
                _datum(LATENCY, latency_ms, "Milliseconds", now, Service=service, Operation=operation)
            )
        self._extend(*points)
        logger.debug(
            "Metric: %s %s failed with %s (status=%s) after %.1fms",
            service, operation, error_type, status_code, latency_ms,
        )

    # ── Shipping ─────────────────────────────────────────────────────

    def flush(self) -> int:
        """Drain the buffer to CloudWatch.  Returns how many points were sent."""
        with self._lock:
            batch, self._buffer = self._buffer, []
        if not batch:
            return 0
        if not self._enabled:
            logger.debug("Dropping %d metric points (metrics disabled)", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for chunk in _chunks(batch):
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
        except Exception:
            logger.exception("CloudWatch rejected metrics after %d of %d points", sent, len(batch))
        else:
            logger.info("Sent %d metric points to CloudWatch", sent)
        return sent

    def _extend(self, *points: dict[str, Any]) -> None:
        with self._lock:
            self._buffer.extend(points)

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        threading.Thread(target=_loop, daemon=True, name="pms-metrics-flush").start()
        atexit.register(self.flush)
        logger.info("PMS metrics shipping every %ds", FLUSH_INTERVAL_SECONDS)


metrics = MetricsClient()
