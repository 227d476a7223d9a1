"""Shared test fixtures for the dental PMS adapter test suite.

``dental_pms`` is imported inside the fixtures, not at module level:
``dental_pms.config`` reads the environment on import, and that must
happen after ``pytest_configure`` has set the test defaults.
"""

from __future__ import annotations

import os

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts."""
    os.environ.setdefault("METRICS_ENABLED", "false")
    os.environ.setdefault("PMS_MOCK_LATENCY_MIN_MS", "0")
    os.environ.setdefault("PMS_MOCK_LATENCY_MAX_MS", "0")
    os.environ.setdefault("PMS_MOCK_FAILURE_RATE", "0")
    os.environ.pop("OFFICES_FILE", None)
    for name in list(os.environ):
        if name.startswith("CARESTACK_"):
            del os.environ[name]


@pytest.fixture
def store():
    """A fresh demo practice per test."""
    from dental_pms.services.mock_pms import MockPMSStore

    return MockPMSStore()


@pytest.fixture
def behavior():
    """No latency, no simulated failures."""
    from dental_pms.services.mock_pms import MockBehavior

    return MockBehavior.instant()


@pytest.fixture
def audit():
    from dental_pms.services.audit import InMemoryAuditSink

    return InMemoryAuditSink()


@pytest.fixture
def mock_config():
    from dental_pms.services.resolver import resolve

    return resolve({"useMockMode": True}, tenant_id="tenant-a")


@pytest.fixture
def adapter(mock_config, store, behavior, audit):
    """CareStack adapter in mock mode over the per-test store."""
    from dental_pms.adapters.carestack import CareStackAdapter

    return CareStackAdapter(mock_config, store=store, behavior=behavior, audit=audit)


@pytest.fixture
def live_config():
    """A complete live (sandbox) config pointing at a fake host for respx."""
    from dental_pms.services.resolver import Environment, TenantPMSConfig

    return TenantPMSConfig(
        pms_type="carestack",
        tenant_id="tenant-live",
        vendor_key="vendor-key-123",
        account_key="account-key-456",
        account_id="acct_789",
        base_url="https://pms.test",
        timeout_ms=2_000,
        max_retries=2,
        environment=Environment.SANDBOX,
    )
