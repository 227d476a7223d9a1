"""Credential/config resolution for one tenant's PMS connection.

A tenant's stored settings (``office.pms_credentials``) win over
process-wide environment values; anything still missing falls back to the
defaults in ``dental_pms.config``.  When live credentials are incomplete the
resolver hands back a *mock* configuration instead of failing, so a
half-configured office keeps working against the in-process demo practice.

Environment variables are looked up per vendor, e.g. for CareStack::

    CARESTACK_USE_MOCK=false
    CARESTACK_USE_SANDBOX=true
    CARESTACK_VENDOR_KEY_SANDBOX=...
    CARESTACK_TIMEOUT_SANDBOX=15000
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from dental_pms import config

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    MOCK = "mock"
    SANDBOX = "sandbox"
    LIVE = "live"


class AuthMethod(str, Enum):
    HEADER = "header"
    OAUTH2 = "oauth2"
    API_KEY = "api_key"


_DEFAULT_BASE_URLS: dict[str, dict[Environment, str]] = {
    "carestack": {
        Environment.SANDBOX: "https://sandbox-api.carestack.com",
        Environment.LIVE: "https://api.carestack.com",
    },
}

MOCK_VENDOR_KEY = "mock_vendor_key"
MOCK_ACCOUNT_KEY = "mock_account_key"
MOCK_ACCOUNT_ID = "mock_account_id"


@dataclass(frozen=True)
class TenantPMSConfig:
    """Connection parameters for one (tenant, PMS) pair.  Read-only."""

    pms_type: str
    tenant_id: str
    vendor_key: str
    account_key: str
    account_id: str
    base_url: str
    auth_method: str = AuthMethod.HEADER.value
    timeout_ms: int = config.DEFAULT_TIMEOUT_MS
    # Informational: the transport never retries; see services/retry.py
    max_retries: int = config.DEFAULT_MAX_RETRIES
    # Reserved for a future admission-control layer; not enforced
    rate_limit_per_second: int = config.DEFAULT_RATE_LIMIT_PER_SECOND
    mock: bool = False
    environment: Environment = Environment.LIVE

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    def describe(self) -> dict[str, Any]:
        """Loggable summary without any secret material."""
        return {
            "pms_type": self.pms_type,
            "tenant_id": self.tenant_id,
            "environment": self.environment.value,
            "base_url": "mock" if self.mock else self.base_url,
            "auth_method": self.auth_method,
            "mock": self.mock,
        }


def _pick(secrets: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        value = secrets.get(name)
        if value not in (None, ""):
            return value
    return None


def _as_bool(value: Any) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _as_int(value: Any, default: int, name: str) -> int:
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid %s=%r, using default %d", name, value, default)
        return default


class _Lookup:
    """Environment view: explicit overrides first, then env/SSM."""

    def __init__(self, prefix: str, overrides: Mapping[str, str] | None):
        self._prefix = prefix
        self._overrides = overrides or {}

    def get(self, name: str) -> str | None:
        key = f"{self._prefix}{name}"
        if key in self._overrides:
            return self._overrides[key]
        return config.get_setting(key)


def mock_config(
    pms_type: str,
    tenant_id: str,
    *,
    timeout_ms: int,
    max_retries: int,
    rate_limit: int,
) -> TenantPMSConfig:
    resolved = TenantPMSConfig(
        pms_type=pms_type,
        tenant_id=tenant_id,
        vendor_key=MOCK_VENDOR_KEY,
        account_key=MOCK_ACCOUNT_KEY,
        account_id=MOCK_ACCOUNT_ID,
        base_url=f"https://mock.{pms_type}.com",
        auth_method=AuthMethod.HEADER.value,
        timeout_ms=timeout_ms,
        max_retries=max_retries,
        rate_limit_per_second=rate_limit,
        mock=True,
        environment=Environment.MOCK,
    )
    # The fallback must always be usable; anything else is a bug here.
    if not (resolved.vendor_key and resolved.base_url and resolved.timeout_ms > 0):
        raise AssertionError(f"mock fallback produced an unusable config: {resolved.describe()}")
    return resolved


def resolve(
    tenant_secrets: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, str] | None = None,
    *,
    pms_type: str = "carestack",
    tenant_id: str = "default",
) -> TenantPMSConfig:
    """Resolve the connection config for *tenant_id* on *pms_type*.

    Never raises for missing or malformed optional settings.  Missing live
    credentials produce a mock config and a single warning.
    """
    pms_type = pms_type.lower()
    secrets = tenant_secrets or {}
    env = _Lookup(f"{pms_type.upper()}_", env_overrides)

    declared_env = str(_pick(secrets, "environment") or "").lower()
    use_mock = _as_bool(_pick(secrets, "useMockMode", "use_mock_mode", "useMock"))
    if use_mock is None:
        # Mock unless explicitly switched off
        use_mock = (env.get("USE_MOCK") or "true").lower() != "false"
    if declared_env == Environment.MOCK.value:
        use_mock = True

    if declared_env in (Environment.SANDBOX.value, Environment.LIVE.value):
        environment = Environment(declared_env)
    else:
        sandbox = (env.get("USE_SANDBOX") or "").lower() == "true"
        environment = Environment.SANDBOX if sandbox else Environment.LIVE
    suffix = f"_{environment.value.upper()}"

    timeout_ms = _as_int(
        _pick(secrets, "timeout", "timeoutMs", "timeout_ms") or env.get(f"TIMEOUT{suffix}"),
        config.DEFAULT_TIMEOUT_MS,
        "timeout",
    )
    if timeout_ms <= 0:
        logger.warning("Ignoring non-positive timeout %d ms", timeout_ms)
        timeout_ms = config.DEFAULT_TIMEOUT_MS
    max_retries = _as_int(
        _pick(secrets, "maxRetries", "max_retries") or env.get(f"MAX_RETRIES{suffix}"),
        config.DEFAULT_MAX_RETRIES,
        "maxRetries",
    )
    rate_limit = _as_int(
        _pick(secrets, "rateLimitPerSecond", "rate_limit_per_second")
        or env.get(f"RATE_LIMIT{suffix}"),
        config.DEFAULT_RATE_LIMIT_PER_SECOND,
        "rateLimitPerSecond",
    )
    numeric = {"timeout_ms": timeout_ms, "max_retries": max_retries, "rate_limit": rate_limit}

    if use_mock:
        logger.info("PMS %s for tenant %s running in mock mode", pms_type, tenant_id)
        return mock_config(pms_type, tenant_id, **numeric)

    vendor_key = _pick(secrets, "vendorKey", "vendor_key") or env.get(f"VENDOR_KEY{suffix}")
    account_key = _pick(secrets, "accountKey", "account_key") or env.get(f"ACCOUNT_KEY{suffix}")
    account_id = _pick(secrets, "accountId", "account_id") or env.get(f"ACCOUNT_ID{suffix}")
    base_url = (
        _pick(secrets, "baseUrl", "base_url")
        or env.get(f"BASE_URL{suffix}")
        or _DEFAULT_BASE_URLS.get(pms_type, {}).get(environment)
    )

    missing = [
        name
        for name, value in (
            ("vendorKey", vendor_key),
            ("accountKey", account_key),
            ("accountId", account_id),
            ("baseUrl", base_url),
        )
        if not value
    ]
    if missing:
        logger.warning(
            "Missing %s %s credentials for tenant %s (%s), falling back to mock mode",
            pms_type, environment.value, tenant_id, ", ".join(missing),
        )
        return mock_config(pms_type, tenant_id, **numeric)

    auth_method = str(
        _pick(secrets, "authMethod", "auth_method")
        or env.get(f"AUTH_METHOD{suffix}")
        or AuthMethod.HEADER.value
    ).lower()

    return TenantPMSConfig(
        pms_type=pms_type,
        tenant_id=tenant_id,
        vendor_key=str(vendor_key),
        account_key=str(account_key),
        account_id=str(account_id),
        base_url=str(base_url).rstrip("/"),
        auth_method=auth_method,
        timeout_ms=timeout_ms,
        max_retries=max_retries,
        rate_limit_per_second=rate_limit,
        mock=False,
        environment=environment,
    )
