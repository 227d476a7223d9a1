"""Authentication strategies for vendor PMS APIs.

Three mutually exclusive schemes, chosen by ``TenantPMSConfig.auth_method``:

* ``header``  — ``VendorKey`` / ``AccountKey`` / ``AccountId`` headers
  (CareStack's documented scheme).
* ``oauth2``  — ``Authorization: Bearer <token>``; the caller must supply
  the token.
* ``api_key`` — ``X-API-Key`` / ``X-Account-Key`` / ``X-Account-Id``.

``validate`` probes a cheap read endpoint and turns the HTTP status into
an actionable verdict for the setup screens.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

import httpx

from dental_pms.errors import MissingTokenError, UnsupportedAuthMethodError
from dental_pms.services.resolver import AuthMethod, TenantPMSConfig

logger = logging.getLogger(__name__)

USER_AGENT = "DentalPMS-Integration/2.0"

# Cheap, read-only endpoint used to probe credentials
_PROBE_PATHS = {
    "carestack": "/api/v1.0/appointment-status",
}

_ACCOUNT_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass
class ValidationResult:
    is_valid: bool
    method: str
    details: dict[str, Any]
    suggestions: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "isValid": self.is_valid,
            "method": self.method,
            "details": self.details,
        }
        if self.suggestions:
            result["suggestions"] = self.suggestions
        return result


def headers_for(cfg: TenantPMSConfig, access_token: str | None = None) -> dict[str, str]:
    """Build request headers for the configured auth scheme."""
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "User-Agent": USER_AGENT,
    }

    method = cfg.auth_method
    if method == AuthMethod.HEADER:
        headers.update(
            {
                "VendorKey": cfg.vendor_key,
                "AccountKey": cfg.account_key,
                "AccountId": cfg.account_id,
            }
        )
    elif method == AuthMethod.OAUTH2:
        if not access_token:
            raise MissingTokenError("OAuth2 access token required but not provided")
        headers.update(
            {
                "Authorization": f"Bearer {access_token}",
                "X-Account-Id": cfg.account_id,
            }
        )
    elif method == AuthMethod.API_KEY:
        headers.update(
            {
                "X-API-Key": cfg.vendor_key,
                "X-Account-Key": cfg.account_key,
                "X-Account-Id": cfg.account_id,
            }
        )
    else:
        raise UnsupportedAuthMethodError(f"Unsupported authentication method: {method}")
    return headers


def _format_suggestions(cfg: TenantPMSConfig) -> list[str]:
    suggestions: list[str] = []
    if len(cfg.vendor_key or "") < 8:
        suggestions.append("VendorKey should be at least 8 characters long")
    if len(cfg.account_key or "") < 8:
        suggestions.append("AccountKey should be at least 8 characters long")
    if not _ACCOUNT_ID_RE.match(cfg.account_id or ""):
        suggestions.append(
            "AccountId should contain only alphanumeric characters, underscores, and hyphens"
        )
    return suggestions


async def validate(
    cfg: TenantPMSConfig,
    *,
    access_token: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> ValidationResult:
    """Check *cfg* against the live vendor endpoint.

    Mock configs are always valid and never touch the network.
    """
    if cfg.mock:
        return ValidationResult(
            is_valid=True,
            method="mock",
            details={"message": "Mock authentication always valid"},
        )

    suggestions = _format_suggestions(cfg)
    try:
        headers = headers_for(cfg, access_token)
    except (MissingTokenError, UnsupportedAuthMethodError) as exc:
        return ValidationResult(
            is_valid=False,
            method=cfg.auth_method,
            details={"error": str(exc), "type": "configuration_error"},
            suggestions=[*suggestions, "Review the authentication method and token settings"],
        )

    url = f"{cfg.base_url}{_PROBE_PATHS.get(cfg.pms_type, '/')}"
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=cfg.timeout_seconds)
    try:
        response = await http.get(url, headers=headers, timeout=cfg.timeout_seconds)
    except httpx.HTTPError as exc:
        logger.warning("Credential probe for %s failed: %s", cfg.pms_type, exc)
        return ValidationResult(
            is_valid=False,
            method=cfg.auth_method,
            details={"error": str(exc), "type": "network_error"},
            suggestions=[
                *suggestions,
                "Check network connectivity",
                "Verify base URL is accessible",
                "Check if the PMS API is experiencing issues",
            ],
        )
    finally:
        if owns_client:
            await http.aclose()

    status = response.status_code
    if status == 401:
        return ValidationResult(
            is_valid=False,
            method=cfg.auth_method,
            details={"status": 401, "message": "Authentication failed - credentials may be invalid"},
            suggestions=[
                *suggestions,
                "Verify VendorKey, AccountKey, and AccountId are correct",
                "Check if credentials are for the correct environment (sandbox vs live)",
                "Ensure account has API access enabled",
            ],
        )
    if status == 403:
        return ValidationResult(
            is_valid=False,
            method=cfg.auth_method,
            details={"status": 403, "message": "Access forbidden - account may not have API permissions"},
            suggestions=[
                *suggestions,
                "Contact vendor support to enable API access",
                "Verify account subscription includes API features",
            ],
        )
    if response.is_success:
        return ValidationResult(
            is_valid=True,
            method=cfg.auth_method,
            details={"status": status, "message": "Authentication successful", "baseUrl": cfg.base_url},
        )
    return ValidationResult(
        is_valid=False,
        method=cfg.auth_method,
        details={"status": status, "message": f"Unexpected response: {response.reason_phrase}"},
        suggestions=[
            *suggestions,
            "Check the PMS API status",
            "Verify base URL is correct for your instance",
        ],
    )
