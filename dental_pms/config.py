"""Centralized configuration for the dental PMS adapter service.

Setting resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/dental-pms/<VARIABLE_NAME>``.

Vendor credentials are *optional* here: a tenant without live credentials
is served by the in-process mock PMS (see ``services/resolver.py``).
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Setting resolution ───────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415 — lazy import to avoid boto3 calls in tests

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/dental-pms/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def get_setting(name: str, default: str | None = None) -> str | None:
    """Return a config value from env-var or SSM, or *default*.

    Placeholder values copied from ``.env.example`` (``your_...``) count
    as unset.
    """
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    return default


def _int_setting(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default


def _float_setting(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %s", name, raw, default)
        return default


# ── PMS defaults ────────────────────────────────────────────────────
DEFAULT_TIMEOUT_MS: int = 30_000
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RATE_LIMIT_PER_SECOND: int = 10

CACHE_TTL_MS: int = _int_setting("PMS_CACHE_TTL_MS", 300_000)

# Mock-mode simulation knobs
MOCK_LATENCY_MIN_MS: int = _int_setting("PMS_MOCK_LATENCY_MIN_MS", 200)
MOCK_LATENCY_MAX_MS: int = _int_setting("PMS_MOCK_LATENCY_MAX_MS", 500)
MOCK_FAILURE_RATE: float = _float_setting("PMS_MOCK_FAILURE_RATE", 0.04)

# ── Offices ─────────────────────────────────────────────────────────
# Optional JSON file with the office records served by the API.
OFFICES_FILE: str | None = os.getenv("OFFICES_FILE")

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = _int_setting("SERVER_PORT", 8000)
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
