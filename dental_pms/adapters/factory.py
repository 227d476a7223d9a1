"""Pick and build the adapter variant for an office's PMS type."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from dental_pms.adapters.base import PMSAdapter
from dental_pms.adapters.carestack import CareStackAdapter
from dental_pms.adapters.demo import DemoAdapter
from dental_pms.adapters.unavailable import DentrixAdapter, EaglesoftAdapter
from dental_pms.errors import UnsupportedPMSError
from dental_pms.services.resolver import resolve

logger = logging.getLogger(__name__)

ADAPTERS: dict[str, type[PMSAdapter]] = {
    "carestack": CareStackAdapter,
    "demo": DemoAdapter,
    "dummy": DemoAdapter,
    "mock": DemoAdapter,
    "dentrix": DentrixAdapter,
    "eaglesoft": EaglesoftAdapter,
}


def supported_pms_types() -> list[str]:
    return sorted(ADAPTERS)


def create_adapter(
    pms_type: str,
    credentials: Mapping[str, Any] | None = None,
    *,
    tenant_id: str = "default",
    env_overrides: Mapping[str, str] | None = None,
    **options: Any,
) -> PMSAdapter:
    """Build the adapter for *pms_type* with the tenant's resolved config.

    ``options`` are passed to the adapter constructor (``audit``, ``actor``,
    ``store``, ``behavior``, ``transport``, ...).  An ``accessToken`` in
    *credentials* is used for OAuth2 tenants unless one is given explicitly.

    Raises:
        UnsupportedPMSError: *pms_type* is not a known vendor.
    """
    key = (pms_type or "").strip().lower()
    adapter_cls = ADAPTERS.get(key)
    if adapter_cls is None:
        raise UnsupportedPMSError(f"Unsupported PMS type: {pms_type}")

    cfg = resolve(credentials, env_overrides, pms_type=key, tenant_id=tenant_id)
    options.setdefault("access_token", (credentials or {}).get("accessToken"))
    logger.debug("Creating %s adapter for tenant %s", adapter_cls.__name__, tenant_id)
    return adapter_cls(cfg, **options)
