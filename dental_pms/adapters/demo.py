"""Demo practice adapter.

Same behaviour and payload shapes as CareStack, but always served by the
in-process mock practice, whatever credentials the office carries.
"""

from __future__ import annotations

from dental_pms.adapters.carestack import CareStackAdapter
from dental_pms.services.resolver import TenantPMSConfig, mock_config


class DemoAdapter(CareStackAdapter):
    pms_type = "demo"
    display_name = "Demo"

    def __init__(self, cfg: TenantPMSConfig, **options) -> None:
        if not cfg.mock:
            cfg = mock_config(
                cfg.pms_type,
                cfg.tenant_id,
                timeout_ms=cfg.timeout_ms,
                max_retries=cfg.max_retries,
                rate_limit=cfg.rate_limit_per_second,
            )
        super().__init__(cfg, **options)
