"""Vendors the platform knows about but has not integrated yet.

They resolve like any other vendor so offices can be configured ahead of
time; every capability raises ``UnsupportedPMSError``.
"""

from __future__ import annotations

from dental_pms.adapters.base import PMSAdapter
from dental_pms.errors import UnsupportedPMSError
from dental_pms.services.audit import AuditSink
from dental_pms.services.resolver import TenantPMSConfig


class NotIntegratedAdapter(PMSAdapter):
    def __init__(
        self,
        cfg: TenantPMSConfig,
        *,
        audit: AuditSink | None = None,
        actor: str = "system",
        **_unused,
    ) -> None:
        super().__init__(cfg, audit=audit, actor=actor)

    def _unsupported(self, capability: str) -> UnsupportedPMSError:
        return UnsupportedPMSError(f"{self.display_name} integration not implemented")


class DentrixAdapter(NotIntegratedAdapter):
    pms_type = "dentrix"
    display_name = "Dentrix"


class EaglesoftAdapter(NotIntegratedAdapter):
    pms_type = "eaglesoft"
    display_name = "Eaglesoft"
