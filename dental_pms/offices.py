"""Office directory: which PMS each office uses, and its live adapter.

Offices are loaded from the JSON file named by ``OFFICES_FILE``::

    [
      {"id": "office-1", "clinicId": "clinic-1", "name": "Main Street",
       "pmsType": "carestack", "useMockMode": false,
       "pmsCredentials": {"vendorKey": "...", "accountKey": "...",
                          "accountId": "...", "environment": "sandbox"}}
    ]

Without a file the directory holds a single mock-mode demo office.  One
adapter is built per office on first use and reused afterwards, so the
reference-data caches and the mock practice survive between requests.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from dental_pms import config
from dental_pms.adapters.base import PMSAdapter
from dental_pms.adapters.factory import create_adapter
from dental_pms.errors import ConfigurationError
from dental_pms.services.audit import AuditSink, LoggingAuditSink

logger = logging.getLogger(__name__)

DEMO_OFFICE_ID = "demo-office"


class Office(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    clinic_id: str = "demo-clinic"
    name: str = ""
    pms_type: str = "carestack"
    pms_credentials: dict[str, Any] = Field(default_factory=dict)
    use_mock_mode: bool | None = None

    def credentials(self) -> dict[str, Any]:
        """Stored credentials with the office's mock flag folded in."""
        creds = dict(self.pms_credentials)
        if self.use_mock_mode is not None:
            creds["useMockMode"] = self.use_mock_mode
        return creds


def demo_office() -> Office:
    return Office(
        id=DEMO_OFFICE_ID,
        clinic_id="demo-clinic",
        name="Demo Dental",
        pms_type="carestack",
        use_mock_mode=True,
    )


def load_offices(path: str | Path) -> list[Office]:
    """Read an office list from a JSON file.

    Raises:
        ConfigurationError: the file is missing or not a JSON list of offices.
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Cannot read offices file {path}: {exc}") from exc
    if not isinstance(raw, list):
        raise ConfigurationError(f"Offices file {path} must contain a JSON list")
    return [Office.model_validate(entry) for entry in raw]


class OfficeDirectory:
    """In-memory office registry plus one cached adapter per office."""

    def __init__(
        self,
        offices: list[Office] | None = None,
        *,
        audit: AuditSink | None = None,
        **adapter_options: Any,
    ) -> None:
        self._offices = {office.id: office for office in offices or []}
        self._adapters: dict[str, PMSAdapter] = {}
        self._lock = asyncio.Lock()
        self.audit = audit or LoggingAuditSink()
        self._adapter_options = adapter_options

    @classmethod
    def from_config(cls, **kwargs: Any) -> OfficeDirectory:
        if config.OFFICES_FILE:
            offices = load_offices(config.OFFICES_FILE)
            logger.info("Loaded %d offices from %s", len(offices), config.OFFICES_FILE)
        else:
            offices = [demo_office()]
            logger.info("OFFICES_FILE not set, serving the demo office only")
        return cls(offices, **kwargs)

    def __len__(self) -> int:
        return len(self._offices)

    def get(self, office_id: str) -> Office | None:
        return self._offices.get(office_id)

    def add(self, office: Office) -> None:
        self._offices[office.id] = office
        self._adapters.pop(office.id, None)

    async def adapter_for(self, office: Office) -> PMSAdapter:
        async with self._lock:
            adapter = self._adapters.get(office.id)
            if adapter is None:
                adapter = create_adapter(
                    office.pms_type,
                    office.credentials(),
                    tenant_id=office.id,
                    audit=self.audit,
                    **self._adapter_options,
                )
                self._adapters[office.id] = adapter
            return adapter

    async def aclose(self) -> None:
        for adapter in self._adapters.values():
            await adapter.aclose()
        self._adapters.clear()
