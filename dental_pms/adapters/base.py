"""The uniform PMS capability interface.

One adapter instance serves one (tenant, PMS type) pair.  Callers pick the
variant once, through ``adapters.factory.create_adapter``, and never branch
on the vendor again.  A capability the vendor does not offer raises
``UnsupportedPMSError``.
"""

from __future__ import annotations

import logging
from typing import Any

from dental_pms.errors import UnsupportedPMSError
from dental_pms.models import (
    Appointment,
    AppointmentData,
    AppointmentStatusOption,
    AuditRecord,
    CancellationDetails,
    DateRange,
    Location,
    Operatory,
    Page,
    Pagination,
    Patient,
    PatientData,
    PatientSearchCriteria,
    ProcedureCode,
    ProductionType,
    Provider,
    Slot,
    StatusUpdate,
    SyncResult,
    TreatmentProcedure,
)
from dental_pms.services.audit import AuditSink, LoggingAuditSink
from dental_pms.services.auth import ValidationResult
from dental_pms.services.resolver import TenantPMSConfig

logger = logging.getLogger(__name__)


class PMSAdapter:
    pms_type: str = ""
    display_name: str = "PMS"

    def __init__(
        self,
        cfg: TenantPMSConfig,
        *,
        audit: AuditSink | None = None,
        actor: str = "system",
    ) -> None:
        self.config = cfg
        self._audit_sink = audit or LoggingAuditSink()
        self._actor = actor
        logger.info("%s adapter initialised: %s", self.display_name, cfg.describe())

    def _unsupported(self, capability: str) -> UnsupportedPMSError:
        return UnsupportedPMSError(f"{self.display_name} does not support {capability}")

    async def _audit(self, action: str, entity: str, **details: Any) -> None:
        await self._audit_sink.record(
            AuditRecord(
                tenant=self.config.tenant_id,
                actor=self._actor,
                action=f"{self.pms_type}_{action}",
                entity=entity,
                details=details,
            )
        )

    async def aclose(self) -> None:
        """Release network resources held by the adapter."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ── Patients ─────────────────────────────────────────────────────

    async def search_patient_by_phone(self, phone: str) -> list[Patient]:
        """Patients whose phone contains the digits of *phone*, any formatting."""
        raise self._unsupported("search_patient_by_phone")

    async def search_patients(
        self,
        criteria: PatientSearchCriteria | dict | None = None,
        pagination: Pagination | dict | None = None,
    ) -> Page[Patient]:
        raise self._unsupported("search_patients")

    async def get_patient(self, patient_id: str) -> Patient | None:
        raise self._unsupported("get_patient")

    async def create_patient(self, data: PatientData | dict) -> Patient:
        raise self._unsupported("create_patient")

    # ── Practice reference data ──────────────────────────────────────

    async def list_providers(self) -> list[Provider]:
        raise self._unsupported("list_providers")

    async def list_locations(self) -> list[Location]:
        raise self._unsupported("list_locations")

    async def list_operatories(self, location_id: str | None = None) -> list[Operatory]:
        raise self._unsupported("list_operatories")

    async def get_appointment_statuses(self) -> list[AppointmentStatusOption]:
        raise self._unsupported("get_appointment_statuses")

    async def get_procedure_codes(
        self, code: str | None = None, offset: int = 0, limit: int = 20,
    ) -> list[ProcedureCode]:
        raise self._unsupported("get_procedure_codes")

    async def get_production_types(self) -> list[ProductionType]:
        raise self._unsupported("get_production_types")

    # ── Scheduling ───────────────────────────────────────────────────

    async def get_available_slots(self, provider_id: str, date_range: DateRange | dict) -> list[Slot]:
        raise self._unsupported("get_available_slots")

    async def book_appointment(self, data: AppointmentData | dict) -> Appointment:
        raise self._unsupported("book_appointment")

    async def get_appointment(self, appointment_id: str) -> Appointment | None:
        raise self._unsupported("get_appointment")

    async def cancel_appointment(self, appointment_id: str, reason: str | None = None) -> bool:
        raise self._unsupported("cancel_appointment")

    async def cancel_appointment_with_details(
        self, appointment_id: str, details: CancellationDetails | dict,
    ) -> bool:
        raise self._unsupported("cancel_appointment_with_details")

    async def checkout_appointment(
        self, appointment_id: str, override_care_note_validation: bool = True,
    ) -> bool:
        raise self._unsupported("checkout_appointment")

    async def modify_appointment_status(
        self, appointment_id: str, status_data: StatusUpdate | dict,
    ) -> bool:
        raise self._unsupported("modify_appointment_status")

    async def delete_appointment(self, appointment_id: str) -> bool:
        raise self._unsupported("delete_appointment")

    async def get_appointment_procedures(self, appointment_id: str) -> list[str]:
        raise self._unsupported("get_appointment_procedures")

    # ── Sync feeds ───────────────────────────────────────────────────

    async def sync_patients(
        self, modified_since: str, continue_token: str | None = None,
    ) -> SyncResult[Patient]:
        raise self._unsupported("sync_patients")

    async def sync_appointments(
        self, modified_since: str, continue_token: str | None = None,
    ) -> SyncResult[Appointment]:
        raise self._unsupported("sync_appointments")

    async def sync_treatment_procedures(
        self,
        modified_since: str,
        continue_token: str | None = None,
        include_deleted: bool = False,
    ) -> SyncResult[TreatmentProcedure]:
        raise self._unsupported("sync_treatment_procedures")

    # ── Connection ───────────────────────────────────────────────────

    async def validate_connection(self) -> ValidationResult:
        raise self._unsupported("validate_connection")
