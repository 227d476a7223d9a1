"""CareStack adapter.

Every capability goes through ``PMSTransport``; in mock mode the transport
answers from an in-process ``MockRouter`` with CareStack-shaped payloads,
so the normalisation below runs identically in mock and live mode.

Locations, operatories and providers are cached per adapter for
``PMS_CACHE_TTL_MS`` (5 minutes by default).  Availability and appointments
are always fetched fresh.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from dental_pms import config
from dental_pms.adapters.base import PMSAdapter
from dental_pms.errors import NotFoundError
from dental_pms.models import (
    Appointment,
    AppointmentData,
    AppointmentStatusOption,
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
from dental_pms.services import normalizer as norm
from dental_pms.services.audit import AuditSink
from dental_pms.services.auth import ValidationResult, validate
from dental_pms.services.cache import TTLCache
from dental_pms.services.mock_pms import MockBehavior, MockPMSStore, MockRouter
from dental_pms.services.resolver import TenantPMSConfig
from dental_pms.services.transport import PMSTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")

API = "/api/v1.0"

# Page size used when a phone lookup walks the search results
_PHONE_SEARCH_PAGE_SIZE = 50


def _coerce(model: type[T], value: Any) -> T:
    if value is None or isinstance(value, model):
        return value
    return model.model_validate(value)


def _succeeded(response: Any) -> bool:
    if isinstance(response, dict) and "success" in response:
        return bool(response["success"])
    return True


class CareStackAdapter(PMSAdapter):
    pms_type = "carestack"
    display_name = "CareStack"

    def __init__(
        self,
        cfg: TenantPMSConfig,
        *,
        access_token: str | None = None,
        transport: PMSTransport | None = None,
        store: MockPMSStore | None = None,
        behavior: MockBehavior | None = None,
        audit: AuditSink | None = None,
        actor: str = "system",
        cache_ttl_ms: int = config.CACHE_TTL_MS,
    ) -> None:
        super().__init__(cfg, audit=audit, actor=actor)
        self._access_token = access_token
        if transport is None:
            router = None
            if cfg.mock:
                router = MockRouter(store or MockPMSStore(), environment=cfg.environment.value)
            transport = PMSTransport(
                cfg, access_token=access_token, router=router, behavior=behavior,
            )
        self.transport = transport
        self.cache = {
            "locations": TTLCache(cache_ttl_ms),
            "operatories": TTLCache(cache_ttl_ms),
            "providers": TTLCache(cache_ttl_ms),
        }

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def _cached(
        self,
        bucket: str,
        key: str,
        load: Callable[[], Awaitable[list[T]]],
    ) -> list[T]:
        cache = self.cache[bucket]
        cached = cache.get(key)
        if cached is not None:
            return list(cached)
        result = await load()
        cache.set(key, tuple(result))
        return result

    # ── Patients ─────────────────────────────────────────────────────

    async def _search(self, criteria: PatientSearchCriteria, pagination: Pagination) -> Page[Patient]:
        raw = await self.transport.post(
            f"{API}/patients/search", norm.search_to_vendor(criteria, pagination),
        )
        return norm.search_to_page(raw or {}, pagination)

    async def search_patient_by_phone(self, phone: str) -> list[Patient]:
        if not norm.digits_only(phone):
            return []
        criteria = PatientSearchCriteria(phone=phone)
        page_number = 1
        patients: list[Patient] = []
        while True:
            page = await self._search(
                criteria, Pagination(page=page_number, page_size=_PHONE_SEARCH_PAGE_SIZE),
            )
            patients.extend(page.items)
            if page_number >= page.total_pages or not page.items:
                break
            page_number += 1
        await self._audit(
            "search_patient_by_phone", "patient",
            phone_digits=norm.digits_only(phone), result_count=len(patients),
        )
        return patients

    async def search_patients(
        self,
        criteria: PatientSearchCriteria | dict | None = None,
        pagination: Pagination | dict | None = None,
    ) -> Page[Patient]:
        criteria = _coerce(PatientSearchCriteria, criteria) or PatientSearchCriteria()
        pagination = _coerce(Pagination, pagination) or Pagination()
        page = await self._search(criteria, pagination)
        await self._audit(
            "search_patients", "patient",
            criteria=criteria.model_dump(exclude_none=True),
            page=page.page, total=page.total,
        )
        return page

    async def get_patient(self, patient_id: str) -> Patient | None:
        vendor_id = norm.to_vendor_id(patient_id, "patientId")
        try:
            raw = await self.transport.get(f"{API}/patients/{vendor_id}")
        except NotFoundError:
            return None
        return norm.patient_to_domain(raw)

    async def create_patient(self, data: PatientData | dict) -> Patient:
        data = _coerce(PatientData, data)
        raw = await self.transport.post(f"{API}/patients", norm.patient_to_vendor(data))
        patient = norm.patient_to_domain(raw)
        await self._audit("create_patient", "patient", patient_id=patient.id)
        return patient

    # ── Practice reference data ──────────────────────────────────────

    async def list_providers(self) -> list[Provider]:
        async def load() -> list[Provider]:
            raw = await self.transport.get(f"{API}/providers")
            return [norm.provider_to_domain(p) for p in (raw or {}).get("providers") or []]

        return await self._cached("providers", "all", load)

    async def list_locations(self) -> list[Location]:
        async def load() -> list[Location]:
            raw = await self.transport.get(f"{API}/locations")
            return [norm.location_to_domain(loc) for loc in (raw or {}).get("locations") or []]

        return await self._cached("locations", "all", load)

    async def list_operatories(self, location_id: str | None = None) -> list[Operatory]:
        params = None
        if location_id is not None:
            params = {"locationId": norm.to_vendor_id(location_id, "locationId")}

        async def load() -> list[Operatory]:
            raw = await self.transport.get(f"{API}/operatories", params=params)
            return [norm.operatory_to_domain(op) for op in (raw or {}).get("operatories") or []]

        return await self._cached("operatories", location_id or "all", load)

    async def get_appointment_statuses(self) -> list[AppointmentStatusOption]:
        raw = await self.transport.get(f"{API}/appointment-status")
        return [norm.status_option_to_domain(s) for s in raw or []]

    async def get_procedure_codes(
        self, code: str | None = None, offset: int = 0, limit: int = 20,
    ) -> list[ProcedureCode]:
        raw = await self.transport.get(
            f"{API}/procedure-codes",
            params={"code": code, "offset": offset, "limit": limit},
        )
        return [norm.procedure_code_to_domain(c) for c in raw or []]

    async def get_production_types(self) -> list[ProductionType]:
        raw = await self.transport.get(f"{API}/production-types")
        return [norm.production_type_to_domain(p) for p in raw or []]

    # ── Scheduling ───────────────────────────────────────────────────

    async def get_available_slots(self, provider_id: str, date_range: DateRange | dict) -> list[Slot]:
        date_range = _coerce(DateRange, date_range)
        raw = await self.transport.get(
            f"{API}/appointments/availability",
            params={
                "providerId": norm.to_vendor_id(provider_id, "providerId"),
                "from": date_range.start,
                "to": date_range.end,
            },
        )
        return [norm.slot_to_domain(s) for s in (raw or {}).get("slots") or []]

    async def book_appointment(self, data: AppointmentData | dict) -> Appointment:
        data = _coerce(AppointmentData, data)
        payload = norm.appointment_to_vendor(data, idempotency_key=f"appt_{uuid.uuid4().hex}")
        raw = await self.transport.post(f"{API}/appointments", payload)
        appointment = norm.appointment_to_domain(raw)
        await self._audit(
            "book_appointment", "appointment",
            appointment_id=appointment.id, patient_id=appointment.patient_id,
            start_time=appointment.start_time,
        )
        return appointment

    async def get_appointment(self, appointment_id: str) -> Appointment | None:
        vendor_id = norm.to_vendor_id(appointment_id, "appointmentId")
        try:
            raw = await self.transport.get(f"{API}/appointments/{vendor_id}")
        except NotFoundError:
            return None
        return norm.appointment_to_domain(raw)

    async def cancel_appointment(self, appointment_id: str, reason: str | None = None) -> bool:
        return await self.cancel_appointment_with_details(
            appointment_id, CancellationDetails(reason=reason or "Cancelled by user"),
        )

    async def cancel_appointment_with_details(
        self, appointment_id: str, details: CancellationDetails | dict,
    ) -> bool:
        details = _coerce(CancellationDetails, details)
        vendor_id = norm.to_vendor_id(appointment_id, "appointmentId")
        body = details.model_dump(by_alias=True, exclude_none=True)
        ok = _succeeded(await self.transport.put(f"{API}/appointments/{vendor_id}/cancel", body))
        await self._audit(
            "cancel_appointment", "appointment",
            appointment_id=str(vendor_id), reason=details.reason, success=ok,
        )
        return ok

    async def checkout_appointment(
        self, appointment_id: str, override_care_note_validation: bool = True,
    ) -> bool:
        vendor_id = norm.to_vendor_id(appointment_id, "appointmentId")
        ok = _succeeded(
            await self.transport.put(
                f"{API}/appointments/{vendor_id}/checkout",
                {"overrideCareNoteValidation": override_care_note_validation},
            )
        )
        await self._audit("checkout_appointment", "appointment", appointment_id=str(vendor_id), success=ok)
        return ok

    async def modify_appointment_status(
        self, appointment_id: str, status_data: StatusUpdate | dict,
    ) -> bool:
        status_data = _coerce(StatusUpdate, status_data)
        vendor_id = norm.to_vendor_id(appointment_id, "appointmentId")
        ok = _succeeded(
            await self.transport.put(
                f"{API}/appointments/{vendor_id}/status",
                norm.status_update_to_vendor(status_data),
            )
        )
        await self._audit(
            "modify_appointment_status", "appointment",
            appointment_id=str(vendor_id), status=status_data.status.value, success=ok,
        )
        return ok

    async def delete_appointment(self, appointment_id: str) -> bool:
        vendor_id = norm.to_vendor_id(appointment_id, "appointmentId")
        ok = _succeeded(await self.transport.delete(f"{API}/appointments/{vendor_id}"))
        await self._audit("delete_appointment", "appointment", appointment_id=str(vendor_id), success=ok)
        return ok

    async def get_appointment_procedures(self, appointment_id: str) -> list[str]:
        vendor_id = norm.to_vendor_id(appointment_id, "appointmentId")
        raw = await self.transport.get(f"{API}/appointments/{vendor_id}/procedures")
        return [str(code_id) for code_id in raw or []]

    # ── Sync feeds ───────────────────────────────────────────────────

    async def _sync(
        self,
        feed: str,
        mapper: Callable[[dict[str, Any]], T],
        params: dict[str, Any],
    ) -> SyncResult[T]:
        raw = await self.transport.get(f"{API}/sync/{feed}", params=params) or {}
        result = SyncResult[Any](
            items=[mapper(item) for item in raw.get("items") or []],
            continue_token=raw.get("continueToken") or None,
        )
        await self._audit(
            f"sync_{feed.replace('-', '_')}", feed,
            modified_since=params["modifiedSince"],
            count=len(result.items),
            has_more=result.has_more,
        )
        return result

    async def sync_patients(
        self, modified_since: str, continue_token: str | None = None,
    ) -> SyncResult[Patient]:
        return await self._sync(
            "patients", norm.patient_to_domain,
            {"modifiedSince": modified_since, "continueToken": continue_token},
        )

    async def sync_appointments(
        self, modified_since: str, continue_token: str | None = None,
    ) -> SyncResult[Appointment]:
        return await self._sync(
            "appointments", norm.appointment_to_domain,
            {"modifiedSince": modified_since, "continueToken": continue_token},
        )

    async def sync_treatment_procedures(
        self,
        modified_since: str,
        continue_token: str | None = None,
        include_deleted: bool = False,
    ) -> SyncResult[TreatmentProcedure]:
        return await self._sync(
            "treatment-procedures", norm.treatment_procedure_to_domain,
            {
                "modifiedSince": modified_since,
                "continueToken": continue_token,
                "includeDeleted": str(include_deleted).lower(),
            },
        )

    # ── Connection ───────────────────────────────────────────────────

    async def validate_connection(self) -> ValidationResult:
        return await validate(self.config, access_token=self._access_token)
