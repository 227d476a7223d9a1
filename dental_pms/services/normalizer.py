"""CareStack <-> domain model mapping.

Pure, synchronous functions.  Reads coalesce missing optional vendor fields
to ``None`` instead of raising; writes drop ``None`` values so the vendor
sees only what the caller provided.

CareStack identifies everything with integers.  Every id leaving this module
towards callers is a ``str``; every id going to CareStack is an ``int``.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable
from typing import Any

from dental_pms.errors import InvalidIdentifierError
from dental_pms.models import (
    Address,
    Appointment,
    AppointmentData,
    AppointmentStatus,
    AppointmentStatusOption,
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
    TreatmentProcedure,
)

logger = logging.getLogger(__name__)

_STATUS_ALIASES = {
    "canceled": AppointmentStatus.CANCELLED,
    "noshow": AppointmentStatus.NO_SHOW,
    "inprogress": AppointmentStatus.IN_PROGRESS,
    "checked_out": AppointmentStatus.COMPLETED,
}


# ── Identifiers ──────────────────────────────────────────────────────


def to_domain_id(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def to_vendor_id(value: str | int, field: str = "id") -> int:
    """``"42"`` -> ``42``; anything non-numeric is rejected before any call."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    text = str(value).strip()
    if not text.isdigit():
        raise InvalidIdentifierError(f"{field} must be a numeric id, got {value!r}")
    return int(text)


def _ids(values: Iterable[Any] | None) -> frozenset[str]:
    return frozenset(str(v) for v in values or () if v is not None)


def _compact(payload: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in payload.items() if v is not None}


def digits_only(phone: str | None) -> str:
    return re.sub(r"\D", "", phone or "")


# ── Addresses ────────────────────────────────────────────────────────


def address_to_domain(raw: dict[str, Any] | None) -> Address | None:
    if not raw:
        return None
    return Address(
        street=raw.get("street") or "",
        city=raw.get("city") or "",
        state=raw.get("state") or "",
        zip_code=raw.get("zipCode") or "",
        country=raw.get("country"),
    )


def address_to_vendor(address: Address | None) -> dict[str, Any] | None:
    if address is None:
        return None
    return _compact(
        {
            "street": address.street,
            "city": address.city,
            "state": address.state,
            "zipCode": address.zip_code,
            "country": address.country,
        }
    )


# ── Patients ─────────────────────────────────────────────────────────


def patient_to_domain(raw: dict[str, Any]) -> Patient:
    phone = raw.get("mobileNumber") or raw.get("homeNumber") or raw.get("workNumber") or raw.get("phone")
    return Patient(
        id=to_domain_id(raw.get("id")) or "",
        first_name=raw.get("firstName") or "",
        last_name=raw.get("lastName") or "",
        phone=phone or "",
        email=raw.get("email"),
        date_of_birth=raw.get("dateOfBirth"),
        address=address_to_domain(raw.get("address")),
    )


def patient_to_vendor(data: PatientData) -> dict[str, Any]:
    return _compact(
        {
            "firstName": data.first_name,
            "lastName": data.last_name,
            "mobileNumber": data.phone or None,
            "email": data.email,
            "dateOfBirth": data.date_of_birth,
            "address": address_to_vendor(data.address),
        }
    )


def search_to_vendor(criteria: PatientSearchCriteria, pagination: Pagination) -> dict[str, Any]:
    """Build the ``POST /patients/search`` body.  Phones are sent digits-only."""
    return {
        "searchCriteria": _compact(
            {
                "searchText": criteria.query,
                "firstName": criteria.first_name,
                "lastName": criteria.last_name,
                "phone": digits_only(criteria.phone) or None,
                "email": criteria.email,
                "dateOfBirth": criteria.date_of_birth,
            }
        ),
        "pageNumber": pagination.page,
        "pageSize": pagination.page_size,
    }


def search_to_page(raw: dict[str, Any], pagination: Pagination) -> Page[Patient]:
    items = [patient_to_domain(p) for p in raw.get("patients") or []]
    total = int(raw.get("totalCount", len(items)))
    page_size = int(raw.get("pageSize") or pagination.page_size)
    return Page[Patient](
        items=items,
        total=total,
        page=int(raw.get("pageNumber") or pagination.page),
        page_size=page_size,
        total_pages=math.ceil(total / page_size),
    )


# ── Practice reference data ──────────────────────────────────────────


def location_to_domain(raw: dict[str, Any]) -> Location:
    return Location(
        id=to_domain_id(raw.get("id")) or "",
        name=raw.get("name") or "",
        address=address_to_domain(raw.get("address")) or Address(),
        phone=raw.get("phone"),
    )


def operatory_to_domain(raw: dict[str, Any]) -> Operatory:
    return Operatory(
        id=to_domain_id(raw.get("id")) or "",
        name=raw.get("name") or "",
        location_id=to_domain_id(raw.get("locationId")) or "",
        is_active=bool(raw.get("isActive", True)),
        equipment=tuple(raw.get("equipmentList") or ()),
    )


def provider_to_domain(raw: dict[str, Any]) -> Provider:
    name = " ".join(part for part in (raw.get("firstName"), raw.get("lastName")) if part)
    return Provider(
        id=to_domain_id(raw.get("id")) or "",
        name=name or raw.get("name") or "",
        specialty=raw.get("specialty"),
        location_ids=_ids(raw.get("locationIds")),
    )


def slot_to_domain(raw: dict[str, Any]) -> Slot:
    return Slot(
        id=to_domain_id(raw.get("id")) or "",
        start_time=raw.get("startTime") or "",
        end_time=raw.get("endTime") or "",
        provider_id=to_domain_id(raw.get("providerId")) or "",
        location_id=to_domain_id(raw.get("locationId")) or "",
        available=bool(raw.get("available", False)),
    )


def status_option_to_domain(raw: dict[str, Any]) -> AppointmentStatusOption:
    return AppointmentStatusOption(
        id=to_domain_id(raw.get("id")) or "",
        name=raw.get("name") or "",
        is_active=bool(raw.get("isActive", False)),
    )


def procedure_code_to_domain(raw: dict[str, Any]) -> ProcedureCode:
    return ProcedureCode(
        id=to_domain_id(raw.get("id")) or "",
        code=raw.get("code") or "",
        description=raw.get("description") or "",
        category=raw.get("category"),
        fee=raw.get("fee"),
    )


def production_type_to_domain(raw: dict[str, Any]) -> ProductionType:
    return ProductionType(
        id=to_domain_id(raw.get("id")) or "",
        name=raw.get("name") or "",
        description=raw.get("description"),
        is_active=bool(raw.get("isActive", True)),
    )


# ── Appointments ─────────────────────────────────────────────────────


def status_to_domain(raw: str | None) -> AppointmentStatus:
    """``"In Progress"`` / ``"in-progress"`` / ``"IN_PROGRESS"`` -> ``IN_PROGRESS``."""
    if not raw:
        return AppointmentStatus.SCHEDULED
    key = re.sub(r"[\s-]+", "_", raw.strip().lower())
    try:
        return AppointmentStatus(key)
    except ValueError:
        pass
    alias = _STATUS_ALIASES.get(key.replace("_", "")) or _STATUS_ALIASES.get(key)
    if alias is not None:
        return alias
    logger.warning("Unknown appointment status %r, treating as scheduled", raw)
    return AppointmentStatus.SCHEDULED


def appointment_to_domain(raw: dict[str, Any]) -> Appointment:
    return Appointment(
        id=to_domain_id(raw.get("id")) or "",
        patient_id=to_domain_id(raw.get("patientId")) or "",
        provider_id=to_domain_id(raw.get("providerId")) or "",
        location_id=to_domain_id(raw.get("locationId")) or "",
        start_time=raw.get("startTime") or "",
        end_time=raw.get("endTime") or "",
        status=status_to_domain(raw.get("status")),
        notes=raw.get("notes") or None,
    )


def appointment_to_vendor(data: AppointmentData, idempotency_key: str | None = None) -> dict[str, Any]:
    return _compact(
        {
            "patientId": to_vendor_id(data.patient_id, "patientId"),
            "providerId": to_vendor_id(data.provider_id, "providerId"),
            "locationId": to_vendor_id(data.location_id, "locationId"),
            "operatoryId": (
                to_vendor_id(data.operatory_id, "operatoryId") if data.operatory_id else None
            ),
            "startTime": data.start_time,
            "endTime": data.end_time,
            "notes": data.notes,
            "idempotencyKey": idempotency_key,
        }
    )


def status_update_to_vendor(update: StatusUpdate) -> dict[str, Any]:
    return _compact({"status": update.status.value, "notes": update.notes})


def treatment_procedure_to_domain(raw: dict[str, Any]) -> TreatmentProcedure:
    return TreatmentProcedure(
        id=to_domain_id(raw.get("id")) or "",
        appointment_id=to_domain_id(raw.get("appointmentId")),
        patient_id=to_domain_id(raw.get("patientId")) or "",
        procedure_code_id=to_domain_id(raw.get("procedureCodeId")) or "",
        status=raw.get("status") or "",
        modified_date=raw.get("modifiedDate") or "",
        amount=raw.get("amount"),
        notes=raw.get("notes"),
    )
