"""FastAPI route definitions for the dental PMS adapter API."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError

from dental_pms.adapters.base import PMSAdapter
from dental_pms.api.schemas import (
    CheckoutRequest,
    HealthResponse,
    OperationResult,
    PatientSearchRequest,
    PMSActionRequest,
    PMSActionResponse,
)
from dental_pms.errors import (
    AuthenticationError,
    ConfigurationError,
    MissingTokenError,
    NetworkError,
    NotFoundError,
    PMSError,
    RateLimitError,
    RequestTimeoutError,
)
from dental_pms.models import CancellationDetails, StatusUpdate
from dental_pms.offices import Office, OfficeDirectory
from dental_pms.services import retry

logger = logging.getLogger(__name__)

router = APIRouter()


def error_status(exc: PMSError) -> int:
    """HTTP status the API answers with for an adapter error."""
    if isinstance(exc, (AuthenticationError, MissingTokenError)):
        return 401
    if isinstance(exc, RateLimitError):
        return 429
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, RequestTimeoutError):
        return 504
    if isinstance(exc, NetworkError):
        return 503
    if isinstance(exc, ConfigurationError):
        return 400
    return 502


def _get_directory(request: Request) -> OfficeDirectory:
    directory = getattr(request.app.state, "offices", None)
    if directory is None:
        raise HTTPException(
            status_code=503,
            detail="The service is still starting up. Please try again in a moment.",
        )
    return directory


def _get_office(directory: OfficeDirectory, office_id: str) -> Office:
    office = directory.get(office_id)
    if office is None:
        raise HTTPException(status_code=404, detail=f"Unknown office: {office_id}")
    return office


async def _read(adapter: PMSAdapter, label: str, call: Callable[[], Awaitable[Any]]) -> Any:
    """Run a read-only capability with the tenant's retry budget."""
    return await retry.with_backoff(call, max_retries=adapter.config.max_retries, label=label)


# ── Core capabilities, any vendor ────────────────────────────────────

# action -> (is_read, required payload fields, handler)
_ACTIONS: dict[
    str, tuple[bool, tuple[str, ...], Callable[[PMSAdapter, dict[str, Any]], Awaitable[Any]]]
] = {
    "searchPatientByPhone": (
        True, ("phone",), lambda a, p: a.search_patient_by_phone(p["phone"]),
    ),
    "createPatient": (False, (), lambda a, p: a.create_patient(p)),
    "getAvailableSlots": (
        True,
        ("providerId", "dateRange"),
        lambda a, p: a.get_available_slots(p["providerId"], p["dateRange"]),
    ),
    "bookAppointment": (False, (), lambda a, p: a.book_appointment(p)),
    "listProviders": (True, (), lambda a, p: a.list_providers()),
    "listLocations": (True, (), lambda a, p: a.list_locations()),
}


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post("/offices/{office_id}/pms", response_model=PMSActionResponse)
async def run_action(office_id: str, body: PMSActionRequest, request: Request):
    """Invoke one core capability on the office's PMS.

    Read actions are retried with exponential backoff; writes run once.
    """
    directory = _get_directory(request)
    office = _get_office(directory, office_id)
    entry = _ACTIONS.get(body.action)
    if entry is None:
        raise HTTPException(status_code=400, detail=f"Unknown action: {body.action}")
    is_read, required, handler = entry
    missing = [name for name in required if name not in body.payload]
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing payload field: {missing[0]}")

    adapter = await directory.adapter_for(office)
    request_id = getattr(request.state, "request_id", "?")
    logger.info("[%s] %s on office %s (%s)", request_id, body.action, office_id, office.pms_type)

    async def call() -> Any:
        return await handler(adapter, body.payload)

    try:
        result = await (_read(adapter, body.action, call) if is_read else call())
    except ValidationError as exc:
        errors = exc.errors(include_url=False, include_context=False)
        raise HTTPException(status_code=422, detail=jsonable_encoder(errors)) from exc
    return PMSActionResponse(action=body.action, data=jsonable_encoder(result))


# ── CareStack-specific capabilities ──────────────────────────────────


async def carestack_adapter(office_id: str, request: Request) -> PMSAdapter:
    """Resolve the office and reject non-CareStack offices before building anything."""
    directory = _get_directory(request)
    office = _get_office(directory, office_id)
    if office.pms_type.lower() != "carestack":
        raise HTTPException(
            status_code=400,
            detail=f"Office {office_id} uses {office.pms_type}, not CareStack",
        )
    return await directory.adapter_for(office)


carestack = APIRouter(prefix="/offices/{office_id}/carestack", tags=["carestack"])


@carestack.get("/validate")
async def validate_connection(adapter: PMSAdapter = Depends(carestack_adapter)):
    result = await adapter.validate_connection()
    return result.as_dict()


@carestack.get("/patients/{patient_id}")
async def get_patient(patient_id: str, adapter: PMSAdapter = Depends(carestack_adapter)):
    patient = await _read(adapter, "get_patient", lambda: adapter.get_patient(patient_id))
    if patient is None:
        raise HTTPException(status_code=404, detail=f"Patient {patient_id} not found")
    return jsonable_encoder(patient)


@carestack.post("/patients/search")
async def search_patients(
    body: PatientSearchRequest, adapter: PMSAdapter = Depends(carestack_adapter),
):
    page = await _read(
        adapter, "search_patients", lambda: adapter.search_patients(body.criteria, body.pagination),
    )
    return jsonable_encoder(page)


@carestack.get("/operatories")
async def list_operatories(
    location_id: str | None = Query(None, alias="locationId"),
    adapter: PMSAdapter = Depends(carestack_adapter),
):
    return jsonable_encoder(
        await _read(adapter, "list_operatories", lambda: adapter.list_operatories(location_id))
    )


@carestack.get("/appointment-statuses")
async def appointment_statuses(adapter: PMSAdapter = Depends(carestack_adapter)):
    return jsonable_encoder(
        await _read(adapter, "get_appointment_statuses", adapter.get_appointment_statuses)
    )


@carestack.get("/procedure-codes")
async def procedure_codes(
    code: str | None = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=500),
    adapter: PMSAdapter = Depends(carestack_adapter),
):
    return jsonable_encoder(
        await _read(
            adapter, "get_procedure_codes", lambda: adapter.get_procedure_codes(code, offset, limit),
        )
    )


@carestack.get("/production-types")
async def production_types(adapter: PMSAdapter = Depends(carestack_adapter)):
    return jsonable_encoder(
        await _read(adapter, "get_production_types", adapter.get_production_types)
    )


@carestack.get("/appointments/{appointment_id}")
async def get_appointment(appointment_id: str, adapter: PMSAdapter = Depends(carestack_adapter)):
    appointment = await _read(
        adapter, "get_appointment", lambda: adapter.get_appointment(appointment_id),
    )
    if appointment is None:
        raise HTTPException(status_code=404, detail=f"Appointment {appointment_id} not found")
    return jsonable_encoder(appointment)


@carestack.get("/appointments/{appointment_id}/procedures")
async def appointment_procedures(
    appointment_id: str, adapter: PMSAdapter = Depends(carestack_adapter),
):
    codes = await _read(
        adapter,
        "get_appointment_procedures",
        lambda: adapter.get_appointment_procedures(appointment_id),
    )
    return {"appointmentId": appointment_id, "procedureCodeIds": codes}


@carestack.put("/appointments/{appointment_id}/cancel", response_model=OperationResult)
async def cancel_appointment(
    appointment_id: str,
    details: CancellationDetails,
    adapter: PMSAdapter = Depends(carestack_adapter),
):
    ok = await adapter.cancel_appointment_with_details(appointment_id, details)
    return OperationResult(success=ok, appointment_id=appointment_id)


@carestack.put("/appointments/{appointment_id}/checkout", response_model=OperationResult)
async def checkout_appointment(
    appointment_id: str,
    body: CheckoutRequest,
    adapter: PMSAdapter = Depends(carestack_adapter),
):
    ok = await adapter.checkout_appointment(appointment_id, body.override_care_note_validation)
    return OperationResult(success=ok, appointment_id=appointment_id)


@carestack.put("/appointments/{appointment_id}/status", response_model=OperationResult)
async def modify_appointment_status(
    appointment_id: str,
    update: StatusUpdate,
    adapter: PMSAdapter = Depends(carestack_adapter),
):
    ok = await adapter.modify_appointment_status(appointment_id, update)
    return OperationResult(success=ok, appointment_id=appointment_id)


@carestack.delete("/appointments/{appointment_id}", response_model=OperationResult)
async def delete_appointment(appointment_id: str, adapter: PMSAdapter = Depends(carestack_adapter)):
    ok = await adapter.delete_appointment(appointment_id)
    return OperationResult(success=ok, appointment_id=appointment_id)


@carestack.get("/sync/patients")
async def sync_patients(
    modified_since: str = Query(..., alias="modifiedSince"),
    continue_token: str | None = Query(None, alias="continueToken"),
    adapter: PMSAdapter = Depends(carestack_adapter),
):
    return jsonable_encoder(
        await _read(
            adapter, "sync_patients", lambda: adapter.sync_patients(modified_since, continue_token),
        )
    )


@carestack.get("/sync/appointments")
async def sync_appointments(
    modified_since: str = Query(..., alias="modifiedSince"),
    continue_token: str | None = Query(None, alias="continueToken"),
    adapter: PMSAdapter = Depends(carestack_adapter),
):
    return jsonable_encoder(
        await _read(
            adapter,
            "sync_appointments",
            lambda: adapter.sync_appointments(modified_since, continue_token),
        )
    )


@carestack.get("/sync/treatment-procedures")
async def sync_treatment_procedures(
    modified_since: str = Query(..., alias="modifiedSince"),
    continue_token: str | None = Query(None, alias="continueToken"),
    include_deleted: bool = Query(False, alias="includeDeleted"),
    adapter: PMSAdapter = Depends(carestack_adapter),
):
    return jsonable_encoder(
        await _read(
            adapter,
            "sync_treatment_procedures",
            lambda: adapter.sync_treatment_procedures(
                modified_since, continue_token, include_deleted,
            ),
        )
    )


router.include_router(carestack)
