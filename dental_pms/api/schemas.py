"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from dental_pms.models import Pagination, PatientSearchCriteria


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "dental-pms-adapter"


class PMSActionRequest(BaseModel):
    """A core PMS capability invoked by name, e.g. ``listLocations``."""

    action: str = Field(..., min_length=1, max_length=100, description="Capability name")
    payload: dict[str, Any] = Field(default_factory=dict, description="Capability arguments")


class PMSActionResponse(BaseModel):
    success: bool = True
    action: str
    data: Any = None


class PatientSearchRequest(BaseModel):
    criteria: PatientSearchCriteria = Field(default_factory=PatientSearchCriteria)
    pagination: Pagination = Field(default_factory=Pagination)


class CheckoutRequest(BaseModel):
    override_care_note_validation: bool = Field(True, alias="overrideCareNoteValidation")

    model_config = {"populate_by_name": True}


class OperationResult(BaseModel):
    """Outcome of a mutating appointment operation."""

    success: bool
    appointment_id: str = Field(..., serialization_alias="appointmentId")


class ErrorResponse(BaseModel):
    detail: str
    error_type: str = Field(..., serialization_alias="errorType")
