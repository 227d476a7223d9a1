"""Vendor-neutral domain model shared by every PMS adapter.

All ids exposed here are strings, even when the vendor uses integers;
``services/normalizer.py`` performs the conversion at the vendor boundary.
Models serialise with camelCase aliases (``firstName``, ``continueToken``)
because that is the shape the dashboard and the call-handling functions
consume.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class DomainModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    ARRIVED = "arrived"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class Address(DomainModel):
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str | None = None


class Patient(DomainModel):
    id: str
    first_name: str
    last_name: str
    phone: str = ""
    email: str | None = None
    date_of_birth: str | None = None
    address: Address | None = None


class PatientData(DomainModel):
    """Fields accepted by ``create_patient``."""

    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    phone: str = ""
    email: str | None = None
    date_of_birth: str | None = None
    address: Address | None = None


class Provider(DomainModel):
    id: str
    name: str
    specialty: str | None = None
    location_ids: frozenset[str] = frozenset()


class Location(DomainModel):
    id: str
    name: str
    address: Address = Address()
    phone: str | None = None


class Operatory(DomainModel):
    id: str
    name: str
    location_id: str
    is_active: bool = True
    equipment: tuple[str, ...] = ()


class Slot(DomainModel):
    id: str
    start_time: str
    end_time: str
    provider_id: str
    location_id: str
    available: bool


class DateRange(DomainModel):
    # ``from`` is a keyword, hence the explicit alias
    start: str = Field(..., alias="from")
    end: str = Field(..., alias="to")


class AppointmentData(DomainModel):
    """Fields accepted by ``book_appointment``."""

    patient_id: str
    provider_id: str
    location_id: str
    start_time: str
    end_time: str
    service_id: str | None = None
    operatory_id: str | None = None
    notes: str | None = None


class Appointment(DomainModel):
    id: str
    patient_id: str
    provider_id: str
    location_id: str
    start_time: str
    end_time: str
    status: AppointmentStatus
    notes: str | None = None


class StatusUpdate(DomainModel):
    status: AppointmentStatus
    notes: str | None = None


class CancellationDetails(DomainModel):
    reason: str = "Cancelled by user"
    cancelled_by: str | None = None
    notify_patient: bool = False


class AppointmentStatusOption(DomainModel):
    id: str
    name: str
    is_active: bool


class ProcedureCode(DomainModel):
    id: str
    code: str
    description: str
    category: str | None = None
    fee: float | None = None


class ProductionType(DomainModel):
    id: str
    name: str
    description: str | None = None
    is_active: bool = True


class TreatmentProcedure(DomainModel):
    id: str
    appointment_id: str | None = None
    patient_id: str
    procedure_code_id: str
    status: str
    modified_date: str
    amount: float | None = None
    notes: str | None = None


class PatientSearchCriteria(DomainModel):
    query: str | None = Field(None, alias="q")
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    email: str | None = None
    date_of_birth: str | None = None


class Pagination(DomainModel):
    page: int = Field(1, ge=1)
    page_size: int = Field(20, ge=1, le=500)


class Page(DomainModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    page_size: int
    total_pages: int


class SyncResult(DomainModel, Generic[T]):
    """One page of a cursor-paginated sync feed.

    Keep calling with ``continue_token`` until ``has_more`` is false.
    """

    items: list[T]
    continue_token: str | None = None

    @computed_field(alias="hasMore")
    @property
    def has_more(self) -> bool:
        return self.continue_token is not None


@dataclass(frozen=True)
class AuditRecord:
    tenant: str
    actor: str
    action: str
    entity: str
    details: dict = field(default_factory=dict)
