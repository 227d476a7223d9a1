"""In-process stand-in for a CareStack practice.

``MockPMSStore`` holds vendor-shaped records (numeric ids, CareStack field
names) for one demo practice.  It is built fresh for every adapter or test,
so nothing leaks between tenants or between test cases.

``MockRouter`` maps ``(method, path)`` to a handler over the store and
returns exactly what the live API would return as JSON, which lets the
adapter run the same normalisation code in mock and live mode.

``MockBehavior`` carries the simulated network conditions (latency window,
failure probability, random source) used by the transport.
"""

from __future__ import annotations

import base64
import copy
import json
import logging
import random
import re
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from dental_pms import config
from dental_pms.errors import NotFoundError, ServerError

logger = logging.getLogger(__name__)

API = "/api/v1.0"


# ── Simulated network conditions ─────────────────────────────────────


@dataclass
class MockBehavior:
    latency_ms: tuple[int, int] = (config.MOCK_LATENCY_MIN_MS, config.MOCK_LATENCY_MAX_MS)
    failure_rate: float = config.MOCK_FAILURE_RATE
    rng: random.Random = field(default_factory=random.Random)

    @classmethod
    def instant(cls, *, seed: int = 0, failure_rate: float = 0.0) -> MockBehavior:
        """No latency; deterministic failures.  Meant for tests and the CLI."""
        return cls(latency_ms=(0, 0), failure_rate=failure_rate, rng=random.Random(seed))

    def latency_seconds(self) -> float:
        low, high = self.latency_ms
        return self.rng.randint(low, high) / 1000 if high > 0 else 0.0

    def should_fail(self) -> bool:
        return self.failure_rate > 0 and self.rng.random() < self.failure_rate


# ── Time helpers ─────────────────────────────────────────────────────


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _iso(value: datetime) -> str:
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_iso(value: str) -> datetime:
    """Parse an ISO date or datetime; naive values are taken as UTC.

    Raises:
        ServerError: status 400, as CareStack answers a malformed timestamp.
    """
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (ValueError, TypeError, AttributeError) as exc:
        raise ServerError(f"Invalid ISO timestamp: {value!r}", status_code=400) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def digits(value: str | None) -> str:
    return re.sub(r"\D", "", value or "")


# ── Seed data: the demo practice ─────────────────────────────────────

_DENVER = {"street": "123 Main Street", "city": "Denver", "state": "CO", "zipCode": "80202", "country": "USA"}
_BOULDER = {"street": "456 Oak Avenue", "city": "Boulder", "state": "CO", "zipCode": "80301", "country": "USA"}

SEED_PATIENTS = [
    {
        "id": 1,
        "firstName": "John",
        "lastName": "Smith",
        "dateOfBirth": "1985-03-15",
        "mobileNumber": "+1-555-0123",
        "email": "john.smith@email.com",
        "address": _DENVER,
        "gender": "male",
        "emergencyContact": {"name": "Jane Smith", "phone": "+1-555-0124", "relationship": "spouse"},
        "insuranceCarrier": "Delta Dental",
        "memberId": "DD123456789",
        "notes": "Patient prefers morning appointments. History of dental anxiety.",
        "createdAt": "2024-01-15T10:30:00Z",
        "updatedAt": "2024-01-15T10:30:00Z",
    },
    {
        "id": 2,
        "firstName": "Maria",
        "lastName": "Garcia",
        "dateOfBirth": "1992-07-22",
        "mobileNumber": "+1-555-0456",
        "email": "maria.garcia@email.com",
        "address": _BOULDER,
        "gender": "female",
        "emergencyContact": {"name": "Carlos Garcia", "phone": "+1-555-0457", "relationship": "brother"},
        "insuranceCarrier": "Cigna Dental",
        "memberId": "CG987654321",
        "notes": "Regular cleaning patient. No known allergies.",
        "createdAt": "2024-02-10T14:15:00Z",
        "updatedAt": "2024-02-10T14:15:00Z",
    },
    {
        "id": 3,
        "firstName": "Robert",
        "lastName": "Johnson",
        "dateOfBirth": "1978-11-08",
        "mobileNumber": "+1-555-0789",
        "email": "robert.johnson@email.com",
        "address": {"street": "789 Pine Road", "city": "Lakewood", "state": "CO", "zipCode": "80226", "country": "USA"},
        "gender": "male",
        "notes": "Self-pay patient. Prefers evening appointments.",
        "createdAt": "2024-03-05T09:45:00Z",
        "updatedAt": "2024-03-05T09:45:00Z",
    },
]

SEED_LOCATIONS = [
    {"id": 1, "name": "Downtown Dental Center", "address": _DENVER, "phone": "+1-555-0100",
     "timezone": "America/Denver", "isActive": True},
    {"id": 2, "name": "Boulder Family Dentistry", "address": _BOULDER, "phone": "+1-555-0200",
     "timezone": "America/Denver", "isActive": True},
]

SEED_OPERATORIES = [
    {"id": 1, "name": "Operatory 1", "locationId": 1, "isActive": True,
     "equipmentList": ["Digital X-Ray", "Intraoral Camera", "Ultrasonic Scaler"]},
    {"id": 2, "name": "Operatory 2", "locationId": 1, "isActive": True,
     "equipmentList": ["Digital X-Ray", "CEREC", "Laser"]},
    {"id": 3, "name": "Hygiene Bay 1", "locationId": 2, "isActive": True,
     "equipmentList": ["Digital X-Ray", "Ultrasonic Scaler", "Fluoride System"]},
]

SEED_PROVIDERS = [
    {"id": 1, "firstName": "Dr. Sarah", "lastName": "Wilson", "title": "DDS",
     "specialty": "General Dentistry", "phone": "+1-555-0301", "email": "dr.wilson@clinic.com",
     "locationIds": [1, 2], "isActive": True},
    {"id": 2, "firstName": "Dr. Michael", "lastName": "Chen", "title": "DDS, MS",
     "specialty": "Orthodontics", "phone": "+1-555-0302", "email": "dr.chen@clinic.com",
     "locationIds": [1], "isActive": True},
]

SEED_APPOINTMENTS = [
    {"id": 1, "patientId": 1, "providerId": 1, "locationId": 1, "operatoryId": 1,
     "startTime": "2024-12-20T09:00:00Z", "endTime": "2024-12-20T10:00:00Z", "status": "scheduled",
     "procedureCode": "D0150", "description": "Comprehensive Oral Examination",
     "notes": "New patient exam with X-rays", "duration": 60, "isNewPatient": True,
     "createdAt": "2024-12-15T10:00:00Z", "updatedAt": "2024-12-15T10:00:00Z"},
    {"id": 2, "patientId": 2, "providerId": 1, "locationId": 2, "operatoryId": 3,
     "startTime": "2024-12-21T14:00:00Z", "endTime": "2024-12-21T15:00:00Z", "status": "confirmed",
     "procedureCode": "D1110", "description": "Adult Prophylaxis",
     "notes": "Routine cleaning and checkup", "duration": 60, "isNewPatient": False,
     "createdAt": "2024-12-10T15:30:00Z", "updatedAt": "2024-12-12T09:00:00Z"},
]

SEED_APPOINTMENT_STATUSES = [
    {"id": i, "name": name, "isActive": True}
    for i, name in enumerate(
        ["Scheduled", "Confirmed", "Arrived", "In Progress", "Completed", "Cancelled", "No Show"],
        start=1,
    )
]

SEED_PROCEDURE_CODES = [
    {"id": 1, "code": "D0150", "description": "Comprehensive oral evaluation", "category": "Diagnostic", "fee": 150},
    {"id": 2, "code": "D1110", "description": "Adult prophylaxis", "category": "Preventive", "fee": 100},
    {"id": 3, "code": "D2140", "description": "Amalgam - one surface", "category": "Restorative", "fee": 180},
    {"id": 4, "code": "D2391", "description": "Resin-based composite - one surface", "category": "Restorative", "fee": 200},
    {"id": 5, "code": "D4341", "description": "Periodontal scaling and root planing", "category": "Periodontics", "fee": 250},
]

SEED_PRODUCTION_TYPES = [
    {"id": 1, "name": "Preventive", "description": "Preventive care procedures", "isActive": True},
    {"id": 2, "name": "Restorative", "description": "Restorative dental procedures", "isActive": True},
    {"id": 3, "name": "Cosmetic", "description": "Cosmetic dental procedures", "isActive": True},
    {"id": 4, "name": "Periodontics", "description": "Periodontal treatments", "isActive": True},
    {"id": 5, "name": "Orthodontics", "description": "Orthodontic treatments", "isActive": True},
]

SEED_TREATMENT_PROCEDURES = [
    {"id": 1, "appointmentId": 1, "patientId": 1, "procedureCodeId": 1, "status": "completed",
     "modifiedDate": "2024-12-20T10:00:00Z", "amount": 150,
     "notes": "Comprehensive exam completed successfully", "isDeleted": False},
    {"id": 2, "appointmentId": 2, "patientId": 2, "procedureCodeId": 2, "status": "scheduled",
     "modifiedDate": "2024-12-21T15:00:00Z", "amount": 100,
     "notes": "Routine prophylaxis", "isDeleted": False},
]


# ── Store ────────────────────────────────────────────────────────────


def _by_id(rows: list[dict[str, Any]]) -> dict[int, dict[str, Any]]:
    return {row["id"]: copy.deepcopy(row) for row in rows}


def encode_token(cursor: dict[str, Any]) -> str:
    raw = json.dumps(cursor, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def decode_token(token: str) -> dict[str, Any]:
    padded = token + "=" * (-len(token) % 4)
    try:
        cursor = json.loads(base64.urlsafe_b64decode(padded.encode()))
    except (ValueError, TypeError) as exc:
        raise ServerError(f"Invalid continueToken: {token!r}", status_code=400) from exc
    if (
        not isinstance(cursor, dict)
        or not isinstance(cursor.get("m"), str)
        or type(cursor.get("i")) is not int
    ):
        raise ServerError(f"Invalid continueToken: {token!r}", status_code=400)
    return cursor


class MockPMSStore:
    """Vendor-shaped records for one simulated practice.

    Every mutation goes through a lock so concurrent adapter calls never
    see half-applied writes.
    """

    def __init__(
        self,
        *,
        seed: bool = True,
        sync_page_size: int = 50,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.sync_page_size = sync_page_size
        self._clock = clock
        self._lock = threading.RLock()

        self.patients: dict[int, dict[str, Any]] = _by_id(SEED_PATIENTS) if seed else {}
        self.locations = _by_id(SEED_LOCATIONS) if seed else {}
        self.operatories = _by_id(SEED_OPERATORIES) if seed else {}
        self.providers = _by_id(SEED_PROVIDERS) if seed else {}
        self.appointments = _by_id(SEED_APPOINTMENTS) if seed else {}
        self.appointment_statuses = copy.deepcopy(SEED_APPOINTMENT_STATUSES)
        self.procedure_codes = copy.deepcopy(SEED_PROCEDURE_CODES)
        self.production_types = copy.deepcopy(SEED_PRODUCTION_TYPES)
        self.treatment_procedures = _by_id(SEED_TREATMENT_PROCEDURES) if seed else {}
        self.idempotency_keys: dict[str, int] = {}

    def now(self) -> str:
        return _iso(self._clock())

    @staticmethod
    def _next_id(table: dict[int, Any]) -> int:
        return max(table, default=0) + 1

    # ── Patients ─────────────────────────────────────────────────────

    def add_patient(self, payload: dict[str, Any]) -> dict[str, Any]:
        if not payload.get("firstName") or not payload.get("lastName"):
            raise ServerError("firstName and lastName are required", status_code=400)
        with self._lock:
            now = self.now()
            patient = {
                **copy.deepcopy(payload),
                "id": self._next_id(self.patients),
                "createdAt": now,
                "updatedAt": now,
            }
            self.patients[patient["id"]] = patient
            return copy.deepcopy(patient)

    def get_patient(self, patient_id: int) -> dict[str, Any]:
        with self._lock:
            patient = self.patients.get(patient_id)
            if patient is None:
                raise NotFoundError(f"Patient {patient_id} not found", status_code=404)
            return copy.deepcopy(patient)

    def search_patients(self, criteria: dict[str, Any], page: int, page_size: int) -> dict[str, Any]:
        with self._lock:
            rows = sorted(self.patients.values(), key=lambda p: p["id"])

        text = (criteria.get("searchText") or "").strip().lower()
        if text:
            text_digits = digits(text)
            rows = [
                p for p in rows
                if text in p.get("firstName", "").lower()
                or text in p.get("lastName", "").lower()
                or text in f"{p.get('firstName', '')} {p.get('lastName', '')}".lower()
                or text in (p.get("email") or "").lower()
                or (text_digits and any(text_digits in digits(n) for n in _phones(p)))
            ]
        for key in ("firstName", "lastName"):
            if criteria.get(key):
                needle = criteria[key].lower()
                rows = [p for p in rows if needle in p.get(key, "").lower()]
        if criteria.get("phone"):
            needle = digits(criteria["phone"])
            rows = [p for p in rows if needle and any(needle in digits(n) for n in _phones(p))]
        if criteria.get("email"):
            needle = criteria["email"].lower()
            rows = [p for p in rows if needle in (p.get("email") or "").lower()]
        if criteria.get("dateOfBirth"):
            rows = [p for p in rows if p.get("dateOfBirth") == criteria["dateOfBirth"]]

        total = len(rows)
        start = (page - 1) * page_size
        return {
            "patients": copy.deepcopy(rows[start : start + page_size]),
            "totalCount": total,
            "pageNumber": page,
            "pageSize": page_size,
            "totalPages": -(-total // page_size),
        }

    # ── Appointments ─────────────────────────────────────────────────

    def add_appointment(self, payload: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            key = payload.get("idempotencyKey")
            if key and key in self.idempotency_keys:
                return copy.deepcopy(self.appointments[self.idempotency_keys[key]])

            for ref, table in (
                ("patientId", self.patients),
                ("providerId", self.providers),
                ("locationId", self.locations),
            ):
                if payload.get(ref) not in table:
                    raise ServerError(f"Unknown {ref}: {payload.get(ref)}", status_code=400)

            start, end = parse_iso(payload["startTime"]), parse_iso(payload["endTime"])
            if end <= start:
                raise ServerError("endTime must be after startTime", status_code=400)

            now = self.now()
            appointment = {
                "id": self._next_id(self.appointments),
                "patientId": payload["patientId"],
                "providerId": payload["providerId"],
                "locationId": payload["locationId"],
                "operatoryId": payload.get("operatoryId"),
                "startTime": payload["startTime"],
                "endTime": payload["endTime"],
                "status": "scheduled",
                "procedureCode": payload.get("procedureCode"),
                "description": payload.get("description") or "Appointment",
                "notes": payload.get("notes"),
                "duration": int((end - start).total_seconds() // 60),
                "isNewPatient": bool(payload.get("isNewPatient", False)),
                "createdAt": now,
                "updatedAt": now,
            }
            self.appointments[appointment["id"]] = appointment
            if key:
                self.idempotency_keys[key] = appointment["id"]
            return copy.deepcopy(appointment)

    def get_appointment(self, appointment_id: int) -> dict[str, Any]:
        with self._lock:
            appointment = self.appointments.get(appointment_id)
            if appointment is None:
                raise NotFoundError(f"Appointment {appointment_id} not found", status_code=404)
            return copy.deepcopy(appointment)

    def update_appointment(self, appointment_id: int, **changes: Any) -> dict[str, Any]:
        with self._lock:
            appointment = self.appointments.get(appointment_id)
            if appointment is None:
                raise NotFoundError(f"Appointment {appointment_id} not found", status_code=404)
            appointment.update(changes)
            appointment["updatedAt"] = self.now()
            return copy.deepcopy(appointment)

    def delete_appointment(self, appointment_id: int) -> None:
        with self._lock:
            if self.appointments.pop(appointment_id, None) is None:
                raise NotFoundError(f"Appointment {appointment_id} not found", status_code=404)

    def availability(self, provider_id: int, start: str, end: str) -> dict[str, Any]:
        """Hourly slots, 9:00-17:00 UTC on weekdays, minus booked hours."""
        with self._lock:
            provider = self.providers.get(provider_id)
            if provider is None:
                raise NotFoundError(f"Provider {provider_id} not found", status_code=404)
            booked = [
                (parse_iso(a["startTime"]), parse_iso(a["endTime"]))
                for a in self.appointments.values()
                if a["providerId"] == provider_id and a["status"] != "cancelled"
            ]
        location_id = (provider.get("locationIds") or [0])[0]

        slots = []
        day = parse_iso(start).date()
        last = parse_iso(end).date()
        while day <= last:
            if day.weekday() < 5:
                for hour in range(9, 17):
                    slot_start = datetime(day.year, day.month, day.day, hour, tzinfo=UTC)
                    slot_end = slot_start + timedelta(hours=1)
                    taken = any(b_start < slot_end and slot_start < b_end for b_start, b_end in booked)
                    slots.append(
                        {
                            "id": f"{provider_id}{day:%Y%m%d}{hour:02d}",
                            "startTime": _iso(slot_start),
                            "endTime": _iso(slot_end),
                            "providerId": provider_id,
                            "locationId": location_id,
                            "available": not taken,
                        }
                    )
            day += timedelta(days=1)
        return {"slots": slots}

    # ── Sync feeds ───────────────────────────────────────────────────

    def sync_page(
        self,
        rows: list[dict[str, Any]],
        modified_field: str,
        modified_since: str,
        continue_token: str | None,
    ) -> dict[str, Any]:
        """Keyset-paginate *rows* modified at or after *modified_since*."""
        since = parse_iso(modified_since)

        def sort_key(row: dict[str, Any]) -> tuple[datetime, int]:
            return parse_iso(row[modified_field]), row["id"]

        ordered = sorted((r for r in rows if parse_iso(r[modified_field]) >= since), key=sort_key)
        if continue_token:
            cursor = decode_token(continue_token)
            after = (parse_iso(cursor["m"]), cursor["i"])
            ordered = [r for r in ordered if sort_key(r) > after]

        page = ordered[: self.sync_page_size]
        token = None
        if len(ordered) > len(page):
            tail = page[-1]
            token = encode_token({"m": tail[modified_field], "i": tail["id"]})
        return {"items": copy.deepcopy(page), "continueToken": token}

    def sync_patients(self, modified_since: str, continue_token: str | None) -> dict[str, Any]:
        with self._lock:
            rows = list(self.patients.values())
        return self.sync_page(rows, "updatedAt", modified_since, continue_token)

    def sync_appointments(self, modified_since: str, continue_token: str | None) -> dict[str, Any]:
        with self._lock:
            rows = [
                {
                    "id": a["id"],
                    "patientId": a["patientId"],
                    "providerId": a["providerId"],
                    "locationId": a["locationId"],
                    "startTime": a["startTime"],
                    "endTime": a["endTime"],
                    "status": a["status"],
                    "notes": a.get("notes"),
                    "modifiedDate": a["updatedAt"],
                }
                for a in self.appointments.values()
            ]
        return self.sync_page(rows, "modifiedDate", modified_since, continue_token)

    def sync_treatment_procedures(
        self, modified_since: str, continue_token: str | None, include_deleted: bool,
    ) -> dict[str, Any]:
        with self._lock:
            rows = [
                tp for tp in self.treatment_procedures.values()
                if include_deleted or not tp.get("isDeleted")
            ]
        return self.sync_page(rows, "modifiedDate", modified_since, continue_token)


def _phones(patient: dict[str, Any]) -> list[str]:
    return [
        patient[key]
        for key in ("mobileNumber", "homeNumber", "workNumber", "phone")
        if patient.get(key)
    ]


# ── Router ───────────────────────────────────────────────────────────

Handler = Callable[["MockRouter", re.Match, dict[str, Any], Any], Any]


def _int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ServerError(f"{name} must be numeric, got {value!r}", status_code=400) from exc


class MockRouter:
    """Dispatch a vendor request to the matching canned handler."""

    def __init__(self, store: MockPMSStore, environment: str = "mock") -> None:
        self.store = store
        self.environment = environment
        self._routes: list[tuple[str, re.Pattern, Handler]] = [
            ("GET", re.compile(rf"^{API}/appointment-status$"), MockRouter._statuses),
            ("GET", re.compile(rf"^{API}/procedure-codes$"), MockRouter._procedure_codes),
            ("GET", re.compile(rf"^{API}/production-types$"), MockRouter._production_types),
            ("POST", re.compile(rf"^{API}/patients/search$"), MockRouter._search_patients),
            ("GET", re.compile(rf"^{API}/patients/(\d+)$"), MockRouter._get_patient),
            ("POST", re.compile(rf"^{API}/patients$"), MockRouter._create_patient),
            ("GET", re.compile(rf"^{API}/locations$"), MockRouter._locations),
            ("GET", re.compile(rf"^{API}/operatories$"), MockRouter._operatories),
            ("GET", re.compile(rf"^{API}/providers$"), MockRouter._providers),
            ("GET", re.compile(rf"^{API}/appointments/availability$"), MockRouter._availability),
            ("POST", re.compile(rf"^{API}/appointments$"), MockRouter._create_appointment),
            ("GET", re.compile(rf"^{API}/appointments/(\d+)/procedures$"), MockRouter._appointment_procedures),
            ("PUT", re.compile(rf"^{API}/appointments/(\d+)/cancel$"), MockRouter._cancel),
            ("PUT", re.compile(rf"^{API}/appointments/(\d+)/checkout$"), MockRouter._checkout),
            ("PUT", re.compile(rf"^{API}/appointments/(\d+)/status$"), MockRouter._modify_status),
            ("GET", re.compile(rf"^{API}/appointments/(\d+)$"), MockRouter._get_appointment),
            ("DELETE", re.compile(rf"^{API}/appointments/(\d+)$"), MockRouter._delete_appointment),
            ("GET", re.compile(rf"^{API}/sync/patients$"), MockRouter._sync_patients),
            ("GET", re.compile(rf"^{API}/sync/appointments$"), MockRouter._sync_appointments),
            ("GET", re.compile(rf"^{API}/sync/treatment-procedures$"), MockRouter._sync_treatments),
            ("GET", re.compile(r"^/(ping)?$"), MockRouter._ping),
        ]

    def dispatch(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> Any:
        method = method.upper()
        path = path.split("?", 1)[0]
        for route_method, pattern, handler in self._routes:
            if route_method != method:
                continue
            match = pattern.match(path)
            if match:
                logger.debug("Mock PMS request: %s %s", method, path)
                return handler(self, match, params or {}, body)
        raise NotFoundError(f"No mock handler for {method} {path}", status_code=404)

    # ── Reference data ───────────────────────────────────────────────

    def _statuses(self, match, params, body):
        return copy.deepcopy(self.store.appointment_statuses)

    def _procedure_codes(self, match, params, body):
        rows = self.store.procedure_codes
        code = params.get("code")
        if code:
            rows = [r for r in rows if r["code"].lower().startswith(str(code).lower())]
        offset = _int(params.get("offset", 0), "offset")
        limit = _int(params.get("limit", 20), "limit")
        return copy.deepcopy(rows[offset : offset + limit])

    def _production_types(self, match, params, body):
        return copy.deepcopy(self.store.production_types)

    def _locations(self, match, params, body):
        return {"locations": copy.deepcopy(sorted(self.store.locations.values(), key=lambda r: r["id"]))}

    def _operatories(self, match, params, body):
        rows = sorted(self.store.operatories.values(), key=lambda r: r["id"])
        if params.get("locationId") is not None:
            location_id = _int(params["locationId"], "locationId")
            rows = [r for r in rows if r["locationId"] == location_id]
        return {"operatories": copy.deepcopy(rows)}

    def _providers(self, match, params, body):
        return {"providers": copy.deepcopy(sorted(self.store.providers.values(), key=lambda r: r["id"]))}

    # ── Patients ─────────────────────────────────────────────────────

    def _search_patients(self, match, params, body):
        body = body or {}
        return self.store.search_patients(
            body.get("searchCriteria") or {},
            max(1, _int(body.get("pageNumber", 1), "pageNumber")),
            max(1, _int(body.get("pageSize", 20), "pageSize")),
        )

    def _get_patient(self, match, params, body):
        return self.store.get_patient(int(match.group(1)))

    def _create_patient(self, match, params, body):
        return self.store.add_patient(body or {})

    # ── Appointments ─────────────────────────────────────────────────

    def _availability(self, match, params, body):
        for required in ("providerId", "from", "to"):
            if not params.get(required):
                raise ServerError(f"{required} is required", status_code=400)
        return self.store.availability(
            _int(params["providerId"], "providerId"), params["from"], params["to"],
        )

    def _create_appointment(self, match, params, body):
        return self.store.add_appointment(body or {})

    def _get_appointment(self, match, params, body):
        return self.store.get_appointment(int(match.group(1)))

    def _delete_appointment(self, match, params, body):
        self.store.delete_appointment(int(match.group(1)))
        return {"success": True}

    def _appointment_procedures(self, match, params, body):
        appointment = self.store.get_appointment(int(match.group(1)))
        codes = {c["code"]: c["id"] for c in self.store.procedure_codes}
        return [codes[appointment["procedureCode"]]] if appointment.get("procedureCode") in codes else []

    def _cancel(self, match, params, body):
        body = body or {}
        self.store.update_appointment(
            int(match.group(1)),
            status="cancelled",
            cancellationReason=body.get("reason"),
            cancelledBy=body.get("cancelledBy"),
        )
        return {"success": True}

    def _checkout(self, match, params, body):
        self.store.update_appointment(int(match.group(1)), status="completed")
        return {"success": True}

    def _modify_status(self, match, params, body):
        body = body or {}
        status = body.get("status")
        if not status:
            raise ServerError("status is required", status_code=400)
        changes: dict[str, Any] = {"status": status}
        if body.get("notes") is not None:
            changes["notes"] = body["notes"]
        self.store.update_appointment(int(match.group(1)), **changes)
        return {"success": True}

    # ── Sync feeds ───────────────────────────────────────────────────

    @staticmethod
    def _since(params: dict[str, Any]) -> str:
        if not params.get("modifiedSince"):
            raise ServerError("modifiedSince is required", status_code=400)
        return params["modifiedSince"]

    def _sync_patients(self, match, params, body):
        return self.store.sync_patients(self._since(params), params.get("continueToken"))

    def _sync_appointments(self, match, params, body):
        return self.store.sync_appointments(self._since(params), params.get("continueToken"))

    def _sync_treatments(self, match, params, body):
        include_deleted = str(params.get("includeDeleted", "false")).lower() == "true"
        return self.store.sync_treatment_procedures(
            self._since(params), params.get("continueToken"), include_deleted,
        )

    def _ping(self, match, params, body):
        return {
            "ok": True,
            "system": "carestack",
            "environment": self.environment,
            "timestamp": self.store.now(),
        }
