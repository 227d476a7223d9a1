"""Tests for the in-process demo practice (store + router)."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from dental_pms.errors import NotFoundError, ServerError
from dental_pms.services.mock_pms import (
    MockBehavior,
    MockPMSStore,
    MockRouter,
    decode_token,
    encode_token,
)

API = "/api/v1.0"


def _appointment(**overrides):
    payload = {
        "patientId": 1, "providerId": 2, "locationId": 1,
        "startTime": "2026-03-02T10:00:00Z", "endTime": "2026-03-02T11:00:00Z",
    }
    payload.update(overrides)
    return payload


class TestSeedData:
    def test_fresh_store_has_demo_practice(self, store):
        assert len(store.patients) == 3
        assert len(store.locations) == 2
        assert len(store.operatories) == 3
        assert len(store.providers) == 2
        assert len(store.appointment_statuses) == 7

    def test_stores_do_not_share_state(self):
        first, second = MockPMSStore(), MockPMSStore()
        first.add_patient({"firstName": "A", "lastName": "B"})
        assert len(second.patients) == 3

    def test_unseeded_store_is_empty(self):
        assert MockPMSStore(seed=False).patients == {}


class TestPatientsStore:
    def test_add_patient_assigns_next_numeric_id(self, store):
        patient = store.add_patient({"firstName": "Ann", "lastName": "Lee"})
        assert patient["id"] == 4
        assert store.get_patient(4)["firstName"] == "Ann"

    def test_add_patient_requires_names(self, store):
        with pytest.raises(ServerError) as exc_info:
            store.add_patient({"firstName": "Ann"})
        assert exc_info.value.status_code == 400

    def test_get_missing_patient(self, store):
        with pytest.raises(NotFoundError):
            store.get_patient(999)

    @pytest.mark.parametrize("phone", ["555-0123", "(555) 0123", "+1 555 0123", "5550123"])
    def test_phone_search_ignores_formatting(self, store, phone):
        result = store.search_patients({"phone": phone}, 1, 20)
        assert [p["id"] for p in result["patients"]] == [1]

    def test_search_text_matches_name_and_email(self, store):
        assert store.search_patients({"searchText": "garcia"}, 1, 20)["totalCount"] == 1
        assert store.search_patients({"searchText": "email.com"}, 1, 20)["totalCount"] == 3

    def test_search_paginates(self, store):
        result = store.search_patients({}, 2, 2)
        assert [p["id"] for p in result["patients"]] == [3]
        assert (result["totalCount"], result["totalPages"]) == (3, 2)


class TestAppointmentsStore:
    def test_add_appointment_defaults_to_scheduled(self, store):
        appt = store.add_appointment(_appointment())
        assert appt["status"] == "scheduled"
        assert appt["duration"] == 60

    def test_idempotency_key_returns_same_booking(self, store):
        first = store.add_appointment(_appointment(idempotencyKey="k1"))
        second = store.add_appointment(_appointment(idempotencyKey="k1"))
        assert first["id"] == second["id"]
        assert len(store.appointments) == 3

    def test_unknown_reference_rejected(self, store):
        with pytest.raises(ServerError, match="providerId"):
            store.add_appointment(_appointment(providerId=99))

    def test_end_before_start_rejected(self, store):
        with pytest.raises(ServerError, match="endTime"):
            store.add_appointment(_appointment(endTime="2026-03-02T09:00:00Z"))

    def test_malformed_start_time_is_vendor_400(self, store):
        with pytest.raises(ServerError, match="Invalid ISO timestamp") as exc_info:
            store.add_appointment(_appointment(startTime="9am"))
        assert exc_info.value.status_code == 400
        assert len(store.appointments) == 2

    def test_delete_missing_appointment(self, store):
        with pytest.raises(NotFoundError):
            store.delete_appointment(999)


class TestAvailability:
    def test_weekday_has_eight_hourly_slots(self, store):
        # 2026-03-02 is a Monday
        slots = store.availability(2, "2026-03-02", "2026-03-02")["slots"]
        assert len(slots) == 8
        assert slots[0]["startTime"] == "2026-03-02T09:00:00Z"
        assert all(s["available"] for s in slots)

    def test_weekend_has_no_slots(self, store):
        assert store.availability(2, "2026-03-07", "2026-03-08")["slots"] == []

    def test_booked_hour_is_unavailable(self, store):
        store.add_appointment(_appointment())
        slots = store.availability(2, "2026-03-02", "2026-03-02")["slots"]
        taken = [s["startTime"] for s in slots if not s["available"]]
        assert taken == ["2026-03-02T10:00:00Z"]

    def test_cancelled_booking_frees_slot(self, store):
        appt = store.add_appointment(_appointment())
        store.update_appointment(appt["id"], status="cancelled")
        slots = store.availability(2, "2026-03-02", "2026-03-02")["slots"]
        assert all(s["available"] for s in slots)

    def test_unknown_provider(self, store):
        with pytest.raises(NotFoundError):
            store.availability(99, "2026-03-02", "2026-03-02")

    @pytest.mark.parametrize("start", ["monday", None])
    def test_malformed_range_is_vendor_400(self, store, start):
        with pytest.raises(ServerError) as exc_info:
            store.availability(2, start, "2026-03-02")
        assert exc_info.value.status_code == 400


class TestSyncPagination:
    def test_token_round_trip(self):
        cursor = {"m": "2024-01-01T00:00:00Z", "i": 3}
        assert decode_token(encode_token(cursor)) == cursor

    @pytest.mark.parametrize(
        "token",
        [
            "not-base64!!",
            encode_token({"x": 1}),
            encode_token({"m": 5, "i": 1}),
            encode_token({"m": "2024-01-01T00:00:00Z", "i": "1"}),
            encode_token(["m", "i"]),
        ],
    )
    def test_malformed_token_rejected(self, token):
        with pytest.raises(ServerError) as exc_info:
            decode_token(token)
        assert exc_info.value.status_code == 400

    def test_pages_cover_every_row_once(self):
        store = MockPMSStore(sync_page_size=2)
        seen, token = [], None
        while True:
            page = store.sync_patients("2000-01-01T00:00:00Z", token)
            seen.extend(p["id"] for p in page["items"])
            token = page["continueToken"]
            if token is None:
                break
        assert sorted(seen) == [1, 2, 3]
        assert len(seen) == len(set(seen))

    def test_malformed_modified_since_is_vendor_400(self, store):
        with pytest.raises(ServerError) as exc_info:
            store.sync_patients("yesterday", None)
        assert exc_info.value.status_code == 400

    def test_token_with_bad_timestamp_is_vendor_400(self, store):
        token = encode_token({"m": "not-a-date", "i": 1})
        with pytest.raises(ServerError) as exc_info:
            store.sync_patients("2000-01-01T00:00:00Z", token)
        assert exc_info.value.status_code == 400

    def test_modified_since_filters(self, store):
        page = store.sync_patients("2024-02-01T00:00:00Z", None)
        assert [p["id"] for p in page["items"]] == [2, 3]

    def test_deleted_treatments_hidden_by_default(self, store):
        store.treatment_procedures[1]["isDeleted"] = True
        visible = store.sync_treatment_procedures("2000-01-01", None, include_deleted=False)
        everything = store.sync_treatment_procedures("2000-01-01", None, include_deleted=True)
        assert [t["id"] for t in visible["items"]] == [2]
        assert len(everything["items"]) == 2

    def test_updates_move_rows_to_the_end(self):
        clock_time = datetime(2030, 1, 1, tzinfo=UTC)
        store = MockPMSStore(clock=lambda: clock_time)
        store.update_appointment(1, status="confirmed")
        page = store.sync_appointments("2000-01-01T00:00:00Z", None)
        assert [a["id"] for a in page["items"]] == [2, 1]


class TestRouter:
    def test_locations_shape(self, store):
        result = MockRouter(store).dispatch("GET", f"{API}/locations")
        assert [loc["id"] for loc in result["locations"]] == [1, 2]

    def test_operatories_filtered_by_location(self, store):
        result = MockRouter(store).dispatch("GET", f"{API}/operatories", {"locationId": 2})
        assert [op["id"] for op in result["operatories"]] == [3]

    def test_procedure_codes_prefix_and_window(self, store):
        router = MockRouter(store)
        assert [c["code"] for c in router.dispatch("GET", f"{API}/procedure-codes", {"code": "D2"})] == [
            "D2140", "D2391",
        ]
        assert len(router.dispatch("GET", f"{API}/procedure-codes", {"offset": 1, "limit": 2})) == 2

    def test_cancel_updates_status(self, store):
        router = MockRouter(store)
        assert router.dispatch("PUT", f"{API}/appointments/1/cancel", body={"reason": "sick"}) == {
            "success": True,
        }
        assert store.appointments[1]["status"] == "cancelled"
        assert store.appointments[1]["cancellationReason"] == "sick"

    def test_appointment_procedures(self, store):
        assert MockRouter(store).dispatch("GET", f"{API}/appointments/2/procedures") == [2]

    def test_availability_requires_params(self, store):
        with pytest.raises(ServerError, match="providerId"):
            MockRouter(store).dispatch("GET", f"{API}/appointments/availability", {})

    def test_unknown_route(self, store):
        with pytest.raises(NotFoundError):
            MockRouter(store).dispatch("PATCH", f"{API}/locations")

    def test_ping_reports_environment(self, store):
        assert MockRouter(store, environment="sandbox").dispatch("GET", "/ping")["environment"] == "sandbox"


class TestBehavior:
    def test_instant_has_no_latency_or_failures(self):
        behavior = MockBehavior.instant()
        assert behavior.latency_seconds() == 0.0
        assert not any(behavior.should_fail() for _ in range(100))

    def test_latency_within_window(self):
        behavior = MockBehavior(latency_ms=(200, 500), failure_rate=0)
        assert all(0.2 <= behavior.latency_seconds() <= 0.5 for _ in range(50))
