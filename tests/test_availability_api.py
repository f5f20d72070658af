"""Availability API endpoint tests."""

import httpx
from fastapi.testclient import TestClient

from app.api.deps import get_availability_service
from app.main import app
from app.services.availability import AvailabilityService

from tests.conftest import PATIENT_ID, PRACTITIONER_ID, ROOM_1

BASE = "/api/v1/availability"


class TestSlotsEndpoint:
    """Tests for GET /availability/practitioners/{id}/slots."""

    def test_day_slots(self, client: TestClient, clinic: dict) -> None:
        response = client.get(f"{BASE}/practitioners/{PRACTITIONER_ID}/slots", params={"date": "2025-03-04"})

        assert response.status_code == 200
        data = response.json()
        assert data["working_day"] is True
        assert data["blocked"] is False
        assert len(data["slots"]) == 7
        assert data["slots"][0] == {
            "time": "09:00:00",
            "room_id": ROOM_1,
            "room_label": "Chair 1",
            "is_default_room": True,
        }

    def test_blocked_day_reason(self, client: TestClient, clinic_holidays: None) -> None:
        response = client.get(f"{BASE}/practitioners/{PRACTITIONER_ID}/slots", params={"date": "2025-03-10"})

        assert response.status_code == 200
        assert response.json()["reason"] == "Clinic refurbishment"
        assert response.json()["slots"] == []

    def test_unknown_practitioner(self, client: TestClient, clinic: dict) -> None:
        response = client.get(f"{BASE}/practitioners/nobody/slots", params={"date": "2025-03-04"})

        assert response.status_code == 404
        assert response.json()["field"] == "practitioner_id"

    def test_malformed_date(self, client: TestClient, clinic: dict) -> None:
        response = client.get(f"{BASE}/practitioners/{PRACTITIONER_ID}/slots", params={"date": "2025-02-30"})

        assert response.status_code == 422

    def test_unreachable_source_is_retryable(self, client: TestClient) -> None:
        class UnreachableSource:
            concurrent_reads = True

            async def get_practitioner(self, practitioner_id: str):
                raise httpx.ConnectError("connection refused")

        app.dependency_overrides[get_availability_service] = lambda: AvailabilityService(UnreachableSource())

        response = client.get(f"{BASE}/practitioners/{PRACTITIONER_ID}/slots", params={"date": "2025-03-04"})

        assert response.status_code == 503
        data = response.json()
        assert data["source"] == "practitioner"
        assert data["retry"] is True
        assert "Retry-After" in response.headers


class TestCalendarEndpoint:
    """Tests for the month calendar and its refresh."""

    def test_month_badges(self, client: TestClient, clinic_holidays: None) -> None:
        response = client.get(
            f"{BASE}/calendar",
            params={"year": 2025, "month": 3, "practitioner_id": PRACTITIONER_ID},
        )

        assert response.status_code == 200
        data = response.json()
        assert len(data["days"]) == 31
        assert data["days"][0]["date"] == "2025-03-01"
        assert data["working_weekdays"] == [0, 1, 2, 3, 4]
        blocked = [d["date"] for d in data["days"] if d["blocked"]]
        assert blocked == ["2025-03-10", "2025-03-11", "2025-03-12"]

    def test_month_without_practitioner(self, client: TestClient, clinic: dict) -> None:
        response = client.get(f"{BASE}/calendar", params={"year": 2025, "month": 3, "state": "confirmed"})

        assert response.status_code == 200
        assert response.json()["working_weekdays"] is None

    def test_invalid_month(self, client: TestClient) -> None:
        response = client.get(f"{BASE}/calendar", params={"year": 2025, "month": 13})

        assert response.status_code == 422

    def test_refresh_evicts_month(self, client: TestClient, clinic: dict) -> None:
        client.get(f"{BASE}/calendar", params={"year": 2025, "month": 3})
        client.get(f"{BASE}/calendar", params={"year": 2025, "month": 3, "room_id": ROOM_1})

        response = client.post(f"{BASE}/calendar/refresh", json={"year": 2025, "month": 3})

        assert response.status_code == 200
        assert response.json() == {"year": 2025, "month": 3, "evicted": 2}


class TestBookingEvaluateEndpoint:
    """Tests for POST /availability/booking/evaluate."""

    def test_admitted(self, client: TestClient, clinic: dict) -> None:
        response = client.post(
            f"{BASE}/booking/evaluate",
            json={
                "patient_id": "patient-new",
                "practitioner_id": PRACTITIONER_ID,
                "date": "2025-03-03",
                "time": "15:00",
            },
        )

        assert response.status_code == 200
        assert response.json() == {"admitted": True, "initial_state": "confirmed", "reasons": []}

    def test_refused_lists_reasons(self, client: TestClient, patient_history: None) -> None:
        response = client.post(
            f"{BASE}/booking/evaluate",
            json={
                "patient_id": PATIENT_ID,
                "practitioner_id": PRACTITIONER_ID,
                "date": "2025-03-03",
                "time": "09:00",
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["admitted"] is False
        assert {r["kind"] for r in data["reasons"]} == {"lead_time", "practitioner_exclusivity"}

    def test_staff_role(self, client: TestClient, clinic: dict) -> None:
        response = client.post(
            f"{BASE}/booking/evaluate",
            json={
                "patient_id": "patient-new",
                "practitioner_id": PRACTITIONER_ID,
                "date": "2025-03-03",
                "time": "09:00",
                "role": "staff",
            },
        )

        assert response.json()["admitted"] is True

    def test_missing_field(self, client: TestClient, clinic: dict) -> None:
        response = client.post(f"{BASE}/booking/evaluate", json={"patient_id": "p"})

        assert response.status_code == 422


class TestAppointmentEvaluateEndpoint:
    """Tests for POST /availability/appointments/{id}/evaluate."""

    def test_reschedule_allowed(self, client: TestClient, patient_history: None) -> None:
        response = client.post(
            f"{BASE}/appointments/appt-pending/evaluate",
            params={"action": "reschedule", "patient_id": PATIENT_ID},
        )

        assert response.status_code == 200
        assert response.json() == {
            "appointment_id": "appt-pending",
            "action": "reschedule",
            "allowed": True,
            "reasons": [],
        }

    def test_confirm_window(self, client: TestClient, patient_history: None) -> None:
        response = client.post(
            f"{BASE}/appointments/appt-pending/evaluate",
            params={"action": "confirm", "patient_id": PATIENT_ID},
        )

        reasons = response.json()["reasons"]
        assert [r["kind"] for r in reasons] == ["confirm_window"]
        assert reasons[0]["unlock_date"] == "2025-03-19"

    def test_unknown_appointment(self, client: TestClient, patient_history: None) -> None:
        response = client.post(
            f"{BASE}/appointments/appt-missing/evaluate",
            params={"action": "cancel", "patient_id": PATIENT_ID},
        )

        assert response.status_code == 404

    def test_unknown_action(self, client: TestClient, patient_history: None) -> None:
        response = client.post(
            f"{BASE}/appointments/appt-pending/evaluate",
            params={"action": "delete", "patient_id": PATIENT_ID},
        )

        assert response.status_code == 422
