"""Tests for appointment endpoints."""

from datetime import UTC, datetime, timedelta

import pytest
from conftest import paid_booking, token_headers
from httpx import AsyncClient


def future_day():
    return (datetime.now(UTC) + timedelta(days=3)).date()


def booking(**overrides) -> dict:
    return paid_booking(date=future_day().isoformat(), **overrides)


@pytest.mark.asyncio
async def test_create_appointment(
    client: AsyncClient,
    directory_data,
    publisher,
    patient_headers: dict,
) -> None:
    """Test booking a paid appointment."""
    response = await client.post("/api/v1/appointments/", json=booking(), headers=patient_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["id"].startswith("apt_")
    assert data["status"] == "scheduled"
    assert data["status_message"] == "Appointment scheduled"
    assert data["patient_id"] == "pat_1"
    assert data["doctor_name"] == "Dr. Asha Rao"
    assert data["payment_status"] == "paid"
    assert publisher.topics() == ["appointment.created"]


@pytest.mark.asyncio
async def test_create_requires_payment(
    client: AsyncClient,
    directory_data,
    patient_headers: dict,
) -> None:
    response = await client.post(
        "/api/v1/appointments/",
        json=booking(payment_status="pending"),
        headers=patient_headers,
    )

    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "ValidationError"
    assert data["message"] == "Payment required before confirming appointment"


@pytest.mark.asyncio
async def test_create_missing_fields(
    client: AsyncClient,
    directory_data,
    patient_headers: dict,
) -> None:
    response = await client.post(
        "/api/v1/appointments/",
        json={"doctor_id": "doc_cardio_1"},
        headers=patient_headers,
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Doctor, date, and time are required"


@pytest.mark.asyncio
async def test_create_unknown_doctor(
    client: AsyncClient,
    directory_data,
    patient_headers: dict,
) -> None:
    response = await client.post(
        "/api/v1/appointments/",
        json=booking(doctor_id="doc_missing"),
        headers=patient_headers,
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_only_patients_can_book(
    client: AsyncClient,
    directory_data,
    doctor_headers: dict,
) -> None:
    response = await client.post("/api/v1/appointments/", json=booking(), headers=doctor_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_requires_authentication(client: AsyncClient, directory_data) -> None:
    response = await client.post("/api/v1/appointments/", json=booking())
    assert response.status_code in (401, 403)

    response = await client.get(
        "/api/v1/appointments/",
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_with_unknown_role_rejected(client: AsyncClient, directory_data) -> None:
    headers = token_headers("pat_1", "superuser")
    response = await client.get("/api/v1/appointments/", headers=headers)
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_conflict_returns_remediation(
    client: AsyncClient,
    directory_data,
    insert_appointment,
    other_patient_headers: dict,
) -> None:
    await insert_appointment(date=future_day(), time="10:00")

    response = await client.post(
        "/api/v1/appointments/",
        json=booking(time="10:00"),
        headers=other_patient_headers,
    )

    assert response.status_code == 409
    data = response.json()
    assert data["error"] == "SchedulingConflict"
    assert data["next_available"]["available_time"] == "10:30"
    assert [doctor["id"] for doctor in data["alternatives"]] == ["doc_cardio_2"]


@pytest.mark.asyncio
async def test_check_availability(
    client: AsyncClient,
    directory_data,
    insert_appointment,
    patient_headers: dict,
) -> None:
    existing = await insert_appointment(date=future_day(), time="11:00")
    params = {"doctor_id": "doc_cardio_1", "date": future_day().isoformat()}

    free = await client.get(
        "/api/v1/appointments/availability",
        params={**params, "time": "10:00"},
        headers=patient_headers,
    )
    assert free.status_code == 200
    assert free.json()["available"] is True

    taken = await client.get(
        "/api/v1/appointments/availability",
        params={**params, "time": "11:00 AM"},
        headers=patient_headers,
    )
    data = taken.json()
    assert data["available"] is False
    assert data["time"] == "11:00"
    assert data["conflict_appointment_id"] == existing["id"]
    assert data["next_available"]["available_time"] == "11:30"
    assert data["alternatives"][0]["id"] == "doc_cardio_2"


@pytest.mark.asyncio
async def test_list_appointments(
    client: AsyncClient,
    directory_data,
    insert_appointment,
    patient_headers: dict,
    doctor_headers: dict,
) -> None:
    """Test listing appointments."""
    await insert_appointment(date=future_day(), time="09:00")
    await insert_appointment(date=future_day(), time="09:30", patient_id="pat_2")

    response = await client.get("/api/v1/appointments/", headers=patient_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["items"][0]["patient_id"] == "pat_1"

    response = await client.get(
        "/api/v1/appointments/",
        params={"status": "scheduled"},
        headers=doctor_headers,
    )
    assert response.json()["total"] == 2


@pytest.mark.asyncio
async def test_invalid_query_is_bad_request(
    client: AsyncClient,
    directory_data,
    patient_headers: dict,
) -> None:
    response = await client.get(
        "/api/v1/appointments/",
        params={"page": 0},
        headers=patient_headers,
    )

    assert response.status_code == 400
    assert response.json()["error"] == "ValidationError"


@pytest.mark.asyncio
async def test_get_appointment(
    client: AsyncClient,
    directory_data,
    insert_appointment,
    patient_headers: dict,
    other_patient_headers: dict,
) -> None:
    """Test getting a specific appointment."""
    existing = await insert_appointment(date=future_day())

    response = await client.get(f"/api/v1/appointments/{existing['id']}", headers=patient_headers)
    assert response.status_code == 200
    assert response.json()["id"] == existing["id"]

    response = await client.get(
        f"/api/v1/appointments/{existing['id']}", headers=other_patient_headers
    )
    assert response.status_code == 403

    response = await client.get("/api/v1/appointments/apt_missing", headers=patient_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_reschedule_appointment(
    client: AsyncClient,
    directory_data,
    insert_appointment,
    publisher,
    patient_headers: dict,
) -> None:
    existing = await insert_appointment(date=future_day(), time="10:00")

    response = await client.put(
        f"/api/v1/appointments/{existing['id']}/reschedule",
        json={"new_date": future_day().isoformat(), "new_time": "14:00"},
        headers=patient_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["old_appointment"]["status"] == "rescheduled"
    assert data["old_appointment"]["cancellation_reason"] == "Rescheduled"
    assert data["new_appointment"]["status"] == "scheduled"
    assert data["new_appointment"]["time"] == "14:00"
    assert data["new_appointment"]["original_appointment_id"] == existing["id"]
    assert data["new_appointment"]["rescheduled_from"]["original_time"] == "10:00"
    assert publisher.topics() == ["appointment.rescheduled"]


@pytest.mark.asyncio
async def test_reschedule_by_other_patient_forbidden(
    client: AsyncClient,
    directory_data,
    insert_appointment,
    other_patient_headers: dict,
) -> None:
    existing = await insert_appointment(date=future_day())

    response = await client.put(
        f"/api/v1/appointments/{existing['id']}/reschedule",
        json={"new_date": future_day().isoformat(), "new_time": "14:00"},
        headers=other_patient_headers,
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_cancel_appointment(
    client: AsyncClient,
    directory_data,
    insert_appointment,
    patient_headers: dict,
) -> None:
    existing = await insert_appointment(date=future_day())

    response = await client.put(
        f"/api/v1/appointments/{existing['id']}/cancel",
        json={"reason": "Travelling"},
        headers=patient_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "cancelled"
    assert data["cancellation_reason"] == "Travelling"

    # Cancelling twice is an explicit error
    response = await client.put(
        f"/api/v1/appointments/{existing['id']}/cancel",
        headers=patient_headers,
    )
    assert response.status_code == 422
    assert response.json()["error"] == "PolicyViolation"


@pytest.mark.asyncio
async def test_cancel_without_body_uses_default_reason(
    client: AsyncClient,
    directory_data,
    insert_appointment,
    doctor_headers: dict,
) -> None:
    existing = await insert_appointment(date=future_day())

    response = await client.put(
        f"/api/v1/appointments/{existing['id']}/cancel",
        headers=doctor_headers,
    )

    assert response.status_code == 200
    assert response.json()["cancellation_reason"] == "No reason provided"


@pytest.mark.asyncio
async def test_complete_is_doctor_only(
    client: AsyncClient,
    directory_data,
    insert_appointment,
    patient_headers: dict,
    doctor_headers: dict,
    other_doctor_headers: dict,
) -> None:
    existing = await insert_appointment(date=future_day())
    url = f"/api/v1/appointments/{existing['id']}/complete"

    assert (await client.put(url, headers=patient_headers)).status_code == 403
    assert (await client.put(url, headers=other_doctor_headers)).status_code == 403

    response = await client.put(url, headers=doctor_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "completed"


@pytest.mark.asyncio
async def test_no_show(
    client: AsyncClient,
    directory_data,
    insert_appointment,
    doctor_headers: dict,
) -> None:
    upcoming = await insert_appointment(date=future_day())
    past = await insert_appointment(
        date=(datetime.now(UTC) - timedelta(days=1)).date(),
        patient_id="pat_2",
    )

    response = await client.put(
        f"/api/v1/appointments/{upcoming['id']}/no-show", headers=doctor_headers
    )
    assert response.status_code == 422

    response = await client.put(f"/api/v1/appointments/{past['id']}/no-show", headers=doctor_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "missed"
    assert response.json()["no_show_marked_by"] == "doc_cardio_1"


@pytest.mark.asyncio
async def test_doctor_free_slots(
    client: AsyncClient,
    directory_data,
    insert_appointment,
    patient_headers: dict,
) -> None:
    await insert_appointment(date=future_day(), time="09:00")

    response = await client.get(
        "/api/v1/doctors/doc_cardio_1/slots",
        params={"date": future_day().isoformat()},
        headers=patient_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["slots"][0] == "09:30"
    assert "09:00" not in data["slots"]

    response = await client.get(
        "/api/v1/doctors/doc_missing/slots",
        params={"date": future_day().isoformat()},
        headers=patient_headers,
    )
    assert response.status_code == 404
