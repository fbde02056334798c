import pytest

MONDAY = "2025-03-10"
NEXT_MONDAY = "2025-03-17"
SUNDAY = "2025-03-16"


@pytest.fixture()
def published_schedule(client, doctor):
    slots = [
        {"day": day, "isAvailable": True, "startTime": "09:00", "endTime": "17:00"}
        for day in ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")
    ]
    response = client.put("/doctors/schedule", json={"availableSlots": slots}, headers=doctor)
    assert response.status_code == 200
    return response.json()["data"]


def _book(client, doctor, start="09:00", end=None, date=MONDAY, **extra):
    time = {"start": start}
    if end:
        time["end"] = end
    payload = {"patientId": "patient-1", "date": date, "time": time, **extra}
    return client.post("/doctors/appointments", json=payload, headers=doctor)


def _cancel(client, headers, appointment_id, reason="Feeling better"):
    return client.request("DELETE", f"/appointments/{appointment_id}", json={"cancelReason": reason}, headers=headers)


def test_create_appointment_defaults_to_standard_duration(client, doctor, patient, published_schedule):
    response = _book(
        client,
        doctor,
        start="09:15",
        notes={"preAppointment": "Bring previous prescriptions"},
        requiredTests=[{"name": "Complete Blood Count", "priority": "high"}],
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["time"] == {"start": "09:15", "end": "09:45"}
    assert data["status"] == "scheduled"
    assert data["doctorId"] == "doctor-1"
    assert data["notes"]["preAppointment"] == "Bring previous prescriptions"
    assert data["requiredTests"][0]["name"] == "Complete Blood Count"

    mine = client.get("/appointments", headers=patient).json()["data"]
    assert [a["id"] for a in mine] == [data["id"]]
    events = [n["event"] for n in client.get("/notifications", headers=patient).json()["data"]]
    assert "appointment.scheduled" in events


def test_status_filter_must_be_known(client, doctor, patient, published_schedule):
    _book(client, doctor, start="09:00")
    assert client.get("/appointments", params={"status": "rescheduled"}, headers=patient).status_code == 422
    response = client.get("/doctors/appointments", params={"status": "pending"}, headers=doctor)
    assert response.status_code == 422
    assert response.json()["error"] == "ValidationError"

    scheduled = client.get("/appointments", params={"status": "scheduled"}, headers=patient).json()["data"]
    assert len(scheduled) == 1
    assert client.get("/appointments", params={"status": "cancelled"}, headers=patient).json()["data"] == []


def test_same_slot_cannot_be_booked_twice(client, doctor, published_schedule):
    assert _book(client, doctor, start="09:00").status_code == 201
    response = _book(client, doctor, start="09:00")
    assert response.status_code == 409
    assert response.json()["error"] == "SlotUnavailable"


def test_overlapping_slot_is_rejected(client, doctor, published_schedule):
    assert _book(client, doctor, start="09:00").status_code == 201
    assert _book(client, doctor, start="09:15").status_code == 409
    assert _book(client, doctor, start="09:30").status_code == 201


@pytest.mark.parametrize(
    ("start", "date"),
    [("17:00", MONDAY), ("08:45", MONDAY), ("10:00", SUNDAY), ("23:45", MONDAY)],
)
def test_slots_outside_published_hours_are_unavailable(client, doctor, published_schedule, start, date):
    response = _book(client, doctor, start=start, date=date)
    assert response.status_code == 409
    assert response.json()["error"] == "SlotUnavailable"


def test_no_schedule_means_no_availability(client, doctor):
    assert _book(client, doctor).status_code == 409


def test_explicit_end_time_must_respect_limits(client, doctor, published_schedule):
    assert _book(client, doctor, start="09:00", end="09:05").status_code == 422
    response = _book(client, doctor, start="10:00", end="11:00")
    assert response.status_code == 201
    assert response.json()["data"]["time"] == {"start": "10:00", "end": "11:00"}


def test_patient_cannot_create_appointments(client, patient, published_schedule):
    response = client.post(
        "/doctors/appointments",
        json={"patientId": "patient-1", "date": MONDAY, "time": {"start": "09:00"}},
        headers=patient,
    )
    assert response.status_code == 403


def test_appointment_for_another_patients_diagnosis_is_rejected(client, doctor, other_patient, published_schedule):
    diagnosis = client.post("/diagnoses", json={"symptomDescription": "Rash"}, headers=other_patient).json()["data"]
    response = _book(client, doctor, diagnosisId=diagnosis["id"])
    assert response.status_code == 422


def test_cancel_requires_reason(client, doctor, patient, published_schedule):
    appointment = _book(client, doctor).json()["data"]
    response = _cancel(client, patient, appointment["id"], reason="  ")
    assert response.status_code == 422
    assert client.get(f"/appointments/{appointment['id']}", headers=patient).json()["data"]["status"] == "scheduled"


def test_cancel_clears_diagnosis_link_without_touching_status(client, doctor, patient, published_schedule):
    diagnosis = client.post("/diagnoses", json={"symptomDescription": "Chest pain"}, headers=patient).json()["data"]
    appointment = _book(client, doctor, diagnosisId=diagnosis["id"]).json()["data"]

    linked = client.get(f"/diagnoses/{diagnosis['id']}", headers=patient).json()["data"]
    assert linked["associatedAppointmentId"] == appointment["id"]

    response = _cancel(client, patient, appointment["id"])
    assert response.status_code == 200
    cancelled = response.json()["data"]
    assert cancelled["status"] == "cancelled"
    assert cancelled["cancelledBy"] == "patient-1"
    assert cancelled["cancelReason"] == "Feeling better"
    assert cancelled["cancelledAt"] is not None

    after = client.get(f"/diagnoses/{diagnosis['id']}", headers=patient).json()["data"]
    assert after["associatedAppointmentId"] is None
    assert after["status"] == "ongoing"

    events = [n["event"] for n in client.get("/notifications", headers=doctor).json()["data"]]
    assert "appointment.cancelled" in events


def test_cancelled_slot_can_be_booked_again(client, doctor, published_schedule):
    appointment = _book(client, doctor).json()["data"]
    response = client.patch(
        f"/doctors/appointments/{appointment['id']}/cancel", json={"cancelReason": "Doctor unavailable"}, headers=doctor
    )
    assert response.status_code == 200
    assert _book(client, doctor).status_code == 201


def test_complete_with_follow_up_books_next_week(client, doctor, patient, published_schedule):
    diagnosis = client.post("/diagnoses", json={"symptomDescription": "Fatigue"}, headers=patient).json()["data"]
    appointment = _book(
        client,
        doctor,
        diagnosisId=diagnosis["id"],
        requiredTests=[{"name": "Thyroid Panel", "priority": "high"}],
    ).json()["data"]

    response = client.post(
        f"/doctors/appointments/{appointment['id']}/complete",
        json={"notes": "Stable, recheck bloods", "followUp": {"create": True}},
        headers=doctor,
    )
    assert response.status_code == 200
    completed = response.json()["data"]
    assert completed["status"] == "completed"
    assert completed["notes"]["postAppointment"] == "Stable, recheck bloods"
    assert completed["completedAt"] is not None

    follow_up = client.get(f"/appointments/{completed['followupAppointmentId']}", headers=patient).json()["data"]
    assert follow_up["date"] == NEXT_MONDAY
    assert follow_up["time"] == {"start": "09:00", "end": "09:30"}
    assert follow_up["status"] == "scheduled"
    assert follow_up["diagnosisId"] == diagnosis["id"]
    assert follow_up["requiredTests"] == completed["requiredTests"]


def test_complete_without_follow_up(client, doctor, published_schedule):
    appointment = _book(client, doctor).json()["data"]
    response = client.post(f"/doctors/appointments/{appointment['id']}/complete", json={}, headers=doctor)
    assert response.status_code == 200
    assert response.json()["data"]["followupAppointmentId"] is None


def test_finished_appointments_cannot_change(client, doctor, patient, published_schedule):
    appointment = _book(client, doctor).json()["data"]
    assert client.post(f"/doctors/appointments/{appointment['id']}/no-show", headers=doctor).status_code == 200

    assert _cancel(client, patient, appointment["id"]).status_code == 409
    response = client.put(
        f"/doctors/appointments/{appointment['id']}", json={"time": {"start": "11:00"}}, headers=doctor
    )
    assert response.status_code == 409


def test_reschedule_moves_slot(client, doctor, published_schedule):
    first = _book(client, doctor, start="09:00").json()["data"]
    _book(client, doctor, start="10:00")

    clash = client.put(f"/doctors/appointments/{first['id']}", json={"time": {"start": "10:15"}}, headers=doctor)
    assert clash.status_code == 409

    moved = client.put(
        f"/doctors/appointments/{first['id']}", json={"date": "2025-03-11", "time": {"start": "14:00"}}, headers=doctor
    )
    assert moved.status_code == 200
    assert moved.json()["data"]["date"] == "2025-03-11"
    assert moved.json()["data"]["time"] == {"start": "14:00", "end": "14:30"}


def test_other_patient_cannot_view_appointment(client, doctor, other_patient, published_schedule):
    appointment = _book(client, doctor).json()["data"]
    response = client.get(f"/appointments/{appointment['id']}", headers=other_patient)
    assert response.status_code == 403


def test_doctor_appointment_list_filters_by_date(client, doctor, published_schedule):
    _book(client, doctor, start="09:00")
    _book(client, doctor, start="09:00", date="2025-03-11")
    listed = client.get("/doctors/appointments", params={"date": MONDAY}, headers=doctor).json()["data"]
    assert [a["date"] for a in listed] == [MONDAY]
