import datetime as dt
import json

from pydantic import Field

from careflow.models.appointment import AppointmentRecord
from careflow.schemas.common import CamelModel
from careflow.schemas.diagnosis import Priority


class TimeRange(CamelModel):
    start: str
    end: str | None = None


class RequiredTestRef(CamelModel):
    name: str = Field(min_length=1)
    reason: str | None = None
    priority: Priority = "medium"


class AppointmentNotes(CamelModel):
    pre_appointment: str | None = None
    post_appointment: str | None = None


class CreateAppointmentRequest(CamelModel):
    patient_id: str = Field(min_length=1)
    date: dt.date
    time: TimeRange
    notes: AppointmentNotes | None = None
    required_tests: list[RequiredTestRef] = Field(default_factory=list)
    diagnosis_id: str | None = None


class UpdateAppointmentRequest(CamelModel):
    date: dt.date | None = None
    time: TimeRange | None = None
    notes: AppointmentNotes | None = None


class FollowUpRequest(CamelModel):
    create: bool = True
    date: dt.date | None = None
    time: TimeRange | None = None
    notes: str | None = None


class CompleteAppointmentRequest(CamelModel):
    notes: str | None = None
    follow_up: FollowUpRequest | None = None


class CancelAppointmentRequest(CamelModel):
    cancel_reason: str = ""


class AppointmentOut(CamelModel):
    id: str
    patient_id: str
    doctor_id: str
    date: dt.date
    time: TimeRange
    status: str
    notes: AppointmentNotes
    required_tests: list[RequiredTestRef]
    required_reports: list[str]
    diagnosis_id: str | None
    followup_appointment_id: str | None
    cancelled_by: str | None
    cancel_reason: str | None
    cancelled_at: dt.datetime | None
    completed_at: dt.datetime | None
    created_at: dt.datetime


class ChecklistItem(CamelModel):
    test: RequiredTestRef
    satisfied: bool
    report_ids: list[str]


def load_required_tests(appointment: AppointmentRecord) -> list[RequiredTestRef]:
    return [RequiredTestRef.model_validate(item) for item in json.loads(appointment.required_tests or "[]")]


def serialize_appointment(appointment: AppointmentRecord, report_ids: list[str] | None = None) -> AppointmentOut:
    return AppointmentOut(
        id=appointment.id,
        patient_id=appointment.patient_id,
        doctor_id=appointment.doctor_id,
        date=appointment.date,
        time=TimeRange(start=appointment.start_time, end=appointment.end_time),
        status=appointment.status,
        notes=AppointmentNotes(pre_appointment=appointment.pre_notes, post_appointment=appointment.post_notes),
        required_tests=load_required_tests(appointment),
        required_reports=report_ids or [],
        diagnosis_id=appointment.diagnosis_id,
        followup_appointment_id=appointment.followup_appointment_id,
        cancelled_by=appointment.cancelled_by,
        cancel_reason=appointment.cancel_reason,
        cancelled_at=appointment.cancelled_at,
        completed_at=appointment.completed_at,
        created_at=appointment.created_at,
    )
