import datetime as dt

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from careflow.database import get_db
from careflow.routers.deps import get_doctor, get_schedule_provider
from careflow.schemas.appointment import (
    CancelAppointmentRequest,
    CompleteAppointmentRequest,
    CreateAppointmentRequest,
    UpdateAppointmentRequest,
    serialize_appointment,
)
from careflow.schemas.common import Actor, success
from careflow.schemas.diagnosis import ApproveDiagnosisRequest, serialize_diagnosis
from careflow.schemas.report import ReportOut, ReviewReportRequest
from careflow.schemas.schedule import AvailabilitySlot, UpdateScheduleRequest
from careflow.services import diagnosis_workflow as workflow
from careflow.services import reports as report_service
from careflow.services import scheduling
from careflow.services.schedule_provider import ScheduleProvider, get_schedule, replace_schedule

router = APIRouter(prefix="/doctors", tags=["doctors"])


def _appointment_payload(db: Session, appointment):
    return serialize_appointment(appointment, scheduling.report_ids_for(db, appointment))


@router.get("/appointments")
def list_appointments(
    status: str | None = Query(default=None),
    date: dt.date | None = Query(default=None),
    db: Session = Depends(get_db),
    doctor: Actor = Depends(get_doctor),
):
    rows = scheduling.list_appointments(db, doctor, status=status, date=date)
    return success([_appointment_payload(db, row) for row in rows])


@router.post("/appointments", status_code=201)
def create_appointment(
    payload: CreateAppointmentRequest,
    db: Session = Depends(get_db),
    doctor: Actor = Depends(get_doctor),
    provider: ScheduleProvider = Depends(get_schedule_provider),
):
    appointment = scheduling.create_appointment(db, provider, doctor, payload)
    return success(_appointment_payload(db, appointment), "Appointment created", status_code=201)


@router.put("/appointments/{appointment_id}")
def update_appointment(
    appointment_id: str,
    payload: UpdateAppointmentRequest,
    db: Session = Depends(get_db),
    doctor: Actor = Depends(get_doctor),
    provider: ScheduleProvider = Depends(get_schedule_provider),
):
    appointment = scheduling.get_appointment(db, appointment_id, doctor)
    appointment = scheduling.update_appointment(db, provider, appointment, doctor, payload)
    return success(_appointment_payload(db, appointment), "Appointment updated")


@router.patch("/appointments/{appointment_id}/cancel")
def cancel_appointment(
    appointment_id: str,
    payload: CancelAppointmentRequest,
    db: Session = Depends(get_db),
    doctor: Actor = Depends(get_doctor),
):
    appointment = scheduling.get_appointment(db, appointment_id, doctor)
    appointment = scheduling.cancel_appointment(db, appointment, doctor, payload.cancel_reason)
    return success(_appointment_payload(db, appointment), "Appointment cancelled")


@router.post("/appointments/{appointment_id}/complete")
def complete_appointment(
    appointment_id: str,
    payload: CompleteAppointmentRequest,
    db: Session = Depends(get_db),
    doctor: Actor = Depends(get_doctor),
    provider: ScheduleProvider = Depends(get_schedule_provider),
):
    appointment = scheduling.get_appointment(db, appointment_id, doctor)
    appointment = scheduling.complete_appointment(db, provider, appointment, doctor, payload)
    return success(_appointment_payload(db, appointment), "Appointment completed")


@router.post("/appointments/{appointment_id}/no-show")
def mark_no_show(appointment_id: str, db: Session = Depends(get_db), doctor: Actor = Depends(get_doctor)):
    appointment = scheduling.get_appointment(db, appointment_id, doctor)
    appointment = scheduling.mark_no_show(db, appointment, doctor)
    return success(_appointment_payload(db, appointment), "Appointment marked as no-show")


@router.get("/schedule")
def read_schedule(db: Session = Depends(get_db), doctor: Actor = Depends(get_doctor)):
    return success([AvailabilitySlot.model_validate(row) for row in get_schedule(db, doctor.id)])


@router.put("/schedule")
def update_schedule(payload: UpdateScheduleRequest, db: Session = Depends(get_db), doctor: Actor = Depends(get_doctor)):
    rows = replace_schedule(db, doctor.id, payload.available_slots)
    return success([AvailabilitySlot.model_validate(row) for row in rows], "Schedule updated")


@router.get("/pending-reviews")
def pending_reviews(db: Session = Depends(get_db), doctor: Actor = Depends(get_doctor)):
    return success([serialize_diagnosis(d) for d in workflow.pending_reviews(db, doctor)])


@router.get("/pending-reports")
def pending_reports(db: Session = Depends(get_db), doctor: Actor = Depends(get_doctor)):
    return success([ReportOut.model_validate(r) for r in report_service.doctor_pending_reports(db, doctor)])


@router.put("/diagnoses/{diagnosis_id}/approve")
def approve_diagnosis(
    diagnosis_id: str,
    payload: ApproveDiagnosisRequest,
    db: Session = Depends(get_db),
    doctor: Actor = Depends(get_doctor),
):
    diagnosis = workflow.get_diagnosis(db, diagnosis_id, doctor)
    diagnosis = workflow.approve_diagnosis(db, diagnosis, doctor, payload)
    return success(serialize_diagnosis(diagnosis), "Diagnosis approved")


@router.put("/reports/{report_id}/review")
def review_report(
    report_id: str,
    payload: ReviewReportRequest,
    db: Session = Depends(get_db),
    doctor: Actor = Depends(get_doctor),
):
    report = report_service.get_report(db, report_id, doctor)
    report = report_service.review_report(db, report, doctor, payload.notes)
    return success(ReportOut.model_validate(report), "Report reviewed")
