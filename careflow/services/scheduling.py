import datetime as dt
import json
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from careflow.config import settings
from careflow.errors import Forbidden, InvalidTransition, NotFound, SlotUnavailable, ValidationError
from careflow.models.appointment import APPOINTMENT_STATUSES, AppointmentRecord
from careflow.models.diagnosis import DiagnosisRecord
from careflow.models.report import ReportRecord
from careflow.schemas.appointment import (
    ChecklistItem,
    CompleteAppointmentRequest,
    CreateAppointmentRequest,
    RequiredTestRef,
    TimeRange,
    UpdateAppointmentRequest,
    load_required_tests,
)
from careflow.schemas.common import Actor
from careflow.services.notifications import NotificationEmitter
from careflow.services.required_tests import matching_reports
from careflow.services.schedule_provider import ScheduleProvider
from careflow.services.timeslots import MINUTES_PER_DAY, compute_end_time, duration_minutes, overlaps, slot_bounds

logger = logging.getLogger(__name__)


def resolve_time(time: TimeRange) -> tuple[str, str]:
    """Normalised (start, end); end defaults to the standard duration and an explicit end must respect the limits."""
    start = compute_end_time(time.start, 0)
    if not time.end:
        return start, compute_end_time(start, settings.appointment_duration_minutes)
    end = compute_end_time(time.end, 0)
    length = duration_minutes(start, end)
    if not settings.min_appointment_minutes <= length <= settings.max_appointment_minutes:
        raise ValidationError(
            f"Appointment length must be between {settings.min_appointment_minutes} and "
            f"{settings.max_appointment_minutes} minutes, got {length}"
        )
    return start, end


def _absolute_bounds(date: dt.date, start: str, end: str) -> tuple[int, int]:
    start_minutes, end_minutes = slot_bounds(start, end)
    offset = date.toordinal() * MINUTES_PER_DAY
    return offset + start_minutes, offset + end_minutes


def _ensure_slot_free(
    db: Session,
    provider: ScheduleProvider,
    doctor_id: str,
    date: dt.date,
    start: str,
    end: str,
    ignore_id: str | None = None,
) -> None:
    if not provider.is_available(doctor_id, date, start, end):
        raise SlotUnavailable(f"Doctor is not available on {date.isoformat()} {start}-{end}")

    requested = _absolute_bounds(date, start, end)
    # Neighbouring days too: a slot can run past midnight into the next date.
    query = db.query(AppointmentRecord).filter(
        AppointmentRecord.doctor_id == doctor_id,
        AppointmentRecord.status == "scheduled",
        AppointmentRecord.date.between(date - dt.timedelta(days=1), date + dt.timedelta(days=1)),
    )
    if ignore_id:
        query = query.filter(AppointmentRecord.id != ignore_id)
    for other in query.all():
        if overlaps(requested, _absolute_bounds(other.date, other.start_time, other.end_time)):
            raise SlotUnavailable(
                f"Doctor already has an appointment on {other.date.isoformat()} {other.start_time}-{other.end_time}"
            )


def _flush_slot(db: Session) -> None:
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        logger.info("Slot race lost on unique index: %s", exc.orig)
        raise SlotUnavailable("That time slot was just booked") from exc


def get_appointment(db: Session, appointment_id: str, actor: Actor | None = None) -> AppointmentRecord:
    appointment = db.get(AppointmentRecord, appointment_id)
    if not appointment:
        raise NotFound("Appointment not found")
    if actor is not None and actor.id not in (appointment.patient_id, appointment.doctor_id):
        raise Forbidden("Appointment belongs to other users")
    return appointment


def list_appointments(
    db: Session,
    actor: Actor,
    status: str | None = None,
    date: dt.date | None = None,
) -> list[AppointmentRecord]:
    query = db.query(AppointmentRecord)
    if actor.is_doctor:
        query = query.filter(AppointmentRecord.doctor_id == actor.id)
    else:
        query = query.filter(AppointmentRecord.patient_id == actor.id)
    if status:
        if status not in APPOINTMENT_STATUSES:
            raise ValidationError(f"Unknown appointment status '{status}'")
        query = query.filter(AppointmentRecord.status == status)
    if date:
        query = query.filter(AppointmentRecord.date == date)
    return query.order_by(AppointmentRecord.date.asc(), AppointmentRecord.start_time.asc()).all()


def report_ids_for(db: Session, appointment: AppointmentRecord) -> list[str]:
    rows = db.query(ReportRecord.id).filter(ReportRecord.appointment_id == appointment.id).all()
    return [report_id for (report_id,) in rows]


def _link_diagnosis(db: Session, appointment: AppointmentRecord) -> None:
    if not appointment.diagnosis_id:
        return
    diagnosis = db.get(DiagnosisRecord, appointment.diagnosis_id)
    if diagnosis:
        diagnosis.associated_appointment_id = appointment.id
        diagnosis.updated_at = dt.datetime.utcnow()


def _schedule(
    db: Session,
    provider: ScheduleProvider,
    doctor_id: str,
    patient_id: str,
    date: dt.date,
    time: TimeRange,
    pre_notes: str | None,
    required_tests: list[RequiredTestRef],
    diagnosis_id: str | None,
) -> AppointmentRecord:
    start, end = resolve_time(time)
    _ensure_slot_free(db, provider, doctor_id, date, start, end)
    appointment = AppointmentRecord(
        patient_id=patient_id,
        doctor_id=doctor_id,
        date=date,
        start_time=start,
        end_time=end,
        status="scheduled",
        pre_notes=pre_notes,
        required_tests=json.dumps([test.model_dump() for test in required_tests]),
        diagnosis_id=diagnosis_id,
    )
    db.add(appointment)
    _flush_slot(db)
    _link_diagnosis(db, appointment)
    return appointment


def create_appointment(
    db: Session,
    provider: ScheduleProvider,
    actor: Actor,
    payload: CreateAppointmentRequest,
) -> AppointmentRecord:
    if not actor.is_doctor:
        raise Forbidden("Only doctors can create appointments")
    if payload.diagnosis_id:
        diagnosis = db.get(DiagnosisRecord, payload.diagnosis_id)
        if not diagnosis:
            raise ValidationError("Diagnosis not found")
        if diagnosis.patient_id != payload.patient_id:
            raise ValidationError("Diagnosis belongs to another patient")

    appointment = _schedule(
        db,
        provider,
        doctor_id=actor.id,
        patient_id=payload.patient_id,
        date=payload.date,
        time=payload.time,
        pre_notes=payload.notes.pre_appointment if payload.notes else None,
        required_tests=payload.required_tests,
        diagnosis_id=payload.diagnosis_id,
    )
    NotificationEmitter(db).send(
        appointment.patient_id,
        "appointment.scheduled",
        "appointment",
        appointment.id,
        f"Appointment scheduled on {appointment.date.isoformat()} at {appointment.start_time}.",
    )
    db.commit()
    db.refresh(appointment)
    logger.info("Appointment %s scheduled for doctor %s", appointment.id, appointment.doctor_id)
    return appointment


def _require_scheduled(appointment: AppointmentRecord, action: str) -> None:
    if appointment.status != "scheduled":
        raise InvalidTransition(f"Cannot {action} an appointment in status '{appointment.status}'")


def _require_own_doctor(appointment: AppointmentRecord, actor: Actor) -> None:
    if not actor.is_doctor or appointment.doctor_id != actor.id:
        raise Forbidden("Only the appointment's doctor can do this")


def update_appointment(
    db: Session,
    provider: ScheduleProvider,
    appointment: AppointmentRecord,
    actor: Actor,
    payload: UpdateAppointmentRequest,
) -> AppointmentRecord:
    _require_own_doctor(appointment, actor)
    _require_scheduled(appointment, "update")

    if payload.date or payload.time:
        date = payload.date or appointment.date
        if payload.time:
            start, end = resolve_time(payload.time)
        else:
            start, end = appointment.start_time, appointment.end_time
        _ensure_slot_free(db, provider, appointment.doctor_id, date, start, end, ignore_id=appointment.id)
        appointment.date = date
        appointment.start_time = start
        appointment.end_time = end
    if payload.notes and payload.notes.pre_appointment is not None:
        appointment.pre_notes = payload.notes.pre_appointment

    _flush_slot(db)
    NotificationEmitter(db).send(
        appointment.patient_id,
        "appointment.updated",
        "appointment",
        appointment.id,
        f"Appointment moved to {appointment.date.isoformat()} at {appointment.start_time}.",
    )
    db.commit()
    db.refresh(appointment)
    return appointment


def complete_appointment(
    db: Session,
    provider: ScheduleProvider,
    appointment: AppointmentRecord,
    actor: Actor,
    payload: CompleteAppointmentRequest,
) -> AppointmentRecord:
    """Mark a visit done and optionally book the follow-up in the same transaction."""
    _require_own_doctor(appointment, actor)
    _require_scheduled(appointment, "complete")

    appointment.status = "completed"
    appointment.completed_at = dt.datetime.utcnow()
    if payload.notes is not None:
        appointment.post_notes = payload.notes
    # frees the slot before a same-day follow-up is checked against it
    db.flush()

    follow_up = payload.follow_up
    if follow_up and follow_up.create:
        date = follow_up.date or appointment.date + dt.timedelta(days=settings.followup_offset_days)
        time = follow_up.time or TimeRange(start=appointment.start_time, end=appointment.end_time)
        followup = _schedule(
            db,
            provider,
            doctor_id=appointment.doctor_id,
            patient_id=appointment.patient_id,
            date=date,
            time=time,
            pre_notes=follow_up.notes,
            required_tests=load_required_tests(appointment),
            diagnosis_id=appointment.diagnosis_id,
        )
        appointment.followup_appointment_id = followup.id
        NotificationEmitter(db).send(
            followup.patient_id,
            "appointment.scheduled",
            "appointment",
            followup.id,
            f"Follow-up scheduled on {followup.date.isoformat()} at {followup.start_time}.",
        )

    NotificationEmitter(db).send(
        appointment.patient_id, "appointment.completed", "appointment", appointment.id, "Your appointment is complete."
    )
    db.commit()
    db.refresh(appointment)
    logger.info("Appointment %s completed", appointment.id)
    return appointment


def cancel_appointment(db: Session, appointment: AppointmentRecord, actor: Actor, reason: str) -> AppointmentRecord:
    if actor.id not in (appointment.patient_id, appointment.doctor_id):
        raise Forbidden("Only the patient or doctor of this appointment can cancel it")
    if not reason or not reason.strip():
        raise ValidationError("A cancellation reason is required")
    _require_scheduled(appointment, "cancel")

    appointment.status = "cancelled"
    appointment.cancelled_by = actor.id
    appointment.cancel_reason = reason.strip()
    appointment.cancelled_at = dt.datetime.utcnow()

    # Weak back-reference: clear it, never touch the diagnosis status.
    if appointment.diagnosis_id:
        diagnosis = db.get(DiagnosisRecord, appointment.diagnosis_id)
        if diagnosis and diagnosis.associated_appointment_id == appointment.id:
            diagnosis.associated_appointment_id = None
            diagnosis.updated_at = dt.datetime.utcnow()

    other_party = appointment.doctor_id if actor.id == appointment.patient_id else appointment.patient_id
    NotificationEmitter(db).send(
        other_party, "appointment.cancelled", "appointment", appointment.id, f"Appointment cancelled: {reason.strip()}"
    )
    db.commit()
    db.refresh(appointment)
    logger.info("Appointment %s cancelled by %s", appointment.id, actor.id)
    return appointment


def mark_no_show(db: Session, appointment: AppointmentRecord, actor: Actor) -> AppointmentRecord:
    _require_own_doctor(appointment, actor)
    _require_scheduled(appointment, "mark as no-show")
    appointment.status = "no_show"
    NotificationEmitter(db).send(
        appointment.patient_id, "appointment.no_show", "appointment", appointment.id, "You missed your appointment."
    )
    db.commit()
    db.refresh(appointment)
    return appointment


def report_checklist(db: Session, appointment: AppointmentRecord) -> tuple[list[ReportRecord], list[ChecklistItem]]:
    reports = db.query(ReportRecord).filter(ReportRecord.appointment_id == appointment.id).all()
    checklist = []
    for test in load_required_tests(appointment):
        reviewed = matching_reports(test.name, reports)
        checklist.append(
            ChecklistItem(test=test, satisfied=bool(reviewed), report_ids=[report.id for report in reviewed])
        )
    return reports, checklist
