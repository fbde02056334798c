"""Diagnosis lifecycle.

ongoing -> pending_doctor_review -> pending_reports -> completed, with a
direct pending_doctor_review -> completed edge when nothing is left to wait
for. Every write follows validate -> mutate -> enqueue -> return; long AI
work runs in background jobs that re-check state before writing.
"""
import json
import logging
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from careflow.errors import (
    AlreadyConfirmed,
    ConcurrentModification,
    Forbidden,
    InvalidTransition,
    NotFound,
    UpstreamUnavailable,
    ValidationError,
)
from careflow.models.appointment import AppointmentRecord
from careflow.models.diagnosis import DIAGNOSIS_STATUSES, ConversationTurnRecord, DiagnosisRecord
from careflow.models.report import ReportRecord
from careflow.schemas.assessment import AIAssessment
from careflow.schemas.common import Actor
from careflow.schemas.diagnosis import AddMessageRequest, ApproveDiagnosisRequest, ModifyTestsRequest
from careflow.services.ai_consultant import AIConsultant, format_transcript
from careflow.services.blob_store import BlobStore, FileUpload, validate_upload
from careflow.services.notifications import NotificationEmitter
from careflow.services.required_tests import (
    ai_suggested_records,
    all_gating_tests_satisfied,
    merge_doctor_edits,
    unsatisfied_tests,
)

logger = logging.getLogger(__name__)

TRANSITION_MESSAGES = {
    "pending_doctor_review": "Your symptom assessment was sent to a doctor for review.",
    "pending_reports": "Your doctor reviewed your case. Please upload the requested test reports.",
    "completed": "Your diagnosis is complete.",
}


def _touch(diagnosis: DiagnosisRecord) -> None:
    # Any write bumps the row so the optimistic version advances even when only child rows change.
    diagnosis.updated_at = datetime.utcnow()


def _commit(db: Session) -> None:
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConcurrentModification("Diagnosis was modified by someone else; re-fetch and retry") from exc


def _check_version(diagnosis: DiagnosisRecord, version: int) -> None:
    if diagnosis.version != version:
        raise ConcurrentModification(
            f"Diagnosis is at version {diagnosis.version}, edit was based on version {version}"
        )


def _require_doctor(actor: Actor) -> None:
    if not actor.is_doctor:
        raise Forbidden("Only doctors can perform this action")


def _require_access(diagnosis: DiagnosisRecord, actor: Actor) -> None:
    if actor.is_patient and diagnosis.patient_id != actor.id:
        raise Forbidden("Diagnosis belongs to another patient")


def _transition(diagnosis: DiagnosisRecord, new_status: str, emitter: NotificationEmitter) -> None:
    previous = diagnosis.status
    diagnosis.status = new_status
    _touch(diagnosis)
    logger.info("Diagnosis %s: %s -> %s", diagnosis.id, previous, new_status)

    message = TRANSITION_MESSAGES.get(new_status)
    emitter.send(diagnosis.patient_id, f"diagnosis.{new_status}", "diagnosis", diagnosis.id, message)
    if new_status == "pending_doctor_review" and diagnosis.final_doctor_id:
        emitter.send(
            diagnosis.final_doctor_id,
            "diagnosis.review_requested",
            "diagnosis",
            diagnosis.id,
            "A patient diagnosis is waiting for your review.",
        )


def get_diagnosis(db: Session, diagnosis_id: str, actor: Actor | None = None) -> DiagnosisRecord:
    diagnosis = db.get(DiagnosisRecord, diagnosis_id)
    if not diagnosis:
        raise NotFound("Diagnosis not found")
    if actor is not None:
        _require_access(diagnosis, actor)
    return diagnosis


def list_diagnoses(db: Session, actor: Actor, status: str | None = None) -> list[DiagnosisRecord]:
    query = db.query(DiagnosisRecord)
    if actor.is_patient:
        query = query.filter(DiagnosisRecord.patient_id == actor.id)
    else:
        query = query.filter(DiagnosisRecord.final_doctor_id == actor.id)
    if status:
        if status not in DIAGNOSIS_STATUSES:
            raise ValidationError(f"Unknown diagnosis status '{status}'")
        query = query.filter(DiagnosisRecord.status == status)
    return query.order_by(DiagnosisRecord.created_at.desc()).all()


def pending_reviews(db: Session, actor: Actor) -> list[DiagnosisRecord]:
    _require_doctor(actor)
    return (
        db.query(DiagnosisRecord)
        .filter(
            DiagnosisRecord.status == "pending_doctor_review",
            or_(DiagnosisRecord.final_doctor_id.is_(None), DiagnosisRecord.final_doctor_id == actor.id),
        )
        .order_by(DiagnosisRecord.updated_at.asc())
        .all()
    )


def linked_reports(db: Session, diagnosis: DiagnosisRecord) -> list[ReportRecord]:
    """Reports filed against the diagnosis directly or against any of its appointments."""
    appointment_ids = select(AppointmentRecord.id).where(AppointmentRecord.diagnosis_id == diagnosis.id)
    return (
        db.query(ReportRecord)
        .filter(or_(ReportRecord.diagnosis_id == diagnosis.id, ReportRecord.appointment_id.in_(appointment_ids)))
        .order_by(ReportRecord.uploaded_date.asc())
        .all()
    )


def _append_turn(
    diagnosis: DiagnosisRecord,
    role: str,
    message: str,
    attachments: list[str] | None = None,
    client_message_id: str | None = None,
) -> ConversationTurnRecord:
    turn = ConversationTurnRecord(
        position=len(diagnosis.turns),
        role=role,
        message=message,
        attachments=json.dumps(attachments or []),
        client_message_id=client_message_id,
    )
    diagnosis.turns.append(turn)
    return turn


def apply_assessment(diagnosis: DiagnosisRecord, assessment: AIAssessment) -> None:
    """Fill what the assistant produced without overwriting doctor or patient decisions."""
    if assessment.summary:
        diagnosis.ai_summary = assessment.summary
    if not diagnosis.tests:
        diagnosis.tests.extend(ai_suggested_records(assessment))
    if assessment.suggested_doctor and not diagnosis.suggested_doctor_id:
        diagnosis.suggested_doctor_id = assessment.suggested_doctor.doctor_id
        diagnosis.suggested_doctor_reason = assessment.suggested_doctor.reason
        diagnosis.suggested_doctor_confirmed = False


def start_diagnosis(db: Session, actor: Actor, symptom_description: str) -> DiagnosisRecord:
    if not actor.is_patient:
        raise Forbidden("Only patients can start a diagnosis")
    diagnosis = DiagnosisRecord(patient_id=actor.id, status="ongoing", assessment_status="none")
    _append_turn(diagnosis, "patient", symptom_description.strip())
    db.add(diagnosis)
    db.commit()
    db.refresh(diagnosis)
    logger.info("Diagnosis %s started for patient %s", diagnosis.id, actor.id)
    return diagnosis


def add_message(
    db: Session,
    consultant: AIConsultant,
    diagnosis: DiagnosisRecord,
    actor: Actor,
    payload: AddMessageRequest,
    uploads: list[FileUpload] | None = None,
    blob_store: BlobStore | None = None,
) -> DiagnosisRecord:
    """Append a patient turn; while ongoing, also ask the assistant and append its reply.

    A repeated ``client_message_id`` returns the diagnosis untouched so a
    client can safely resend a message it optimistically showed as pending.
    Uploaded files are stored before anything is written, so a storage
    failure leaves the conversation unchanged.
    """
    if not actor.is_patient or diagnosis.patient_id != actor.id:
        raise Forbidden("Only the patient can add messages to this diagnosis")
    if payload.client_message_id and any(
        turn.client_message_id == payload.client_message_id for turn in diagnosis.turns
    ):
        return diagnosis
    if diagnosis.status == "completed":
        raise InvalidTransition("Cannot add messages to a completed diagnosis")

    attachments = list(payload.attachments)
    if uploads:
        for upload in uploads:
            validate_upload(upload)
        for upload in uploads:
            attachments.append(blob_store.store(upload.data, upload.file_name or "attachment", upload.mime_type))
        logger.info("Diagnosis %s: stored %d chat attachment(s)", diagnosis.id, len(uploads))

    _append_turn(diagnosis, "patient", payload.message.strip(), attachments, payload.client_message_id)
    _touch(diagnosis)

    if diagnosis.status == "ongoing":
        try:
            assessment = consultant.assess(format_transcript(diagnosis.turns))
        except UpstreamUnavailable as exc:
            logger.warning("Diagnosis %s: assistant unavailable, keeping patient turn only: %s", diagnosis.id, exc)
            diagnosis.assessment_status = "failed"
        else:
            _append_turn(diagnosis, "ai", assessment.summary)
            diagnosis.ai_summary = assessment.summary
            diagnosis.assessment_status = "completed"
            if assessment.suggested_doctor and not diagnosis.suggested_doctor_id:
                diagnosis.suggested_doctor_id = assessment.suggested_doctor.doctor_id
                diagnosis.suggested_doctor_reason = assessment.suggested_doctor.reason

    _commit(db)
    db.refresh(diagnosis)
    return diagnosis


def complete_diagnosis(db: Session, diagnosis: DiagnosisRecord, actor: Actor) -> tuple[DiagnosisRecord, bool]:
    """Close the conversation. Returns the diagnosis and whether a final assessment must be enqueued."""
    _require_access(diagnosis, actor)
    if diagnosis.status != "ongoing":
        raise InvalidTransition(f"Cannot complete a diagnosis in status '{diagnosis.status}'")

    needs_assessment = diagnosis.ai_summary is None or not diagnosis.tests
    if needs_assessment:
        diagnosis.assessment_status = "pending"
    _transition(diagnosis, "pending_doctor_review", NotificationEmitter(db))
    _commit(db)
    db.refresh(diagnosis)
    return diagnosis, needs_assessment


def retry_assessment(db: Session, diagnosis: DiagnosisRecord, actor: Actor) -> DiagnosisRecord:
    _require_access(diagnosis, actor)
    if diagnosis.status != "pending_doctor_review" or diagnosis.assessment_status != "failed":
        raise InvalidTransition("Only a failed assessment awaiting doctor review can be retried")
    diagnosis.assessment_status = "pending"
    _touch(diagnosis)
    _commit(db)
    db.refresh(diagnosis)
    return diagnosis


def run_final_assessment(session_factory, consultant: AIConsultant, diagnosis_id: str) -> None:
    """Background job: populate summary, tests and suggested doctor for a diagnosis under review."""
    with session_factory() as db:
        diagnosis = db.get(DiagnosisRecord, diagnosis_id)
        if not diagnosis or diagnosis.status != "pending_doctor_review" or diagnosis.assessment_status != "pending":
            return
        transcript = format_transcript(diagnosis.turns)
        try:
            assessment = consultant.assess(transcript)
        except UpstreamUnavailable as exc:
            logger.warning("Diagnosis %s: final assessment failed: %s", diagnosis_id, exc)
            diagnosis.assessment_status = "failed"
        else:
            apply_assessment(diagnosis, assessment)
            diagnosis.assessment_status = "completed"
        _touch(diagnosis)
        try:
            db.commit()
        except StaleDataError:
            db.rollback()
            logger.info("Diagnosis %s changed during final assessment; result dropped", diagnosis_id)


def evaluate_completion(db: Session, diagnosis: DiagnosisRecord, emitter: NotificationEmitter | None = None) -> bool:
    """Move a diagnosis waiting on reports to completed once every gating test has a reviewed report."""
    if diagnosis.status != "pending_reports":
        return False
    if not all_gating_tests_satisfied(diagnosis.tests, linked_reports(db, diagnosis)):
        return False
    _transition(diagnosis, "completed", emitter or NotificationEmitter(db))
    return True


def modify_tests(db: Session, diagnosis: DiagnosisRecord, actor: Actor, payload: ModifyTestsRequest) -> DiagnosisRecord:
    _require_doctor(actor)
    if diagnosis.status == "completed":
        raise InvalidTransition("Tests of a completed diagnosis cannot be changed")
    _check_version(diagnosis, payload.version)

    diagnosis.tests = merge_doctor_edits(diagnosis.tests, payload.tests, payload.additional_tests)
    _touch(diagnosis)
    evaluate_completion(db, diagnosis)
    _commit(db)
    db.refresh(diagnosis)
    return diagnosis


def approve_diagnosis(
    db: Session,
    diagnosis: DiagnosisRecord,
    actor: Actor,
    payload: ApproveDiagnosisRequest,
) -> DiagnosisRecord:
    _require_doctor(actor)
    if diagnosis.status != "pending_doctor_review":
        raise InvalidTransition(f"Cannot approve a diagnosis in status '{diagnosis.status}'")
    if diagnosis.assessment_status == "pending":
        raise InvalidTransition("Final assessment is still running; approve once it has finished")
    if diagnosis.final_doctor_id and diagnosis.final_doctor_id != actor.id:
        raise Forbidden("Diagnosis is assigned to another doctor")
    _check_version(diagnosis, payload.version)

    merged = merge_doctor_edits(diagnosis.tests, payload.tests, payload.additional_tests)
    diagnosis.tests = merged
    if payload.doctor_notes is not None:
        diagnosis.doctor_notes = payload.doctor_notes

    outstanding = unsatisfied_tests(merged, linked_reports(db, diagnosis))
    next_status = "pending_reports" if outstanding else "completed"
    _transition(diagnosis, next_status, NotificationEmitter(db))
    _commit(db)
    db.refresh(diagnosis)
    return diagnosis


def select_doctor(db: Session, diagnosis: DiagnosisRecord, actor: Actor, doctor_id: str) -> DiagnosisRecord:
    _require_access(diagnosis, actor)
    if actor.is_doctor and not (doctor_id == actor.id == diagnosis.suggested_doctor_id):
        raise Forbidden("Doctors can only confirm themselves as the suggested doctor")
    if diagnosis.suggested_doctor_confirmed:
        raise AlreadyConfirmed("A doctor has already been confirmed for this diagnosis")
    if diagnosis.status == "completed":
        raise InvalidTransition("Cannot select a doctor for a completed diagnosis")

    if diagnosis.suggested_doctor_id != doctor_id:
        diagnosis.suggested_doctor_id = doctor_id
        diagnosis.suggested_doctor_reason = f"Selected by {actor.role}"
    diagnosis.suggested_doctor_confirmed = True
    diagnosis.final_doctor_id = doctor_id
    _touch(diagnosis)

    emitter = NotificationEmitter(db)
    emitter.send(doctor_id, "diagnosis.doctor_assigned", "diagnosis", diagnosis.id, "You were assigned a patient diagnosis.")
    _commit(db)
    db.refresh(diagnosis)
    return diagnosis
