import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from careflow.errors import Forbidden, InvalidTransition, NotFound, UpstreamUnavailable, ValidationError
from careflow.models.appointment import AppointmentRecord
from careflow.models.diagnosis import DiagnosisRecord
from careflow.models.report import ReportRecord
from careflow.schemas.common import Actor
from careflow.services.blob_store import BlobStore, FileUpload, validate_upload
from careflow.services.diagnosis_workflow import evaluate_completion
from careflow.services.notifications import NotificationEmitter
from careflow.services.report_analyzer import ReportAnalyzer

logger = logging.getLogger(__name__)


@dataclass
class ReportMetadata:
    name: str
    type: str
    patient_id: str | None = None
    diagnosis_id: str | None = None
    appointment_id: str | None = None


def _can_view(report: ReportRecord, actor: Actor) -> bool:
    return actor.is_doctor or report.patient_id == actor.id


def get_report(db: Session, report_id: str, actor: Actor | None = None) -> ReportRecord:
    report = db.get(ReportRecord, report_id)
    if not report:
        raise NotFound("Report not found")
    if actor is not None and not _can_view(report, actor):
        raise Forbidden("Report belongs to another patient")
    return report


def list_reports(db: Session, actor: Actor, patient_id: str | None = None) -> list[ReportRecord]:
    query = db.query(ReportRecord)
    if actor.is_patient:
        query = query.filter(ReportRecord.patient_id == actor.id)
    elif patient_id:
        query = query.filter(ReportRecord.patient_id == patient_id)
    else:
        query = query.filter(ReportRecord.uploaded_by == actor.id)
    return query.order_by(ReportRecord.uploaded_date.desc()).all()


def pending_reports_for_diagnosis(db: Session, diagnosis: DiagnosisRecord) -> list[ReportRecord]:
    appointment_ids = select(AppointmentRecord.id).where(AppointmentRecord.diagnosis_id == diagnosis.id)
    return (
        db.query(ReportRecord)
        .filter(
            or_(ReportRecord.diagnosis_id == diagnosis.id, ReportRecord.appointment_id.in_(appointment_ids)),
            ReportRecord.is_reviewed.is_(False),
        )
        .order_by(ReportRecord.uploaded_date.asc())
        .all()
    )


def doctor_pending_reports(db: Session, actor: Actor) -> list[ReportRecord]:
    """Unreviewed reports for this doctor's diagnoses and appointments."""
    if not actor.is_doctor:
        raise Forbidden("Only doctors can list reports awaiting review")
    diagnosis_ids = select(DiagnosisRecord.id).where(DiagnosisRecord.final_doctor_id == actor.id)
    appointment_ids = select(AppointmentRecord.id).where(AppointmentRecord.doctor_id == actor.id)
    return (
        db.query(ReportRecord)
        .filter(
            ReportRecord.is_reviewed.is_(False),
            or_(ReportRecord.diagnosis_id.in_(diagnosis_ids), ReportRecord.appointment_id.in_(appointment_ids)),
        )
        .order_by(ReportRecord.uploaded_date.asc())
        .all()
    )


def _validate_links(db: Session, metadata: ReportMetadata, patient_id: str) -> None:
    if metadata.diagnosis_id:
        diagnosis = db.get(DiagnosisRecord, metadata.diagnosis_id)
        if not diagnosis or diagnosis.patient_id != patient_id:
            raise ValidationError("Diagnosis not found for this patient")
    if metadata.appointment_id:
        appointment = db.get(AppointmentRecord, metadata.appointment_id)
        if not appointment or appointment.patient_id != patient_id:
            raise ValidationError("Appointment not found for this patient")


def upload_report(
    db: Session,
    blob_store: BlobStore,
    actor: Actor,
    metadata: ReportMetadata,
    file_bytes: bytes,
    file_name: str | None,
    mime_type: str | None,
) -> ReportRecord:
    if not metadata.name.strip() or not metadata.type.strip():
        raise ValidationError("Report name and type are required")
    validate_upload(FileUpload(file_bytes, file_name, mime_type))

    if actor.is_patient:
        patient_id = actor.id
    elif metadata.patient_id:
        patient_id = metadata.patient_id
    else:
        raise ValidationError("patientId is required when a doctor uploads a report")
    _validate_links(db, metadata, patient_id)

    file_url = blob_store.store(file_bytes, file_name or "report", mime_type)
    report = ReportRecord(
        patient_id=patient_id,
        uploaded_by=actor.id,
        diagnosis_id=metadata.diagnosis_id,
        appointment_id=metadata.appointment_id,
        name=metadata.name.strip(),
        type=metadata.type.strip(),
        file_url=file_url,
        mime_type=mime_type,
        original_filename=file_name,
        ai_summary_status="pending",
    )
    db.add(report)
    db.commit()
    db.refresh(report)
    logger.info("Report %s uploaded for patient %s", report.id, patient_id)
    return report


def request_analysis(db: Session, report: ReportRecord, actor: Actor) -> tuple[ReportRecord, str]:
    """pending|failed -> processing. Returns the report and the token the analysis job must present."""
    if not _can_view(report, actor):
        raise Forbidden("Report belongs to another patient")
    if report.ai_summary_status not in ("pending", "failed"):
        raise InvalidTransition(f"Cannot analyse a report in status '{report.ai_summary_status}'")

    token = str(uuid4())
    report.ai_summary_status = "processing"
    report.ai_summary = None
    report.analysis_token = token
    report.analysis_requested_by = actor.id
    db.commit()
    db.refresh(report)
    return report, token


def cancel_analysis(db: Session, report: ReportRecord, actor: Actor) -> ReportRecord:
    if report.ai_summary_status != "processing":
        raise InvalidTransition("Only an analysis in progress can be cancelled")
    if report.analysis_requested_by != actor.id:
        raise Forbidden("Only the user who requested the analysis can cancel it")
    report.ai_summary_status = "pending"
    report.analysis_token = None
    report.analysis_requested_by = None
    db.commit()
    db.refresh(report)
    return report


def run_report_analysis(
    session_factory,
    blob_store: BlobStore,
    analyzer: ReportAnalyzer,
    report_id: str,
    token: str,
) -> None:
    """Background job: analyse one report and record the outcome if the request is still current."""
    with session_factory() as db:
        report = db.get(ReportRecord, report_id)
        if not report or report.analysis_token != token:
            return
        try:
            file_bytes = blob_store.load(report.file_url)
            summary = analyzer.analyze(file_bytes, report.original_filename or report.name, report.mime_type, report.type)
            outcome, summary_text = "completed", summary
        except (UpstreamUnavailable, NotFound) as exc:
            logger.warning("Report %s analysis failed: %s", report_id, exc)
            outcome, summary_text = "failed", None

        db.refresh(report)
        if report.analysis_token != token or report.ai_summary_status != "processing":
            logger.info("Report %s analysis result discarded, request no longer current", report_id)
            return
        report.ai_summary_status = outcome
        report.ai_summary = summary_text
        report.analysis_token = None
        NotificationEmitter(db).send(
            report.patient_id,
            f"report.analysis_{outcome}",
            "report",
            report.id,
            f"Analysis of '{report.name}' {'is ready' if outcome == 'completed' else 'failed'}.",
        )
        db.commit()


def _linked_diagnoses(db: Session, report: ReportRecord) -> list[DiagnosisRecord]:
    ids = set()
    if report.diagnosis_id:
        ids.add(report.diagnosis_id)
    if report.appointment_id:
        appointment = db.get(AppointmentRecord, report.appointment_id)
        if appointment and appointment.diagnosis_id:
            ids.add(appointment.diagnosis_id)
    return [diagnosis for diagnosis in (db.get(DiagnosisRecord, item) for item in sorted(ids)) if diagnosis]


def review_report(db: Session, report: ReportRecord, actor: Actor, notes: str | None) -> ReportRecord:
    """Record a doctor's review; the reviewed flag is set once and never cleared."""
    if not actor.is_doctor:
        raise Forbidden("Only doctors can review reports")

    if notes is not None:
        report.doctor_notes = notes
    if not report.is_reviewed:
        report.is_reviewed = True
        report.reviewed_at = datetime.utcnow()
        report.reviewed_by = actor.id
        emitter = NotificationEmitter(db)
        emitter.send(report.patient_id, "report.reviewed", "report", report.id, f"Your doctor reviewed '{report.name}'.")
        db.flush()
        for diagnosis in _linked_diagnoses(db, report):
            evaluate_completion(db, diagnosis, emitter)

    db.commit()
    db.refresh(report)
    return report


def delete_report(db: Session, report: ReportRecord, actor: Actor) -> None:
    if report.uploaded_by != actor.id:
        raise Forbidden("Only the uploader can delete a report")
    if report.is_reviewed:
        raise InvalidTransition("A reviewed report cannot be deleted")
    db.delete(report)
    db.commit()
