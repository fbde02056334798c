from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from careflow.database import get_db, get_session_factory
from careflow.routers.deps import get_actor
from careflow.schemas.common import Actor, success
from careflow.schemas.report import ReportOut, ReviewReportRequest
from careflow.services import diagnosis_workflow as workflow
from careflow.services import reports as report_service
from careflow.services.blob_store import BlobStore, get_blob_store
from careflow.services.report_analyzer import ReportAnalyzer, get_report_analyzer

router = APIRouter(prefix="/reports", tags=["reports"])


@router.post("", status_code=201)
async def upload_report(
    report_file: UploadFile = File(..., alias="reportFile"),
    name: str = Form(...),
    type: str = Form(...),
    patient_id: str | None = Form(default=None, alias="patientId"),
    diagnosis_id: str | None = Form(default=None, alias="diagnosisId"),
    appointment_id: str | None = Form(default=None, alias="appointmentId"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    blob_store: BlobStore = Depends(get_blob_store),
):
    file_bytes = await report_file.read()
    metadata = report_service.ReportMetadata(
        name=name,
        type=type,
        patient_id=patient_id or None,
        diagnosis_id=diagnosis_id or None,
        appointment_id=appointment_id or None,
    )
    report = report_service.upload_report(
        db, blob_store, actor, metadata, file_bytes, report_file.filename, report_file.content_type
    )
    return success(ReportOut.model_validate(report), "Report uploaded", status_code=201)


@router.get("")
def list_reports(
    patient_id: str | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return success([ReportOut.model_validate(r) for r in report_service.list_reports(db, actor, patient_id)])


@router.get("/pending/{diagnosis_id}")
def pending_reports(diagnosis_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    diagnosis = workflow.get_diagnosis(db, diagnosis_id, actor)
    return success([ReportOut.model_validate(r) for r in report_service.pending_reports_for_diagnosis(db, diagnosis)])


@router.get("/{report_id}")
def get_report(report_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return success(ReportOut.model_validate(report_service.get_report(db, report_id, actor)))


@router.post("/{report_id}/analyze", status_code=202)
def analyze_report(
    report_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    blob_store: BlobStore = Depends(get_blob_store),
    analyzer: ReportAnalyzer = Depends(get_report_analyzer),
    session_factory=Depends(get_session_factory),
):
    report = report_service.get_report(db, report_id, actor)
    report, token = report_service.request_analysis(db, report, actor)
    background_tasks.add_task(report_service.run_report_analysis, session_factory, blob_store, analyzer, report.id, token)
    return success(ReportOut.model_validate(report), "Analysis started", status_code=202)


@router.delete("/{report_id}/analyze")
def cancel_analysis(report_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    report = report_service.get_report(db, report_id, actor)
    report = report_service.cancel_analysis(db, report, actor)
    return success(ReportOut.model_validate(report), "Analysis cancelled")


@router.put("/{report_id}/notes")
def review_report(
    report_id: str,
    payload: ReviewReportRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    report = report_service.get_report(db, report_id, actor)
    report = report_service.review_report(db, report, actor, payload.notes)
    return success(ReportOut.model_validate(report), "Report reviewed")


@router.delete("/{report_id}")
def delete_report(report_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    report = report_service.get_report(db, report_id, actor)
    report_service.delete_report(db, report, actor)
    return {"statusCode": 200, "message": "Report deleted", "data": None}
