from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile as StarletteUploadFile

from careflow.database import get_db, get_session_factory
from careflow.errors import ValidationError
from careflow.routers.deps import get_actor
from careflow.schemas.common import Actor, success
from careflow.schemas.diagnosis import (
    AddMessageRequest,
    ApproveDiagnosisRequest,
    ModifyTestsRequest,
    SelectDoctorRequest,
    StartDiagnosisRequest,
    serialize_diagnosis,
)
from careflow.services import diagnosis_workflow as workflow
from careflow.services.ai_consultant import AIConsultant, get_ai_consultant
from careflow.services.blob_store import BlobStore, FileUpload, get_blob_store

router = APIRouter(prefix="/diagnoses", tags=["diagnoses"])


@router.post("", status_code=201)
def start_diagnosis(
    payload: StartDiagnosisRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    diagnosis = workflow.start_diagnosis(db, actor, payload.symptom_description)
    return success(serialize_diagnosis(diagnosis), "Diagnosis started", status_code=201)


@router.get("")
def list_diagnoses(
    status: str | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return success([serialize_diagnosis(d) for d in workflow.list_diagnoses(db, actor, status)])


@router.get("/{diagnosis_id}")
def get_diagnosis(diagnosis_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return success(serialize_diagnosis(workflow.get_diagnosis(db, diagnosis_id, actor)))


async def _read_message(request: Request) -> tuple[AddMessageRequest, list[FileUpload]]:
    """JSON bodies carry attachment URLs; multipart bodies carry the files as ``attachments`` parts."""
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("multipart/form-data"):
            form = await request.form()
            uploads = []
            for item in form.getlist("attachments"):
                if isinstance(item, StarletteUploadFile):
                    uploads.append(FileUpload(await item.read(), item.filename, item.content_type))
            message = form.get("message")
            client_message_id = form.get("clientMessageId") or None
            payload = AddMessageRequest(
                message=message if isinstance(message, str) else "",
                client_message_id=client_message_id if isinstance(client_message_id, str) else None,
            )
            return payload, uploads
        try:
            body = await request.json()
        except ValueError as exc:
            raise ValidationError("Request body must be JSON or multipart form data") from exc
        return AddMessageRequest.model_validate(body), []
    except PydanticValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc


@router.put("/{diagnosis_id}/message")
async def add_message(
    diagnosis_id: str,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    consultant: AIConsultant = Depends(get_ai_consultant),
    blob_store: BlobStore = Depends(get_blob_store),
):
    diagnosis = workflow.get_diagnosis(db, diagnosis_id, actor)
    payload, uploads = await _read_message(request)
    diagnosis = workflow.add_message(db, consultant, diagnosis, actor, payload, uploads, blob_store)
    return success(serialize_diagnosis(diagnosis), "Message added")


@router.put("/{diagnosis_id}/complete")
def complete_diagnosis(
    diagnosis_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    consultant: AIConsultant = Depends(get_ai_consultant),
    session_factory=Depends(get_session_factory),
):
    diagnosis = workflow.get_diagnosis(db, diagnosis_id, actor)
    diagnosis, needs_assessment = workflow.complete_diagnosis(db, diagnosis, actor)
    if needs_assessment:
        background_tasks.add_task(workflow.run_final_assessment, session_factory, consultant, diagnosis.id)
    return success(serialize_diagnosis(diagnosis), "Diagnosis sent for doctor review")


@router.post("/{diagnosis_id}/assessment")
def retry_assessment(
    diagnosis_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    consultant: AIConsultant = Depends(get_ai_consultant),
    session_factory=Depends(get_session_factory),
):
    diagnosis = workflow.get_diagnosis(db, diagnosis_id, actor)
    diagnosis = workflow.retry_assessment(db, diagnosis, actor)
    background_tasks.add_task(workflow.run_final_assessment, session_factory, consultant, diagnosis.id)
    return success(serialize_diagnosis(diagnosis), "Assessment requested")


@router.put("/{diagnosis_id}/tests")
def modify_tests(
    diagnosis_id: str,
    payload: ModifyTestsRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    diagnosis = workflow.get_diagnosis(db, diagnosis_id, actor)
    diagnosis = workflow.modify_tests(db, diagnosis, actor, payload)
    return success(serialize_diagnosis(diagnosis), "Tests updated")


@router.put("/{diagnosis_id}/approve")
def approve_diagnosis(
    diagnosis_id: str,
    payload: ApproveDiagnosisRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    diagnosis = workflow.get_diagnosis(db, diagnosis_id, actor)
    diagnosis = workflow.approve_diagnosis(db, diagnosis, actor, payload)
    return success(serialize_diagnosis(diagnosis), "Diagnosis approved")


@router.put("/{diagnosis_id}/doctor")
def select_doctor(
    diagnosis_id: str,
    payload: SelectDoctorRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    diagnosis = workflow.get_diagnosis(db, diagnosis_id, actor)
    diagnosis = workflow.select_doctor(db, diagnosis, actor, payload.doctor_id)
    return success(serialize_diagnosis(diagnosis), "Doctor selected")
