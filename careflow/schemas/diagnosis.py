import json
from datetime import datetime
from typing import Literal

from pydantic import Field

from careflow.models.diagnosis import DiagnosisRecord
from careflow.schemas.common import CamelModel

Priority = Literal["low", "medium", "high"]


class StartDiagnosisRequest(CamelModel):
    symptom_description: str = Field(min_length=1)


class AddMessageRequest(CamelModel):
    message: str = Field(min_length=1)
    role: Literal["patient"] = "patient"
    attachments: list[str] = Field(default_factory=list)
    client_message_id: str | None = None


class RequiredTestEdit(CamelModel):
    id: str
    is_approved: bool
    priority: Priority


class NewRequiredTest(CamelModel):
    name: str = Field(min_length=1)
    reason: str | None = None
    priority: Priority = "medium"
    is_approved: bool = True


class ModifyTestsRequest(CamelModel):
    version: int
    tests: list[RequiredTestEdit]
    additional_tests: list[NewRequiredTest] = Field(default_factory=list)


class ApproveDiagnosisRequest(ModifyTestsRequest):
    doctor_notes: str | None = None


class SelectDoctorRequest(CamelModel):
    doctor_id: str = Field(min_length=1)


class ConversationTurn(CamelModel):
    role: str
    message: str
    timestamp: datetime
    attachments: list[str]
    client_message_id: str | None = None


class RequiredTest(CamelModel):
    id: str
    name: str
    reason: str | None
    priority: str
    is_approved: bool
    source: str


class SuggestedDoctorOut(CamelModel):
    doctor_id: str
    reason: str | None
    is_confirmed: bool


class DiagnosisOut(CamelModel):
    id: str
    patient_id: str
    status: str
    conversation_history: list[ConversationTurn]
    ai_summary: str | None
    assessment_status: str
    suggested_tests: list[RequiredTest]
    suggested_doctor: SuggestedDoctorOut | None
    final_doctor_id: str | None
    doctor_notes: str | None
    associated_appointment_id: str | None
    version: int
    created_at: datetime
    updated_at: datetime


def serialize_diagnosis(diagnosis: DiagnosisRecord) -> DiagnosisOut:
    suggested_doctor = None
    if diagnosis.suggested_doctor_id:
        suggested_doctor = SuggestedDoctorOut(
            doctor_id=diagnosis.suggested_doctor_id,
            reason=diagnosis.suggested_doctor_reason,
            is_confirmed=diagnosis.suggested_doctor_confirmed,
        )
    return DiagnosisOut(
        id=diagnosis.id,
        patient_id=diagnosis.patient_id,
        status=diagnosis.status,
        conversation_history=[
            ConversationTurn(
                role=turn.role,
                message=turn.message,
                timestamp=turn.created_at,
                attachments=json.loads(turn.attachments or "[]"),
                client_message_id=turn.client_message_id,
            )
            for turn in diagnosis.turns
        ],
        ai_summary=diagnosis.ai_summary,
        assessment_status=diagnosis.assessment_status,
        suggested_tests=[RequiredTest.model_validate(test) for test in diagnosis.tests],
        suggested_doctor=suggested_doctor,
        final_doctor_id=diagnosis.final_doctor_id,
        doctor_notes=diagnosis.doctor_notes,
        associated_appointment_id=diagnosis.associated_appointment_id,
        version=diagnosis.version,
        created_at=diagnosis.created_at,
        updated_at=diagnosis.updated_at,
    )
