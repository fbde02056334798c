from datetime import datetime

from careflow.schemas.common import CamelModel


class ReviewReportRequest(CamelModel):
    notes: str | None = None


class ReportOut(CamelModel):
    id: str
    patient_id: str
    uploaded_by: str
    diagnosis_id: str | None
    appointment_id: str | None
    name: str
    type: str
    file_url: str
    mime_type: str
    original_filename: str | None
    uploaded_date: datetime
    ai_summary_status: str
    ai_summary: str | None
    is_reviewed: bool
    doctor_notes: str | None
    reviewed_by: str | None
    reviewed_at: datetime | None
