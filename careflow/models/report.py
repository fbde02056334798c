from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from careflow.database import Base


class ReportRecord(Base):
    __tablename__ = "reports"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    patient_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    uploaded_by: Mapped[str] = mapped_column(String(64), nullable=False)
    diagnosis_id: Mapped[str | None] = mapped_column(String(36), index=True, nullable=True)
    appointment_id: Mapped[str | None] = mapped_column(String(36), index=True, nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(255), nullable=False)
    file_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    original_filename: Mapped[str | None] = mapped_column(String(255), nullable=True)
    uploaded_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    ai_summary_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    ai_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    analysis_token: Mapped[str | None] = mapped_column(String(36), nullable=True)
    analysis_requested_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_reviewed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    doctor_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
