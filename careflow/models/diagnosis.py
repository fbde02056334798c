from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from careflow.database import Base

DIAGNOSIS_STATUSES = ("ongoing", "pending_doctor_review", "pending_reports", "completed")


class DiagnosisRecord(Base):
    __tablename__ = "diagnoses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    patient_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(32), index=True, nullable=False, default="ongoing")
    ai_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    assessment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="none")
    suggested_doctor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    suggested_doctor_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    suggested_doctor_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    final_doctor_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    doctor_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Weak reference: no foreign key, cleared (never cascaded) when the appointment is cancelled.
    associated_appointment_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    turns = relationship(
        "ConversationTurnRecord",
        back_populates="diagnosis",
        cascade="all, delete-orphan",
        order_by="ConversationTurnRecord.position",
    )
    tests = relationship(
        "RequiredTestRecord",
        back_populates="diagnosis",
        cascade="all, delete-orphan",
        order_by="RequiredTestRecord.position",
    )

    __mapper_args__ = {"version_id_col": version}


class ConversationTurnRecord(Base):
    __tablename__ = "conversation_turns"
    __table_args__ = (UniqueConstraint("diagnosis_id", "client_message_id", name="uq_turn_client_message"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    diagnosis_id: Mapped[str] = mapped_column(String(36), ForeignKey("diagnoses.id", ondelete="CASCADE"), index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    attachments: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    client_message_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    diagnosis = relationship("DiagnosisRecord", back_populates="turns")


class RequiredTestRecord(Base):
    __tablename__ = "required_tests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    diagnosis_id: Mapped[str] = mapped_column(String(36), ForeignKey("diagnoses.id", ondelete="CASCADE"), index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="medium")
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="ai-suggested")

    diagnosis = relationship("DiagnosisRecord", back_populates="tests")
