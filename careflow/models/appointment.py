import datetime as dt
from uuid import uuid4

from sqlalchemy import Date, DateTime, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from careflow.database import Base

APPOINTMENT_STATUSES = ("scheduled", "completed", "cancelled", "no_show")


class AppointmentRecord(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        # One scheduled appointment per doctor and start slot.
        Index(
            "uq_appointments_doctor_slot_scheduled",
            "doctor_id",
            "date",
            "start_time",
            unique=True,
            sqlite_where=text("status = 'scheduled'"),
            postgresql_where=text("status = 'scheduled'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    patient_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    doctor_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, index=True, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    status: Mapped[str] = mapped_column(String(20), index=True, nullable=False, default="scheduled")
    pre_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    post_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    required_tests: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    diagnosis_id: Mapped[str | None] = mapped_column(String(36), index=True, nullable=True)
    followup_appointment_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow, nullable=False)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow, nullable=False
    )
