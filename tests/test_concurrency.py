import datetime as dt

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from careflow.database import Base
from careflow.errors import ConcurrentModification, SlotUnavailable
from careflow.models.appointment import AppointmentRecord
from careflow.models.diagnosis import ConversationTurnRecord, DiagnosisRecord, RequiredTestRecord
from careflow.models.notification import NotificationRecord
from careflow.schemas.appointment import CreateAppointmentRequest, TimeRange
from careflow.schemas.common import Actor
from careflow.schemas.diagnosis import ApproveDiagnosisRequest, RequiredTestEdit
from careflow.services import diagnosis_workflow as workflow
from careflow.services import scheduling

DOCTOR = Actor(id="doctor-1", role="doctor")
MONDAY = dt.date(2025, 3, 10)


class AlwaysAvailable:
    def is_available(self, doctor_id, date, start, end):
        return True


@pytest.fixture()
def session_maker(tmp_path):
    # Separate connections need a shared file; the in-memory StaticPool hands every session the same one.
    engine = create_engine(f"sqlite:///{tmp_path / 'careflow.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


def _diagnosis_under_review(session_maker) -> tuple[str, str]:
    with session_maker() as db:
        diagnosis = DiagnosisRecord(
            patient_id="patient-1",
            status="pending_doctor_review",
            assessment_status="completed",
            ai_summary="Possible anaemia.",
        )
        diagnosis.turns.append(ConversationTurnRecord(position=0, role="patient", message="Always tired"))
        diagnosis.tests.append(RequiredTestRecord(position=0, name="Complete Blood Count", priority="high"))
        db.add(diagnosis)
        db.commit()
        return diagnosis.id, diagnosis.tests[0].id


def test_concurrent_approvals_let_only_one_through(session_maker):
    diagnosis_id, test_id = _diagnosis_under_review(session_maker)
    first, second = session_maker(), session_maker()
    try:
        mine = first.get(DiagnosisRecord, diagnosis_id)
        theirs = second.get(DiagnosisRecord, diagnosis_id)
        assert mine.version == theirs.version == 1

        def approval(version):
            edit = RequiredTestEdit(id=test_id, is_approved=True, priority="high")
            return ApproveDiagnosisRequest(version=version, tests=[edit])

        approved = workflow.approve_diagnosis(first, mine, DOCTOR, approval(1))
        assert approved.status == "pending_reports"

        with pytest.raises(ConcurrentModification):
            workflow.approve_diagnosis(second, theirs, DOCTOR, approval(1))
    finally:
        first.close()
        second.close()

    with session_maker() as db:
        stored = db.get(DiagnosisRecord, diagnosis_id)
        assert stored.status == "pending_reports"
        assert stored.version == 2
        events = db.query(NotificationRecord).filter(NotificationRecord.event == "diagnosis.pending_reports").all()
        assert len(events) == 1


def test_losing_slot_race_is_reported_as_unavailable(session_maker, monkeypatch):
    provider = AlwaysAvailable()
    payload = CreateAppointmentRequest(patient_id="patient-1", date=MONDAY, time=TimeRange(start="09:00"))
    first, second = session_maker(), session_maker()
    try:
        # Both bookings see a free slot before either one writes.
        for db in (first, second):
            scheduling._ensure_slot_free(db, provider, "doctor-1", MONDAY, "09:00", "09:30")
        monkeypatch.setattr(scheduling, "_ensure_slot_free", lambda *args, **kwargs: None)

        booked = scheduling.create_appointment(first, provider, DOCTOR, payload)
        assert booked.status == "scheduled"

        with pytest.raises(SlotUnavailable):
            scheduling.create_appointment(second, provider, DOCTOR, payload)
    finally:
        first.close()
        second.close()

    with session_maker() as db:
        rows = db.query(AppointmentRecord).filter(AppointmentRecord.status == "scheduled").all()
        assert [(row.doctor_id, row.start_time) for row in rows] == [("doctor-1", "09:00")]
