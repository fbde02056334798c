import datetime as dt
from typing import Protocol

from sqlalchemy.orm import Session

from careflow.errors import ValidationError
from careflow.models.schedule import WEEKDAYS, DoctorAvailability
from careflow.schemas.schedule import AvailabilitySlot
from careflow.services.timeslots import crosses_midnight, parse_clock, slot_bounds


class ScheduleProvider(Protocol):
    def is_available(self, doctor_id: str, date: dt.date, start: str, end: str) -> bool: ...


class DatabaseScheduleProvider:
    """Doctor's published weekly availability, one window per weekday."""

    def __init__(self, db: Session):
        self.db = db

    def is_available(self, doctor_id: str, date: dt.date, start: str, end: str) -> bool:
        if crosses_midnight(start, end):
            return False
        window = (
            self.db.query(DoctorAvailability)
            .filter(DoctorAvailability.doctor_id == doctor_id, DoctorAvailability.day == WEEKDAYS[date.weekday()])
            .first()
        )
        if not window or not window.is_available:
            return False
        slot_start, slot_end = slot_bounds(start, end)
        return parse_clock(window.start_time) <= slot_start and slot_end <= parse_clock(window.end_time)


def get_schedule(db: Session, doctor_id: str) -> list[DoctorAvailability]:
    rows = db.query(DoctorAvailability).filter(DoctorAvailability.doctor_id == doctor_id).all()
    return sorted(rows, key=lambda row: WEEKDAYS.index(row.day))


def replace_schedule(db: Session, doctor_id: str, slots: list[AvailabilitySlot]) -> list[DoctorAvailability]:
    days = [slot.day for slot in slots]
    if len(days) != len(set(days)):
        raise ValidationError("Each weekday may appear only once in a schedule")
    for slot in slots:
        if slot.is_available and parse_clock(slot.end_time) <= parse_clock(slot.start_time):
            raise ValidationError(f"{slot.day}: end time must be after start time")

    db.query(DoctorAvailability).filter(DoctorAvailability.doctor_id == doctor_id).delete()
    for slot in slots:
        db.add(
            DoctorAvailability(
                doctor_id=doctor_id,
                day=slot.day,
                is_available=slot.is_available,
                start_time=slot.start_time,
                end_time=slot.end_time,
            )
        )
    db.commit()
    return get_schedule(db, doctor_id)
