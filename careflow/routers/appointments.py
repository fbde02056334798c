from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from careflow.database import get_db
from careflow.routers.deps import get_actor
from careflow.schemas.appointment import CancelAppointmentRequest, serialize_appointment
from careflow.schemas.common import Actor, success
from careflow.schemas.report import ReportOut
from careflow.services import scheduling

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.get("")
def list_appointments(
    status: str | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    rows = scheduling.list_appointments(db, actor, status=status)
    return success([serialize_appointment(row, scheduling.report_ids_for(db, row)) for row in rows])


@router.get("/{appointment_id}")
def get_appointment(appointment_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    appointment = scheduling.get_appointment(db, appointment_id, actor)
    return success(serialize_appointment(appointment, scheduling.report_ids_for(db, appointment)))


@router.delete("/{appointment_id}")
def cancel_appointment(
    appointment_id: str,
    payload: CancelAppointmentRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    appointment = scheduling.get_appointment(db, appointment_id, actor)
    appointment = scheduling.cancel_appointment(db, appointment, actor, payload.cancel_reason)
    return success(serialize_appointment(appointment, scheduling.report_ids_for(db, appointment)), "Appointment cancelled")


@router.get("/{appointment_id}/reports")
def appointment_reports(appointment_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    appointment = scheduling.get_appointment(db, appointment_id, actor)
    reports, checklist = scheduling.report_checklist(db, appointment)
    return success(
        {
            "reports": [ReportOut.model_validate(r).model_dump(by_alias=True, mode="json") for r in reports],
            "checklist": [item.model_dump(by_alias=True, mode="json") for item in checklist],
            "reviewedCount": sum(1 for r in reports if r.is_reviewed),
            "total": len(reports),
        }
    )
