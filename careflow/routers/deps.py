from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from careflow.database import get_db
from careflow.schemas.common import ACTOR_ROLES, Actor
from careflow.services.schedule_provider import DatabaseScheduleProvider, ScheduleProvider


def get_actor(
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
) -> Actor:
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-Actor-Id header")
    role = (x_actor_role or "").strip().lower()
    if role not in ACTOR_ROLES:
        raise HTTPException(status_code=401, detail="X-Actor-Role must be 'patient' or 'doctor'")
    return Actor(id=x_actor_id.strip(), role=role)


def get_doctor(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_doctor:
        raise HTTPException(status_code=403, detail="Doctor access required")
    return actor


def get_schedule_provider(db: Session = Depends(get_db)) -> ScheduleProvider:
    return DatabaseScheduleProvider(db)
