from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from careflow.database import get_db
from careflow.routers.deps import get_actor
from careflow.schemas.common import Actor, success
from careflow.schemas.notification import NotificationOut
from careflow.services import notifications

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
def list_notifications(
    unread: bool = Query(default=False),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    rows = notifications.list_notifications(db, actor, unread_only=unread)
    return success([NotificationOut.model_validate(row) for row in rows])


@router.put("/{notification_id}/read")
def mark_read(notification_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return success(NotificationOut.model_validate(notifications.mark_read(db, actor, notification_id)))


@router.delete("/{notification_id}")
def delete_notification(notification_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    notifications.delete_notification(db, actor, notification_id)
    return {"statusCode": 200, "message": "Notification deleted", "data": None}
