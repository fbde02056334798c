import logging

from sqlalchemy.orm import Session

from careflow.errors import Forbidden, NotFound
from careflow.models.notification import NotificationRecord
from careflow.schemas.common import Actor

logger = logging.getLogger(__name__)


class NotificationEmitter:
    """Records one notification per recipient per transition.

    Rows are added to the caller's session so they commit (or roll back)
    together with the transition that produced them; push delivery is the
    concern of whatever reads the table.
    """

    def __init__(self, db: Session):
        self.db = db

    def send(self, user_id: str | None, event: str, entity_type: str, entity_id: str, message: str | None = None):
        if not user_id:
            return None
        notification = NotificationRecord(
            user_id=user_id,
            event=event,
            entity_type=entity_type,
            entity_id=entity_id,
            message=message,
        )
        self.db.add(notification)
        logger.info("Notify %s: %s on %s %s", user_id, event, entity_type, entity_id)
        return notification


def list_notifications(db: Session, actor: Actor, unread_only: bool = False) -> list[NotificationRecord]:
    query = db.query(NotificationRecord).filter(NotificationRecord.user_id == actor.id)
    if unread_only:
        query = query.filter(NotificationRecord.is_read.is_(False))
    return query.order_by(NotificationRecord.created_at.desc()).all()


def _get_own(db: Session, actor: Actor, notification_id: str) -> NotificationRecord:
    notification = db.get(NotificationRecord, notification_id)
    if not notification:
        raise NotFound("Notification not found")
    if notification.user_id != actor.id:
        raise Forbidden("Notification belongs to another user")
    return notification


def mark_read(db: Session, actor: Actor, notification_id: str) -> NotificationRecord:
    notification = _get_own(db, actor, notification_id)
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification


def delete_notification(db: Session, actor: Actor, notification_id: str) -> None:
    notification = _get_own(db, actor, notification_id)
    db.delete(notification)
    db.commit()
