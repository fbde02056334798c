from datetime import datetime

from careflow.schemas.common import CamelModel


class NotificationOut(CamelModel):
    id: str
    user_id: str
    event: str
    entity_type: str
    entity_id: str
    message: str | None
    is_read: bool
    created_at: datetime
