from datetime import datetime

from pydantic import BaseModel

from agriconnect.models.enums import NotificationType
from agriconnect.schemas.common import Pagination


class NotificationResponse(BaseModel):
    id: int
    type: NotificationType
    content: str
    related_entity_id: int | None = None
    is_read: bool
    timestamp: datetime | None = None

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse]
    pagination: Pagination
    unread_count: int


class NotificationStatsResponse(BaseModel):
    total: int
    unread: int
    by_type: dict[str, int]
