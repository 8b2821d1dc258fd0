import logging
from typing import Callable

from sqlalchemy.orm import Session

from agriconnect.models import Notification, User
from agriconnect.models.enums import NotificationType
from agriconnect.services.sms_gateway import SmsResult

logger = logging.getLogger(__name__)


def notify(
    db: Session,
    user_id: int,
    notification_type: NotificationType,
    content: str,
    related_entity_id: int | None = None,
) -> Notification:
    """Queue an in-app notification on the session; the caller commits."""
    notification = Notification(
        user_id=user_id,
        type=notification_type.value,
        content=content,
        related_entity_id=related_entity_id,
    )
    db.add(notification)
    return notification


def sms_quietly(user: User | None, send: Callable[..., SmsResult], *args) -> bool:
    """Call an sms_gateway sender for the user's phone; failures are logged, never raised."""
    if user is None or not user.phone_number:
        return False
    try:
        result = send(user.phone_number, *args)
    except Exception:
        logger.exception("Unexpected SMS failure for user id=%s", user.id)
        return False
    if not result.success:
        logger.warning("SMS to user id=%s failed: %s", user.id, result.error)
    return result.success
