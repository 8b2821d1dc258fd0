from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from agriconnect.dependencies import get_current_user
from agriconnect.errors import forbidden, not_found
from agriconnect.models import Notification, User, get_db
from agriconnect.models.enums import NotificationType
from agriconnect.schemas.common import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, SuccessResponse, paginate
from agriconnect.schemas.notifications import (
    NotificationListResponse,
    NotificationResponse,
    NotificationStatsResponse,
)

router = APIRouter()


def _get_own_notification(db: Session, notification_id: int, user: User) -> Notification:
    notification = db.query(Notification).filter(Notification.id == notification_id).first()
    if not notification:
        raise not_found("Notification not found")
    if notification.user_id != user.id:
        raise forbidden("You can only access your own notifications")
    return notification


def _unread_count(db: Session, user_id: int) -> int:
    return (
        db.query(func.count(Notification.id))
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .scalar()
    )


@router.get(
    "",
    response_model=NotificationListResponse,
    summary="List my notifications",
)
def list_notifications(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    is_read: bool | None = None,
    notification_type: Annotated[NotificationType | None, Query(alias="type")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
):
    query = db.query(Notification).filter(Notification.user_id == current_user.id)
    if is_read is not None:
        query = query.filter(Notification.is_read.is_(is_read))
    if notification_type is not None:
        query = query.filter(Notification.type == notification_type.value)
    items, pagination = paginate(query.order_by(Notification.timestamp.desc(), Notification.id.desc()), page, limit)
    return NotificationListResponse(
        items=items,
        pagination=pagination,
        unread_count=_unread_count(db, current_user.id),
    )


@router.get(
    "/stats",
    response_model=NotificationStatsResponse,
    summary="Notification counts by type",
)
def notification_stats(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    rows = (
        db.query(Notification.type, func.count(Notification.id))
        .filter(Notification.user_id == current_user.id)
        .group_by(Notification.type)
        .all()
    )
    by_type = {notification_type: count for notification_type, count in rows}
    return NotificationStatsResponse(
        total=sum(by_type.values()),
        unread=_unread_count(db, current_user.id),
        by_type=by_type,
    )


@router.patch(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark a notification as read",
)
def mark_read(
    notification_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    notification = _get_own_notification(db, notification_id, current_user)
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification


@router.post(
    "/read-all",
    response_model=SuccessResponse,
    summary="Mark all my notifications as read",
)
def mark_all_read(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    updated = (
        db.query(Notification)
        .filter(Notification.user_id == current_user.id, Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return SuccessResponse(message=f"{updated} notifications marked as read")


@router.delete(
    "/{notification_id}",
    response_model=SuccessResponse,
    summary="Delete a notification",
)
def delete_notification(
    notification_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    notification = _get_own_notification(db, notification_id, current_user)
    db.delete(notification)
    db.commit()
    return SuccessResponse(message="Notification deleted")
