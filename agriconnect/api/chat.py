from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from agriconnect.dependencies import get_current_user, rate_limit
from agriconnect.errors import bad_request, forbidden, not_found
from agriconnect.models import ChatMessage, ChatSession, User, get_db
from agriconnect.models.enums import NotificationType
from agriconnect.schemas.chat import (
    ChatMessageResponse,
    ChatParticipant,
    ChatSessionCreateRequest,
    ChatSessionResponse,
    MessageSendRequest,
)
from agriconnect.schemas.common import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, SuccessResponse
from agriconnect.services.notifications import notify

router = APIRouter()


def _get_session_for(db: Session, session_id: int, user: User) -> ChatSession:
    chat_session = db.query(ChatSession).filter(ChatSession.id == session_id).first()
    if not chat_session:
        raise not_found("Chat session not found")
    if user.id not in {chat_session.participant1_id, chat_session.participant2_id}:
        raise forbidden("You are not a participant of this chat")
    return chat_session


def _other_participant(chat_session: ChatSession, user: User) -> User:
    if chat_session.participant1_id == user.id:
        return chat_session.participant2
    return chat_session.participant1


def _session_response(db: Session, chat_session: ChatSession, user: User) -> ChatSessionResponse:
    other = _other_participant(chat_session, user)
    last_message = (
        db.query(ChatMessage)
        .filter(ChatMessage.chat_session_id == chat_session.id)
        .order_by(ChatMessage.timestamp.desc(), ChatMessage.id.desc())
        .first()
    )
    unread = (
        db.query(func.count(ChatMessage.id))
        .filter(
            ChatMessage.chat_session_id == chat_session.id,
            ChatMessage.sender_id != user.id,
            ChatMessage.is_read.is_(False),
        )
        .scalar()
    )
    return ChatSessionResponse(
        id=chat_session.id,
        other_participant=ChatParticipant(
            id=other.id,
            name=other.profile.name if other.profile else None,
            role=other.role,
        ),
        last_message=ChatMessageResponse.model_validate(last_message) if last_message else None,
        unread_count=unread,
        last_message_at=chat_session.last_message_at,
    )


@router.post(
    "/sessions",
    response_model=ChatSessionResponse,
    summary="Open a chat with another user",
)
def create_session(
    body: ChatSessionCreateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Return the existing session between the two users, or start one."""
    if body.participant_id == current_user.id:
        raise bad_request("You cannot start a chat with yourself")
    other = db.query(User).filter(User.id == body.participant_id).first()
    if not other:
        raise not_found("User not found")

    chat_session = (
        db.query(ChatSession)
        .filter(
            or_(
                and_(ChatSession.participant1_id == current_user.id, ChatSession.participant2_id == other.id),
                and_(ChatSession.participant1_id == other.id, ChatSession.participant2_id == current_user.id),
            )
        )
        .first()
    )
    if chat_session is None:
        chat_session = ChatSession(participant1_id=current_user.id, participant2_id=other.id)
        db.add(chat_session)
        db.commit()
        db.refresh(chat_session)
    return _session_response(db, chat_session, current_user)


@router.get(
    "/sessions",
    response_model=list[ChatSessionResponse],
    summary="List my chats, most recent first",
)
def list_sessions(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    sessions = (
        db.query(ChatSession)
        .filter(or_(ChatSession.participant1_id == current_user.id, ChatSession.participant2_id == current_user.id))
        .order_by(ChatSession.last_message_at.desc(), ChatSession.id.desc())
        .all()
    )
    return [_session_response(db, chat_session, current_user) for chat_session in sessions]


@router.get(
    "/sessions/{session_id}/messages",
    response_model=list[ChatMessageResponse],
    summary="Messages of a chat, oldest first",
)
def list_messages(
    session_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE * 5,
):
    """Page 1 holds the newest messages; each page is returned in chronological order."""
    _get_session_for(db, session_id, current_user)
    newest_first = (
        db.query(ChatMessage)
        .filter(ChatMessage.chat_session_id == session_id)
        .order_by(ChatMessage.timestamp.desc(), ChatMessage.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return list(reversed(newest_first))


@router.post(
    "/sessions/{session_id}/messages",
    response_model=ChatMessageResponse,
    summary="Send a message",
    dependencies=[Depends(rate_limit("messaging"))],
)
def send_message(
    session_id: int,
    body: MessageSendRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    chat_session = _get_session_for(db, session_id, current_user)
    recipient = _other_participant(chat_session, current_user)

    message = ChatMessage(chat_session_id=chat_session.id, sender_id=current_user.id, content=body.content.strip())
    db.add(message)
    chat_session.last_message_at = datetime.now(timezone.utc)
    sender_name = current_user.profile.name if current_user.profile else "Someone"
    notify(
        db,
        recipient.id,
        NotificationType.MESSAGE_RECEIVED,
        f"New message from {sender_name}",
        related_entity_id=chat_session.id,
    )
    db.commit()
    db.refresh(message)
    return message


@router.post(
    "/sessions/{session_id}/read",
    response_model=SuccessResponse,
    summary="Mark messages from the other participant as read",
)
def mark_messages_read(
    session_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    _get_session_for(db, session_id, current_user)
    updated = (
        db.query(ChatMessage)
        .filter(
            ChatMessage.chat_session_id == session_id,
            ChatMessage.sender_id != current_user.id,
            ChatMessage.is_read.is_(False),
        )
        .update({ChatMessage.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return SuccessResponse(message=f"{updated} messages marked as read")
