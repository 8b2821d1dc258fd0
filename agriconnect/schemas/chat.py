from datetime import datetime

from pydantic import BaseModel, Field

from agriconnect.models.enums import UserRole


class ChatSessionCreateRequest(BaseModel):
    participant_id: int


class MessageSendRequest(BaseModel):
    content: str = Field(min_length=1, max_length=2000)


class ChatParticipant(BaseModel):
    id: int
    name: str | None = None
    role: UserRole


class ChatMessageResponse(BaseModel):
    id: int
    chat_session_id: int
    sender_id: int
    content: str
    is_read: bool
    timestamp: datetime | None = None

    model_config = {"from_attributes": True}


class ChatSessionResponse(BaseModel):
    id: int
    other_participant: ChatParticipant
    last_message: ChatMessageResponse | None = None
    unread_count: int = 0
    last_message_at: datetime | None = None
