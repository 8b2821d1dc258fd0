from typing import Literal

from pydantic import BaseModel, Field

from agriconnect.schemas.common import Pagination
from agriconnect.schemas.users import UserResponse


class UserListResponse(BaseModel):
    items: list[UserResponse]
    pagination: Pagination


class VerificationUpdateRequest(BaseModel):
    is_verified: bool


class AnnouncementRequest(BaseModel):
    content: str = Field(min_length=1, max_length=2000)
    target_role: Literal["ALL", "FARMER", "SELLER", "ADMIN"] = "ALL"


class AnnouncementResponse(BaseModel):
    recipients: int


class EscrowStatsResponse(BaseModel):
    total_escrowed: int
    eligible_for_release: int
    released_today: int
    total_escrowed_amount: str


class EscrowJobResponse(BaseModel):
    successful: int
    failed: int
    skipped: int
    errors: list[str]
