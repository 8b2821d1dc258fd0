from datetime import datetime

from pydantic import BaseModel, Field

from agriconnect.models.enums import ReviewEntityType
from agriconnect.schemas.common import Pagination


class ReviewCreateRequest(BaseModel):
    reviewed_entity_id: int
    reviewed_entity_type: ReviewEntityType
    rating: int = Field(ge=1, le=5)
    comment: str | None = Field(default=None, min_length=5, max_length=500)


class ReviewModerateRequest(BaseModel):
    is_approved: bool
    moderation_notes: str | None = Field(default=None, max_length=1000)


class ReviewResponse(BaseModel):
    id: int
    reviewer_id: int
    reviewed_entity_id: int
    reviewed_entity_type: ReviewEntityType
    product_id: int | None = None
    rating: int
    comment: str | None = None
    is_approved: bool
    moderation_notes: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ReviewListResponse(BaseModel):
    items: list[ReviewResponse]
    pagination: Pagination
    average_rating: float | None = None
    rating_distribution: dict[int, int]
