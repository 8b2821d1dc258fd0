import logging
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from agriconnect.dependencies import get_admin_user, get_current_user
from agriconnect.errors import conflict, forbidden, not_found
from agriconnect.models import FarmerProfile, Order, OrderItem, Product, Profile, Review, User, get_db
from agriconnect.models.enums import NotificationType, OrderStatus, ReviewEntityType, UserRole
from agriconnect.schemas.common import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, SuccessResponse, paginate
from agriconnect.schemas.reviews import (
    ReviewCreateRequest,
    ReviewListResponse,
    ReviewModerateRequest,
    ReviewResponse,
)
from agriconnect.services.notifications import notify

router = APIRouter()
logger = logging.getLogger(__name__)


def _product_owner_id(db: Session, product_id: int) -> int | None:
    row = (
        db.query(Profile.user_id)
        .join(FarmerProfile, FarmerProfile.profile_id == Profile.id)
        .join(Product, Product.farmer_id == FarmerProfile.id)
        .filter(Product.id == product_id)
        .first()
    )
    return row[0] if row else None


@router.post(
    "",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Review a product or farmer you bought from",
)
def create_review(
    body: ReviewCreateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Only buyers with a delivered order may review; reviews wait for moderation."""
    existing = (
        db.query(Review.id)
        .filter(
            Review.reviewer_id == current_user.id,
            Review.reviewed_entity_id == body.reviewed_entity_id,
            Review.reviewed_entity_type == body.reviewed_entity_type.value,
        )
        .first()
    )
    if existing:
        raise conflict("You have already reviewed this item")

    if body.reviewed_entity_type == ReviewEntityType.PRODUCT:
        product = db.query(Product).filter(Product.id == body.reviewed_entity_id).first()
        if not product:
            raise not_found("Product not found")
        has_ordered = (
            db.query(OrderItem.id)
            .join(Order, OrderItem.order_id == Order.id)
            .filter(
                OrderItem.product_id == product.id,
                Order.seller_id == current_user.id,
                Order.status == OrderStatus.DELIVERED.value,
            )
            .first()
        )
        if not has_ordered:
            raise forbidden("You can only review products you have purchased and received")
        owner_id = _product_owner_id(db, product.id)
        product_id = product.id
        content = f"New {body.rating}-star review received for your product"
    else:
        farmer = (
            db.query(User)
            .filter(User.id == body.reviewed_entity_id, User.role == UserRole.FARMER.value)
            .first()
        )
        if not farmer:
            raise not_found("Farmer not found")
        has_transacted = (
            db.query(Order.id)
            .filter(
                Order.seller_id == current_user.id,
                Order.farmer_id == farmer.id,
                Order.status == OrderStatus.DELIVERED.value,
            )
            .first()
        )
        if not has_transacted:
            raise forbidden("You can only review farmers you have transacted with")
        owner_id = farmer.id
        product_id = None
        content = f"New {body.rating}-star review received for your farm"

    review = Review(
        reviewer_id=current_user.id,
        reviewed_entity_id=body.reviewed_entity_id,
        reviewed_entity_type=body.reviewed_entity_type.value,
        product_id=product_id,
        rating=body.rating,
        comment=body.comment,
        is_approved=False,
    )
    db.add(review)
    db.flush()
    if owner_id:
        notify(db, owner_id, NotificationType.REVIEW_RECEIVED, content, related_entity_id=review.id)
    db.commit()
    db.refresh(review)
    return review


@router.get(
    "",
    response_model=ReviewListResponse,
    summary="Reviews of a product or farmer",
)
def list_reviews(
    reviewed_entity_id: int,
    reviewed_entity_type: ReviewEntityType,
    db: Annotated[Session, Depends(get_db)],
    rating: Annotated[int | None, Query(ge=1, le=5)] = None,
    is_approved: bool = True,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
    sort_by: Literal["created_at", "rating"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
):
    """Approved reviews by default; the average and distribution cover approved reviews only."""
    base = db.query(Review).filter(
        Review.reviewed_entity_id == reviewed_entity_id,
        Review.reviewed_entity_type == reviewed_entity_type.value,
    )
    query = base.filter(Review.is_approved.is_(is_approved))
    if rating is not None:
        query = query.filter(Review.rating == rating)
    sort_column = Review.rating if sort_by == "rating" else Review.created_at
    query = query.order_by(sort_column.asc() if sort_order == "asc" else sort_column.desc(), Review.id.desc())
    items, pagination = paginate(query, page, limit)

    approved = base.filter(Review.is_approved.is_(True))
    average = approved.with_entities(func.avg(Review.rating)).scalar()
    distribution = {star: 0 for star in range(1, 6)}
    for star, count in approved.with_entities(Review.rating, func.count(Review.id)).group_by(Review.rating).all():
        distribution[star] = count

    return ReviewListResponse(
        items=items,
        pagination=pagination,
        average_rating=round(float(average), 2) if average is not None else None,
        rating_distribution=distribution,
    )


@router.get(
    "/mine",
    response_model=ReviewListResponse,
    summary="Reviews I have written",
)
def my_reviews(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    is_approved: bool | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
):
    query = db.query(Review).filter(Review.reviewer_id == current_user.id)
    if is_approved is not None:
        query = query.filter(Review.is_approved.is_(is_approved))
    items, pagination = paginate(query.order_by(Review.created_at.desc(), Review.id.desc()), page, limit)
    distribution = {star: 0 for star in range(1, 6)}
    for review in items:
        distribution[review.rating] += 1
    return ReviewListResponse(items=items, pagination=pagination, rating_distribution=distribution)


@router.patch(
    "/{review_id}/moderate",
    response_model=ReviewResponse,
    summary="Approve or reject a review (admin)",
)
def moderate_review(
    review_id: int,
    body: ReviewModerateRequest,
    admin: Annotated[User, Depends(get_admin_user)],
    db: Annotated[Session, Depends(get_db)],
):
    review = db.query(Review).filter(Review.id == review_id).first()
    if not review:
        raise not_found("Review not found")

    review.is_approved = body.is_approved
    review.moderation_notes = body.moderation_notes
    content = (
        "Your review has been approved and is now visible"
        if body.is_approved
        else f"Your review was not approved{': ' + body.moderation_notes if body.moderation_notes else ''}"
    )
    notify(db, review.reviewer_id, NotificationType.SYSTEM_ANNOUNCEMENT, content, related_entity_id=review.id)
    db.commit()
    db.refresh(review)
    logger.info("Admin %s %s review %s", admin.id, "approved" if body.is_approved else "rejected", review.id)
    return review


@router.delete(
    "/{review_id}",
    response_model=SuccessResponse,
    summary="Delete a review",
)
def delete_review(
    review_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    review = db.query(Review).filter(Review.id == review_id).first()
    if not review:
        raise not_found("Review not found")
    if review.reviewer_id != current_user.id and current_user.role != UserRole.ADMIN.value:
        raise forbidden("You can only delete your own reviews")
    db.delete(review)
    db.commit()
    return SuccessResponse(message="Review deleted")
