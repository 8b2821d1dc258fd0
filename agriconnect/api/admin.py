import logging
from datetime import timedelta
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from agriconnect.dependencies import get_admin_user
from agriconnect.errors import ApiError, internal_error, not_found
from agriconnect.jobs.escrow_release import (
    EscrowClaimLostError,
    EscrowGatewayError,
    EscrowReleaseError,
    get_escrow_stats,
    manual_escrow_release,
    process_escrow_releases,
)
from agriconnect.models import Order, Product, Profile, Review, User, get_db
from agriconnect.models.enums import NotificationType, OrderStatus, PaymentStatus, ProductStatus, UserRole
from agriconnect.schemas.admin import (
    AnnouncementRequest,
    AnnouncementResponse,
    EscrowJobResponse,
    EscrowStatsResponse,
    UserListResponse,
    VerificationUpdateRequest,
)
from agriconnect.schemas.common import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, SuccessResponse, paginate
from agriconnect.schemas.reviews import ReviewListResponse
from agriconnect.schemas.users import UserResponse
from agriconnect.services.auth_tokens import db_datetime, utcnow
from agriconnect.services.notifications import notify

router = APIRouter()
logger = logging.getLogger(__name__)

# Orders that count towards revenue.
REVENUE_PAYMENT_STATUSES = (PaymentStatus.PAID.value, PaymentStatus.ESCROWED.value, PaymentStatus.RELEASED.value)


@router.get(
    "/users",
    response_model=UserListResponse,
    summary="List users",
)
def list_users(
    _admin: Annotated[User, Depends(get_admin_user)],
    db: Annotated[Session, Depends(get_db)],
    role: UserRole | None = None,
    is_verified: bool | None = None,
    search: Annotated[str | None, Query(max_length=100)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
    sort_order: Literal["asc", "desc"] = "desc",
):
    query = db.query(User).options(joinedload(User.profile)).outerjoin(Profile, Profile.user_id == User.id)
    if role is not None:
        query = query.filter(User.role == role.value)
    if is_verified is not None:
        query = query.filter(User.is_verified.is_(is_verified))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(User.email.ilike(pattern), User.phone_number.ilike(pattern), Profile.name.ilike(pattern))
        )
    order = User.created_at.asc() if sort_order == "asc" else User.created_at.desc()
    items, pagination = paginate(query.order_by(order, User.id.desc()), page, limit)
    return UserListResponse(items=items, pagination=pagination)


@router.get(
    "/users/stats",
    summary="User counts by role and verification",
)
def user_stats(
    _admin: Annotated[User, Depends(get_admin_user)],
    db: Annotated[Session, Depends(get_db)],
):
    by_role = dict(db.query(User.role, func.count(User.id)).group_by(User.role).all())
    verified = db.query(func.count(User.id)).filter(User.is_verified.is_(True)).scalar()
    total = sum(by_role.values())
    since = db_datetime(db, utcnow() - timedelta(days=30))
    new_last_30_days = db.query(func.count(User.id)).filter(User.created_at >= since).scalar()
    return {
        "total": total,
        "farmers": by_role.get(UserRole.FARMER.value, 0),
        "sellers": by_role.get(UserRole.SELLER.value, 0),
        "admins": by_role.get(UserRole.ADMIN.value, 0),
        "verified": verified,
        "unverified": total - verified,
        "new_last_30_days": new_last_30_days,
    }


@router.get(
    "/stats",
    summary="Platform-wide statistics",
)
def platform_stats(
    _admin: Annotated[User, Depends(get_admin_user)],
    db: Annotated[Session, Depends(get_db)],
):
    orders_by_status = dict(db.query(Order.status, func.count(Order.id)).group_by(Order.status).all())
    revenue = (
        db.query(func.coalesce(func.sum(Order.total_amount), 0))
        .filter(Order.payment_status.in_(REVENUE_PAYMENT_STATUSES))
        .scalar()
    )
    return {
        "users": db.query(func.count(User.id)).scalar(),
        "products": db.query(func.count(Product.id)).scalar(),
        "active_products": db.query(func.count(Product.id))
        .filter(Product.status == ProductStatus.ACTIVE.value)
        .scalar(),
        "orders": sum(orders_by_status.values()),
        "orders_by_status": {s.value: orders_by_status.get(s.value, 0) for s in OrderStatus},
        "total_revenue": str(revenue),
        "pending_reviews": db.query(func.count(Review.id)).filter(Review.is_approved.is_(False)).scalar(),
    }


@router.patch(
    "/users/{user_id}/verification",
    response_model=UserResponse,
    summary="Verify or unverify a user",
)
def update_user_verification(
    user_id: int,
    body: VerificationUpdateRequest,
    admin: Annotated[User, Depends(get_admin_user)],
    db: Annotated[Session, Depends(get_db)],
):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise not_found("User not found")

    user.is_verified = body.is_verified
    notify(
        db,
        user.id,
        NotificationType.SYSTEM_ANNOUNCEMENT,
        "Your account has been verified" if body.is_verified else "Your account verification has been revoked",
    )
    db.commit()
    db.refresh(user)
    logger.info("Admin %s set verification of user %s to %s", admin.id, user.id, body.is_verified)
    return user


@router.get(
    "/reviews/pending",
    response_model=ReviewListResponse,
    summary="Reviews waiting for moderation",
)
def pending_reviews(
    _admin: Annotated[User, Depends(get_admin_user)],
    db: Annotated[Session, Depends(get_db)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
):
    query = (
        db.query(Review)
        .filter(Review.is_approved.is_(False))
        .order_by(Review.created_at.asc(), Review.id.asc())
    )
    items, pagination = paginate(query, page, limit)
    distribution = {star: 0 for star in range(1, 6)}
    for review in items:
        distribution[review.rating] += 1
    return ReviewListResponse(items=items, pagination=pagination, rating_distribution=distribution)


@router.post(
    "/announcements",
    response_model=AnnouncementResponse,
    summary="Send an announcement to a role or everyone",
)
def create_announcement(
    body: AnnouncementRequest,
    admin: Annotated[User, Depends(get_admin_user)],
    db: Annotated[Session, Depends(get_db)],
):
    query = db.query(User.id)
    if body.target_role != "ALL":
        query = query.filter(User.role == body.target_role)
    user_ids = [row[0] for row in query.all()]
    for user_id in user_ids:
        notify(db, user_id, NotificationType.SYSTEM_ANNOUNCEMENT, body.content)
    db.commit()
    logger.info("Admin %s sent announcement to %s users (%s)", admin.id, len(user_ids), body.target_role)
    return AnnouncementResponse(recipients=len(user_ids))


@router.get(
    "/escrow/stats",
    response_model=EscrowStatsResponse,
    summary="Escrow totals and orders due for release",
)
def escrow_stats(
    _admin: Annotated[User, Depends(get_admin_user)],
    db: Annotated[Session, Depends(get_db)],
):
    return get_escrow_stats(db)


@router.post(
    "/escrow/orders/{order_id}/release",
    response_model=SuccessResponse,
    summary="Release escrow of a delivered order now",
)
def release_order_escrow(
    order_id: int,
    admin: Annotated[User, Depends(get_admin_user)],
    db: Annotated[Session, Depends(get_db)],
):
    try:
        result = manual_escrow_release(db, order_id, admin.id)
    except LookupError as e:
        raise not_found(str(e))
    except EscrowClaimLostError as e:
        raise ApiError("CONFLICT", str(e))
    except EscrowGatewayError as e:
        raise internal_error(str(e))
    except EscrowReleaseError as e:
        raise ApiError("PRECONDITION_FAILED", str(e))
    except ValueError as e:
        raise ApiError("SERVICE_UNAVAILABLE", str(e))
    return SuccessResponse(success=result["success"], message=result["message"])


@router.post(
    "/escrow/run",
    response_model=EscrowJobResponse,
    summary="Run the escrow auto-release job now",
)
def run_escrow_job(
    admin: Annotated[User, Depends(get_admin_user)],
    db: Annotated[Session, Depends(get_db)],
):
    logger.info("Admin %s triggered the escrow release job", admin.id)
    return process_escrow_releases(db).to_dict()
