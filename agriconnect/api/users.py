import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from agriconnect.dependencies import get_admin_user, get_current_user, get_farmer_user, get_seller_user
from agriconnect.errors import bad_request, not_found
from agriconnect.models import FarmerProfile, Profile, Review, SellerProfile, User, get_db
from agriconnect.models.enums import ReviewEntityType, UserRole
from agriconnect.schemas.users import (
    FarmerProfileRequest,
    FarmerProfileResponse,
    ProfileResponse,
    ProfileUpdateRequest,
    PublicProfileResponse,
    SellerProfileRequest,
    SellerProfileResponse,
    UserResponse,
    UserRoleUpdateRequest,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _validate_or_none(schema, obj):
    return schema.model_validate(obj) if obj is not None else None


def _get_or_create_profile(db: Session, user: User) -> Profile:
    if user.profile is None:
        user.profile = Profile(name=user.email.split("@")[0])
        db.flush()
    return user.profile


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get my user record with profile",
)
def get_my_profile(
    current_user: Annotated[User, Depends(get_current_user)],
):
    return current_user


@router.put(
    "/me/profile",
    response_model=ProfileResponse,
    summary="Update my profile",
)
def update_my_profile(
    body: ProfileUpdateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    profile = _get_or_create_profile(db, current_user)
    updates = body.model_dump(exclude_unset=True)
    if "location" in updates and body.location is not None:
        updates["location"] = body.location.model_dump()
    for field, value in updates.items():
        setattr(profile, field, value)
    db.commit()
    db.refresh(profile)
    return profile


@router.put(
    "/me/farmer-profile",
    response_model=FarmerProfileResponse,
    summary="Create or update my farmer profile",
)
def upsert_farmer_profile(
    body: FarmerProfileRequest,
    current_user: Annotated[User, Depends(get_farmer_user)],
    db: Annotated[Session, Depends(get_db)],
):
    profile = _get_or_create_profile(db, current_user)
    farmer_profile = profile.farmer_profile
    if farmer_profile is None:
        farmer_profile = FarmerProfile(profile=profile, **body.model_dump(mode="json"))
        db.add(farmer_profile)
    else:
        for field, value in body.model_dump(mode="json").items():
            setattr(farmer_profile, field, value)
    db.commit()
    db.refresh(farmer_profile)
    return farmer_profile


@router.put(
    "/me/seller-profile",
    response_model=SellerProfileResponse,
    summary="Create or update my seller profile",
)
def upsert_seller_profile(
    body: SellerProfileRequest,
    current_user: Annotated[User, Depends(get_seller_user)],
    db: Annotated[Session, Depends(get_db)],
):
    profile = _get_or_create_profile(db, current_user)
    seller_profile = profile.seller_profile
    if seller_profile is None:
        seller_profile = SellerProfile(profile=profile, **body.model_dump())
        db.add(seller_profile)
    else:
        for field, value in body.model_dump().items():
            setattr(seller_profile, field, value)
    db.commit()
    db.refresh(seller_profile)
    return seller_profile


@router.get(
    "/{user_id}/public",
    response_model=PublicProfileResponse,
    summary="Public profile of a user",
)
def get_public_profile(
    user_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    """Profile without contact details; farmers include their average rating."""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise not_found("User not found")

    profile = user.profile
    average_rating = None
    review_count = 0
    if user.role == UserRole.FARMER.value:
        average, count = (
            db.query(func.avg(Review.rating), func.count(Review.id))
            .filter(
                Review.reviewed_entity_type == ReviewEntityType.FARMER.value,
                Review.reviewed_entity_id == user.id,
                Review.is_approved.is_(True),
            )
            .one()
        )
        average_rating = round(float(average), 2) if average is not None else None
        review_count = count

    return PublicProfileResponse(
        id=user.id,
        role=user.role,
        is_verified=user.is_verified,
        name=profile.name if profile else None,
        location=profile.location if profile else None,
        description=profile.description if profile else None,
        profile_picture_url=profile.profile_picture_url if profile else None,
        farmer_profile=_validate_or_none(FarmerProfileResponse, profile.farmer_profile if profile else None),
        seller_profile=_validate_or_none(SellerProfileResponse, profile.seller_profile if profile else None),
        average_rating=average_rating,
        review_count=review_count,
    )


@router.put(
    "/{user_id}/role",
    response_model=UserResponse,
    summary="Change the role of a user (admin)",
)
def update_user_role(
    user_id: int,
    body: UserRoleUpdateRequest,
    admin: Annotated[User, Depends(get_admin_user)],
    db: Annotated[Session, Depends(get_db)],
):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise not_found("User not found")
    if user.id == admin.id and body.role != UserRole.ADMIN:
        raise bad_request("Admins cannot remove their own admin role")

    user.role = body.role.value
    db.commit()
    db.refresh(user)
    logger.info("Admin %s changed role of user %s to %s", admin.id, user.id, user.role)
    return user
