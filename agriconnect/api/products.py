import logging
from decimal import Decimal
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from agriconnect.dependencies import get_farmer_user
from agriconnect.errors import ApiError, bad_request, conflict, forbidden, not_found
from agriconnect.models import CartItem, Category, FarmerProfile, OrderItem, Product, Review, SavedProduct, User, get_db
from agriconnect.models.enums import ProductStatus, ReviewEntityType
from agriconnect.schemas.common import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, SuccessResponse, paginate
from agriconnect.schemas.products import (
    ProductCreateRequest,
    ProductDetailResponse,
    ProductListResponse,
    ProductResponse,
    ProductReview,
    ProductStatusUpdateRequest,
    ProductUpdateRequest,
)

router = APIRouter()
logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "created_at": Product.created_at,
    "unit_price": Product.unit_price,
    "name": Product.name,
    "quantity_available": Product.quantity_available,
}


def _require_farmer_profile(user: User) -> FarmerProfile:
    farmer_profile = user.profile.farmer_profile if user.profile else None
    if farmer_profile is None:
        raise ApiError("PRECONDITION_FAILED", "Complete your farmer profile before managing products")
    return farmer_profile


def _get_owned_product(db: Session, product_id: int, user: User) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise not_found("Product not found")
    farmer_profile = user.profile.farmer_profile if user.profile else None
    if farmer_profile is None or product.farmer_id != farmer_profile.id:
        raise forbidden("You can only manage your own products")
    return product


def _ensure_category(db: Session, category_id: int) -> None:
    if not db.query(Category.id).filter(Category.id == category_id).first():
        raise not_found("Category not found")


@router.post(
    "",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a product listing",
)
def create_product(
    body: ProductCreateRequest,
    current_user: Annotated[User, Depends(get_farmer_user)],
    db: Annotated[Session, Depends(get_db)],
):
    farmer_profile = _require_farmer_profile(current_user)
    _ensure_category(db, body.category_id)

    product = Product(farmer_id=farmer_profile.id, **body.model_dump(exclude={"status"}))
    product.status = body.status.value
    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info("Farmer profile %s created product %s", farmer_profile.id, product.id)
    return product


@router.get(
    "",
    response_model=ProductListResponse,
    summary="List products",
)
def list_products(
    db: Annotated[Session, Depends(get_db)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
    category_id: int | None = None,
    farmer_id: int | None = None,
    product_status: Annotated[ProductStatus, Query(alias="status")] = ProductStatus.ACTIVE,
    min_price: Annotated[Decimal | None, Query(ge=0)] = None,
    max_price: Annotated[Decimal | None, Query(ge=0)] = None,
    search: Annotated[str | None, Query(max_length=100)] = None,
    location: Annotated[str | None, Query(max_length=120)] = None,
    sort_by: Literal["created_at", "unit_price", "name", "quantity_available"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
):
    """Public catalogue; only ACTIVE products unless another status is asked for."""
    if min_price is not None and max_price is not None and min_price > max_price:
        raise bad_request("min_price cannot be greater than max_price")

    query = (
        db.query(Product)
        .options(joinedload(Product.category), joinedload(Product.farmer))
        .filter(Product.status == product_status.value)
    )
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if farmer_id is not None:
        query = query.filter(Product.farmer_id == farmer_id)
    if min_price is not None:
        query = query.filter(Product.unit_price >= min_price)
    if max_price is not None:
        query = query.filter(Product.unit_price <= max_price)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
    if location:
        query = query.join(FarmerProfile, Product.farmer_id == FarmerProfile.id).filter(
            FarmerProfile.farm_location_details.ilike(f"%{location.strip()}%")
        )

    sort_column = SORT_FIELDS[sort_by]
    query = query.order_by(sort_column.asc() if sort_order == "asc" else sort_column.desc(), Product.id.desc())
    items, pagination = paginate(query, page, limit)
    return ProductListResponse(items=items, pagination=pagination)


@router.get(
    "/mine",
    response_model=ProductListResponse,
    summary="List my products",
)
def my_products(
    current_user: Annotated[User, Depends(get_farmer_user)],
    db: Annotated[Session, Depends(get_db)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
    product_status: Annotated[ProductStatus | None, Query(alias="status")] = None,
):
    farmer_profile = _require_farmer_profile(current_user)
    query = db.query(Product).filter(Product.farmer_id == farmer_profile.id)
    if product_status is not None:
        query = query.filter(Product.status == product_status.value)
    items, pagination = paginate(query.order_by(Product.created_at.desc(), Product.id.desc()), page, limit)
    return ProductListResponse(items=items, pagination=pagination)


@router.get(
    "/{product_id}",
    response_model=ProductDetailResponse,
    summary="Get a product with its approved reviews",
)
def get_product(
    product_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    product = (
        db.query(Product)
        .options(joinedload(Product.category), joinedload(Product.farmer))
        .filter(Product.id == product_id)
        .first()
    )
    if not product:
        raise not_found("Product not found")

    reviews = (
        db.query(Review)
        .filter(
            Review.reviewed_entity_type == ReviewEntityType.PRODUCT.value,
            Review.reviewed_entity_id == product.id,
            Review.is_approved.is_(True),
        )
        .order_by(Review.created_at.desc(), Review.id.desc())
        .all()
    )
    average = round(sum(r.rating for r in reviews) / len(reviews), 2) if reviews else None

    detail = ProductDetailResponse.model_validate(product)
    detail.reviews = [ProductReview.model_validate(review) for review in reviews]
    detail.average_rating = average
    detail.review_count = len(reviews)
    return detail


@router.put(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Update my product",
)
def update_product(
    product_id: int,
    body: ProductUpdateRequest,
    current_user: Annotated[User, Depends(get_farmer_user)],
    db: Annotated[Session, Depends(get_db)],
):
    product = _get_owned_product(db, product_id, current_user)
    updates = body.model_dump(exclude_unset=True)
    if updates.get("category_id") is not None:
        _ensure_category(db, updates["category_id"])
    for field, value in updates.items():
        if value is None and field in {"name", "category_id", "unit_price", "unit", "quantity_available"}:
            continue
        setattr(product, field, value)
    db.commit()
    db.refresh(product)
    return product


@router.patch(
    "/{product_id}/status",
    response_model=ProductResponse,
    summary="Change the status of my product",
)
def update_product_status(
    product_id: int,
    body: ProductStatusUpdateRequest,
    current_user: Annotated[User, Depends(get_farmer_user)],
    db: Annotated[Session, Depends(get_db)],
):
    product = _get_owned_product(db, product_id, current_user)
    product.status = body.status.value
    db.commit()
    db.refresh(product)
    return product


@router.delete(
    "/{product_id}",
    response_model=SuccessResponse,
    summary="Delete my product",
)
def delete_product(
    product_id: int,
    current_user: Annotated[User, Depends(get_farmer_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Products referenced by orders are kept for the order history; deactivate them instead."""
    product = _get_owned_product(db, product_id, current_user)
    has_orders = db.query(func.count(OrderItem.id)).filter(OrderItem.product_id == product.id).scalar()
    if has_orders:
        raise conflict("Product has orders and cannot be deleted; set it INACTIVE instead")

    db.query(CartItem).filter(CartItem.product_id == product.id).delete(synchronize_session=False)
    db.query(SavedProduct).filter(SavedProduct.product_id == product.id).delete(synchronize_session=False)
    db.delete(product)
    db.commit()
    return SuccessResponse(message="Product deleted")
