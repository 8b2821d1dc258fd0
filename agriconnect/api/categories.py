import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy import case, func
from sqlalchemy.orm import Session

from agriconnect.dependencies import get_admin_user
from agriconnect.errors import conflict, not_found
from agriconnect.models import Category, Product, User, get_db
from agriconnect.models.enums import ProductStatus
from agriconnect.schemas.categories import (
    CategoryCreateRequest,
    CategoryResponse,
    CategoryStatsItem,
    CategoryUpdateRequest,
)
from agriconnect.schemas.common import SuccessResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def _get_category(db: Session, category_id: int) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise not_found("Category not found")
    return category


def _ensure_unique_name(db: Session, name: str, exclude_id: int | None = None) -> None:
    query = db.query(Category.id).filter(func.lower(Category.name) == name.strip().lower())
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise conflict("Category with this name already exists")


@router.get(
    "",
    response_model=list[CategoryResponse],
    summary="List categories",
)
def list_categories(
    db: Annotated[Session, Depends(get_db)],
    include_counts: bool = False,
):
    """All categories by name; with include_counts, the number of ACTIVE products in each."""
    categories = db.query(Category).order_by(Category.name.asc()).all()
    if not include_counts:
        return categories

    counts = dict(
        db.query(Product.category_id, func.count(Product.id))
        .filter(Product.status == ProductStatus.ACTIVE.value)
        .group_by(Product.category_id)
        .all()
    )
    result = []
    for category in categories:
        item = CategoryResponse.model_validate(category)
        item.product_count = counts.get(category.id, 0)
        result.append(item)
    return result


@router.get(
    "/stats",
    response_model=list[CategoryStatsItem],
    summary="Product counts per category (admin)",
)
def category_stats(
    _admin: Annotated[User, Depends(get_admin_user)],
    db: Annotated[Session, Depends(get_db)],
):
    rows = (
        db.query(
            Category.id,
            Category.name,
            func.count(Product.id),
            func.coalesce(func.sum(case((Product.status == ProductStatus.ACTIVE.value, 1), else_=0)), 0),
        )
        .outerjoin(Product, Product.category_id == Category.id)
        .group_by(Category.id, Category.name)
        .order_by(Category.name.asc())
        .all()
    )
    return [
        CategoryStatsItem(id=row[0], name=row[1], total_products=row[2], active_products=int(row[3]))
        for row in rows
    ]


@router.get(
    "/{category_id}",
    response_model=CategoryResponse,
    summary="Get a category",
)
def get_category(
    category_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    return _get_category(db, category_id)


@router.post(
    "",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a category (admin)",
)
def create_category(
    body: CategoryCreateRequest,
    admin: Annotated[User, Depends(get_admin_user)],
    db: Annotated[Session, Depends(get_db)],
):
    _ensure_unique_name(db, body.name)
    category = Category(name=body.name.strip(), description=body.description, image_url=body.image_url)
    db.add(category)
    db.commit()
    db.refresh(category)
    logger.info("Admin %s created category %s", admin.id, category.id)
    return category


@router.put(
    "/{category_id}",
    response_model=CategoryResponse,
    summary="Update a category (admin)",
)
def update_category(
    category_id: int,
    body: CategoryUpdateRequest,
    _admin: Annotated[User, Depends(get_admin_user)],
    db: Annotated[Session, Depends(get_db)],
):
    category = _get_category(db, category_id)
    updates = body.model_dump(exclude_unset=True)
    if updates.get("name"):
        _ensure_unique_name(db, updates["name"], exclude_id=category.id)
        updates["name"] = updates["name"].strip()
    for field, value in updates.items():
        if field == "name" and value is None:
            continue
        setattr(category, field, value)
    db.commit()
    db.refresh(category)
    return category


@router.delete(
    "/{category_id}",
    response_model=SuccessResponse,
    summary="Delete a category without products (admin)",
)
def delete_category(
    category_id: int,
    admin: Annotated[User, Depends(get_admin_user)],
    db: Annotated[Session, Depends(get_db)],
):
    category = _get_category(db, category_id)
    if db.query(Product.id).filter(Product.category_id == category.id).first():
        raise conflict("Category has products and cannot be deleted")
    db.delete(category)
    db.commit()
    logger.info("Admin %s deleted category %s", admin.id, category_id)
    return SuccessResponse(message="Category deleted")
