from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session, joinedload

from agriconnect.dependencies import get_current_user
from agriconnect.errors import not_found
from agriconnect.models import Product, SavedProduct, User, get_db
from agriconnect.schemas.products import ProductResponse

router = APIRouter()


class SavedProductToggleRequest(BaseModel):
    product_id: int


class SavedProductToggleResponse(BaseModel):
    saved: bool
    product_id: int


@router.post(
    "/toggle",
    response_model=SavedProductToggleResponse,
    summary="Save or unsave a product",
)
def toggle_saved_product(
    body: SavedProductToggleRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    if not db.query(Product.id).filter(Product.id == body.product_id).first():
        raise not_found("Product not found")

    existing = (
        db.query(SavedProduct)
        .filter(SavedProduct.user_id == current_user.id, SavedProduct.product_id == body.product_id)
        .first()
    )
    if existing:
        db.delete(existing)
        saved = False
    else:
        db.add(SavedProduct(user_id=current_user.id, product_id=body.product_id))
        saved = True
    db.commit()
    return SavedProductToggleResponse(saved=saved, product_id=body.product_id)


@router.get(
    "",
    response_model=list[ProductResponse],
    summary="My saved products, newest first",
)
def list_saved_products(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    saved = (
        db.query(SavedProduct)
        .options(joinedload(SavedProduct.product))
        .filter(SavedProduct.user_id == current_user.id)
        .order_by(SavedProduct.created_at.desc(), SavedProduct.id.desc())
        .all()
    )
    return [entry.product for entry in saved]
