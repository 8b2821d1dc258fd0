from decimal import Decimal

from pydantic import BaseModel, Field

from agriconnect.schemas.products import ProductResponse


class CartItemAddRequest(BaseModel):
    product_id: int
    quantity: int = Field(ge=1)


class CartItemUpdateRequest(BaseModel):
    quantity: int = Field(ge=1)


class CartItemResponse(BaseModel):
    id: int
    product_id: int
    quantity: int
    line_total: Decimal
    product: ProductResponse


class CartResponse(BaseModel):
    id: int
    items: list[CartItemResponse]
    total_items: int
    subtotal: Decimal
