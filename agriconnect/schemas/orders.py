from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from agriconnect.models.enums import OrderStatus, PaymentStatus
from agriconnect.schemas.common import Pagination


class OrderItemRequest(BaseModel):
    product_id: int
    quantity: int = Field(ge=1)


class OrderCreateRequest(BaseModel):
    items: list[OrderItemRequest] = Field(min_length=1)
    delivery_address: str = Field(min_length=5, max_length=500)
    notes: str | None = Field(default=None, max_length=1000)

    @field_validator("items")
    @classmethod
    def validate_unique_products(cls, v: list[OrderItemRequest]) -> list[OrderItemRequest]:
        product_ids = [item.product_id for item in v]
        if len(product_ids) != len(set(product_ids)):
            raise ValueError("Each product may appear only once per order")
        return v

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [{"product_id": 1, "quantity": 20}],
                    "delivery_address": "KG 11 Ave, Kigali",
                    "notes": "Deliver before noon",
                }
            ]
        }
    }


class OrderStatusUpdateRequest(BaseModel):
    status: OrderStatus


class OrderCancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    quantity: int
    price_at_order: Decimal
    product_name: str | None = None


class OrderResponse(BaseModel):
    id: int
    seller_id: int
    farmer_id: int
    status: OrderStatus
    payment_status: PaymentStatus
    total_amount: Decimal
    delivery_fee: Decimal
    delivery_address: str
    notes: str | None = None
    payment_ref_id: str | None = None
    order_date: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    items: list[OrderItemResponse] = Field(default_factory=list)


class OrderListResponse(BaseModel):
    items: list[OrderResponse]
    pagination: Pagination


class OrderCreateResponse(BaseModel):
    orders: list[OrderResponse]


class PaymentInitiateResponse(BaseModel):
    order_id: int
    payment_url: str | None = None
    transaction_id: str | None = None
    amount: Decimal
    currency: str
