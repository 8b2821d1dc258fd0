from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from agriconnect.models.enums import ProductStatus
from agriconnect.schemas.common import Pagination


class ProductCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    category_id: int
    unit_price: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    unit: str = Field(default="kg", min_length=1, max_length=32)
    quantity_available: int = Field(ge=0)
    minimum_order_quantity: int = Field(default=1, ge=1)
    image_urls: list[str] = Field(default_factory=list, max_length=10)
    status: ProductStatus = ProductStatus.ACTIVE

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "Irish potatoes",
                    "category_id": 1,
                    "unit_price": "450.00",
                    "unit": "kg",
                    "quantity_available": 500,
                    "minimum_order_quantity": 10,
                }
            ]
        }
    }


class ProductUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    category_id: int | None = None
    unit_price: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    unit: str | None = Field(default=None, min_length=1, max_length=32)
    quantity_available: int | None = Field(default=None, ge=0)
    minimum_order_quantity: int | None = Field(default=None, ge=1)
    image_urls: list[str] | None = Field(default=None, max_length=10)


class ProductStatusUpdateRequest(BaseModel):
    status: ProductStatus


class CategorySummary(BaseModel):
    id: int
    name: str

    model_config = {"from_attributes": True}


class FarmerSummary(BaseModel):
    id: int
    farm_name: str
    farm_location_details: str

    model_config = {"from_attributes": True}


class ProductResponse(BaseModel):
    id: int
    farmer_id: int
    category_id: int
    name: str
    description: str | None = None
    unit_price: Decimal
    unit: str
    quantity_available: int
    minimum_order_quantity: int
    image_urls: list[str]
    status: ProductStatus
    created_at: datetime | None = None
    updated_at: datetime | None = None
    category: CategorySummary | None = None
    farmer: FarmerSummary | None = None

    model_config = {"from_attributes": True}


class ProductReview(BaseModel):
    id: int
    reviewer_id: int
    rating: int
    comment: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ProductDetailResponse(ProductResponse):
    reviews: list[ProductReview] = Field(default_factory=list)
    average_rating: float | None = None
    review_count: int = 0


class ProductListResponse(BaseModel):
    items: list[ProductResponse]
    pagination: Pagination
