from agriconnect.schemas.common import MessageResponse, Pagination, SuccessResponse
from agriconnect.schemas.orders import OrderCreateRequest, OrderCreateResponse, OrderListResponse, OrderResponse
from agriconnect.schemas.products import ProductDetailResponse, ProductListResponse, ProductResponse

__all__ = [
    "MessageResponse",
    "Pagination",
    "SuccessResponse",
    "OrderCreateRequest",
    "OrderCreateResponse",
    "OrderListResponse",
    "OrderResponse",
    "ProductDetailResponse",
    "ProductListResponse",
    "ProductResponse",
]
