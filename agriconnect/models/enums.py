from enum import Enum


class UserRole(str, Enum):
    FARMER = "FARMER"
    SELLER = "SELLER"
    ADMIN = "ADMIN"


class FarmCapacity(str, Enum):
    SMALL = "SMALL"
    MEDIUM = "MEDIUM"
    LARGE = "LARGE"


class ProductStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SOLD_OUT = "SOLD_OUT"
    INACTIVE = "INACTIVE"
    DRAFT = "DRAFT"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    READY_FOR_DELIVERY = "READY_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    DISPUTED = "DISPUTED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    ESCROWED = "ESCROWED"
    RELEASED = "RELEASED"


class NotificationType(str, Enum):
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_UPDATED = "ORDER_UPDATED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    MESSAGE_RECEIVED = "MESSAGE_RECEIVED"
    REVIEW_RECEIVED = "REVIEW_RECEIVED"
    SYSTEM_ANNOUNCEMENT = "SYSTEM_ANNOUNCEMENT"


class ReviewEntityType(str, Enum):
    PRODUCT = "PRODUCT"
    FARMER = "FARMER"


class OneTimeTokenPurpose(str, Enum):
    PHONE_VERIFY = "phone_verify"
    PASSWORD_RESET = "password_reset"
