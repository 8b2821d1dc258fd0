from datetime import datetime
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from agriconnect.dependencies import get_current_user
from agriconnect.errors import not_found
from agriconnect.models import Cart, CartItem, Order, Product, Review, SavedProduct, User, get_db
from agriconnect.models.enums import OrderStatus, PaymentStatus, ProductStatus, ReviewEntityType, UserRole
from agriconnect.services.auth_tokens import db_datetime, utcnow

router = APIRouter()

ACTIVE_ORDER_STATUSES = (
    OrderStatus.PENDING.value,
    OrderStatus.CONFIRMED.value,
    OrderStatus.IN_PROGRESS.value,
    OrderStatus.READY_FOR_DELIVERY.value,
)


def _month_starts(now: datetime) -> tuple[datetime, datetime]:
    start_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start_of_month.month == 1:
        start_of_last_month = start_of_month.replace(year=start_of_month.year - 1, month=12)
    else:
        start_of_last_month = start_of_month.replace(month=start_of_month.month - 1)
    return start_of_month, start_of_last_month


def _money(value) -> str:
    return str(Decimal(str(value or 0)).quantize(Decimal("0.01")))


def _farmer_stats(db: Session, user: User, start_of_month: datetime) -> dict:
    farmer_profile = user.profile.farmer_profile if user.profile else None
    if farmer_profile is None:
        raise not_found("Farmer profile not found")

    active_products = (
        db.query(func.count(Product.id))
        .filter(Product.farmer_id == farmer_profile.id, Product.status == ProductStatus.ACTIVE.value)
        .scalar()
    )
    pending_orders = (
        db.query(func.count(Order.id))
        .filter(Order.farmer_id == user.id, Order.status == OrderStatus.PENDING.value)
        .scalar()
    )
    monthly_sales = (
        db.query(func.sum(Order.total_amount))
        .filter(
            Order.farmer_id == user.id,
            Order.status == OrderStatus.DELIVERED.value,
            Order.order_date >= start_of_month,
        )
        .scalar()
    )
    average, review_count = (
        db.query(func.avg(Review.rating), func.count(Review.id))
        .filter(
            Review.reviewed_entity_id == user.id,
            Review.reviewed_entity_type == ReviewEntityType.FARMER.value,
            Review.is_approved.is_(True),
        )
        .one()
    )
    return {
        "active_products_count": active_products,
        "pending_orders_count": pending_orders,
        "monthly_sales": _money(monthly_sales),
        "average_rating": round(float(average), 2) if average is not None else 0,
        "review_count": review_count,
    }


def _seller_stats(db: Session, user: User, start_of_month: datetime) -> dict:
    cart_items = (
        db.query(func.count(CartItem.id))
        .join(Cart, CartItem.cart_id == Cart.id)
        .filter(Cart.user_id == user.id)
        .scalar()
    )
    active_orders = (
        db.query(func.count(Order.id))
        .filter(Order.seller_id == user.id, Order.status.in_(ACTIVE_ORDER_STATUSES))
        .scalar()
    )
    monthly_spent = (
        db.query(func.sum(Order.total_amount))
        .filter(
            Order.seller_id == user.id,
            Order.status == OrderStatus.DELIVERED.value,
            Order.order_date >= start_of_month,
        )
        .scalar()
    )
    saved_products = db.query(func.count(SavedProduct.id)).filter(SavedProduct.user_id == user.id).scalar()
    return {
        "cart_items_count": cart_items,
        "active_orders_count": active_orders,
        "monthly_spent": _money(monthly_spent),
        "saved_products_count": saved_products,
    }


def _admin_stats(db: Session, start_of_month: datetime, start_of_last_month: datetime) -> dict:
    total_users = db.query(func.count(User.id)).scalar()
    active_products = (
        db.query(func.count(Product.id)).filter(Product.status == ProductStatus.ACTIVE.value).scalar()
    )
    monthly_revenue = (
        db.query(func.sum(Order.total_amount))
        .filter(
            Order.status == OrderStatus.DELIVERED.value,
            Order.payment_status.in_((PaymentStatus.PAID.value, PaymentStatus.RELEASED.value)),
            Order.order_date >= start_of_month,
        )
        .scalar()
    )
    users_this_month = db.query(func.count(User.id)).filter(User.created_at >= start_of_month).scalar()
    users_last_month = (
        db.query(func.count(User.id))
        .filter(User.created_at >= start_of_last_month, User.created_at < start_of_month)
        .scalar()
    )
    if users_last_month:
        growth = (users_this_month - users_last_month) / users_last_month * 100
    else:
        growth = 100.0 if users_this_month else 0.0
    return {
        "total_users": total_users,
        "active_products": active_products,
        "monthly_revenue": _money(monthly_revenue),
        "user_growth_rate": round(growth, 2),
    }


@router.get(
    "/stats",
    summary="Dashboard statistics for the current user's role",
)
def dashboard_stats(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    start_of_month, start_of_last_month = _month_starts(utcnow())
    start_of_month = db_datetime(db, start_of_month)
    start_of_last_month = db_datetime(db, start_of_last_month)

    if current_user.role == UserRole.FARMER.value:
        stats = _farmer_stats(db, current_user, start_of_month)
    elif current_user.role == UserRole.SELLER.value:
        stats = _seller_stats(db, current_user, start_of_month)
    else:
        stats = _admin_stats(db, start_of_month, start_of_last_month)
    return {"role": current_user.role, "stats": stats}
