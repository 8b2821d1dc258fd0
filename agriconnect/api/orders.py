import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session, joinedload

from agriconnect.config import settings
from agriconnect.dependencies import get_current_user, get_seller_user
from agriconnect.errors import ApiError, bad_request, forbidden, internal_error, not_found
from agriconnect.models import Cart, CartItem, FarmerProfile, Order, OrderItem, Product, Profile, User, get_db
from agriconnect.models.enums import NotificationType, OrderStatus, PaymentStatus, ProductStatus, UserRole
from agriconnect.schemas.common import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, paginate
from agriconnect.schemas.orders import (
    OrderCancelRequest,
    OrderCreateRequest,
    OrderCreateResponse,
    OrderItemResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdateRequest,
    PaymentInitiateResponse,
)
from agriconnect.services import payment_gateway, sms_gateway
from agriconnect.services.auth_tokens import as_utc, db_datetime
from agriconnect.services.notifications import notify, sms_quietly
from agriconnect.services.order_lifecycle import (
    CANCELLABLE_ORDER_STATUSES,
    PAYMENT_LOCKED_STATUSES,
    can_transition_order,
    can_transition_payment,
)

router = APIRouter()
logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "created_at": Order.created_at,
    "updated_at": Order.updated_at,
    "total_amount": Order.total_amount,
    "status": Order.status,
}


def order_to_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        seller_id=order.seller_id,
        farmer_id=order.farmer_id,
        status=order.status,
        payment_status=order.payment_status,
        total_amount=order.total_amount,
        delivery_fee=order.delivery_fee,
        delivery_address=order.delivery_address,
        notes=order.notes,
        payment_ref_id=order.payment_ref_id,
        order_date=order.order_date,
        created_at=order.created_at,
        updated_at=order.updated_at,
        items=[
            OrderItemResponse(
                id=item.id,
                product_id=item.product_id,
                quantity=item.quantity,
                price_at_order=item.price_at_order,
                product_name=item.product.name if item.product else None,
            )
            for item in order.items
        ],
    )


def _load_order(db: Session, order_id: int) -> Order:
    order = (
        db.query(Order)
        .options(joinedload(Order.items).joinedload(OrderItem.product))
        .filter(Order.id == order_id)
        .first()
    )
    if not order:
        raise not_found("Order not found")
    return order


def _restore_stock(db: Session, order: Order) -> None:
    for item in order.items:
        product = item.product
        product.quantity_available += item.quantity
        if product.status == ProductStatus.SOLD_OUT.value and product.quantity_available > 0:
            product.status = ProductStatus.ACTIVE.value


def _cancel(db: Session, order: Order, actor: User, reason: str | None) -> None:
    """Cancel the order, put its stock back and notify the other party."""
    _restore_stock(db, order)
    order.status = OrderStatus.CANCELLED.value
    other_party_id = order.farmer_id if actor.id == order.seller_id else order.seller_id
    content = f"Order #{order.id} has been cancelled"
    if reason:
        content = f"{content}: {reason}"
    notify(db, other_party_id, NotificationType.ORDER_UPDATED, content, related_entity_id=order.id)
    db.commit()
    logger.info("Order %s cancelled by user %s", order.id, actor.id)

    other_party = db.query(User).filter(User.id == other_party_id).first()
    sms_quietly(other_party, sms_gateway.send_order_notification, order.id, OrderStatus.CANCELLED.value)


@router.post(
    "",
    response_model=OrderCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place orders for a list of products",
)
def create_order(
    body: OrderCreateRequest,
    current_user: Annotated[User, Depends(get_seller_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """
    Validate every item, then create one PENDING order per farmer in a single
    transaction. Prices are snapshotted into the order items, stock is
    reserved and the ordered products leave the buyer's cart.
    """
    requested = {item.product_id: item.quantity for item in body.items}
    rows = (
        db.query(Product, Profile.user_id)
        .join(FarmerProfile, Product.farmer_id == FarmerProfile.id)
        .join(Profile, FarmerProfile.profile_id == Profile.id)
        .filter(Product.id.in_(list(requested)))
        .all()
    )
    found = {product.id: (product, farmer_user_id) for product, farmer_user_id in rows}

    by_farmer: dict[int, list[tuple[Product, int]]] = defaultdict(list)
    for product_id, quantity in requested.items():
        if product_id not in found:
            raise not_found(f"Product {product_id} not found")
        product, farmer_user_id = found[product_id]
        if product.status != ProductStatus.ACTIVE.value:
            raise bad_request(f"Product {product.name} is not available")
        if quantity < product.minimum_order_quantity:
            raise bad_request(
                f"Minimum order quantity for {product.name} is {product.minimum_order_quantity} {product.unit}"
            )
        if quantity > product.quantity_available:
            raise bad_request(f"Only {product.quantity_available} {product.unit} of {product.name} available")
        by_farmer[farmer_user_id].append((product, quantity))

    delivery_fee = Decimal(settings.DEFAULT_DELIVERY_FEE)
    orders: list[Order] = []
    try:
        for farmer_user_id, lines in by_farmer.items():
            order = Order(
                seller_id=current_user.id,
                farmer_id=farmer_user_id,
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                total_amount=sum((Decimal(p.unit_price) * q for p, q in lines), Decimal("0")),
                delivery_fee=delivery_fee,
                delivery_address=body.delivery_address,
                notes=body.notes,
            )
            for product, quantity in lines:
                reserved = (
                    db.query(Product)
                    .filter(Product.id == product.id, Product.quantity_available >= quantity)
                    .update(
                        {Product.quantity_available: Product.quantity_available - quantity},
                        synchronize_session=False,
                    )
                )
                if reserved != 1:
                    raise bad_request(f"Insufficient stock for {product.name}")
                order.items.append(
                    OrderItem(product_id=product.id, quantity=quantity, price_at_order=product.unit_price)
                )
            db.add(order)
            orders.append(order)

        db.query(Product).filter(
            Product.id.in_(list(requested)),
            Product.quantity_available <= 0,
        ).update({Product.status: ProductStatus.SOLD_OUT.value}, synchronize_session=False)

        db.flush()
        for order in orders:
            notify(
                db,
                order.farmer_id,
                NotificationType.ORDER_CREATED,
                f"New order #{order.id} received for RWF {order.total_amount}",
                related_entity_id=order.id,
            )

        cart = db.query(Cart).filter(Cart.user_id == current_user.id).first()
        if cart:
            db.query(CartItem).filter(
                CartItem.cart_id == cart.id,
                CartItem.product_id.in_(list(requested)),
            ).delete(synchronize_session=False)
        db.commit()
    except ApiError:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        logger.exception("Failed to create orders for buyer %s", current_user.id)
        raise internal_error("Failed to create order")

    farmers = {user.id: user for user in db.query(User).filter(User.id.in_(list(by_farmer))).all()}
    for order in orders:
        logger.info("Order %s created by buyer %s for farmer %s", order.id, current_user.id, order.farmer_id)
        sms_quietly(
            farmers.get(order.farmer_id),
            sms_gateway.send_sms,
            f"AgriConnect: New order #{order.id} received. Total RWF {order.total_amount}.",
        )

    return OrderCreateResponse(orders=[order_to_response(_load_order(db, order.id)) for order in orders])


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List my orders",
)
def list_orders(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
    order_status: Annotated[OrderStatus | None, Query(alias="status")] = None,
    payment_status: PaymentStatus | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    sort_by: Literal["created_at", "updated_at", "total_amount", "status"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
):
    """Buyers see the orders they placed, farmers the orders they received."""
    if current_user.role == UserRole.FARMER.value:
        query = db.query(Order).filter(Order.farmer_id == current_user.id)
    elif current_user.role == UserRole.SELLER.value:
        query = db.query(Order).filter(Order.seller_id == current_user.id)
    else:
        raise forbidden("Only farmers and sellers have orders")

    if order_status is not None:
        query = query.filter(Order.status == order_status.value)
    if payment_status is not None:
        query = query.filter(Order.payment_status == payment_status.value)
    if date_from is not None:
        query = query.filter(Order.created_at >= db_datetime(db, as_utc(date_from)))
    if date_to is not None:
        query = query.filter(Order.created_at <= db_datetime(db, as_utc(date_to)))

    sort_column = SORT_FIELDS[sort_by]
    query = query.options(joinedload(Order.items).joinedload(OrderItem.product)).order_by(
        sort_column.asc() if sort_order == "asc" else sort_column.desc(),
        Order.id.desc(),
    )
    items, pagination = paginate(query, page, limit)
    return OrderListResponse(items=[order_to_response(order) for order in items], pagination=pagination)


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get an order",
)
def get_order(
    order_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    order = _load_order(db, order_id)
    if current_user.role != UserRole.ADMIN.value and current_user.id not in {order.seller_id, order.farmer_id}:
        raise forbidden("You do not have access to this order")
    return order_to_response(order)


@router.patch(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Move my received order to its next status",
)
def update_order_status(
    order_id: int,
    body: OrderStatusUpdateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    order = _load_order(db, order_id)
    if order.farmer_id != current_user.id:
        raise forbidden("Only the farmer of this order can update its status")
    if not can_transition_order(order.status, body.status.value):
        raise bad_request(f"Cannot change order status from {order.status} to {body.status.value}")

    if body.status == OrderStatus.CANCELLED:
        _cancel(db, order, current_user, reason=None)
        return order_to_response(_load_order(db, order_id))

    order.status = body.status.value
    notify(
        db,
        order.seller_id,
        NotificationType.ORDER_UPDATED,
        f"Order #{order.id} status has been updated to {order.status}",
        related_entity_id=order.id,
    )
    db.commit()
    logger.info("Order %s moved to %s by farmer %s", order.id, body.status.value, current_user.id)

    buyer = db.query(User).filter(User.id == order.seller_id).first()
    sms_quietly(buyer, sms_gateway.send_order_notification, order.id, body.status.value)
    return order_to_response(_load_order(db, order_id))


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel an order that has not started",
)
def cancel_order(
    order_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    body: OrderCancelRequest | None = None,
):
    order = _load_order(db, order_id)
    if current_user.id not in {order.seller_id, order.farmer_id}:
        raise forbidden("You do not have access to this order")
    if order.status not in {s.value for s in CANCELLABLE_ORDER_STATUSES}:
        raise bad_request(f"Order in status {order.status} can no longer be cancelled")

    _cancel(db, order, current_user, reason=body.reason if body else None)
    return order_to_response(_load_order(db, order_id))


@router.post(
    "/{order_id}/pay",
    response_model=PaymentInitiateResponse,
    summary="Start payment for my order",
)
def initiate_payment(
    order_id: int,
    current_user: Annotated[User, Depends(get_seller_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Ask the gateway for a payment page; a FAILED payment may be retried."""
    order = _load_order(db, order_id)
    if order.seller_id != current_user.id:
        raise forbidden("You can only pay for your own orders")
    if order.status == OrderStatus.CANCELLED.value:
        raise bad_request("Cannot pay for a cancelled order")
    if order.payment_status in {s.value for s in PAYMENT_LOCKED_STATUSES}:
        raise bad_request(f"Order payment is already {order.payment_status}")

    amount = Decimal(order.total_amount) + Decimal(order.delivery_fee)
    try:
        result = payment_gateway.initiate_payment(
            order_id=order.id,
            amount=amount,
            customer_email=current_user.email,
            customer_phone=current_user.phone_number,
            description=f"AgriConnect order #{order.id}",
            callback_url=f"{settings.BASE_URL.rstrip('/')}/api/webhooks/payment",
        )
    except ValueError as e:
        raise ApiError("SERVICE_UNAVAILABLE", str(e))
    if not result.success:
        raise internal_error("Failed to initiate payment")

    if order.payment_status == PaymentStatus.FAILED.value and can_transition_payment(
        order.payment_status, PaymentStatus.PENDING.value
    ):
        order.payment_status = PaymentStatus.PENDING.value
    order.payment_ref_id = result.transaction_id
    db.commit()
    logger.info("Payment initiated for order %s (ref=%s)", order.id, result.transaction_id)

    return PaymentInitiateResponse(
        order_id=order.id,
        payment_url=result.payment_url,
        transaction_id=result.transaction_id,
        amount=amount,
        currency=settings.PAYMENT_CURRENCY,
    )
