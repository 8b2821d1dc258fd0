import json
import logging
from decimal import Decimal, InvalidOperation

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from agriconnect.models import Order, User, get_db
from agriconnect.models.enums import NotificationType, OrderStatus, PaymentStatus
from agriconnect.services import sms_gateway
from agriconnect.services.notifications import notify, sms_quietly
from agriconnect.services.order_lifecycle import can_transition_order, can_transition_payment
from agriconnect.services.payment_gateway import verify_webhook_signature

router = APIRouter()
logger = logging.getLogger(__name__)

GATEWAY_STATUS_MAP = {
    "success": PaymentStatus.PAID,
    "escrowed": PaymentStatus.ESCROWED,
    "refunded": PaymentStatus.REFUNDED,
}


def map_gateway_status(status_value: str) -> PaymentStatus:
    """Map the gateway's status string to a payment status; unknown values mean failure."""
    return GATEWAY_STATUS_MAP.get(status_value.strip().lower(), PaymentStatus.FAILED)


def apply_payment_update(
    db: Session,
    order_id: int,
    gateway_status: str,
    transaction_id: str | None,
    amount: Decimal | None,
) -> bool:
    """Apply a verified gateway callback to the order. Returns True when state changed."""
    order = db.query(Order).filter(Order.id == order_id).with_for_update().first()
    if not order:
        logger.warning("Payment webhook for unknown order %s", order_id)
        return False

    target = map_gateway_status(gateway_status)
    if order.payment_status == target.value:
        logger.info("Order %s payment already %s, skipping", order_id, target.value)
        return False
    if not can_transition_payment(order.payment_status, target.value):
        logger.warning(
            "Ignoring payment webhook for order %s: %s -> %s is not allowed",
            order_id,
            order.payment_status,
            target.value,
        )
        return False

    expected = Decimal(order.total_amount) + Decimal(order.delivery_fee)
    if target == PaymentStatus.PAID and amount is not None and amount != expected:
        logger.warning(
            "Payment amount mismatch for order %s: expected=%s, received=%s",
            order_id,
            expected,
            amount,
        )
        return False

    order.payment_status = target.value
    if transaction_id:
        order.payment_ref_id = transaction_id

    paid_order_active = False
    if target == PaymentStatus.PAID:
        if order.status == OrderStatus.CANCELLED.value:
            logger.warning("Order %s was paid after cancellation, refund required", order_id)
            notify(
                db,
                order.seller_id,
                NotificationType.PAYMENT_RECEIVED,
                f"Payment of RWF {expected} was received for cancelled order #{order.id} and will be refunded",
                related_entity_id=order.id,
            )
        else:
            paid_order_active = True
            confirmed = can_transition_order(order.status, OrderStatus.CONFIRMED.value)
            if confirmed:
                order.status = OrderStatus.CONFIRMED.value
            notify(
                db,
                order.seller_id,
                NotificationType.PAYMENT_RECEIVED,
                f"Payment of RWF {expected} received for order #{order.id}",
                related_entity_id=order.id,
            )
            notify(
                db,
                order.farmer_id,
                NotificationType.ORDER_UPDATED,
                f"Order #{order.id} has been paid and confirmed" if confirmed else f"Order #{order.id} has been paid",
                related_entity_id=order.id,
            )
    db.commit()
    logger.info("Order %s payment status set to %s", order_id, target.value)

    if paid_order_active:
        buyer = db.query(User).filter(User.id == order.seller_id).first()
        sms_quietly(buyer, sms_gateway.send_payment_confirmation, expected, order.id)
    return True


@router.post(
    "/payment",
    summary="Payment gateway status callback",
)
async def payment_webhook(
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Signed callback from the payment gateway. The ``x-payment-signature``
    header carries the hex HMAC-SHA256 of the raw body. Rejected updates
    are logged and still acknowledged so the gateway stops retrying.
    """
    raw_body = await request.body()
    signature = request.headers.get("x-payment-signature")
    if not signature:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing signature")
    if not verify_webhook_signature(raw_body, signature):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        body = json.loads(raw_body)
    except Exception as e:
        logger.error("Invalid JSON in payment webhook: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")
    if not isinstance(body, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")

    try:
        order_id = int(body.get("orderId"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="orderId must be integer")
    if order_id <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="orderId must be positive")

    gateway_status = body.get("status")
    if not isinstance(gateway_status, str) or not gateway_status.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="status required")

    transaction_id = body.get("transactionId")
    if transaction_id is not None:
        transaction_id = str(transaction_id)

    amount = None
    if body.get("amount") is not None:
        try:
            amount = Decimal(str(body.get("amount")))
        except InvalidOperation:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="amount must be a number")
        if not amount.is_finite() or amount <= 0:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="amount must be positive")

    try:
        apply_payment_update(db, order_id, gateway_status, transaction_id, amount)
    except Exception:
        db.rollback()
        logger.exception("Failed to process payment webhook for order %s", order_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")

    return {"success": True}
