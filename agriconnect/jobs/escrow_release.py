"""Automatic release of escrowed payments for delivered orders.

Run from cron with ``python -m agriconnect.jobs.escrow_release``. An order
is released once it is DELIVERED, its payment is ESCROWED and it has not
changed for ``auto_release_delay_days``. Each order is claimed with a
conditional update before the gateway call, so overlapping runs never
release the same order twice.
"""
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from agriconnect.config import settings
from agriconnect.models import Order
from agriconnect.models.enums import NotificationType, OrderStatus, PaymentStatus
from agriconnect.services import payment_gateway, sms_gateway
from agriconnect.services.auth_tokens import db_datetime, utcnow
from agriconnect.services.notifications import notify, sms_quietly

logger = logging.getLogger(__name__)


class EscrowReleaseError(Exception):
    """Release of a single order could not be completed."""


class EscrowClaimLostError(EscrowReleaseError):
    """Another worker already claimed the order for release."""


class EscrowGatewayError(EscrowReleaseError):
    """The payment gateway refused the release."""


@dataclass(frozen=True)
class EscrowReleaseConfig:
    auto_release_delay_days: int = 7
    batch_size: int = 50
    claim_timeout_minutes: int = 30

    @classmethod
    def from_settings(cls) -> "EscrowReleaseConfig":
        return cls(
            auto_release_delay_days=settings.ESCROW_AUTO_RELEASE_DELAY_DAYS,
            batch_size=settings.ESCROW_BATCH_SIZE,
            claim_timeout_minutes=settings.ESCROW_CLAIM_TIMEOUT_MINUTES,
        )


@dataclass
class EscrowReleaseResult:
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def release_cutoff(config: EscrowReleaseConfig, now: datetime | None = None) -> datetime:
    return (now or utcnow()) - timedelta(days=config.auto_release_delay_days)


def find_eligible_orders(db: Session, config: EscrowReleaseConfig, now: datetime | None = None) -> list[Order]:
    cutoff = db_datetime(db, release_cutoff(config, now))
    return (
        db.query(Order)
        .options(joinedload(Order.farmer), joinedload(Order.seller))
        .filter(
            Order.status == OrderStatus.DELIVERED.value,
            Order.payment_status == PaymentStatus.ESCROWED.value,
            Order.updated_at <= cutoff,
        )
        .order_by(Order.updated_at.asc(), Order.id.asc())
        .limit(config.batch_size)
        .all()
    )


def _claim(db: Session, order_id: int, claim_timeout_minutes: int) -> bool:
    # updated_at is written back unchanged so a claim never moves the release cutoff.
    now = utcnow()
    stale_before = db_datetime(db, now - timedelta(minutes=claim_timeout_minutes))
    updated = (
        db.query(Order)
        .filter(
            Order.id == order_id,
            Order.status == OrderStatus.DELIVERED.value,
            Order.payment_status == PaymentStatus.ESCROWED.value,
            or_(
                Order.escrow_release_claimed_at.is_(None),
                Order.escrow_release_claimed_at <= stale_before,
            ),
        )
        .update(
            {
                Order.escrow_release_claimed_at: db_datetime(db, now),
                Order.updated_at: Order.updated_at,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    return updated == 1


def _release_claim(db: Session, order_id: int) -> None:
    db.query(Order).filter(
        Order.id == order_id,
        Order.payment_status == PaymentStatus.ESCROWED.value,
    ).update(
        {
            Order.escrow_release_claimed_at: None,
            Order.updated_at: Order.updated_at,
        },
        synchronize_session=False,
    )
    db.commit()


def release_order_escrow(db: Session, order: Order, config: EscrowReleaseConfig | None = None) -> None:
    """Release one order's escrow through the gateway and notify both parties.

    Raises EscrowClaimLostError when another worker holds the order, and
    EscrowGatewayError when the gateway refuses the release. Any failure
    after the claim rolls back and clears it, so the order stays eligible;
    a repeated gateway call is safe because it reuses the idempotency key.
    """
    config = config or EscrowReleaseConfig.from_settings()
    order_id = order.id
    if not order.payment_ref_id:
        raise EscrowReleaseError("No payment reference ID found")

    if not _claim(db, order_id, config.claim_timeout_minutes):
        raise EscrowClaimLostError(f"Order {order_id} is already being released")

    try:
        result = payment_gateway.release_escrow(order.payment_ref_id, idempotency_key=f"escrow-release-{order_id}")
        if not result.success:
            raise EscrowGatewayError(result.error or "Failed to release escrow")

        db.refresh(order)
        order.payment_status = PaymentStatus.RELEASED.value
        notify(
            db,
            order.farmer_id,
            NotificationType.PAYMENT_RECEIVED,
            f"Payment of RWF {order.total_amount} has been released for order #{order_id}",
            related_entity_id=order_id,
        )
        notify(
            db,
            order.seller_id,
            NotificationType.ORDER_UPDATED,
            f"Payment for order #{order_id} has been released to the farmer",
            related_entity_id=order_id,
        )
        db.commit()
    except Exception:
        db.rollback()
        _release_claim(db, order_id)
        raise

    sms_quietly(order.farmer, sms_gateway.send_payment_confirmation, order.total_amount, order_id)
    sms_quietly(
        order.seller,
        sms_gateway.send_sms,
        f"AgriConnect: Payment for order #{order_id} has been released to the farmer.",
    )


def process_escrow_releases(
    db: Session,
    config: EscrowReleaseConfig | None = None,
    now: datetime | None = None,
) -> EscrowReleaseResult:
    """Release every eligible order in one batch; per-order failures are collected, not raised."""
    config = config or EscrowReleaseConfig.from_settings()
    logger.info("Starting escrow release job (delay=%s days, batch=%s)", config.auto_release_delay_days, config.batch_size)

    try:
        orders = find_eligible_orders(db, config, now)
    except Exception:
        logger.exception("Escrow release job failed while selecting orders")
        raise

    logger.info("Found %s orders eligible for escrow release", len(orders))
    result = EscrowReleaseResult()
    for order in orders:
        order_id = order.id
        try:
            release_order_escrow(db, order, config)
        except EscrowClaimLostError:
            result.skipped += 1
            logger.info("Skipping order %s, already claimed by another worker", order_id)
        except Exception as exc:
            db.rollback()
            result.failed += 1
            message = f"Failed to release escrow for order {order_id}: {exc}"
            result.errors.append(message)
            logger.error(message)
        else:
            result.successful += 1
            logger.info("Released escrow for order %s", order_id)

    logger.info(
        "Escrow release job completed. Success: %s, Failed: %s, Skipped: %s",
        result.successful,
        result.failed,
        result.skipped,
    )
    return result


def manual_escrow_release(db: Session, order_id: int, admin_user_id: int) -> dict:
    """Release one order immediately, ignoring the auto-release delay.

    Raises LookupError for an unknown order and EscrowReleaseError when the
    order is not a delivered order with escrowed payment. Gateway refusals
    surface as EscrowGatewayError.
    """
    order = (
        db.query(Order)
        .options(joinedload(Order.farmer), joinedload(Order.seller))
        .filter(Order.id == order_id)
        .first()
    )
    if not order:
        raise LookupError("Order not found")
    if order.payment_status != PaymentStatus.ESCROWED.value:
        raise EscrowReleaseError("Order payment is not in escrow")
    if order.status != OrderStatus.DELIVERED.value:
        raise EscrowReleaseError("Order has not been delivered")

    release_order_escrow(db, order)
    logger.info("Manual escrow release performed by admin %s for order %s", admin_user_id, order_id)
    return {"success": True, "message": "Escrow released successfully"}


def get_escrow_stats(db: Session, now: datetime | None = None) -> dict:
    config = EscrowReleaseConfig.from_settings()
    now = now or utcnow()
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

    total_escrowed = db.query(Order).filter(Order.payment_status == PaymentStatus.ESCROWED.value).count()
    eligible_for_release = (
        db.query(Order)
        .filter(
            Order.status == OrderStatus.DELIVERED.value,
            Order.payment_status == PaymentStatus.ESCROWED.value,
            Order.updated_at <= db_datetime(db, release_cutoff(config, now)),
        )
        .count()
    )
    released_today = (
        db.query(Order)
        .filter(
            Order.payment_status == PaymentStatus.RELEASED.value,
            Order.updated_at >= db_datetime(db, start_of_day),
        )
        .count()
    )
    total_escrowed_amount = (
        db.query(func.coalesce(func.sum(Order.total_amount), 0))
        .filter(Order.payment_status == PaymentStatus.ESCROWED.value)
        .scalar()
    )

    return {
        "total_escrowed": total_escrowed,
        "eligible_for_release": eligible_for_release,
        "released_today": released_today,
        "total_escrowed_amount": str(Decimal(str(total_escrowed_amount)).quantize(Decimal("0.01"))),
    }


def main() -> None:
    from agriconnect.models.database import SessionLocal

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    db = SessionLocal()
    try:
        result = process_escrow_releases(db)
    finally:
        db.close()
    logger.info("Escrow release summary: %s", result.to_dict())


if __name__ == "__main__":
    main()
