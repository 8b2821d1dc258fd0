"""Allowed order and payment status transitions."""
from agriconnect.models.enums import OrderStatus, PaymentStatus

ORDER_STATUS_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED}),
    OrderStatus.IN_PROGRESS: frozenset({OrderStatus.READY_FOR_DELIVERY, OrderStatus.CANCELLED}),
    OrderStatus.READY_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DISPUTED: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

PAYMENT_STATUS_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.ESCROWED, PaymentStatus.REFUNDED}),
    PaymentStatus.ESCROWED: frozenset({PaymentStatus.RELEASED, PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING}),
    PaymentStatus.RELEASED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}

CANCELLABLE_ORDER_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})

# Payment states in which a new payment may not be started.
PAYMENT_LOCKED_STATUSES = frozenset(
    {PaymentStatus.PAID, PaymentStatus.ESCROWED, PaymentStatus.RELEASED, PaymentStatus.REFUNDED}
)


def can_transition_order(current: str, target: str) -> bool:
    try:
        return OrderStatus(target) in ORDER_STATUS_TRANSITIONS[OrderStatus(current)]
    except ValueError:
        return False


def can_transition_payment(current: str, target: str) -> bool:
    try:
        return PaymentStatus(target) in PAYMENT_STATUS_TRANSITIONS[PaymentStatus(current)]
    except ValueError:
        return False


def is_terminal_order_status(value: str) -> bool:
    return not ORDER_STATUS_TRANSITIONS[OrderStatus(value)]


def is_terminal_payment_status(value: str) -> bool:
    return not PAYMENT_STATUS_TRANSITIONS[PaymentStatus(value)]
