"""Client for the regional payment gateway (initiate, verify, escrow release)."""
import hashlib
import hmac
import logging
from dataclasses import dataclass
from decimal import Decimal

import requests

from agriconnect.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentResult:
    success: bool
    payment_url: str | None = None
    transaction_id: str | None = None
    error: str | None = None


def _require_configured() -> None:
    if not settings.PAYMENT_GATEWAY_URL or not settings.PAYMENT_GATEWAY_API_KEY:
        raise ValueError("Payment gateway is not configured (PAYMENT_GATEWAY_URL and PAYMENT_GATEWAY_API_KEY).")


def _headers(idempotency_key: str | None = None) -> dict[str, str]:
    headers = {"Authorization": f"Bearer {settings.PAYMENT_GATEWAY_API_KEY}"}
    if idempotency_key:
        headers["Idempotency-Key"] = idempotency_key
    return headers


def _url(path: str) -> str:
    return f"{settings.PAYMENT_GATEWAY_URL.rstrip('/')}/{path.lstrip('/')}"


def initiate_payment(
    order_id: int,
    amount: Decimal,
    customer_email: str,
    customer_phone: str | None,
    description: str,
    callback_url: str,
    currency: str | None = None,
) -> PaymentResult:
    """Start a payment; raises ValueError when the gateway is not configured."""
    _require_configured()
    payload = {
        "reference": str(order_id),
        "amount": str(amount),
        "currency": currency or settings.PAYMENT_CURRENCY,
        "customer": {"email": customer_email, "phone": customer_phone},
        "description": description,
        "callback_url": callback_url,
        "return_url": f"{settings.FRONTEND_URL.rstrip('/')}/orders/{order_id}",
    }
    try:
        response = requests.post(
            _url("/payments/initialize"),
            json=payload,
            headers=_headers(),
            timeout=settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as exc:
        logger.error("Payment initiation failed for order %s: %s", order_id, exc)
        return PaymentResult(success=False, error=str(exc))

    return PaymentResult(
        success=True,
        payment_url=data.get("authorization_url"),
        transaction_id=data.get("reference"),
    )


def verify_payment(transaction_id: str) -> PaymentResult:
    _require_configured()
    try:
        response = requests.get(
            _url(f"/payments/verify/{transaction_id}"),
            headers=_headers(),
            timeout=settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as exc:
        logger.error("Payment verification failed for transaction %s: %s", transaction_id, exc)
        return PaymentResult(success=False, error=str(exc))

    return PaymentResult(success=data.get("status") == "success", transaction_id=data.get("reference"))


def release_escrow(transaction_id: str, idempotency_key: str | None = None) -> PaymentResult:
    """Ask the gateway to pay escrowed funds out to the farmer."""
    _require_configured()
    try:
        response = requests.post(
            _url("/payments/release-escrow"),
            json={"transaction_id": transaction_id},
            headers=_headers(idempotency_key),
            timeout=settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as exc:
        logger.error("Escrow release failed for transaction %s: %s", transaction_id, exc)
        return PaymentResult(success=False, error=str(exc))

    if data.get("status") != "success":
        return PaymentResult(
            success=False,
            transaction_id=data.get("reference"),
            error=data.get("message") or "Escrow release was not accepted by the gateway",
        )
    return PaymentResult(success=True, transaction_id=data.get("reference"))


def verify_webhook_signature(raw_body: bytes, signature: str | None) -> bool:
    """Constant-time HMAC-SHA256 check of the raw webhook body; False when no secret is set."""
    secret = settings.PAYMENT_WEBHOOK_SECRET
    if not secret:
        logger.error("PAYMENT_WEBHOOK_SECRET is not set, rejecting webhook")
        return False
    if not signature:
        return False

    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature.strip().lower(), expected)
