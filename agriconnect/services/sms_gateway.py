"""Client for the Rwandan SMS gateway.

Sending never raises: callers get an ``SmsResult`` and decide whether a
failure matters. Notification SMS are best effort everywhere in the app.
"""
import logging
import re
from dataclasses import dataclass

import requests

from agriconnect.config import settings

logger = logging.getLogger(__name__)

RWANDA_PHONE_PATTERN = re.compile(r"^(\+250|0)(7[0-9]{8})$")


@dataclass(frozen=True)
class SmsResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


def normalize_phone_number(phone_number: str) -> str:
    """Return the +250 form of a Rwandan mobile number (07XXXXXXXX or +2507XXXXXXXX)."""
    cleaned = phone_number.replace(" ", "").strip()
    match = RWANDA_PHONE_PATTERN.match(cleaned)
    if not match:
        raise ValueError("Invalid Rwandan phone number")
    return f"+250{match.group(2)}"


def send_sms(phone_number: str, message: str, message_type: str = "transactional") -> SmsResult:
    if not settings.SMS_API_URL or not settings.SMS_API_KEY:
        logger.warning("SMS gateway is not configured, dropping message")
        return SmsResult(success=False, error="SMS gateway is not configured")

    try:
        response = requests.post(
            f"{settings.SMS_API_URL.rstrip('/')}/send",
            json={
                "to": phone_number,
                "message": message,
                "type": message_type,
                "sender": settings.SMS_SENDER_ID,
            },
            headers={"Authorization": f"Bearer {settings.SMS_API_KEY}"},
            timeout=10,
        )
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as exc:
        logger.error("SMS sending failed: %s", exc)
        return SmsResult(success=False, error=str(exc))

    return SmsResult(success=True, message_id=data.get("messageId"))


def send_otp(phone_number: str, otp: str) -> SmsResult:
    message = (
        f"Your AgriConnect verification code is: {otp}. "
        f"This code expires in {settings.OTP_EXPIRE_MINUTES} minutes."
    )
    return send_sms(phone_number, message)


def send_order_notification(phone_number: str, order_id: int, status: str) -> SmsResult:
    message = f"AgriConnect: Your order #{order_id} status has been updated to {status}."
    return send_sms(phone_number, message)


def send_payment_confirmation(phone_number: str, amount, order_id: int) -> SmsResult:
    message = f"AgriConnect: Payment of RWF {amount} for order #{order_id} has been confirmed."
    return send_sms(phone_number, message)
