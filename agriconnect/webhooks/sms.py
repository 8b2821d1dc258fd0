import json
import logging

from fastapi import APIRouter, HTTPException, Request, status

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/sms",
    summary="SMS gateway delivery report",
)
async def sms_delivery_webhook(request: Request):
    """Delivery reports are only logged."""
    raw_body = await request.body()
    try:
        body = json.loads(raw_body)
    except Exception as e:
        logger.error("Invalid JSON in SMS webhook: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")
    if not isinstance(body, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")

    logger.info(
        "SMS %s to %s: %s at %s",
        body.get("messageId"),
        body.get("phoneNumber"),
        body.get("status"),
        body.get("timestamp"),
    )
    return {"success": True}
